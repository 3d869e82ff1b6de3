"""
Mastery Update Function.

Turns one graded attempt outcome into a new per-skill proficiency estimate:

    rawDelta = learning_rate * (score - pMastery)
               * formatWeight * modeWeight * difficultyFactor * coverageWeight
    delta    = clamp(rawDelta, max_delta_negative, max_delta_positive)

Stability moves by a fixed step on success/failure and is read only by the
gate. Every attempt also advances the skill-level SM-2 review date consumed by
the planner's retention term.

All functions here are pure: identical inputs give identical outputs, and the
caller persists the returned state.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta
from typing import Iterable, Mapping

from loguru import logger

from atp_mastery.core.mastery import clamp, clamp01, to_date, utc_now
from atp_mastery.core.models import (
    Attempt,
    AttemptOutcome,
    GateState,
    MasteryState,
    MasteryUpdate,
    SkillCoverage,
    enum_value,
)
from atp_mastery.core.tuning import DEFAULT_TUNING, EngineTuning
from atp_mastery.review.scheduler import SM2Scheduler


# =============================================================================
# Weight Lookups (fail-soft)
# =============================================================================


def format_weight(item_format: str, tuning: EngineTuning = DEFAULT_TUNING) -> float:
    """Weight of a response format; unknown formats count as 1.0."""
    key = str(enum_value(item_format)).lower()
    weight = tuning.mastery.format_weights.get(key)
    if weight is None:
        logger.debug(f"Unknown format {item_format!r}, using weight 1.0")
        return 1.0
    return weight


def mode_weight(mode: str, tuning: EngineTuning = DEFAULT_TUNING) -> float:
    """Weight of a practice mode; unknown modes count as 1.0."""
    key = str(enum_value(mode)).lower()
    weight = tuning.mastery.mode_weights.get(key)
    if weight is None:
        logger.debug(f"Unknown mode {mode!r}, using weight 1.0")
        return 1.0
    return weight


def difficulty_factor(difficulty: int, tuning: EngineTuning = DEFAULT_TUNING) -> float:
    """Scale for difficulty tier 1-5; anything else counts as 1.0."""
    factor = None
    if isinstance(difficulty, (int, float)) and not isinstance(difficulty, bool):
        if float(difficulty).is_integer():
            factor = tuning.mastery.difficulty_factors.get(int(difficulty))
    if factor is None:
        logger.debug(f"Unknown difficulty {difficulty!r}, using factor 1.0")
        return 1.0
    return factor


# =============================================================================
# Update Rule
# =============================================================================


def calculate_delta(
    current_p_mastery: float,
    outcome: AttemptOutcome,
    tuning: EngineTuning = DEFAULT_TUNING,
) -> tuple[float, float]:
    """
    Compute the raw and clamped mastery delta for one outcome.

    Args:
        current_p_mastery: pMastery before the attempt
        outcome: Score, format, mode, difficulty and coverage weight
        tuning: Engine tuning

    Returns:
        (raw_delta, clamped_delta)
    """
    config = tuning.mastery
    score = clamp01(outcome.score_norm)
    coverage = clamp01(outcome.coverage_weight)

    raw_delta = (
        config.learning_rate
        * (score - current_p_mastery)
        * format_weight(outcome.format, tuning)
        * mode_weight(outcome.mode, tuning)
        * difficulty_factor(outcome.difficulty, tuning)
        * coverage
    )
    delta = clamp(raw_delta, config.max_delta_negative, config.max_delta_positive)
    return raw_delta, delta


def update_stability(
    current_stability: float,
    was_success: bool,
    tuning: EngineTuning = DEFAULT_TUNING,
) -> float:
    """Step stability up on success and down on failure, within bounds."""
    config = tuning.mastery
    step = config.stability_growth if was_success else -config.stability_decay
    return clamp(current_stability + step, config.min_stability, config.max_stability)


def initial_mastery_state(
    user_id: str,
    skill_id: str,
    prior: float | None = None,
    tuning: EngineTuning = DEFAULT_TUNING,
) -> MasteryState:
    """
    Fresh state for a skill with nothing on record.

    Args:
        user_id: Learner
        skill_id: Skill
        prior: Onboarding-seeded pMastery (defaults to the configured default)
        tuning: Engine tuning
    """
    p = tuning.mastery.default_p_mastery if prior is None else prior
    return MasteryState(
        user_id=user_id,
        skill_id=skill_id,
        p_mastery=clamp01(p),
        stability=tuning.mastery.initial_stability,
        easiness_factor=tuning.review.initial_easiness,
        gate=GateState.STUDYING,
    )


def apply_outcome(
    state: MasteryState,
    outcome: AttemptOutcome,
    now: datetime | None = None,
    tuning: EngineTuning = DEFAULT_TUNING,
) -> MasteryUpdate:
    """
    Apply one attempt outcome to a skill's mastery state.

    Args:
        state: Current state (use initial_mastery_state for a new skill)
        outcome: Attempt slice for this skill
        now: Attempt timestamp (defaults to UTC now)
        tuning: Engine tuning

    Returns:
        MasteryUpdate carrying the new state and the delta audit trail
    """
    now = now or utc_now()
    config = tuning.mastery

    old_p = clamp01(state.p_mastery)
    old_stability = clamp(state.stability, config.min_stability, config.max_stability)
    score = clamp01(outcome.score_norm)

    raw_delta, delta = calculate_delta(old_p, outcome, tuning)
    new_p = clamp01(old_p + delta)

    was_success = score >= config.pass_threshold
    new_stability = update_stability(old_stability, was_success, tuning)

    # Skill-level review schedule at quality round(score * 5)
    scheduler = SM2Scheduler(tuning)
    quality = int(round(score * 5))
    easiness = scheduler.next_easiness(state.easiness_factor, quality)
    if quality < 3:
        interval = 1
    elif state.review_interval_days <= 1:
        interval = tuning.review.second_interval
    else:
        interval = round(state.review_interval_days * easiness)
    interval = max(1, min(interval, config.skill_review_max_interval_days))

    gate = GateState.PRACTICING if state.gate == GateState.STUDYING else state.gate

    new_state = replace(
        state,
        p_mastery=new_p,
        stability=new_stability,
        attempt_count=state.attempt_count + 1,
        correct_count=state.correct_count + (1 if was_success else 0),
        last_practiced_at=now,
        next_review_date=to_date(now) + timedelta(days=interval),
        review_interval_days=interval,
        easiness_factor=easiness,
        gate=gate,
    )

    logger.debug(
        f"Mastery {state.skill_id}: {old_p:.3f} -> {new_p:.3f} "
        f"(raw={raw_delta:+.4f}, delta={delta:+.4f}, stability={new_stability:.2f})"
    )

    return MasteryUpdate(
        skill_id=state.skill_id,
        old_p_mastery=old_p,
        new_p_mastery=new_p,
        raw_delta=raw_delta,
        delta=delta,
        old_stability=old_stability,
        new_stability=new_stability,
        was_success=was_success,
        state=new_state,
    )


def unique_coverage(skills: Iterable[SkillCoverage]) -> tuple[SkillCoverage, ...]:
    """
    First positive-weight pair per skill, in submission order.

    Later pairs for a skill already seen and pairs with a non-positive weight
    are dropped.
    """
    seen: set[str] = set()
    kept: list[SkillCoverage] = []
    for coverage in skills:
        if coverage.weight <= 0:
            logger.debug(f"Skipping {coverage.skill_id}: non-positive coverage weight")
            continue
        if coverage.skill_id in seen:
            logger.debug(f"Skipping repeated coverage for {coverage.skill_id}")
            continue
        seen.add(coverage.skill_id)
        kept.append(coverage)
    return tuple(kept)


def fan_out(
    attempt: Attempt,
    states: Mapping[str, MasteryState],
    tuning: EngineTuning = DEFAULT_TUNING,
    priors: Mapping[str, float] | None = None,
) -> list[MasteryUpdate]:
    """
    Distribute one attempt over every skill it covers.

    Each (skill, weight) pair goes through apply_outcome independently, so the
    result does not depend on the order of the pairs or on the weights summing
    to 1. Pairs are normalised by unique_coverage first.

    Args:
        attempt: The graded attempt
        states: Current states keyed by skill id (missing skills start fresh)
        tuning: Engine tuning
        priors: Optional onboarding priors for skills without state

    Returns:
        One MasteryUpdate per covered skill, in the attempt's skill order
    """
    priors = priors or {}
    updates: list[MasteryUpdate] = []

    for coverage in unique_coverage(attempt.skills):
        state = states.get(coverage.skill_id) or initial_mastery_state(
            attempt.user_id,
            coverage.skill_id,
            priors.get(coverage.skill_id),
            tuning,
        )
        updates.append(
            apply_outcome(state, attempt.outcome_for(coverage.skill_id), attempt.submitted_at, tuning)
        )

    return updates


def replay(
    state: MasteryState,
    attempts: Iterable[Attempt],
    tuning: EngineTuning = DEFAULT_TUNING,
) -> MasteryState:
    """Rebuild a skill's state by applying attempts in submission order."""
    for attempt in sorted(attempts, key=lambda a: (a.submitted_at, a.attempt_id)):
        if not attempt.covers(state.skill_id):
            continue
        outcome = attempt.outcome_for(state.skill_id)
        if outcome.coverage_weight <= 0:
            continue
        state = apply_outcome(state, outcome, attempt.submitted_at, tuning).state
    return state
