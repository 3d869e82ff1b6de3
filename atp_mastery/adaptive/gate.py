"""
Gate Verification State Machine.

STUDYING -> PRACTICING on the first recorded attempt (see mastery_update).
PRACTICING -> EXAM_READY once every condition holds:

1. pMastery >= 0.85 at check time
2. at least two timed passes (timed/exam_sim, scoreNorm >= pass threshold)
3. two of those passes at least 24 hours apart
4. neither pass carries one of the skill's top-3 most frequent error tags

A failed check reports one reason code per unmet condition and changes
nothing, so it can be re-run after every attempt. EXAM_READY is never reverted
here; the planner re-surfaces verified skills whose pMastery drops.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable

from loguru import logger

from atp_mastery.adaptive.error_signatures import build_error_signatures, top_error_tags
from atp_mastery.core.mastery import as_utc, calculate_hours_between, utc_now
from atp_mastery.core.models import Attempt, GateState, MasteryState, SkillVerification
from atp_mastery.core.tuning import DEFAULT_TUNING, EngineTuning


class GateReason(str, Enum):
    """Why a skill is not yet exam-ready."""

    LOW_MASTERY = "low_mastery"
    INSUFFICIENT_PASSES = "insufficient_passes"
    TOO_SOON = "too_soon"
    RECURRING_ERRORS = "recurring_errors"
    LOW_STABILITY = "low_stability"


@dataclass(frozen=True)
class GateCheckResult:
    """Outcome of one gate evaluation for a skill."""

    skill_id: str
    passed: bool
    p_mastery: float
    timed_pass_count: int
    reasons: tuple[GateReason, ...] = ()
    messages: tuple[str, ...] = ()
    first_pass_attempt_id: str | None = None
    second_pass_attempt_id: str | None = None
    hours_between_passes: float | None = None
    top_error_tags: tuple[str, ...] = ()
    already_verified: bool = False

    @property
    def reason_codes(self) -> list[str]:
        return [reason.value for reason in self.reasons]

    @property
    def target_state(self) -> GateState:
        return GateState.EXAM_READY if self.passed else GateState.PRACTICING


def timed_passes(
    attempts: Iterable[Attempt],
    skill_id: str,
    tuning: EngineTuning = DEFAULT_TUNING,
    now: datetime | None = None,
) -> list[Attempt]:
    """Timed/exam_sim attempts on a skill that scored a pass, oldest first."""
    cutoff = None
    if tuning.gate.lookback_days is not None:
        cutoff = as_utc(now or utc_now()) - timedelta(days=tuning.gate.lookback_days)

    passes = [
        a
        for a in attempts
        if a.covers(skill_id)
        and a.is_exam_like
        and a.score_norm >= tuning.mastery.pass_threshold
        and (cutoff is None or as_utc(a.submitted_at) >= cutoff)
    ]
    return sorted(passes, key=lambda a: (as_utc(a.submitted_at), a.attempt_id))


def _find_qualifying_pair(
    passes: list[Attempt],
    blocked_tags: set[str],
    min_hours: float,
) -> tuple[tuple[Attempt, Attempt] | None, bool]:
    """
    Most recent clean pair of passes spaced at least min_hours apart.

    Returns:
        (pair or None, whether any spaced pair exists at all)
    """
    spaced_found = False
    for j in range(len(passes) - 1, 0, -1):
        second = passes[j]
        for i in range(j - 1, -1, -1):
            first = passes[i]
            if calculate_hours_between(first.submitted_at, second.submitted_at) < min_hours:
                continue
            spaced_found = True
            tags = set(first.error_tags) | set(second.error_tags)
            if not tags & blocked_tags:
                return (first, second), True
    return None, spaced_found


def evaluate_gate(
    state: MasteryState,
    attempts: Iterable[Attempt],
    now: datetime | None = None,
    tuning: EngineTuning = DEFAULT_TUNING,
) -> GateCheckResult:
    """
    Check every EXAM_READY condition for one skill.

    Args:
        state: Current mastery state of the skill
        attempts: The user's attempt history (attempts on other skills are ignored)
        now: Check time
        tuning: Engine tuning

    Returns:
        GateCheckResult; passed is True only if every condition holds
    """
    now = now or utc_now()
    config = tuning.gate
    history = [a for a in attempts if a.covers(state.skill_id)]
    passes = timed_passes(history, state.skill_id, tuning, now)

    signatures = build_error_signatures(history, now)
    top_tags = top_error_tags(signatures, state.skill_id, config.top_error_tags)

    if state.gate == GateState.EXAM_READY:
        return GateCheckResult(
            skill_id=state.skill_id,
            passed=True,
            p_mastery=state.p_mastery,
            timed_pass_count=len(passes),
            top_error_tags=tuple(top_tags),
            already_verified=True,
        )

    reasons: list[GateReason] = []
    messages: list[str] = []

    if state.p_mastery < config.min_p_mastery:
        reasons.append(GateReason.LOW_MASTERY)
        messages.append(
            f"Mastery {state.p_mastery:.0%} is below the {config.min_p_mastery:.0%} required"
        )

    if config.min_stability is not None and state.stability < config.min_stability:
        reasons.append(GateReason.LOW_STABILITY)
        messages.append(
            f"Stability {state.stability:.2f} is below the {config.min_stability:.2f} required"
        )

    pair = None
    if len(passes) < config.required_timed_passes:
        reasons.append(GateReason.INSUFFICIENT_PASSES)
        messages.append(
            f"{len(passes)} of {config.required_timed_passes} timed passes recorded"
        )
    else:
        pair, spaced_found = _find_qualifying_pair(
            passes, set(top_tags), config.min_hours_between_passes
        )
        if not spaced_found:
            reasons.append(GateReason.TOO_SOON)
            messages.append(
                f"Timed passes must be at least {config.min_hours_between_passes:g} hours apart"
            )
        elif pair is None:
            reasons.append(GateReason.RECURRING_ERRORS)
            messages.append(
                f"Recent timed passes still show frequent errors: {', '.join(top_tags)}"
            )

    result = GateCheckResult(
        skill_id=state.skill_id,
        passed=not reasons,
        p_mastery=state.p_mastery,
        timed_pass_count=len(passes),
        reasons=tuple(reasons),
        messages=tuple(messages),
        first_pass_attempt_id=pair[0].attempt_id if pair else None,
        second_pass_attempt_id=pair[1].attempt_id if pair else None,
        hours_between_passes=(
            calculate_hours_between(pair[0].submitted_at, pair[1].submitted_at) if pair else None
        ),
        top_error_tags=tuple(top_tags),
    )

    if reasons:
        logger.debug(f"Gate blocked for {state.skill_id}: {result.reason_codes}")
    return result


def apply_gate_result(
    state: MasteryState,
    result: GateCheckResult,
    now: datetime | None = None,
) -> tuple[MasteryState, SkillVerification | None]:
    """
    Promote a skill to EXAM_READY when its check passed.

    A verification record is produced only on the transition itself; an
    already verified skill or a failed check returns the state unchanged.
    """
    if not result.passed or result.already_verified or state.is_verified:
        return state, None

    now = now or utc_now()
    verification = SkillVerification(
        user_id=state.user_id,
        skill_id=state.skill_id,
        p_mastery_at_verification=state.p_mastery,
        first_pass_attempt_id=result.first_pass_attempt_id or "",
        second_pass_attempt_id=result.second_pass_attempt_id or "",
        hours_between_passes=result.hours_between_passes or 0.0,
        error_tags_cleared=result.top_error_tags,
        verified_at=now,
    )
    new_state = replace(state, gate=GateState.EXAM_READY, gate_passed_at=now)

    logger.debug(
        f"Skill {state.skill_id} verified EXAM_READY for {state.user_id} "
        f"(p={state.p_mastery:.2f}, {verification.hours_between_passes:.1f}h between passes)"
    )
    return new_state, verification
