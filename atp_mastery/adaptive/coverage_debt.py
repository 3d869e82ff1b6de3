"""
Coverage-Debt Calculator.

    debt = examWeight * (1 - coverageFraction) * ln(daysSinceLastPractice + 1)

coverageFraction is the share of a skill's supported formats attempted at
least once. Staleness grows logarithmically so one long-neglected skill
cannot crowd out every other skill.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Iterable, Mapping

from atp_mastery.core.mastery import calculate_days_since, clamp01, utc_now
from atp_mastery.core.models import Attempt, CoverageDebt, MasteryState, Skill, enum_value
from atp_mastery.core.tuning import DEFAULT_TUNING, EngineTuning


def coverage_fraction(skill: Skill, attempts: Iterable[Attempt]) -> float:
    """
    Fraction of the skill's formats attempted at least once.

    A skill with no declared formats is fully covered by any attempt.
    """
    attempted = {
        str(enum_value(a.format)).lower()
        for a in attempts
        if a.covers(skill.skill_id) and a.weight_for(skill.skill_id) > 0
    }
    if not attempted:
        return 0.0

    expected = {str(enum_value(f)).lower() for f in skill.formats}
    if not expected:
        return 1.0
    return len(expected & attempted) / len(expected)


def calculate_coverage_debt(
    exam_weight: float,
    coverage: float,
    days_since_last_practice: float,
) -> float:
    """Debt for one skill; inputs are clamped to their valid ranges."""
    return (
        clamp01(exam_weight)
        * (1.0 - clamp01(coverage))
        * math.log(max(0.0, days_since_last_practice) + 1.0)
    )


def compute_coverage_debts(
    skills: Iterable[Skill],
    states: Mapping[str, MasteryState],
    attempts: Iterable[Attempt],
    now: datetime | None = None,
    tuning: EngineTuning = DEFAULT_TUNING,
) -> dict[str, CoverageDebt]:
    """
    Coverage debt for every skill.

    Args:
        skills: Curriculum skills
        states: Mastery states keyed by skill id (missing = never practiced)
        attempts: The user's attempt history
        now: Reference time
        tuning: Engine tuning (staleness assumed for never-practiced skills)

    Returns:
        CoverageDebt keyed by skill id
    """
    now = now or utc_now()
    history = list(attempts)
    debts: dict[str, CoverageDebt] = {}

    for skill in skills:
        state = states.get(skill.skill_id)
        last = state.last_practiced_at if state is not None else None
        days = calculate_days_since(last, now, tuning.planner.never_practiced_days)
        fraction = coverage_fraction(skill, history)

        debts[skill.skill_id] = CoverageDebt(
            skill_id=skill.skill_id,
            debt=calculate_coverage_debt(skill.exam_weight, fraction, days),
            exam_weight=skill.exam_weight,
            coverage_fraction=fraction,
            days_since_last_practice=days,
        )

    return debts


def rank_coverage_debts(debts: Iterable[CoverageDebt]) -> list[CoverageDebt]:
    """Highest debt first; ties by exam weight, then skill id."""
    return sorted(debts, key=lambda d: (-d.debt, -d.exam_weight, d.skill_id))
