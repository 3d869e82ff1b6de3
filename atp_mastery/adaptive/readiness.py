"""
Exam readiness rollup.

Exam-weight-weighted pMastery across the curriculum, broken down by format
and by unit, with the weakest skills listed for the dashboard.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable, Mapping

from atp_mastery.core.mastery import MasteryLevel
from atp_mastery.core.models import ItemFormat, MasteryState, Skill, enum_value

READINESS_FORMATS = (ItemFormat.WRITTEN.value, ItemFormat.ORAL.value, ItemFormat.DRAFTING.value)


@dataclass(frozen=True)
class SkillReadiness:
    skill_id: str
    unit_id: str
    p_mastery: float
    exam_weight: float
    is_verified: bool


@dataclass(frozen=True)
class ReadinessReport:
    """Readiness snapshot for one user."""

    overall: float
    by_format: dict[str, float] = field(default_factory=dict)
    by_unit: dict[str, float] = field(default_factory=dict)
    verified_count: int = 0
    total_skills: int = 0
    weakest: tuple[SkillReadiness, ...] = ()

    @property
    def level(self) -> MasteryLevel:
        return MasteryLevel.from_score(self.overall)

    @property
    def verified_fraction(self) -> float:
        if self.total_skills == 0:
            return 0.0
        return self.verified_count / self.total_skills


def _weighted_mean(pairs: Iterable[tuple[float, float]]) -> float:
    total_weight = 0.0
    total = 0.0
    for value, weight in pairs:
        total += value * weight
        total_weight += weight
    if total_weight <= 0:
        return 0.0
    return total / total_weight


def compute_readiness(
    skills: Iterable[Skill],
    states: Mapping[str, MasteryState] | Iterable[MasteryState],
    weakest_count: int = 5,
) -> ReadinessReport:
    """
    Roll mastery up to exam readiness.

    Skills with zero exam weight count with weight 1 so an unweighted
    curriculum still gets a plain average.
    """
    if not isinstance(states, Mapping):
        states = {state.skill_id: state for state in states}

    rows: list[SkillReadiness] = []
    formats_of: dict[str, set[str]] = {}
    for skill in skills:
        state = states.get(skill.skill_id)
        rows.append(
            SkillReadiness(
                skill_id=skill.skill_id,
                unit_id=skill.unit_id,
                p_mastery=state.p_mastery if state is not None else 0.0,
                exam_weight=skill.exam_weight,
                is_verified=state.is_verified if state is not None else False,
            )
        )
        formats_of[skill.skill_id] = {str(enum_value(f)).lower() for f in skill.formats}

    uniform = all(row.exam_weight <= 0 for row in rows)

    def weight(row: SkillReadiness) -> float:
        return 1.0 if uniform else max(0.0, row.exam_weight)

    by_unit_rows: dict[str, list[SkillReadiness]] = defaultdict(list)
    for row in rows:
        by_unit_rows[row.unit_id].append(row)

    by_format = {}
    for fmt in READINESS_FORMATS:
        matching = [row for row in rows if fmt in formats_of[row.skill_id]]
        if matching:
            by_format[fmt] = _weighted_mean((row.p_mastery, weight(row)) for row in matching)

    weakest = sorted(rows, key=lambda r: (r.p_mastery, -r.exam_weight, r.skill_id))

    return ReadinessReport(
        overall=_weighted_mean((row.p_mastery, weight(row)) for row in rows),
        by_format=by_format,
        by_unit={
            unit_id: _weighted_mean((row.p_mastery, weight(row)) for row in unit_rows)
            for unit_id, unit_rows in sorted(by_unit_rows.items())
        },
        verified_count=sum(1 for row in rows if row.is_verified),
        total_skills=len(rows),
        weakest=tuple(weakest[:weakest_count]),
    )
