"""
Engine tuning constants.

One immutable value object carries every threshold, weight table and clamp
bound. Pure functions receive it explicitly (defaulting to DEFAULT_TUNING) so
results are reproducible from their arguments alone.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping


def _frozen(mapping: dict) -> Mapping:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True)
class MasteryTuning:
    """Constants for the mastery update rule."""

    learning_rate: float = 0.15
    max_delta_positive: float = 0.10
    max_delta_negative: float = -0.12
    pass_threshold: float = 0.60
    default_p_mastery: float = 0.0

    format_weights: Mapping[str, float] = field(
        default_factory=lambda: _frozen(
            {"mcq": 0.75, "written": 1.15, "drafting": 1.25, "oral": 1.35}
        )
    )
    mode_weights: Mapping[str, float] = field(
        default_factory=lambda: _frozen({"practice": 1.0, "timed": 1.25, "exam_sim": 1.25})
    )
    difficulty_factors: Mapping[int, float] = field(
        default_factory=lambda: _frozen({1: 0.6, 2: 0.8, 3: 1.0, 4: 1.2, 5: 1.4})
    )

    initial_stability: float = 1.0
    stability_growth: float = 0.10
    stability_decay: float = 0.15
    min_stability: float = 0.3
    max_stability: float = 2.0

    # Skill-level review schedule advanced on every attempt
    skill_review_max_interval_days: int = 180


@dataclass(frozen=True)
class GateTuning:
    """Constants for PRACTICING -> EXAM_READY certification."""

    min_p_mastery: float = 0.85
    required_timed_passes: int = 2
    min_hours_between_passes: float = 24.0
    top_error_tags: int = 3
    min_stability: float | None = None
    lookback_days: int | None = None


@dataclass(frozen=True)
class PlannerTuning:
    """Constants for daily plan scoring and packing."""

    weight_learning_gain: float = 0.25
    weight_retention_gain: float = 0.25
    weight_exam_roi: float = 0.25
    weight_error_closure: float = 0.25

    critical_mode_boost: float = 0.5
    critical_exam_weight_boost: float = 2.0
    distant_foundation_boost: float = 0.25
    foundation_max_difficulty: int = 2

    max_tasks_per_skill: int = 2
    resurface_threshold: float = 0.70
    resurface_boost: float = 0.25
    never_practiced_days: float = 30.0

    # Optional penalty for piling onto recently practiced skills and formats
    weight_burnout_penalty: float = 0.0
    burnout_window_hours: float = 24.0

    @property
    def weights(self) -> dict[str, float]:
        return {
            "learning_gain": self.weight_learning_gain,
            "retention_gain": self.weight_retention_gain,
            "exam_roi": self.weight_exam_roi,
            "error_closure": self.weight_error_closure,
        }


@dataclass(frozen=True)
class ReviewTuning:
    """SM-2 parameters for the card-level review queue."""

    initial_easiness: float = 2.5
    minimum_easiness: float = 1.3
    first_interval: int = 1
    second_interval: int = 6
    max_interval_days: int = 365

    # Response-time grading
    expected_response_ms: int = 10000
    quick_response_ratio: float = 0.5


@dataclass(frozen=True)
class PhaseTuning:
    """Day thresholds for exam phase classification."""

    critical_max_days: int = 7
    distant_min_days: int = 60


@dataclass(frozen=True)
class EngineTuning:
    """All engine constants, grouped per component."""

    mastery: MasteryTuning = field(default_factory=MasteryTuning)
    gate: GateTuning = field(default_factory=GateTuning)
    planner: PlannerTuning = field(default_factory=PlannerTuning)
    review: ReviewTuning = field(default_factory=ReviewTuning)
    phase: PhaseTuning = field(default_factory=PhaseTuning)


DEFAULT_TUNING = EngineTuning()
