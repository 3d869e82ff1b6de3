"""
Mastery Engine Models.

Typed records shared by the update rule, the gate, the planners and the
persistence boundary. Every record is a frozen dataclass: components return
new values with dataclasses.replace() instead of mutating shared state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

# =============================================================================
# Enums
# =============================================================================


class ItemFormat(str, Enum):
    """Response format of an item."""

    WRITTEN = "written"
    ORAL = "oral"
    DRAFTING = "drafting"
    MCQ = "mcq"


class PracticeMode(str, Enum):
    """Conditions under which an attempt was made."""

    PRACTICE = "practice"
    TIMED = "timed"
    EXAM_SIM = "exam_sim"

    @property
    def is_exam_like(self) -> bool:
        return self in (PracticeMode.TIMED, PracticeMode.EXAM_SIM)


EXAM_LIKE_MODES = frozenset({PracticeMode.TIMED.value, PracticeMode.EXAM_SIM.value})


class GateState(str, Enum):
    """Certification state of a skill."""

    STUDYING = "STUDYING"
    PRACTICING = "PRACTICING"
    EXAM_READY = "EXAM_READY"


class ExamPhase(str, Enum):
    """Coarse urgency bucket from days until the exam."""

    DISTANT = "distant"
    APPROACHING = "approaching"
    CRITICAL = "critical"


class DominantMode(str, Enum):
    """Which exam sitting the plan should lean towards."""

    WRITTEN = "WRITTEN"
    ORAL = "ORAL"
    MIXED = "MIXED"


class TaskType(str, Enum):
    """What a planned task is for."""

    WEAKNESS_DRILL = "weakness_drill"
    TIMED_PROOF = "timed_proof"
    RETENTION_REVIEW = "retention_review"
    ERROR_REMEDIATION = "error_remediation"


class ContentType(str, Enum):
    """Kinds of reviewable content."""

    CASE = "case"
    CONCEPT = "concept"
    PROVISION = "provision"
    QUESTION = "question"
    FLASHCARD = "flashcard"


class CardMaturity(str, Enum):
    """Card lifecycle bucket."""

    NEW = "new"
    LEARNING = "learning"
    YOUNG = "young"
    MATURE = "mature"


def enum_value(value: Any) -> Any:
    """Raw value of an enum member, or the value itself."""
    return getattr(value, "value", value)


# =============================================================================
# Curriculum
# =============================================================================


@dataclass(frozen=True)
class Skill:
    """A micro-skill in the curriculum (read-only to the engine)."""

    skill_id: str
    unit_id: str
    exam_weight: float
    difficulty: int = 3
    formats: tuple[str, ...] = ()
    is_core: bool = False
    prerequisites: tuple[str, ...] = ()
    name: str = ""

    @property
    def label(self) -> str:
        return self.name or self.skill_id


@dataclass(frozen=True)
class SkillCoverage:
    """How much one item (or attempt) counts towards one skill."""

    skill_id: str
    weight: float = 1.0


@dataclass(frozen=True)
class CandidateItem:
    """An item the content store offers for scheduling."""

    item_id: str
    format: str
    difficulty: int
    estimated_minutes: int
    skills: tuple[SkillCoverage, ...]
    modes: tuple[str, ...] = (PracticeMode.PRACTICE.value, PracticeMode.TIMED.value)
    error_tags: tuple[str, ...] = ()  # diagnostic tags the item is designed to expose
    is_active: bool = True
    title: str = ""

    def weight_for(self, skill_id: str) -> float:
        for coverage in self.skills:
            if coverage.skill_id == skill_id:
                return coverage.weight
        return 0.0


# =============================================================================
# Attempts & Grading
# =============================================================================


@dataclass(frozen=True)
class GradingOutput:
    """Normalized result returned by the external grading service."""

    score_norm: float
    error_tags: tuple[str, ...] = ()
    feedback: str = ""


@dataclass(frozen=True)
class AttemptOutcome:
    """The slice of an attempt the update rule consumes for one skill."""

    score_norm: float
    format: str
    mode: str
    difficulty: int = 3
    coverage_weight: float = 1.0


@dataclass(frozen=True)
class Attempt:
    """Immutable record of one graded submission."""

    attempt_id: str
    user_id: str
    item_id: str
    format: str
    mode: str
    score_norm: float
    submitted_at: datetime
    skills: tuple[SkillCoverage, ...] = ()
    error_tags: tuple[str, ...] = ()
    difficulty: int = 3
    time_taken_sec: int | None = None

    @property
    def is_exam_like(self) -> bool:
        return enum_value(self.mode) in EXAM_LIKE_MODES

    def covers(self, skill_id: str) -> bool:
        return any(c.skill_id == skill_id for c in self.skills)

    def weight_for(self, skill_id: str) -> float:
        for coverage in self.skills:
            if coverage.skill_id == skill_id:
                return coverage.weight
        return 0.0

    def outcome_for(self, skill_id: str) -> AttemptOutcome:
        return AttemptOutcome(
            score_norm=self.score_norm,
            format=self.format,
            mode=self.mode,
            difficulty=self.difficulty,
            coverage_weight=self.weight_for(skill_id),
        )


# =============================================================================
# Mastery State
# =============================================================================


@dataclass(frozen=True)
class MasteryState:
    """
    Proficiency estimate for one (user, skill).

    p_mastery and stability change only through the mastery update rule.
    """

    user_id: str
    skill_id: str
    p_mastery: float = 0.0
    stability: float = 1.0
    attempt_count: int = 0
    correct_count: int = 0
    last_practiced_at: datetime | None = None
    next_review_date: date | None = None
    gate: GateState = GateState.STUDYING
    gate_passed_at: datetime | None = None
    review_interval_days: int = 1
    easiness_factor: float = 2.5
    version: int = 0

    @property
    def is_verified(self) -> bool:
        return self.gate == GateState.EXAM_READY

    @property
    def accuracy(self) -> float:
        if self.attempt_count == 0:
            return 0.0
        return self.correct_count / self.attempt_count


@dataclass(frozen=True)
class MasteryUpdate:
    """Result of applying one attempt outcome to one skill."""

    skill_id: str
    old_p_mastery: float
    new_p_mastery: float
    raw_delta: float
    delta: float
    old_stability: float
    new_stability: float
    was_success: bool
    state: MasteryState


@dataclass(frozen=True)
class SkillVerification:
    """Audit record written exactly once when a skill becomes EXAM_READY."""

    user_id: str
    skill_id: str
    p_mastery_at_verification: float
    first_pass_attempt_id: str
    second_pass_attempt_id: str
    hours_between_passes: float
    error_tags_cleared: tuple[str, ...]
    verified_at: datetime


@dataclass(frozen=True)
class ErrorSignature:
    """How often an error tag has shown up for a skill."""

    skill_id: str
    error_tag: str
    count_30d: int = 0
    count_90d: int = 0
    count_total: int = 0
    last_seen_at: datetime | None = None


# =============================================================================
# Spaced Repetition
# =============================================================================


@dataclass(frozen=True)
class SpacedRepetitionCard:
    """SM-2 state for one (user, content item)."""

    card_id: str
    user_id: str
    content_type: str
    content_id: str
    title: str = ""
    unit_id: str | None = None
    easiness_factor: float = 2.5
    interval: int = 1
    repetitions: int = 0
    next_review_date: date | None = None
    last_review_date: date | None = None
    last_quality: int | None = None
    total_reviews: int = 0
    correct_reviews: int = 0
    is_active: bool = True

    def is_due(self, today: date) -> bool:
        if not self.is_active:
            return False
        if self.next_review_date is None:
            return True  # never reviewed = due
        return self.next_review_date <= today

    def days_overdue(self, today: date) -> int:
        if self.next_review_date is None:
            return 0
        return max(0, (today - self.next_review_date).days)


# =============================================================================
# Planning
# =============================================================================


@dataclass(frozen=True)
class CoverageDebt:
    """Urgency of a skill from exam weight, uncovered formats and staleness."""

    skill_id: str
    debt: float
    exam_weight: float
    coverage_fraction: float
    days_since_last_practice: float


@dataclass(frozen=True)
class RecentActivity:
    """Practice done shortly before planning, used to spread load across skills."""

    skill_id: str
    item_format: str
    occurred_at: datetime
    minutes: float = 0.0


@dataclass(frozen=True)
class ScoreBreakdown:
    """The four normalized factors behind a task's priority."""

    learning_gain: float
    retention_gain: float
    exam_roi: float
    error_closure: float
    phase_multiplier: float = 1.0
    composite: float = 0.0
    burnout_penalty: float = 0.0

    def to_dict(self) -> dict[str, float]:
        return {
            "learning_gain": round(self.learning_gain, 4),
            "retention_gain": round(self.retention_gain, 4),
            "exam_roi": round(self.exam_roi, 4),
            "error_closure": round(self.error_closure, 4),
            "phase_multiplier": round(self.phase_multiplier, 4),
            "composite": round(self.composite, 4),
            "burnout_penalty": round(self.burnout_penalty, 4),
        }


@dataclass(frozen=True)
class WhySelected:
    """One contributor to a task's priority, for user-facing transparency."""

    contributor: str
    value: float
    explanation: str


@dataclass(frozen=True)
class PlanTask:
    """One entry in a day's plan."""

    order: int
    skill_id: str
    item_id: str
    format: str
    mode: str
    estimated_minutes: int
    priority_score: float
    breakdown: ScoreBreakdown
    task_type: TaskType
    rationale: str
    why_selected: tuple[WhySelected, ...] = ()


@dataclass(frozen=True)
class DailyPlan:
    """Ordered tasks for one user and day; derived, never authoritative."""

    plan_date: date
    budget_minutes: int
    exam_phase: ExamPhase | None
    tasks: tuple[PlanTask, ...] = field(default_factory=tuple)
    user_id: str | None = None

    @property
    def total_minutes(self) -> int:
        return sum(task.estimated_minutes for task in self.tasks)

    @property
    def is_empty(self) -> bool:
        return not self.tasks
