"""
Core types shared by every mastery engine component.
"""

from atp_mastery.core.exam_phase import classify_exam_phase, days_until_exam, dominant_mode
from atp_mastery.core.exceptions import (
    MasteryEngineError,
    PersistenceConflictError,
    UnknownCardError,
    UnknownSkillError,
)
from atp_mastery.core.mastery import MasteryLevel
from atp_mastery.core.models import (
    Attempt,
    AttemptOutcome,
    CandidateItem,
    CardMaturity,
    ContentType,
    CoverageDebt,
    DailyPlan,
    DominantMode,
    ErrorSignature,
    ExamPhase,
    GateState,
    GradingOutput,
    ItemFormat,
    MasteryState,
    MasteryUpdate,
    PlanTask,
    PracticeMode,
    ScoreBreakdown,
    Skill,
    SkillCoverage,
    SkillVerification,
    SpacedRepetitionCard,
    TaskType,
    WhySelected,
)
from atp_mastery.core.tuning import DEFAULT_TUNING, EngineTuning

__all__ = [
    # Phase
    "classify_exam_phase",
    "days_until_exam",
    "dominant_mode",
    # Errors
    "MasteryEngineError",
    "PersistenceConflictError",
    "UnknownCardError",
    "UnknownSkillError",
    # Tuning
    "DEFAULT_TUNING",
    "EngineTuning",
    # Models
    "Attempt",
    "AttemptOutcome",
    "CandidateItem",
    "CoverageDebt",
    "DailyPlan",
    "ErrorSignature",
    "GradingOutput",
    "MasteryState",
    "MasteryUpdate",
    "PlanTask",
    "ScoreBreakdown",
    "Skill",
    "SkillCoverage",
    "SkillVerification",
    "SpacedRepetitionCard",
    "WhySelected",
    # Enums
    "CardMaturity",
    "ContentType",
    "DominantMode",
    "ExamPhase",
    "GateState",
    "ItemFormat",
    "MasteryLevel",
    "PracticeMode",
    "TaskType",
]
