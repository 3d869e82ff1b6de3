"""
Card-level spaced repetition (SM-2) and review statistics.
"""

from atp_mastery.review.scheduler import SM2Scheduler, SM2Step, normalize_quality
from atp_mastery.review.stats import (
    ExamReviewPlan,
    SessionSummary,
    StudyStats,
    card_maturity,
    optimize_for_exam,
    retention_strength,
    session_summary,
    study_stats,
    suggest_initial_ef,
)

__all__ = [
    "card_maturity",
    "ExamReviewPlan",
    "normalize_quality",
    "optimize_for_exam",
    "retention_strength",
    "session_summary",
    "SessionSummary",
    "SM2Scheduler",
    "SM2Step",
    "study_stats",
    "StudyStats",
    "suggest_initial_ef",
]
