"""
Request-scoped orchestration of the mastery engine.
"""

from atp_mastery.study.mastery_service import (
    AttemptOutcomeReport,
    AttemptSubmission,
    MasteryService,
)

__all__ = [
    "AttemptOutcomeReport",
    "AttemptSubmission",
    "MasteryService",
]
