"""
Exam Phase Classifier.

Maps days-until-exam onto a coarse urgency phase used by the planner and the
readiness views:

    distant      >= 60 days
    approaching  8-59 days
    critical     0-7 days (an exam date already in the past also reads critical)
"""

from __future__ import annotations

from datetime import date

from loguru import logger

from atp_mastery.core.models import DominantMode, ExamPhase
from atp_mastery.core.tuning import DEFAULT_TUNING, EngineTuning


def days_until_exam(exam_date: date | None, today: date) -> int | None:
    """Whole days from today to the exam, or None if no date is set."""
    if exam_date is None:
        return None
    return (exam_date - today).days


def classify_exam_phase(
    days_until: int | None,
    tuning: EngineTuning = DEFAULT_TUNING,
) -> ExamPhase | None:
    """
    Classify days-until-exam into an exam phase.

    Args:
        days_until: Days until the exam (None when no date is set)
        tuning: Engine tuning (phase thresholds)

    Returns:
        ExamPhase, or None if no exam date is set
    """
    if days_until is None:
        return None
    if days_until <= tuning.phase.critical_max_days:
        return ExamPhase.CRITICAL
    if days_until >= tuning.phase.distant_min_days:
        return ExamPhase.DISTANT
    return ExamPhase.APPROACHING


def dominant_mode(
    days_until_written: int | None,
    days_until_oral: int | None,
    tuning: EngineTuning = DEFAULT_TUNING,
) -> DominantMode | None:
    """
    Decide which sitting the plan should lean towards.

    The nearer non-distant exam wins. Both distant (or equally near) gives
    MIXED. An exam that has already passed is ignored. With a single upcoming
    exam that exam dominates; with none the result is None.
    """
    written = days_until_written if days_until_written is not None and days_until_written >= 0 else None
    oral = days_until_oral if days_until_oral is not None and days_until_oral >= 0 else None

    if written is None and oral is None:
        return None
    if oral is None:
        return DominantMode.WRITTEN
    if written is None:
        return DominantMode.ORAL

    written_phase = classify_exam_phase(written, tuning)
    oral_phase = classify_exam_phase(oral, tuning)

    if written_phase == ExamPhase.DISTANT and oral_phase == ExamPhase.DISTANT:
        return DominantMode.MIXED
    if oral_phase == ExamPhase.DISTANT:
        return DominantMode.WRITTEN
    if written_phase == ExamPhase.DISTANT:
        return DominantMode.ORAL

    if written < oral:
        return DominantMode.WRITTEN
    if oral < written:
        return DominantMode.ORAL

    logger.debug(f"Written and oral exams both {written} days out; using MIXED")
    return DominantMode.MIXED
