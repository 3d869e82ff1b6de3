"""
Review statistics for the SM-2 card queue.

Maturity buckets, retention strength, study streaks, session summaries and
exam-aware prioritisation. Everything here reads cards; nothing mutates them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable, Literal

from atp_mastery.core.mastery import clamp
from atp_mastery.core.models import CardMaturity, SpacedRepetitionCard
from atp_mastery.core.tuning import DEFAULT_TUNING, EngineTuning

MATURE_INTERVAL_DAYS = 21


def card_maturity(card: SpacedRepetitionCard) -> CardMaturity:
    """new (never recalled), learning (<3 reps), young (<21d interval), mature."""
    if card.repetitions == 0:
        return CardMaturity.NEW
    if card.repetitions < 3:
        return CardMaturity.LEARNING
    if card.interval < MATURE_INTERVAL_DAYS:
        return CardMaturity.YOUNG
    return CardMaturity.MATURE


def retention_strength(card: SpacedRepetitionCard) -> int:
    """
    Retention strength on a 0-100 scale.

    70% review accuracy, 20% interval maturity (saturating at 30 days),
    10% easiness above the floor.
    """
    if card.total_reviews == 0:
        return 0

    accuracy = card.correct_reviews / card.total_reviews
    maturity_bonus = min(card.interval / 30, 1.0) * 0.2
    ef_bonus = clamp((card.easiness_factor - 1.3) / 2.2, 0.0, 1.0) * 0.1
    return round((accuracy * 0.7 + maturity_bonus + ef_bonus) * 100)


def suggest_initial_ef(
    user_accuracy: float | None = None,
    topic_difficulty: Literal["easy", "medium", "hard"] | None = None,
    tuning: EngineTuning = DEFAULT_TUNING,
) -> float:
    """Starting EF for a new card from the learner's accuracy and topic difficulty."""
    ef = tuning.review.initial_easiness

    if user_accuracy is not None:
        if user_accuracy > 0.8:
            ef += 0.2
        elif user_accuracy < 0.5:
            ef -= 0.3

    if topic_difficulty == "easy":
        ef += 0.2
    elif topic_difficulty == "hard":
        ef -= 0.3

    return round(clamp(ef, tuning.review.minimum_easiness, 3.0), 2)


# =============================================================================
# Study Statistics
# =============================================================================


@dataclass(frozen=True)
class StudyStats:
    total_cards: int = 0
    due_today: int = 0
    overdue: int = 0
    new_cards: int = 0
    learning_cards: int = 0
    mature_cards: int = 0
    average_retention: int = 0
    streak_days: int = 0


def review_streak(review_dates: Iterable[date], today: date) -> int:
    """
    Consecutive days with at least one review, ending today.

    A streak that ended yesterday still counts, so it does not reset before
    today's session.
    """
    reviewed = set(review_dates)
    if not reviewed:
        return 0

    day = today if today in reviewed else today - timedelta(days=1)
    streak = 0
    while day in reviewed:
        streak += 1
        day -= timedelta(days=1)
    return streak


def study_stats(
    cards: Iterable[SpacedRepetitionCard],
    today: date | None = None,
    review_dates: Iterable[date] | None = None,
) -> StudyStats:
    """
    Summarize a user's active cards.

    Args:
        cards: Cards (inactive ones are ignored)
        today: Reference day
        review_dates: Full review history dates for the streak (defaults to
            each card's last review date)
    """
    today = today or date.today()
    active = [card for card in cards if card.is_active]

    due_today = overdue = new = learning = mature = 0
    total_retention = 0
    for card in active:
        if card.next_review_date is not None:
            if card.next_review_date < today:
                overdue += 1
            elif card.next_review_date == today:
                due_today += 1

        maturity = card_maturity(card)
        if maturity == CardMaturity.NEW:
            new += 1
        elif maturity == CardMaturity.MATURE:
            mature += 1
        else:
            learning += 1

        total_retention += retention_strength(card)

    if review_dates is None:
        review_dates = [c.last_review_date for c in active if c.last_review_date is not None]

    return StudyStats(
        total_cards=len(active),
        due_today=due_today,
        overdue=overdue,
        new_cards=new,
        learning_cards=learning,
        mature_cards=mature,
        average_retention=round(total_retention / len(active)) if active else 0,
        streak_days=review_streak(review_dates, today),
    )


# =============================================================================
# Sessions
# =============================================================================


@dataclass(frozen=True)
class SessionSummary:
    cards_reviewed: int
    correct_count: int
    accuracy: float
    average_quality: float
    needs_rewatch: tuple[SpacedRepetitionCard, ...] = ()
    recommendations: tuple[str, ...] = ()


def session_summary(reviewed: Iterable[tuple[SpacedRepetitionCard, int]]) -> SessionSummary:
    """Summarize a review session from (card, quality) pairs."""
    reviewed = list(reviewed)
    count = len(reviewed)
    correct = sum(1 for _, quality in reviewed if quality >= 3)
    needs_rewatch = tuple(card for card, quality in reviewed if quality < 3)
    accuracy = correct / count if count else 0.0

    recommendations: list[str] = []
    if accuracy < 0.6:
        recommendations.append("Consider reviewing the source material before your next session.")
    if len(needs_rewatch) > 3:
        recommendations.append(
            "You have several cards that need attention. Break them into smaller concepts."
        )
    if accuracy > 0.8 and count > 10:
        recommendations.append("Excellent session! Consider adding new material to continue growing.")

    return SessionSummary(
        cards_reviewed=count,
        correct_count=correct,
        accuracy=accuracy,
        average_quality=sum(quality for _, quality in reviewed) / count if count else 0.0,
        needs_rewatch=needs_rewatch,
        recommendations=tuple(recommendations),
    )


# =============================================================================
# Exam Optimisation
# =============================================================================


@dataclass(frozen=True)
class ExamReviewPlan:
    today_reviews: tuple[SpacedRepetitionCard, ...] = ()
    priority_cards: tuple[SpacedRepetitionCard, ...] = ()
    recommended_new_cards: int = 0
    scores: dict[str, int] = field(default_factory=dict)


def exam_priority(
    card: SpacedRepetitionCard,
    days_until_exam: int,
    weak_units: set[str],
    today: date,
) -> int:
    """Urgency of one card in the run-up to the exam."""
    score = 0

    if card.next_review_date is not None:
        if card.next_review_date < today:
            score += 100 + card.days_overdue(today) * 10
        elif card.next_review_date == today:
            score += 80

    if card.unit_id and card.unit_id in weak_units:
        score += 50

    retention = retention_strength(card)
    if retention < 50:
        score += 50 - retention

    if days_until_exam < 30:
        # Protect mature cards from decay
        if card_maturity(card) == CardMaturity.MATURE:
            score += 30
    elif days_until_exam < 60:
        score += 20

    return score


def recommended_new_cards(days_until_exam: int) -> int:
    if days_until_exam < 14:
        return 0
    if days_until_exam < 30:
        return 3
    if days_until_exam < 60:
        return 5
    return 10


def optimize_for_exam(
    cards: Iterable[SpacedRepetitionCard],
    days_until_exam: int,
    weak_units: Iterable[str] = (),
    daily_review_target: int = 50,
    today: date | None = None,
    priority_count: int = 10,
) -> ExamReviewPlan:
    """
    Rank active cards by exam urgency.

    Returns today's reviews (due cards, capped at the daily target), the top
    priority cards overall, and how many new cards to introduce today.
    """
    today = today or date.today()
    weak = set(weak_units)
    active = [card for card in cards if card.is_active]

    scores = {card.card_id: exam_priority(card, days_until_exam, weak, today) for card in active}
    ranked = sorted(active, key=lambda c: (-scores[c.card_id], c.card_id))

    return ExamReviewPlan(
        today_reviews=tuple(c for c in ranked if c.is_due(today))[:daily_review_target],
        priority_cards=tuple(ranked[:priority_count]),
        recommended_new_cards=recommended_new_cards(days_until_exam),
        scores=scores,
    )
