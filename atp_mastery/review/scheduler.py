"""
SM-2 Spaced Repetition Scheduler.

Card-level review queue for discrete reviewable content (cases, provisions,
flashcards). Runs independently of the daily planner and consumes only
quality ratings, never graded attempts.

SM-2 Grade Scale:
0 - Complete blackout, wrong response
1 - Incorrect, but upon seeing answer remembered
2 - Incorrect, but answer seemed easy to recall
3 - Correct, but with significant difficulty
4 - Correct, with some hesitation
5 - Correct, with perfect recall
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import date, timedelta

from loguru import logger

from atp_mastery.core.models import ContentType, SpacedRepetitionCard, enum_value
from atp_mastery.core.tuning import DEFAULT_TUNING, EngineTuning

PASSING_QUALITY = 3


@dataclass(frozen=True)
class SM2Step:
    """Outcome of one SM-2 step."""

    easiness_factor: float
    interval: int
    repetitions: int


def normalize_quality(quality: float) -> int:
    """Round and clamp a rating onto the 0-5 scale."""
    return max(0, min(5, int(round(quality))))


class SM2Scheduler:
    """
    Implements the SM-2 spaced repetition algorithm.

    Each card has:
    - Easiness Factor (EF): How easy the item is (2.5 default, min 1.3)
    - Interval: Days until next review
    - Repetitions: Consecutive correct recalls
    """

    def __init__(self, tuning: EngineTuning = DEFAULT_TUNING):
        """
        Initialize SM-2 scheduler.

        Args:
            tuning: Engine tuning (uses defaults if omitted)
        """
        self.config = tuning.review

    def next_easiness(self, easiness_factor: float, quality: int) -> float:
        """EF' = max(min_EF, EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02)))"""
        ef_delta = 0.1 - (5 - quality) * (0.08 + (5 - quality) * 0.02)
        return max(self.config.minimum_easiness, easiness_factor + ef_delta)

    def step(
        self,
        easiness_factor: float,
        interval: int,
        repetitions: int,
        quality: float,
    ) -> SM2Step:
        """
        Advance SM-2 state by one rating.

        Args:
            easiness_factor: Current EF
            interval: Current interval in days
            repetitions: Consecutive correct recalls so far
            quality: Rating 0-5 (rounded and clamped)

        Returns:
            SM2Step with the new EF, interval and repetitions
        """
        grade = normalize_quality(quality)
        new_ef = self.next_easiness(easiness_factor, grade)

        if grade < PASSING_QUALITY:
            # Failed - forgetting restarts the curve
            new_repetitions = 0
            new_interval = self.config.first_interval
        else:
            new_repetitions = repetitions + 1

            if new_repetitions == 1:
                new_interval = self.config.first_interval
            elif new_repetitions == 2:
                new_interval = self.config.second_interval
            else:
                new_interval = round(interval * new_ef)

        new_interval = max(1, min(new_interval, self.config.max_interval_days))

        return SM2Step(
            easiness_factor=new_ef,
            interval=new_interval,
            repetitions=new_repetitions,
        )

    def review(
        self,
        card: SpacedRepetitionCard,
        quality: float,
        today: date | None = None,
    ) -> SpacedRepetitionCard:
        """
        Apply a review rating to a card.

        Args:
            card: Current card state
            quality: Rating 0-5
            today: Review date (defaults to today)

        Returns:
            Updated card with new interval and next_review_date
        """
        today = today or date.today()
        grade = normalize_quality(quality)
        result = self.step(card.easiness_factor, card.interval, card.repetitions, grade)

        updated = replace(
            card,
            easiness_factor=result.easiness_factor,
            interval=result.interval,
            repetitions=result.repetitions,
            next_review_date=today + timedelta(days=result.interval),
            last_review_date=today,
            last_quality=grade,
            total_reviews=card.total_reviews + 1,
            correct_reviews=card.correct_reviews + (1 if grade >= PASSING_QUALITY else 0),
        )

        logger.debug(
            f"Reviewed card {card.card_id}: q={grade}, EF={result.easiness_factor:.2f}, "
            f"interval={result.interval}d, next={updated.next_review_date}"
        )
        return updated

    def grade_from_response(
        self,
        is_correct: bool,
        response_ms: int,
        expected_ms: int | None = None,
    ) -> int:
        """
        Convert a timed response to an SM-2 grade.

        Correct answers grade 3-5 and wrong answers 0-2; within each band a
        faster response earns the higher grade. Under quick_response_ratio of
        the expected time is the fastest tier, under the expected time the middle.
        """
        expected = expected_ms or self.config.expected_response_ms
        if response_ms < expected * self.config.quick_response_ratio:
            tier = 2
        elif response_ms < expected:
            tier = 1
        else:
            tier = 0
        return tier + 3 if is_correct else tier

    def new_card(
        self,
        user_id: str,
        content_type: ContentType | str,
        content_id: str,
        title: str = "",
        unit_id: str | None = None,
        initial_easiness: float | None = None,
        today: date | None = None,
        card_id: str | None = None,
    ) -> SpacedRepetitionCard:
        """Create a card on first exposure; it is due immediately."""
        return SpacedRepetitionCard(
            card_id=card_id or str(uuid.uuid4()),
            user_id=user_id,
            content_type=enum_value(content_type),
            content_id=content_id,
            title=title,
            unit_id=unit_id,
            easiness_factor=initial_easiness or self.config.initial_easiness,
            interval=self.config.first_interval,
            repetitions=0,
            next_review_date=today or date.today(),
        )

    @staticmethod
    def deactivate(card: SpacedRepetitionCard) -> SpacedRepetitionCard:
        """Soft-delete: the card stays on record but leaves the queue."""
        return replace(card, is_active=False)

    @staticmethod
    def due_cards(
        cards: list[SpacedRepetitionCard],
        today: date | None = None,
        limit: int | None = None,
    ) -> list[SpacedRepetitionCard]:
        """
        Active cards due on or before today.

        Ordered by most overdue first, then harder cards (lower EF), then
        more established cards (more repetitions), then card id.
        """
        today = today or date.today()
        due = [card for card in cards if card.is_due(today)]
        due.sort(
            key=lambda c: (
                c.next_review_date or date.min,
                c.easiness_factor,
                -c.repetitions,
                c.card_id,
            )
        )
        return due[:limit] if limit is not None else due
