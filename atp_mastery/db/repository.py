"""
Mastery Repository.

Keyed load/save of engine state over a SQLAlchemy session. Rows are converted
to and from the frozen domain records so the engine never sees ORM objects.

Mastery state writes use the row's version column: saving a state read at an
older version raises PersistenceConflictError and the caller must re-read.
"""

from __future__ import annotations

from datetime import UTC, date, datetime

from loguru import logger
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from atp_mastery.core.exceptions import PersistenceConflictError, UnknownCardError
from atp_mastery.core.mastery import as_utc
from atp_mastery.core.models import (
    Attempt,
    GateState,
    MasteryState,
    SkillCoverage,
    SkillVerification,
    SpacedRepetitionCard,
    enum_value,
)
from atp_mastery.db.models import (
    AttemptRecord,
    AttemptSkillRecord,
    MasteryStateRecord,
    ReviewCardRecord,
    SkillVerificationRecord,
)
from atp_mastery.review.scheduler import SM2Scheduler


def _utc(moment: datetime | None) -> datetime | None:
    # SQLite drops tzinfo on the way back
    return as_utc(moment) if moment is not None else None


def _db_time(moment: datetime | None) -> datetime | None:
    # Stored in UTC so naive round-trips compare correctly
    return as_utc(moment).astimezone(UTC) if moment is not None else None


class MasteryRepository:
    """Persistence boundary for mastery states, attempts, verifications and cards."""

    def __init__(self, session: Session):
        self.session = session

    # =========================================================================
    # Mastery State
    # =========================================================================

    def _state_record(self, user_id: str, skill_id: str) -> MasteryStateRecord | None:
        return self.session.scalars(
            select(MasteryStateRecord).where(
                MasteryStateRecord.user_id == user_id,
                MasteryStateRecord.skill_id == skill_id,
            )
        ).one_or_none()

    def get_mastery_state(self, user_id: str, skill_id: str) -> MasteryState | None:
        record = self._state_record(user_id, skill_id)
        return self._to_state(record) if record is not None else None

    def list_mastery_states(self, user_id: str) -> list[MasteryState]:
        records = self.session.scalars(
            select(MasteryStateRecord)
            .where(MasteryStateRecord.user_id == user_id)
            .order_by(MasteryStateRecord.skill_id)
        )
        return [self._to_state(record) for record in records]

    def save_mastery_state(self, state: MasteryState) -> MasteryState:
        """
        Write a state computed from a previous read.

        Args:
            state: New state; its version must match the stored row's version
                (0 for a skill with no row yet)

        Returns:
            The saved state carrying its new version

        Raises:
            PersistenceConflictError: another write to (user, skill) got there first
        """
        key = (state.user_id, state.skill_id)
        record = self._state_record(*key)

        if record is None:
            if state.version != 0:
                raise PersistenceConflictError(key, f"Mastery state {'/'.join(key)} no longer exists")
            record = MasteryStateRecord(user_id=state.user_id, skill_id=state.skill_id)
            self.session.add(record)
        elif record.version != state.version:
            logger.warning(
                f"Stale mastery write for {'/'.join(key)}: v{state.version} vs stored v{record.version}"
            )
            raise PersistenceConflictError(key)

        record.p_mastery = state.p_mastery
        record.stability = state.stability
        record.attempt_count = state.attempt_count
        record.correct_count = state.correct_count
        record.last_practiced_at = _db_time(state.last_practiced_at)
        record.next_review_date = state.next_review_date
        record.review_interval_days = state.review_interval_days
        record.easiness_factor = state.easiness_factor
        record.gate = enum_value(state.gate)
        record.gate_passed_at = _db_time(state.gate_passed_at)

        try:
            self.session.flush()
        except (StaleDataError, IntegrityError) as e:
            raise PersistenceConflictError(key) from e

        return self._to_state(record)

    @staticmethod
    def _to_state(record: MasteryStateRecord) -> MasteryState:
        return MasteryState(
            user_id=record.user_id,
            skill_id=record.skill_id,
            p_mastery=record.p_mastery,
            stability=record.stability,
            attempt_count=record.attempt_count,
            correct_count=record.correct_count,
            last_practiced_at=_utc(record.last_practiced_at),
            next_review_date=record.next_review_date,
            gate=GateState(record.gate),
            gate_passed_at=_utc(record.gate_passed_at),
            review_interval_days=record.review_interval_days,
            easiness_factor=record.easiness_factor,
            version=record.version,
        )

    # =========================================================================
    # Attempts
    # =========================================================================

    def add_attempt(self, attempt: Attempt) -> Attempt:
        record = AttemptRecord(
            id=attempt.attempt_id,
            user_id=attempt.user_id,
            item_id=attempt.item_id,
            format=str(enum_value(attempt.format)),
            mode=str(enum_value(attempt.mode)),
            score_norm=attempt.score_norm,
            difficulty=attempt.difficulty,
            error_tags=list(attempt.error_tags),
            time_taken_sec=attempt.time_taken_sec,
            submitted_at=_db_time(attempt.submitted_at),
            skills=[
                AttemptSkillRecord(skill_id=c.skill_id, weight=c.weight, position=position)
                for position, c in enumerate(attempt.skills)
            ],
        )
        self.session.add(record)
        self.session.flush()
        return attempt

    def list_attempts(
        self,
        user_id: str,
        skill_id: str | None = None,
        since: datetime | None = None,
    ) -> list[Attempt]:
        """Attempts oldest first, optionally only those covering one skill."""
        query = select(AttemptRecord).where(AttemptRecord.user_id == user_id)
        if skill_id is not None:
            query = query.where(AttemptRecord.skills.any(AttemptSkillRecord.skill_id == skill_id))
        if since is not None:
            query = query.where(AttemptRecord.submitted_at >= _db_time(since))
        query = query.order_by(AttemptRecord.submitted_at, AttemptRecord.id)
        return [self._to_attempt(record) for record in self.session.scalars(query)]

    @staticmethod
    def _to_attempt(record: AttemptRecord) -> Attempt:
        return Attempt(
            attempt_id=record.id,
            user_id=record.user_id,
            item_id=record.item_id,
            format=record.format,
            mode=record.mode,
            score_norm=record.score_norm,
            submitted_at=as_utc(record.submitted_at),
            skills=tuple(
                SkillCoverage(skill_id=s.skill_id, weight=s.weight)
                for s in sorted(record.skills, key=lambda s: s.position)
            ),
            error_tags=tuple(record.error_tags or ()),
            difficulty=record.difficulty,
            time_taken_sec=record.time_taken_sec,
        )

    # =========================================================================
    # Verifications
    # =========================================================================

    def add_verification(self, verification: SkillVerification) -> SkillVerification:
        self.session.add(
            SkillVerificationRecord(
                user_id=verification.user_id,
                skill_id=verification.skill_id,
                p_mastery_at_verification=verification.p_mastery_at_verification,
                first_pass_attempt_id=verification.first_pass_attempt_id,
                second_pass_attempt_id=verification.second_pass_attempt_id,
                hours_between_passes=verification.hours_between_passes,
                error_tags_cleared=list(verification.error_tags_cleared),
                verified_at=_db_time(verification.verified_at),
            )
        )
        self.session.flush()
        return verification

    def list_verifications(self, user_id: str, skill_id: str | None = None) -> list[SkillVerification]:
        query = select(SkillVerificationRecord).where(SkillVerificationRecord.user_id == user_id)
        if skill_id is not None:
            query = query.where(SkillVerificationRecord.skill_id == skill_id)
        query = query.order_by(SkillVerificationRecord.verified_at, SkillVerificationRecord.id)
        return [
            SkillVerification(
                user_id=r.user_id,
                skill_id=r.skill_id,
                p_mastery_at_verification=r.p_mastery_at_verification,
                first_pass_attempt_id=r.first_pass_attempt_id,
                second_pass_attempt_id=r.second_pass_attempt_id,
                hours_between_passes=r.hours_between_passes,
                error_tags_cleared=tuple(r.error_tags_cleared or ()),
                verified_at=as_utc(r.verified_at),
            )
            for r in self.session.scalars(query)
        ]

    # =========================================================================
    # Review Cards
    # =========================================================================

    def _card_record(self, user_id: str, card_id: str) -> ReviewCardRecord | None:
        record = self.session.get(ReviewCardRecord, card_id)
        if record is None or record.user_id != user_id:
            return None
        return record

    def get_card(self, user_id: str, card_id: str) -> SpacedRepetitionCard | None:
        record = self._card_record(user_id, card_id)
        return self._to_card(record) if record is not None else None

    def get_card_by_content(
        self, user_id: str, content_type: str, content_id: str
    ) -> SpacedRepetitionCard | None:
        record = self.session.scalars(
            select(ReviewCardRecord).where(
                ReviewCardRecord.user_id == user_id,
                ReviewCardRecord.content_type == str(enum_value(content_type)),
                ReviewCardRecord.content_id == content_id,
            )
        ).one_or_none()
        return self._to_card(record) if record is not None else None

    def save_card(self, card: SpacedRepetitionCard) -> SpacedRepetitionCard:
        record = self.session.get(ReviewCardRecord, card.card_id)
        if record is None:
            record = ReviewCardRecord(id=card.card_id, user_id=card.user_id)
            self.session.add(record)

        record.content_type = str(enum_value(card.content_type))
        record.content_id = card.content_id
        record.title = card.title
        record.unit_id = card.unit_id
        record.easiness_factor = card.easiness_factor
        record.interval = card.interval
        record.repetitions = card.repetitions
        record.next_review_date = card.next_review_date
        record.last_review_date = card.last_review_date
        record.last_quality = card.last_quality
        record.total_reviews = card.total_reviews
        record.correct_reviews = card.correct_reviews
        record.is_active = card.is_active

        try:
            self.session.flush()
        except IntegrityError as e:
            raise PersistenceConflictError((card.user_id, card.card_id)) from e
        return self._to_card(record)

    def list_cards(self, user_id: str, include_inactive: bool = False) -> list[SpacedRepetitionCard]:
        query = select(ReviewCardRecord).where(ReviewCardRecord.user_id == user_id)
        if not include_inactive:
            query = query.where(ReviewCardRecord.is_active.is_(True))
        query = query.order_by(ReviewCardRecord.id)
        return [self._to_card(record) for record in self.session.scalars(query)]

    def list_due_cards(
        self, user_id: str, today: date, limit: int | None = None
    ) -> list[SpacedRepetitionCard]:
        """Active cards due on or before today, most urgent first."""
        records = self.session.scalars(
            select(ReviewCardRecord).where(
                ReviewCardRecord.user_id == user_id,
                ReviewCardRecord.is_active.is_(True),
                or_(
                    ReviewCardRecord.next_review_date.is_(None),
                    ReviewCardRecord.next_review_date <= today,
                ),
            )
        )
        return SM2Scheduler.due_cards([self._to_card(r) for r in records], today, limit)

    def deactivate_card(self, user_id: str, card_id: str) -> SpacedRepetitionCard:
        """Soft-delete a card; the row is kept."""
        record = self._card_record(user_id, card_id)
        if record is None:
            raise UnknownCardError(user_id, card_id)
        record.is_active = False
        self.session.flush()
        return self._to_card(record)

    @staticmethod
    def _to_card(record: ReviewCardRecord) -> SpacedRepetitionCard:
        return SpacedRepetitionCard(
            card_id=record.id,
            user_id=record.user_id,
            content_type=record.content_type,
            content_id=record.content_id,
            title=record.title or "",
            unit_id=record.unit_id,
            easiness_factor=record.easiness_factor,
            interval=record.interval,
            repetitions=record.repetitions,
            next_review_date=record.next_review_date,
            last_review_date=record.last_review_date,
            last_quality=record.last_quality,
            total_reviews=record.total_reviews,
            correct_reviews=record.correct_reviews,
            is_active=record.is_active,
        )
