"""
Mastery Engine Persistence Models.

SQLAlchemy models for the engine's persisted state:
- Mastery state per (user, skill), optimistic version column
- Immutable attempts and their skill coverage rows
- Skill verification audit records
- Spaced repetition cards per (user, content)

Types are portable (SQLite for tests/local, PostgreSQL in production).
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class MasteryStateRecord(Base):
    """
    Current mastery state per user per skill.

    p_mastery and stability are written only from mastery update results.
    version guards read-modify-write against concurrent attempts.
    """

    __tablename__ = "mastery_states"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    skill_id: Mapped[str] = mapped_column(String(128), nullable=False)

    p_mastery: Mapped[float] = mapped_column(Float, default=0.0)
    stability: Mapped[float] = mapped_column(Float, default=1.0)
    attempt_count: Mapped[int] = mapped_column(Integer, default=0)
    correct_count: Mapped[int] = mapped_column(Integer, default=0)
    last_practiced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Skill-level review schedule
    next_review_date: Mapped[date | None] = mapped_column(Date)
    review_interval_days: Mapped[int] = mapped_column(Integer, default=1)
    easiness_factor: Mapped[float] = mapped_column(Float, default=2.5)

    # Gate
    gate: Mapped[str] = mapped_column(String(16), default="STUDYING")
    gate_passed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    version: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=func.now(), onupdate=func.now()
    )

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        UniqueConstraint("user_id", "skill_id", name="uq_mastery_user_skill"),
        Index("idx_mastery_user_gate", "user_id", "gate"),
    )

    def __repr__(self) -> str:
        return f"<MasteryStateRecord user={self.user_id} skill={self.skill_id} p={self.p_mastery:.3f} v={self.version}>"


class AttemptRecord(Base):
    """One graded submission. Never updated after insert."""

    __tablename__ = "attempts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    item_id: Mapped[str] = mapped_column(String(128), nullable=False)
    format: Mapped[str] = mapped_column(String(16), nullable=False)
    mode: Mapped[str] = mapped_column(String(16), nullable=False)
    score_norm: Mapped[float] = mapped_column(Float, nullable=False)
    difficulty: Mapped[int] = mapped_column(Integer, default=3)
    error_tags: Mapped[list[str]] = mapped_column(JSON, default=list)
    time_taken_sec: Mapped[int | None] = mapped_column(Integer)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    skills: Mapped[list[AttemptSkillRecord]] = relationship(
        back_populates="attempt", cascade="all, delete-orphan", lazy="selectin"
    )

    __table_args__ = (Index("idx_attempts_user_time", "user_id", "submitted_at"),)


class AttemptSkillRecord(Base):
    """Coverage weight of one attempt towards one skill."""

    __tablename__ = "attempt_skills"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    attempt_id: Mapped[str] = mapped_column(
        ForeignKey("attempts.id", ondelete="CASCADE"), nullable=False
    )
    skill_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    weight: Mapped[float] = mapped_column(Float, default=1.0)
    position: Mapped[int] = mapped_column(Integer, default=0)

    attempt: Mapped[AttemptRecord] = relationship(back_populates="skills")

    __table_args__ = (UniqueConstraint("attempt_id", "skill_id", name="uq_attempt_skill"),)


class SkillVerificationRecord(Base):
    """Audit record written once when a skill becomes EXAM_READY."""

    __tablename__ = "skill_verifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    skill_id: Mapped[str] = mapped_column(String(128), nullable=False)
    p_mastery_at_verification: Mapped[float] = mapped_column(Float, nullable=False)
    first_pass_attempt_id: Mapped[str] = mapped_column(String(64), nullable=False)
    second_pass_attempt_id: Mapped[str] = mapped_column(String(64), nullable=False)
    hours_between_passes: Mapped[float] = mapped_column(Float, nullable=False)
    error_tags_cleared: Mapped[list[str]] = mapped_column(JSON, default=list)
    verified_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("idx_verifications_user_skill", "user_id", "skill_id"),)


class ReviewCardRecord(Base):
    """SM-2 state per user per reviewable content item. Soft-deleted only."""

    __tablename__ = "review_cards"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    content_type: Mapped[str] = mapped_column(String(32), nullable=False)
    content_id: Mapped[str] = mapped_column(String(128), nullable=False)
    title: Mapped[str] = mapped_column(String(255), default="")
    unit_id: Mapped[str | None] = mapped_column(String(64))

    easiness_factor: Mapped[float] = mapped_column(Float, default=2.5)
    interval: Mapped[int] = mapped_column(Integer, default=1)
    repetitions: Mapped[int] = mapped_column(Integer, default=0)
    next_review_date: Mapped[date | None] = mapped_column(Date)
    last_review_date: Mapped[date | None] = mapped_column(Date)
    last_quality: Mapped[int | None] = mapped_column(Integer)
    total_reviews: Mapped[int] = mapped_column(Integer, default=0)
    correct_reviews: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "content_type", "content_id", name="uq_card_user_content"),
        Index("idx_cards_due", "user_id", "is_active", "next_review_date"),
    )
