"""
Core Mastery Helpers.

Shared vocabulary for every engine component:
- MasteryLevel: Enum for categorizing pMastery for display
- clamp / clamp01: bounded arithmetic used by the update rule
- calculate_hours_between / calculate_days_since: timezone-tolerant elapsed time
"""

from __future__ import annotations

from datetime import UTC, date, datetime
from enum import Enum


class MasteryLevel(str, Enum):
    """
    Mastery level categorization.

    Display buckets only; certification is decided by the gate, never by level.
    """

    NOT_STARTED = "not_started"  # 0%
    NOVICE = "novice"  # 1-39%
    DEVELOPING = "developing"  # 40-69%
    PROFICIENT = "proficient"  # 70-84%
    MASTERED = "mastered"  # 85-100%

    @classmethod
    def from_score(cls, score: float) -> MasteryLevel:
        """
        Convert a 0-1 pMastery to a level.

        Args:
            score: Mastery score between 0 and 1

        Returns:
            Corresponding MasteryLevel
        """
        if score <= 0:
            return cls.NOT_STARTED
        elif score < 0.4:
            return cls.NOVICE
        elif score < 0.7:
            return cls.DEVELOPING
        elif score < 0.85:
            return cls.PROFICIENT
        else:
            return cls.MASTERED

    @property
    def display_name(self) -> str:
        """Human-readable name."""
        return self.value.replace("_", " ").title()

    @property
    def color(self) -> str:
        """Rich color for CLI display."""
        return {
            MasteryLevel.NOT_STARTED: "dim",
            MasteryLevel.NOVICE: "red",
            MasteryLevel.DEVELOPING: "yellow",
            MasteryLevel.PROFICIENT: "cyan",
            MasteryLevel.MASTERED: "green",
        }[self]


def clamp(value: float, low: float, high: float) -> float:
    """Clamp value into [low, high]."""
    return max(low, min(high, value))


def clamp01(value: float) -> float:
    """Clamp value into [0, 1]."""
    return clamp(value, 0.0, 1.0)


def as_utc(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC so aware and naive values compare."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment


def utc_now() -> datetime:
    return datetime.now(UTC)


def calculate_hours_between(earlier: datetime, later: datetime) -> float:
    """Signed hours from earlier to later."""
    return (as_utc(later) - as_utc(earlier)).total_seconds() / 3600.0


def calculate_days_since(
    last_practiced: datetime | None,
    now: datetime | None = None,
    never_days: float = 30.0,
) -> float:
    """
    Calculate days elapsed since a practice event.

    Args:
        last_practiced: Timestamp of last practice (can be naive or aware)
        now: Current time (defaults to UTC now)
        never_days: Value returned when there is no practice on record

    Returns:
        Days elapsed as float, never negative
    """
    if last_practiced is None:
        return never_days

    if now is None:
        now = utc_now()

    return max(0.0, calculate_hours_between(last_practiced, now) / 24.0)


def to_date(moment: date | datetime) -> date:
    """Calendar date of a date or datetime (datetimes are read in UTC)."""
    if isinstance(moment, datetime):
        return as_utc(moment).astimezone(UTC).date()
    return moment
