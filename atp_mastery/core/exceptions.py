"""
Mastery engine exceptions.

Only conditions the caller must act on are raised. Malformed input, missing
state, unmet gate conditions and infeasible plans degrade to conservative
results instead.
"""

from __future__ import annotations


class MasteryEngineError(Exception):
    """Base class for engine errors."""


class PersistenceConflictError(MasteryEngineError):
    """
    A concurrent write to the same key won the race.

    Retryable: the caller must re-read fresh state and recompute. The engine
    never retries on its own.
    """

    retryable = True

    def __init__(self, key: tuple[str, ...], message: str | None = None):
        self.key = key
        super().__init__(message or f"Concurrent update detected for {'/'.join(key)}")


class UnknownSkillError(MasteryEngineError):
    """A skill id that is not part of the supplied curriculum."""

    def __init__(self, skill_id: str):
        self.skill_id = skill_id
        super().__init__(f"Skill not found: {skill_id}")


class UnknownCardError(MasteryEngineError):
    """A review card that does not exist for this user."""

    def __init__(self, user_id: str, card_id: str):
        self.user_id = user_id
        self.card_id = card_id
        super().__init__(f"Card not found: {card_id} (user {user_id})")
