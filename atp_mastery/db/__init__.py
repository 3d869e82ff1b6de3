# Persistence boundary
from atp_mastery.db.models import (
    AttemptRecord,
    AttemptSkillRecord,
    Base,
    MasteryStateRecord,
    ReviewCardRecord,
    SkillVerificationRecord,
)
from atp_mastery.db.repository import MasteryRepository

__all__ = [
    "AttemptRecord",
    "AttemptSkillRecord",
    "Base",
    "MasteryRepository",
    "MasteryStateRecord",
    "ReviewCardRecord",
    "SkillVerificationRecord",
]
