"""
External service integrations.
"""

from atp_mastery.integrations.notifier import (
    CARDS_DUE,
    PLAN_READY,
    SKILL_VERIFIED,
    NotificationEvent,
    Notifier,
    NullNotifier,
    WebhookNotifier,
    build_notifier,
)

__all__ = [
    "CARDS_DUE",
    "PLAN_READY",
    "SKILL_VERIFIED",
    "NotificationEvent",
    "Notifier",
    "NullNotifier",
    "WebhookNotifier",
    "build_notifier",
]
