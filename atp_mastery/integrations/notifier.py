"""
Notification delivery for engine events.

The engine only announces that something happened ("cards due", "plan
ready"); nothing it does depends on the outcome of delivery.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

import httpx
from loguru import logger

from atp_mastery.core.mastery import utc_now

CARDS_DUE = "cards_due"
PLAN_READY = "plan_ready"
SKILL_VERIFIED = "skill_verified"


@dataclass
class NotificationEvent:
    """Payload for one fire-and-forget event."""

    event: str
    user_id: str
    data: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        """Convert event to webhook payload format."""
        return {
            "event": self.event,
            "user_id": self.user_id,
            "data": self.data,
            "occurred_at": self.occurred_at.isoformat(),
        }


class Notifier(Protocol):
    def notify(self, event: NotificationEvent) -> None: ...

    def close(self) -> None: ...


class NullNotifier:
    """Logs events instead of delivering them."""

    def __init__(self) -> None:
        self.sent: list[NotificationEvent] = []

    def notify(self, event: NotificationEvent) -> None:
        self.sent.append(event)
        logger.debug(f"Notification {event.event} for {event.user_id}: {event.data}")

    def close(self) -> None:
        pass


class WebhookNotifier:
    """POSTs events as JSON to a webhook URL."""

    def __init__(
        self,
        url: str,
        timeout_seconds: float = 5.0,
        client: httpx.Client | None = None,
    ):
        """
        Initialize webhook notifier.

        Args:
            url: Webhook endpoint
            timeout_seconds: Request timeout
            client: Pre-built httpx client (tests pass one with a mock transport)
        """
        self.url = url
        self.client = client or httpx.Client(
            timeout=httpx.Timeout(timeout_seconds),
            follow_redirects=True,
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self) -> "WebhookNotifier":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def notify(self, event: NotificationEvent) -> None:
        try:
            response = self.client.post(self.url, json=event.to_dict())
            response.raise_for_status()
            logger.debug(f"Delivered {event.event} for {event.user_id}")
        except httpx.HTTPError as e:
            logger.warning(f"Notification {event.event} for {event.user_id} not delivered: {e}")


def build_notifier(settings) -> Notifier:
    """WebhookNotifier when a webhook is configured, NullNotifier otherwise."""
    if settings.has_notifications_configured():
        return WebhookNotifier(
            settings.notification_webhook_url,
            timeout_seconds=settings.notification_timeout_seconds,
        )
    return NullNotifier()
