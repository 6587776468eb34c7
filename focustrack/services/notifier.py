"""Celebration notifications (focus session completed, streak milestones).

Delivery belongs to the notification service. Here we either log the event
or POST it to a webhook; callers go through :func:`celebrate_safely` so a
failing notifier never fails the operation that triggered it.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol

import requests

if TYPE_CHECKING:
    from focustrack.config import Settings

logger = logging.getLogger(__name__)

FOCUS_SESSION_COMPLETE = "focus_session_complete"
STREAK_MILESTONE = "streak_milestone"


class Notifier(Protocol):
    def celebrate(self, user_id: str, event_kind: str, payload: dict[str, Any]) -> None: ...


class LoggingNotifier:
    """Writes celebrations to the log only."""

    def celebrate(self, user_id: str, event_kind: str, payload: dict[str, Any]) -> None:
        logger.info("[%s] celebrate %s: %s", user_id, event_kind, payload)


class WebhookNotifier:
    """Posts celebrations as JSON to the notification service."""

    def __init__(self, url: str, timeout: float = 3.0) -> None:
        if not url:
            raise ValueError("A webhook URL is required.")
        self._url = url
        self._timeout = timeout

    def celebrate(self, user_id: str, event_kind: str, payload: dict[str, Any]) -> None:
        resp = requests.post(
            self._url,
            json={"user_id": user_id, "event": event_kind, "payload": payload},
            timeout=self._timeout,
        )
        resp.raise_for_status()


def build_notifier(settings: "Settings") -> Notifier:
    if settings.notifier_webhook_url:
        return WebhookNotifier(settings.notifier_webhook_url, settings.notifier_timeout_seconds)
    return LoggingNotifier()


def celebrate_safely(
    notifier: Notifier,
    user_id: str,
    event_kind: str,
    payload: dict[str, Any],
) -> bool:
    """Fire a celebration; returns False (and logs) instead of raising."""
    try:
        notifier.celebrate(user_id, event_kind, payload)
    except Exception as exc:
        logger.warning("[%s] %s notification failed: %s", user_id, event_kind, exc)
        return False
    return True
