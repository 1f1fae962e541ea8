"""
Local notification sinks for the sync agent.

The agent only needs ``notify(body)``. ``LoggingNotifier`` is used by the
CLI; apps plug in their own (system notification, haptics, speech).
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Deque, List, Optional, Protocol

from festival_relay.safety.models import SafetyAlertEvent

logger = logging.getLogger(__name__)


class LocalNotifier(Protocol):
    def notify(self, body: str) -> None:
        ...


class LoggingNotifier:
    """Writes notifications to the log and keeps the most recent ones."""

    def __init__(self, history: int = 50) -> None:
        self.history: Deque[str] = deque(maxlen=history)

    def notify(self, body: str) -> None:
        self.history.append(body)
        logger.warning("NOTIFY %s", body)

    @property
    def last(self) -> Optional[str]:
        return self.history[-1] if self.history else None

    def all(self) -> List[str]:
        return list(self.history)


def incoming_alert_body(event: SafetyAlertEvent) -> str:
    message = (event.message or "").strip()
    if message:
        return message
    user = event.origin_user_id if event.origin_user_id not in ("", "unknown") else "A friend"
    body = f"🚨 {user} needs help"
    if event.trigger_word:
        body += f" (triggered by: {event.trigger_word})"
    return body


def local_trigger_body(keyword: Optional[str]) -> str:
    trigger = (keyword or "").strip()
    body = "🚨 Safety trigger detected on this device"
    return f"{body} ({trigger})" if trigger else body
