"""
models.py — The safety alert event, shared by the relay and the devices.

One event instance exists per (origin, recipient) pair. The relay creates
them during fan-out; devices decode them from both polling endpoints and
suppress duplicates by ``dedupe_key``:

    dedupe_key = "{target_session_id}|{origin_user_id}|{trigger_word}|{timestamp}"

Two events with the same key are the same logical occurrence for the same
recipient. Events are never mutated after creation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from festival_relay.overlay.models import now_ms

EVENT_TYPE = "safety_alert"


@dataclass(frozen=True)
class SafetyAlertEvent:
    origin_session_id: str
    origin_user_id: str
    target_session_id: str
    trigger_word: Optional[str]
    message: str
    timestamp: int = field(default_factory=now_ms)

    @property
    def dedupe_key(self) -> str:
        return "|".join([
            self.target_session_id,
            self.origin_user_id,
            self.trigger_word or "",
            str(self.timestamp),
        ])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": EVENT_TYPE,
            "sessionId": self.origin_session_id,
            "targetSessionId": self.target_session_id,
            "userId": self.origin_user_id,
            "triggerWord": self.trigger_word,
            "message": self.message,
            "timestamp": self.timestamp,
            "dedupeKey": self.dedupe_key,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SafetyAlertEvent":
        """Decode the wire shape; raises ``KeyError``/``ValueError`` when malformed."""
        return cls(
            origin_session_id=str(data["sessionId"]),
            origin_user_id=str(data.get("userId") or "unknown"),
            target_session_id=str(data["targetSessionId"]),
            trigger_word=data.get("triggerWord") or None,
            message=str(data.get("message") or ""),
            timestamp=int(data["timestamp"]),
        )


def display_name(user_id: Optional[str]) -> str:
    """
    Friendly first name from a user id.

    ``piercebrookins05@example.com`` → ``Piercebrookins``; empty or
    ``unknown`` ids become ``Someone``.
    """
    if not user_id or user_id == "unknown":
        return "Someone"
    local_part = user_id.split("@")[0]
    letters = ""
    for ch in local_part:
        if not ("a" <= ch.lower() <= "z"):
            break
        letters += ch
    name = letters or local_part
    return name[:1].upper() + name[1:].lower()
