"""
render.py — Fixed-width text layout for the display glasses.

The display shows five short lines:

    SOUND 104dB 🚨
    SAFE 6m TREND RISING
    ACTION Safer side: left
    F1 Sarah 4m
    F2 Jason 10m

Alerts replace the overlay with a pinned text wall. Lines are clamped to
``max_line_chars`` with a trailing ellipsis.
"""

from __future__ import annotations

import math
from typing import List, Optional

from festival_relay.core.config import settings
from festival_relay.overlay.models import (
    FriendEntry,
    OverlayState,
    RiskLevel,
    Trend,
)

_RISK_BADGE = {
    RiskLevel.SAFE: "✅",
    RiskLevel.CAUTION: "⚠️",
    RiskLevel.RISK: "🚨",
}


def clamp(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return f"{text[:max_chars - 1]}…"


def format_meters(distance_meters: Optional[float]) -> str:
    if distance_meters is None or not math.isfinite(distance_meters):
        return "--m"
    if distance_meters < 1:
        return f"{distance_meters:.1f}m"
    return f"{round(distance_meters)}m"


def format_safe_time(minutes: float) -> str:
    if minutes > 60:
        return f"{round(minutes / 60, 1)}h"
    return f"{round(minutes)}m"


class OverlayRenderer:
    """Turns an ``OverlayState`` snapshot into display text."""

    def __init__(self, max_line_chars: Optional[int] = None) -> None:
        self.max_line_chars = max_line_chars or settings.DISPLAY_MAX_LINE_CHARS

    def _clamp(self, text: str) -> str:
        return clamp(text, self.max_line_chars)

    def _friend_line(self, label: str, friend: FriendEntry) -> str:
        return self._clamp(f"{label} {friend.name} {format_meters(friend.distance_meters)}")

    def ready_message(self) -> str:
        return "\n".join([
            "FESTIVAL ASSIST READY",
            "Waiting for phone data...",
            "Send: /overlay/hearing",
            "Send: /overlay/friends",
            "Tip: /test/glasses",
        ])

    def render(self, state: Optional[OverlayState]) -> str:
        if state is None or state.is_empty:
            return self.ready_message()

        hearing = state.hearing
        friends = state.friends.friends if state.friends else []
        lines: List[str] = []

        if hearing:
            badge = _RISK_BADGE.get(hearing.risk_level, "⚪")
            lines.append(self._clamp(f"SOUND {round(hearing.db)}dB {badge}"))
            safe = format_safe_time(max(0.0, hearing.safe_time_left_min))
            lines.append(self._clamp(f"SAFE {safe} TREND {hearing.trend.value.upper()}"))
            if hearing.risk_level == RiskLevel.SAFE and hearing.trend != Trend.RISING:
                lines.append("ACTION Safe to stay here")
            else:
                lines.append(self._clamp(f"ACTION {hearing.suggestion}"))
        else:
            lines.extend(["SOUND --dB ⚪", "SAFE -- TREND --", "ACTION waiting for hearing data"])

        lines.append(self._friend_line("F1", friends[0]) if friends else "F1 none")

        lines.append(self._friend_line("F2", friends[1]) if len(friends) > 1 else "F2 none")

        if state.song:
            lines.append(self._clamp(f"♪ {state.song.title} - {state.song.artist}"))

        return "\n".join(lines)

    def render_alert(self, display_name: str, trigger_word: Optional[str]) -> str:
        return "\n".join([
            "🚨 SAFETY ALERT! 🚨",
            "",
            self._clamp(f"{display_name} needs help!"),
            "",
            self._clamp(f'Triggered: "{trigger_word or "manual"}"'),
            "",
            "Check on your friend!",
        ])

    def render_alert_confirmation(self, trigger_word: Optional[str], other_count: int) -> str:
        if other_count > 0:
            sent = f"Alert sent to {other_count} friend{'s' if other_count > 1 else ''}!"
        else:
            sent = "No friends connected yet"
        return "\n".join([
            "🚨 ALERT SENT! 🚨",
            "",
            self._clamp(f'You triggered: "{trigger_word or "manual"}"'),
            "",
            sent,
            "",
            "Help is coming!",
        ])
