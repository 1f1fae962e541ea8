"""
Cooldown gate for outgoing safety alerts.

    ready ──(successful fan-out)──► cooling down ──(cooldown elapsed)──► ready

A failed fan-out never starts the cooldown. By default the gate is global
per device; with ``per_trigger`` each trigger word cools down on its own.
"""

from __future__ import annotations

import time
from typing import Callable, Dict, Optional

_GLOBAL = "*"


class CooldownGate:
    def __init__(
        self,
        cooldown_seconds: float = 30.0,
        *,
        per_trigger: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.cooldown_seconds = cooldown_seconds
        self.per_trigger = per_trigger
        self._clock = clock
        self._last_sent: Dict[str, float] = {}

    def _key(self, trigger: Optional[str]) -> str:
        if not self.per_trigger:
            return _GLOBAL
        return (trigger or "").strip().lower() or "manual"

    def remaining(self, trigger: Optional[str] = None) -> float:
        last = self._last_sent.get(self._key(trigger))
        if last is None:
            return 0.0
        return max(0.0, self.cooldown_seconds - (self._clock() - last))

    def ready(self, trigger: Optional[str] = None) -> bool:
        return self.remaining(trigger) <= 0.0

    def mark(self, trigger: Optional[str] = None) -> None:
        self._last_sent[self._key(trigger)] = self._clock()

    def reset(self) -> None:
        self._last_sent.clear()
