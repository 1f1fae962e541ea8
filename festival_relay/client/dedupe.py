"""
Bounded memory of delivered safety alert keys.

Keys move ``unseen → delivered`` exactly once. Only the most recent
``capacity`` keys are remembered; the oldest is forgotten on overflow.
A forgotten key is long outside the server's 300 s window by the time it
falls off, so it cannot be re-delivered in practice.
"""

from __future__ import annotations

from collections import OrderedDict


class SeenKeys:
    def __init__(self, capacity: int = 300) -> None:
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._keys: "OrderedDict[str, None]" = OrderedDict()

    def add(self, key: str) -> bool:
        """Mark ``key`` delivered; returns False if it already was."""
        if key in self._keys:
            return False
        self._keys[key] = None
        while len(self._keys) > self.capacity:
            self._keys.popitem(last=False)
        return True

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def clear(self) -> None:
        self._keys.clear()
