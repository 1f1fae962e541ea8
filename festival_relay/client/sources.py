"""
Inputs the sync agent reads on every tick.

The agent does not estimate exposure or proximity itself. An
``OverlaySource`` reports the latest hearing reading and nearby friends;
a ``TriggerSource`` reports a safety keyword when one was spotted since
the last scan.
"""

from __future__ import annotations

import json
import logging
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)


@dataclass
class HearingReading:
    db: float
    risk_level: str
    safe_time_left_min: float
    trend: str = "steady"
    suggestion: str = "Step to a quieter zone"

    def to_payload(self) -> Dict[str, Any]:
        return {
            "db": self.db,
            "riskLevel": self.risk_level,
            "safeTimeLeftMin": int(max(0.0, self.safe_time_left_min)),
            "trend": self.trend,
            "suggestion": self.suggestion,
        }


@dataclass
class FriendReading:
    name: str
    distance_band: str
    hint: str = "unknown"
    confidence: float = 0.0
    distance_meters: Optional[float] = None
    rssi: Optional[float] = None

    def to_payload(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "name": self.name,
            "distanceBand": self.distance_band,
            "hint": self.hint,
            "confidence": self.confidence,
        }
        if self.distance_meters is not None:
            d["distanceMeters"] = self.distance_meters
        if self.rssi is not None:
            d["rssi"] = self.rssi
        return d


class OverlaySource(Protocol):
    def current_hearing(self) -> Optional[HearingReading]:
        ...

    def current_friends(self) -> List[FriendReading]:
        ...


class TriggerSource(Protocol):
    def poll_trigger(self) -> Optional[str]:
        ...


class StaticOverlaySource:
    """Holds whatever was last set; apps update it from their sensors."""

    def __init__(
        self,
        hearing: Optional[HearingReading] = None,
        friends: Optional[List[FriendReading]] = None,
    ) -> None:
        self.hearing = hearing
        self.friends = list(friends or [])

    def current_hearing(self) -> Optional[HearingReading]:
        return self.hearing

    def current_friends(self) -> List[FriendReading]:
        return list(self.friends)


class JsonFileOverlaySource:
    """
    Re-reads a JSON file on every tick:

        {"hearing": {"db": 96, "riskLevel": "caution", "safeTimeLeftMin": 40},
         "friends": [{"name": "Sarah", "distanceBand": "NEAR", "hint": "left"}]}
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def _load(self) -> Dict[str, Any]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.debug("Overlay file %s unreadable: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def current_hearing(self) -> Optional[HearingReading]:
        raw = self._load().get("hearing")
        if not isinstance(raw, dict):
            return None
        try:
            return HearingReading(
                db=float(raw["db"]),
                risk_level=str(raw["riskLevel"]),
                safe_time_left_min=float(raw["safeTimeLeftMin"]),
                trend=str(raw.get("trend") or "steady"),
                suggestion=str(raw.get("suggestion") or "Step to a quieter zone"),
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Invalid hearing block in %s: %s", self.path, e)
            return None

    def current_friends(self) -> List[FriendReading]:
        friends: List[FriendReading] = []
        for raw in self._load().get("friends") or []:
            if not isinstance(raw, dict) or not raw.get("name"):
                continue
            friends.append(FriendReading(
                name=str(raw["name"]),
                distance_band=str(raw.get("distanceBand") or "AREA"),
                hint=str(raw.get("hint") or "unknown"),
                confidence=float(raw.get("confidence") or 0.0),
                distance_meters=raw.get("distanceMeters"),
                rssi=raw.get("rssi"),
            ))
        return friends


class QueuedTriggerSource:
    """Keywords pushed by another component, consumed one per scan."""

    def __init__(self) -> None:
        self._pending: Deque[str] = deque()

    def fire(self, keyword: str) -> None:
        self._pending.append(keyword)

    def poll_trigger(self) -> Optional[str]:
        return self._pending.popleft() if self._pending else None
