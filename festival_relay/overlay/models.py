"""
models.py — Overlay state shared between the relay and the display renderer.

Defines:
    • RiskLevel / Trend         — hearing fragment enums
    • DistanceBand / DirectionHint — friend proximity enums
    • HearingFragment            — ambient noise exposure reading
    • FriendsFragment            — ordered list of nearby peers
    • SongFragment               — currently identified song
    • OverlayState               — the merged per-session state

═══════════════════════════════════════════════════════════════════════════
MERGE SEMANTICS
═══════════════════════════════════════════════════════════════════════════

A fragment update replaces exactly one slot of the state:

    Update            hearing     friends     song
    ──────────────    ────────    ────────    ────────
    HearingFragment   replaced    kept        kept
    FriendsFragment   kept        replaced    kept
    SongFragment      kept        kept        replaced

Fragments are immutable; the state object holds references to them and is
copied on every merge so a snapshot handed to a renderer never changes
underneath it.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Union


def now_ms() -> int:
    return int(time.time() * 1000)


# ═══════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════

class RiskLevel(str, Enum):
    SAFE    = "safe"
    CAUTION = "caution"
    RISK    = "risk"


class Trend(str, Enum):
    RISING  = "rising"
    FALLING = "falling"
    STEADY  = "steady"


class DistanceBand(str, Enum):
    IMMEDIATE = "IMMEDIATE"
    NEAR      = "NEAR"
    AREA      = "AREA"
    WEAK      = "WEAK"


class DirectionHint(str, Enum):
    LEFT    = "left"
    RIGHT   = "right"
    AHEAD   = "ahead"
    BEHIND  = "behind"
    UNKNOWN = "unknown"


# Fallback distances when neither a measurement nor RSSI is available
BAND_METERS: Dict[DistanceBand, float] = {
    DistanceBand.IMMEDIATE: 1.0,
    DistanceBand.NEAR: 4.0,
    DistanceBand.AREA: 10.0,
    DistanceBand.WEAK: 18.0,
}


# ═══════════════════════════════════════════════════════════════════════════
# Fragments
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class HearingFragment:
    """Noise exposure reading produced by the acoustic estimator."""
    db: float
    risk_level: RiskLevel
    safe_time_left_min: float
    trend: Trend = Trend.STEADY
    suggestion: str = "Step to a quieter zone"
    timestamp: int = field(default_factory=now_ms)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "hearing_overlay",
            "db": self.db,
            "riskLevel": self.risk_level.value,
            "safeTimeLeftMin": self.safe_time_left_min,
            "trend": self.trend.value,
            "suggestion": self.suggestion,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class FriendEntry:
    """One nearby peer as estimated from wireless signal strength."""
    name: str
    distance_band: DistanceBand
    hint: DirectionHint
    confidence: float
    distance_meters: float
    azimuth_deg: Optional[float] = None
    rssi: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "name": self.name,
            "distanceBand": self.distance_band.value,
            "hint": self.hint.value,
            "confidence": self.confidence,
            "distanceMeters": self.distance_meters,
        }
        if self.azimuth_deg is not None:
            d["azimuthDeg"] = self.azimuth_deg
        if self.rssi is not None:
            d["rssi"] = self.rssi
        return d


@dataclass(frozen=True)
class FriendsFragment:
    friends: List[FriendEntry] = field(default_factory=list)
    timestamp: int = field(default_factory=now_ms)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "friends_overlay",
            "friends": [f.to_dict() for f in self.friends],
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class SongFragment:
    title: str
    artist: str
    provider: str = "shazamkit"
    confidence: Optional[float] = None
    updated_at: int = field(default_factory=now_ms)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "title": self.title,
            "artist": self.artist,
            "provider": self.provider,
            "updatedAt": self.updated_at,
        }
        if self.confidence is not None:
            d["confidence"] = self.confidence
        return d


Fragment = Union[HearingFragment, FriendsFragment, SongFragment]


# ═══════════════════════════════════════════════════════════════════════════
# Merged State
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class OverlayState:
    """Full display state of one session; every fragment is optional."""
    hearing: Optional[HearingFragment] = None
    friends: Optional[FriendsFragment] = None
    song: Optional[SongFragment] = None

    @property
    def is_empty(self) -> bool:
        return self.hearing is None and self.friends is None and self.song is None

    @property
    def friend_count(self) -> int:
        return len(self.friends.friends) if self.friends else 0

    @property
    def updated_at(self) -> Optional[int]:
        """Latest hearing/friends timestamp, or None when neither is set."""
        latest = max(
            self.hearing.timestamp if self.hearing else 0,
            self.friends.timestamp if self.friends else 0,
        )
        return latest or None

    def merge(self, fragment: Fragment) -> "OverlayState":
        if isinstance(fragment, HearingFragment):
            return replace(self, hearing=fragment)
        if isinstance(fragment, FriendsFragment):
            return replace(self, friends=fragment)
        if isinstance(fragment, SongFragment):
            return replace(self, song=fragment)
        raise TypeError(f"Unsupported overlay fragment: {type(fragment).__name__}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hearing": self.hearing.to_dict() if self.hearing else None,
            "friends": self.friends.to_dict() if self.friends else None,
            "song": self.song.to_dict() if self.song else None,
        }
