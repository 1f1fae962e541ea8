"""
normalize.py — Boundary validation for overlay fragments.

Incoming JSON from phones is loosely typed: distance bands and hints come
from several app versions, and distances may be a direct estimate, an RSSI
reading, or missing. This module converts request payloads into the
immutable fragment types, normalising what can be normalised and raising
``ValidationError`` for anything that cannot be stored whole.

Friend distance resolution order:
    1. distanceMeters  (finite, > 0)  → clamped to [0.1, 80]
    2. rssi            (finite)       → ≥-60: 2m, ≥-70: 5m, ≥-80: 10m, else 16m
    3. distance band                  → IMMEDIATE 1m, NEAR 4m, AREA 10m, WEAK 18m
"""

from __future__ import annotations

import math
from typing import Any, Dict, Iterable, List, Optional

from festival_relay.core.errors import ValidationError
from festival_relay.overlay.models import (
    BAND_METERS,
    DirectionHint,
    DistanceBand,
    FriendEntry,
    FriendsFragment,
    HearingFragment,
    RiskLevel,
    SongFragment,
    Trend,
    now_ms,
)

MIN_FRIEND_METERS = 0.1
MAX_FRIEND_METERS = 80.0


def _finite(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def normalize_band(raw: Any) -> DistanceBand:
    """Unrecognised bands collapse to AREA."""
    try:
        return DistanceBand(str(raw or "").strip().upper())
    except ValueError:
        return DistanceBand.AREA


def normalize_hint(raw: Any) -> DirectionHint:
    """Unrecognised hints collapse to unknown."""
    if not isinstance(raw, str):
        return DirectionHint.UNKNOWN
    try:
        return DirectionHint(raw.strip().lower())
    except ValueError:
        return DirectionHint.UNKNOWN


def estimate_meters(
    band: DistanceBand,
    distance_meters: Any = None,
    rssi: Any = None,
) -> float:
    direct = _finite(distance_meters)
    if direct is not None and direct > 0:
        return min(MAX_FRIEND_METERS, max(MIN_FRIEND_METERS, direct))

    signal = _finite(rssi)
    if signal is not None:
        if signal >= -60:
            return 2.0
        if signal >= -70:
            return 5.0
        if signal >= -80:
            return 10.0
        return 16.0

    return BAND_METERS.get(band, 12.0)


def build_hearing(
    *,
    db: float,
    risk_level: str,
    safe_time_left_min: float,
    trend: Optional[str] = None,
    suggestion: Optional[str] = None,
    timestamp: Optional[int] = None,
) -> HearingFragment:
    if not math.isfinite(db):
        raise ValidationError("db must be a finite number", field="db")
    if not math.isfinite(safe_time_left_min) or safe_time_left_min < 0:
        raise ValidationError(
            "safeTimeLeftMin must be a non-negative number", field="safeTimeLeftMin",
        )
    try:
        level = RiskLevel(str(risk_level).strip().lower())
    except ValueError:
        raise ValidationError(
            f"Invalid riskLevel '{risk_level}'. Must be one of: {[r.value for r in RiskLevel]}",
            field="riskLevel",
        )
    try:
        parsed_trend = Trend(trend.strip().lower()) if trend else Trend.STEADY
    except ValueError:
        raise ValidationError(
            f"Invalid trend '{trend}'. Must be one of: {[t.value for t in Trend]}",
            field="trend",
        )

    return HearingFragment(
        db=float(db),
        risk_level=level,
        safe_time_left_min=float(safe_time_left_min),
        trend=parsed_trend,
        suggestion=(suggestion or "").strip() or "Step to a quieter zone",
        timestamp=timestamp if timestamp is not None else now_ms(),
    )


def build_friend(item: Dict[str, Any]) -> Optional[FriendEntry]:
    """
    Normalise one friend entry.

    Returns None for entries without a name or band (the phone sends
    placeholder rows while scanning). Raises ``ValidationError`` when a
    confidence is present but outside [0, 1].
    """
    name = str(item.get("name") or "").strip()
    band_raw = str(item.get("distanceBand") or "").strip()
    if not name or not band_raw:
        return None

    band = normalize_band(band_raw)
    confidence = _finite(item.get("confidence"))
    if item.get("confidence") is not None and confidence is None:
        raise ValidationError(f"confidence for '{name}' must be a number", field="confidence")
    if confidence is not None and not 0.0 <= confidence <= 1.0:
        raise ValidationError(
            f"confidence for '{name}' must be within [0, 1]",
            field="confidence", value=confidence,
        )

    return FriendEntry(
        name=name,
        distance_band=band,
        hint=normalize_hint(item.get("hint")),
        confidence=confidence if confidence is not None else 0.0,
        distance_meters=estimate_meters(band, item.get("distanceMeters"), item.get("rssi")),
        azimuth_deg=_finite(item.get("azimuthDeg")),
        rssi=_finite(item.get("rssi")),
    )


def build_friends(items: Iterable[Dict[str, Any]], timestamp: Optional[int] = None) -> FriendsFragment:
    friends: List[FriendEntry] = []
    for item in items:
        friend = build_friend(item)
        if friend is not None:
            friends.append(friend)
    return FriendsFragment(
        friends=friends,
        timestamp=timestamp if timestamp is not None else now_ms(),
    )


def build_song(
    *,
    title: str,
    artist: str,
    provider: Optional[str] = None,
    confidence: Optional[float] = None,
) -> SongFragment:
    title = (title or "").strip()
    artist = (artist or "").strip()
    if not title or not artist:
        raise ValidationError("title and artist are required", field="title" if not title else "artist")
    if confidence is not None and not 0.0 <= confidence <= 1.0:
        raise ValidationError("confidence must be within [0, 1]", field="confidence")
    return SongFragment(
        title=title,
        artist=artist,
        provider=(provider or "").strip() or "shazamkit",
        confidence=confidence,
    )
