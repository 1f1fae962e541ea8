"""
Pydantic schemas for the relay HTTP surface.

Phones send camelCase JSON; fields are declared snake_case with camelCase
aliases so handlers read like the rest of the package. Enum-like strings
(risk level, band, hint) are left as plain strings here and normalised in
``festival_relay.overlay.normalize`` so unknown values can be mapped
rather than rejected.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class RelayRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class SessionRequest(RelayRequest):
    session_id: str = Field(..., description="Target display session", examples=["s1"])

    @field_validator("session_id")
    @classmethod
    def _strip_session(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("sessionId is required")
        return v


# ---------------------------------------------------------------------------
# Overlay
# ---------------------------------------------------------------------------

class HearingOverlayRequest(SessionRequest):
    db: float = Field(..., examples=[96.5])
    risk_level: str = Field(..., description="safe / caution / risk", examples=["caution"])
    safe_time_left_min: float = Field(..., examples=[42])
    trend: Optional[str] = Field(None, description="rising / falling / steady")
    suggestion: Optional[str] = Field(None, examples=["Step to a quieter zone"])
    timestamp: Optional[int] = Field(None, description="Epoch ms; defaults to now")


class FriendsOverlayRequest(SessionRequest):
    friends: List[Dict[str, Any]] = Field(
        ...,
        examples=[[{"name": "Sarah", "distanceBand": "NEAR", "hint": "left", "confidence": 0.72}]],
    )
    timestamp: Optional[int] = None


class SongResultRequest(SessionRequest):
    title: str = ""
    artist: str = ""
    provider: Optional[str] = Field(None, examples=["shazamkit"])
    confidence: Optional[float] = None


# ---------------------------------------------------------------------------
# Safety
# ---------------------------------------------------------------------------

class SafetyAlertRequest(SessionRequest):
    type: Optional[str] = None
    message: Optional[str] = Field(None, examples=["I need help"])
    severity: Optional[str] = Field(None, examples=["urgent"])
    source: Optional[str] = Field(None, examples=["manual"])
    keyword: Optional[str] = Field(None, examples=["banana"])


class TranscriptionRequest(SessionRequest):
    text: str = Field(..., examples=["somebody help me"])
    user_id: Optional[str] = None


class GlassesTestRequest(RelayRequest):
    session_id: Optional[str] = None


class SafetyAlertTestRequest(SessionRequest):
    keyword: Optional[str] = Field(None, examples=["banana"])
