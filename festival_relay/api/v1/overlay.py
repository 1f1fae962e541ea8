"""
FastAPI routes: overlay fragments pushed by phones.

    POST /overlay/hearing   — noise exposure reading
    POST /overlay/friends   — nearby friends list
    POST /song/result       — song identified on the phone

Each request replaces exactly one fragment of the session's overlay state
and re-renders the display if it is connected. A payload that fails
validation is rejected whole with 400; nothing is stored.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter

from festival_relay import runtime
from festival_relay.api.schemas import (
    FriendsOverlayRequest,
    HearingOverlayRequest,
    SongResultRequest,
)
from festival_relay.core.logging_config import get_logger
from festival_relay.overlay.normalize import build_friends, build_hearing, build_song

logger = get_logger(__name__)

router = APIRouter(tags=["overlay"])


@router.post("/overlay/hearing")
async def post_hearing(req: HearingOverlayRequest) -> Dict[str, Any]:
    fragment = build_hearing(
        db=req.db,
        risk_level=req.risk_level,
        safe_time_left_min=req.safe_time_left_min,
        trend=req.trend,
        suggestion=req.suggestion,
        timestamp=req.timestamp,
    )
    state = runtime.overlay_store.apply_fragment(req.session_id, fragment)
    await runtime.push_overlay(req.session_id, state, "hearing_overlay")
    return {"ok": True}


@router.post("/overlay/friends")
async def post_friends(req: FriendsOverlayRequest) -> Dict[str, Any]:
    fragment = build_friends(req.friends, timestamp=req.timestamp)
    state = runtime.overlay_store.apply_fragment(req.session_id, fragment)
    await runtime.push_overlay(req.session_id, state, "friends_overlay")
    return {"ok": True}


@router.post("/song/result")
async def post_song_result(req: SongResultRequest) -> Dict[str, Any]:
    fragment = build_song(
        title=req.title,
        artist=req.artist,
        provider=req.provider,
        confidence=req.confidence,
    )
    logger.info(
        "Song result for %s: %s - %s (%s)",
        req.session_id, fragment.title, fragment.artist, fragment.provider,
        extra={"session_id": req.session_id},
    )
    state = runtime.overlay_store.apply_fragment(req.session_id, fragment)
    await runtime.push_overlay(req.session_id, state, "song_result")
    return {
        "ok": True,
        "sessionId": req.session_id,
        "song": fragment.to_dict(),
    }
