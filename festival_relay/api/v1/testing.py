"""
FastAPI routes: manual test hooks for glasses bring-up.

    POST /test/glasses        — paint a canned overlay on a session
    POST /test/safety-alert   — originate an alert without speech
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter

from festival_relay import runtime
from festival_relay.api.schemas import GlassesTestRequest, SafetyAlertTestRequest
from festival_relay.core.errors import ValidationError
from festival_relay.core.logging_config import get_logger
from festival_relay.overlay.normalize import build_friends, build_hearing
from festival_relay.safety.models import display_name

logger = get_logger(__name__)

router = APIRouter(prefix="/test", tags=["testing"])

_SAMPLE_FRIENDS = [
    {"name": "Sarah", "distanceBand": "NEAR", "hint": "left", "confidence": 0.72},
    {"name": "Jason", "distanceBand": "AREA", "hint": "behind", "confidence": 0.51},
]


@router.post("/glasses")
async def paint_test_overlay(req: GlassesTestRequest) -> Dict[str, Any]:
    session_id = (req.session_id or "").strip()
    if not session_id:
        live = runtime.registry.sessions()
        if not live:
            raise ValidationError("No active session found. Connect glasses first.", field="sessionId")
        session_id = live[0].session_id

    hearing = build_hearing(
        db=104,
        risk_level="risk",
        safe_time_left_min=6,
        trend="rising",
        suggestion="Safer side: left",
    )
    runtime.overlay_store.apply_fragment(session_id, hearing)
    state = runtime.overlay_store.apply_fragment(session_id, build_friends(_SAMPLE_FRIENDS))
    delivered = await runtime.push_overlay(session_id, state, "test_glasses")

    return {
        "ok": True,
        "sessionId": session_id,
        "delivered": delivered,
        "message": "Test overlay sent to glasses",
        "preview": runtime.renderer.render(state),
    }


@router.post("/safety-alert")
async def trigger_test_alert(req: SafetyAlertTestRequest) -> Dict[str, Any]:
    keyword = (req.keyword or "").strip() or "manual"
    user_id = runtime.registry.user_id(req.session_id)
    message = f"🚨 {display_name(user_id)} needs help!"
    logger.info("Manual safety alert for %s (keyword=%s)", req.session_id, keyword)
    count = await runtime.broadcaster.originate(req.session_id, user_id, keyword, message)
    return {
        "ok": True,
        "hasAlert": True,
        "broadcastCount": count,
        "message": f"Test alert triggered for keyword: {keyword}",
    }
