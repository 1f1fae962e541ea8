"""
FastAPI routes: friend safety alerts.

    POST /friends/safety-alert                   — originate an alert
    GET  /friends/has-safety-alert?sessionId=    — latest alert, 30 s window
    GET  /friends/safety-alerts?sessionId=       — all alerts, 300 s window
    POST /transcription                          — trigger-word scan of speech

Both GET routes read the same per-session queue and prune it as a side
effect (see ``SafetyAlertQueue.retrieve``).
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Query

from festival_relay import runtime
from festival_relay.api.schemas import SafetyAlertRequest, TranscriptionRequest
from festival_relay.core.config import settings
from festival_relay.core.errors import ValidationError
from festival_relay.core.logging_config import get_logger
from festival_relay.overlay.models import now_ms
from festival_relay.safety.broadcaster import DEFAULT_ALERT_MESSAGE

logger = get_logger(__name__)

router = APIRouter(tags=["safety"])


def _require_session(session_id: Optional[str]) -> str:
    session_id = (session_id or "").strip()
    if not session_id:
        raise ValidationError("sessionId query parameter is required", field="sessionId")
    return session_id


@router.post("/friends/safety-alert")
async def post_safety_alert(req: SafetyAlertRequest) -> Dict[str, Any]:
    message = (req.message or "").strip() or DEFAULT_ALERT_MESSAGE
    keyword = (req.keyword or "").strip() or "manual"
    logger.info(
        "Friend safety alert from %s (severity=%s source=%s keyword=%s)",
        req.session_id,
        (req.severity or "").strip() or "urgent",
        (req.source or "").strip() or "manual",
        keyword,
        extra={"session_id": req.session_id, "trigger_word": keyword},
    )
    count = await runtime.broadcaster.originate(req.session_id, None, keyword, message)
    return {
        "ok": True,
        "broadcastCount": count,
        "message": f"Alert sent to {count} friends",
    }


@router.get("/friends/has-safety-alert")
async def has_safety_alert(session_id: Optional[str] = Query(None, alias="sessionId")) -> Dict[str, Any]:
    session_id = _require_session(session_id)
    latest = runtime.alert_queue.latest(session_id, settings.ALERT_SHORT_WINDOW_MS)
    return {
        "hasAlert": latest is not None,
        "alert": latest.to_dict() if latest else None,
        "timestamp": now_ms(),
    }


@router.get("/friends/safety-alerts")
async def list_safety_alerts(session_id: Optional[str] = Query(None, alias="sessionId")) -> Dict[str, Any]:
    session_id = _require_session(session_id)
    events = runtime.alert_queue.retrieve(session_id, settings.ALERT_LONG_WINDOW_MS)
    return {
        "alerts": [e.to_dict() for e in events],
        "count": len(events),
    }


@router.post("/transcription")
async def post_transcription(req: TranscriptionRequest) -> Dict[str, Any]:
    match, count = await runtime.broadcaster.originate_from_text(
        req.session_id, req.text, req.user_id,
    )
    return {
        "ok": True,
        "triggered": match is not None,
        "triggerWord": match.trigger_word if match else None,
        "broadcastCount": count,
    }
