"""
FastAPI routes: display sessions.

    GET /session/list                   — live sessions with overlay summary
    WS  /display/{sessionId}?userId=    — display transport

The display socket is the session's lifetime: the handshake registers it,
closing the socket unregisters it. While connected the display receives
``{"type": "render", "text": ...}`` frames and may send
``{"type": "transcription", "text": ...}`` frames, which are scanned for
safety trigger words.
"""

from __future__ import annotations

import json
from typing import Any, Dict

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from festival_relay import runtime
from festival_relay.core.logging_config import get_logger
from festival_relay.sessions.transport import WebSocketTransport

logger = get_logger(__name__)

router = APIRouter(tags=["sessions"])


@router.get("/session/list")
async def list_sessions() -> Dict[str, Any]:
    sessions = [
        runtime.overlay_store.summary(s.session_id)
        for s in runtime.registry.sessions()
    ]
    return {"count": len(sessions), "sessions": sessions}


@router.websocket("/display/{session_id}")
async def display_socket(
    websocket: WebSocket,
    session_id: str,
    user_id: str = Query("unknown", alias="userId"),
):
    await websocket.accept()
    transport = WebSocketTransport(session_id, websocket)
    runtime.registry.register(session_id, user_id, transport)
    state = runtime.overlay_store.ensure(session_id)
    await runtime.push_overlay(session_id, state, "session_ready")

    try:
        while True:
            raw = await websocket.receive_text()
            await _handle_display_message(session_id, user_id, raw)
    except WebSocketDisconnect:
        pass
    finally:
        runtime.registry.unregister(session_id, transport)


async def _handle_display_message(session_id: str, user_id: str, raw: str) -> None:
    try:
        message = json.loads(raw)
    except ValueError:
        logger.debug("Ignoring non-JSON frame from %s", session_id)
        return
    if not isinstance(message, dict):
        return

    kind = message.get("type")
    if kind == "transcription":
        text = str(message.get("text") or "")
        if text.strip():
            await runtime.broadcaster.originate_from_text(session_id, text, user_id)
    elif kind != "ping":
        logger.debug("Unknown display frame type %r from %s", kind, session_id)
