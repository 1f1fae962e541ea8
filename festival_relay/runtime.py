"""
Process-wide relay state — one registry, store, queue and broadcaster.

All state is in memory and lost on restart. Routers import these
singletons directly; tests call ``reset_runtime()`` between cases.
"""

from __future__ import annotations

import logging
from typing import Optional

from festival_relay.core.config import settings
from festival_relay.overlay.models import OverlayState
from festival_relay.overlay.render import OverlayRenderer
from festival_relay.overlay.state_store import OverlayStateStore
from festival_relay.safety.alert_queue import SafetyAlertQueue
from festival_relay.safety.broadcaster import SafetyAlertBroadcaster
from festival_relay.safety.sweeper import AlertQueueSweeper
from festival_relay.safety.triggers import KeywordTriggerDetector
from festival_relay.sessions.registry import SessionRegistry

logger = logging.getLogger(__name__)

registry = SessionRegistry()
overlay_store = OverlayStateStore()
alert_queue = SafetyAlertQueue()
renderer = OverlayRenderer(settings.DISPLAY_MAX_LINE_CHARS)
detector = KeywordTriggerDetector(settings.SAFETY_TRIGGER_WORDS)
broadcaster = SafetyAlertBroadcaster(registry, alert_queue, renderer, detector)
sweeper = AlertQueueSweeper(alert_queue)

# Disconnect drops overlay state; the alert queue is left for polling phones
registry.on_unregister(overlay_store.discard)


async def push_overlay(session_id: str, state: Optional[OverlayState], reason: str = "") -> bool:
    """
    Render ``state`` to the session's display if one is connected.

    Returns False when no display is registered or the push failed (the
    session is evicted in that case).
    """
    transport = registry.get(session_id)
    if transport is None:
        logger.debug("Overlay for inactive session %s (%s)", session_id, reason)
        return False
    text = renderer.render(state)
    try:
        await transport.push_render(text)
    except Exception as exc:
        logger.warning(
            "Overlay push to %s failed: %s", session_id, exc,
            extra={"session_id": session_id},
        )
        registry.evict(session_id, transport, reason=str(exc))
        return False
    logger.debug("Overlay rendered to %s (%s)", session_id, reason)
    return True


def reset_runtime() -> None:
    registry.clear()
    overlay_store.clear()
    alert_queue.clear()
