"""
broadcaster.py — Fan-out of one safety alert to every other live session.

═══════════════════════════════════════════════════════════════════════════
ORIGINATION FLOW
═══════════════════════════════════════════════════════════════════════════

    originate(origin, user, trigger, message)
        │
        ├─ targets = registry.all_ids() − {origin}
        ├─ enqueue one event per target         (same timestamp, own key)
        ├─ push rendered alert to each target   (concurrently, no locks held)
        │      └─ TransportError → log + evict, keep going
        ├─ push confirmation to the originator  (not queued, not counted)
        └─ return number of successful pushes

Queueing happens before any push, so a display that drops mid-broadcast
still finds the event when its phone polls. The return value counts live
pushes only: a target whose display is away but whose phone polls is
reached through the queue and is not counted.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import List, Optional, Tuple

from festival_relay.core.errors import TransportError
from festival_relay.overlay.models import now_ms
from festival_relay.overlay.render import OverlayRenderer
from festival_relay.safety.alert_queue import SafetyAlertQueue
from festival_relay.safety.models import SafetyAlertEvent, display_name
from festival_relay.safety.triggers import KeywordTriggerDetector, TriggerMatch
from festival_relay.sessions.registry import SessionRegistry
from festival_relay.sessions.transport import DisplayTransport

logger = logging.getLogger(__name__)

DEFAULT_ALERT_MESSAGE = "I need help"


class SafetyAlertBroadcaster:
    """Originates safety alerts on behalf of one session."""

    def __init__(
        self,
        registry: SessionRegistry,
        queue: SafetyAlertQueue,
        renderer: Optional[OverlayRenderer] = None,
        detector: Optional[KeywordTriggerDetector] = None,
    ) -> None:
        self.registry = registry
        self.queue = queue
        self.renderer = renderer or OverlayRenderer()
        self.detector = detector or KeywordTriggerDetector()

    async def originate(
        self,
        origin_session_id: str,
        origin_user_id: Optional[str] = None,
        trigger_word: Optional[str] = None,
        message: Optional[str] = None,
        *,
        timestamp: Optional[int] = None,
    ) -> int:
        """
        Queue and push an alert to every other registered session.

        Never raises for delivery problems; returns the number of targets
        whose display accepted the push.
        """
        start = time.perf_counter()
        user_id = origin_user_id or self.registry.user_id(origin_session_id)
        ts = timestamp if timestamp is not None else now_ms()
        text = (message or "").strip() or DEFAULT_ALERT_MESSAGE

        targets = sorted(self.registry.all_ids() - {origin_session_id})
        for target in targets:
            self.queue.enqueue(target, SafetyAlertEvent(
                origin_session_id=origin_session_id,
                origin_user_id=user_id,
                target_session_id=target,
                trigger_word=trigger_word,
                message=text,
                timestamp=ts,
            ))

        alert_text = self.renderer.render_alert(display_name(user_id), trigger_word)
        pushes: List[Tuple[str, DisplayTransport]] = []
        for target in targets:
            transport = self.registry.get(target)
            if transport is not None:
                pushes.append((target, transport))

        results = await asyncio.gather(
            *(self._push(target, transport, alert_text) for target, transport in pushes)
        )
        delivered = sum(1 for ok in results if ok)

        origin_transport = self.registry.get(origin_session_id)
        if origin_transport is not None:
            await self._push(
                origin_session_id,
                origin_transport,
                self.renderer.render_alert_confirmation(trigger_word, len(targets)),
            )

        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "Safety alert from %s (trigger=%s): queued=%d pushed=%d in %.1fms",
            origin_session_id, trigger_word or "manual", len(targets), delivered, duration_ms,
            extra={
                "session_id": origin_session_id,
                "user_id": user_id,
                "trigger_word": trigger_word,
                "broadcast_count": delivered,
                "duration_ms": duration_ms,
            },
        )
        return delivered

    async def originate_from_text(
        self,
        session_id: str,
        text: str,
        user_id: Optional[str] = None,
    ) -> Tuple[Optional[TriggerMatch], int]:
        """Run trigger detection on a transcript and originate on a hit."""
        uid = user_id or self.registry.user_id(session_id)
        match = self.detector.check_for_triggers(text, session_id, uid)
        if match is None:
            return None, 0
        count = await self.originate(session_id, uid, match.trigger_word, match.message)
        return match, count

    async def _push(self, session_id: str, transport: DisplayTransport, text: str) -> bool:
        try:
            await transport.push_render(text)
            return True
        except TransportError as exc:
            logger.warning(
                "Push to %s failed: %s", session_id, exc.message,
                extra={"target_session_id": session_id},
            )
            self.registry.evict(session_id, transport, reason=exc.message)
        except Exception as exc:
            logger.exception("Unexpected push failure for %s", session_id)
            self.registry.evict(session_id, transport, reason=str(exc))
        return False
