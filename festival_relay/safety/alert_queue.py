"""
alert_queue.py — Per-recipient queues of pending safety alerts.

═══════════════════════════════════════════════════════════════════════════
DUAL-WINDOW RETRIEVAL
═══════════════════════════════════════════════════════════════════════════

Both polling endpoints read the SAME queue with different windows:

    Endpoint                    Window     Purpose
    ────────────────────────    ───────    ─────────────────────────────
    has-safety-alert            30 s       "is something happening now"
    safety-alerts               300 s      reconciliation of recent history

``retrieve`` returns events with ``now - timestamp < window`` and, in the
same critical section, replaces the stored queue with exactly those
survivors. Pruning is therefore permanent and retrieval-driven: a 30 s
read drops anything older than 30 s for the 300 s reader too.

Queues are unbounded by count. ``prune_all`` exists for the background
sweeper so sessions that never poll cannot grow without limit.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional, Tuple

from festival_relay.core.locks import KeyedLocks
from festival_relay.overlay.models import now_ms
from festival_relay.safety.models import SafetyAlertEvent

logger = logging.getLogger(__name__)

SHORT_WINDOW_MS = 30_000
LONG_WINDOW_MS = 300_000


class SafetyAlertQueue:
    """Keyed, self-pruning alert queues."""

    def __init__(self) -> None:
        self._queues: Dict[str, List[SafetyAlertEvent]] = {}
        self._locks = KeyedLocks()
        self._index_lock = threading.Lock()

    def enqueue(self, target_session_id: str, event: SafetyAlertEvent) -> None:
        with self._locks.hold(target_session_id):
            with self._index_lock:
                queue = self._queues.setdefault(target_session_id, [])
            queue.append(event)
            depth = len(queue)
        logger.debug(
            "Alert queued for %s (depth=%d)", target_session_id, depth,
            extra={"target_session_id": target_session_id},
        )

    def retrieve(
        self,
        target_session_id: str,
        window_ms: int,
        now: Optional[int] = None,
    ) -> List[SafetyAlertEvent]:
        """Events younger than ``window_ms``; older ones are dropped for good."""
        survivors, _ = self._prune(target_session_id, window_ms, now)
        return survivors

    def _prune(
        self,
        target_session_id: str,
        window_ms: int,
        now: Optional[int],
    ) -> Tuple[List[SafetyAlertEvent], int]:
        """Survivors and the number of events dropped, from one lock hold."""
        current = now if now is not None else now_ms()
        with self._locks.hold(target_session_id):
            queue = self._queues.get(target_session_id)
            if not queue:
                return [], 0
            survivors = [e for e in queue if current - e.timestamp < window_ms]
            if len(survivors) != len(queue):
                with self._index_lock:
                    if survivors:
                        self._queues[target_session_id] = survivors
                    else:
                        del self._queues[target_session_id]
                logger.debug(
                    "Pruned %d expired alerts for %s",
                    len(queue) - len(survivors), target_session_id,
                )
            return list(survivors), len(queue) - len(survivors)

    def latest(
        self,
        target_session_id: str,
        window_ms: int,
        now: Optional[int] = None,
    ) -> Optional[SafetyAlertEvent]:
        events = self.retrieve(target_session_id, window_ms, now)
        return events[-1] if events else None

    def pending_count(self, target_session_id: str) -> int:
        with self._locks.hold(target_session_id):
            return len(self._queues.get(target_session_id, ()))

    def prune_all(self, max_age_ms: int, now: Optional[int] = None) -> int:
        """Apply ``retrieve`` pruning to every queue; returns events removed."""
        current = now if now is not None else now_ms()
        with self._index_lock:
            targets = list(self._queues.keys())
        return sum(self._prune(target, max_age_ms, current)[1] for target in targets)

    def total_pending(self) -> int:
        with self._index_lock:
            return sum(len(q) for q in self._queues.values())

    def clear(self) -> None:
        with self._index_lock:
            self._queues.clear()
