"""
registry.py — Which display sessions currently have a live transport.

The registry is the only owner of ``Session`` records. Everything else
refers to sessions by id and must check ``get`` before using a transport.

Disconnect side effects are delivered through ``on_unregister`` listeners
(the overlay store subscribes to drop state). Queued safety alerts are
not touched: a device that reconnects or keeps polling still sees what
was sent while its display was away.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set

from festival_relay.core.locks import KeyedLocks
from festival_relay.overlay.models import now_ms
from festival_relay.sessions.transport import DisplayTransport

logger = logging.getLogger(__name__)

UnregisterListener = Callable[[str], None]


@dataclass
class Session:
    session_id: str
    user_id: str
    transport: DisplayTransport
    connected_at: int = field(default_factory=now_ms)

    def to_dict(self) -> Dict[str, object]:
        return {
            "sessionId": self.session_id,
            "userId": self.user_id,
            "connectedAt": self.connected_at,
        }


class SessionRegistry:
    """Thread-safe map of session id → live session."""

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}
        self._locks = KeyedLocks()
        self._index_lock = threading.Lock()
        self._listeners: List[UnregisterListener] = []

    def on_unregister(self, listener: UnregisterListener) -> None:
        self._listeners.append(listener)

    def register(self, session_id: str, user_id: str, transport: DisplayTransport) -> Session:
        session = Session(session_id=session_id, user_id=user_id or "unknown", transport=transport)
        with self._locks.hold(session_id):
            with self._index_lock:
                replaced = self._sessions.get(session_id)
                self._sessions[session_id] = session
        if replaced is not None:
            logger.info("Session %s re-registered (transport replaced)", session_id)
        else:
            logger.info(
                "Session connected: %s (user=%s)", session_id, session.user_id,
                extra={"session_id": session_id, "user_id": session.user_id},
            )
        return session

    def unregister(self, session_id: str, transport: Optional[DisplayTransport] = None) -> bool:
        """
        Drop a session and notify listeners.

        With ``transport`` given, only removes the session if that transport
        is still the registered one, so a display that reconnected in the
        meantime keeps its new session.
        """
        with self._locks.hold(session_id):
            current = self._sessions.get(session_id)
            if current is None:
                return False
            if transport is not None and current.transport is not transport:
                return False
            with self._index_lock:
                del self._sessions[session_id]
            self._notify(session_id)
        logger.info("Session disconnected: %s", session_id, extra={"session_id": session_id})
        return True

    def evict(self, session_id: str, transport: DisplayTransport, reason: str = "") -> bool:
        """Unregister after a failed push on ``transport``."""
        if not self.unregister(session_id, transport):
            return False
        logger.warning(
            "Session %s evicted after transport failure: %s", session_id, reason,
            extra={"session_id": session_id},
        )
        return True

    def _notify(self, session_id: str) -> None:
        for listener in self._listeners:
            try:
                listener(session_id)
            except Exception:
                logger.exception("Unregister listener failed for %s", session_id)

    def get(self, session_id: str) -> Optional[DisplayTransport]:
        with self._locks.hold(session_id):
            session = self._sessions.get(session_id)
            return session.transport if session else None

    def session(self, session_id: str) -> Optional[Session]:
        with self._locks.hold(session_id):
            return self._sessions.get(session_id)

    def user_id(self, session_id: str) -> str:
        session = self.session(session_id)
        return session.user_id if session else "unknown"

    def all_ids(self) -> Set[str]:
        with self._index_lock:
            return set(self._sessions.keys())

    def sessions(self) -> List[Session]:
        with self._index_lock:
            return sorted(self._sessions.values(), key=lambda s: s.connected_at)

    def count(self) -> int:
        with self._index_lock:
            return len(self._sessions)

    def clear(self) -> None:
        with self._index_lock:
            self._sessions.clear()
