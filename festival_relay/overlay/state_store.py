"""
state_store.py — In-memory per-session overlay state.

Each session id maps to one immutable ``OverlayState``. Updates merge a
single fragment into the current state under that session's lock and
return the resulting state; readers get the same immutable object, so a
snapshot can be handed to the renderer after the lock is released.

State is created lazily on the first fragment (or explicitly on connect)
and discarded when the session disconnects. Nothing is persisted.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional

from festival_relay.core.locks import KeyedLocks
from festival_relay.overlay.models import Fragment, OverlayState

logger = logging.getLogger(__name__)


class OverlayStateStore:
    """Keyed store of merged overlay state."""

    def __init__(self) -> None:
        self._states: Dict[str, OverlayState] = {}
        self._locks = KeyedLocks()
        # Guards iteration over the dict against concurrent inserts
        self._index_lock = threading.Lock()

    def ensure(self, session_id: str) -> OverlayState:
        """Create an empty state for a session if none exists yet."""
        with self._locks.hold(session_id):
            state = self._states.get(session_id)
            if state is None:
                state = OverlayState()
                with self._index_lock:
                    self._states[session_id] = state
            return state

    def apply_fragment(self, session_id: str, fragment: Fragment) -> OverlayState:
        """Merge one fragment into the session's state and return the result."""
        with self._locks.hold(session_id):
            current = self._states.get(session_id) or OverlayState()
            merged = current.merge(fragment)
            with self._index_lock:
                self._states[session_id] = merged

        logger.debug(
            "Overlay fragment %s applied to %s (hearing=%s friends=%d song=%s)",
            type(fragment).__name__, session_id,
            merged.hearing is not None, merged.friend_count,
            merged.song is not None,
            extra={"session_id": session_id},
        )
        return merged

    def snapshot(self, session_id: str) -> Optional[OverlayState]:
        """Current state, or None when the session has no data yet."""
        with self._locks.hold(session_id):
            return self._states.get(session_id)

    def discard(self, session_id: str) -> bool:
        with self._locks.hold(session_id):
            with self._index_lock:
                removed = self._states.pop(session_id, None)
        if removed is not None:
            logger.debug("Overlay state discarded for %s", session_id)
        return removed is not None

    def summary(self, session_id: str) -> Dict[str, Any]:
        """Compact view used by the session list endpoint."""
        state = self.snapshot(session_id) or OverlayState()
        return {
            "sessionId": session_id,
            "hasHearing": state.hearing is not None,
            "friendCount": state.friend_count,
            "updatedAt": state.updated_at,
        }

    def session_ids(self) -> List[str]:
        with self._index_lock:
            return list(self._states.keys())

    def clear(self) -> None:
        with self._index_lock:
            self._states.clear()
