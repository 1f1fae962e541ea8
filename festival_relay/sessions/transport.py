"""
transport.py — Push handles for connected displays.

A transport is whatever can put text on one pair of glasses right now.
The registry only stores it; the broadcaster and overlay routes call
``push_render`` after releasing every store lock.

Implementations must raise ``TransportError`` when the display is gone so
the caller can evict the session.
"""

from __future__ import annotations

import logging
from typing import List, Protocol, runtime_checkable

from starlette.websockets import WebSocket, WebSocketState

from festival_relay.core.errors import TransportError

logger = logging.getLogger(__name__)


@runtime_checkable
class DisplayTransport(Protocol):
    async def push_render(self, text: str) -> None:
        ...


class WebSocketTransport:
    """Sends rendered text to a display over an accepted WebSocket."""

    def __init__(self, session_id: str, websocket: WebSocket) -> None:
        self.session_id = session_id
        self._websocket = websocket

    @property
    def is_open(self) -> bool:
        return (
            self._websocket.client_state == WebSocketState.CONNECTED
            and self._websocket.application_state == WebSocketState.CONNECTED
        )

    async def push_render(self, text: str) -> None:
        if not self.is_open:
            raise TransportError(self.session_id, "WebSocket not connected")
        try:
            await self._websocket.send_json({"type": "render", "text": text})
        except Exception as exc:
            raise TransportError(self.session_id, str(exc)) from exc


class RecordingTransport:
    """
    In-process transport that keeps every pushed frame.

    Used by tests and local tooling; ``fail_with`` makes every push
    raise ``TransportError`` to simulate a closed socket.
    """

    def __init__(self, session_id: str, *, fail_with: str = "") -> None:
        self.session_id = session_id
        self.fail_with = fail_with
        self.frames: List[str] = []

    async def push_render(self, text: str) -> None:
        if self.fail_with:
            raise TransportError(self.session_id, self.fail_with)
        self.frames.append(text)

    @property
    def last_frame(self) -> str:
        return self.frames[-1] if self.frames else ""
