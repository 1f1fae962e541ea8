"""
HTTP client for the relay, used by the device sync agent.

Every call is a single attempt; retrying is the caller's job (see
``retry.perform_with_retry``). Transport failures, non-2xx responses and
undecodable bodies all surface as ``NetworkError``.

Polling GETs carry a cache-busting ``t`` parameter and no-cache headers:
some carrier proxies cache GETs even when the relay says not to.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from festival_relay.core.errors import NetworkError
from festival_relay.overlay.models import now_ms
from festival_relay.safety.models import SafetyAlertEvent

logger = logging.getLogger(__name__)

_NO_CACHE_HEADERS = {"Cache-Control": "no-cache", "Pragma": "no-cache"}


class RelayApiClient:
    """
    Thin async wrapper over the relay's JSON endpoints.

    Usage:
        api = RelayApiClient("https://relay.example.net")
        sessions = await api.list_sessions()
        await api.close()
    """

    def __init__(
        self,
        base_url: str,
        *,
        poll_timeout: float = 5.0,
        post_timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.strip().rstrip("/")
        self.poll_timeout = poll_timeout
        self.post_timeout = post_timeout
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                base_url=self.base_url,
                transport=self._transport,
                timeout=self.post_timeout,
            )
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        *,
        timeout: float,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        headers = _NO_CACHE_HEADERS if method == "GET" else None
        try:
            client = await self._get_client()
            response = await client.request(
                method, path, params=params, json=json, headers=headers, timeout=timeout,
            )
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            raise NetworkError(
                operation, f"HTTP {e.response.status_code}", status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise NetworkError(operation, str(e) or type(e).__name__) from e
        except ValueError as e:
            raise NetworkError(operation, f"invalid JSON: {e}") from e

        if not isinstance(body, dict):
            raise NetworkError(operation, "unexpected response shape")
        return body

    async def _get(self, path: str, operation: str, **params: Any) -> Dict[str, Any]:
        params["t"] = now_ms()
        return await self._request("GET", path, operation, timeout=self.poll_timeout, params=params)

    async def _post(self, path: str, operation: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", path, operation, timeout=self.post_timeout, json=payload)

    # ── Overlay ──

    async def post_hearing(self, session_id: str, hearing: Dict[str, Any]) -> None:
        await self._post("/overlay/hearing", "post_hearing", {"sessionId": session_id, **hearing})

    async def post_friends(
        self,
        session_id: str,
        friends: List[Dict[str, Any]],
        timestamp: Optional[int] = None,
    ) -> None:
        payload: Dict[str, Any] = {"sessionId": session_id, "friends": friends}
        if timestamp is not None:
            payload["timestamp"] = timestamp
        await self._post("/overlay/friends", "post_friends", payload)

    async def post_song_result(
        self, session_id: str, title: str, artist: str, provider: str = "shazamkit",
    ) -> None:
        await self._post("/song/result", "post_song_result", {
            "sessionId": session_id, "title": title, "artist": artist, "provider": provider,
        })

    # ── Sessions ──

    async def list_sessions(self) -> List[str]:
        body = await self._get("/session/list", "list_sessions")
        return [
            str(s["sessionId"]) for s in body.get("sessions") or []
            if isinstance(s, dict) and s.get("sessionId")
        ]

    # ── Safety ──

    async def post_safety_alert(
        self,
        session_id: str,
        keyword: Optional[str],
        *,
        message: str = "I need help",
        severity: str = "urgent",
        source: str = "keyword-detection",
    ) -> int:
        body = await self._post("/friends/safety-alert", "post_safety_alert", {
            "sessionId": session_id,
            "message": message,
            "severity": severity,
            "source": source,
            "keyword": keyword,
        })
        return int(body.get("broadcastCount") or 0)

    async def has_safety_alert(self, session_id: str) -> List[SafetyAlertEvent]:
        """Short-window read; at most one event."""
        body = await self._get("/friends/has-safety-alert", "has_safety_alert", sessionId=session_id)
        alert = body.get("alert")
        if not body.get("hasAlert") or not isinstance(alert, dict):
            return []
        return self._decode([alert])

    async def safety_alerts(self, session_id: str) -> List[SafetyAlertEvent]:
        """Long-window read; every event still queued."""
        body = await self._get("/friends/safety-alerts", "safety_alerts", sessionId=session_id)
        return self._decode(body.get("alerts") or [])

    def _decode(self, items: List[Any]) -> List[SafetyAlertEvent]:
        events: List[SafetyAlertEvent] = []
        for item in items:
            try:
                events.append(SafetyAlertEvent.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Dropping malformed safety alert %r: %s", item, e)
        return events
