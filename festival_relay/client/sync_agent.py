"""
sync_agent.py — Device-side sync between a phone and the relay.

═══════════════════════════════════════════════════════════════════════════
LOOPS
═══════════════════════════════════════════════════════════════════════════

    Loop          Cadence           Work per tick
    ───────────   ───────────────   ──────────────────────────────────────
    push          1.0 s (0.7 s in   post hearing + friends for the
                  event mode)       selected session
    poll          2.0 s             short + long window reads for every
                                    known session, merge, notify unseen
    scan          3.0 s             ask the trigger source for a keyword;
                                    originate if one fired

Each network action goes through ``perform_with_retry`` (three attempts)
and is then dropped for that tick. Loops are independent tasks: one loop
failing never stops the others.

═══════════════════════════════════════════════════════════════════════════
ORIGINATION
═══════════════════════════════════════════════════════════════════════════

    trigger_safety_alert(keyword)
        ├─ local notification        (always, before any network call)
        ├─ cooldown gate             (30 s since last successful fan-out)
        ├─ POST /friends/safety-alert once per known session
        └─ success → start cooldown; failure → ready again immediately
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, List, Optional

from festival_relay.client.api_client import RelayApiClient
from festival_relay.client.cooldown import CooldownGate
from festival_relay.client.dedupe import SeenKeys
from festival_relay.client.notifier import (
    LocalNotifier,
    LoggingNotifier,
    incoming_alert_body,
    local_trigger_body,
)
from festival_relay.client.retry import perform_with_retry
from festival_relay.client.settings import ClientSettings, get_client_settings
from festival_relay.client.sources import OverlaySource, TriggerSource
from festival_relay.core.errors import NetworkError, NotConfiguredError
from festival_relay.overlay.models import now_ms
from festival_relay.safety.models import SafetyAlertEvent

logger = logging.getLogger(__name__)

# Status strings shown in the app
STATUS_BASE_URL_REQUIRED = "Base URL required"
STATUS_SELECT_SESSION = "Select a session"
STATUS_SYNCED = "Synced"
STATUS_SYNC_FAILED = "Sync failed"
STATUS_THROTTLED = "Safety alert throttled"
STATUS_ALERT_FAILED = "Safety alert failed"
STATUS_NO_ALERT_SESSIONS = "No sessions for safety alert"
STATUS_SESSIONS_LOADED = "Sessions loaded"
STATUS_NO_SESSIONS = "No active sessions"
STATUS_SESSION_FETCH_FAILED = "Session fetch failed"
STATUS_STOPPED = "Stopped"


class ClientSyncAgent:
    """
    Keeps one device's overlay and safety alerts in sync with the relay.

    Usage:
        agent = ClientSyncAgent(overlay_source=sensors, trigger_source=spotter)
        await agent.start()
        ...
        await agent.stop()
    """

    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        *,
        api: Optional[RelayApiClient] = None,
        overlay_source: Optional[OverlaySource] = None,
        trigger_source: Optional[TriggerSource] = None,
        notifier: Optional[LocalNotifier] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or get_client_settings()
        self.base_url = self.settings.BASE_URL.strip()
        self.selected_session_id = self.settings.SESSION_ID.strip()
        self.available_sessions: List[str] = []
        self.overlay_source = overlay_source
        self.trigger_source = trigger_source
        self.notifier = notifier or LoggingNotifier()
        self.event_mode = False

        self.status = STATUS_BASE_URL_REQUIRED if not self.base_url else "Ready"
        self.is_connected = False
        self.last_payload_sent: Optional[int] = None
        self.last_safety_alert_at: Optional[int] = None
        self.last_received_alert = ""

        self._api = api
        self._seen = SeenKeys(self.settings.SEEN_KEYS_CAPACITY)
        self._cooldown = CooldownGate(
            self.settings.SAFETY_COOLDOWN_SECONDS,
            per_trigger=self.settings.COOLDOWN_PER_TRIGGER,
            clock=clock,
        )
        self._seen_lock = asyncio.Lock()
        self._origin_lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._tasks: Dict[str, asyncio.Task] = {}

    # ── Configuration ──

    def update_base_url(self, value: str) -> None:
        self.base_url = value.strip()
        self._api = None
        if not self.base_url:
            self.status = STATUS_BASE_URL_REQUIRED
            self.is_connected = False

    def select_session(self, session_id: str) -> None:
        self.selected_session_id = session_id.strip()
        self.status = "Session selected" if self.selected_session_id else STATUS_SELECT_SESSION

    @property
    def api(self) -> RelayApiClient:
        if not self.base_url:
            raise NotConfiguredError(STATUS_BASE_URL_REQUIRED)
        if self._api is None:
            self._api = RelayApiClient(
                self.base_url,
                poll_timeout=self.settings.POLL_TIMEOUT_SECONDS,
                post_timeout=self.settings.POST_TIMEOUT_SECONDS,
            )
        return self._api

    def _require_session(self) -> str:
        if not self.selected_session_id:
            raise NotConfiguredError(STATUS_SELECT_SESSION)
        return self.selected_session_id

    def target_sessions(self) -> List[str]:
        """Every listed session, or just the selected one without a roster."""
        listed = sorted({s for s in self.available_sessions if s})
        if listed:
            return listed
        if self.selected_session_id:
            return [self.selected_session_id]
        return []

    async def _retry(self, operation: Callable[[], Awaitable], name: str):
        return await perform_with_retry(
            operation,
            delays=self.settings.RETRY_DELAYS_SECONDS,
            stop_event=self._stop_event,
            name=name,
        )

    # ── Overlay push ──

    async def push_overlay_once(self) -> bool:
        if self.overlay_source is None:
            return False
        try:
            api = self.api
            session_id = self._require_session()
        except NotConfiguredError as e:
            self.status = e.status
            return False

        timestamp = now_ms()
        hearing = self.overlay_source.current_hearing()
        friends = [f.to_payload() for f in self.overlay_source.current_friends()]

        try:
            if hearing is not None:
                payload = {**hearing.to_payload(), "timestamp": timestamp}
                await self._retry(lambda: api.post_hearing(session_id, payload), "post_hearing")
            await self._retry(lambda: api.post_friends(session_id, friends, timestamp), "post_friends")
        except NetworkError as e:
            logger.debug("Overlay sync failed: %s", e.message)
            self.is_connected = False
            self.status = STATUS_SYNC_FAILED
            return False

        self.is_connected = True
        self.last_payload_sent = timestamp
        self.status = STATUS_SYNCED
        return True

    # ── Safety poll ──

    async def _read(self, name: str, operation: Callable[[], Awaitable[List[SafetyAlertEvent]]]) -> List[SafetyAlertEvent]:
        try:
            return await self._retry(operation, name)
        except NetworkError as e:
            logger.warning("Safety read %s failed: %s", name, e.message)
            return []

    async def poll_safety_once(self) -> List[SafetyAlertEvent]:
        """Read both windows for every known session; returns newly delivered events."""
        try:
            api = self.api
        except NotConfiguredError:
            return []

        delivered: List[SafetyAlertEvent] = []
        for session_id in self.target_sessions():
            short = await self._read("has_safety_alert", lambda: api.has_safety_alert(session_id))
            long = await self._read("safety_alerts", lambda: api.safety_alerts(session_id))

            merged: Dict[str, SafetyAlertEvent] = {}
            for event in short + long:
                merged[event.dedupe_key] = event
            delivered.extend(await self.deliver(merged.values()))
        return delivered

    async def deliver(self, events) -> List[SafetyAlertEvent]:
        """Notify for every event whose dedupe key has not been seen."""
        fresh: List[SafetyAlertEvent] = []
        async with self._seen_lock:
            for event in events:
                if not self._seen.add(event.dedupe_key):
                    continue
                body = incoming_alert_body(event)
                self.last_received_alert = body
                self.notifier.notify(body)
                fresh.append(event)
        if fresh:
            logger.info("Delivered %d safety alert(s)", len(fresh))
        return fresh

    # ── Keyword scan ──

    async def scan_once(self) -> bool:
        if self.trigger_source is None:
            return False
        keyword = self.trigger_source.poll_trigger()
        if not keyword:
            return False
        return await self.trigger_safety_alert(keyword)

    # ── Origination ──

    async def trigger_safety_alert(self, keyword: Optional[str] = None) -> bool:
        """
        Originate a safety alert from this device.

        The local notification fires on every call. The network fan-out is
        skipped while the cooldown is active; returns True only when the
        fan-out reached every known session.
        """
        self.notifier.notify(local_trigger_body(keyword))

        try:
            api = self.api
        except NotConfiguredError as e:
            self.status = e.status
            return False

        async with self._origin_lock:
            targets = self.target_sessions()
            if not targets:
                self.status = STATUS_NO_ALERT_SESSIONS
                return False

            if not self._cooldown.ready(keyword):
                self.status = STATUS_THROTTLED
                logger.info(
                    "Safety alert throttled (%.0fs left)", self._cooldown.remaining(keyword),
                )
                return False

            try:
                for session_id in targets:
                    await self._retry(
                        lambda: api.post_safety_alert(session_id, keyword),
                        "post_safety_alert",
                    )
            except NetworkError as e:
                logger.warning("Safety alert fan-out failed: %s", e.message)
                self.status = STATUS_ALERT_FAILED
                return False

            self._cooldown.mark(keyword)
            self.last_safety_alert_at = now_ms()
            self.status = f"Safety alert sent to {len(targets)} sessions"
            logger.info("Safety alert sent to %d sessions (keyword=%s)", len(targets), keyword)
            return True

    # ── Sessions & song ──

    async def refresh_sessions(self) -> List[str]:
        try:
            api = self.api
        except NotConfiguredError as e:
            self.status = e.status
            self.is_connected = False
            return []

        try:
            sessions = await self._retry(api.list_sessions, "list_sessions")
        except NetworkError as e:
            logger.warning("Session fetch failed: %s", e.message)
            self.status = STATUS_SESSION_FETCH_FAILED
            self.is_connected = False
            return []

        self.available_sessions = sessions
        if not self.selected_session_id and sessions:
            self.selected_session_id = sessions[0]
        self.is_connected = bool(sessions)
        self.status = STATUS_SESSIONS_LOADED if sessions else STATUS_NO_SESSIONS
        return sessions

    async def post_song_result(self, title: str, artist: str, provider: str = "shazamkit") -> bool:
        try:
            api = self.api
            session_id = self._require_session()
        except NotConfiguredError as e:
            self.status = e.status
            return False

        try:
            await self._retry(
                lambda: api.post_song_result(session_id, title, artist, provider),
                "post_song_result",
            )
        except NetworkError:
            self.status = "Failed to send song"
            return False
        self.status = "Song sent to glasses"
        return True

    # ── Lifecycle ──

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks.values())

    def _push_interval(self) -> float:
        if self.event_mode:
            return self.settings.EVENT_PUSH_INTERVAL_SECONDS
        return self.settings.PUSH_INTERVAL_SECONDS

    async def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        await self.refresh_sessions()
        self._tasks = {
            "push": asyncio.create_task(self._loop("push", self.push_overlay_once, self._push_interval)),
            "poll": asyncio.create_task(
                self._loop("poll", self.poll_safety_once, lambda: self.settings.POLL_INTERVAL_SECONDS)
            ),
            "scan": asyncio.create_task(
                self._loop("scan", self.scan_once, lambda: self.settings.SCAN_INTERVAL_SECONDS)
            ),
        }
        logger.info("Sync agent started (base_url=%s session=%s)", self.base_url, self.selected_session_id)

    async def stop(self) -> None:
        """Ask every loop to finish its current attempt, then cancel stragglers."""
        self._stop_event.set()
        tasks = [t for t in self._tasks.values() if not t.done()]
        if tasks:
            _, pending = await asyncio.wait(tasks, timeout=self.settings.STOP_GRACE_SECONDS)
            for task in pending:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks = {}
        if self._api is not None:
            await self._api.close()
        self.is_connected = False
        self.status = STATUS_STOPPED
        logger.info("Sync agent stopped")

    async def _loop(self, name: str, tick: Callable[[], Awaitable], interval: Callable[[], float]) -> None:
        while not self._stop_event.is_set():
            try:
                await tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception("Sync loop %s error: %s", name, e)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval())
            except asyncio.TimeoutError:
                pass
