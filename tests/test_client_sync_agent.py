"""
test_client_sync_agent.py — Device-side sync agent against a fake relay.

Covers:
    • Short/long window merge and exactly-once delivery
    • Cooldown: local notification always, network fan-out throttled
    • Bounded retry and its failure statuses
    • Session roster handling, lifecycle
    • SeenKeys / CooldownGate / perform_with_retry building blocks

Run with:
    pytest tests/test_client_sync_agent.py -v
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, List

import httpx
import pytest

from festival_relay.client.api_client import RelayApiClient
from festival_relay.client.cooldown import CooldownGate
from festival_relay.client.dedupe import SeenKeys
from festival_relay.client.notifier import LoggingNotifier, incoming_alert_body, local_trigger_body
from festival_relay.client.retry import perform_with_retry
from festival_relay.client.settings import ClientSettings
from festival_relay.client.sources import (
    FriendReading,
    HearingReading,
    QueuedTriggerSource,
    StaticOverlaySource,
)
from festival_relay.client.sync_agent import ClientSyncAgent
from festival_relay.core.errors import NetworkError
from festival_relay.safety.models import SafetyAlertEvent

BASE_URL = "http://relay.test"


def _alert(target: str = "s1", ts: int = 1_000, message: str = "I need help") -> Dict[str, Any]:
    return SafetyAlertEvent(
        origin_session_id="s2",
        origin_user_id="bob@example.com",
        target_session_id=target,
        trigger_word="banana",
        message=message,
        timestamp=ts,
    ).to_dict()


class FakeRelay:
    """httpx.MockTransport handler that records calls and can fail on demand."""

    def __init__(self) -> None:
        self.calls: List[httpx.Request] = []
        self.sessions = ["s1"]
        self.short: Dict[str, Dict[str, Any]] = {}
        self.long: Dict[str, List[Dict[str, Any]]] = {}
        self.failures: Dict[str, int] = {}

    def fail(self, path: str, times: int = 1_000) -> None:
        self.failures[path] = times

    def paths(self, method: str = "") -> List[str]:
        return [r.url.path for r in self.calls if not method or r.method == method]

    def bodies(self, path: str) -> List[Dict[str, Any]]:
        return [json.loads(r.content) for r in self.calls if r.url.path == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        path = request.url.path

        if self.failures.get(path, 0) > 0:
            self.failures[path] -= 1
            return httpx.Response(503, json={"error": {"code": "UNAVAILABLE"}})

        session_id = request.url.params.get("sessionId", "")
        if path == "/session/list":
            return httpx.Response(200, json={
                "count": len(self.sessions),
                "sessions": [{"sessionId": s} for s in self.sessions],
            })
        if path == "/friends/has-safety-alert":
            alert = self.short.get(session_id)
            return httpx.Response(200, json={"hasAlert": alert is not None, "alert": alert, "timestamp": 1})
        if path == "/friends/safety-alerts":
            alerts = self.long.get(session_id, [])
            return httpx.Response(200, json={"alerts": alerts, "count": len(alerts)})
        if path == "/friends/safety-alert":
            return httpx.Response(200, json={"ok": True, "broadcastCount": 1, "message": "Alert sent to 1 friends"})
        return httpx.Response(200, json={"ok": True})


@pytest.fixture
def relay() -> FakeRelay:
    return FakeRelay()


@pytest.fixture
def notifier() -> LoggingNotifier:
    return LoggingNotifier()


def _settings(**overrides: Any) -> ClientSettings:
    values: Dict[str, Any] = {
        "BASE_URL": BASE_URL,
        "SESSION_ID": "s1",
        "RETRY_DELAYS_SECONDS": [0.0, 0.0, 0.0],
    }
    values.update(overrides)
    return ClientSettings(**values)


@pytest.fixture
def agent(relay, notifier) -> ClientSyncAgent:
    return ClientSyncAgent(
        _settings(),
        api=RelayApiClient(BASE_URL, transport=httpx.MockTransport(relay)),
        notifier=notifier,
    )


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: Safety Poll
# ═══════════════════════════════════════════════════════════════════════════

class TestSafetyPoll:

    @pytest.mark.anyio
    async def test_event_in_both_windows_notified_once(self, agent, relay, notifier):
        alert = _alert()
        relay.short["s1"] = alert
        relay.long["s1"] = [alert]

        first = await agent.poll_safety_once()
        second = await agent.poll_safety_once()

        assert len(first) == 1
        assert second == []
        assert notifier.all() == ["I need help"]
        assert agent.last_received_alert == "I need help"

    @pytest.mark.anyio
    async def test_long_window_catches_missed_alerts(self, agent, relay, notifier):
        relay.long["s1"] = [_alert(ts=1_000), _alert(ts=2_000)]
        delivered = await agent.poll_safety_once()
        assert [e.timestamp for e in delivered] == [1_000, 2_000]
        assert len(notifier.all()) == 2

    @pytest.mark.anyio
    async def test_short_read_failure_does_not_block_long_read(self, agent, relay, notifier):
        relay.fail("/friends/has-safety-alert")
        relay.long["s1"] = [_alert()]

        delivered = await agent.poll_safety_once()

        assert len(delivered) == 1
        assert relay.paths().count("/friends/has-safety-alert") == 3
        assert notifier.last == "I need help"

    @pytest.mark.anyio
    async def test_polls_every_listed_session(self, agent, relay):
        relay.sessions = ["s3", "s1", "s2"]
        await agent.refresh_sessions()
        await agent.poll_safety_once()
        polled = [
            r.url.params["sessionId"] for r in relay.calls
            if r.url.path == "/friends/safety-alerts"
        ]
        assert polled == ["s1", "s2", "s3"]

    @pytest.mark.anyio
    async def test_polling_requests_are_cache_busted(self, agent, relay):
        await agent.poll_safety_once()
        request = relay.calls[0]
        assert "t" in request.url.params
        assert request.headers["Cache-Control"] == "no-cache"

    @pytest.mark.anyio
    async def test_malformed_alert_dropped(self, agent, relay, notifier):
        relay.long["s1"] = [{"sessionId": "s2"}, _alert()]
        delivered = await agent.poll_safety_once()
        assert len(delivered) == 1

    def test_fallback_notification_body(self):
        event = SafetyAlertEvent.from_dict({**_alert(message=""), "userId": ""})
        assert incoming_alert_body(event) == "🚨 A friend needs help (triggered by: banana)"
        assert local_trigger_body("sos") == "🚨 Safety trigger detected on this device (sos)"


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: Origination & Cooldown
# ═══════════════════════════════════════════════════════════════════════════

class TestTriggerSafetyAlert:

    @pytest.mark.anyio
    async def test_cooldown_throttles_network_not_local(self, agent, relay, notifier):
        assert await agent.trigger_safety_alert("banana") is True
        assert await agent.trigger_safety_alert("banana") is False

        assert relay.paths("POST") == ["/friends/safety-alert"]
        assert notifier.all() == [local_trigger_body("banana")] * 2
        assert agent.status == "Safety alert throttled"

    @pytest.mark.anyio
    async def test_payload(self, agent, relay):
        await agent.trigger_safety_alert("banana")
        assert relay.bodies("/friends/safety-alert") == [{
            "sessionId": "s1",
            "message": "I need help",
            "severity": "urgent",
            "source": "keyword-detection",
            "keyword": "banana",
        }]
        assert agent.status == "Safety alert sent to 1 sessions"
        assert agent.last_safety_alert_at is not None

    @pytest.mark.anyio
    async def test_fans_out_to_every_session(self, agent, relay):
        relay.sessions = ["s2", "s1", "s2"]
        await agent.refresh_sessions()
        await agent.trigger_safety_alert("sos")
        sent = [b["sessionId"] for b in relay.bodies("/friends/safety-alert")]
        assert sent == ["s1", "s2"]

    @pytest.mark.anyio
    async def test_failed_fan_out_does_not_start_cooldown(self, agent, relay):
        relay.fail("/friends/safety-alert", times=3)

        assert await agent.trigger_safety_alert("banana") is False
        assert agent.status == "Safety alert failed"

        assert await agent.trigger_safety_alert("banana") is True
        assert len(relay.bodies("/friends/safety-alert")) == 4

    @pytest.mark.anyio
    async def test_concurrent_triggers_fan_out_once(self, agent, relay, notifier):
        results = await asyncio.gather(
            agent.trigger_safety_alert("banana"),
            agent.trigger_safety_alert("help"),
        )
        assert sorted(results) == [False, True]
        assert len(relay.paths("POST")) == 1
        assert len(notifier.all()) == 2

    @pytest.mark.anyio
    async def test_per_trigger_cooldown(self, relay, notifier):
        agent = ClientSyncAgent(
            _settings(COOLDOWN_PER_TRIGGER=True),
            api=RelayApiClient(BASE_URL, transport=httpx.MockTransport(relay)),
            notifier=notifier,
        )
        assert await agent.trigger_safety_alert("banana") is True
        assert await agent.trigger_safety_alert("help") is True
        assert await agent.trigger_safety_alert("banana") is False

    @pytest.mark.anyio
    async def test_not_configured_still_notifies_locally(self, notifier):
        agent = ClientSyncAgent(_settings(BASE_URL=""), notifier=notifier)
        assert await agent.trigger_safety_alert("sos") is False
        assert agent.status == "Base URL required"
        assert notifier.last == local_trigger_body("sos")

    @pytest.mark.anyio
    async def test_no_sessions(self, relay, notifier):
        agent = ClientSyncAgent(
            _settings(SESSION_ID=""),
            api=RelayApiClient(BASE_URL, transport=httpx.MockTransport(relay)),
            notifier=notifier,
        )
        assert await agent.trigger_safety_alert("sos") is False
        assert agent.status == "No sessions for safety alert"
        assert relay.calls == []

    @pytest.mark.anyio
    async def test_scan_fires_queued_keyword(self, relay, notifier):
        triggers = QueuedTriggerSource()
        agent = ClientSyncAgent(
            _settings(),
            api=RelayApiClient(BASE_URL, transport=httpx.MockTransport(relay)),
            trigger_source=triggers,
            notifier=notifier,
        )
        assert await agent.scan_once() is False
        triggers.fire("danger")
        assert await agent.scan_once() is True
        assert relay.bodies("/friends/safety-alert")[0]["keyword"] == "danger"


# ═══════════════════════════════════════════════════════════════════════════
# Section 3: Overlay Push, Sessions, Lifecycle
# ═══════════════════════════════════════════════════════════════════════════

class TestOverlayPush:

    def _agent(self, relay, notifier) -> ClientSyncAgent:
        source = StaticOverlaySource(
            HearingReading(db=101.2, risk_level="risk", safe_time_left_min=8.7, trend="rising"),
            [FriendReading(name="Sarah", distance_band="NEAR", hint="left", confidence=0.7)],
        )
        return ClientSyncAgent(
            _settings(),
            api=RelayApiClient(BASE_URL, transport=httpx.MockTransport(relay)),
            overlay_source=source,
            notifier=notifier,
        )

    @pytest.mark.anyio
    async def test_pushes_hearing_and_friends(self, relay, notifier):
        agent = self._agent(relay, notifier)
        assert await agent.push_overlay_once() is True

        hearing = relay.bodies("/overlay/hearing")[0]
        friends = relay.bodies("/overlay/friends")[0]
        assert hearing["sessionId"] == "s1"
        assert hearing["safeTimeLeftMin"] == 8
        assert hearing["timestamp"] == friends["timestamp"]
        assert friends["friends"][0]["name"] == "Sarah"
        assert agent.status == "Synced"
        assert agent.is_connected

    @pytest.mark.anyio
    async def test_retry_succeeds_on_third_attempt(self, relay, notifier):
        relay.fail("/overlay/hearing", times=2)
        agent = self._agent(relay, notifier)
        assert await agent.push_overlay_once() is True
        assert relay.paths().count("/overlay/hearing") == 3

    @pytest.mark.anyio
    async def test_gives_up_after_three_attempts(self, relay, notifier):
        relay.fail("/overlay/hearing")
        agent = self._agent(relay, notifier)
        assert await agent.push_overlay_once() is False
        assert relay.paths().count("/overlay/hearing") == 3
        assert "/overlay/friends" not in relay.paths()
        assert agent.status == "Sync failed"
        assert not agent.is_connected

    @pytest.mark.anyio
    async def test_no_source_is_noop(self, agent, relay):
        assert await agent.push_overlay_once() is False
        assert relay.calls == []


class TestSessionsAndLifecycle:

    @pytest.mark.anyio
    async def test_refresh_selects_first_session(self, relay, notifier):
        relay.sessions = ["s7", "s3"]
        agent = ClientSyncAgent(
            _settings(SESSION_ID=""),
            api=RelayApiClient(BASE_URL, transport=httpx.MockTransport(relay)),
            notifier=notifier,
        )
        assert await agent.refresh_sessions() == ["s7", "s3"]
        assert agent.selected_session_id == "s7"
        assert agent.target_sessions() == ["s3", "s7"]
        assert agent.status == "Sessions loaded"

    @pytest.mark.anyio
    async def test_refresh_keeps_existing_selection(self, agent, relay):
        relay.sessions = ["s0", "s1"]
        await agent.refresh_sessions()
        assert agent.selected_session_id == "s1"

    @pytest.mark.anyio
    async def test_refresh_failure(self, agent, relay):
        relay.fail("/session/list")
        assert await agent.refresh_sessions() == []
        assert agent.status == "Session fetch failed"

    def test_target_sessions_falls_back_to_selection(self, agent):
        assert agent.target_sessions() == ["s1"]

    def test_clearing_base_url(self, agent):
        agent.update_base_url("  ")
        assert agent.status == "Base URL required"

    @pytest.mark.anyio
    async def test_song_result(self, agent, relay):
        assert await agent.post_song_result("Strobe", "deadmau5") is True
        assert relay.bodies("/song/result")[0]["title"] == "Strobe"
        assert agent.status == "Song sent to glasses"

    @pytest.mark.anyio
    async def test_start_stop(self, agent, relay):
        await agent.start()
        assert agent.running
        await asyncio.sleep(0)
        await agent.stop()
        assert not agent.running
        assert agent.status == "Stopped"
        assert relay.paths()[0] == "/session/list"


# ═══════════════════════════════════════════════════════════════════════════
# Section 4: Building Blocks
# ═══════════════════════════════════════════════════════════════════════════

class TestSeenKeys:

    def test_add_once(self):
        seen = SeenKeys()
        assert seen.add("k1") is True
        assert seen.add("k1") is False
        assert "k1" in seen

    def test_oldest_evicted(self):
        seen = SeenKeys(capacity=2)
        for key in ("a", "b", "c"):
            seen.add(key)
        assert "a" not in seen
        assert len(seen) == 2

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            SeenKeys(capacity=0)


class TestCooldownGate:

    def test_global_window(self):
        now = [100.0]
        gate = CooldownGate(30, clock=lambda: now[0])
        assert gate.ready()
        gate.mark("banana")
        assert not gate.ready("help")
        now[0] = 129.0
        assert gate.remaining() == pytest.approx(1.0)
        now[0] = 130.0
        assert gate.ready()

    def test_per_trigger(self):
        gate = CooldownGate(30, per_trigger=True, clock=lambda: 0.0)
        gate.mark("Banana")
        assert not gate.ready("banana")
        assert gate.ready("sos")
        gate.reset()
        assert gate.ready("banana")


class TestPerformWithRetry:

    @pytest.mark.anyio
    async def test_returns_first_success(self):
        attempts = []

        async def op():
            attempts.append(1)
            if len(attempts) < 2:
                raise NetworkError("op", "down")
            return "ok"

        assert await perform_with_retry(op, delays=(0, 0, 0)) == "ok"
        assert len(attempts) == 2

    @pytest.mark.anyio
    async def test_raises_last_error(self):
        async def op():
            raise NetworkError("op", "down")

        with pytest.raises(NetworkError):
            await perform_with_retry(op, delays=(0, 0, 0))

    @pytest.mark.anyio
    async def test_stop_aborts_between_attempts(self):
        attempts = []
        stop = asyncio.Event()

        async def op():
            attempts.append(1)
            stop.set()
            raise NetworkError("op", "down")

        with pytest.raises(NetworkError):
            await perform_with_retry(op, delays=(5, 5, 5), stop_event=stop)
        assert len(attempts) == 1

    @pytest.mark.anyio
    async def test_other_errors_not_retried(self):
        attempts = []

        async def op():
            attempts.append(1)
            raise KeyError("boom")

        with pytest.raises(KeyError):
            await perform_with_retry(op, delays=(0, 0, 0))
        assert len(attempts) == 1
