"""
test_overlay_state.py — Overlay fragments, merged state, store and renderer.

Covers:
    • Fragment merge semantics (one slot replaced, others kept)
    • OverlayStateStore (apply, snapshot sentinel, discard, summary)
    • Boundary normalisation (bands, hints, distance estimates, validation)
    • Display rendering (five-line layout, clamping, alert text)

Run with:
    pytest tests/test_overlay_state.py -v
"""

from __future__ import annotations

import pytest

from festival_relay.core.errors import ValidationError
from festival_relay.overlay.models import (
    DirectionHint,
    DistanceBand,
    FriendEntry,
    FriendsFragment,
    HearingFragment,
    OverlayState,
    RiskLevel,
    SongFragment,
    Trend,
)
from festival_relay.overlay.normalize import (
    build_friend,
    build_friends,
    build_hearing,
    build_song,
    estimate_meters,
    normalize_band,
    normalize_hint,
)
from festival_relay.overlay.render import OverlayRenderer, clamp, format_meters, format_safe_time
from festival_relay.overlay.state_store import OverlayStateStore


# ═══════════════════════════════════════════════════════════════════════════
# Test Fixtures
# ═══════════════════════════════════════════════════════════════════════════

def _hearing(db: float = 104, risk: str = "risk", ts: int = 1_000) -> HearingFragment:
    return build_hearing(
        db=db,
        risk_level=risk,
        safe_time_left_min=6,
        trend="rising",
        suggestion="Safer side: left",
        timestamp=ts,
    )


def _friends(ts: int = 2_000) -> FriendsFragment:
    return build_friends(
        [
            {"name": "Sarah", "distanceBand": "NEAR", "hint": "left", "confidence": 0.72},
            {"name": "Jason", "distanceBand": "AREA", "hint": "behind", "confidence": 0.51},
        ],
        timestamp=ts,
    )


@pytest.fixture
def store() -> OverlayStateStore:
    return OverlayStateStore()


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: Merge Semantics
# ═══════════════════════════════════════════════════════════════════════════

class TestOverlayMerge:

    def test_empty_state(self):
        state = OverlayState()
        assert state.is_empty
        assert state.friend_count == 0
        assert state.updated_at is None

    def test_hearing_replaces_only_hearing(self):
        song = build_song(title="Strobe", artist="deadmau5")
        state = OverlayState().merge(_friends()).merge(song).merge(_hearing())
        assert state.hearing.db == 104
        assert state.friend_count == 2
        assert state.song is song

    def test_interleaved_updates_keep_latest_of_each(self):
        first_hearing = _hearing(db=90, risk="caution", ts=1_000)
        friends = _friends(ts=1_500)
        second_hearing = _hearing(db=101, ts=2_000)

        state = OverlayState().merge(first_hearing).merge(friends).merge(second_hearing)

        assert state.hearing is second_hearing
        assert state.friends is friends

    def test_merge_returns_new_object(self):
        base = OverlayState()
        merged = base.merge(_hearing())
        assert base.hearing is None
        assert merged is not base

    def test_updated_at_is_max_of_hearing_and_friends(self):
        state = OverlayState().merge(_hearing(ts=5_000)).merge(_friends(ts=3_000))
        assert state.updated_at == 5_000

    def test_unknown_fragment_rejected(self):
        with pytest.raises(TypeError):
            OverlayState().merge("not a fragment")  # type: ignore[arg-type]

    def test_to_dict_uses_wire_names(self):
        d = OverlayState().merge(_hearing()).to_dict()
        assert d["hearing"]["riskLevel"] == "risk"
        assert d["hearing"]["safeTimeLeftMin"] == 6
        assert d["friends"] is None
        assert d["song"] is None


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: State Store
# ═══════════════════════════════════════════════════════════════════════════

class TestOverlayStateStore:

    def test_snapshot_none_before_any_data(self, store):
        assert store.snapshot("s1") is None

    def test_apply_then_snapshot(self, store):
        hearing = _hearing()
        store.apply_fragment("s1", hearing)
        snap = store.snapshot("s1")
        assert snap.hearing == hearing
        assert snap.hearing.risk_level == RiskLevel.RISK
        assert snap.hearing.trend == Trend.RISING
        assert snap.hearing.suggestion == "Safer side: left"
        assert snap.friends is None
        assert snap.song is None

    def test_sessions_are_independent(self, store):
        store.apply_fragment("s1", _hearing())
        store.apply_fragment("s2", _friends())
        assert store.snapshot("s1").friends is None
        assert store.snapshot("s2").hearing is None

    def test_ensure_creates_empty_state_once(self, store):
        first = store.ensure("s1")
        store.apply_fragment("s1", _hearing())
        second = store.ensure("s1")
        assert first.is_empty
        assert second.hearing is not None

    def test_discard(self, store):
        store.apply_fragment("s1", _hearing())
        assert store.discard("s1") is True
        assert store.snapshot("s1") is None
        assert store.discard("s1") is False

    def test_summary(self, store):
        store.apply_fragment("s1", _hearing(ts=1_000))
        store.apply_fragment("s1", _friends(ts=4_000))
        assert store.summary("s1") == {
            "sessionId": "s1",
            "hasHearing": True,
            "friendCount": 2,
            "updatedAt": 4_000,
        }

    def test_summary_without_state(self, store):
        summary = store.summary("ghost")
        assert summary["hasHearing"] is False
        assert summary["friendCount"] == 0
        assert summary["updatedAt"] is None


# ═══════════════════════════════════════════════════════════════════════════
# Section 3: Normalisation
# ═══════════════════════════════════════════════════════════════════════════

class TestNormalisation:

    @pytest.mark.parametrize("raw, expected", [
        ("NEAR", DistanceBand.NEAR),
        ("immediate", DistanceBand.IMMEDIATE),
        ("FAR", DistanceBand.AREA),
        ("", DistanceBand.AREA),
    ])
    def test_band(self, raw, expected):
        assert normalize_band(raw) == expected

    @pytest.mark.parametrize("raw, expected", [
        ("left", DirectionHint.LEFT),
        ("Behind", DirectionHint.BEHIND),
        ("up", DirectionHint.UNKNOWN),
        (None, DirectionHint.UNKNOWN),
    ])
    def test_hint(self, raw, expected):
        assert normalize_hint(raw) == expected

    def test_direct_distance_clamped(self):
        assert estimate_meters(DistanceBand.NEAR, distance_meters=200) == 80.0
        assert estimate_meters(DistanceBand.NEAR, distance_meters=0.01) == 0.1

    def test_non_positive_distance_falls_back_to_rssi(self):
        assert estimate_meters(DistanceBand.NEAR, distance_meters=0, rssi=-65) == 5.0

    @pytest.mark.parametrize("rssi, meters", [(-50, 2.0), (-60, 2.0), (-70, 5.0), (-80, 10.0), (-95, 16.0)])
    def test_rssi_buckets(self, rssi, meters):
        assert estimate_meters(DistanceBand.WEAK, rssi=rssi) == meters

    @pytest.mark.parametrize("band, meters", [
        (DistanceBand.IMMEDIATE, 1.0),
        (DistanceBand.NEAR, 4.0),
        (DistanceBand.AREA, 10.0),
        (DistanceBand.WEAK, 18.0),
    ])
    def test_band_fallback(self, band, meters):
        assert estimate_meters(band) == meters

    def test_friend_without_name_dropped(self):
        assert build_friend({"distanceBand": "NEAR"}) is None
        assert build_friend({"name": "Sarah"}) is None

    def test_friend_normalised(self):
        friend = build_friend({"name": " Sarah ", "distanceBand": "FAR", "hint": "up", "rssi": -65})
        assert friend == FriendEntry(
            name="Sarah",
            distance_band=DistanceBand.AREA,
            hint=DirectionHint.UNKNOWN,
            confidence=0.0,
            distance_meters=5.0,
            rssi=-65.0,
        )

    def test_friend_confidence_out_of_range(self):
        with pytest.raises(ValidationError):
            build_friend({"name": "Sarah", "distanceBand": "NEAR", "confidence": 1.5})

    def test_build_friends_filters_placeholders(self):
        fragment = build_friends([
            {"name": "Sarah", "distanceBand": "NEAR"},
            {"name": "", "distanceBand": "NEAR"},
        ])
        assert [f.name for f in fragment.friends] == ["Sarah"]

    def test_hearing_defaults(self):
        hearing = build_hearing(db=80, risk_level="SAFE", safe_time_left_min=120)
        assert hearing.risk_level == RiskLevel.SAFE
        assert hearing.trend == Trend.STEADY
        assert hearing.suggestion == "Step to a quieter zone"
        assert hearing.timestamp > 0

    def test_hearing_invalid_risk(self):
        with pytest.raises(ValidationError) as exc:
            build_hearing(db=80, risk_level="loud", safe_time_left_min=10)
        assert exc.value.details["field"] == "riskLevel"

    def test_hearing_negative_safe_time(self):
        with pytest.raises(ValidationError):
            build_hearing(db=80, risk_level="safe", safe_time_left_min=-1)

    def test_hearing_invalid_trend(self):
        with pytest.raises(ValidationError):
            build_hearing(db=80, risk_level="safe", safe_time_left_min=10, trend="sideways")

    def test_song_requires_title_and_artist(self):
        with pytest.raises(ValidationError):
            build_song(title="Strobe", artist=" ")
        song = build_song(title="Strobe", artist="deadmau5")
        assert song.provider == "shazamkit"
        assert isinstance(song, SongFragment)


# ═══════════════════════════════════════════════════════════════════════════
# Section 4: Rendering
# ═══════════════════════════════════════════════════════════════════════════

class TestRenderer:

    def test_ready_message_for_missing_or_empty_state(self):
        renderer = OverlayRenderer(48)
        assert renderer.render(None).startswith("FESTIVAL ASSIST READY")
        assert renderer.render(OverlayState()) == renderer.ready_message()

    def test_full_overlay(self):
        state = OverlayState().merge(_hearing()).merge(_friends())
        assert OverlayRenderer(48).render(state).split("\n") == [
            "SOUND 104dB 🚨",
            "SAFE 6m TREND RISING",
            "ACTION Safer side: left",
            "F1 Sarah 4m",
            "F2 Jason 10m",
        ]

    def test_missing_friends(self):
        lines = OverlayRenderer(48).render(OverlayState().merge(_hearing())).split("\n")
        assert lines[3:] == ["F1 none", "F2 none"]

    def test_safe_and_not_rising_says_stay(self):
        hearing = build_hearing(db=70, risk_level="safe", safe_time_left_min=300, trend="falling")
        lines = OverlayRenderer(48).render(OverlayState().merge(hearing)).split("\n")
        assert lines[1] == "SAFE 5.0h TREND FALLING"
        assert lines[2] == "ACTION Safe to stay here"

    def test_song_line_appended(self):
        state = OverlayState().merge(_hearing()).merge(build_song(title="Strobe", artist="deadmau5"))
        assert OverlayRenderer(48).render(state).split("\n")[-1] == "♪ Strobe - deadmau5"

    def test_lines_clamped(self):
        hearing = build_hearing(
            db=100, risk_level="risk", safe_time_left_min=3,
            suggestion="Move far away from the main stage speakers right now",
        )
        action = OverlayRenderer(20).render(OverlayState().merge(hearing)).split("\n")[2]
        assert len(action) == 20
        assert action.endswith("…")

    def test_alert_texts(self):
        renderer = OverlayRenderer(48)
        alert = renderer.render_alert("Alice", "banana")
        assert alert.startswith("🚨 SAFETY ALERT! 🚨")
        assert "Alice needs help!" in alert
        assert 'Triggered: "banana"' in alert

        assert "Alert sent to 2 friends!" in renderer.render_alert_confirmation("banana", 2)
        assert "Alert sent to 1 friend!" in renderer.render_alert_confirmation("banana", 1)
        assert "No friends connected yet" in renderer.render_alert_confirmation(None, 0)

    def test_helpers(self):
        assert clamp("abcdef", 4) == "abc…"
        assert clamp("abc", 4) == "abc"
        assert format_meters(0.5) == "0.5m"
        assert format_meters(None) == "--m"
        assert format_safe_time(45) == "45m"
