"""
Safety alerts between friends.

Exports:
    SafetyAlertEvent        — one alert addressed to one recipient session
    SafetyAlertQueue        — per-recipient pending alerts, windowed reads
    SafetyAlertBroadcaster  — queue + push fan-out from one originator
    KeywordTriggerDetector  — trigger words in transcribed speech
"""

from festival_relay.safety.models import SafetyAlertEvent, display_name
from festival_relay.safety.alert_queue import SafetyAlertQueue, SHORT_WINDOW_MS, LONG_WINDOW_MS
from festival_relay.safety.broadcaster import SafetyAlertBroadcaster
from festival_relay.safety.triggers import KeywordTriggerDetector, TriggerMatch

__all__ = [
    "SafetyAlertEvent",
    "display_name",
    "SafetyAlertQueue",
    "SHORT_WINDOW_MS",
    "LONG_WINDOW_MS",
    "SafetyAlertBroadcaster",
    "KeywordTriggerDetector",
    "TriggerMatch",
]
