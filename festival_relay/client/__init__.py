"""
Device-side sync agent for the festival relay.

Sub-modules:
    sync_agent   — push / poll / scan loops and alert origination
    api_client   — httpx wrapper over the relay endpoints
    retry        — bounded retry with stop-aware waits
    dedupe       — bounded set of delivered alert keys
    cooldown     — origination cooldown gate
    notifier     — local notification sinks
    sources      — overlay and trigger inputs
    settings     — RELAY_CLIENT_* configuration
"""

from festival_relay.client.sync_agent import ClientSyncAgent

__all__ = ["ClientSyncAgent"]
