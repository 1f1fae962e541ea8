"""
Device-side configuration for the sync agent.

Read from ``RELAY_CLIENT_*`` environment variables (or .env), e.g.:

    RELAY_CLIENT_BASE_URL=https://relay.example.net
    RELAY_CLIENT_SESSION_ID=glasses-01
"""

from __future__ import annotations

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientSettings(BaseSettings):
    """Sync agent settings; precedence: env var > .env file > default."""

    model_config = SettingsConfigDict(
        env_prefix="RELAY_CLIENT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ── Relay ──
    BASE_URL: str = ""
    SESSION_ID: str = ""

    # ── Loop cadence (seconds) ──
    PUSH_INTERVAL_SECONDS: float = 1.0
    EVENT_PUSH_INTERVAL_SECONDS: float = 0.7
    POLL_INTERVAL_SECONDS: float = 2.0
    SCAN_INTERVAL_SECONDS: float = 3.0

    # ── Safety alerts ──
    SAFETY_COOLDOWN_SECONDS: float = 30.0
    COOLDOWN_PER_TRIGGER: bool = False
    SEEN_KEYS_CAPACITY: int = 300

    # ── Network ──
    POLL_TIMEOUT_SECONDS: float = 5.0
    POST_TIMEOUT_SECONDS: float = 10.0
    RETRY_DELAYS_SECONDS: List[float] = [0.5, 1.0, 2.0]
    STOP_GRACE_SECONDS: float = 5.0


@lru_cache()
def get_client_settings() -> ClientSettings:
    """Cached settings singleton."""
    return ClientSettings()
