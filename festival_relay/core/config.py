"""
Environment configuration — single source of truth for relay settings.

Uses pydantic-settings for type-safe config with .env file support.
All values have sensible defaults for local development.

Usage:
    from festival_relay.core.config import settings
    print(settings.ALERT_LONG_WINDOW_MS)
"""

from __future__ import annotations

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Relay server settings loaded from environment variables or .env file.

    Precedence: env var > .env file > default value
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ── Application ──
    APP_NAME: str = "Festival Overlay Relay"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development | staging | production
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"  # DEBUG | INFO | WARNING | ERROR | CRITICAL
    LOG_FORMAT: str = "auto"  # auto (json in production) | json | pretty

    # ── Server ──
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    RELOAD: bool = False

    # ── CORS ──
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]
    CORS_ALLOW_ALL: bool = True

    # ── Safety alerts ──
    ALERT_SHORT_WINDOW_MS: int = 30_000    # has-safety-alert
    ALERT_LONG_WINDOW_MS: int = 300_000    # safety-alerts list
    ALERT_SWEEP_INTERVAL_SECONDS: float = 60.0  # 0 disables the sweeper
    SAFETY_TRIGGER_WORDS: List[str] = ["banana", "help", "emergency", "sos", "danger"]

    # ── Display ──
    DISPLAY_MAX_LINE_CHARS: int = 48

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()


settings = get_settings()
