"""
Logging setup for the relay and the device agent.

Two output formats share one handler:

    json    one object per line, for log shipping in production
    pretty  coloured single lines with the request id and session tag

``LOG_FORMAT=auto`` picks json when ``ENVIRONMENT=production``.

Relay code passes session-level fields through ``extra``; the JSON
formatter lifts the known ones into a ``relay`` block and the pretty
formatter prints the session id next to the logger name:

    logger.info("Alert queued", extra={"target_session_id": "s2"})
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from festival_relay.core.config import settings

_request_context: ContextVar[Dict[str, Any]] = ContextVar("relay_request_context", default={})

RELAY_FIELDS = (
    "session_id",
    "target_session_id",
    "user_id",
    "trigger_word",
    "broadcast_count",
    "duration_ms",
    "status_code",
    "endpoint",
)

_NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "websockets")


def set_request_context(**fields: Any) -> None:
    """Replace the request context; called with no arguments it clears it."""
    _request_context.set(fields)


def get_request_context() -> Dict[str, Any]:
    return _request_context.get()


def _relay_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {key: getattr(record, key) for key in RELAY_FIELDS if hasattr(record, key)}


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "service": settings.APP_NAME,
        }
        request = get_request_context()
        if request:
            entry["request"] = request
        fields = _relay_fields(record)
        if fields:
            entry["relay"] = fields
        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            entry["error"] = {
                "type": type(exc).__name__,
                "message": str(exc),
                "trace": self.formatException(record.exc_info),
            }
        return json.dumps(entry, default=str, ensure_ascii=False)


class PrettyFormatter(logging.Formatter):
    """Coloured console output for local runs."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[2;36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[1;31m",
    }
    RESET = "\033[0m"

    def __init__(self, use_color: bool = True) -> None:
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        level = f"{record.levelname:<7}"
        if self.use_color:
            level = f"{self.LEVEL_COLORS.get(record.levelno, '')}{level}{self.RESET}"

        tags = []
        request_id = get_request_context().get("request_id")
        if request_id:
            tags.append(request_id[:8])
        session_id = getattr(record, "session_id", None) or getattr(record, "target_session_id", None)
        if session_id:
            tags.append(f"session={session_id}")
        tag = f" [{' '.join(tags)}]" if tags else ""

        line = f"{self.formatTime(record, '%H:%M:%S')} {level} {record.name}{tag}: {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _use_json() -> bool:
    fmt = settings.LOG_FORMAT.strip().lower()
    if fmt == "json":
        return True
    if fmt == "pretty":
        return False
    return settings.is_production


def setup_logging(level: Optional[str] = None) -> None:
    """Install a single stdout handler on the root logger."""
    root = logging.getLogger()
    level_name = (level or settings.LOG_LEVEL).upper()
    root.setLevel(getattr(logging, level_name, logging.INFO))

    handler = logging.StreamHandler(sys.stdout)
    if _use_json():
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(PrettyFormatter(use_color=sys.stdout.isatty()))

    root.handlers = [handler]

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
