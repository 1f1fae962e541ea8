"""
Relay exceptions and the FastAPI handlers that turn them into JSON.

Server side:
    ValidationError     400, request rejected whole, nothing stored
    TransportError      display push failed; logged and evicted, never
                        surfaces over HTTP

Device side (``festival_relay.client``):
    NetworkError        send or poll failed; retried, then dropped
    NotConfiguredError  missing base URL or session; becomes the status text

Error body:

    {"error": {"code": "VALIDATION_ERROR", "message": "...", "status": 400,
               "details": {"field": "riskLevel"}}}

Outside production the body also carries the request path and method.
"""

from __future__ import annotations

import logging
import traceback
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from festival_relay.core.config import settings

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Exceptions
# ═══════════════════════════════════════════════════════════════════════════

class RelayError(Exception):
    """Base class; subclasses set ``status_code`` and ``error_code``."""

    status_code = 500
    error_code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = dict(details or {})


class ValidationError(RelayError):
    status_code = 400
    error_code = "VALIDATION_ERROR"

    def __init__(self, message: str, *, field: Optional[str] = None, **extra: Any):
        details = dict(extra)
        if field:
            details["field"] = field
        super().__init__(message, details)


class TransportError(RelayError):
    status_code = 502
    error_code = "TRANSPORT_ERROR"

    def __init__(self, session_id: str, reason: str = ""):
        super().__init__(f"display {session_id} unreachable: {reason}", {"session_id": session_id})
        self.session_id = session_id


class NetworkError(RelayError):
    status_code = 503
    error_code = "NETWORK_ERROR"

    def __init__(self, operation: str, reason: str = "", *, status_code: Optional[int] = None):
        super().__init__(
            f"{operation} failed: {reason}",
            {"operation": operation, "http_status": status_code},
        )
        self.operation = operation
        self.http_status = status_code


class NotConfiguredError(RelayError):
    status_code = 412
    error_code = "NOT_CONFIGURED"

    def __init__(self, status: str):
        super().__init__(status)
        self.status = status


# ═══════════════════════════════════════════════════════════════════════════
# Responses
# ═══════════════════════════════════════════════════════════════════════════

def error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    error: Dict[str, Any] = {"code": code, "message": message, "status": status_code}
    if details:
        error["details"] = details
    if not settings.is_production:
        error["path"] = request.url.path
        error["method"] = request.method
    return JSONResponse(status_code=status_code, content={"error": error})


def _validation_fields(exc: RequestValidationError) -> List[Dict[str, str]]:
    fields = []
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query")]
        fields.append({"field": ".".join(loc), "message": err.get("msg", "")})
    return fields


def register_error_handlers(app: FastAPI) -> None:

    @app.exception_handler(RelayError)
    async def relay_error(request: Request, exc: RelayError):
        level = logging.WARNING if exc.status_code < 500 else logging.ERROR
        logger.log(level, "%s %s: %s %s", request.method, request.url.path, exc.error_code, exc.message)
        return error_response(request, exc.status_code, exc.error_code, exc.message, exc.details)

    # Pydantic failures use the same 400 envelope as hand-raised ones
    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        fields = _validation_fields(exc)
        logger.warning("%s %s: invalid payload %s", request.method, request.url.path, fields)
        return error_response(request, 400, "VALIDATION_ERROR", "Invalid request payload", {"fields": fields})

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.critical("Unhandled %s on %s", type(exc).__name__, request.url.path, exc_info=exc)
        if settings.DEBUG:
            return error_response(
                request, 500, "INTERNAL_ERROR", str(exc),
                {"traceback": traceback.format_exception(type(exc), exc, exc.__traceback__)},
            )
        return error_response(request, 500, "INTERNAL_ERROR", "Internal server error")
