"""
Request middleware for the relay HTTP surface.

Every response gets ``X-Request-ID`` (taken from the request when the
client sent one) and ``X-Process-Time``. Every relay route also gets
no-store cache headers; only the API docs may be cached.

Log level per request:
    status >= 400         WARNING
    polling route         DEBUG
    docs / liveness       not logged
    everything else       INFO
"""

from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from festival_relay.core.logging_config import set_request_context

logger = logging.getLogger(__name__)

POLLING_PREFIXES = (
    "/friends/has-safety-alert",
    "/friends/safety-alerts",
    "/session/list",
    "/overlay/",
)
CACHEABLE_PREFIXES = ("/docs", "/redoc", "/openapi", "/favicon")
UNLOGGED_PREFIXES = ("/docs", "/redoc", "/openapi", "/favicon", "/health/live")

NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def _is_polling(path: str) -> bool:
    return path.startswith(POLLING_PREFIXES)


def _log_level(path: str, status_code: int) -> int:
    if status_code >= 400:
        return logging.WARNING
    if _is_polling(path):
        return logging.DEBUG
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Correlation id, timing, cache headers and one log line per request."""

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:16]
        client_ip = request.client.host if request.client else "unknown"
        set_request_context(request_id=request_id, client_ip=client_ip, method=request.method, endpoint=path)

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            elapsed = (time.perf_counter() - started) * 1000
            logger.error(
                "%s %s failed after %.1fms [%s]", request.method, path, elapsed, client_ip,
                extra={"duration_ms": elapsed, "status_code": 500, "endpoint": path},
            )
            set_request_context()
            raise
        elapsed = (time.perf_counter() - started) * 1000

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{elapsed:.1f}ms"
        if not path.startswith(CACHEABLE_PREFIXES):
            response.headers.update(NO_STORE_HEADERS)

        if not path.startswith(UNLOGGED_PREFIXES):
            logger.log(
                _log_level(path, response.status_code),
                "%s %s → %d (%.1fms) [%s]",
                request.method, path, response.status_code, elapsed, client_ip,
                extra={"duration_ms": elapsed, "status_code": response.status_code, "endpoint": path},
            )

        set_request_context()
        return response
