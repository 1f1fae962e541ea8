"""
FastAPI application entry point.

Run with:
    uvicorn festival_relay.main:app --reload --port 3000

Or via the console script:
    festival-relay
"""

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# ── Core ──
from festival_relay import runtime
from festival_relay.core.config import settings
from festival_relay.core.logging_config import setup_logging, get_logger
from festival_relay.core.errors import register_error_handlers
from festival_relay.core.middleware import RequestLoggingMiddleware
from festival_relay.core.health import run_health_check

# ── API routers ──
from festival_relay.api.v1.overlay import router as overlay_router
from festival_relay.api.v1.sessions import router as session_router
from festival_relay.api.v1.safety import router as safety_router
from festival_relay.api.v1.testing import router as testing_router

setup_logging()
logger = get_logger(__name__)


# ── Application lifespan (startup / shutdown) ──

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the alert sweeper; stop it on shutdown."""
    logger.info(
        "Starting %s v%s [%s]",
        settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT,
    )
    await runtime.sweeper.start()
    yield
    await runtime.sweeper.stop()
    logger.info("Shutting down %s", settings.APP_NAME)


# ── Create application ──

app = FastAPI(
    title=settings.APP_NAME,
    description=(
        "Relay between festival phones and display glasses. "
        "Merges hearing, friends and song overlay fragments per session, "
        "renders them to connected displays, and fans out friend "
        "safety alerts with queued delivery for polling devices."
    ),
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# ── Middleware (last added runs first) ──

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS if not settings.CORS_ALLOW_ALL else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

# ── Error handlers ──
register_error_handlers(app)

# ── Register routers ──
app.include_router(overlay_router)
app.include_router(session_router)
app.include_router(safety_router)
app.include_router(testing_router)


# ── Service info & probes ──

@app.get("/", tags=["root"])
async def root():
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "endpoints": {
            "hearingOverlay": "/overlay/hearing",
            "friendsOverlay": "/overlay/friends",
            "sessionList": "/session/list",
            "safetyAlert": "/friends/safety-alert",
            "hasSafetyAlert": "/friends/has-safety-alert",
            "safetyAlerts": "/friends/safety-alerts",
            "songResult": "/song/result",
            "transcription": "/transcription",
            "glassesTest": "/test/glasses",
            "display": "/display/{sessionId}",
        },
        "docs": "/docs",
    }


@app.get("/health", tags=["health"])
async def health_check():
    """Deep health probe — checks all relay components."""
    report = await run_health_check()
    body = report.to_dict()
    body["activeSessions"] = runtime.registry.count()
    return body


@app.get("/health/live", tags=["health"])
async def liveness():
    """Process is up; does not touch relay state."""
    return {"status": "alive"}


@app.get("/health/ready", tags=["health"])
async def readiness():
    """503 while any component is unhealthy."""
    report = await run_health_check()
    if report.status.value == "unhealthy":
        return JSONResponse(status_code=503, content=report.to_dict())
    return report.to_dict()


def run() -> None:
    uvicorn.run(
        "festival_relay.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.RELOAD,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
