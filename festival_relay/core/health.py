"""
Health report for the relay process.

Components:
    session_registry   live display count (always healthy)
    alert_queue        pending safety events; degraded past a threshold
    alert_sweeper      background pruning; degraded if enabled but stopped

Everything lives in memory, so no check can be unhealthy on its own; an
exception inside a check is the only way to get ``unhealthy``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Tuple

from festival_relay import runtime
from festival_relay.core.config import settings

logger = logging.getLogger(__name__)

# Pending events above this usually mean phones have stopped polling
QUEUE_DEGRADED_THRESHOLD = 10_000

_started_at = time.monotonic()


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


_SEVERITY = {HealthStatus.HEALTHY: 0, HealthStatus.DEGRADED: 1, HealthStatus.UNHEALTHY: 2}


@dataclass
class ComponentHealth:
    name: str
    status: HealthStatus = HealthStatus.HEALTHY
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    latency_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            d["message"] = self.message
        if self.details:
            d["details"] = self.details
        return d


@dataclass
class HealthReport:
    components: List[ComponentHealth] = field(default_factory=list)
    uptime_seconds: float = 0.0
    checked_at: str = ""

    @property
    def status(self) -> HealthStatus:
        worst = HealthStatus.HEALTHY
        for comp in self.components:
            if _SEVERITY[comp.status] > _SEVERITY[worst]:
                worst = comp.status
        return worst

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "timestamp": self.checked_at,
            "uptime_seconds": round(self.uptime_seconds, 1),
            "components": [c.to_dict() for c in self.components],
        }


# ── Checks ──

def _session_registry() -> Tuple[HealthStatus, str, Dict[str, Any]]:
    count = runtime.registry.count()
    return HealthStatus.HEALTHY, f"{count} display(s) connected", {"active_sessions": count}


def _alert_queue() -> Tuple[HealthStatus, str, Dict[str, Any]]:
    pending = runtime.alert_queue.total_pending()
    details = {"pending_events": pending}
    if pending > QUEUE_DEGRADED_THRESHOLD:
        return HealthStatus.DEGRADED, f"{pending} alerts pending", details
    return HealthStatus.HEALTHY, "Queue within bounds", details


def _alert_sweeper() -> Tuple[HealthStatus, str, Dict[str, Any]]:
    sweeper = runtime.sweeper
    if not sweeper.enabled:
        return HealthStatus.HEALTHY, "Sweeper disabled", sweeper.status()
    if sweeper.running:
        return HealthStatus.HEALTHY, "Sweeping", sweeper.status()
    return HealthStatus.DEGRADED, "Sweeper not running", sweeper.status()


CHECKS: List[Tuple[str, Callable[[], Tuple[HealthStatus, str, Dict[str, Any]]]]] = [
    ("session_registry", _session_registry),
    ("alert_queue", _alert_queue),
    ("alert_sweeper", _alert_sweeper),
]


def _run_check(name: str, check: Callable[[], Tuple[HealthStatus, str, Dict[str, Any]]]) -> ComponentHealth:
    start = time.perf_counter()
    try:
        status, message, details = check()
    except Exception as e:
        logger.exception("Health check %s failed", name)
        status, message, details = HealthStatus.UNHEALTHY, str(e), {}
    return ComponentHealth(
        name=name,
        status=status,
        message=message,
        details=details,
        latency_ms=(time.perf_counter() - start) * 1000,
    )


async def run_health_check() -> HealthReport:
    """Run every check and aggregate to the worst status."""
    return HealthReport(
        components=[_run_check(name, check) for name, check in CHECKS],
        uptime_seconds=time.monotonic() - _started_at,
        checked_at=datetime.now(timezone.utc).isoformat(),
    )
