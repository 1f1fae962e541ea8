"""
sweeper.py — Periodic pruning of alert queues nobody is polling.

Retrieval already prunes a queue whenever its session polls. Sessions
that stop polling (phone asleep, app killed) would otherwise keep their
events forever, so this loop drops anything older than the long window.

Usage:
    sweeper = AlertQueueSweeper(queue)
    await sweeper.start()
    ...
    await sweeper.stop()
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from festival_relay.core.config import settings
from festival_relay.safety.alert_queue import SafetyAlertQueue

logger = logging.getLogger(__name__)


class AlertQueueSweeper:
    """Background task that calls ``prune_all`` on a fixed interval."""

    def __init__(
        self,
        queue: SafetyAlertQueue,
        interval_seconds: Optional[float] = None,
        max_age_ms: Optional[int] = None,
    ):
        self._queue = queue
        self.interval_seconds = (
            interval_seconds if interval_seconds is not None
            else settings.ALERT_SWEEP_INTERVAL_SECONDS
        )
        self.max_age_ms = max_age_ms if max_age_ms is not None else settings.ALERT_LONG_WINDOW_MS
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self.sweeps = 0
        self.removed_total = 0

    @property
    def enabled(self) -> bool:
        return self.interval_seconds > 0

    @property
    def running(self) -> bool:
        return self._running and self._task is not None and not self._task.done()

    async def start(self):
        """Start the sweep loop; no-op when disabled or already running."""
        if self._running or not self.enabled:
            return
        self._running = True
        self._task = asyncio.create_task(self._run())
        logger.info("Alert queue sweeper started (every %.0fs)", self.interval_seconds)

    async def stop(self):
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Alert queue sweeper stopped")

    def sweep_once(self) -> int:
        removed = self._queue.prune_all(self.max_age_ms)
        self.sweeps += 1
        self.removed_total += removed
        if removed:
            logger.info("Swept %d expired safety alerts", removed)
        return removed

    async def _run(self):
        while self._running:
            try:
                await asyncio.sleep(self.interval_seconds)
                self.sweep_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.exception("Alert sweep error: %s", e)

    def status(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "running": self.running,
            "interval_seconds": self.interval_seconds,
            "sweeps": self.sweeps,
            "removed_total": self.removed_total,
        }
