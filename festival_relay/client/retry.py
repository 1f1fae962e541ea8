"""
Bounded retry for device network calls.

``perform_with_retry`` makes one attempt per entry in ``delays``. After a
failed attempt it waits that entry's delay before the next one; the last
failure is raised without waiting. With the default ``(0.5, 1.0, 2.0)``
that is three attempts separated by 0.5 s and 1.0 s.

A stop event is checked between attempts only. An attempt in flight
always finishes; a stop requested during the wait aborts the sequence
and re-raises the last error.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

from festival_relay.core.errors import NetworkError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_DELAYS = (0.5, 1.0, 2.0)


async def _wait_or_stop(delay: float, stop_event: Optional[asyncio.Event]) -> bool:
    """Sleep ``delay`` seconds; returns True if ``stop_event`` fired first."""
    if stop_event is None:
        await asyncio.sleep(delay)
        return False
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=delay)
        return True
    except asyncio.TimeoutError:
        return False


async def perform_with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    delays: Sequence[float] = DEFAULT_DELAYS,
    stop_event: Optional[asyncio.Event] = None,
    name: str = "request",
) -> T:
    """Run ``operation`` until it succeeds or the retry budget is spent."""
    last_error: Optional[NetworkError] = None
    attempts = len(delays)

    for index, delay in enumerate(delays):
        try:
            return await operation()
        except NetworkError as e:
            last_error = e
            if index == attempts - 1:
                break
            logger.debug(
                "%s failed: %s, retrying in %.1fs (attempt %d/%d)",
                name, e.message, delay, index + 1, attempts,
            )
            if await _wait_or_stop(delay, stop_event):
                logger.debug("%s retry aborted by stop", name)
                break

    if last_error is None:
        raise NetworkError(name, "no attempts made")
    raise last_error
