"""Shared fixtures: fresh relay state per test, asyncio backend for anyio."""

from __future__ import annotations

import pytest

from festival_relay.runtime import reset_runtime


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _clear_runtime():
    """Clean in-memory relay stores before and after each test."""
    reset_runtime()
    yield
    reset_runtime()
