"""
Per-key locking for the in-memory relay stores.

Operations on the same session id are serialised; unrelated sessions
never contend. The guard lock only protects the lock table itself and is
held for a dict update, never across store work.

Entries are reference counted: a key's lock exists only while some
caller is waiting on or holding it, so the table stays as small as the
number of keys in use right now.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List


class KeyedLocks:
    """One ``threading.Lock`` per key in use, dropped when the last user leaves."""

    def __init__(self) -> None:
        # key -> [lock, users]
        self._locks: Dict[str, List] = {}
        self._guard = threading.Lock()

    def _acquire_entry(self, key: str) -> threading.Lock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._locks[key] = entry
            entry[1] += 1
            return entry[0]

    def _release_entry(self, key: str) -> None:
        with self._guard:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        lock = self._acquire_entry(key)
        try:
            with lock:
                yield
        finally:
            self._release_entry(key)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
