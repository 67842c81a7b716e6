"""Per-package mutual exclusion."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class KeyedLock:
    """One lock per package id.

    Ids are compared case-insensitively. Locks are created lazily and never
    discarded.
    """

    def __init__(self) -> None:
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_lock = threading.Lock()

    def _get_lock(self, key: str) -> threading.Lock:
        normalized = key.strip().lower()
        with self._locks_lock:
            if normalized not in self._locks:
                self._locks[normalized] = threading.Lock()
            return self._locks[normalized]

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """Hold the lock for ``key`` for the duration of the block."""
        lock = self._get_lock(key)
        with lock:
            yield

    def is_held(self, key: str) -> bool:
        """Check whether the lock for ``key`` is currently held."""
        return self._get_lock(key).locked()
