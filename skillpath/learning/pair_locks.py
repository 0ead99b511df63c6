"""
Per (learner, skill) lock registry.

Serializes the read-aggregate-write sequence for one pair inside the process
while leaving different pairs fully independent. Locks are reference counted
and dropped once no thread holds or waits on them, so the registry does not
grow with the number of pairs ever seen.
"""

from __future__ import annotations

import threading
from collections.abc import Generator
from contextlib import contextmanager

from loguru import logger

from skillpath.core.errors import ConcurrencyConflict


class _PairLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class PairLockRegistry:
    """Thread-safe registry of one lock per (learner_id, skill_code)."""

    def __init__(self, timeout_seconds: float = 5.0):
        self.timeout_seconds = timeout_seconds
        self._guard = threading.Lock()
        self._locks: dict[tuple[str, str], _PairLock] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, learner_id: str, skill_code: str, timeout: float | None = None) -> Generator[None, None, None]:
        """
        Hold the lock for a pair.

        Raises:
            ConcurrencyConflict: if the lock is not acquired within the timeout
        """
        key = (learner_id, skill_code)
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _PairLock()
            entry.users += 1

        wait = self.timeout_seconds if timeout is None else timeout
        acquired = entry.lock.acquire(timeout=wait)
        try:
            if not acquired:
                logger.warning(f"Lock wait exceeded {wait}s for ({learner_id}, {skill_code})")
                raise ConcurrencyConflict(learner_id, skill_code, f"lock not acquired within {wait}s")
            yield
        finally:
            if acquired:
                entry.lock.release()
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    self._locks.pop(key, None)
