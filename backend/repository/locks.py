"""Per-key lock registry used to serialise commits on overlapping resources."""

from __future__ import annotations

import time
from contextlib import contextmanager
from threading import Lock
from typing import Iterable, Iterator, Optional


class LockAcquisitionTimeout(TimeoutError):
    """Raised when a key lock is not acquired before the deadline."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Timed out waiting for lock on {key}")
        self.key = key


class _KeyLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = Lock()
        self.users = 0


class KeyedLockRegistry:
    """Hands out one lock per key; sets of keys are taken in sorted order.

    A key stays registered only while some caller holds or waits for it.
    """

    def __init__(self) -> None:
        self._registry_lock = Lock()
        self._locks: dict[str, _KeyLock] = {}

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._locks)

    def _check_out(self, key: str) -> _KeyLock:
        with self._registry_lock:
            entry = self._locks.get(key)
            if entry is None:
                entry = _KeyLock()
                self._locks[key] = entry
            entry.users += 1
            return entry

    def _check_in(self, key: str) -> None:
        with self._registry_lock:
            entry = self._locks[key]
            entry.users -= 1
            if entry.users == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, keys: Iterable[str], timeout: Optional[float] = None) -> Iterator[list[str]]:
        ordered_keys = sorted(set(keys))
        deadline = None if timeout is None else time.monotonic() + timeout
        checked_out: list[str] = []
        acquired: list[Lock] = []
        try:
            for key in ordered_keys:
                lock = self._check_out(key).lock
                checked_out.append(key)
                if deadline is None:
                    lock.acquire()
                else:
                    remaining = max(0.0, deadline - time.monotonic())
                    if not lock.acquire(timeout=remaining):
                        raise LockAcquisitionTimeout(key)
                acquired.append(lock)
            yield ordered_keys
        finally:
            for lock in reversed(acquired):
                lock.release()
            for key in reversed(checked_out):
                self._check_in(key)
