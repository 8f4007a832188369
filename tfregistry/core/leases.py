"""In-process per-key leases.

Two callers that miss on the same key would otherwise both clone, pack and
upload. A lease serializes them inside one process; the second caller then
re-checks the store and finds the key. Across processes the race remains,
and both writes carry identical bytes.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager

from tfregistry.core.context import CancelScope

_POLL_SECONDS = 0.1


class KeyLeases:
    """Reference-counted lock per key; entries vanish when unused."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, tuple[threading.Lock, int]] = {}

    @contextmanager
    def hold(self, key: str, *, scope: CancelScope | None = None) -> Iterator[None]:
        """Block until *key*'s lease is free, then hold it for the block.

        With a *scope* the wait is bounded by it: ``OperationCancelled`` is
        raised once the scope is cancelled or its deadline passes.
        """
        lock = self._enter(key)
        try:
            _acquire(lock, scope)
        except BaseException:
            self._leave(key, lock)
            raise
        try:
            yield
        finally:
            lock.release()
            self._leave(key, lock)

    def _enter(self, key: str) -> threading.Lock:
        with self._guard:
            lock, holders = self._locks.get(key, (None, 0))
            if lock is None:
                lock = threading.Lock()
            self._locks[key] = (lock, holders + 1)
            return lock

    def _leave(self, key: str, lock: threading.Lock) -> None:
        with self._guard:
            _, holders = self._locks[key]
            if holders <= 1:
                del self._locks[key]
            else:
                self._locks[key] = (lock, holders - 1)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


def _acquire(lock: threading.Lock, scope: CancelScope | None) -> None:
    if scope is None:
        lock.acquire()
        return
    while True:
        scope.check("lease wait")
        remaining = scope.remaining()
        wait = _POLL_SECONDS if remaining is None else min(_POLL_SECONDS, remaining)
        if lock.acquire(timeout=wait):
            return
