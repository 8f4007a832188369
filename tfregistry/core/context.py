"""Cancellation scope threaded through one materialization call.

A ``CancelScope`` carries a single deadline and a cancel flag. The cache
checks it between stages, the fetcher kills ``git`` when it fires, and
storage calls get the remaining time as their per-call timeout.
"""

from __future__ import annotations

import threading
import time


class OperationCancelled(RuntimeError):
    """Raised when a scope has been cancelled or its deadline has passed."""


class CancelScope:
    """Deadline plus explicit cancellation, safe to share across threads.

    Parameters
    ----------
    timeout:
        Seconds from now until the deadline. ``None`` means no deadline.
    """

    def __init__(self, timeout: float | None = None) -> None:
        self._deadline = time.monotonic() + timeout if timeout is not None else None
        self._cancelled = threading.Event()
        self._reason = ""

    def cancel(self, reason: str = "cancelled") -> None:
        self._reason = reason
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set() or self.expired

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self) -> float | None:
        """Seconds left before the deadline (never negative), or None."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def check(self, what: str = "operation") -> None:
        """Raise ``OperationCancelled`` if the scope is no longer live."""
        if self._cancelled.is_set():
            raise OperationCancelled(f"{what} {self._reason}")
        if self.expired:
            raise OperationCancelled(f"{what} exceeded its deadline")
