"""Cancellation and deadline context passed to every crawl operation."""

from __future__ import annotations

import threading
import time
from typing import Optional

from scripts.directory_sync.outcomes import SyncCancelled


class SyncContext:
    """Cooperative cancellation: checked between upstream calls."""

    def __init__(self, deadline: Optional[float] = None) -> None:
        # deadline is a time.monotonic() value
        self.deadline = deadline
        self._cancelled = threading.Event()

    @classmethod
    def with_timeout(cls, seconds: float) -> "SyncContext":
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def remaining(self) -> Optional[float]:
        if self.deadline is None:
            return None
        return max(self.deadline - time.monotonic(), 0.0)

    def check(self) -> None:
        """Raise ``SyncCancelled`` if the caller gave up."""
        if self._cancelled.is_set():
            raise SyncCancelled("operation cancelled by caller")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise SyncCancelled("operation deadline exceeded")


def background() -> SyncContext:
    """A context that is never cancelled and has no deadline."""
    return SyncContext()
