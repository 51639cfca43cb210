"""Populate-once enrichment cache.

Some resource streams have to be cross-referenced against a second,
independently paginated stream (for example Slack's ``users.list`` against
``admin.users.list``, which is the only source for SSO and 2FA status). The
cache walks the second stream exactly once per handler instance, on first
lookup, and serves every later lookup from memory.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from enum import Enum
from typing import Any, Callable, Generator, Generic, Optional, TypeVar

from scripts.directory_sync.context import SyncContext, background
from scripts.directory_sync.outcomes import (
    CachePopulationFailed,
    SyncError,
    outcome_for_error,
)

logger = logging.getLogger("directory_sync.cache")

T = TypeVar("T")

# fetch_page(ctx, cursor) -> (records, next_cursor)
PageFetcher = Callable[[SyncContext, str], tuple]


class ReadWriteLock:
    """Read-preferring readers-writer lock.

    Readers only wait while a writer holds the lock; a waiting writer does
    not block new readers.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            while self._writer or self._readers > 0:
                self._cond.wait()
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read_locked(self) -> Generator[None, None, None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_locked(self) -> Generator[None, None, None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


class PopulationState(str, Enum):
    UNPOPULATED = "unpopulated"
    POPULATING = "populating"
    POPULATED = "populated"


class DirectoryEntryCache(Generic[T]):
    """Principal id -> enriched record, filled by one full sub-crawl."""

    def __init__(
        self,
        fetch_page: PageFetcher,
        key: Callable[[T], str],
        name: str = "directory",
    ) -> None:
        self._fetch_page = fetch_page
        self._key = key
        self._name = name
        self._lock = ReadWriteLock()
        self._state = PopulationState.UNPOPULATED
        self._entries: dict[str, T] = {}

    @property
    def state(self) -> PopulationState:
        with self._lock.read_locked():
            return self._state

    def __len__(self) -> int:
        with self._lock.read_locked():
            return len(self._entries)

    def get(self, principal_id: str, ctx: Optional[SyncContext] = None) -> tuple[Optional[T], bool]:
        """Look up ``principal_id``, populating the cache on first use.

        Raises ``CachePopulationFailed`` to the caller whose lookup triggered
        a failed population; the cache is left unpopulated for a later retry.
        """
        with self._lock.read_locked():
            if self._state is PopulationState.POPULATED:
                return self._lookup(principal_id)

        self.populate(ctx)

        with self._lock.read_locked():
            if self._state is not PopulationState.POPULATED:
                return None, False
            return self._lookup(principal_id)

    def populate(self, ctx: Optional[SyncContext] = None) -> None:
        ctx = ctx or background()
        with self._lock.write_locked():
            # Another caller may have populated while we waited for the lock.
            if self._state is PopulationState.POPULATED:
                return
            self._state = PopulationState.POPULATING
            logger.info("Populating %s cache", self._name)
            try:
                entries = self._crawl(ctx)
            except SyncError as exc:
                self._state = PopulationState.UNPOPULATED
                self._entries = {}
                logger.warning(
                    "Failed to populate %s cache: %s", self._name, exc,
                    extra={"outcome": outcome_for_error(exc).category.value},
                )
                raise CachePopulationFailed(outcome_for_error(exc), exc) from exc
            except BaseException:
                self._state = PopulationState.UNPOPULATED
                self._entries = {}
                raise
            self._entries = entries
            self._state = PopulationState.POPULATED
            logger.info(
                "%s cache populated", self._name,
                extra={"records": len(entries)},
            )

    def _crawl(self, ctx: SyncContext) -> dict[str, T]:
        # Built into a local map so a failure never leaves partial entries.
        entries: dict[str, T] = {}
        cursor = ""
        while True:
            ctx.check()
            records, cursor = self._fetch_page(ctx, cursor)
            for record in records:
                entries[self._key(record)] = record
            if not cursor:
                return entries

    def _lookup(self, principal_id: str) -> tuple[Optional[T], bool]:
        record = self._entries.get(principal_id)
        return record, record is not None


def key_by_id(record: Any) -> str:
    return record["id"]
