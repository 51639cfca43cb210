"""Tests for the populate-once enrichment cache."""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from scripts.directory_sync.cache import (
    DirectoryEntryCache,
    PopulationState,
    ReadWriteLock,
    key_by_id,
)
from scripts.directory_sync.context import SyncContext
from scripts.directory_sync.outcomes import (
    CachePopulationFailed,
    OutcomeCategory,
    RawFailureSignal,
    UpstreamError,
)

PAGES = {
    "": ([{"id": "U1"}, {"id": "U2"}], "p2"),
    "p2": ([{"id": "U3"}], ""),
}


class RecordingFetcher:
    def __init__(self, pages=PAGES, delay: float = 0.0) -> None:
        self.pages = pages
        self.delay = delay
        self.cursors: list[str] = []
        self.fail_at: dict[str, int] = {}
        self._lock = threading.Lock()

    def __call__(self, ctx: SyncContext, cursor: str):
        with self._lock:
            self.cursors.append(cursor)
            failures = self.fail_at.get(cursor, 0)
            if failures:
                self.fail_at[cursor] = failures - 1
        if failures:
            raise UpstreamError(RawFailureSignal(status_code=503), "listing admin users")
        if self.delay:
            time.sleep(self.delay)
        return self.pages[cursor]


class TestPopulation:
    def test_first_get_populates_from_every_page(self):
        fetch = RecordingFetcher()
        cache = DirectoryEntryCache(fetch, key_by_id)
        record, found = cache.get("U3")
        assert found
        assert record == {"id": "U3"}
        assert fetch.cursors == ["", "p2"]
        assert cache.state is PopulationState.POPULATED
        assert len(cache) == 3

    def test_populated_cache_is_never_repopulated(self):
        fetch = RecordingFetcher()
        cache = DirectoryEntryCache(fetch, key_by_id)
        cache.get("U1")
        cache.get("U2")
        cache.populate()
        assert fetch.cursors == ["", "p2"]

    def test_unknown_principal_is_not_found(self):
        cache = DirectoryEntryCache(RecordingFetcher(), key_by_id)
        assert cache.get("U404") == (None, False)

    def test_concurrent_gets_populate_once(self):
        fetch = RecordingFetcher(delay=0.05)
        cache = DirectoryEntryCache(fetch, key_by_id)
        barrier = threading.Barrier(8)

        def lookup(principal_id):
            barrier.wait()
            return cache.get(principal_id)

        ids = ["U1", "U2", "U3"] * 2 + ["U1", "U2"]
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lookup, ids))

        assert fetch.cursors.count("") == 1
        assert fetch.cursors == ["", "p2"]
        assert all(found for _, found in results)
        assert [record["id"] for record, _ in results] == ids


class TestFailure:
    def test_failure_on_second_page_leaves_cache_unpopulated(self):
        fetch = RecordingFetcher()
        fetch.fail_at["p2"] = 1
        cache = DirectoryEntryCache(fetch, key_by_id)

        with pytest.raises(CachePopulationFailed) as excinfo:
            cache.get("U1")
        assert excinfo.value.outcome.category is OutcomeCategory.UNAVAILABLE
        assert cache.state is PopulationState.UNPOPULATED
        assert len(cache) == 0

        # Retried from the first page, nothing reused from the failed attempt.
        record, found = cache.get("U1")
        assert found
        assert fetch.cursors == ["", "p2", "", "p2"]

    def test_cancelled_context_commits_nothing(self):
        fetch = RecordingFetcher()
        cache = DirectoryEntryCache(fetch, key_by_id)
        ctx = SyncContext()
        ctx.cancel()

        with pytest.raises(CachePopulationFailed) as excinfo:
            cache.get("U1", ctx)
        assert excinfo.value.outcome.category is OutcomeCategory.DEADLINE_EXCEEDED
        assert fetch.cursors == []
        assert cache.state is PopulationState.UNPOPULATED

    def test_unexpected_errors_propagate_unwrapped(self):
        def broken(ctx, cursor):
            raise RuntimeError("boom")

        cache = DirectoryEntryCache(broken, key_by_id)
        with pytest.raises(RuntimeError):
            cache.get("U1")
        assert cache.state is PopulationState.UNPOPULATED


class TestReadWriteLock:
    def test_readers_share_the_lock(self):
        lock = ReadWriteLock()
        lock.acquire_read()
        lock.acquire_read()
        lock.release_read()
        lock.release_read()

    def test_writer_waits_for_readers(self):
        lock = ReadWriteLock()
        acquired = threading.Event()

        def writer():
            with lock.write_locked():
                acquired.set()

        lock.acquire_read()
        thread = threading.Thread(target=writer)
        thread.start()
        assert not acquired.wait(0.1)
        lock.release_read()
        thread.join(timeout=2)
        assert acquired.is_set()
