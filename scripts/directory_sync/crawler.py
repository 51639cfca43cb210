"""Full-crawl driver.

The orchestrator does one page per call and never retries. ``Crawler`` is
the caller that follows the token chains to completion: roots first, then
each workspace's children, then entitlements and grants for everything
found. Retryable outcomes are retried with exponential backoff; anything
else aborts the crawl.
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Callable, Iterator, Optional

from scripts.directory_sync.context import SyncContext, background
from scripts.directory_sync.orchestrator import SyncOrchestrator, SyncResult
from scripts.directory_sync.outcomes import ErrorOutcome, RateLimitSignal, SyncError
from scripts.directory_sync.resources import (
    ENTERPRISE_ROLE,
    IDP_GROUP,
    USER,
    USER_GROUP,
    WORKSPACE,
    WORKSPACE_ROLE,
    Resource,
)

logger = logging.getLogger("directory_sync.crawler")

# USER is a root for Enterprise Grid users that belong to no workspace.
ROOT_TYPES = (WORKSPACE, ENTERPRISE_ROLE, IDP_GROUP, USER)
CHILD_TYPES = {WORKSPACE: (USER, USER_GROUP, WORKSPACE_ROLE)}

MAX_BACKOFF_SECONDS = 60.0

# emit(kind, record) where kind is "resource", "entitlement" or "grant"
Emitter = Callable[[str, Any], None]


class CrawlAborted(SyncError):
    """A page failed with a terminal outcome, or retries ran out."""

    def __init__(self, outcome: ErrorOutcome, operation: str, resource_type: str) -> None:
        self.outcome = outcome
        self.operation = operation
        self.resource_type = resource_type
        super().__init__(f"{operation} {resource_type}: {outcome.message}")


def backoff_delay(
    attempt: int,
    base_seconds: float = 1.0,
    rate_limit: Optional[RateLimitSignal] = None,
    now: Optional[datetime] = None,
) -> float:
    """Seconds to wait before retry ``attempt``.

    Honors the upstream reset time when one was reported, otherwise doubles
    from ``base_seconds``. Never more than 60s.
    """
    if rate_limit is not None and rate_limit.reset_at is not None:
        now = now or datetime.now(timezone.utc)
        delay = (rate_limit.reset_at - now).total_seconds()
    else:
        delay = base_seconds * (2 ** attempt)
    return min(max(delay, 0.0), MAX_BACKOFF_SECONDS)


class Crawler:
    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        emit: Emitter,
        max_retries: int = 3,
        backoff_base_seconds: float = 1.0,
        resource_types: Optional[list[str]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.orchestrator = orchestrator
        self.emit = emit
        self.max_retries = max_retries
        self.backoff_base_seconds = backoff_base_seconds
        self.sleep = sleep
        available = orchestrator.resource_types
        self.resource_types = [t for t in (resource_types or available) if t in available]

    def run(self, ctx: Optional[SyncContext] = None) -> dict[str, int]:
        """Crawl everything. Returns {"<kind>:<resource_type>": records_emitted}."""
        ctx = ctx or background()
        counts: Counter = Counter()
        started = time.monotonic()

        resources: list[Resource] = []
        for root in ROOT_TYPES:
            children = [c for c in CHILD_TYPES.get(root, ()) if c in self.resource_types]
            if root not in self.resource_types and not children:
                continue
            if root not in self.orchestrator.resource_types:
                continue
            for parent in self._list_all(ctx, root, None):
                if root in self.resource_types:
                    resources.append(parent)
                    self._emit("resource", parent, counts)
                for child_type in children:
                    for child in self._list_all(ctx, child_type, parent):
                        resources.append(child)
                        self._emit("resource", child, counts)

        for resource in resources:
            result = self._call(
                "entitlements", resource.resource_type,
                lambda _token, r=resource: self.orchestrator.entitlements(r, ctx=ctx), "",
            )
            for entitlement in result.items:
                self._emit("entitlement", entitlement, counts, resource.resource_type)
            for grant_page in self._pages(
                "grants", resource.resource_type,
                lambda token, r=resource: self.orchestrator.grants(r, token, ctx=ctx),
            ):
                for grant in grant_page:
                    self._emit("grant", grant, counts, resource.resource_type)

        logger.info(
            "Crawl complete",
            extra={
                "records": sum(counts.values()),
                "duration_s": round(time.monotonic() - started, 3),
            },
        )
        return dict(counts)

    def _list_all(
        self,
        ctx: SyncContext,
        resource_type: str,
        parent: Optional[Resource],
    ) -> Iterator[Resource]:
        parent_id = parent.id if parent else None
        for items in self._pages(
            "list", resource_type,
            lambda token: self.orchestrator.list(resource_type, parent_id, token, ctx=ctx),
        ):
            yield from items

    def _pages(
        self,
        operation: str,
        resource_type: str,
        call: Callable[[str], SyncResult],
    ) -> Iterator[list[Any]]:
        token = ""
        while True:
            result = self._call(operation, resource_type, call, token)
            yield result.items
            if not result.next_token:
                return
            if result.next_token == token:
                raise SyncError(f"{operation} {resource_type}: continuation token did not advance")
            token = result.next_token

    def _call(
        self,
        operation: str,
        resource_type: str,
        call: Callable[[str], SyncResult],
        token: str,
    ) -> SyncResult:
        attempt = 0
        while True:
            result = call(token)
            if result.ok:
                return result
            outcome = result.outcome
            if not outcome.retryable or attempt >= self.max_retries:
                logger.error(
                    "Giving up on %s %s after %d attempts: %s",
                    operation, resource_type, attempt + 1, outcome.message,
                    extra={"resource_type": resource_type, "outcome": outcome.category.value},
                )
                raise CrawlAborted(outcome, operation, resource_type)
            delay = backoff_delay(attempt, self.backoff_base_seconds, outcome.rate_limit)
            logger.warning(
                "%s %s: %s, sleeping %.1fs (attempt %d)",
                operation, resource_type, outcome.category.value, delay, attempt,
                extra={"resource_type": resource_type, "attempt": attempt},
            )
            self.sleep(delay)
            attempt += 1

    def _emit(self, kind: str, record: Any, counts: Counter, resource_type: str = "") -> None:
        counts[f"{kind}:{resource_type or record.resource_type}"] += 1
        self.emit(kind, record)
