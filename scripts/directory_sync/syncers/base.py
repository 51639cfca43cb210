"""Abstract base class for all resource syncers."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Generic, Optional, TypeVar

from scripts.directory_sync.client import SlackClient
from scripts.directory_sync.config import SlackConfig
from scripts.directory_sync.context import SyncContext
from scripts.directory_sync.outcomes import RateLimitSignal
from scripts.directory_sync.resources import Entitlement, Grant, Resource, ResourceId

logger = logging.getLogger("directory_sync.syncer")

T = TypeVar("T")


@dataclass
class SyncPage(Generic[T]):
    """Accumulator for one page of output.

    Syncers append into it as they go, so whatever was assembled before a
    failure is still there for the orchestrator to return.
    """

    items: list[T] = field(default_factory=list)
    next_token: str = ""
    rate_limit: Optional[RateLimitSignal] = None

    def add(self, item: T) -> None:
        self.items.append(item)

    def observe(self, rate_limit: Optional[RateLimitSignal]) -> None:
        if rate_limit is not None:
            self.rate_limit = rate_limit


class WorkspaceNames:
    """Workspace id -> display name, seeded while listing workspaces."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._names: dict[str, str] = {}

    def set(self, workspace_id: str, name: str) -> None:
        with self._lock:
            self._names[workspace_id] = name

    def get(self, workspace_id: str) -> str:
        with self._lock:
            return self._names.get(workspace_id, workspace_id)


class ResourceSyncer(ABC):
    """Each syncer overrides list() and declares RESOURCE_TYPE.

    Entitlements and grants default to empty; not every resource type has
    something assignable.
    """

    RESOURCE_TYPE: str = ""
    DISPLAY_NAME: str = ""

    def __init__(self, client: SlackClient, config: SlackConfig) -> None:
        self.client = client
        self.config = config

    @abstractmethod
    def list(
        self,
        ctx: SyncContext,
        parent: Optional[ResourceId],
        token: str,
        page: SyncPage[Resource],
    ) -> None:
        """Fill ``page`` with one page of resources and set ``page.next_token``."""

    def entitlements(self, ctx: SyncContext, resource: Resource) -> list[Entitlement]:
        return []

    def grants(
        self,
        ctx: SyncContext,
        resource: Resource,
        token: str,
        page: SyncPage[Grant],
    ) -> None:
        page.next_token = ""

    def describe(self) -> dict[str, Any]:
        return {"id": self.RESOURCE_TYPE, "display_name": self.DISPLAY_NAME}
