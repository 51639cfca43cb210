"""Per-resource-type List / Entitlements / Grants entry points.

Each call does one page of work and never sleeps or retries: failures come
back as an ``ErrorOutcome`` next to whatever part of the page was already
assembled, and the token handed back on failure is the one that was passed
in, so the caller can retry the same page.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Mapping, Optional

from scripts.directory_sync.client import SlackClient
from scripts.directory_sync.config import SlackConfig
from scripts.directory_sync.context import SyncContext, background
from scripts.directory_sync.outcomes import (
    ErrorOutcome,
    OutcomeCategory,
    RateLimitSignal,
    SyncError,
    outcome_for_error,
)
from scripts.directory_sync.resources import Resource, ResourceId
from scripts.directory_sync.syncers.base import ResourceSyncer, SyncPage, WorkspaceNames
from scripts.directory_sync.syncers.enterprise_role import EnterpriseRoleSyncer
from scripts.directory_sync.syncers.idp_group import IdpGroupSyncer
from scripts.directory_sync.syncers.user import UserSyncer
from scripts.directory_sync.syncers.user_group import UserGroupSyncer
from scripts.directory_sync.syncers.workspace import WorkspaceSyncer
from scripts.directory_sync.syncers.workspace_role import WorkspaceRoleSyncer

logger = logging.getLogger("directory_sync.orchestrator")


@dataclass
class SyncResult:
    items: list[Any] = field(default_factory=list)
    next_token: str = ""
    outcome: Optional[ErrorOutcome] = None
    rate_limit: Optional[RateLimitSignal] = None

    @property
    def ok(self) -> bool:
        return self.outcome is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self.items],
            "next_token": self.next_token,
            "outcome": self.outcome.to_dict() if self.outcome else None,
            "rate_limit": self.rate_limit.to_dict() if self.rate_limit else None,
        }


def build_syncers(client: SlackClient, config: SlackConfig) -> dict[str, ResourceSyncer]:
    """Instantiate every syncer the configuration supports."""
    names = WorkspaceNames()
    syncers: list[ResourceSyncer] = [
        WorkspaceSyncer(client, config, names),
        UserSyncer(client, config, names),
        WorkspaceRoleSyncer(client, config, names),
        UserGroupSyncer(client, config),
    ]
    if config.is_enterprise:
        syncers.append(EnterpriseRoleSyncer(client, config))
    if config.sso_enabled and config.has_admin_api:
        syncers.append(IdpGroupSyncer(client, config))
    else:
        logger.debug("SSO or admin token not configured, IDP groups disabled")
    return {s.RESOURCE_TYPE: s for s in syncers}


class SyncOrchestrator:
    def __init__(self, syncers: Mapping[str, ResourceSyncer]) -> None:
        self._syncers = dict(syncers)

    @classmethod
    def from_config(cls, config: SlackConfig, timeout: float = 30.0) -> "SyncOrchestrator":
        return cls(build_syncers(SlackClient(config, timeout=timeout), config))

    @property
    def resource_types(self) -> list[str]:
        return list(self._syncers)

    def syncer(self, resource_type: str) -> Optional[ResourceSyncer]:
        return self._syncers.get(resource_type)

    def list(
        self,
        resource_type: str,
        parent: Optional[ResourceId] = None,
        token: str = "",
        ctx: Optional[SyncContext] = None,
    ) -> SyncResult:
        ctx = ctx or background()
        return self._run(
            "list", resource_type, token,
            lambda s, page: s.list(ctx, parent, token, page),
            scope_id=parent.resource if parent else "",
        )

    def entitlements(self, resource: Resource, ctx: Optional[SyncContext] = None) -> SyncResult:
        ctx = ctx or background()

        def op(s: ResourceSyncer, page: SyncPage) -> None:
            for entitlement in s.entitlements(ctx, resource):
                page.add(entitlement)

        return self._run("entitlements", resource.resource_type, "", op, scope_id=resource.id.resource)

    def grants(
        self,
        resource: Resource,
        token: str = "",
        ctx: Optional[SyncContext] = None,
    ) -> SyncResult:
        ctx = ctx or background()
        return self._run(
            "grants", resource.resource_type, token,
            lambda s, page: s.grants(ctx, resource, token, page),
            scope_id=resource.id.resource,
        )

    def _run(
        self,
        operation: str,
        resource_type: str,
        token: str,
        op: Callable[[ResourceSyncer, SyncPage], None],
        scope_id: str = "",
    ) -> SyncResult:
        syncer = self._syncers.get(resource_type)
        if syncer is None:
            return SyncResult(
                next_token=token,
                outcome=ErrorOutcome(
                    category=OutcomeCategory.INVALID_ARGUMENT,
                    message=f"unknown or disabled resource type: {resource_type}",
                ),
            )

        page: SyncPage = SyncPage()
        started = time.monotonic()
        try:
            op(syncer, page)
        except SyncError as exc:
            outcome = outcome_for_error(exc)
            if outcome.rate_limit is None and page.rate_limit is not None:
                outcome = replace(outcome, rate_limit=page.rate_limit)
            log = logger.warning if outcome.retryable else logger.error
            log(
                "%s %s failed: %s", operation, resource_type, outcome.message,
                extra={
                    "resource_type": resource_type,
                    "scope_id": scope_id,
                    "outcome": outcome.category.value,
                    "records": len(page.items),
                },
            )
            return SyncResult(
                items=page.items,
                next_token=token,
                outcome=outcome,
                rate_limit=outcome.rate_limit,
            )

        logger.debug(
            "%s %s returned %d items", operation, resource_type, len(page.items),
            extra={
                "resource_type": resource_type,
                "scope_id": scope_id,
                "records": len(page.items),
                "duration_s": round(time.monotonic() - started, 3),
            },
        )
        return SyncResult(items=page.items, next_token=page.next_token, rate_limit=page.rate_limit)
