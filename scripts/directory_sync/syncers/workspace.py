"""Workspace syncer: the teams the app is installed in, and their members."""

from __future__ import annotations

import logging
from typing import Any, Optional

from scripts.directory_sync import pagination
from scripts.directory_sync.client import SlackClient
from scripts.directory_sync.config import SlackConfig
from scripts.directory_sync.context import SyncContext
from scripts.directory_sync.resources import (
    MEMBER_ENTITLEMENT,
    USER,
    USER_GROUP,
    WORKSPACE,
    WORKSPACE_ROLE,
    Entitlement,
    Grant,
    Resource,
    ResourceId,
    assignment_entitlement,
    user_id,
)
from scripts.directory_sync.syncers.base import ResourceSyncer, SyncPage, WorkspaceNames

logger = logging.getLogger("directory_sync.workspace")


def workspace_resource(team: dict[str, Any]) -> Resource:
    return Resource(
        id=ResourceId(WORKSPACE, team["id"]),
        display_name=team.get("name") or team["id"],
        profile={
            "workspace_id": team["id"],
            "workspace_name": team.get("name", ""),
            "workspace_domain": team.get("domain", ""),
        },
        traits={"kind": "group", "child_resource_types": [USER, USER_GROUP, WORKSPACE_ROLE]},
    )


def member_entitlement(resource: Resource) -> Entitlement:
    return assignment_entitlement(
        resource,
        MEMBER_ENTITLEMENT,
        display_name=f"{resource.display_name} workspace member",
        description=f"Member of the {resource.display_name} workspace",
    )


class WorkspaceSyncer(ResourceSyncer):
    RESOURCE_TYPE = WORKSPACE
    DISPLAY_NAME = "Workspace"

    def __init__(self, client: SlackClient, config: SlackConfig, names: WorkspaceNames) -> None:
        super().__init__(client, config)
        self.names = names

    def list(
        self,
        ctx: SyncContext,
        parent: Optional[ResourceId],
        token: str,
        page: SyncPage[Resource],
    ) -> None:
        stack = pagination.decode(token, WORKSPACE, self.config.enterprise_id or "")
        frame = stack.current
        result = self.client.list_teams(ctx, frame.cursor, enterprise=self.config.is_enterprise)
        page.observe(result.rate_limit)

        skipped = 0
        for team in result.items:
            if not frame.mark_found(team["id"]):
                skipped += 1
                continue
            self.names.set(team["id"], team.get("name") or team["id"])
            page.add(workspace_resource(team))
        if skipped:
            logger.debug("Skipped %d workspaces already emitted this pass", skipped)

        page.next_token = stack.next_token(result.next_cursor)

    def entitlements(self, ctx: SyncContext, resource: Resource) -> list[Entitlement]:
        return [member_entitlement(resource)]

    def grants(
        self,
        ctx: SyncContext,
        resource: Resource,
        token: str,
        page: SyncPage[Grant],
    ) -> None:
        stack = pagination.decode(token, USER, resource.id.resource)
        result = self.client.list_users(ctx, resource.id.resource, stack.page_token)
        page.observe(result.rate_limit)

        entitlement = member_entitlement(resource)
        for member in result.items:
            # External shadow users from shared channels are not members.
            if member.get("is_stranger"):
                continue
            page.add(Grant(entitlement=entitlement, principal=user_id(member["id"])))

        page.next_token = stack.next_token(result.next_cursor)
