"""Workspace role syncer.

Grants always come back empty here. Listing "who holds role R" would mean
walking every user once per role, so role grants are emitted by the user
syncer instead, from each user's own flags.
"""

from __future__ import annotations

from typing import Optional

from scripts.directory_sync import pagination
from scripts.directory_sync.client import SlackClient
from scripts.directory_sync.config import SlackConfig
from scripts.directory_sync.context import SyncContext
from scripts.directory_sync.resources import (
    ASSIGNED_ENTITLEMENT,
    WORKSPACE,
    WORKSPACE_ROLE,
    Entitlement,
    Resource,
    ResourceId,
    RoleKey,
    assignment_entitlement,
)
from scripts.directory_sync.roles import WORKSPACE_ROLES
from scripts.directory_sync.syncers.base import ResourceSyncer, SyncPage, WorkspaceNames


def workspace_role_resource(key: RoleKey) -> Resource:
    if key.role_id not in WORKSPACE_ROLES:
        raise ValueError(f"invalid workspace role id: {key.role_id}")
    return Resource(
        id=ResourceId(WORKSPACE_ROLE, key.resource_id),
        display_name=WORKSPACE_ROLES[key.role_id],
        parent=ResourceId(WORKSPACE, key.scope_id),
        traits={"kind": "role"},
        role_key=key,
    )


def workspace_role_entitlement(resource: Resource, workspace_name: str) -> Entitlement:
    return assignment_entitlement(
        resource,
        ASSIGNED_ENTITLEMENT,
        display_name=f"{workspace_name} workspace {resource.display_name} role",
        description=f"Has the {resource.display_name} role in the Slack {workspace_name} workspace",
    )


class WorkspaceRoleSyncer(ResourceSyncer):
    RESOURCE_TYPE = WORKSPACE_ROLE
    DISPLAY_NAME = "Workspace Role"

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
        if parent is None or parent.resource_type != WORKSPACE:
            page.next_token = ""
            return

        # Fixed local enumeration: no remote cursor, done after one page.
        stack = pagination.decode(token, WORKSPACE_ROLE, parent.resource)
        frame = stack.current
        for role_id in WORKSPACE_ROLES:
            if frame.mark_found(role_id):
                page.add(workspace_role_resource(RoleKey(parent.resource, role_id)))
        page.next_token = stack.next_token("")

    def entitlements(self, ctx: SyncContext, resource: Resource) -> list[Entitlement]:
        workspace_id = resource.role_key.scope_id if resource.role_key else (
            resource.parent.resource if resource.parent else ""
        )
        return [workspace_role_entitlement(resource, self.names.get(workspace_id))]
