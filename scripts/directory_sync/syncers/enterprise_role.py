"""Enterprise Grid role syncer.

Organization roles are a fixed set and are emitted once, on the first page
of a pass. System roles are only discoverable through their assignments,
so List pages through ``admin.roles.listAssignments`` and uses the frame's
found-set to emit each role id once, however many users hold it.
"""

from __future__ import annotations

import logging
from typing import Optional

from scripts.directory_sync import pagination
from scripts.directory_sync.context import SyncContext
from scripts.directory_sync.resources import (
    ASSIGNED_ENTITLEMENT,
    ENTERPRISE,
    ENTERPRISE_ROLE,
    Entitlement,
    Grant,
    Resource,
    ResourceId,
    assignment_entitlement,
    user_id,
)
from scripts.directory_sync.roles import ORGANIZATION_ROLES, SYSTEM_ROLES, enterprise_role_name
from scripts.directory_sync.syncers.base import ResourceSyncer, SyncPage

logger = logging.getLogger("directory_sync.enterprise_role")


def enterprise_role_resource(role_id: str) -> Resource:
    return Resource(
        id=ResourceId(ENTERPRISE_ROLE, role_id),
        display_name=enterprise_role_name(role_id),
        traits={"kind": "role"},
    )


def enterprise_role_entitlement(resource: Resource) -> Entitlement:
    return assignment_entitlement(
        resource,
        ASSIGNED_ENTITLEMENT,
        display_name=f"{resource.display_name} Enterprise Role",
        description=f"Has the {resource.display_name} role in the Slack enterprise",
    )


class EnterpriseRoleSyncer(ResourceSyncer):
    RESOURCE_TYPE = ENTERPRISE_ROLE
    DISPLAY_NAME = "Enterprise Role"

    def list(
        self,
        ctx: SyncContext,
        parent: Optional[ResourceId],
        token: str,
        page: SyncPage[Resource],
    ) -> None:
        if not self.config.is_enterprise:
            page.next_token = ""
            return

        stack = pagination.decode(token, ENTERPRISE, self.config.enterprise_id or "")
        frame = stack.current

        if not frame.cursor:
            for role_id in ORGANIZATION_ROLES:
                if frame.mark_found(role_id):
                    page.add(enterprise_role_resource(role_id))

        result = self.client.list_role_assignments(ctx, "", frame.cursor)
        page.observe(result.rate_limit)
        for assignment in result.items:
            role_id = assignment.get("role_id", "")
            if role_id not in SYSTEM_ROLES:
                continue
            if frame.mark_found(role_id):
                page.add(enterprise_role_resource(role_id))

        page.next_token = stack.next_token(result.next_cursor)

    def entitlements(self, ctx: SyncContext, resource: Resource) -> list[Entitlement]:
        return [enterprise_role_entitlement(resource)]

    def grants(
        self,
        ctx: SyncContext,
        resource: Resource,
        token: str,
        page: SyncPage[Grant],
    ) -> None:
        role_id = resource.id.resource
        # Organization roles ride on the user's own flags; the user syncer
        # emits those grants.
        if role_id in ORGANIZATION_ROLES:
            page.next_token = ""
            return

        stack = pagination.decode(token, ENTERPRISE_ROLE, role_id)
        result = self.client.list_role_assignments(ctx, role_id, stack.page_token)
        page.observe(result.rate_limit)

        entitlement = enterprise_role_entitlement(resource)
        for assignment in result.items:
            principal = assignment.get("user_id")
            if not principal:
                logger.debug("Skipping role assignment without a user: %s", assignment)
                continue
            page.add(Grant(entitlement=entitlement, principal=user_id(principal)))

        page.next_token = stack.next_token(result.next_cursor)
