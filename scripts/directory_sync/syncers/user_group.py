"""User group syncer (Slack ``usergroups``, per workspace)."""

from __future__ import annotations

from typing import Any, Optional

from scripts.directory_sync import pagination
from scripts.directory_sync.context import SyncContext
from scripts.directory_sync.resources import (
    MEMBER_ENTITLEMENT,
    USER_GROUP,
    WORKSPACE,
    Entitlement,
    Grant,
    Resource,
    ResourceId,
    assignment_entitlement,
    user_id,
)
from scripts.directory_sync.syncers.base import ResourceSyncer, SyncPage


def user_group_resource(group: dict[str, Any], parent: ResourceId) -> Resource:
    return Resource(
        id=ResourceId(USER_GROUP, group["id"]),
        display_name=group.get("name") or group["id"],
        parent=parent,
        profile={
            "userGroup_id": group["id"],
            "userGroup_name": group.get("name", ""),
            "userGroup_handle": group.get("handle", ""),
        },
        traits={"kind": "group"},
    )


class UserGroupSyncer(ResourceSyncer):
    RESOURCE_TYPE = USER_GROUP
    DISPLAY_NAME = "User Group"

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

        # usergroups.list is not paginated: the whole workspace is one page.
        stack = pagination.decode(token, USER_GROUP, parent.resource)
        frame = stack.current
        result = self.client.list_user_groups(ctx, parent.resource)
        page.observe(result.rate_limit)
        for group in result.items:
            if frame.mark_found(group["id"]):
                page.add(user_group_resource(group, parent))
        page.next_token = stack.next_token("")

    def entitlements(self, ctx: SyncContext, resource: Resource) -> list[Entitlement]:
        return [
            assignment_entitlement(
                resource,
                MEMBER_ENTITLEMENT,
                display_name=f"{resource.display_name} User group {MEMBER_ENTITLEMENT}",
                description=f"Member of {resource.display_name} User group",
            ),
        ]

    def grants(
        self,
        ctx: SyncContext,
        resource: Resource,
        token: str,
        page: SyncPage[Grant],
    ) -> None:
        page.next_token = ""
        if resource.parent is None:
            return
        result = self.client.list_user_group_members(
            ctx, resource.id.resource, resource.parent.resource,
        )
        page.observe(result.rate_limit)
        entitlement = self.entitlements(ctx, resource)[0]
        for member in result.items:
            page.add(Grant(entitlement=entitlement, principal=user_id(member["id"])))
