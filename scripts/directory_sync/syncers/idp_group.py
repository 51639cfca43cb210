"""IDP group syncer over the SCIM ``Groups`` endpoint.

Only registered when SSO is enabled and an admin token is configured. SCIM
pages by 1-based offset rather than by cursor; the offset is kept as the
frame cursor so it travels inside the same opaque token as everything else.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from scripts.directory_sync import pagination
from scripts.directory_sync.context import SyncContext
from scripts.directory_sync.resources import (
    IDP_GROUP,
    MEMBER_ENTITLEMENT,
    Entitlement,
    Grant,
    Resource,
    ResourceId,
    assignment_entitlement,
    user_id,
)
from scripts.directory_sync.syncers.base import ResourceSyncer, SyncPage

logger = logging.getLogger("directory_sync.idp_group")


def idp_group_resource(group: dict[str, Any]) -> Resource:
    return Resource(
        id=ResourceId(IDP_GROUP, group["id"]),
        display_name=group.get("displayName") or group["id"],
        profile={"group_id": group["id"], "group_name": group.get("displayName", "")},
        traits={"kind": "group"},
    )


class IdpGroupSyncer(ResourceSyncer):
    RESOURCE_TYPE = IDP_GROUP
    DISPLAY_NAME = "IDP Group"

    def list(
        self,
        ctx: SyncContext,
        parent: Optional[ResourceId],
        token: str,
        page: SyncPage[Resource],
    ) -> None:
        stack = pagination.decode(token, IDP_GROUP)
        offset = pagination.scim_offset(stack)
        limit = self.client.page_size
        body, rate_limit = self.client.list_idp_groups(ctx, offset, limit)
        page.observe(rate_limit)
        for group in body.get("Resources") or []:
            page.add(idp_group_resource(group))

        total = int(body.get("totalResults") or 0)
        page.next_token = stack.next_token(pagination.next_offset(offset, limit, total))

    def entitlements(self, ctx: SyncContext, resource: Resource) -> list[Entitlement]:
        return [
            assignment_entitlement(
                resource,
                MEMBER_ENTITLEMENT,
                display_name=f"{resource.display_name} Group Member",
                description=f"Member of the {resource.display_name} IDP group",
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
        body, rate_limit = self.client.get_idp_group(ctx, resource.id.resource)
        page.observe(rate_limit)
        entitlement = self.entitlements(ctx, resource)[0]
        for member in body.get("members") or []:
            value = member.get("value")
            if not value:
                continue
            page.add(Grant(entitlement=entitlement, principal=user_id(value)))
