"""User syncer.

Users are listed one of three ways:

* under a workspace, from ``users.list``; when an admin token is configured
  each user is enriched with SSO and 2FA status from ``admin.users.list``.
  That second stream is crawled once per syncer instance through a
  ``DirectoryEntryCache``;
* under a workspace, from SCIM ``Users`` when SSO is enabled and an admin
  token is configured, enriched from the same cache;
* with no parent on Enterprise Grid, from ``admin.users.list``: users that
  belong to no workspace, which neither of the above ever returns.

User grants carry every workspace and organization role the user holds.
Roles are derived from the user's own flags, not fetched per role.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from scripts.directory_sync import pagination
from scripts.directory_sync.cache import DirectoryEntryCache, key_by_id
from scripts.directory_sync.client import SlackClient
from scripts.directory_sync.config import SlackConfig
from scripts.directory_sync.context import SyncContext
from scripts.directory_sync.resources import (
    USER,
    WORKSPACE,
    Grant,
    Resource,
    ResourceId,
    RoleKey,
    user_id,
)
from scripts.directory_sync.roles import PrincipalAttributes, derive, derive_organization_roles
from scripts.directory_sync.syncers.base import ResourceSyncer, SyncPage, WorkspaceNames
from scripts.directory_sync.syncers.enterprise_role import (
    enterprise_role_entitlement,
    enterprise_role_resource,
)
from scripts.directory_sync.syncers.workspace_role import (
    workspace_role_entitlement,
    workspace_role_resource,
)

logger = logging.getLogger("directory_sync.user")


def _admin_traits(traits: dict[str, Any], profile: dict[str, Any], admin: dict[str, Any]) -> None:
    traits["sso_enabled"] = bool(admin.get("has_sso", False))
    profile["sso_user"] = traits["sso_enabled"]
    if admin.get("username"):
        traits["login"] = admin["username"]


def user_resource(
    member: dict[str, Any],
    parent: ResourceId,
    admin: Optional[dict[str, Any]] = None,
) -> Resource:
    profile_src = member.get("profile") or {}
    attrs = PrincipalAttributes.from_api(member)
    profile = {
        "first_name": profile_src.get("first_name", ""),
        "last_name": profile_src.get("last_name", ""),
        "login": profile_src.get("email", ""),
        "workspace": profile_src.get("team", ""),
        "user_id": member["id"],
        "status_text": profile_src.get("status_text", ""),
        "status_emoji": profile_src.get("status_emoji", ""),
        "is_app_user": bool(member.get("is_app_user", False)),
    }
    profile.update(attrs.to_dict())

    # Without admin scope has_2fa can read false even when 2FA is on.
    mfa_enabled = bool(member.get("has_2fa", False))
    traits: dict[str, Any] = {
        "kind": "user",
        "emails": [profile_src["email"]] if profile_src.get("email") else [],
        "status": "deleted" if attrs.is_deleted else "enabled",
        "account_type": "service" if attrs.is_bot else "human",
    }
    if admin is not None:
        mfa_enabled = mfa_enabled or bool(admin.get("has_2fa", False))
        _admin_traits(traits, profile, admin)
    traits["mfa_enabled"] = mfa_enabled

    return Resource(
        id=user_id(member["id"]),
        display_name=member.get("name") or member["id"],
        parent=parent,
        profile=profile,
        traits=traits,
        attributes=attrs,
    )


def scim_user_resource(
    user: dict[str, Any],
    parent: Optional[ResourceId],
    admin: Optional[dict[str, Any]] = None,
) -> Resource:
    """Build a user from a SCIM ``User``; role flags come from ``admin`` only."""
    name = user.get("name") or {}
    emails = [e for e in user.get("emails") or [] if e.get("value")]
    primary = next((e["value"] for e in emails if e.get("primary")), "")
    ordered = sorted(emails, key=lambda e: not e.get("primary"))

    profile: dict[str, Any] = {
        "first_name": name.get("givenName", ""),
        "last_name": name.get("familyName", ""),
        "display_name": user.get("displayName", ""),
        "login": primary,
        "user_id": user["id"],
        "user_name": user.get("userName", ""),
    }
    traits: dict[str, Any] = {
        "kind": "user",
        "emails": [e["value"] for e in ordered],
        "status": "enabled" if user.get("active", False) else "disabled",
    }

    attrs = None
    if admin is not None:
        attrs = PrincipalAttributes.from_api(admin)
        traits["account_type"] = "service" if attrs.is_bot else "human"
        traits["mfa_enabled"] = bool(admin.get("has_2fa", False))
        _admin_traits(traits, profile, admin)
    # SCIM's userName is the login, over the admin username.
    if user.get("userName"):
        traits["login"] = user["userName"]

    return Resource(
        id=user_id(user["id"]),
        display_name=user.get("displayName") or user.get("userName") or user["id"],
        parent=parent,
        profile=profile,
        traits=traits,
        attributes=attrs,
    )


def base_user_resource(admin: dict[str, Any]) -> Resource:
    """A user known only to ``admin.users.list``: no workspace, no parent."""
    first_name, _, last_name = (admin.get("full_name") or "").strip().partition(" ")
    attrs = PrincipalAttributes.from_api(admin)
    profile: dict[str, Any] = {
        "first_name": first_name,
        "last_name": last_name.strip(),
        "login": admin.get("email", ""),
        "user_id": admin["id"],
    }
    traits: dict[str, Any] = {
        "kind": "user",
        "emails": [admin["email"]] if admin.get("email") else [],
        "status": "enabled" if admin.get("is_active", False) else "disabled",
        "account_type": "service" if attrs.is_bot else "human",
        "mfa_enabled": bool(admin.get("has_2fa", False)),
    }
    _admin_traits(traits, profile, admin)

    return Resource(
        id=user_id(admin["id"]),
        display_name=admin.get("full_name") or admin.get("username") or admin["id"],
        profile=profile,
        traits=traits,
        attributes=attrs,
    )


class UserSyncer(ResourceSyncer):
    RESOURCE_TYPE = USER
    DISPLAY_NAME = "User"

    def __init__(self, client: SlackClient, config: SlackConfig, names: WorkspaceNames) -> None:
        super().__init__(client, config)
        self.names = names
        self.admin_users: Optional[DirectoryEntryCache[dict]] = None
        if config.has_admin_api:
            self.admin_users = DirectoryEntryCache(
                self._fetch_admin_users, key_by_id, name="admin users",
            )

    @property
    def uses_scim(self) -> bool:
        return self.config.sso_enabled and self.config.has_admin_api

    def _fetch_admin_users(self, ctx: SyncContext, cursor: str) -> tuple[list[dict], str]:
        result = self.client.list_admin_users(ctx, cursor)
        return result.items, result.next_cursor

    def _admin_record(self, ctx: SyncContext, principal_id: str) -> Optional[dict]:
        if self.admin_users is None:
            return None
        record, found = self.admin_users.get(principal_id, ctx)
        return record if found else None

    def list(
        self,
        ctx: SyncContext,
        parent: Optional[ResourceId],
        token: str,
        page: SyncPage[Resource],
    ) -> None:
        if parent is None:
            if self.config.is_enterprise and self.config.has_admin_api:
                self._list_unassigned(ctx, token, page)
            else:
                page.next_token = ""
            return
        if parent.resource_type != WORKSPACE:
            page.next_token = ""
            return

        if self.uses_scim:
            self._list_scim(ctx, parent, token, page)
            return

        stack = pagination.decode(token, USER, parent.resource)
        result = self.client.list_users(ctx, parent.resource, stack.page_token)
        page.observe(result.rate_limit)

        for member in result.items:
            admin = self._admin_record(ctx, member["id"])
            page.add(user_resource(member, parent, admin))

        page.next_token = stack.next_token(result.next_cursor)

    def _list_scim(
        self,
        ctx: SyncContext,
        parent: ResourceId,
        token: str,
        page: SyncPage[Resource],
    ) -> None:
        stack = pagination.decode(token, USER, parent.resource)
        offset = pagination.scim_offset(stack)
        limit = self.client.page_size
        body, rate_limit = self.client.list_idp_users(ctx, offset, limit)
        page.observe(rate_limit)

        skipped = 0
        for user in body.get("Resources") or []:
            admin = self._admin_record(ctx, user["id"])
            # SCIM returns the whole organization; keep this workspace's users.
            workspaces = admin.get("workspaces") if admin is not None else None
            if workspaces is not None and parent.resource not in workspaces:
                skipped += 1
                continue
            page.add(scim_user_resource(user, parent, admin))
        if skipped:
            logger.debug(
                "Skipped %d SCIM users outside workspace %s", skipped, parent.resource,
                extra={"resource_type": USER, "scope_id": parent.resource},
            )

        total = int(body.get("totalResults") or 0)
        page.next_token = stack.next_token(pagination.next_offset(offset, limit, total))

    def _list_unassigned(self, ctx: SyncContext, token: str, page: SyncPage[Resource]) -> None:
        stack = pagination.decode(token, USER, self.config.enterprise_id or "")
        result = self.client.list_admin_users(ctx, stack.page_token)
        page.observe(result.rate_limit)

        for admin in result.items:
            if admin.get("workspaces"):
                continue
            page.add(base_user_resource(admin))

        page.next_token = stack.next_token(result.next_cursor)

    def grants(
        self,
        ctx: SyncContext,
        resource: Resource,
        token: str,
        page: SyncPage[Grant],
    ) -> None:
        page.next_token = ""

        attrs = resource.attributes
        if attrs is None:
            record = self._admin_record(ctx, resource.id.resource)
            if record is None:
                logger.debug(
                    "No attributes for user %s, skipping role grants", resource.id.resource,
                    extra={"resource_type": USER},
                )
                return
            attrs = PrincipalAttributes.from_api(record)

        principal = resource.id
        if resource.parent is not None and resource.parent.resource_type == WORKSPACE:
            workspace_id = resource.parent.resource
            workspace_name = self.names.get(workspace_id)
            for role_id in derive(attrs):
                role = workspace_role_resource(RoleKey(workspace_id, role_id))
                page.add(Grant(
                    entitlement=workspace_role_entitlement(role, workspace_name),
                    principal=principal,
                ))

        if self.config.is_enterprise:
            for role_id in derive_organization_roles(attrs):
                role = enterprise_role_resource(role_id)
                page.add(Grant(entitlement=enterprise_role_entitlement(role), principal=principal))
