"""Role tables and attribute-based role derivation.

Slack does not expose "who holds workspace role R" as a list; it exposes a
bag of flags on each user. ``derive()`` turns those flags into the set of
workspace roles the user holds. Enterprise system roles are different: they
are fetched from ``admin.roles.listAssignments`` by the enterprise role
syncer, not derived here.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping

PRIMARY_OWNER = "primary_owner"
OWNER = "owner"
ADMIN = "admin"
MULTI_CHANNEL_GUEST = "multi_channel_guest"
SINGLE_CHANNEL_GUEST = "single_channel_guest"
INVITED_MEMBER = "invited_member"
BOT = "bot"
MEMBER = "member"

# Ordered by precedence; List emits workspace roles in this order.
WORKSPACE_ROLES: Mapping[str, str] = MappingProxyType({
    PRIMARY_OWNER: "Primary Owner",
    OWNER: "Owner",
    ADMIN: "Admin",
    MULTI_CHANNEL_GUEST: "Multi Channel Guest",
    SINGLE_CHANNEL_GUEST: "Single Channel Guest",
    INVITED_MEMBER: "Invited member",
    BOT: "Bot",
    MEMBER: "Member",
})

ORGANIZATION_PRIMARY_OWNER = "organization_primary_owner"
ORGANIZATION_OWNER = "organization_owner"
ORGANIZATION_ADMIN = "organization_admin"

ORGANIZATION_ROLES: Mapping[str, str] = MappingProxyType({
    ORGANIZATION_PRIMARY_OWNER: "Organization primary owner",
    ORGANIZATION_OWNER: "Organization owner",
    ORGANIZATION_ADMIN: "Organization admin",
})

# Enterprise grid system roles, keyed by Slack's role id.
SYSTEM_ROLES: Mapping[str, str] = MappingProxyType({
    "Rl0L": "Analytics Admin",
    "Rl0C": "Audit Logs Admin",
    "Rl01": "Channel Admin",
    "Rl0A": "Channel Manager",
    "Rl05": "Conversation Admin",
    "Rl09": "DLP Admin",
    "Rl0F": "Exports Admin",
    "Rl0D": "Integrations Manager",
    "Rl04": "Message Activity Manager",
    "Rl02": "Role Admin",
    "Rl0G": "Sales Admin",
    "Rl0H": "Sales User",
    "Rl0J": "Security Admin",
    "Rl0B": "Slack Platform Developer",
    "Rl03": "User Admin",
    "Rl0K": "Workflow Admin",
})


def enterprise_role_name(role_id: str) -> str:
    if role_id in SYSTEM_ROLES:
        return SYSTEM_ROLES[role_id]
    if role_id in ORGANIZATION_ROLES:
        return ORGANIZATION_ROLES[role_id]
    raise ValueError(f"invalid system or organization role id: {role_id}")


@dataclass(frozen=True)
class PrincipalAttributes:
    is_primary_owner: bool = False
    is_owner: bool = False
    is_admin: bool = False
    is_restricted: bool = False
    is_ultra_restricted: bool = False
    is_invited_user: bool = False
    is_bot: bool = False
    is_stranger: bool = False
    is_deleted: bool = False
    is_org_primary_owner: bool = False
    is_org_owner: bool = False
    is_org_admin: bool = False

    @classmethod
    def from_api(cls, user: Mapping[str, Any]) -> "PrincipalAttributes":
        """Build from a ``users.list`` member or an ``admin.users.list`` user."""
        enterprise = user.get("enterprise_user") or {}
        deleted = bool(user.get("deleted", False))
        if "is_active" in user:
            deleted = deleted or not user["is_active"]
        return cls(
            is_primary_owner=bool(user.get("is_primary_owner", False)),
            is_owner=bool(user.get("is_owner", False)),
            is_admin=bool(user.get("is_admin", False)),
            is_restricted=bool(user.get("is_restricted", False)),
            is_ultra_restricted=bool(user.get("is_ultra_restricted", False)),
            is_invited_user=bool(user.get("is_invited_user", False)),
            is_bot=bool(user.get("is_bot", False)),
            is_stranger=bool(user.get("is_stranger", False)),
            is_deleted=deleted,
            is_org_primary_owner=bool(enterprise.get("is_primary_owner", False)),
            is_org_owner=bool(enterprise.get("is_owner", False)),
            is_org_admin=bool(enterprise.get("is_admin", False)),
        )

    def to_dict(self) -> dict[str, bool]:
        return {name: getattr(self, name) for name in self.__dataclass_fields__}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PrincipalAttributes":
        return cls(**{
            name: bool(data.get(name, False)) for name in cls.__dataclass_fields__
        })


def derive(attrs: PrincipalAttributes) -> tuple[str, ...]:
    """Workspace roles held by a principal, in precedence order.

    Every applicable role is returned except the guest tiers, which are a
    single restriction level with an ultra-restricted refinement: only the
    more specific one is emitted. ``member`` is the fallback when nothing
    else applies and the principal is neither an external stranger nor
    deactivated.
    """
    roles: list[str] = []
    if attrs.is_primary_owner:
        roles.append(PRIMARY_OWNER)
    if attrs.is_owner:
        roles.append(OWNER)
    if attrs.is_admin:
        roles.append(ADMIN)
    if attrs.is_restricted:
        roles.append(SINGLE_CHANNEL_GUEST if attrs.is_ultra_restricted else MULTI_CHANNEL_GUEST)
    if attrs.is_invited_user:
        roles.append(INVITED_MEMBER)
    if attrs.is_bot:
        roles.append(BOT)
    if not roles and not attrs.is_stranger and not attrs.is_deleted:
        roles.append(MEMBER)
    return tuple(roles)


def derive_organization_roles(attrs: PrincipalAttributes) -> tuple[str, ...]:
    """Enterprise organization roles carried on ``enterprise_user`` flags."""
    roles: list[str] = []
    if attrs.is_org_primary_owner:
        roles.append(ORGANIZATION_PRIMARY_OWNER)
    if attrs.is_org_owner:
        roles.append(ORGANIZATION_OWNER)
    if attrs.is_org_admin:
        roles.append(ORGANIZATION_ADMIN)
    return tuple(roles)
