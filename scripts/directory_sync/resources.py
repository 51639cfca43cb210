"""Normalized resource, entitlement and grant records emitted by the crawl."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from scripts.directory_sync.roles import PrincipalAttributes

# Resource type ids
USER = "user"
WORKSPACE = "workspace"
WORKSPACE_ROLE = "workspaceRole"
ENTERPRISE_ROLE = "enterpriseRole"
USER_GROUP = "userGroup"
IDP_GROUP = "group"

# Scope-only types (never emitted as resources)
ENTERPRISE = "enterprise"

ASSIGNED_ENTITLEMENT = "assigned"
MEMBER_ENTITLEMENT = "member"


@dataclass(frozen=True)
class ResourceId:
    resource_type: str
    resource: str

    def __str__(self) -> str:
        return f"{self.resource_type}:{self.resource}"

    def to_dict(self) -> dict[str, str]:
        return {"resource_type": self.resource_type, "resource": self.resource}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ResourceId":
        try:
            return cls(resource_type=str(data["resource_type"]), resource=str(data["resource"]))
        except (KeyError, TypeError) as exc:
            raise ValueError(f"invalid resource id: {data!r}") from exc


@dataclass(frozen=True)
class RoleKey:
    """Workspace role identity: the workspace it belongs to plus the role id."""

    scope_id: str
    role_id: str

    @property
    def resource_id(self) -> str:
        return f"{self.scope_id}:{self.role_id}"


@dataclass(frozen=True)
class Resource:
    id: ResourceId
    display_name: str
    parent: Optional[ResourceId] = None
    profile: dict[str, Any] = field(default_factory=dict)
    traits: dict[str, Any] = field(default_factory=dict)
    role_key: Optional[RoleKey] = None
    attributes: Optional[PrincipalAttributes] = None

    @property
    def resource_type(self) -> str:
        return self.id.resource_type

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id.to_dict(),
            "display_name": self.display_name,
            "parent": self.parent.to_dict() if self.parent else None,
            "profile": self.profile,
            "traits": self.traits,
        }
        if self.role_key is not None:
            out["role_key"] = {"scope_id": self.role_key.scope_id, "role_id": self.role_key.role_id}
        if self.attributes is not None:
            out["attributes"] = self.attributes.to_dict()
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Resource":
        """Rebuild a record previously produced by ``to_dict``."""
        if not isinstance(data, Mapping) or "id" not in data:
            raise ValueError("resource must be an object with an 'id'")
        rid = ResourceId.from_dict(data["id"])
        parent = ResourceId.from_dict(data["parent"]) if data.get("parent") else None
        try:
            role_key = None
            if data.get("role_key"):
                role_key = RoleKey(
                    scope_id=str(data["role_key"]["scope_id"]),
                    role_id=str(data["role_key"]["role_id"]),
                )
            attributes = None
            if data.get("attributes") is not None:
                if not isinstance(data["attributes"], Mapping):
                    raise TypeError("attributes must be an object")
                attributes = PrincipalAttributes.from_dict(data["attributes"])
            profile = dict(data.get("profile") or {})
            traits = dict(data.get("traits") or {})
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise ValueError(f"invalid resource {rid}: {exc}") from exc
        return cls(
            id=rid,
            display_name=str(data.get("display_name") or rid.resource),
            parent=parent,
            profile=profile,
            traits=traits,
            role_key=role_key,
            attributes=attributes,
        )


@dataclass(frozen=True)
class Entitlement:
    resource: Resource
    slug: str
    display_name: str
    description: str
    grantable_to: tuple[str, ...] = (USER,)

    @property
    def id(self) -> str:
        return f"{self.resource.id}:{self.slug}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "resource": self.resource.id.to_dict(),
            "slug": self.slug,
            "display_name": self.display_name,
            "description": self.description,
            "grantable_to": list(self.grantable_to),
        }


@dataclass(frozen=True)
class Grant:
    entitlement: Entitlement
    principal: ResourceId

    @property
    def id(self) -> str:
        return f"{self.entitlement.id}:{self.principal}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "entitlement": self.entitlement.id,
            "resource": self.entitlement.resource.id.to_dict(),
            "principal": self.principal.to_dict(),
        }


def assignment_entitlement(
    resource: Resource,
    slug: str,
    display_name: str,
    description: str,
) -> Entitlement:
    return Entitlement(
        resource=resource,
        slug=slug,
        display_name=display_name,
        description=description,
    )


def user_id(principal_id: str) -> ResourceId:
    return ResourceId(USER, principal_id)
