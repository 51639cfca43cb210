"""Tests for attribute-based role derivation."""

from __future__ import annotations

import pytest

from scripts.directory_sync.roles import (
    ORGANIZATION_ROLES,
    SYSTEM_ROLES,
    WORKSPACE_ROLES,
    PrincipalAttributes,
    derive,
    derive_organization_roles,
    enterprise_role_name,
)


class TestDerive:
    def test_no_flags_is_member(self):
        assert derive(PrincipalAttributes()) == ("member",)

    def test_ultra_restricted_guest_gets_only_single_channel_tier(self):
        attrs = PrincipalAttributes(is_restricted=True, is_ultra_restricted=True)
        assert derive(attrs) == ("single_channel_guest",)

    def test_restricted_guest_gets_multi_channel_tier(self):
        assert derive(PrincipalAttributes(is_restricted=True)) == ("multi_channel_guest",)

    def test_guest_tier_combines_with_additive_flags(self):
        attrs = PrincipalAttributes(is_restricted=True, is_ultra_restricted=True, is_invited_user=True)
        roles = derive(attrs)
        assert roles == ("single_channel_guest", "invited_member")
        assert "multi_channel_guest" not in roles

    def test_additive_roles_in_precedence_order(self):
        attrs = PrincipalAttributes(is_primary_owner=True, is_owner=True, is_admin=True)
        assert derive(attrs) == ("primary_owner", "owner", "admin")

    def test_bot_is_not_a_member(self):
        assert derive(PrincipalAttributes(is_bot=True)) == ("bot",)

    @pytest.mark.parametrize("attrs", [
        PrincipalAttributes(is_stranger=True),
        PrincipalAttributes(is_deleted=True),
    ])
    def test_strangers_and_deleted_users_hold_nothing(self, attrs):
        assert derive(attrs) == ()

    def test_stranger_admin_still_gets_admin(self):
        assert derive(PrincipalAttributes(is_admin=True, is_stranger=True)) == ("admin",)


class TestPrincipalAttributes:
    def test_from_users_list_member(self):
        attrs = PrincipalAttributes.from_api({
            "id": "U1",
            "is_admin": True,
            "deleted": False,
            "enterprise_user": {"is_admin": True, "is_owner": False},
        })
        assert attrs.is_admin
        assert attrs.is_org_admin
        assert not attrs.is_org_owner
        assert not attrs.is_deleted

    def test_inactive_admin_user_is_deleted(self):
        attrs = PrincipalAttributes.from_api({"id": "U1", "is_active": False})
        assert attrs.is_deleted

    def test_dict_round_trip(self):
        attrs = PrincipalAttributes(is_owner=True, is_bot=True, is_org_primary_owner=True)
        assert PrincipalAttributes.from_dict(attrs.to_dict()) == attrs


class TestOrganizationRoles:
    def test_derive_organization_roles(self):
        attrs = PrincipalAttributes(is_org_primary_owner=True, is_org_admin=True)
        assert derive_organization_roles(attrs) == ("organization_primary_owner", "organization_admin")

    def test_no_enterprise_flags(self):
        assert derive_organization_roles(PrincipalAttributes(is_admin=True)) == ()


class TestRoleTables:
    def test_tables_are_immutable(self):
        with pytest.raises(TypeError):
            WORKSPACE_ROLES["superuser"] = "Superuser"

    def test_workspace_roles_in_precedence_order(self):
        assert list(WORKSPACE_ROLES) == [
            "primary_owner", "owner", "admin", "multi_channel_guest",
            "single_channel_guest", "invited_member", "bot", "member",
        ]

    def test_enterprise_role_names(self):
        assert enterprise_role_name("Rl0J") == "Security Admin"
        assert enterprise_role_name("organization_owner") == ORGANIZATION_ROLES["organization_owner"]
        assert len(SYSTEM_ROLES) == 16

    def test_unknown_enterprise_role(self):
        with pytest.raises(ValueError):
            enterprise_role_name("Rl99")
