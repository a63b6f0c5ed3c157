"""Tests for the policy engine."""

import pytest

from portfolio.models.capability import CAPABILITY_NAMES, CROSS_TENANT_CAPABILITIES
from portfolio.models.role import Role
from portfolio.models.user_profile import UserProfile
from portfolio.services.policy_engine import (
    GUEST_PERMISSIONS,
    can_access_agency,
    can_assign_role,
    can_manage,
    derive_permissions,
    has_capability,
    invitable_roles,
    role_rank,
)
from tests.utils.assertions import assert_total_preset


def _profile(role, agency_id="agency-1", user_id="user-1"):
    return UserProfile(id=user_id, agency_id=agency_id, name="Test User", role=role)


ROLES_LOW_TO_HIGH = [Role.VIEWER, Role.AGENT, Role.AGENCY_ADMIN, Role.SUPER_ADMIN]


@pytest.mark.unit
def test_null_profile_gets_guest_preset():
    """Unauthenticated callers are denied everything."""
    permissions = derive_permissions(None)

    assert permissions == GUEST_PERMISSIONS
    assert permissions.granted() == frozenset()


@pytest.mark.unit
@pytest.mark.parametrize("role", ROLES_LOW_TO_HIGH)
def test_presets_are_total(role):
    assert_total_preset(derive_permissions(_profile(role)))


@pytest.mark.unit
def test_presets_are_monotone():
    """viewer ⊆ agent ⊆ agency_admin ⊆ super_admin."""
    granted = [derive_permissions(_profile(role)).granted() for role in ROLES_LOW_TO_HIGH]

    for lower, higher in zip(granted, granted[1:]):
        assert lower <= higher


@pytest.mark.unit
def test_super_admin_gets_everything():
    assert derive_permissions(_profile(Role.SUPER_ADMIN)).granted() == frozenset(CAPABILITY_NAMES)


@pytest.mark.unit
@pytest.mark.parametrize("role", [Role.VIEWER, Role.AGENT, Role.AGENCY_ADMIN])
def test_agency_roles_never_get_cross_tenant_capabilities(role):
    assert not derive_permissions(_profile(role)).granted() & CROSS_TENANT_CAPABILITIES


@pytest.mark.unit
@pytest.mark.parametrize("role,capability,expected", [
    (Role.VIEWER, "can_view_properties", True),
    (Role.VIEWER, "can_create_properties", False),
    (Role.AGENT, "can_create_properties", True),
    (Role.AGENT, "can_delete_properties", False),
    (Role.AGENT, "can_invite_users", False),
    (Role.AGENCY_ADMIN, "can_invite_users", True),
    (Role.AGENCY_ADMIN, "can_delete_properties", True),
    (Role.AGENCY_ADMIN, "can_view_all_agencies", False),
    (Role.SUPER_ADMIN, "can_view_all_agencies", True),
])
def test_has_capability(role, capability, expected):
    assert has_capability(_profile(role), capability) is expected


@pytest.mark.unit
def test_has_capability_accepts_camel_case_names():
    assert has_capability(_profile(Role.AGENCY_ADMIN), "canInviteUsers") is True
    assert has_capability(_profile(Role.AGENT), "canInviteUsers") is False


@pytest.mark.unit
def test_unknown_capability_is_denied():
    assert has_capability(_profile(Role.SUPER_ADMIN), "can_launch_rockets") is False


@pytest.mark.unit
def test_has_capability_is_idempotent():
    profile = _profile(Role.AGENT)

    results = {has_capability(profile, "can_edit_properties") for _ in range(50)}

    assert results == {True}


@pytest.mark.unit
@pytest.mark.parametrize("profile", [
    {"id": "u1", "role": "owner", "agency_id": "a1"},
    {"id": "u1", "agency_id": "a1"},
    {"role": None},
    {},
    "not-a-profile",
    42,
])
def test_malformed_profiles_degrade_to_guest(profile):
    """The engine never raises on odd input."""
    assert derive_permissions(profile) == GUEST_PERMISSIONS
    assert has_capability(profile, "can_view_properties") is False
    assert can_access_agency(profile, "a1") is False
    assert can_manage(profile, {"id": "u2", "role": "viewer", "agency_id": "a1"}) is False


@pytest.mark.unit
def test_plain_dict_profiles_are_supported():
    profile = {"id": "u1", "role": "agency_admin", "agency_id": "a1"}

    assert has_capability(profile, "can_invite_users") is True
    assert can_access_agency(profile, "a1") is True


@pytest.mark.unit
def test_can_access_agency():
    admin = _profile(Role.AGENCY_ADMIN, agency_id="a1")

    assert can_access_agency(admin, "a1") is True
    assert can_access_agency(admin, "a2") is False
    assert can_access_agency(_profile(Role.SUPER_ADMIN, agency_id=None), "a2") is True
    assert can_access_agency(None, "a1") is False


@pytest.mark.unit
def test_can_access_agency_without_membership():
    """A viewer with no agency cannot access any agency, including a null one."""
    loner = _profile(Role.VIEWER, agency_id=None)

    assert can_access_agency(loner, "a1") is False
    assert can_access_agency(loner, None) is False


@pytest.mark.unit
def test_can_manage_hierarchy():
    admin = _profile(Role.AGENCY_ADMIN, agency_id="a1", user_id="admin")
    peer_admin = _profile(Role.AGENCY_ADMIN, agency_id="a1", user_id="peer")
    agent = _profile(Role.AGENT, agency_id="a1", user_id="agent")
    foreign_agent = _profile(Role.AGENT, agency_id="a2", user_id="foreign")
    root = _profile(Role.SUPER_ADMIN, agency_id=None, user_id="root")

    assert can_manage(root, peer_admin) is True
    assert can_manage(admin, agent) is True
    assert can_manage(admin, peer_admin) is False
    assert can_manage(admin, foreign_agent) is False
    assert can_manage(admin, root) is False
    assert can_manage(agent, admin) is False
    assert can_manage(agent, agent) is True


@pytest.mark.unit
def test_agency_admin_without_agency_manages_nobody_else():
    admin = _profile(Role.AGENCY_ADMIN, agency_id=None, user_id="admin")
    stray = _profile(Role.VIEWER, agency_id=None, user_id="stray")

    assert can_manage(admin, stray) is False


@pytest.mark.unit
def test_management_is_acyclic():
    """Nobody manages someone of equal or higher rank, except themselves."""
    profiles = [
        _profile(role, agency_id="a1", user_id=f"{role.value}-{i}")
        for role in ROLES_LOW_TO_HIGH for i in range(2)
    ]
    for manager in profiles:
        for target in profiles:
            if manager.id == target.id or manager.role is Role.SUPER_ADMIN:
                continue
            if can_manage(manager, target):
                assert role_rank(target.role) < role_rank(manager.role)


@pytest.mark.unit
@pytest.mark.parametrize("role,rank", [
    ("viewer", 1), ("agent", 2), ("agency_admin", 3), ("super_admin", 4), ("admin", 0), (None, 0),
])
def test_role_rank(role, rank):
    assert role_rank(role) == rank


@pytest.mark.unit
@pytest.mark.parametrize("assigner,target,expected", [
    (Role.SUPER_ADMIN, Role.AGENCY_ADMIN, True),
    (Role.SUPER_ADMIN, Role.VIEWER, True),
    (Role.SUPER_ADMIN, Role.SUPER_ADMIN, False),
    (Role.AGENCY_ADMIN, Role.AGENT, True),
    (Role.AGENCY_ADMIN, Role.VIEWER, True),
    (Role.AGENCY_ADMIN, Role.AGENCY_ADMIN, False),
    (Role.AGENCY_ADMIN, Role.SUPER_ADMIN, False),
    (Role.AGENT, Role.VIEWER, False),
    (Role.VIEWER, Role.VIEWER, False),
    ("bogus", Role.VIEWER, False),
    (Role.SUPER_ADMIN, "bogus", False),
])
def test_can_assign_role(assigner, target, expected):
    assert can_assign_role(assigner, target) is expected


@pytest.mark.unit
def test_invitable_roles():
    assert invitable_roles(Role.SUPER_ADMIN) == [Role.AGENCY_ADMIN, Role.AGENT, Role.VIEWER]
    assert invitable_roles(Role.AGENCY_ADMIN) == [Role.AGENT, Role.VIEWER]
    assert invitable_roles(Role.AGENT) == []
