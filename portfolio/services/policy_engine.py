"""Policy engine - role and agency membership to capabilities, plus relational checks.

Every function here is pure and never raises: a missing profile, an unknown role or
a malformed record all degrade to the guest (all-denied) preset.
"""

from collections.abc import Mapping
from typing import Any, Optional

from portfolio.models.capability import CAPABILITY_NAMES, CapabilitySet
from portfolio.models.role import INVITABLE_ROLES, Role, parse_role

_VIEWER = frozenset({
    "can_view_agency_users",
    "can_view_properties",
})

_AGENT = _VIEWER | {
    "can_create_properties",
    "can_edit_properties",
}

_AGENCY_ADMIN = _AGENT | {
    "can_edit_agency",
    "can_invite_users",
    "can_edit_agency_users",
    "can_delete_agency_users",
    "can_delete_properties",
}

_SUPER_ADMIN = frozenset(CAPABILITY_NAMES)


def _preset(granted: frozenset) -> CapabilitySet:
    # Every capability is spelled out so presets stay total
    return CapabilitySet(**{name: name in granted for name in CAPABILITY_NAMES})


GUEST_PERMISSIONS = _preset(frozenset())

ROLE_PERMISSIONS = {
    Role.VIEWER: _preset(_VIEWER),
    Role.AGENT: _preset(_AGENT),
    Role.AGENCY_ADMIN: _preset(_AGENCY_ADMIN),
    Role.SUPER_ADMIN: _preset(_SUPER_ADMIN),
}

ROLE_RANKS = {
    Role.VIEWER: 1,
    Role.AGENT: 2,
    Role.AGENCY_ADMIN: 3,
    Role.SUPER_ADMIN: 4,
}


def profile_field(profile: Any, name: str) -> Any:
    """Read a field from a UserProfile, a row dict or any object; None when absent."""
    if profile is None:
        return None
    if isinstance(profile, Mapping):
        return profile.get(name)
    return getattr(profile, name, None)


def role_of(profile: Any) -> Optional[Role]:
    return parse_role(profile_field(profile, "role"))


def is_super_admin(profile: Any) -> bool:
    return role_of(profile) is Role.SUPER_ADMIN


def derive_permissions(profile: Any) -> CapabilitySet:
    """Capability preset for the profile's role; guest preset for None or an unknown role."""
    role = role_of(profile)
    if role is None:
        return GUEST_PERMISSIONS
    return ROLE_PERMISSIONS[role]


def has_capability(profile: Any, name: str) -> bool:
    return derive_permissions(profile).get(name)


def can_access_agency(profile: Any, agency_id: Any) -> bool:
    """Tenant-isolation gate: super admins see every agency, everyone else only their own."""
    role = role_of(profile)
    if role is None:
        return False
    if role is Role.SUPER_ADMIN:
        return True
    own_agency = profile_field(profile, "agency_id")
    if own_agency is None or agency_id is None:
        return False
    return str(own_agency) == str(agency_id)


def can_manage(manager: Any, target: Any) -> bool:
    """Whether ``manager`` may administer ``target``'s profile.

    Super admins manage everyone, agency admins manage lower-ranked members of
    their own agency (never peer admins), and anyone may manage themselves.
    """
    manager_role = role_of(manager)
    if manager_role is None or target is None:
        return False
    if manager_role is Role.SUPER_ADMIN:
        return True

    manager_id = profile_field(manager, "id")
    if manager_id is not None and str(manager_id) == str(profile_field(target, "id")):
        return True

    if manager_role is Role.AGENCY_ADMIN:
        target_role = role_of(target)
        manager_agency = profile_field(manager, "agency_id")
        return (
            target_role is not None
            and role_rank(target_role) < role_rank(Role.AGENCY_ADMIN)
            and manager_agency is not None
            and str(manager_agency) == str(profile_field(target, "agency_id"))
        )
    return False


def role_rank(role: Any) -> int:
    """viewer=1 < agent=2 < agency_admin=3 < super_admin=4; 0 for anything else."""
    parsed = parse_role(role)
    return ROLE_RANKS[parsed] if parsed is not None else 0


def can_assign_role(assigner_role: Any, target_role: Any) -> bool:
    """Super admins and agency admins may assign roles strictly below their own."""
    assigner = parse_role(assigner_role)
    target = parse_role(target_role)
    if assigner not in (Role.SUPER_ADMIN, Role.AGENCY_ADMIN) or target is None:
        return False
    if target is Role.SUPER_ADMIN:
        return False
    return role_rank(target) < role_rank(assigner)


def invitable_roles(inviter_role: Any) -> list[Role]:
    """Roles an inviter may offer, highest first."""
    return sorted(
        (role for role in INVITABLE_ROLES if can_assign_role(inviter_role, role)),
        key=role_rank,
        reverse=True,
    )
