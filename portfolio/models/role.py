"""Role model - the four-role hierarchy."""

from enum import Enum
from typing import Any, Optional


class Role(str, Enum):
    """User roles, lowest to highest rank."""
    VIEWER = "viewer"
    AGENT = "agent"
    AGENCY_ADMIN = "agency_admin"
    SUPER_ADMIN = "super_admin"


# super_admin is never granted through an invitation
INVITABLE_ROLES = frozenset({Role.AGENCY_ADMIN, Role.AGENT, Role.VIEWER})

ROLE_LABELS = {
    Role.SUPER_ADMIN: "Super Administrator",
    Role.AGENCY_ADMIN: "Agency Administrator",
    Role.AGENT: "Agent",
    Role.VIEWER: "Viewer",
}

ROLE_DESCRIPTIONS = {
    Role.SUPER_ADMIN: "Full system access, can manage all agencies and users",
    Role.AGENCY_ADMIN: "Full agency access, can manage agency users and properties",
    Role.AGENT: "Can create and edit properties within their agency",
    Role.VIEWER: "Read-only access to agency properties and users",
}


def parse_role(value: Any) -> Optional[Role]:
    """Return the Role for ``value`` or None when it is not one of the four roles."""
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except (ValueError, TypeError):
        return None
