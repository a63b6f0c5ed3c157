"""Capability set model."""

import re

from pydantic import BaseModel, ConfigDict


class CapabilitySet(BaseModel):
    """Full map of capability name -> granted for one principal. Defaults to denied."""
    model_config = ConfigDict(frozen=True)

    # Agency management
    can_create_agencies: bool = False
    can_view_all_agencies: bool = False
    can_edit_agency: bool = False
    can_delete_agencies: bool = False
    can_suspend_agencies: bool = False

    # User management
    can_invite_users: bool = False
    can_view_agency_users: bool = False
    can_edit_agency_users: bool = False
    can_delete_agency_users: bool = False
    can_view_all_users: bool = False

    # Property management
    can_create_properties: bool = False
    can_edit_properties: bool = False
    can_delete_properties: bool = False
    can_view_properties: bool = False
    can_view_all_properties: bool = False

    # System administration
    can_access_system_settings: bool = False
    can_view_system_logs: bool = False
    can_manage_subscriptions: bool = False

    def get(self, name: str) -> bool:
        """Look up one flag; unknown names are denied."""
        name = normalize_capability_name(name)
        if name not in CAPABILITY_NAMES:
            return False
        return bool(getattr(self, name))

    def granted(self) -> frozenset[str]:
        return frozenset(name for name in CAPABILITY_NAMES if getattr(self, name))


CAPABILITY_NAMES = tuple(CapabilitySet.model_fields)

# Never granted to an agency-scoped role
CROSS_TENANT_CAPABILITIES = frozenset({
    "can_create_agencies",
    "can_view_all_agencies",
    "can_delete_agencies",
    "can_suspend_agencies",
    "can_view_all_users",
    "can_view_all_properties",
    "can_access_system_settings",
    "can_view_system_logs",
    "can_manage_subscriptions",
})

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def normalize_capability_name(name: str) -> str:
    """Accept ``canInviteUsers`` as well as ``can_invite_users``."""
    if not isinstance(name, str):
        return ""
    return _CAMEL_BOUNDARY.sub("_", name).lower()
