"""User profile models - one per authenticated identity."""

from typing import Any, Optional
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field, field_validator

from portfolio.models.role import Role


class Identity(BaseModel):
    """Identity record supplied by the identity provider."""
    id: str = Field(..., description="Identity ID (shared with the profile)")
    email: str = Field(..., description="Sign-in email")


class UserProfile(BaseModel):
    """Principal evaluated by the policy engine."""
    id: str = Field(..., description="Profile ID (same as the identity ID)")
    agency_id: Optional[str] = Field(None, description="Agency ID, null only for super admins and unassigned users")
    name: str = Field(..., description="Display name")
    email: Optional[str] = Field(None, description="Email, denormalized from the identity")
    role: Role = Field(default=Role.VIEWER, description="Role: super_admin, agency_admin, agent, viewer")
    phone: Optional[str] = None
    is_active: bool = Field(default=True, description="Deactivated users cannot sign in")
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UserProfileCreate(BaseModel):
    """Direct profile creation by an administrator for an existing identity."""
    id: str = Field(..., min_length=1)
    agency_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=200)
    email: Optional[EmailStr] = None
    role: Role = Role.VIEWER
    phone: Optional[str] = None
    is_active: bool = True


class UserProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    phone: Optional[str] = None
    role: Optional[Role] = None
    is_active: Optional[bool] = None

    @field_validator("name", "role", "is_active", mode="before")
    @classmethod
    def reject_null(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("must not be null")
        return value


class SignUpRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    name: str = Field(..., min_length=1, max_length=200)


# Fields a user may change on their own profile
SELF_EDITABLE_FIELDS = frozenset({"name", "phone"})
