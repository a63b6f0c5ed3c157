"""Agency models - the tenant."""

from enum import Enum
from typing import Any, Optional
from datetime import datetime
from pydantic import BaseModel, Field, field_validator


class AgencyStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    INACTIVE = "inactive"


class Agency(BaseModel):
    """An isolated customer organization owning its own users and properties."""
    id: str = Field(..., description="Agency ID")
    name: str = Field(..., description="Agency name")
    address: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    status: AgencyStatus = Field(default=AgencyStatus.ACTIVE, description="Lifecycle status")
    max_users: int = Field(default=10, ge=1, description="User seat limit")
    subscription_tier: str = Field(default="basic", description="Subscription tier")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AgencyWithStats(Agency):
    """Agency row with membership and listing counts for the admin dashboard."""
    user_count: int = 0
    property_count: int = 0
    active_invitations: int = 0


class AgencyCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    address: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    max_users: int = Field(default=10, ge=1)
    subscription_tier: str = Field(default="basic", min_length=1)


class AgencyUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    address: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    status: Optional[AgencyStatus] = None
    max_users: Optional[int] = Field(None, ge=1)
    subscription_tier: Optional[str] = Field(None, min_length=1)

    @field_validator("name", "status", "max_users", "subscription_tier", mode="before")
    @classmethod
    def reject_null(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("must not be null")
        return value
