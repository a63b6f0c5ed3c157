"""Agency invitation models."""

from enum import Enum
from typing import Optional
from datetime import datetime, timedelta, timezone
from pydantic import BaseModel, EmailStr, Field, field_validator

from portfolio.models.role import INVITABLE_ROLES, Role

INVITATION_TTL = timedelta(days=7)


class InvitationStatus(str, Enum):
    """PENDING -> USED | EXPIRED. Expired is derived, never stored."""
    PENDING = "pending"
    USED = "used"
    EXPIRED = "expired"


class AgencyInvitation(BaseModel):
    """Pending membership grant carried by a single-use token."""
    id: str = Field(..., description="Invitation ID")
    agency_id: str = Field(..., description="Target agency ID")
    agency_name: Optional[str] = Field(None, description="Denormalized agency name for display")
    email: str = Field(..., description="Invitee email (lower case)")
    role: Role = Field(..., description="Granted role: agency_admin, agent or viewer")
    invited_by: Optional[str] = None
    token: str = Field(..., description="Single-use redemption token")
    expires_at: datetime
    used_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @field_validator("expires_at", "used_at", "created_at")
    @classmethod
    def assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def status_at(self, now: datetime) -> InvitationStatus:
        """Valid on the half-open interval [issued, expires_at)."""
        if self.used_at is not None:
            return InvitationStatus.USED
        if now >= self.expires_at:
            return InvitationStatus.EXPIRED
        return InvitationStatus.PENDING


class InvitationCreate(BaseModel):
    email: EmailStr
    role: Role = Role.AGENT

    @field_validator("role")
    @classmethod
    def role_must_be_invitable(cls, value: Role) -> Role:
        if value not in INVITABLE_ROLES:
            raise ValueError(f"role {value.value} cannot be granted by invitation")
        return value


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()
