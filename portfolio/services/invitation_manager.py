"""Invitation lifecycle - issue, resolve, redeem, cancel and regenerate agency invitations.

An invitation is PENDING until it is redeemed (USED) or its seven days run out
(EXPIRED, derived from ``expires_at`` and never stored). Redemption goes through
``Store.redeem_invitation`` so the profile insert and the ``used_at`` stamp are a
single atomic step and a token can never produce two profiles.
"""

import secrets
from datetime import datetime
from typing import Any, Callable, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from pydantic import ValidationError as PydanticValidationError
from ulid import ULID

from portfolio.models.invitation import (
    INVITATION_TTL,
    AgencyInvitation,
    InvitationCreate,
    InvitationStatus,
    normalize_email,
)
from portfolio.models.role import Role
from portfolio.models.user_profile import Identity, UserProfile
from portfolio.services.policy_engine import (
    can_access_agency,
    can_assign_role,
    has_capability,
    profile_field,
    role_of,
)
from portfolio.services.storage import AGENCIES, AGENCY_INVITATIONS, USER_PROFILES, Query, Store, get_store
from portfolio.utils.clock import utcnow
from portfolio.utils.config import PortfolioConfig
from portfolio.utils.errors import (
    AlreadyUsed,
    Conflict,
    EmailMismatch,
    Expired,
    NotFound,
    PermissionDenied,
    validation_error_from,
)
from portfolio.utils.logging import get_structured_logger, mask_email, mask_token, mask_user_id, timed

logger = get_structured_logger(__name__)

INVITATION_QUERY_PARAM = "invitation"


def generate_invitation_token() -> str:
    """URL-safe token with 256 bits of entropy."""
    return secrets.token_urlsafe(32)


class InvitationManager:
    """Invitation state machine on top of a Store."""

    def __init__(self, store: Optional[Store] = None, clock: Optional[Callable[[], datetime]] = None):
        self._store = store
        self._clock = clock or utcnow

    @property
    def store(self) -> Store:
        if self._store is None:
            self._store = get_store()
        return self._store

    def _authorize(self, caller: Any, agency_id: Any, role: Any) -> None:
        if not has_capability(caller, "can_invite_users"):
            raise PermissionDenied("caller lacks can_invite_users")
        if not can_access_agency(caller, agency_id):
            # Other tenants' agencies are reported as absent
            raise NotFound(f"agency {agency_id}")
        if not can_assign_role(role_of(caller), role):
            raise PermissionDenied(f"caller may not grant role {role}")

    def _agency_name(self, agency_id: Any) -> Optional[str]:
        agency = self.store.get(AGENCIES, agency_id)
        return agency.get("name") if agency else None

    def _load(self, invitation_id: Any) -> dict:
        row = self.store.get(AGENCY_INVITATIONS, invitation_id)
        if row is None:
            raise NotFound(f"invitation {invitation_id}")
        return row

    @timed("invitation.issue")
    async def issue(self, caller: Any, agency_id: str, email: str, role: Any = Role.AGENT) -> AgencyInvitation:
        """Create a pending invitation for ``email`` to join ``agency_id`` with ``role``."""
        if not has_capability(caller, "can_invite_users"):
            raise PermissionDenied("caller lacks can_invite_users")
        if not can_access_agency(caller, agency_id):
            raise NotFound(f"agency {agency_id}")

        agency = self.store.get(AGENCIES, agency_id)
        if agency is None:
            raise NotFound(f"agency {agency_id}")

        try:
            payload = InvitationCreate(email=email, role=role)
        except PydanticValidationError as e:
            raise validation_error_from(e) from e

        if not can_assign_role(role_of(caller), payload.role):
            raise PermissionDenied(f"caller may not grant role {payload.role.value}")

        email = normalize_email(payload.email)
        now = self._clock()
        row = self.store.issue_invitation({
            "id": str(ULID()),
            "agency_id": agency_id,
            "email": email,
            "role": payload.role.value,
            "invited_by": profile_field(caller, "id"),
            "token": generate_invitation_token(),
            "expires_at": (now + INVITATION_TTL).isoformat(),
            "used_at": None,
            "created_at": now.isoformat(),
        }, now)

        logger.info(
            "Invitation issued",
            invitation_id=row["id"],
            agency_id=agency_id,
            email=mask_email(email),
            role=payload.role.value,
            invited_by=mask_user_id(profile_field(caller, "id")),
        )
        return AgencyInvitation(**{**row, "agency_name": agency.get("name")})

    async def resolve_token(self, token: str) -> AgencyInvitation:
        """Look up an invitation by token. Never mutates and never checks expiry."""
        if not token:
            raise NotFound("invitation token is empty")

        rows = self.store.select(Query(AGENCY_INVITATIONS, equals={"token": token}, order_by=None, limit=1))
        if not rows:
            logger.info("Invitation token not found", token=mask_token(token))
            raise NotFound("invitation not found")

        row = rows[0]
        return AgencyInvitation(**{**row, "agency_name": self._agency_name(row["agency_id"])})

    async def validate_token(self, token: str, now: Optional[datetime] = None) -> AgencyInvitation:
        """Resolve ``token`` and reject it as not found, already used or expired, in that order."""
        invitation = await self.resolve_token(token)
        status = invitation.status_at(now or self._clock())
        if status is InvitationStatus.USED:
            raise AlreadyUsed(f"invitation {invitation.id} already used")
        if status is InvitationStatus.EXPIRED:
            raise Expired(f"invitation {invitation.id} expired at {invitation.expires_at.isoformat()}")
        return invitation

    @timed("invitation.redeem")
    async def redeem(self, token: str, identity: Any, name: Optional[str] = None) -> UserProfile:
        """Turn a pending invitation into a profile for ``identity``.

        Checks run in a fixed order: not found, already used, expired, email
        mismatch, identity already has a profile. The store repeats the first
        four inside the atomic redemption, so a concurrent loser still sees
        AlreadyUsed.
        """
        if not isinstance(identity, Identity):
            identity = Identity.model_validate(identity)

        now = self._clock()
        invitation = await self.validate_token(token, now)

        email = normalize_email(identity.email)
        if email != invitation.email:
            logger.warning(
                "Invitation email mismatch",
                invitation_id=invitation.id,
                expected=mask_email(invitation.email),
                received=mask_email(email),
            )
            raise EmailMismatch(f"invitation {invitation.id} was issued to a different email")

        if self.store.get(USER_PROFILES, identity.id) is not None:
            raise Conflict(
                f"identity {identity.id} already has a profile",
                user_message="This account already belongs to an agency.",
            )

        profile = self.store.redeem_invitation(token, {
            "id": identity.id,
            "email": email,
            "name": (name or "").strip() or email.split("@")[0],
        }, now)

        logger.info(
            "Invitation redeemed",
            invitation_id=invitation.id,
            agency_id=invitation.agency_id,
            user_id=mask_user_id(identity.id),
            role=invitation.role.value,
        )
        return UserProfile(**profile)

    async def cancel(self, caller: Any, invitation_id: str) -> None:
        """Delete a still-pending invitation."""
        row = self._load(invitation_id)
        self._authorize(caller, row["agency_id"], row["role"])
        if row.get("used_at") is not None:
            raise AlreadyUsed(f"invitation {invitation_id} already used")

        self.store.delete(AGENCY_INVITATIONS, invitation_id)
        logger.info("Invitation cancelled", invitation_id=invitation_id, agency_id=row["agency_id"])

    async def regenerate(self, caller: Any, invitation_id: str) -> AgencyInvitation:
        """Issue a fresh token and a fresh seven-day window; email, role and agency stay."""
        row = self._load(invitation_id)
        self._authorize(caller, row["agency_id"], row["role"])
        if row.get("used_at") is not None:
            raise AlreadyUsed(f"invitation {invitation_id} already used")

        now = self._clock()
        updated = self.store.update(AGENCY_INVITATIONS, invitation_id, {
            "token": generate_invitation_token(),
            "expires_at": (now + INVITATION_TTL).isoformat(),
        })
        if updated is None:
            raise NotFound(f"invitation {invitation_id}")

        logger.info("Invitation regenerated", invitation_id=invitation_id, agency_id=row["agency_id"])
        return AgencyInvitation(**{**updated, "agency_name": self._agency_name(row["agency_id"])})

    async def list_for_agency(self, caller: Any, agency_id: str) -> list[AgencyInvitation]:
        """All invitations of one agency, newest first."""
        if not has_capability(caller, "can_invite_users"):
            raise PermissionDenied("caller lacks can_invite_users")
        if not can_access_agency(caller, agency_id):
            raise NotFound(f"agency {agency_id}")

        agency_name = self._agency_name(agency_id)
        rows = self.store.select(Query(AGENCY_INVITATIONS, equals={"agency_id": agency_id}))
        return [AgencyInvitation(**{**row, "agency_name": agency_name}) for row in rows]


def build_invitation_url(token: str, base_url: Optional[str] = None) -> str:
    """Signup link carrying ``token`` as the ``invitation`` query parameter.

    ``base_url`` defaults to the configured ``APP_BASE_URL``.
    """
    parts = urlsplit(base_url or PortfolioConfig.APP_BASE_URL)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != INVITATION_QUERY_PARAM]
    query.append((INVITATION_QUERY_PARAM, token))
    return urlunsplit(parts._replace(query=urlencode(query)))


def extract_invitation_token(url: str) -> Optional[str]:
    for key, value in parse_qsl(urlsplit(url).query, keep_blank_values=True):
        if key == INVITATION_QUERY_PARAM and value:
            return value
    return None


def strip_invitation_token(url: str) -> str:
    """Drop the token from a URL once it has been consumed, keeping other parameters."""
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != INVITATION_QUERY_PARAM]
    return urlunsplit(parts._replace(query=urlencode(query)))
