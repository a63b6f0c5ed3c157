"""Tests for AgencyInvitation models."""

import pytest
from datetime import datetime, timedelta, timezone
from pydantic import ValidationError

from portfolio.models.invitation import (
    INVITATION_TTL,
    AgencyInvitation,
    InvitationCreate,
    InvitationStatus,
    normalize_email,
)
from portfolio.models.role import Role

ISSUED = datetime(2024, 12, 9, 12, 0, 0, tzinfo=timezone.utc)


def _invitation(**overrides):
    data = {
        "id": "01ARZ3NDEKTSV4RRFFQ69G5FAV",
        "agency_id": "a1",
        "email": "new.agent@example.com",
        "role": "agent",
        "token": "tok",
        "expires_at": ISSUED + INVITATION_TTL,
    }
    data.update(overrides)
    return AgencyInvitation(**data)


@pytest.mark.unit
def test_ttl_is_seven_days():
    assert INVITATION_TTL == timedelta(days=7)


@pytest.mark.unit
def test_status_is_half_open_interval():
    """Pending up to but excluding expires_at."""
    invitation = _invitation()
    expires = invitation.expires_at

    assert invitation.status_at(ISSUED) == InvitationStatus.PENDING
    assert invitation.status_at(expires - timedelta(microseconds=1)) == InvitationStatus.PENDING
    assert invitation.status_at(expires) == InvitationStatus.EXPIRED


@pytest.mark.unit
def test_used_wins_over_expired():
    invitation = _invitation(used_at=ISSUED + timedelta(hours=1))

    assert invitation.status_at(ISSUED + timedelta(days=30)) == InvitationStatus.USED


@pytest.mark.unit
def test_naive_timestamps_are_utc():
    invitation = _invitation(expires_at=datetime(2024, 12, 16, 12, 0, 0))

    assert invitation.expires_at.tzinfo == timezone.utc
    assert invitation.status_at(ISSUED) == InvitationStatus.PENDING


@pytest.mark.unit
def test_iso_string_timestamps_parse():
    invitation = _invitation(expires_at="2024-12-16T12:00:00+00:00")

    assert invitation.expires_at == ISSUED + INVITATION_TTL


@pytest.mark.unit
def test_create_defaults_to_agent():
    request = InvitationCreate(email="someone@example.com")

    assert request.role == Role.AGENT


@pytest.mark.unit
def test_create_rejects_super_admin():
    with pytest.raises(ValidationError):
        InvitationCreate(email="someone@example.com", role="super_admin")


@pytest.mark.unit
def test_create_rejects_bad_email():
    with pytest.raises(ValidationError):
        InvitationCreate(email="not-an-email", role="viewer")


@pytest.mark.unit
@pytest.mark.parametrize("raw,expected", [
    ("  New.Agent@Example.COM ", "new.agent@example.com"),
    (None, ""),
])
def test_normalize_email(raw, expected):
    assert normalize_email(raw) == expected
