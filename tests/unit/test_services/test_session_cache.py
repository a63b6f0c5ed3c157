"""Tests for the session cache."""

import pytest

from portfolio.models.role import Role
from portfolio.models.user_profile import Identity, UserProfile
from portfolio.services.session_cache import SIGNED_OUT, get_session_cache


@pytest.mark.unit
def test_starts_signed_out(session_cache):
    state = session_cache.get()

    assert state is SIGNED_OUT
    assert not state.signed_in
    assert state.permissions.granted() == frozenset()


@pytest.mark.unit
def test_populate_and_clear(session_cache):
    identity = Identity(id="u1", email="u1@example.com")
    profile = UserProfile(id="u1", agency_id="a1", name="U One", role=Role.AGENCY_ADMIN)

    state = session_cache.populate(identity, profile)

    assert session_cache.get() is state
    assert state.signed_in
    assert state.permissions.can_invite_users is True

    session_cache.clear()
    assert session_cache.get() is SIGNED_OUT


@pytest.mark.unit
def test_identity_without_profile_has_guest_permissions(session_cache):
    state = session_cache.populate(Identity(id="u2", email="u2@example.com"))

    assert state.signed_in
    assert state.permissions.granted() == frozenset()


@pytest.mark.unit
def test_get_session_cache_is_a_singleton():
    assert get_session_cache() is get_session_cache()
