"""Shared pytest fixtures and configuration."""

import os
import pytest
from unittest.mock import MagicMock
from freezegun import freeze_time

# Set test environment variables
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("PROFILE_LOAD_DELAY_SECONDS", "0")
os.environ.setdefault("APP_BASE_URL", "https://portfolio.test")
os.environ.setdefault("LOG_MASK_SENSITIVE", "true")

from portfolio.models.role import Role
from portfolio.services.agency_service import AgencyService
from portfolio.services.invitation_manager import InvitationManager
from portfolio.services.memory_store import MemoryStore
from portfolio.services.session_cache import SessionCache
from portfolio.services.storage import AGENCIES, USER_PROFILES, set_store
from portfolio.services.tenant_gateway import TenantGateway
from tests.utils.factories import create_agency_data, create_profile_data
from tests.utils.helpers import NOW, MutableClock



@pytest.fixture(autouse=True)
def reset_store_singleton():
    """Never let one test's process-wide store leak into the next."""
    set_store(None)
    yield
    set_store(None)


@pytest.fixture
def clock():
    """Controllable clock starting at 2024-12-09 12:00 UTC."""
    return MutableClock(NOW)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def agency(store):
    return store.insert(AGENCIES, create_agency_data(name="Premium Real Estate"))


@pytest.fixture
def other_agency(store):
    return store.insert(AGENCIES, create_agency_data(name="Harbor Homes"))


@pytest.fixture
def super_admin(store):
    return store.insert(USER_PROFILES, create_profile_data(role=Role.SUPER_ADMIN, agency_id=None))


@pytest.fixture
def agency_admin(store, agency):
    return store.insert(USER_PROFILES, create_profile_data(role=Role.AGENCY_ADMIN, agency_id=agency["id"]))


@pytest.fixture
def agent(store, agency):
    return store.insert(USER_PROFILES, create_profile_data(role=Role.AGENT, agency_id=agency["id"]))


@pytest.fixture
def viewer(store, agency):
    return store.insert(USER_PROFILES, create_profile_data(role=Role.VIEWER, agency_id=agency["id"]))


@pytest.fixture
def other_admin(store, other_agency):
    return store.insert(USER_PROFILES, create_profile_data(role=Role.AGENCY_ADMIN, agency_id=other_agency["id"]))


@pytest.fixture
def invitation_manager(store, clock):
    return InvitationManager(store=store, clock=clock)


@pytest.fixture
def gateway(store, clock):
    return TenantGateway(store=store, clock=clock)


@pytest.fixture
def agency_service(store, clock):
    return AgencyService(store=store, clock=clock)


@pytest.fixture
def session_cache():
    return SessionCache()


@pytest.fixture
def mock_supabase_client():
    """Mock Supabase client whose query builders chain back to themselves."""
    client = MagicMock()
    query = MagicMock()
    for method in ("select", "insert", "update", "delete", "eq", "is_", "gte", "lte", "or_", "order", "limit"):
        getattr(query, method).return_value = query
    client.table.return_value = query
    return client


@pytest.fixture
def freeze_time_fixture():
    """Fixture for freezing time in tests."""
    with freeze_time("2024-12-09 12:00:00", real_asyncio=True) as frozen_time:
        yield frozen_time


@pytest.fixture
def mock_vercel_request():
    """Mock Vercel serverless function request."""
    return {
        "method": "GET",
        "path": "/api/invitations/validate",
        "headers": {"content-type": "application/json"},
        "body": "",
        "query": {},
    }
