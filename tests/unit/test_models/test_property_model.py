"""Tests for Property, Agency and UserProfile models."""

import pytest
from pydantic import ValidationError

from portfolio.models.agency import Agency, AgencyCreate, AgencyStatus, AgencyWithStats
from portfolio.models.property import (
    ListingType,
    Property,
    PropertyCreate,
    PropertyStatus,
    PropertyType,
    PropertyUpdate,
)
from portfolio.models.role import Role
from portfolio.models.user_profile import SignUpRequest, UserProfile, UserProfileUpdate


@pytest.mark.unit
def test_property_create_valid():
    """Test valid property creation."""
    prop = PropertyCreate(
        agency_id="a1",
        address="  12 King St  ",
        price=425000,
        listing_type="For Sale",
        property_type="Condo",
        bedrooms=2,
    )

    assert prop.address == "12 King St"
    assert prop.listing_type == ListingType.FOR_SALE
    assert prop.property_type == PropertyType.CONDO
    assert prop.status == PropertyStatus.AVAILABLE
    assert prop.bathrooms == 0


@pytest.mark.unit
@pytest.mark.parametrize("overrides", [
    {"price": 0},
    {"price": -100},
    {"bedrooms": -1},
    {"address": "   "},
    {"listing_type": "For Lease"},
    {"property_type": "Castle"},
])
def test_property_create_rejects_invalid(overrides):
    data = {
        "agency_id": "a1",
        "address": "1 Main St",
        "price": 100000,
        "listing_type": "For Rent",
        "property_type": "House",
    }
    data.update(overrides)

    with pytest.raises(ValidationError):
        PropertyCreate(**data)


@pytest.mark.unit
def test_property_accepts_numeric_and_text_ids():
    base = {"agency_id": "a1", "address": "1 Main St", "price": 1.0,
            "listing_type": "For Rent", "property_type": "Apartment"}

    assert Property(id=42, **base).id == 42
    assert Property(id="01ARZ3NDEKTSV4RRFFQ69G5FAV", **base).id == "01ARZ3NDEKTSV4RRFFQ69G5FAV"


@pytest.mark.unit
def test_property_update_only_sets_given_fields():
    update = PropertyUpdate(status="Sold")

    assert update.model_dump(exclude_unset=True) == {"status": PropertyStatus.SOLD}


@pytest.mark.unit
def test_agency_defaults():
    agency = Agency(id="a1", name="Premium Real Estate")

    assert agency.status == AgencyStatus.ACTIVE
    assert agency.max_users == 10
    assert agency.subscription_tier == "basic"


@pytest.mark.unit
def test_agency_with_stats_defaults_to_zero():
    agency = AgencyWithStats(id="a1", name="Premium Real Estate")

    assert (agency.user_count, agency.property_count, agency.active_invitations) == (0, 0, 0)


@pytest.mark.unit
def test_agency_create_rejects_blank_name_and_zero_seats():
    with pytest.raises(ValidationError):
        AgencyCreate(name="")
    with pytest.raises(ValidationError):
        AgencyCreate(name="Harbor Homes", max_users=0)


@pytest.mark.unit
def test_user_profile_defaults():
    profile = UserProfile(id="u1", name="Jane Doe")

    assert profile.role == Role.VIEWER
    assert profile.is_active is True
    assert profile.agency_id is None


@pytest.mark.unit
def test_user_profile_update_rejects_unknown_role():
    with pytest.raises(ValidationError):
        UserProfileUpdate(role="owner")


@pytest.mark.unit
def test_sign_up_request_validation():
    request = SignUpRequest(email="jane@example.com", password="secret1", name="Jane")
    assert request.email == "jane@example.com"

    with pytest.raises(ValidationError):
        SignUpRequest(email="jane@example.com", password="short", name="Jane")
