"""Property listing models."""

from enum import Enum
from typing import Any, Optional, Union
from datetime import datetime
from pydantic import BaseModel, Field, field_validator


class ListingType(str, Enum):
    FOR_SALE = "For Sale"
    FOR_RENT = "For Rent"


class PropertyType(str, Enum):
    HOUSE = "House"
    CONDO = "Condo"
    APARTMENT = "Apartment"
    TOWNHOUSE = "Townhouse"
    COMMERCIAL = "Commercial"


class PropertyStatus(str, Enum):
    AVAILABLE = "Available"
    PENDING = "Pending"
    SOLD = "Sold"
    OFF_MARKET = "Off Market"


class Property(BaseModel):
    """Tenant-owned listing."""
    id: Union[int, str] = Field(..., description="Property ID")
    agency_id: str = Field(..., description="Owning agency ID (immutable)")
    address: str = Field(..., description="Property address")
    price: float = Field(..., description="Asking price or rent")
    listing_type: ListingType
    property_type: PropertyType
    bedrooms: int = 0
    bathrooms: int = 0
    sqft: int = 0
    status: PropertyStatus = PropertyStatus.AVAILABLE
    agent: Optional[str] = Field(None, description="Listing agent name")
    owner_name: Optional[str] = None
    owner_phone: Optional[str] = None
    comments: Optional[str] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PropertyCreate(BaseModel):
    agency_id: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1, max_length=500)
    price: float = Field(..., gt=0)
    listing_type: ListingType
    property_type: PropertyType
    bedrooms: int = Field(default=0, ge=0)
    bathrooms: int = Field(default=0, ge=0)
    sqft: int = Field(default=0, ge=0)
    status: PropertyStatus = PropertyStatus.AVAILABLE
    agent: Optional[str] = None
    owner_name: Optional[str] = None
    owner_phone: Optional[str] = None
    comments: Optional[str] = None

    @field_validator("address")
    @classmethod
    def strip_address(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("address must not be blank")
        return value


class PropertyUpdate(BaseModel):
    address: Optional[str] = Field(None, min_length=1, max_length=500)
    price: Optional[float] = Field(None, gt=0)
    listing_type: Optional[ListingType] = None
    property_type: Optional[PropertyType] = None
    bedrooms: Optional[int] = Field(None, ge=0)
    bathrooms: Optional[int] = Field(None, ge=0)
    sqft: Optional[int] = Field(None, ge=0)
    status: Optional[PropertyStatus] = None
    agent: Optional[str] = None
    owner_name: Optional[str] = None
    owner_phone: Optional[str] = None
    comments: Optional[str] = None

    @field_validator("address", "price", "listing_type", "property_type", "bedrooms", "bathrooms", "sqft", "status",
                     mode="before")
    @classmethod
    def reject_null(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("must not be null")
        return value

    @field_validator("address")
    @classmethod
    def strip_address(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            value = value.strip()
            if not value:
                raise ValueError("address must not be blank")
        return value
