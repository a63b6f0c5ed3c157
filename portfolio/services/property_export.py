"""CSV export of the caller's visible properties."""

import csv
import io
from typing import Any, Iterable, Optional

from portfolio.models.property import Property
from portfolio.services.policy_engine import profile_field
from portfolio.services.tenant_gateway import PROPERTY, TenantGateway
from portfolio.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)

EXPORT_COLUMNS = (
    ("ID", "id"),
    ("Address", "address"),
    ("Price", "price"),
    ("Listing Type", "listing_type"),
    ("Property Type", "property_type"),
    ("Bedrooms", "bedrooms"),
    ("Bathrooms", "bathrooms"),
    ("Sq Ft", "sqft"),
    ("Status", "status"),
    ("Agent", "agent"),
    ("Owner Name", "owner_name"),
    ("Owner Phone", "owner_phone"),
    ("Comments", "comments"),
    ("Created At", "created_at"),
)


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if hasattr(value, "value"):
        return str(value.value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def properties_to_csv(properties: Iterable[Property]) -> str:
    """Render properties in the fixed export layout; fields with commas, quotes or newlines are quoted."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow([header for header, _ in EXPORT_COLUMNS])
    for prop in properties:
        writer.writerow([_cell(getattr(prop, attribute)) for _, attribute in EXPORT_COLUMNS])
    return buffer.getvalue()


async def export_properties(caller: Any, filters: Optional[dict] = None,
                            gateway: Optional[TenantGateway] = None) -> str:
    """Export exactly what ``caller`` may list; scoping and the view capability come from the gateway."""
    gateway = gateway or TenantGateway()
    properties = await gateway.list(PROPERTY, caller, filters)
    logger.info(
        "Properties exported",
        count=len(properties),
        caller_id=mask_user_id(profile_field(caller, "id")),
    )
    return properties_to_csv(properties)
