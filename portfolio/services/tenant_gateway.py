"""Tenant-scoped data gateway.

Every read and write of a tenant-owned entity goes through here. The caller's
agency is injected into every query, so nobody but a super admin can observe or
touch another agency's rows. Rows outside the caller's scope are reported as
NotFound, exactly like rows that do not exist.
"""

from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Type, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from portfolio.models.property import Property, PropertyCreate, PropertyUpdate
from portfolio.models.user_profile import (
    SELF_EDITABLE_FIELDS,
    UserProfile,
    UserProfileCreate,
    UserProfileUpdate,
)
from portfolio.services.policy_engine import (
    can_access_agency,
    can_assign_role,
    can_manage,
    has_capability,
    is_super_admin,
    profile_field,
    role_of,
)
from portfolio.services.storage import AGENCIES, PROPERTIES, USER_PROFILES, Query, Store, get_store
from portfolio.utils.clock import utcnow
from portfolio.utils.errors import NotFound, PermissionDenied, ValidationError, validation_error_from
from portfolio.utils.logging import get_structured_logger, log_timing, mask_user_id

logger = get_structured_logger(__name__)

# Never taken from a client payload on update
IMMUTABLE_FIELDS = frozenset({"id", "agency_id", "created_at", "created_by", "updated_at", "updated_by"})

# Seat limit for agencies created before max_users existed
DEFAULT_MAX_USERS = 10


@dataclass(frozen=True)
class EntityKind:
    """A tenant-owned table with its models and the capabilities guarding it."""
    name: str
    table: str
    model: Type[BaseModel]
    create_model: Type[BaseModel]
    update_model: Type[BaseModel]
    view_capability: str
    create_capability: str
    edit_capability: str
    delete_capability: str
    search_columns: tuple


PROPERTY = EntityKind(
    name="property",
    table=PROPERTIES,
    model=Property,
    create_model=PropertyCreate,
    update_model=PropertyUpdate,
    view_capability="can_view_properties",
    create_capability="can_create_properties",
    edit_capability="can_edit_properties",
    delete_capability="can_delete_properties",
    search_columns=("address", "agent", "owner_name"),
)

USER_PROFILE = EntityKind(
    name="user_profile",
    table=USER_PROFILES,
    model=UserProfile,
    create_model=UserProfileCreate,
    update_model=UserProfileUpdate,
    view_capability="can_view_agency_users",
    create_capability="can_edit_agency_users",
    edit_capability="can_edit_agency_users",
    delete_capability="can_delete_agency_users",
    search_columns=("name", "email"),
)

ENTITY_KINDS = {kind.name: kind for kind in (PROPERTY, USER_PROFILE)}


def resolve_kind(kind: Union[EntityKind, str]) -> EntityKind:
    if isinstance(kind, EntityKind):
        return kind
    try:
        return ENTITY_KINDS[kind]
    except (KeyError, TypeError):
        raise ValidationError(f"unknown entity kind {kind!r}", field="kind")


def _payload_dict(payload: Any) -> dict:
    if payload is None:
        return {}
    if isinstance(payload, BaseModel):
        return payload.model_dump(exclude_unset=True)
    return dict(payload)


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


def _number(filters: dict, name: str) -> Optional[float]:
    value = filters.get(name)
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number, got {value!r}", field=name)


def _is_self(caller: Any, row: dict) -> bool:
    caller_id = profile_field(caller, "id")
    return caller_id is not None and str(caller_id) == str(row.get("id"))


class TenantGateway:
    """Scope-enforcing CRUD for properties and user profiles."""

    def __init__(self, store: Optional[Store] = None, clock: Optional[Callable] = None):
        self._store = store
        self._clock = clock or utcnow

    @property
    def store(self) -> Store:
        if self._store is None:
            self._store = get_store()
        return self._store

    def _scoped_query(self, kind: EntityKind, caller: Any, filters: dict) -> Optional[Query]:
        query = Query(kind.table)
        if is_super_admin(caller):
            if filters.get("agency_id"):
                query.equals["agency_id"] = filters["agency_id"]
            return query

        agency_id = profile_field(caller, "agency_id")
        if agency_id is None:
            return None
        # Client-supplied agency_id is ignored for everyone but super admins
        query.equals["agency_id"] = agency_id
        return query

    def _apply_filters(self, kind: EntityKind, query: Query, filters: dict) -> None:
        search_term = (filters.get("search_term") or "").strip()
        if search_term:
            query.search_term = search_term
            query.search_columns = kind.search_columns

        if kind is PROPERTY:
            min_price = _number(filters, "min_price")
            if min_price is not None:
                query.gte["price"] = min_price
            max_price = _number(filters, "max_price")
            if max_price is not None:
                query.lte["price"] = max_price
            min_bedrooms = _number(filters, "min_bedrooms")
            if min_bedrooms is not None:
                query.gte["bedrooms"] = min_bedrooms
            for column in ("listing_type", "property_type", "status"):
                if filters.get(column):
                    query.equals[column] = _enum_value(filters[column])
        elif kind is USER_PROFILE:
            if filters.get("role"):
                query.equals["role"] = _enum_value(filters["role"])
            if filters.get("is_active") is not None:
                query.equals["is_active"] = bool(filters["is_active"])

    def _load_scoped(self, kind: EntityKind, caller: Any, entity_id: Any) -> dict:
        row = self.store.get(kind.table, entity_id)
        if row is None:
            raise NotFound(f"{kind.name} {entity_id}")
        if kind is USER_PROFILE and _is_self(caller, row):
            return row
        if not can_access_agency(caller, row.get("agency_id")):
            logger.info(
                "Cross-tenant access refused",
                kind=kind.name,
                entity_id=str(entity_id),
                caller_id=mask_user_id(profile_field(caller, "id")),
            )
            raise NotFound(f"{kind.name} {entity_id}")
        return row

    async def list(self, kind: Union[EntityKind, str], caller: Any,
                   filters: Optional[dict] = None) -> List[BaseModel]:
        """Rows visible to ``caller``, newest first."""
        kind = resolve_kind(kind)
        filters = dict(filters or {})
        if not has_capability(caller, kind.view_capability):
            raise PermissionDenied(f"caller lacks {kind.view_capability}")

        query = self._scoped_query(kind, caller, filters)
        if query is None:
            return []
        self._apply_filters(kind, query, filters)

        with log_timing(f"list {kind.name}", logger=logger):
            rows = self.store.select(query)
        return [kind.model(**row) for row in rows]

    async def get(self, kind: Union[EntityKind, str], caller: Any, entity_id: Any) -> BaseModel:
        kind = resolve_kind(kind)
        row = self._load_scoped(kind, caller, entity_id)
        if not (kind is USER_PROFILE and _is_self(caller, row)) and not has_capability(caller, kind.view_capability):
            raise PermissionDenied(f"caller lacks {kind.view_capability}")
        return kind.model(**row)

    async def create(self, kind: Union[EntityKind, str], caller: Any, payload: Any) -> BaseModel:
        """Insert a row into the caller's agency (or, for super admins, the agency they name)."""
        kind = resolve_kind(kind)
        if not has_capability(caller, kind.create_capability):
            raise PermissionDenied(f"caller lacks {kind.create_capability}")

        data = _payload_dict(payload)
        if is_super_admin(caller):
            agency_id = data.get("agency_id")
            if not agency_id:
                raise ValidationError("agency_id is required", field="agency_id",
                                      user_message="Please choose an agency.")
        else:
            agency_id = profile_field(caller, "agency_id")
            if agency_id is None:
                raise PermissionDenied("caller has no agency")
            data["agency_id"] = agency_id

        agency = self.store.get(AGENCIES, agency_id)
        if agency is None:
            raise NotFound(f"agency {agency_id}")

        try:
            validated = kind.create_model(**data)
        except PydanticValidationError as e:
            raise validation_error_from(e) from e

        row = validated.model_dump(mode="json")
        now = self._clock().isoformat()
        caller_id = profile_field(caller, "id")

        if kind is USER_PROFILE:
            if not can_assign_role(role_of(caller), validated.role):
                raise PermissionDenied(f"caller may not assign role {validated.role.value}")
        else:
            row["created_by"] = caller_id
            row["updated_by"] = caller_id
        row["created_at"] = now
        row["updated_at"] = now

        with log_timing(f"create {kind.name}", logger=logger):
            if kind is USER_PROFILE:
                created = self.store.insert_member(row, DEFAULT_MAX_USERS)
            else:
                created = self.store.insert(kind.table, row)

        logger.info(
            f"Created {kind.name}",
            kind=kind.name,
            entity_id=str(created.get("id")),
            agency_id=agency_id,
            caller_id=mask_user_id(caller_id),
        )
        return kind.model(**created)

    async def update(self, kind: Union[EntityKind, str], caller: Any, entity_id: Any, payload: Any) -> BaseModel:
        """Apply a partial update. ``agency_id`` and audit fields in the payload are ignored."""
        kind = resolve_kind(kind)
        row = self._load_scoped(kind, caller, entity_id)
        data = {k: v for k, v in _payload_dict(payload).items() if k not in IMMUTABLE_FIELDS}

        if kind is USER_PROFILE:
            self._authorize_profile_update(caller, row, data)
        elif not has_capability(caller, kind.edit_capability):
            raise PermissionDenied(f"caller lacks {kind.edit_capability}")

        try:
            validated = kind.update_model(**data)
        except PydanticValidationError as e:
            raise validation_error_from(e) from e

        changes = validated.model_dump(mode="json", exclude_unset=True)
        if kind is PROPERTY:
            changes["updated_by"] = profile_field(caller, "id")
        changes["updated_at"] = self._clock().isoformat()

        # The merged row must still be a valid entity before anything is written
        try:
            kind.model(**{**row, **changes})
        except PydanticValidationError as e:
            raise validation_error_from(e) from e

        with log_timing(f"update {kind.name}", logger=logger):
            updated = self.store.update(kind.table, entity_id, changes)
        if updated is None:
            raise NotFound(f"{kind.name} {entity_id}")

        logger.info(
            f"Updated {kind.name}",
            kind=kind.name,
            entity_id=str(entity_id),
            fields=sorted(changes),
            caller_id=mask_user_id(profile_field(caller, "id")),
        )
        return kind.model(**updated)

    def _authorize_profile_update(self, caller: Any, row: dict, data: dict) -> None:
        if _is_self(caller, row):
            restricted = set(data) - SELF_EDITABLE_FIELDS
            if restricted:
                raise PermissionDenied(f"self-service may not change {sorted(restricted)}")
            return

        if not has_capability(caller, USER_PROFILE.edit_capability):
            raise PermissionDenied(f"caller lacks {USER_PROFILE.edit_capability}")
        if not can_manage(caller, row):
            raise PermissionDenied(f"caller may not manage user {row.get('id')}")
        if data.get("role") is not None and not can_assign_role(role_of(caller), data["role"]):
            raise PermissionDenied(f"caller may not assign role {_enum_value(data['role'])}")

    async def delete(self, kind: Union[EntityKind, str], caller: Any, entity_id: Any) -> None:
        kind = resolve_kind(kind)
        row = self._load_scoped(kind, caller, entity_id)
        if not has_capability(caller, kind.delete_capability):
            raise PermissionDenied(f"caller lacks {kind.delete_capability}")

        if kind is USER_PROFILE:
            if _is_self(caller, row):
                raise PermissionDenied("users cannot delete their own profile")
            if not can_manage(caller, row):
                raise PermissionDenied(f"caller may not manage user {row.get('id')}")

        with log_timing(f"delete {kind.name}", logger=logger):
            deleted = self.store.delete(kind.table, entity_id)
        if not deleted:
            raise NotFound(f"{kind.name} {entity_id}")

        logger.info(
            f"Deleted {kind.name}",
            kind=kind.name,
            entity_id=str(entity_id),
            caller_id=mask_user_id(profile_field(caller, "id")),
        )
