"""Agency service - tenant lifecycle for the admin dashboard."""

from typing import Any, Callable, Optional

from pydantic import ValidationError as PydanticValidationError
from ulid import ULID

from portfolio.models.agency import Agency, AgencyCreate, AgencyUpdate, AgencyWithStats
from portfolio.models.invitation import AgencyInvitation, InvitationStatus
from portfolio.services.policy_engine import can_access_agency, has_capability, profile_field
from portfolio.services.storage import (
    AGENCIES,
    AGENCY_INVITATIONS,
    PROPERTIES,
    USER_PROFILES,
    Query,
    Store,
    get_store,
)
from portfolio.utils.clock import utcnow
from portfolio.utils.errors import Conflict, NotFound, PermissionDenied, validation_error_from
from portfolio.utils.logging import get_structured_logger, log_timing, mask_user_id

logger = get_structured_logger(__name__)


class AgencyService:
    def __init__(self, store: Optional[Store] = None, clock: Optional[Callable] = None):
        self._store = store
        self._clock = clock or utcnow

    @property
    def store(self) -> Store:
        if self._store is None:
            self._store = get_store()
        return self._store

    def _with_stats(self, row: dict) -> AgencyWithStats:
        now = self._clock()
        invitations = self.store.select(Query(
            AGENCY_INVITATIONS,
            equals={"agency_id": row["id"]},
            is_null=("used_at",),
            order_by=None,
        ))
        active = sum(
            1 for invitation in invitations
            if AgencyInvitation(**invitation).status_at(now) is InvitationStatus.PENDING
        )
        return AgencyWithStats(
            **row,
            user_count=self.store.count(USER_PROFILES, {"agency_id": row["id"]}),
            property_count=self.store.count(PROPERTIES, {"agency_id": row["id"]}),
            active_invitations=active,
        )

    async def list_agencies(self, caller: Any) -> list[AgencyWithStats]:
        """Super admins get every agency with usage counts; everyone else only their own."""
        if has_capability(caller, "can_view_all_agencies"):
            with log_timing("list agencies with stats", logger=logger):
                rows = self.store.select(Query(AGENCIES))
                return [self._with_stats(row) for row in rows]

        agency_id = profile_field(caller, "agency_id")
        if agency_id is None:
            return []
        row = self.store.get(AGENCIES, agency_id)
        return [self._with_stats(row)] if row else []

    async def get_agency(self, caller: Any, agency_id: str) -> Agency:
        if not can_access_agency(caller, agency_id):
            raise NotFound(f"agency {agency_id}")
        row = self.store.get(AGENCIES, agency_id)
        if row is None:
            raise NotFound(f"agency {agency_id}")
        return Agency(**row)

    async def create_agency(self, caller: Any, payload: Any) -> Agency:
        if not has_capability(caller, "can_create_agencies"):
            raise PermissionDenied("caller lacks can_create_agencies")
        try:
            validated = payload if isinstance(payload, AgencyCreate) else AgencyCreate(**dict(payload))
        except PydanticValidationError as e:
            raise validation_error_from(e) from e

        now = self._clock().isoformat()
        row = self.store.insert(AGENCIES, {
            "id": str(ULID()),
            **validated.model_dump(mode="json"),
            "status": "active",
            "created_at": now,
            "updated_at": now,
        })
        logger.info(
            "Agency created",
            agency_id=row["id"],
            name=row["name"],
            created_by=mask_user_id(profile_field(caller, "id")),
        )
        return Agency(**row)

    async def update_agency(self, caller: Any, agency_id: str, payload: Any) -> Agency:
        if not can_access_agency(caller, agency_id):
            raise NotFound(f"agency {agency_id}")
        if not has_capability(caller, "can_edit_agency"):
            raise PermissionDenied("caller lacks can_edit_agency")
        existing = self.store.get(AGENCIES, agency_id)
        if existing is None:
            raise NotFound(f"agency {agency_id}")

        try:
            validated = payload if isinstance(payload, AgencyUpdate) else AgencyUpdate(**dict(payload))
        except PydanticValidationError as e:
            raise validation_error_from(e) from e

        changes = validated.model_dump(mode="json", exclude_unset=True)
        if "status" in changes and not has_capability(caller, "can_suspend_agencies"):
            raise PermissionDenied("caller lacks can_suspend_agencies")
        # Seat limits and tiers are billing concerns
        if {"max_users", "subscription_tier"} & set(changes) and not has_capability(caller, "can_manage_subscriptions"):
            raise PermissionDenied("caller lacks can_manage_subscriptions")

        changes["updated_at"] = self._clock().isoformat()
        try:
            Agency(**{**existing, **changes})
        except PydanticValidationError as e:
            raise validation_error_from(e) from e

        row = self.store.update(AGENCIES, agency_id, changes)
        if row is None:
            raise NotFound(f"agency {agency_id}")

        logger.info("Agency updated", agency_id=agency_id, fields=sorted(changes))
        return Agency(**row)

    async def delete_agency(self, caller: Any, agency_id: str, cascade: bool = False) -> None:
        """Delete an agency. Refuses while users or properties reference it unless ``cascade``."""
        if not has_capability(caller, "can_delete_agencies"):
            raise PermissionDenied("caller lacks can_delete_agencies")
        if self.store.get(AGENCIES, agency_id) is None:
            raise NotFound(f"agency {agency_id}")

        users = self.store.count(USER_PROFILES, {"agency_id": agency_id})
        properties = self.store.count(PROPERTIES, {"agency_id": agency_id})
        if (users or properties) and not cascade:
            raise Conflict(
                f"agency {agency_id} still has {users} users and {properties} properties",
                user_message="This agency still has users or properties. Remove them first.",
            )

        if cascade:
            for table in (AGENCY_INVITATIONS, PROPERTIES, USER_PROFILES):
                for row in self.store.select(Query(table, equals={"agency_id": agency_id}, order_by=None)):
                    self.store.delete(table, row["id"])
        self.store.delete(AGENCIES, agency_id)

        logger.warning(
            "Agency deleted",
            agency_id=agency_id,
            cascade=cascade,
            users_removed=users if cascade else 0,
            properties_removed=properties if cascade else 0,
            deleted_by=mask_user_id(profile_field(caller, "id")),
        )
