"""Thread-safe in-process store for local development and tests.

Mirrors the semantics of the Supabase schema, including the compare-and-swap on
``agency_invitations.used_at`` that makes redemption at-most-once and the locked
check-and-insert behind pending-invitation uniqueness and agency seat limits.
"""

import copy
import threading
from datetime import datetime
from typing import Any, Optional

from ulid import ULID

from portfolio.models.invitation import normalize_email
from portfolio.models.role import Role
from portfolio.services.storage import AGENCIES, AGENCY_INVITATIONS, USER_PROFILES, Query
from portfolio.utils.clock import parse_timestamp, utcnow
from portfolio.utils.errors import (
    AlreadyUsed,
    Conflict,
    EmailMismatch,
    Expired,
    NotFound,
    PendingInvitationExists,
    SeatLimitReached,
)
from portfolio.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


def _comparable(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return parse_timestamp(value)
        except ValueError:
            return value
    if isinstance(value, datetime):
        return parse_timestamp(value)
    return value


def _sort_key(value: Any) -> tuple:
    # nulls sort last in descending order
    if value is None:
        return (False, 0)
    return (True, _comparable(value))


def _matches(row: dict, query: Query) -> bool:
    for column, expected in query.equals.items():
        if row.get(column) != expected:
            return False
    for column in query.is_null:
        if row.get(column) is not None:
            return False
    for column, bound in query.gte.items():
        value = row.get(column)
        if value is None or _comparable(value) < _comparable(bound):
            return False
    for column, bound in query.lte.items():
        value = row.get(column)
        if value is None or _comparable(value) > _comparable(bound):
            return False
    if query.search_term:
        term = query.search_term.lower()
        if not any(term in str(row.get(column) or "").lower() for column in query.search_columns):
            return False
    return True


class MemoryStore:
    """Dict-of-dicts store guarded by a single re-entrant lock."""

    def __init__(self):
        self._tables: dict[str, dict[Any, dict]] = {}
        self._lock = threading.RLock()

    def _table(self, table: str) -> dict[Any, dict]:
        return self._tables.setdefault(table, {})

    def select(self, query: Query) -> list[dict]:
        with self._lock:
            rows = [copy.deepcopy(row) for row in self._table(query.table).values() if _matches(row, query)]
        if query.order_by:
            rows.sort(key=lambda row: _sort_key(row.get(query.order_by)), reverse=query.descending)
        if query.limit is not None:
            rows = rows[:query.limit]
        return rows

    def get(self, table: str, row_id: Any) -> Optional[dict]:
        with self._lock:
            row = self._table(table).get(row_id)
            return copy.deepcopy(row) if row is not None else None

    def insert(self, table: str, row: dict) -> dict:
        with self._lock:
            return self._insert_locked(table, row)

    def _insert_locked(self, table: str, row: dict) -> dict:
        rows = self._table(table)
        row = copy.deepcopy(row)
        row.setdefault("id", str(ULID()))
        if row["id"] in rows:
            raise Conflict(f"duplicate key value violates unique constraint on {table}.id")
        if table == AGENCY_INVITATIONS and any(r.get("token") == row.get("token") for r in rows.values()):
            raise Conflict("duplicate key value violates unique constraint on agency_invitations.token")
        now = utcnow().isoformat()
        row.setdefault("created_at", now)
        if table != AGENCY_INVITATIONS:
            row.setdefault("updated_at", now)
        rows[row["id"]] = row
        return copy.deepcopy(row)

    def update(self, table: str, row_id: Any, changes: dict) -> Optional[dict]:
        with self._lock:
            row = self._table(table).get(row_id)
            if row is None:
                return None
            row.update(copy.deepcopy(changes))
            return copy.deepcopy(row)

    def delete(self, table: str, row_id: Any) -> bool:
        with self._lock:
            return self._table(table).pop(row_id, None) is not None

    def count(self, table: str, equals: Optional[dict[str, Any]] = None) -> int:
        return len(self.select(Query(table, equals=dict(equals or {}), order_by=None)))

    def redeem_invitation(self, token: str, profile: dict, now: datetime) -> dict:
        with self._lock:
            invitation = next(
                (row for row in self._table(AGENCY_INVITATIONS).values() if row.get("token") == token),
                None,
            )
            if invitation is None:
                raise NotFound("invitation_not_found")
            if invitation.get("used_at") is not None:
                raise AlreadyUsed("invitation_already_used")
            if now >= parse_timestamp(invitation["expires_at"]):
                raise Expired("invitation_expired")
            if normalize_email(profile.get("email")) != normalize_email(invitation.get("email")):
                raise EmailMismatch("invitation_email_mismatch")

            created = self._insert_locked(USER_PROFILES, {
                **profile,
                "agency_id": invitation["agency_id"],
                "role": invitation["role"],
                "is_active": True,
            })
            invitation["used_at"] = now.isoformat()
            logger.debug("Invitation redeemed in memory store", invitation_id=invitation["id"])
            return created

    def issue_invitation(self, row: dict, now: datetime) -> dict:
        with self._lock:
            email = normalize_email(row.get("email"))
            for existing in self._table(AGENCY_INVITATIONS).values():
                if (
                    existing.get("agency_id") == row.get("agency_id")
                    and normalize_email(existing.get("email")) == email
                    and existing.get("used_at") is None
                    and now < parse_timestamp(existing["expires_at"])
                ):
                    raise PendingInvitationExists(f"pending invitation {existing['id']} for agency {row.get('agency_id')}")
            return self._insert_locked(AGENCY_INVITATIONS, row)

    def insert_member(self, row: dict, default_limit: int) -> dict:
        with self._lock:
            agency_id = row.get("agency_id")
            agency = self._table(AGENCIES).get(agency_id)
            if agency is None:
                raise NotFound(f"agency {agency_id}")
            limit = agency.get("max_users") or default_limit
            seats = sum(1 for r in self._table(USER_PROFILES).values() if r.get("agency_id") == agency_id)
            if seats >= limit:
                raise SeatLimitReached(f"agency {agency_id} is at its seat limit of {limit}")
            return self._insert_locked(USER_PROFILES, row)

    def bootstrap_profile(self, profile: dict) -> dict:
        with self._lock:
            first = not self._table(USER_PROFILES)
            return self._insert_locked(USER_PROFILES, {
                **profile,
                "agency_id": None,
                "role": (Role.SUPER_ADMIN if first else Role.VIEWER).value,
                "is_active": True,
            })
