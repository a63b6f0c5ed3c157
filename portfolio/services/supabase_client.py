"""Supabase client singleton and the PostgREST-backed store."""

from datetime import datetime
from typing import Any, Optional

import httpx
from postgrest.exceptions import APIError
from supabase import create_client, Client
from supabase.client import ClientOptions

from portfolio.services.storage import Query
from portfolio.utils.config import PortfolioConfig
from portfolio.utils.errors import (
    AlreadyUsed,
    EmailMismatch,
    Expired,
    NotFound,
    PendingInvitationExists,
    SeatLimitReached,
    Unavailable,
    extract_error_message,
    translate_storage_error,
)
from portfolio.utils.logging import get_structured_logger, log_timing

logger = get_structured_logger(__name__)

# Global client instance (singleton pattern)
_client: Optional[Client] = None

# Exceptions raised by the SQL functions in sql/schema.sql
_FUNCTION_ERRORS = {
    "invitation_not_found": NotFound,
    "invitation_already_used": AlreadyUsed,
    "invitation_expired": Expired,
    "invitation_email_mismatch": EmailMismatch,
    "invitation_pending_exists": PendingInvitationExists,
    "agency_seat_limit_reached": SeatLimitReached,
    "agency_not_found": NotFound,
}


def get_supabase_client() -> Client:
    """Get or create Supabase client singleton."""
    global _client

    if _client is None:
        url = PortfolioConfig.SUPABASE_URL
        key = PortfolioConfig.SUPABASE_SERVICE_ROLE_KEY

        if not url or not key:
            raise Unavailable("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")

        options = ClientOptions(
            auto_refresh_token=False,
            persist_session=False,
            postgrest_client_timeout=PortfolioConfig.STORAGE_TIMEOUT_SECONDS,
        )
        _client = create_client(url, key, options)
        logger.info("Supabase client initialized", url=url)

    return _client


class SupabaseStore:
    """Store backed by Supabase PostgREST. Atomic operations run as SQL functions (see sql/schema.sql)."""

    def __init__(self, client: Optional[Client] = None):
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    def _execute(self, operation: str, request):
        with log_timing(operation, logger=logger):
            try:
                return request.execute()
            except httpx.TimeoutException as e:
                raise Unavailable(f"{operation} timed out") from e
            except httpx.TransportError as e:
                raise Unavailable(f"{operation} failed to reach the backend: {e}") from e
            except APIError as e:
                raise translate_storage_error(e, operation) from e

    def select(self, query: Query) -> list[dict]:
        request = self.client.table(query.table).select("*")
        for column, value in query.equals.items():
            request = request.eq(column, value)
        for column in query.is_null:
            request = request.is_(column, "null")
        for column, value in query.gte.items():
            request = request.gte(column, value)
        for column, value in query.lte.items():
            request = request.lte(column, value)
        if query.search_term and query.search_columns:
            # PostgREST or-filter syntax breaks on commas and parentheses
            term = "".join(ch for ch in query.search_term if ch not in ",()")
            request = request.or_(",".join(f"{column}.ilike.%{term}%" for column in query.search_columns))
        if query.order_by:
            request = request.order(query.order_by, desc=query.descending)
        if query.limit is not None:
            request = request.limit(query.limit)

        result = self._execute(f"select {query.table}", request)
        return result.data if result.data else []

    def get(self, table: str, row_id: Any) -> Optional[dict]:
        result = self._execute(
            f"get {table}",
            self.client.table(table).select("*").eq("id", row_id).limit(1),
        )
        return result.data[0] if result.data else None

    def insert(self, table: str, row: dict) -> dict:
        result = self._execute(f"insert {table}", self.client.table(table).insert(row))
        if result.data:
            return result.data[0]
        raise Unavailable(f"insert {table}: no data returned")

    def update(self, table: str, row_id: Any, changes: dict) -> Optional[dict]:
        result = self._execute(
            f"update {table}",
            self.client.table(table).update(changes).eq("id", row_id),
        )
        return result.data[0] if result.data else None

    def delete(self, table: str, row_id: Any) -> bool:
        result = self._execute(f"delete {table}", self.client.table(table).delete().eq("id", row_id))
        return bool(result.data)

    def count(self, table: str, equals: Optional[dict[str, Any]] = None) -> int:
        request = self.client.table(table).select("id", count="exact")
        for column, value in (equals or {}).items():
            request = request.eq(column, value)
        result = self._execute(f"count {table}", request)
        return result.count or 0

    def _call_function(self, operation: str, name: str, params: dict) -> dict:
        """Run a SQL function and map its ``RAISE EXCEPTION`` markers onto the error taxonomy."""
        request = self.client.rpc(name, params)
        try:
            result = self._execute(operation, request)
        except Exception as e:
            cause = e.__cause__ or e
            message = extract_error_message(cause)
            for marker, error_class in _FUNCTION_ERRORS.items():
                if marker in message:
                    raise error_class(message) from e
            raise
        return _single_row(result.data, operation)

    def redeem_invitation(self, token: str, profile: dict, now: datetime) -> dict:
        # The SQL function evaluates expiry against the database clock; ``now`` only
        # matters for the in-memory backend.
        return self._call_function("redeem invitation", "redeem_agency_invitation", {
            "p_token": token,
            "p_user_id": profile["id"],
            "p_email": profile.get("email"),
            "p_name": profile.get("name"),
        })

    def issue_invitation(self, row: dict, now: datetime) -> dict:
        return self._call_function("issue invitation", "issue_agency_invitation", {"p_row": row})

    def insert_member(self, row: dict, default_limit: int) -> dict:
        return self._call_function("insert member", "insert_agency_member", {
            "p_row": row,
            "p_default_limit": default_limit,
        })

    def bootstrap_profile(self, profile: dict) -> dict:
        return self._call_function("bootstrap profile", "bootstrap_user_profile", {
            "p_user_id": profile["id"],
            "p_email": profile.get("email"),
            "p_name": profile.get("name"),
        })


def _single_row(data: Any, operation: str) -> dict:
    # Set-returning functions come back as a list, scalar composites as a dict
    if isinstance(data, list):
        if not data:
            raise Unavailable(f"{operation}: no data returned")
        return data[0]
    if isinstance(data, dict):
        return data
    raise Unavailable(f"{operation}: unexpected response")
