"""Storage protocol shared by the Supabase and in-memory backends."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Protocol

from portfolio.utils.config import PortfolioConfig
from portfolio.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

AGENCIES = "agencies"
USER_PROFILES = "user_profiles"
PROPERTIES = "properties"
AGENCY_INVITATIONS = "agency_invitations"


@dataclass
class Query:
    """Backend-neutral select: equality, null and range filters plus a case-insensitive search."""
    table: str
    equals: dict[str, Any] = field(default_factory=dict)
    is_null: tuple[str, ...] = ()
    gte: dict[str, Any] = field(default_factory=dict)
    lte: dict[str, Any] = field(default_factory=dict)
    search_columns: tuple[str, ...] = ()
    search_term: Optional[str] = None
    order_by: Optional[str] = "created_at"
    descending: bool = True
    limit: Optional[int] = None


class Store(Protocol):
    """Operations the services need from a backing store. Rows are plain dicts keyed by ``id``."""

    def select(self, query: Query) -> list[dict]: ...

    def get(self, table: str, row_id: Any) -> Optional[dict]: ...

    def insert(self, table: str, row: dict) -> dict: ...

    def update(self, table: str, row_id: Any, changes: dict) -> Optional[dict]: ...

    def delete(self, table: str, row_id: Any) -> bool: ...

    def count(self, table: str, equals: Optional[dict[str, Any]] = None) -> int: ...

    def redeem_invitation(self, token: str, profile: dict, now: datetime) -> dict:
        """Atomically stamp ``used_at`` on a pending invitation and create its profile.

        Raises NotFound, AlreadyUsed, Expired, EmailMismatch or Conflict; at most
        one caller per token ever gets a profile back.
        """
        ...

    def issue_invitation(self, row: dict, now: datetime) -> dict:
        """Atomically insert ``row`` unless a pending invitation exists for its agency and email.

        Raises PendingInvitationExists; concurrent issuers for the same pair get at
        most one pending row between them.
        """
        ...

    def insert_member(self, row: dict, default_limit: int) -> dict:
        """Atomically insert a profile into ``row["agency_id"]`` unless the agency is full.

        The limit is the agency's ``max_users`` (``default_limit`` when unset). Raises
        SeatLimitReached or NotFound when the agency is gone.
        """
        ...

    def bootstrap_profile(self, profile: dict) -> dict:
        """Atomically create a signup profile: super_admin if it is the first one, else viewer."""
        ...


_store: Optional[Store] = None


def get_store() -> Store:
    """Get or create the process-wide store for the configured backend."""
    global _store
    if _store is None:
        backend = PortfolioConfig.STORAGE_BACKEND
        if backend == "memory":
            from portfolio.services.memory_store import MemoryStore
            _store = MemoryStore()
        else:
            from portfolio.services.supabase_client import SupabaseStore
            _store = SupabaseStore()
        logger.info("Store initialized", backend=backend)
    return _store


def set_store(store: Optional[Store]) -> None:
    """Replace (or with None, reset) the process-wide store."""
    global _store
    _store = store
