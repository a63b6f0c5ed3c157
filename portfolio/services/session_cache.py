"""Process-wide cache of the signed-in principal."""

import threading
from dataclasses import dataclass
from typing import Any, Optional

from portfolio.models.agency import Agency
from portfolio.models.capability import CapabilitySet
from portfolio.models.user_profile import Identity, UserProfile
from portfolio.services.policy_engine import derive_permissions
from portfolio.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)


@dataclass(frozen=True)
class SessionState:
    """Snapshot of who is signed in. ``permissions`` is derived from ``profile``."""
    identity: Optional[Identity] = None
    profile: Optional[UserProfile] = None
    agency: Optional[Agency] = None
    session: Any = None

    @property
    def signed_in(self) -> bool:
        return self.identity is not None

    @property
    def permissions(self) -> CapabilitySet:
        return derive_permissions(self.profile)


SIGNED_OUT = SessionState()


class SessionCache:
    """Holds one SessionState; populate replaces it wholesale, clear resets it."""

    def __init__(self):
        self._state = SIGNED_OUT
        self._lock = threading.Lock()

    def get(self) -> SessionState:
        with self._lock:
            return self._state

    def populate(self, identity: Identity, profile: Optional[UserProfile] = None,
                 agency: Optional[Agency] = None, session: Any = None) -> SessionState:
        state = SessionState(identity=identity, profile=profile, agency=agency, session=session)
        with self._lock:
            self._state = state
        logger.debug(
            "Session cache populated",
            user_id=mask_user_id(identity.id),
            has_profile=profile is not None,
            role=profile.role.value if profile else None,
        )
        return state

    def clear(self) -> None:
        with self._lock:
            self._state = SIGNED_OUT
        logger.debug("Session cache cleared")


_cache: Optional[SessionCache] = None


def get_session_cache() -> SessionCache:
    """Get or create the session cache singleton."""
    global _cache
    if _cache is None:
        _cache = SessionCache()
    return _cache
