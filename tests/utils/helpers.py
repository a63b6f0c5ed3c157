"""Test helper functions."""

import json
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Dict, Any

NOW = datetime(2024, 12, 9, 12, 0, 0, tzinfo=timezone.utc)


class MutableClock:
    """Callable clock for services that take a ``clock`` argument."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now


def auth_user(user_id: str, email: str) -> SimpleNamespace:
    """Shape of a Supabase Auth user object."""
    return SimpleNamespace(id=user_id, email=email)


def auth_response(user_id: str, email: str, session: Any = None) -> SimpleNamespace:
    """Shape of the responses returned by ``auth.admin.create_user`` and ``auth.sign_in_with_password``."""
    return SimpleNamespace(user=auth_user(user_id, email), session=session)


def create_vercel_request(
    method: str = "POST",
    path: str = "/api/invitations/accept",
    body: Dict[str, Any] = None,
    query: Dict[str, str] = None,
    headers: Dict[str, str] = None
) -> Dict[str, Any]:
    """Create a Vercel request object for testing."""
    if headers is None:
        headers = {
            "content-type": "application/json"
        }

    return {
        "method": method,
        "path": path,
        "headers": headers,
        "body": json.dumps(body) if isinstance(body, dict) else body,
        "query": query or {}
    }
