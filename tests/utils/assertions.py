"""Custom assertion helpers."""

from typing import Any, Dict, Iterable
import json

from portfolio.models.capability import CAPABILITY_NAMES, CapabilitySet


def assert_total_preset(permissions: CapabilitySet) -> None:
    """Assert that every capability is defined as a bool."""
    dumped = permissions.model_dump()
    assert set(dumped) == set(CAPABILITY_NAMES)
    assert all(isinstance(value, bool) for value in dumped.values())


def assert_scoped_to_agency(rows: Iterable[Any], agency_id: str) -> None:
    """Assert that every returned entity belongs to ``agency_id``."""
    for row in rows:
        value = row["agency_id"] if isinstance(row, dict) else row.agency_id
        assert value == agency_id, f"row from agency {value} leaked into {agency_id}"


def assert_valid_response(response: Dict[str, Any], expected_status: int = 200) -> Dict[str, Any]:
    """Assert that a Vercel function response is valid and return its parsed body."""
    assert 'statusCode' in response
    assert response['statusCode'] == expected_status
    assert 'headers' in response
    assert 'body' in response
    assert response['headers'].get('X-Correlation-ID', '').startswith('req_')

    try:
        return json.loads(response['body'])
    except json.JSONDecodeError:
        assert False, "Response body is not valid JSON"


def assert_error_response(response: Dict[str, Any], expected_status: int, expected_code: str) -> Dict[str, Any]:
    """Assert an error response exposes only the stable code and a user message."""
    body = assert_valid_response(response, expected_status)
    assert body["error"] == expected_code
    assert body["message"]
    assert set(body) <= {"error", "message", "field"}
    return body
