"""Tests for health check endpoint."""

import pytest
import json
from io import BytesIO
from unittest.mock import Mock
from http.server import BaseHTTPRequestHandler

from api.health import handler, health_payload


class MockSocket:
    def __init__(self, request_line: bytes):
        self.request_line = request_line

    def makefile(self, *args, **kwargs):
        return BytesIO(self.request_line)

    def sendall(self, data):
        pass

    def close(self):
        pass


def _handler_for(request_line: bytes):
    h = handler(MockSocket(request_line), ("127.0.0.1", 8000), None)
    h.wfile = BytesIO()
    h.send_response = Mock()
    h.send_header = Mock()
    h.end_headers = Mock()
    return h


@pytest.mark.unit
def test_health_handler_class():
    """Test that handler is a BaseHTTPRequestHandler subclass."""
    assert issubclass(handler, BaseHTTPRequestHandler)


@pytest.mark.unit
def test_health_payload():
    payload = health_payload()

    assert payload["status"] == "ok"
    assert payload["service"] == "portfolio-backend"
    assert payload["storage_backend"] == "memory"


@pytest.mark.unit
def test_health_get_request():
    """Test GET request to health endpoint."""
    h = _handler_for(b"GET /api/health HTTP/1.1\r\n\r\n")

    h.do_GET()

    assert h.send_response.call_args[0][0] == 200
    h.send_header.assert_any_call('Cache-Control', 'no-store')

    h.wfile.seek(0)
    response_data = json.loads(h.wfile.read().decode('utf-8'))
    assert response_data["status"] == "ok"


@pytest.mark.unit
def test_health_post_request():
    """Test POST request to health endpoint."""
    h = _handler_for(b"POST /api/health HTTP/1.1\r\n\r\n")

    h.do_POST()

    assert h.send_response.call_args[0][0] == 200
