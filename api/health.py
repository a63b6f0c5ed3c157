"""Health check endpoint."""

from http.server import BaseHTTPRequestHandler
import json

from portfolio.utils.config import PortfolioConfig
from portfolio.utils.logging_config import LoggingConfig


def health_payload() -> dict:
    """Liveness only; storage is not touched so a cold start stays cheap."""
    return {
        "status": "ok",
        "service": LoggingConfig.SERVICE_NAME,
        "storage_backend": PortfolioConfig.STORAGE_BACKEND,
    }


class handler(BaseHTTPRequestHandler):
    """Health check handler for Vercel serverless function."""

    def do_GET(self):
        self.send_response(200)
        self.send_header('Content-Type', 'application/json')
        self.send_header('Cache-Control', 'no-store')
        self.end_headers()
        self.wfile.write(json.dumps(health_payload()).encode('utf-8'))

    def do_POST(self):
        """Same as GET."""
        self.do_GET()
