"""Admin users endpoint for Vercel: list pending accounts (GET) and approve one (POST)."""

from http.server import BaseHTTPRequestHandler
import asyncio
import json
import logging

from src.services.admin_users import handle_admin_users
from src.utils.logging import correlation_context
from src.utils.logging_config import LoggingConfig

LoggingConfig.setup_logging()
_logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type, x-webhook-secret",
    "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
}


class handler(BaseHTTPRequestHandler):
    """Vercel serverless function handler for admin user approval."""

    def _send(self, status: int, body: dict | None, correlation_id: str | None = None):
        self.send_response(status)
        for name, value in CORS_HEADERS.items():
            self.send_header(name, value)
        if correlation_id:
            self.send_header(LoggingConfig.LOG_CORRELATION_ID_HEADER, correlation_id)
        if body is not None:
            self.send_header('Content-Type', 'application/json')
        self.end_headers()
        if body is not None:
            self.wfile.write(json.dumps(body).encode('utf-8'))

    def _dispatch(self, method: str):
        incoming_id = self.headers.get(LoggingConfig.LOG_CORRELATION_ID_HEADER)
        with correlation_context(incoming_id) as correlation_id:
            try:
                raw_body = None
                if method == "POST":
                    content_length = int(self.headers.get('Content-Length', 0))
                    raw_body = self.rfile.read(content_length) if content_length > 0 else b""

                status, body = asyncio.run(
                    handle_admin_users(method, self.headers.get("Authorization"), raw_body)
                )
                _logger.info(f"admin_users {method} -> {status}")
                self._send(status, body, correlation_id)
            except Exception as e:
                _logger.error(f"Error handling admin_users request: {e}", exc_info=True)
                self._send(500, {"error": str(e)}, correlation_id)

    def do_OPTIONS(self):
        """CORS preflight."""
        self._send(204, None)

    def do_GET(self):
        self._dispatch("GET")

    def do_POST(self):
        self._dispatch("POST")

    def do_PUT(self):
        self._dispatch("PUT")

    def do_DELETE(self):
        self._dispatch("DELETE")
