"""Offers table webhook for Vercel: emails admins on inserts and buyers on decisions."""

from http.server import BaseHTTPRequestHandler
import asyncio
import json
import logging

from src.services.offer_notifier import handle_offer_event, parse_payload, verify_webhook_request
from src.utils.errors import InputValidationError
from src.utils.logging import correlation_context
from src.utils.logging_config import LoggingConfig

LoggingConfig.setup_logging()
_logger = logging.getLogger(__name__)


class handler(BaseHTTPRequestHandler):
    """Vercel serverless function handler for offer change events."""

    def _send_text(self, status: int, text: str):
        self.send_response(status)
        self.send_header('Content-Type', 'text/plain; charset=utf-8')
        self.end_headers()
        self.wfile.write(text.encode('utf-8'))

    def do_POST(self):
        """Handle a database webhook delivery."""
        with correlation_context(self.headers.get(LoggingConfig.LOG_CORRELATION_ID_HEADER)):
            try:
                if not verify_webhook_request(
                    self.headers.get("Authorization"),
                    self.headers.get("x-webhook-secret"),
                ):
                    _logger.warning("Offer webhook rejected: bad credentials")
                    self._send_text(401, "Missing Authorization header")
                    return

                content_length = int(self.headers.get('Content-Length', 0))
                raw_body = self.rfile.read(content_length).decode('utf-8') if content_length > 0 else ""

                try:
                    data = json.loads(raw_body) if raw_body else {}
                except json.JSONDecodeError:
                    self._send_text(400, "Invalid JSON")
                    return

                payload = parse_payload(data)
                result = asyncio.run(handle_offer_event(payload))
                self._send_text(result.status_code, result.message)

            except InputValidationError as e:
                self._send_text(400, str(e))
            except Exception as e:
                _logger.error(f"Error handling offer event: {e}", exc_info=True)
                self._send_text(500, f"Error: {e}")

    def do_GET(self):
        """Handle GET request (health check)."""
        self.send_response(200)
        self.send_header('Content-Type', 'application/json')
        self.end_headers()
        self.wfile.write(json.dumps({"status": "ok", "endpoint": "offer_notify"}).encode('utf-8'))
