"""Health check endpoint: liveness plus a configuration readiness report."""

from http.server import BaseHTTPRequestHandler
import json
import os

SERVICE_NAME = "wholesale-backend"

# Env vars each integration needs before its handler can do real work
READINESS_CHECKS = {
    "supabase": ("SUPABASE_URL", "SUPABASE_ANON_KEY", "SUPABASE_SERVICE_ROLE_KEY"),
    "email": ("RESEND_API_KEY", "RESEND_FROM", "ADMIN_NOTIFY_EMAIL"),
}


def readiness() -> dict:
    checks = {
        name: all(os.environ.get(var, "").strip() for var in required)
        for name, required in READINESS_CHECKS.items()
    }
    return {
        "status": "ok" if all(checks.values()) else "degraded",
        "service": SERVICE_NAME,
        "checks": checks,
    }


class handler(BaseHTTPRequestHandler):
    """Health check handler for Vercel serverless function."""

    def do_GET(self):
        """Always 200 while the function is alive; ``status`` reports missing config."""
        self.send_response(200)
        self.send_header('Content-Type', 'application/json')
        self.end_headers()
        self.wfile.write(json.dumps(readiness()).encode('utf-8'))

    def do_POST(self):
        """Handle POST request (same as GET for health check)."""
        self.do_GET()
