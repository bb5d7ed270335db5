"""HTTP trigger surface: health, custody status, and token-gated recovery."""

from __future__ import annotations

import hmac
import json
import threading
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any
from urllib.parse import urlparse

from nftrecon import __version__
from nftrecon.app.api import api_config, api_health, api_recover, api_status
from nftrecon.config.logging import logger
from nftrecon.config.settings import get_config

MAX_BODY_BYTES = 64 * 1024
RECOVER_PATHS = {"/recover", "/api/recover"}
HEALTH_PATHS = {"/", "/health"}


class ReconServer(ThreadingHTTPServer):
    """Threaded HTTP server carrying the process-wide stop event."""

    daemon_threads = True

    def __init__(
        self,
        server_address: tuple[str, int],
        handler: type[BaseHTTPRequestHandler],
        stop_event: threading.Event | None = None,
    ) -> None:
        super().__init__(server_address, handler)
        self.stop_event = stop_event or threading.Event()


class ReconHandler(BaseHTTPRequestHandler):
    """JSON handler for worker health, status, and on-demand recovery."""

    server_version = "nftrecon/0.1"

    def log_message(self, fmt: str, *args: object) -> None:  # noqa: A003
        """Route request logs through project logger."""
        logger.debug("http | {}", fmt % args)

    def _cors_headers(self) -> None:
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Access-Control-Allow-Methods", "GET, POST, OPTIONS")
        self.send_header("Access-Control-Allow-Headers", "Content-Type, Authorization")

    def _json(self, payload: dict[str, Any], status: int = HTTPStatus.OK) -> None:
        """Write JSON response with status code."""
        body = json.dumps(payload, ensure_ascii=True, default=str).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self._cors_headers()
        self.end_headers()
        self.wfile.write(body)

    def _error(self, status: int, message: str) -> None:
        """Write standard JSON error payload."""
        self._json({"status": "error", "error": message}, status=status)

    def _drain_body(self) -> None:
        """Consume any request body so the connection stays usable."""
        try:
            size = int(self.headers.get("Content-Length") or 0)
        except ValueError:
            size = 0
        if 0 < size <= MAX_BODY_BYTES:
            self.rfile.read(size)

    def _authorized(self) -> bool:
        """Check the bearer token; write the error response when it fails."""
        token = get_config().api_token
        if not token:
            self._error(
                HTTPStatus.FORBIDDEN,
                "on-demand recovery is disabled: NFTRECON_API_TOKEN is not set",
            )
            return False
        scheme, _, supplied = (self.headers.get("Authorization") or "").partition(" ")
        if scheme.lower() != "bearer" or not hmac.compare_digest(
            supplied.strip().encode("utf-8"), token.encode("utf-8")
        ):
            self._error(HTTPStatus.UNAUTHORIZED, "missing or invalid bearer token")
            return False
        return True

    def do_OPTIONS(self) -> None:  # noqa: N802
        """Answer CORS preflight requests."""
        self.send_response(HTTPStatus.NO_CONTENT)
        self._cors_headers()
        self.send_header("Content-Length", "0")
        self.end_headers()

    def do_GET(self) -> None:  # noqa: N802
        """Serve health, status, and config routes."""
        path = urlparse(self.path).path or "/"
        if path in HEALTH_PATHS or path == "/api/status":
            payload = api_status()
            if path in HEALTH_PATHS:
                payload["version"] = __version__
            status = HTTPStatus.OK if payload["status"] == "ok" else HTTPStatus.INTERNAL_SERVER_ERROR
            self._json(payload, status=status)
            return
        if path == "/api/health":
            self._json(api_health())
            return
        if path == "/api/config":
            self._json(api_config())
            return
        self._error(HTTPStatus.NOT_FOUND, "Not found")

    def do_POST(self) -> None:  # noqa: N802
        """Run one reconciliation pass for an authenticated caller."""
        path = urlparse(self.path).path or "/"
        self._drain_body()
        if path not in RECOVER_PATHS:
            self._error(HTTPStatus.NOT_FOUND, "Not found")
            return
        if not self._authorized():
            return
        stop_event = getattr(self.server, "stop_event", None)
        logger.info("on-demand recovery requested from {}", self.client_address[0])
        payload = api_recover(trigger="http", cancel_event=stop_event)
        status = (
            HTTPStatus.INTERNAL_SERVER_ERROR
            if payload["status"] == "error"
            else HTTPStatus.OK
        )
        self._json(payload, status=status)

    def do_PUT(self) -> None:  # noqa: N802
        self._error(HTTPStatus.METHOD_NOT_ALLOWED, "Method not allowed")

    def do_PATCH(self) -> None:  # noqa: N802
        self._error(HTTPStatus.METHOD_NOT_ALLOWED, "Method not allowed")

    def do_DELETE(self) -> None:  # noqa: N802
        self._error(HTTPStatus.METHOD_NOT_ALLOWED, "Method not allowed")
