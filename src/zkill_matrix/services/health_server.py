"""
Health Check HTTP Server.

Serves the HealthMonitor snapshot as JSON on GET /health so a container
supervisor can restart a stalled bot. Runs in a daemon thread and never
touches the event loop.
"""

from __future__ import annotations

import json
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any

from ..core.logging import get_logger
from .health import HealthMonitor

logger = get_logger(__name__)


class HealthHandler(BaseHTTPRequestHandler):
    """HTTP handler for the health endpoint."""

    monitor: HealthMonitor  # bound per server in HealthServer.start()

    def do_GET(self) -> None:  # noqa: N802
        if self.path.split("?", 1)[0] == "/health":
            self._respond(self.monitor.snapshot())
        else:
            self.send_response(404)
            self.end_headers()

    def _respond(self, data: dict[str, Any], status: int = 200) -> None:
        body = json.dumps(data).encode()
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("health %s", format % args)


class HealthServer:
    """
    Background HTTP server for liveness checks.

    Usage:
        server = HealthServer(monitor, port=8080)
        server.start()
        ...
        server.stop()
    """

    def __init__(self, monitor: HealthMonitor, host: str = "0.0.0.0", port: int = 8080) -> None:
        self.monitor = monitor
        self.host = host
        self.port = port
        self._server: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._server is not None

    @property
    def address(self) -> tuple[str, int]:
        """Bound (host, port); resolves port 0 to the real port."""
        if self._server is None:
            return (self.host, self.port)
        host, port = self._server.server_address[:2]
        return (str(host), int(port))

    def start(self) -> None:
        """Bind and serve in a daemon thread."""
        if self._server is not None:
            logger.warning("Health server already running")
            return

        handler = type("BoundHealthHandler", (HealthHandler,), {"monitor": self.monitor})
        self._server = ThreadingHTTPServer((self.host, self.port), handler)
        self._server.daemon_threads = True
        self._thread = threading.Thread(
            target=self._server.serve_forever, name="health-server", daemon=True
        )
        self._thread.start()
        logger.info("Health endpoint listening on %s:%d/health", *self.address)

    def stop(self) -> None:
        """Shut down the server and wait for the thread."""
        if self._server is None:
            return
        self._server.shutdown()
        self._server.server_close()
        if self._thread is not None:
            self._thread.join(timeout=5.0)
        self._server = None
        self._thread = None
