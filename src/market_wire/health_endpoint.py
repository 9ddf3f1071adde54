"""Admin HTTP endpoints served from a background thread.

- ``GET /``: service summary, interval, last/next run, in-progress flag
- ``GET /health``: liveness plus ``scraper: running|idle``
- ``GET /status``: uptime, totals and the last cycle's counters
- ``POST /trigger-scrape``: start a cycle now; 409 while one is running

The server thread never touches the pipeline directly.  A manual trigger is
handed to the runner's event loop with ``run_coroutine_threadsafe``.
"""

from __future__ import annotations

import asyncio
import json
import threading
from datetime import datetime, timezone
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Dict, Type

from .logging_utils import get_logger

log = get_logger("health_endpoint")

SERVICE_NAME = "market-wire"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def make_handler(runner, loop: asyncio.AbstractEventLoop) -> Type[BaseHTTPRequestHandler]:
    class AdminHandler(BaseHTTPRequestHandler):
        def log_message(self, format, *args):
            """Silence the default per-request stderr lines."""

        def _send_json(self, code: int, payload: Dict[str, Any]) -> None:
            body = json.dumps(payload, indent=2).encode()
            self.send_response(code)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def do_GET(self):
            path = self.path.split("?", 1)[0]
            if path == "/":
                status = runner.status()
                self._send_json(
                    200,
                    {
                        "status": "running",
                        "service": SERVICE_NAME,
                        "interval_seconds": status["interval_seconds"],
                        "last_run": status["last_run"] or "not yet run",
                        "next_run": status["next_run"] or "calculating",
                        "in_progress": status["in_progress"],
                    },
                )
            elif path == "/health":
                self._send_json(
                    200,
                    {
                        "status": "healthy",
                        "timestamp": _now_iso(),
                        "scraper": "running" if runner.gate.running else "idle",
                    },
                )
            elif path == "/status":
                self._send_json(200, runner.status())
            else:
                self._send_json(404, {"error": "not found"})

        def do_POST(self):
            path = self.path.split("?", 1)[0]
            if path != "/trigger-scrape":
                self._send_json(404, {"error": "not found"})
                return
            if runner.gate.running:
                log.warning("manual_trigger_rejected reason=in_progress")
                last = runner.last_run.isoformat() if runner.last_run else None
                self._send_json(
                    409, {"error": "scrape already in progress", "last_run": last}
                )
                return

            future = asyncio.run_coroutine_threadsafe(runner.run_cycle(), loop)
            future.add_done_callback(_log_trigger_result)
            log.info("manual_trigger_accepted")
            self._send_json(
                200, {"message": "scrape triggered", "started_at": _now_iso()}
            )

    return AdminHandler


def _log_trigger_result(future) -> None:
    exc = future.exception()
    if exc is not None:
        log.error("manual_trigger_failed err=%s", exc.__class__.__name__)


def start_health_server(
    runner, loop: asyncio.AbstractEventLoop, port: int = 8080, host: str = "0.0.0.0"
) -> ThreadingHTTPServer:
    """Bind and serve in a daemon thread; call ``shutdown()`` to stop."""
    server = ThreadingHTTPServer((host, port), make_handler(runner, loop))
    server.daemon_threads = True
    thread = threading.Thread(
        target=server.serve_forever, name="health-endpoint", daemon=True
    )
    thread.start()
    log.info("health_server_started port=%d", server.server_address[1])
    return server
