#!/usr/bin/env python3
"""

Tiny JSON responder for smoke / health checks:
- Answers every request (any method, any path) with HTTP 200
- Body: {"ok": true, "msg": <APP_MESSAGE>, "time": <UTC ISO-8601>}
- PORT and APP_MESSAGE are read once at startup
"""

from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable, Mapping, Optional

DEFAULT_PORT = 3000
DEFAULT_MESSAGE = "Hello from Kode-Soul DevOps Tools!"
MAX_DISCARD = 64 * 1024

log = logging.getLogger(__name__)

@dataclass(frozen=True)
class Config:
    port: int
    msg: str
    host: str = "0.0.0.0"

@dataclass
class Response:
    ok: bool
    msg: str
    time: str

def load_config(env: Optional[Mapping[str, str]] = None) -> Config:
    """Read PORT and APP_MESSAGE, falling back to defaults when unset or empty."""
    if env is None:
        env = os.environ
    port = int(env.get("PORT") or DEFAULT_PORT)
    msg = env.get("APP_MESSAGE") or DEFAULT_MESSAGE
    return Config(port=port, msg=msg)

def utc_now() -> str:
    """Return UTC timestamp as ISO string, millisecond precision, Z suffix."""
    now = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    return now.replace("+00:00", "Z")

def build_response(msg: str) -> Response:
    return Response(ok=True, msg=msg, time=utc_now())

class ResponderServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, address: tuple, msg: str) -> None:
        self.msg = msg
        super().__init__(address, Handler)

class Handler(BaseHTTPRequestHandler):
    server: ResponderServer

    # socket timeout, applied to every read on the connection
    timeout = 5

    def __getattr__(self, name: str) -> Callable[[], None]:
        # dispatch is do_<METHOD>; every method gets the same answer
        if name.startswith("do_"):
            return self._respond
        raise AttributeError(name)

    def do_HEAD(self) -> None:
        self._respond(send_body=False)

    def _respond(self, send_body: bool = True) -> None:
        payload = asdict(build_response(self.server.msg))
        body = json.dumps(payload, separators=(",", ":")).encode("utf-8")

        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        if send_body:
            self.wfile.write(body)
        self._discard_body()

    def _discard_body(self) -> None:
        """Read and drop at most MAX_DISCARD bytes of request body, after the reply is out."""
        try:
            length = int(self.headers.get("Content-Length", 0))
        except ValueError:
            return
        if length <= 0:
            return
        try:
            self.rfile.read(min(length, MAX_DISCARD))
        except OSError as e:
            log.debug("Dropped unread request body from %s: %s", self.address_string(), e)

    def log_message(self, fmt: str, *args: Any) -> None:
        log.debug("%s %s", self.address_string(), fmt % args)

def setup_logging(level_name: str) -> None:
    """Configure process logging on stderr; stdout is kept for the startup line."""
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)sZ %(levelname)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stderr)],
    )

def create_server(config: Config) -> ResponderServer:
    """Bind the listener. OSError (e.g. port in use) is left to propagate."""
    return ResponderServer((config.host, config.port), config.msg)

def serve(config: Config) -> None:
    server = create_server(config)
    port = server.server_address[1]
    print(f"Listening on :{port}", flush=True)
    log.debug("Responding with msg=%r", config.msg)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        log.info("Shutting down")
    finally:
        server.server_close()

def main() -> int:
    setup_logging(os.environ.get("LOG_LEVEL", "INFO"))
    serve(load_config())
    return 0

if __name__ == "__main__":
    raise SystemExit(main())
