from __future__ import annotations

import functools
import logging
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Mapping

logger = logging.getLogger(__name__)

DEFAULT_PORT = 4173


class PreviewRequestHandler(SimpleHTTPRequestHandler):
    def log_message(self, format, *args):
        logger.debug("[preview] %s - %s", self.address_string(), format % args)

    def end_headers(self):
        # Rebuilds replace files in place; never let the browser serve a stale page.
        self.send_header("Cache-Control", "no-store")
        super().end_headers()


def resolve_port(value: object, environ: Mapping[str, str]) -> int:
    raw = value if value not in (None, "") else environ.get("PORT")
    if raw in (None, ""):
        return DEFAULT_PORT
    try:
        return int(str(raw))
    except ValueError:
        logger.warning("Invalid port %r, falling back to %d", raw, DEFAULT_PORT)
        return DEFAULT_PORT


def make_server(directory: Path, port: int, host: str = "127.0.0.1") -> ThreadingHTTPServer:
    handler = functools.partial(PreviewRequestHandler, directory=str(directory))
    return ThreadingHTTPServer((host, port), handler)
