"""The HTTP server that exposes a node, with request logging."""

from __future__ import annotations

import logging
import sys
import threading
import time
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import TextIO

from .handlers import NodeApi, Response
from .node import Node

logger = logging.getLogger("blockledger.server")


def _trim(value: float) -> str:
    return f"{value:.6f}".rstrip("0").rstrip(".")


def _format_duration(seconds: float) -> str:
    nanos = max(int(seconds * 1e9), 0)
    if nanos < 1_000:
        return f"{nanos}ns"
    if nanos < 1_000_000:
        return f"{_trim(nanos / 1_000)}µs"
    if nanos < 1_000_000_000:
        return f"{_trim(nanos / 1_000_000)}ms"
    return f"{_trim(nanos / 1_000_000_000)}s"


class NodeServer:
    """Serves a node's HTTP API on a port and logs every request."""

    def __init__(self, node: Node, port: int, log_out: TextIO | None = None) -> None:
        self.node = node
        self.port = port
        self.log_out = log_out if log_out is not None else sys.stdout
        self._log_lock = threading.Lock()

    def _log_request(self, method: str, target: str, elapsed: float) -> None:
        with self._log_lock:
            self.log_out.write(f"[{method}]: {target} {_format_duration(elapsed)}\n")
            flush = getattr(self.log_out, "flush", None)
            if flush is not None:
                flush()

    def create_server(self, host: str = "") -> ThreadingHTTPServer:
        """Bind an HTTP server for the node's API without starting it."""
        api = NodeApi(self.node)
        owner = self

        class _RequestHandler(BaseHTTPRequestHandler):
            def _read_body(self) -> bytes:
                try:
                    length = int(self.headers.get("Content-Length") or 0)
                except ValueError:
                    length = 0
                return self.rfile.read(length) if length > 0 else b""

            def _dispatch(self) -> None:
                started = time.perf_counter()
                try:
                    response = api.handle(self.command, self.path, self._read_body())
                except Exception:
                    logger.exception("request %s %s failed", self.command, self.path)
                    response = Response(HTTPStatus.INTERNAL_SERVER_ERROR, b"internal server error")
                self.send_response(response.status)
                self.send_header("Content-Type", response.content_type)
                self.send_header("Content-Length", str(len(response.body)))
                self.end_headers()
                if self.command != "HEAD":
                    self.wfile.write(response.body)
                owner._log_request(self.command, self.path, time.perf_counter() - started)

            do_GET = _dispatch
            do_HEAD = _dispatch
            do_POST = _dispatch
            do_PUT = _dispatch
            do_PATCH = _dispatch
            do_DELETE = _dispatch

            def log_message(self, format: str, *args: object) -> None:
                return

        server = ThreadingHTTPServer((host, self.port), _RequestHandler)
        server.daemon_threads = True
        return server

    def run(self) -> None:
        """Start the node and serve its API on all interfaces until interrupted."""
        logger.info("node server is running on port %d", self.port)
        self.node.run()
        try:
            with self.create_server() as httpd:
                httpd.serve_forever()
        finally:
            self.node.close()