"""HTTP request handling for a ledger node, independent of any server."""

from __future__ import annotations

import json
import logging
import urllib.parse
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from http import HTTPStatus
from typing import Any

from .block import Hash
from .node import Node
from .peer import PeerNode

logger = logging.getLogger("blockledger.server")

JSON_TYPE = "application/json"
TEXT_TYPE = "text/plain; charset=utf-8"
_MAX_PORT = 2**32


@dataclass(frozen=True)
class Response:
    """Status, body and content type of an answer to one request."""

    status: int
    body: bytes = b""
    content_type: str = TEXT_TYPE


def _json_response(status: int, payload: Any) -> Response:
    text = json.dumps(payload, separators=(",", ":")) + "\n"
    return Response(status, text.encode("utf-8"), JSON_TYPE)


def _error(status: int, message: str) -> Response:
    return Response(status, message.encode("utf-8"))


def _first(query: Mapping[str, list[str]], name: str) -> str:
    values = query.get(name)
    return values[0] if values else ""


def _parse_port(text: str) -> int:
    if not text or any(char not in "0123456789" for char in text):
        raise ValueError(f"parsing {text!r}: invalid syntax")
    port = int(text)
    if port >= _MAX_PORT:
        raise ValueError(f"parsing {text!r}: value out of range")
    return port


def _text_field(data: Mapping, name: str) -> str:
    value = data.get(name)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {name!r} must be a string")
    return value


def _decode_tx_request(body: bytes) -> tuple[str, str, str, int]:
    data = json.loads(body)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError("the payload must be a JSON object")
    value = data.get("value")
    if value is None:
        value = 0
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError("field 'value' must be a non-negative integer")
    return _text_field(data, "from"), _text_field(data, "to"), _text_field(data, "data"), value


Handler = Callable[[Mapping[str, list[str]], bytes], Response]


class NodeApi:
    """Routes HTTP requests to the views and actions of a node."""

    def __init__(self, node: Node) -> None:
        self.node = node
        self._routes: dict[tuple[str, str], Handler] = {
            ("GET", "/health"): self._health,
            ("GET", "/balances/list"): self._balances,
            ("POST", "/tx/add"): self._tx_add,
            ("GET", "/node/status"): self._status,
            ("GET", "/node/sync"): self._sync,
            ("GET", "/node/addpeer"): self._add_peer,
        }
        self._paths = {path for _, path in self._routes}

    def handle(self, method: str, target: str, body: bytes = b"") -> Response:
        """Answer one request given its method, request target and body."""
        parts = urllib.parse.urlsplit(target)
        path = parts.path or "/"
        query = urllib.parse.parse_qs(parts.query, keep_blank_values=True)
        method = method.upper()
        route_method = "GET" if method == "HEAD" else method
        handler = self._routes.get((route_method, path))
        if handler is not None:
            return handler(query, body)
        if path in self._paths:
            return _error(HTTPStatus.METHOD_NOT_ALLOWED, "Method Not Allowed\n")
        return _error(HTTPStatus.NOT_FOUND, "404 page not found\n")

    def _health(self, query: Mapping[str, list[str]], body: bytes) -> Response:
        return Response(HTTPStatus.OK, b"ok")

    def _balances(self, query: Mapping[str, list[str]], body: bytes) -> Response:
        return _json_response(HTTPStatus.OK, self.node.view_balances())

    def _status(self, query: Mapping[str, list[str]], body: bytes) -> Response:
        return _json_response(HTTPStatus.OK, self.node.view_status())

    def _sync(self, query: Mapping[str, list[str]], body: bytes) -> Response:
        requested = _first(query, "fromBlock")
        if not requested:
            return _error(HTTPStatus.BAD_REQUEST, "fromBlock parameter not found")
        try:
            after = Hash.from_hex(requested)
        except ValueError:
            return _error(HTTPStatus.BAD_REQUEST, "could not validate a provided hash")
        try:
            blocks = self.node.view_sync_blocks(after)
        except (OSError, ValueError) as exc:
            logger.warning("could not read blocks: %s", exc)
            return _error(HTTPStatus.INTERNAL_SERVER_ERROR, "could not get the blocks. internal error")
        return _json_response(HTTPStatus.OK, blocks)

    def _tx_add(self, query: Mapping[str, list[str]], body: bytes) -> Response:
        try:
            sender, to, data, value = _decode_tx_request(body)
        except ValueError:
            return _error(HTTPStatus.BAD_REQUEST, "could not decode payload")
        try:
            block_hash = self.node.add_transaction(sender, to, data, value)
        except ValueError as exc:
            return _error(
                HTTPStatus.BAD_REQUEST, f"could not create a new transaction due to: {exc}"
            )
        return _json_response(HTTPStatus.OK, {"hash": str(block_hash)})

    def _add_peer(self, query: Mapping[str, list[str]], body: bytes) -> Response:
        ip = _first(query, "ip")
        port = _first(query, "port")
        if not ip or not port:
            return _error(HTTPStatus.BAD_REQUEST, "ip and port should be defined in query")
        try:
            peer_port = _parse_port(port)
        except ValueError as exc:
            return _error(HTTPStatus.BAD_REQUEST, str(exc))
        peer = PeerNode(ip, peer_port, is_bootstrap=False, is_active=True)
        self.node.add_peer(peer)
        logger.info("Peer node %s, successfully added.", peer.tcp_address())
        return _json_response(HTTPStatus.OK, {"success": True, "error": ""})