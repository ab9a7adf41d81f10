"""Remote peer nodes and the HTTP requests sent to them."""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .block import Block, Hash

logger = logging.getLogger("blockledger.node")

DEFAULT_TIMEOUT = 1.0


class PeerRequestError(RuntimeError):
    """A request to a peer node failed or returned something unusable."""


def _as_mapping(data: Any, what: str) -> Mapping:
    if not isinstance(data, Mapping):
        raise ValueError(f"{what} must be a JSON object")
    return data


def _unsigned(value: Any, name: str) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"field {name!r} must be a non-negative integer")
    return value


def _flag(value: Any, name: str) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValueError(f"field {name!r} must be a boolean")
    return value


def _string(value: Any, name: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {name!r} must be a string")
    return value


@dataclass
class PeerNode:
    """Another node of the network, reachable over HTTP."""

    ip: str
    port: int
    is_bootstrap: bool = False
    is_active: bool = False

    def tcp_address(self) -> str:
        return f"{self.ip}:{self.port}"

    def url(self) -> str:
        return f"http://{self.tcp_address()}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "ip": self.ip,
            "port": self.port,
            "is_bootstrap": self.is_bootstrap,
            "is_active": self.is_active,
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> PeerNode:
        data = _as_mapping(data, "a peer node")
        return cls(
            ip=_string(data.get("ip"), "ip"),
            port=_unsigned(data.get("port"), "port"),
            is_bootstrap=_flag(data.get("is_bootstrap"), "is_bootstrap"),
            is_active=_flag(data.get("is_active"), "is_active"),
        )

    def _get_json(self, path: str, timeout: float) -> Any:
        url = f"{self.url()}/{path}"
        try:
            with urllib.request.urlopen(url, timeout=timeout) as response:
                if response.status != 200:
                    raise PeerRequestError(f"Not found: {url} answered {response.status}")
                body = response.read()
        except urllib.error.HTTPError as exc:
            raise PeerRequestError(f"Not found: {url} answered {exc.code}") from exc
        except (urllib.error.URLError, OSError) as exc:
            raise PeerRequestError(f"request to {url} failed: {exc}") from exc
        try:
            return json.loads(body)
        except ValueError as exc:
            raise PeerRequestError(f"could not decode the answer of {url}: {exc}") from exc

    def get_status(self, timeout: float = DEFAULT_TIMEOUT) -> PeerStatus:
        """Ask the peer for its last block and the peers it knows."""
        logger.info("get status running for peer node %s", self.tcp_address())
        data = self._get_json("node/status", timeout)
        try:
            status = PeerStatus.from_dict(data)
        except ValueError as exc:
            raise PeerRequestError(f"unexpected status from {self.tcp_address()}: {exc}") from exc
        logger.info("got a status from peer node %s: %s", self.tcp_address(), data)
        return status

    def get_blocks(self, last_hash: Hash, timeout: float = DEFAULT_TIMEOUT) -> list[Block]:
        """Fetch the blocks the peer stores after the block with this hash."""
        logger.info("get blocks running with a last hash: %s", last_hash)
        query = urllib.parse.urlencode({"fromBlock": str(last_hash)})
        data = self._get_json(f"node/sync?{query}", timeout)
        try:
            blocks = _as_mapping(data, "a blocks response").get("blocks") or []
            if not isinstance(blocks, list):
                raise ValueError("blocks must be a JSON array")
            return [Block.from_dict(item) for item in blocks]
        except ValueError as exc:
            raise PeerRequestError(f"unexpected blocks from {self.tcp_address()}: {exc}") from exc

    def join(self, ip: str, port: int, timeout: float = DEFAULT_TIMEOUT) -> JoinResponse:
        """Ask the peer to add the node at ip:port to its known peers."""
        query = urllib.parse.urlencode({"ip": ip, "port": port})
        data = self._get_json(f"node/addpeer?{query}", timeout)
        try:
            return JoinResponse.from_dict(data)
        except ValueError as exc:
            raise PeerRequestError(f"unexpected join answer from {self.tcp_address()}: {exc}") from exc


@dataclass
class PeerStatus:
    """What a peer reports about itself."""

    block_hash: str = ""
    block_number: int = 0
    known_peers: dict[str, PeerNode] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping) -> PeerStatus:
        data = _as_mapping(data, "a node status")
        peers = data.get("known_peers") or {}
        peers = _as_mapping(peers, "known peers")
        return cls(
            block_hash=_string(data.get("block_hash"), "block_hash"),
            block_number=_unsigned(data.get("block_number"), "block_number"),
            known_peers={address: PeerNode.from_dict(peer) for address, peer in peers.items()},
        )


@dataclass
class JoinResponse:
    """A peer's answer to a request to join it."""

    success: bool = False
    error: str = ""

    @classmethod
    def from_dict(cls, data: Mapping) -> JoinResponse:
        data = _as_mapping(data, "a join response")
        return cls(
            success=_flag(data.get("success"), "success"),
            error=_string(data.get("error"), "error"),
        )