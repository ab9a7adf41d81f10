"""Blocks, transactions and the hashes that chain them together."""

from __future__ import annotations

import hashlib
import json
import logging
import string
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

logger = logging.getLogger("blockledger.database")

HASH_SIZE = 32
REWARD = "reward"

_JSON_ESCAPES = (
    ("<", "\\u003c"),
    (">", "\\u003e"),
    ("&", "\\u0026"),
    ("\u2028", "\\u2028"),
    ("\u2029", "\\u2029"),
)


def _now_rfc3339() -> str:
    stamp = datetime.now().astimezone().replace(microsecond=0).isoformat()
    return stamp[:-6] + "Z" if stamp.endswith("+00:00") else stamp


def _encode(obj: Any) -> str:
    """Compact JSON with HTML-sensitive characters escaped."""
    text = json.dumps(obj, separators=(",", ":"), ensure_ascii=False)
    for char, escape in _JSON_ESCAPES:
        text = text.replace(char, escape)
    return text


def _require_mapping(data: Any, what: str) -> Mapping:
    if not isinstance(data, Mapping):
        raise ValueError(f"{what} must be a JSON object")
    return data


def _field(data: Mapping, name: str, default: Any = None) -> Any:
    """Look a key up exactly first, then ignoring case."""
    if name in data:
        return data[name]
    folded = name.casefold()
    for key, value in data.items():
        if isinstance(key, str) and key.casefold() == folded:
            return value
    return default


def _text(data: Mapping, name: str) -> str:
    value = _field(data, name)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {name!r} must be a string")
    return value


def _unsigned(data: Mapping, name: str) -> int:
    value = _field(data, name)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"field {name!r} must be a non-negative integer")
    return value


@dataclass(frozen=True)
class Hash:
    """A 32-byte SHA-256 digest, shown as lower-case hex."""

    digest: bytes = bytes(HASH_SIZE)

    def __post_init__(self) -> None:
        if len(self.digest) != HASH_SIZE:
            raise ValueError(f"a hash holds {HASH_SIZE} bytes, got {len(self.digest)}")
        object.__setattr__(self, "digest", bytes(self.digest))

    @classmethod
    def zero(cls) -> Hash:
        return cls()

    @classmethod
    def from_hex(cls, text: str | bytes) -> Hash:
        """Decode hex text; shorter input fills the leading bytes only."""
        if isinstance(text, bytes):
            text = text.decode("ascii")
        if len(text) % 2 or any(char not in string.hexdigits for char in text):
            raise ValueError(f"invalid hex hash: {text!r}")
        raw = bytes.fromhex(text)
        if len(raw) > HASH_SIZE:
            raise ValueError(f"hex hash is longer than {HASH_SIZE} bytes")
        return cls(raw.ljust(HASH_SIZE, b"\0"))

    @classmethod
    def _from_json(cls, value: Any) -> Hash:
        if value is None:
            return cls()
        if not isinstance(value, str):
            raise ValueError("a hash must be encoded as a hex string")
        return cls.from_hex(value)

    def is_zero(self) -> bool:
        return self.digest == bytes(HASH_SIZE)

    def __bytes__(self) -> bytes:
        return self.digest

    def __str__(self) -> str:
        return self.digest.hex()


@dataclass(frozen=True)
class Tx:
    """A transfer of value between two accounts."""

    sender: str
    to: str
    value: int
    data: str = ""
    created_at: str = ""

    def __post_init__(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, int) or self.value < 0:
            raise ValueError("a transaction value must be a non-negative integer")

    def is_reward(self) -> bool:
        return self.data == REWARD

    def to_dict(self) -> dict[str, Any]:
        return {
            "from": self.sender,
            "to": self.to,
            "value": self.value,
            "data": self.data,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> Tx:
        data = _require_mapping(data, "a transaction")
        return cls(
            sender=_text(data, "from"),
            to=_text(data, "to"),
            value=_unsigned(data, "value"),
            data=_text(data, "data"),
            created_at=_text(data, "createdAt"),
        )


def new_tx(sender: str, to: str, data: str, value: int) -> Tx:
    """Create a transaction stamped with the current local time."""
    return Tx(sender, to, value, data, _now_rfc3339())


@dataclass(frozen=True)
class BlockHeader:
    parent_hash: Hash = field(default_factory=Hash)
    number: int = 0
    time: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"parentHash": str(self.parent_hash), "number": self.number, "time": self.time}

    @classmethod
    def from_dict(cls, data: Mapping) -> BlockHeader:
        data = _require_mapping(data, "a block header")
        return cls(
            parent_hash=Hash._from_json(_field(data, "parentHash")),
            number=_unsigned(data, "number"),
            time=_unsigned(data, "time"),
        )


@dataclass
class Block:
    header: BlockHeader = field(default_factory=BlockHeader)
    payload: list[Tx] = field(default_factory=list)

    def _payload_json(self) -> list[dict[str, Any]] | None:
        return [tx.to_dict() for tx in self.payload] or None

    def hash(self) -> Hash:
        """SHA-256 of the block's JSON form, parent hash written as a byte array."""
        header = {
            "parentHash": list(self.header.parent_hash.digest),
            "number": self.header.number,
            "time": self.header.time,
        }
        encoded = _encode({"header": header, "payload": self._payload_json()})
        return Hash(hashlib.sha256(encoded.encode("utf-8")).digest())

    def to_dict(self) -> dict[str, Any]:
        return {"header": self.header.to_dict(), "payload": self._payload_json()}

    @classmethod
    def from_dict(cls, data: Mapping) -> Block:
        data = _require_mapping(data, "a block")
        header = _field(data, "header")
        payload = _field(data, "payload")
        if payload is None:
            payload = []
        if not isinstance(payload, list):
            raise ValueError("a block payload must be a JSON array")
        return cls(
            header=BlockHeader() if header is None else BlockHeader.from_dict(header),
            payload=[Tx.from_dict(item) for item in payload],
        )


def new_block(parent_hash: Hash, number: int, payload: list[Tx]) -> Block:
    """Create a block stamped with the current Unix time."""
    for tx in payload:
        logger.info("new block with tx: from: %s, to: %s, value: %d", tx.sender, tx.to, tx.value)
    return Block(BlockHeader(parent_hash, number, int(time.time())), list(payload))


@dataclass
class BlockRecord:
    """A block together with its hash, as stored one per line."""

    key: Hash
    value: Block

    def to_json(self) -> str:
        return _encode({"hash": str(self.key), "block": self.value.to_dict()})

    @classmethod
    def from_json(cls, line: str | bytes) -> BlockRecord:
        data = _require_mapping(json.loads(line), "a block record")
        block = _field(data, "block")
        return cls(
            key=Hash._from_json(_field(data, "hash")),
            value=Block() if block is None else Block.from_dict(block),
        )