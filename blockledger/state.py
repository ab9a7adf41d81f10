"""Account balances derived from the genesis file and the block log."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

from .block import Block, BlockRecord, Hash, Tx, new_block
from .fs import blocks_db_path, genesis_path, init_db_dir

logger = logging.getLogger("blockledger.database")


class TransactionError(ValueError):
    """A transaction cannot be applied to the current balances."""


class BlockValidationError(ValueError):
    """A block does not follow the last known block."""


@dataclass
class _Ledger:
    balances: dict[str, int]
    last_block: Block = field(default_factory=Block)
    last_hash: Hash = field(default_factory=Hash)
    mempool: list[Tx] = field(default_factory=list)
    check_chain: bool = False

    def copy(self) -> _Ledger:
        # Chain checks are not carried over to the copy.
        return _Ledger(dict(self.balances), self.last_block, self.last_hash, list(self.mempool))


def _apply_tx(tx: Tx, balances: dict[str, int]) -> None:
    if tx.is_reward():
        balances[tx.to] = balances.get(tx.to, 0) + tx.value
        return
    if balances.get(tx.sender, 0) < tx.value:
        raise TransactionError(
            f"wrong TX, cant perform transaction. From: {tx.sender}, To: {tx.to}, Value: {tx.value}"
        )
    balances[tx.sender] = balances.get(tx.sender, 0) - tx.value
    balances[tx.to] = balances.get(tx.to, 0) + tx.value


def _apply_block(block: Block, ledger: _Ledger) -> None:
    if ledger.check_chain:
        expected = ledger.last_block.header.number + 1
        if block.header.number != expected:
            raise BlockValidationError(
                f"the next block number is incorrect, expected to be {expected} got {block.header.number}"
            )
        if ledger.last_block.header.number > 0 and block.header.parent_hash != ledger.last_hash:
            raise BlockValidationError(
                "the next block parent hash is incorrect, expected to be "
                f"{ledger.last_hash} got {block.header.parent_hash}"
            )
    for tx in block.payload:
        _apply_tx(tx, ledger.balances)
        ledger.mempool.append(tx)


def _lines(text: str) -> Iterator[str]:
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    for line in lines:
        yield line.removesuffix("\r")


def _load_genesis_balances(path: Path) -> dict[str, int]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError("the genesis file must hold a JSON object")
    balances = data.get("balances") or {}
    if not isinstance(balances, dict):
        raise ValueError("genesis balances must be a JSON object")
    for account, value in balances.items():
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValueError(f"genesis balance of {account!r} must be a non-negative integer")
    return dict(balances)


class State:
    """Balances replayed from a database directory, with an open block log."""

    def __init__(self, dirname: str | os.PathLike, has_genesis_block: bool = True) -> None:
        init_db_dir(dirname)
        self._ledger = _Ledger(
            balances=_load_genesis_balances(genesis_path(dirname)),
            check_chain=has_genesis_block,
        )
        self._file = blocks_db_path(dirname).open("a+", encoding="utf-8", newline="")
        try:
            self._load_blocks()
        except BaseException:
            self._file.close()
            raise

    def _load_blocks(self) -> None:
        self._file.seek(0)
        for line in _lines(self._file.read()):
            record = BlockRecord.from_json(line)
            for tx in record.value.payload:
                _apply_tx(tx, self._ledger.balances)
            self._ledger.last_block = record.value
            self._ledger.last_hash = record.key

    def _write(self, record: BlockRecord) -> None:
        self._file.write(record.to_json() + "\n")
        self._file.flush()

    @property
    def balances(self) -> dict[str, int]:
        return self._ledger.balances

    def close(self) -> None:
        self._file.close()

    def __enter__(self) -> State:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def add(self, tx: Tx) -> None:
        """Apply a transaction to the balances and queue it for the next block."""
        _apply_tx(tx, self._ledger.balances)
        self._ledger.mempool.append(tx)

    def add_block(self, block: Block) -> Hash:
        """Apply a block's transactions, append it to the log and return its hash."""
        pending = self._ledger.copy()
        try:
            _apply_block(block, pending)
        except ValueError as exc:
            logger.warning("could not apply a block %s", exc)
            raise
        block_hash = block.hash()
        logger.info("Persisting a new block to db file")
        self._write(BlockRecord(block_hash, block))
        self._ledger.balances = pending.balances
        self._ledger.last_hash = block_hash
        self._ledger.last_block = block
        logger.info("done adding a block")
        return block_hash

    @property
    def mempool(self) -> list[Tx]:
        return list(self._ledger.mempool)

    def persist(self) -> Hash:
        """Write the queued transactions as a new block and return its hash."""
        block = new_block(
            self._ledger.last_hash,
            self._ledger.last_block.header.number + 1,
            list(self._ledger.mempool),
        )
        block_hash = block.hash()
        self._write(BlockRecord(block_hash, block))
        self._ledger.last_hash = block_hash
        self._ledger.last_block = block
        return block_hash

    @property
    def last_hash(self) -> Hash:
        return self._ledger.last_hash

    @property
    def last_block(self) -> Block:
        return self._ledger.last_block

    def get_blocks_after(self, block_hash: Hash, datadir: str | os.PathLike) -> list[Block]:
        """Blocks stored after the one with this hash; all of them for the zero hash."""
        collecting = block_hash.is_zero()
        blocks: list[Block] = []
        with blocks_db_path(datadir).open(encoding="utf-8", newline="") as handle:
            for line in _lines(handle.read()):
                record = BlockRecord.from_json(line)
                if collecting:
                    blocks.append(record.value)
                if record.key == block_hash:
                    collecting = True
        return blocks