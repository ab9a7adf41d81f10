"""Layout of the on-disk database directory."""

from __future__ import annotations

import os
from datetime import datetime
from pathlib import Path

DB_SUBDIR = "database"
GENESIS_FILE = "genesis.json"
BLOCKS_FILE = "blocks.db"

_GENESIS_TEMPLATE = (
    "{{\n"
    '\t"genesis_time": "{time}",\n'
    '\t"chain_id": "bb ledger",\n'
    '\t"balances": {{\n'
    '    \t"andrej": 1000000\n'
    "    }}\n"
    "}}"
)


def _now_rfc3339() -> str:
    stamp = datetime.now().astimezone().replace(microsecond=0).isoformat()
    return stamp[:-6] + "Z" if stamp.endswith("+00:00") else stamp


def db_dir(dirname: str | os.PathLike) -> Path:
    return Path(dirname) / DB_SUBDIR


def genesis_path(dirname: str | os.PathLike) -> Path:
    return db_dir(dirname) / GENESIS_FILE


def blocks_db_path(dirname: str | os.PathLike) -> Path:
    return db_dir(dirname) / BLOCKS_FILE


def write_genesis_file(dirname: str | os.PathLike) -> None:
    """Write the default genesis file, stamped with the current time."""
    genesis_path(dirname).write_text(_GENESIS_TEMPLATE.format(time=_now_rfc3339()), encoding="utf-8")


def write_blocks_db_file(dirname: str | os.PathLike) -> None:
    """Create an empty blocks file, truncating any existing one."""
    blocks_db_path(dirname).write_bytes(b"")


def init_db_dir(dirname: str | os.PathLike) -> None:
    """Create the database directory and files unless a genesis file exists."""
    if genesis_path(dirname).exists():
        return
    db_dir(dirname).mkdir(parents=True, exist_ok=True)
    write_genesis_file(dirname)
    write_blocks_db_file(dirname)