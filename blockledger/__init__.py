"""An append-only block ledger of account balances, with a peer-syncing HTTP node."""

__version__ = "0.2.0"