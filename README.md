# blockledger

A small ledger that keeps account balances in an append-only file of blocks.
Each block holds a list of transactions and the hash of its parent block. A
node can serve its ledger over HTTP and pull blocks and peers from other
nodes.

## Installing

```
pip install .
```

This installs the `blockledger` command. It needs nothing beyond the Python
standard library.

## The data directory

Every command except `version` takes `--dir`, the directory that holds the
ledger. If `database/genesis.json` does not exist there yet, the directory is
created with a `database/genesis.json` file, which gives the account `andrej`
an opening balance of 1000000, and an empty `database/blocks.db`. Each block
is appended to `blocks.db` as one JSON line holding the block's hash and the
block itself. On opening, balances are rebuilt from the genesis file and then
from every transaction in `blocks.db`.

## Commands

Show the version:

```
blockledger version
```

Add a transaction and write it out as a new block:

```
blockledger tx add --dir ./ledger --from andrej --to babayaga --value 100
```

A transaction whose `--data` is `reward` credits the receiver without
debiting the sender. Any other transaction fails if the sender's balance is
lower than the value. On success the hash of the new block is printed.

List the hash of the latest block and every account's balance:

```
blockledger list --dir ./ledger
```

Show the number and hash of the latest block:

```
blockledger node --dir ./ledger
```

Try to add a pair of sample blocks to a ledger:

```
blockledger migrate --dir ./ledger
```

A sample block is applied only if its number follows the latest block's number
(and, past the first block, its parent hash matches the latest hash);
otherwise it is rejected and logged. After each attempt the pending
transactions are written out as a new block, and its hash is printed.

## Running a node

`--host` and `--port` must be given. A bootstrap node:

```
blockledger run --dir ./node1 --host localhost --port 8080 --bootstrap
```

A peer node that knows the bootstrap node:

```
blockledger run --dir ./node2 --host localhost --port 8081 \
    --bootstrapIp localhost --bootstrapPort 8080
```

The server listens on all interfaces on the given port and writes one line per
request, with its method, target and duration. Every 15 seconds a node goes
through its known peers (skipping itself): it asks each for its status, asks an
inactive peer to add it to its peer list, fetches and applies the blocks it is
missing when the peer's latest block number is higher, and remembers any new
peers the status names.

The node answers these requests:

| Method | Path | Purpose |
| ------ | ---- | ------- |
| GET | `/health` | replies `ok` |
| GET | `/balances/list` | latest block hash and all balances |
| POST | `/tx/add` | body `{"from", "to", "data", "value"}`; adds a transaction, writes a new block and returns its hash |
| GET | `/node/status` | latest block hash and number, and the known peers |
| GET | `/node/sync?fromBlock=<hash>` | the blocks stored after the given block; all blocks for the all-zero hash |
| GET | `/node/addpeer?ip=<ip>&port=<port>` | adds the node at that address as an active known peer |

## Using it from Python

```python
from blockledger.block import new_tx
from blockledger.state import State

with State("./ledger", True) as state:
    state.add(new_tx("andrej", "caesar", "", 25))
    block_hash = state.persist()
    print(block_hash, state.balances["caesar"])
```

`State.add` raises `TransactionError` when the sender cannot cover the value;
`State.add_block` raises `BlockValidationError` for a block that does not
follow the latest one. The HTTP routing lives in `blockledger.handlers.NodeApi`,
which can be called without a server through `NodeApi.handle(method, target, body)`.

## What it does not do

Transactions are not signed and the HTTP API has no authentication: anyone who
can reach a node can add transactions and peers. There is no consensus or
mining; a node simply applies the blocks a peer that is ahead of it sends.