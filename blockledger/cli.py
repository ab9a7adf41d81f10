"""Command-line interface: inspect the ledger, add transactions and run a node."""

from __future__ import annotations

import argparse
import functools
import logging
import sys
from collections.abc import Sequence

from .block import Block, Hash, new_block, new_tx
from .node import Node
from .peer import PeerNode
from .server import NodeServer
from .state import State

MAJOR = "0"
MINOR = "2"
PATCH = "0"
VERBAL = "TX Add & Balances list"

DEFAULT_PORT = 8080
DEFAULT_HOST = "localhost"
BOOTSTRAP_NODE_BY_DEFAULT = False


def _fail(exc: BaseException) -> int:
    print(f"error: {exc}", file=sys.stderr)
    return 1


def _unsigned(text: str) -> int:
    try:
        value = int(text, 10)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid non-negative integer: {text!r}") from None
    if value < 0:
        raise argparse.ArgumentTypeError(f"value must be non-negative: {text!r}")
    return value


def _add_dir_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--dir", required=True, help="the database directory")


def _print_help(parser: argparse.ArgumentParser, args: argparse.Namespace) -> int:
    parser.print_help()
    return 0


def _cmd_version(args: argparse.Namespace) -> int:
    sys.stdout.write(f"Version: {MAJOR}.{MINOR}.{PATCH}-beta {VERBAL}")
    return 0


def _cmd_list(args: argparse.Namespace) -> int:
    try:
        state = State(args.dir, True)
    except (OSError, ValueError) as exc:
        return _fail(exc)
    with state:
        text = f"Account balances at: {state.last_hash}\n" + "".join(
            f"-----\n{account} : {value}\n-----\n" for account, value in state.balances.items()
        )
    sys.stdout.write(text)
    return 0


def _try_add_block(state: State, block: Block) -> None:
    try:
        state.add_block(block)
    except ValueError:
        # A rejected block is already logged by the state; migration goes on.
        pass


def _cmd_migrate(args: argparse.Namespace) -> int:
    try:
        state = State(args.dir, True)
    except (OSError, ValueError) as exc:
        return _fail(exc)
    with state:
        try:
            block0 = new_block(
                Hash.zero(),
                0,
                [
                    new_tx("andrej", "andrej", "", 3),
                    new_tx("andrej", "andrej", "reward", 700),
                ],
            )
            _try_add_block(state, block0)
            block0_hash = state.persist()
            print(f"block hash: {block0_hash}")
            print(f"parent block hash: {block0.header.parent_hash}")

            block1 = new_block(
                block0_hash,
                1,
                [
                    new_tx("andrej", "babayaga", "", 2000),
                    new_tx("andrej", "andrej", "reward", 100),
                    new_tx("babayaga", "andrej", "", 1),
                    new_tx("babayaga", "caesar", "", 1000),
                    new_tx("babayaga", "andrej", "", 50),
                    new_tx("andrej", "andrej", "reward", 600),
                    new_tx("andrej", "andrej", "reward", 2600),
                ],
            )
            _try_add_block(state, block1)
            block1_hash = state.persist()
            print(f"block hash: {block1_hash}")
            print(f"parent block hash: {block1.header.parent_hash}")
        except OSError as exc:
            return _fail(exc)
    return 0


def _cmd_node(args: argparse.Namespace) -> int:
    try:
        state = State(args.dir, True)
    except (OSError, ValueError) as exc:
        return _fail(exc)
    with state:
        number = state.last_block.header.number
        block_hash = state.last_hash
    sys.stdout.write(
        f"Latest block number: '{number}'\nLatest block hash: '{block_hash}'\n"
    )
    return 0


def _cmd_tx_add(args: argparse.Namespace) -> int:
    tx = new_tx(args.sender, args.to, args.data, args.value)
    try:
        state = State(args.dir, True)
    except (OSError, ValueError) as exc:
        return _fail(exc)
    with state:
        try:
            state.add(tx)
            snapshot = state.persist()
        except (OSError, ValueError) as exc:
            return _fail(exc)
    print(f"Snapshot: {snapshot}")
    print("Successfully transaction was added.")
    return 0


def _cmd_run(args: argparse.Namespace) -> int:
    logging.basicConfig(
        level=logging.INFO,
        stream=sys.stdout,
        format="%(name)s %(asctime)s %(message)s",
    )
    bootstrap: PeerNode | None = None
    if args.bootstrap:
        print(f"Running a bootstrap node {args.dir} and port {args.port}")
    else:
        print(f"Running a peer node with dir: {args.dir}, host {args.host} and port {args.port}")
        bootstrap = PeerNode(args.bootstrap_ip, args.bootstrap_port, is_bootstrap=True, is_active=False)
        print(
            f"successfully added the bootstrap node with ip {args.bootstrap_ip} "
            f"and port {args.bootstrap_port} "
        )
    server = NodeServer(Node(args.dir, args.port, args.host, bootstrap, True), args.port)
    try:
        server.run()
    except KeyboardInterrupt:
        return 0
    except (OSError, ValueError) as exc:
        return _fail(exc)
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with every subcommand."""
    parser = argparse.ArgumentParser(
        prog="blockledger",
        description="A small ledger of account balances kept as a chain of blocks.",
    )
    parser.set_defaults(func=functools.partial(_print_help, parser))
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")

    version = commands.add_parser("version", help="A version.")
    version.set_defaults(func=_cmd_version)

    balances = commands.add_parser("list", help="Balances")
    _add_dir_flag(balances)
    balances.set_defaults(func=_cmd_list)

    tx = commands.add_parser("tx", help="Transaction commands ( add )")
    tx.set_defaults(func=functools.partial(_print_help, tx))
    tx_commands = tx.add_subparsers(dest="tx_command", metavar="COMMAND")
    tx_add = tx_commands.add_parser("add", help="Add transaction")
    tx_add.add_argument(
        "--from", dest="sender", required=True,
        help="from what account to perform the transaction",
    )
    tx_add.add_argument("--to", required=True, help="to what account perform the transaction")
    tx_add.add_argument(
        "--value", type=_unsigned, required=True, help="amount of value, non negative"
    )
    tx_add.add_argument(
        "--data", default="", help="data to send. Only 1 available option, is 'reward'."
    )
    _add_dir_flag(tx_add)
    tx_add.set_defaults(func=_cmd_tx_add)

    run = commands.add_parser("run", help="Run the HTTP server")
    _add_dir_flag(run)
    run.add_argument("--port", type=_unsigned, default=DEFAULT_PORT, required=True,
                     help="Define the port number")
    run.add_argument("--host", default=DEFAULT_HOST, required=True, help="Define a host")
    run.add_argument("--bootstrap", action="store_true", default=BOOTSTRAP_NODE_BY_DEFAULT,
                     help="Is running a bootstrap node or not")
    run.add_argument("--bootstrapIp", dest="bootstrap_ip", default="",
                     help="The ip of the bootstrap node")
    run.add_argument("--bootstrapPort", dest="bootstrap_port", type=_unsigned,
                     default=DEFAULT_PORT, help="The bootstrap node port")
    run.set_defaults(func=_cmd_run)

    migrate = commands.add_parser("migrate", help="migrate database")
    _add_dir_flag(migrate)
    migrate.set_defaults(func=_cmd_migrate)

    node = commands.add_parser("node", help="get latest block number and hash of current node")
    _add_dir_flag(node)
    node.set_defaults(func=_cmd_node)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command line and return the exit status."""
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())