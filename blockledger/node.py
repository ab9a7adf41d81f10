"""A ledger node: local state plus periodic synchronisation with peers."""

from __future__ import annotations

import logging
import os
import threading
from typing import Any

from .block import Hash, new_tx
from .peer import PeerNode, PeerRequestError, PeerStatus
from .state import State

logger = logging.getLogger("blockledger.node")

SYNC_INTERVAL = 15.0
DEFAULT_HTTP_PORT = 8080


class Node:
    """Holds the ledger state of one node and the peers it knows about."""

    def __init__(
        self,
        datadir: str | os.PathLike,
        port: int,
        ip: str,
        bootstrap: PeerNode | None = None,
        has_genesis_file: bool = True,
    ) -> None:
        self.dirname = datadir
        self.ip = ip
        self.port = port
        self.has_genesis_file = has_genesis_file
        self.known_peers: dict[str, PeerNode] = {}
        self._state: State | None = None
        self._lock = threading.RLock()
        self._stop: threading.Event | None = None
        self._thread: threading.Thread | None = None
        if bootstrap is not None:
            self.known_peers[bootstrap.tcp_address()] = bootstrap

    @property
    def state(self) -> State:
        if self._state is None:
            raise RuntimeError("the node is not running")
        return self._state

    def run(self, stop_event: threading.Event | None = None) -> threading.Thread:
        """Open the state and start syncing in the background until stopped."""
        logger.info("running node on port %d", self.port)
        self._state = State(self.dirname, self.has_genesis_file)
        self._stop = stop_event if stop_event is not None else threading.Event()
        self._thread = threading.Thread(target=self._sync_loop, name="node-sync", daemon=True)
        self._thread.start()
        return self._thread

    def _sync_loop(self) -> None:
        assert self._stop is not None
        while not self._stop.wait(SYNC_INTERVAL):
            self.do_sync()

    def close(self) -> None:
        if self._stop is not None:
            self._stop.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join()
        if self._state is not None:
            self._state.close()

    def do_sync(self) -> None:
        """Exchange status, blocks and peers with every known peer once."""
        for peer in list(self.known_peers.values()):
            if peer.ip == self.ip and peer.port == self.port:
                logger.info("skip sync self")
                continue
            logger.info("sync running for peer: %s", peer.tcp_address())
            try:
                status = peer.get_status()
            except PeerRequestError as exc:
                logger.warning("query node status error occurred %s", exc)
                status = PeerStatus()
            try:
                self.join_peer(peer)
            except PeerRequestError as exc:
                logger.warning("joining peer %s failed: %s", peer.tcp_address(), exc)
            try:
                self.sync_blocks(peer, status)
            except PeerRequestError as exc:
                logger.warning("sync blocks error occurred %s", exc)
            self.sync_peers(status)

    def is_known_peer(self, peer: PeerNode) -> bool:
        return peer.tcp_address() in self.known_peers

    def add_peer(self, peer: PeerNode) -> None:
        with self._lock:
            self.known_peers[peer.tcp_address()] = peer

    def sync_peers(self, status: PeerStatus) -> None:
        """Remember every peer the status names that is not known yet."""
        for peer in status.known_peers.values():
            if not self.is_known_peer(peer):
                logger.info("found new peer node %s", peer.tcp_address())
                self.add_peer(peer)

    def join_peer(self, peer: PeerNode) -> None:
        """Ask an inactive peer to add this node, and mark it active on success."""
        if peer.is_active:
            logger.info("join peer: peer is active")
            return
        response = peer.join(self.ip, self.port)
        logger.info("join peer received a response %s", response)
        if response.error:
            raise PeerRequestError(response.error)
        with self._lock:
            peer.is_active = response.success
            self.add_peer(peer)
        logger.info("added node %s to peer node %s", self.ip, peer.tcp_address())

    def sync_blocks(self, peer: PeerNode, status: PeerStatus) -> None:
        """Fetch and apply the peer's newer blocks when it is ahead of this node."""
        state = self.state
        if state.last_block.header.number >= status.block_number:
            return
        logger.info("get node blocks with a last hash: %s", state.last_hash)
        blocks = peer.get_blocks(state.last_hash)
        logger.info("found new blocks %d", len(blocks))
        with self._lock:
            for block in blocks:
                try:
                    state.add_block(block)
                except ValueError as exc:
                    logger.warning("could not add a synced block: %s", exc)
        logger.info("done syncing blocks for peer node %s", peer.tcp_address())

    def view_balances(self) -> dict[str, Any]:
        with self._lock:
            state = self.state
            return {"hash": str(state.last_hash), "balances": dict(state.balances)}

    def view_status(self) -> dict[str, Any]:
        with self._lock:
            state = self.state
            return {
                "block_hash": str(state.last_hash),
                "block_number": state.last_block.header.number,
                "known_peers": {address: peer.to_dict() for address, peer in self.known_peers.items()},
            }

    def view_sync_blocks(self, after_hash: Hash) -> dict[str, Any]:
        with self._lock:
            blocks = self.state.get_blocks_after(after_hash, self.dirname)
        return {"blocks": [block.to_dict() for block in blocks]}

    def add_transaction(self, sender: str, to: str, data: str, value: int) -> Hash:
        """Apply a transaction and persist it as a new block; return the block's hash."""
        if not sender or not to:
            raise ValueError("the fields 'from' or 'to' are missed")
        if value == 0:
            raise ValueError("the value could not being negative")
        with self._lock:
            state = self.state
            for tx in state.mempool:
                logger.info("current tx in mem pool: from %s, to %s, val %d", tx.sender, tx.to, tx.value)
            state.add(new_tx(sender, to, data, value))
            return state.persist()