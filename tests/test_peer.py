import json
import socket
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import parse_qs, urlsplit

import pytest

from blockledger.block import Hash, new_block, new_tx
from blockledger.peer import JoinResponse, PeerNode, PeerRequestError, PeerStatus


@pytest.fixture
def peer_server():
    routes = {}
    seen = []

    class Handler(BaseHTTPRequestHandler):
        def do_GET(self):
            parsed = urlsplit(self.path)
            seen.append((parsed.path, parse_qs(parsed.query)))
            if parsed.path not in routes:
                self.send_response(404)
                self.end_headers()
                return
            body = json.dumps(routes[parsed.path]).encode()
            self.send_response(200)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def log_message(self, *args):
            pass

    server = ThreadingHTTPServer(("127.0.0.1", 0), Handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server.server_address[1], routes, seen
    server.shutdown()
    server.server_close()


def _free_port():
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def test_addresses():
    peer = PeerNode("127.0.0.1", 8080)
    assert peer.tcp_address() == "127.0.0.1:8080"
    assert peer.url() == "http://127.0.0.1:8080"


def test_dict_round_trip():
    peer = PeerNode("10.0.0.2", 9000, is_bootstrap=True, is_active=False)
    data = peer.to_dict()
    assert set(data) == {"ip", "port", "is_bootstrap", "is_active"}
    assert PeerNode.from_dict(data) == peer


def test_from_dict_rejects_bad_port():
    with pytest.raises(ValueError):
        PeerNode.from_dict({"ip": "10.0.0.2", "port": "abc"})


def test_status_defaults():
    status = PeerStatus.from_dict({})
    assert status == PeerStatus("", 0, {})


def test_join_response_from_dict():
    assert JoinResponse.from_dict({"success": True, "error": ""}) == JoinResponse(True, "")


def test_get_status(peer_server):
    port, routes, _ = peer_server
    other = PeerNode("10.0.0.2", 9000, True, True)
    routes["/node/status"] = {
        "block_hash": "ab" * 32,
        "block_number": 3,
        "known_peers": {other.tcp_address(): other.to_dict()},
    }
    status = PeerNode("127.0.0.1", port).get_status()
    assert status.block_hash == "ab" * 32
    assert status.block_number == 3
    assert status.known_peers == {other.tcp_address(): other}


def test_get_blocks_sends_hash(peer_server):
    port, routes, seen = peer_server
    block = new_block(Hash.zero(), 1, [new_tx("andrej", "andrej", "reward", 700)])
    routes["/node/sync"] = {"blocks": [block.to_dict()]}
    last = Hash(bytes(range(32)))
    blocks = PeerNode("127.0.0.1", port).get_blocks(last)
    assert [b.hash() for b in blocks] == [block.hash()]
    assert seen[-1] == ("/node/sync", {"fromBlock": [str(last)]})


def test_join_sends_own_address(peer_server):
    port, routes, seen = peer_server
    routes["/node/addpeer"] = {"success": True, "error": ""}
    response = PeerNode("127.0.0.1", port).join("192.168.0.5", 8081)
    assert response.success is True
    assert response.error == ""
    assert seen[-1] == ("/node/addpeer", {"ip": ["192.168.0.5"], "port": ["8081"]})


def test_missing_route_raises(peer_server):
    port, _, _ = peer_server
    with pytest.raises(PeerRequestError):
        PeerNode("127.0.0.1", port).get_status()


def test_unreachable_peer_raises():
    with pytest.raises(PeerRequestError):
        PeerNode("127.0.0.1", _free_port()).get_status(timeout=0.5)