import io
import json
import re
import threading
import time
import urllib.error
import urllib.request

import pytest

from blockledger.node import Node
from blockledger.server import NodeServer


@pytest.fixture
def running(tmp_path):
    node = Node(tmp_path, 0, "127.0.0.1")
    node.run()
    log_out = io.StringIO()
    server = NodeServer(node, 0, log_out)
    httpd = server.create_server("127.0.0.1")
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    base = f"http://127.0.0.1:{httpd.server_address[1]}"
    try:
        yield base, log_out
    finally:
        httpd.shutdown()
        httpd.server_close()
        thread.join()
        node.close()


def _get(url):
    """Return the status and body of a GET request, error responses included."""
    try:
        with urllib.request.urlopen(url, timeout=5) as response:
            return response.status, response.read()
    except urllib.error.HTTPError as error:
        return error.code, error.read()


def _log_lines(log_out, deadline=2.0):
    end = time.monotonic() + deadline
    while time.monotonic() < end:
        text = log_out.getvalue()
        if text.endswith("\n"):
            return text.splitlines()
        time.sleep(0.01)
    return log_out.getvalue().splitlines()


def test_health_over_http(running):
    base, _ = running
    status, body = _get(f"{base}/health")
    assert status == 200
    assert body == b"ok"


def test_request_is_logged(running):
    base, log_out = running
    _get(f"{base}/health")
    lines = _log_lines(log_out)
    assert len(lines) == 1
    prefix, duration = lines[0].rsplit(" ", 1)
    assert prefix == "[GET]: /health"
    unit = re.sub(r"^\d+(\.\d+)?", "", duration)
    assert unit in {"ns", "µs", "ms", "s"}


def test_tx_add_over_http(running):
    base, log_out = running
    body = json.dumps({"from": "andrej", "to": "babayaga", "value": 5}).encode()
    request = urllib.request.Request(f"{base}/tx/add", data=body, method="POST")
    with urllib.request.urlopen(request, timeout=5) as response:
        block_hash = json.loads(response.read())["hash"]
        assert response.headers["Content-Type"] == "application/json"
    _, balances = _get(f"{base}/balances/list")
    payload = json.loads(balances)
    assert payload["hash"] == block_hash
    assert payload["balances"]["babayaga"] == 5
    assert "[POST]: /tx/add " in log_out.getvalue()


def test_unknown_path_over_http(running):
    base, _ = running
    status, _ = _get(f"{base}/missing")
    assert status == 404


def test_bad_request_over_http(running):
    base, _ = running
    status, body = _get(f"{base}/node/sync")
    assert status == 400
    assert body == b"fromBlock parameter not found"


def test_create_server_binds_host(tmp_path):
    node = Node(tmp_path, 0, "127.0.0.1")
    server = NodeServer(node, 0, io.StringIO())
    httpd = server.create_server("127.0.0.1")
    try:
        assert httpd.server_address[0] == "127.0.0.1"
        assert httpd.server_address[1] > 0
    finally:
        httpd.server_close()