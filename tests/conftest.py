"""Shared fixtures: an in-process fake etcd v2 keys server."""

import json
import threading
import time
import urllib.parse
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest


class FakeEtcd:
    """Records PUTs and answers GETs with a canned body."""

    def __init__(self):
        self.puts: list[dict] = []
        self.get_body: bytes = json.dumps({"action": "get", "node": {"key": "/", "dir": True}}).encode()
        self.get_status = 200
        self.put_status = 200
        self.put_delay = 0.0
        self._cond = threading.Condition()
        self.server: ThreadingHTTPServer | None = None

    @property
    def url(self) -> str:
        host, port = self.server.server_address[:2]
        return f"http://{host}:{port}"

    def record_put(self, path: str, form: dict) -> None:
        with self._cond:
            self.puts.append({"path": path, "form": form, "time": time.monotonic()})
            self._cond.notify_all()

    def wait_for_puts(self, count: int, timeout: float = 5.0) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: len(self.puts) >= count, timeout=timeout)


def _make_handler(etcd: FakeEtcd):

    class FakeEtcdHandler(BaseHTTPRequestHandler):

        def log_message(self, format, *args):
            pass

        def _respond(self, status: int, body: bytes):
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def do_PUT(self):
            length = int(self.headers.get("Content-Length", 0))
            raw = self.rfile.read(length).decode()
            form = {k: v[0] for k, v in urllib.parse.parse_qs(raw).items()}
            form["content_type"] = self.headers.get("Content-Type")
            if etcd.put_delay:
                time.sleep(etcd.put_delay)
            etcd.record_put(urllib.parse.unquote(self.path), form)
            self._respond(etcd.put_status, b"{}")

        def do_GET(self):
            self._respond(etcd.get_status, etcd.get_body)

    return FakeEtcdHandler


@pytest.fixture
def fake_etcd():
    etcd = FakeEtcd()
    etcd.server = ThreadingHTTPServer(("127.0.0.1", 0), _make_handler(etcd))
    etcd.server.daemon_threads = True
    thread = threading.Thread(target=etcd.server.serve_forever, daemon=True)
    thread.start()
    yield etcd
    etcd.server.shutdown()
    etcd.server.server_close()


@pytest.fixture
def closed_port_url():
    """URL of a local port with nothing listening on it."""
    server = ThreadingHTTPServer(("127.0.0.1", 0), BaseHTTPRequestHandler)
    host, port = server.server_address[:2]
    server.server_close()
    return f"http://{host}:{port}"
