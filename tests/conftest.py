import threading
from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from urllib.parse import urlsplit

import pytest

SCRIPTS_DIR = Path(__file__).parent / "scripts"


@dataclass
class SeenRequest:
    method: str
    path: str
    headers: dict
    body: bytes


@dataclass
class FakeServer:
    """Canned responses keyed by (method, path); records every request."""

    url: str = ""
    routes: dict = field(default_factory=dict)
    requests: list = field(default_factory=list)

    def add(self, method, path, body=b"", status=200, headers=None):
        if isinstance(body, str):
            body = body.encode("utf-8")
        self.routes[(method, path)] = (status, headers or {}, body)

    def add_sequence(self, method, path, responses):
        """Serve each (status, body) in turn; the last one repeats."""
        self.routes[(method, path)] = list(responses)


class _Handler(BaseHTTPRequestHandler):
    def _handle(self):
        fake = self.server.fake
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length) if length else b""
        fake.requests.append(
            SeenRequest(self.command, self.path, dict(self.headers), body)
        )

        route = fake.routes.get((self.command, urlsplit(self.path).path))
        if route is None:
            status, headers, payload = 404, {}, b"not found"
        elif isinstance(route, list):
            status, payload = route.pop(0) if len(route) > 1 else route[0]
            headers = {}
            if isinstance(payload, str):
                payload = payload.encode("utf-8")
        else:
            status, headers, payload = route

        self.send_response(status)
        for name, value in headers.items():
            for v in value if isinstance(value, list) else [value]:
                self.send_header(name, v)
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(payload)

    do_GET = do_HEAD = do_OPTIONS = _handle
    do_POST = do_PUT = do_PATCH = do_DELETE = _handle

    def log_message(self, format, *args):
        pass


@pytest.fixture
def http_server():
    httpd = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    fake = FakeServer(url=f"http://127.0.0.1:{httpd.server_address[1]}")
    httpd.fake = fake
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    yield fake
    httpd.shutdown()
    httpd.server_close()


@pytest.fixture
def script_path():
    def _path(name):
        return str(SCRIPTS_DIR / name)

    return _path
