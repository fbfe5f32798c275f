"""
=============================================================================
PYTEST CONFIGURATION AND SHARED FIXTURES
=============================================================================

Fixtures available to every test:

    site_root       a temp directory with index.html (2 KiB of repeated
                    text), small.txt (500 B), logo.svg, photo.png, app.js
    make_request    builds an HTTPRequest from method/target/headers/body
    handler         a StaticFileHandler over site_root
    free_port       an unused TCP port
    live_server     a GzipStaticServer running in a background thread
    upload_dir      where live_upload_server stores uploads
    live_upload_server  live_server with the /api/ upload endpoints on

multipart_body() builds multipart/form-data request bodies.
=============================================================================
"""

import socket
import sys
import threading
from pathlib import Path
from typing import Dict, Generator, Optional

import pytest

# Make src/ importable without installing the package
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gzipstatic import GzipStaticServer, ServerConfig
from gzipstatic.core import MemoryCache
from gzipstatic.handlers import StaticFileHandler
from gzipstatic.http import HTTPRequest


INDEX_HTML = (b"<p>Hello from the gzip static server.</p>\n" * 49)[:2048]
SMALL_TXT = b"x" * 500
APP_JS = b"function greet(name) { return 'hello ' + name; }\n" * 60
LOGO_SVG = (
    b'<svg xmlns="http://www.w3.org/2000/svg" width="10" height="10">'
    + b'<rect x="0" y="0" width="10" height="10" fill="#336699"/>' * 40
    + b"</svg>"
)
# PNG signature followed by filler; content does not matter, only the type
PHOTO_PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 4096


@pytest.fixture
def site_root(tmp_path: Path) -> Path:
    root = tmp_path / "public"
    root.mkdir()
    (root / "index.html").write_bytes(INDEX_HTML)
    (root / "small.txt").write_bytes(SMALL_TXT)
    (root / "app.js").write_bytes(APP_JS)
    (root / "logo.svg").write_bytes(LOGO_SVG)
    (root / "photo.png").write_bytes(PHOTO_PNG)
    (root / "docs").mkdir()
    (root / "docs" / "guide.txt").write_bytes(b"guide\n" * 400)
    # Outside the served root, for traversal tests
    (tmp_path / "secret.txt").write_bytes(b"top secret")
    return root


@pytest.fixture
def make_request():
    def _make(
        target: str = "/",
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        body: bytes = b"",
    ) -> HTTPRequest:
        return HTTPRequest(
            method=method,
            target=target,
            headers={k.lower(): v for k, v in (headers or {}).items()},
            body=body,
            client_address=("127.0.0.1", 50000),
        )
    return _make


@pytest.fixture
def handler(site_root: Path) -> StaticFileHandler:
    return StaticFileHandler(site_root, cache=MemoryCache(max_size=1024 * 1024))


@pytest.fixture
def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class LiveServer:
    """Runs a GzipStaticServer on a background thread."""

    def __init__(self, server: GzipStaticServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.config.port

    def start(self):
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()
        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")

    def stop(self):
        self.server.shutdown()
        if self._thread is not None:
            self._thread.join(timeout=10.0)


def _start_live_server(site_root: Path, port: int, **overrides) -> LiveServer:
    settings = dict(
        host="127.0.0.1",
        port=port,
        root_dir=str(site_root),
        min_workers=2,
        max_workers=4,
        timeout=5.0,
        keep_alive_timeout=1.0,
        log_level="warning",
    )
    settings.update(overrides)
    live = LiveServer(GzipStaticServer(ServerConfig(**settings), configure_logging=False))
    live.start()
    return live


@pytest.fixture
def live_server(site_root: Path, free_port: int) -> Generator[LiveServer, None, None]:
    live = _start_live_server(site_root, free_port)
    yield live
    live.stop()


@pytest.fixture
def upload_dir(tmp_path: Path) -> Path:
    return tmp_path / "uploads"


@pytest.fixture
def live_upload_server(site_root: Path, free_port: int, upload_dir: Path) -> Generator[LiveServer, None, None]:
    """live_server with the /api/ upload endpoints enabled."""
    live = _start_live_server(site_root, free_port, upload_dir=str(upload_dir))
    yield live
    live.stop()


def multipart_body(files, fields=None, boundary: str = "gzipstatic-test-boundary"):
    """
    Build a multipart/form-data body.

    Returns (content_type, body). `files` is a list of (filename, bytes).
    """
    body = b""
    for name, value in (fields or {}).items():
        body += (
            f"--{boundary}\r\n"
            f'Content-Disposition: form-data; name="{name}"\r\n\r\n'
            f"{value}\r\n"
        ).encode("utf-8")
    for filename, data in files:
        body += (
            f"--{boundary}\r\n"
            f'Content-Disposition: form-data; name="files"; filename="{filename}"\r\n'
            f"Content-Type: application/octet-stream\r\n\r\n"
        ).encode("utf-8") + data + b"\r\n"
    body += f"--{boundary}--\r\n".encode("utf-8")
    return f"multipart/form-data; boundary={boundary}", body
