"""pytest configuration and fixtures for xml_validate tests."""

from __future__ import annotations

import functools
import http.server
import io
import socketserver
import threading
from collections.abc import Iterator
from pathlib import Path

import pytest
from rich.console import Console

from tests.fixture_loader import (
    FIXTURES_DIR,
    NS_MAP,
    SCHEMAS_DIR,
    build_kmz,
    load_fixture_bytes,
)
from xml_validate import NamespaceMap, ValidateConfig
from xml_validate.report import make_console


@pytest.fixture
def schema_map() -> NamespaceMap:
    """Provide the test namespace map with ${XV_HOME} set to the fixtures."""
    return NamespaceMap.from_file(NS_MAP, FIXTURES_DIR)


@pytest.fixture
def map_config(schema_map: NamespaceMap) -> ValidateConfig:
    """Provide a map-mode configuration accepting KML and KMZ files."""
    return ValidateConfig(schema_map=schema_map, extensions={"kml", "kmz"})


@pytest.fixture
def kml22_schema() -> str:
    """Provide the KML 2.2 test schema as a file URI."""
    return (SCHEMAS_DIR / "kml22.xsd").resolve().as_uri()


@pytest.fixture
def output() -> io.StringIO:
    """Provide a buffer capturing report output."""
    return io.StringIO()


@pytest.fixture
def console(output: io.StringIO) -> Console:
    """Provide a console writing report lines to ``output``."""
    return make_console(file=output, width=200)


@pytest.fixture
def valid_kmz(tmp_path: Path) -> Path:
    """Create a KMZ with one valid KML document and a resource."""
    return build_kmz(
        tmp_path / "valid.kmz",
        [
            ("doc.kml", load_fixture_bytes("kml", "valid.kml")),
            ("files/icon.png", b"\x89PNG\r\n\x1a\n"),
        ],
    )


@pytest.fixture
def three_entry_kmz(tmp_path: Path) -> Path:
    """Create a KMZ with three KML documents, the first one invalid."""
    return build_kmz(
        tmp_path / "three.kmz",
        [
            ("doc.kml", load_fixture_bytes("kml", "bad_color.kml")),
            ("images/marker.png", b"\x89PNG\r\n\x1a\n"),
            ("sub/second.kml", load_fixture_bytes("kml", "valid.kml")),
            ("third.kml", load_fixture_bytes("kml", "beta22.kml")),
        ],
    )


@pytest.fixture
def broken_directory_kmz(valid_kmz: Path) -> Path:
    """Damage the end-of-central-directory record of a valid KMZ."""
    data = valid_kmz.read_bytes()
    broken = valid_kmz.with_name("broken.kmz")
    broken.write_bytes(data.replace(b"PK\x05\x06", b"XX\x05\x06"))
    return broken


@pytest.fixture
def mislabeled_kmz(tmp_path: Path) -> Path:
    """Create a .kmz file that is really plain KML."""
    path = tmp_path / "mislabeled.kmz"
    path.write_bytes(load_fixture_bytes("kml", "valid.kml"))
    return path


@pytest.fixture
def truncated_kmz(tmp_path: Path) -> Path:
    """Create a .kmz file with the ZIP signature and nothing usable after it."""
    path = tmp_path / "truncated.kmz"
    path.write_bytes(b"PK\x03\x04 not really an archive")
    return path


@pytest.fixture
def empty_kmz(tmp_path: Path) -> Path:
    """Create a KMZ without any KML entry."""
    return build_kmz(tmp_path / "empty.kmz", [("readme.txt", b"nothing here")])


class _QuietHandler(http.server.SimpleHTTPRequestHandler):
    """Serves files from a directory without logging requests."""

    def log_message(self, format: str, *args: object) -> None:
        pass


class _DroppingHandler(socketserver.BaseRequestHandler):
    """Reads the request, then closes the connection without answering."""

    def handle(self) -> None:
        self.request.recv(65536)


def _serve(server: socketserver.TCPServer) -> Iterator[str]:
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        host, port = server.server_address[:2]
        yield f"http://{host}:{port}"
    finally:
        server.shutdown()
        server.server_close()
        thread.join()


@pytest.fixture
def http_root(tmp_path: Path) -> Path:
    """Provide the directory served by ``http_server``."""
    root = tmp_path / "www"
    root.mkdir()
    return root


@pytest.fixture
def http_server(http_root: Path) -> Iterator[str]:
    """Serve ``http_root`` over HTTP on a free local port; yields the base URL."""
    handler = functools.partial(_QuietHandler, directory=str(http_root))
    server = http.server.ThreadingHTTPServer(("127.0.0.1", 0), handler)
    yield from _serve(server)


@pytest.fixture
def dropping_server() -> Iterator[str]:
    """Accept HTTP connections and close them without a response; yields the base URL."""
    server = socketserver.ThreadingTCPServer(("127.0.0.1", 0), _DroppingHandler)
    server.daemon_threads = True
    yield from _serve(server)
