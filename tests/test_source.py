"""Tests for document references and archive recovery."""

from __future__ import annotations

import shutil
from pathlib import Path

import pytest
import requests

from tests.fixture_loader import KML_DIR
from xml_validate.errors import (
    AcquisitionError,
    ArchiveCorrupt,
    DocumentIOError,
    DocumentNotFound,
    MalformedDocument,
)
from xml_validate.namespaces import KML_22
from xml_validate.source import (
    ArchiveEntrySource,
    FileSource,
    UrlSource,
    explore_packaged,
    is_packaged,
    make_reference,
    parse_xml,
)


class TestParsing:
    """Tests for parsing into ParsedDocument."""

    def test_parse_plain_file(self) -> None:
        document = FileSource(KML_DIR / "valid.kml").acquire()

        assert document.namespace == KML_22
        assert document.root_name == "kml"
        assert document.warnings == []

    def test_malformed_document(self) -> None:
        with pytest.raises(MalformedDocument) as exc_info:
            FileSource(KML_DIR / "malformed.kml").acquire()

        assert exc_info.value.line > 0
        assert exc_info.value.source.endswith("malformed.kml")

    def test_doctype_dropped(self) -> None:
        """Test that the DOCTYPE is not carried into the serialized document."""
        document = parse_xml(str(KML_DIR / "doctype.kml"), "doctype.kml")
        text = document.serialize()

        assert "DOCTYPE" not in text
        assert "Entity placemark" in text

    def test_no_namespace(self) -> None:
        document = FileSource(KML_DIR / "nons.kml").acquire()
        assert document.namespace is None

    def test_acquire_is_cached(self) -> None:
        reference = FileSource(KML_DIR / "valid.kml")
        assert reference.acquire() is reference.acquire()

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(DocumentNotFound):
            FileSource(tmp_path / "absent.kml").acquire()


class TestPackagedFile:
    """Tests for the three-step KMZ acquisition."""

    def test_direct_open(self, valid_kmz: Path) -> None:
        reference = FileSource(valid_kmz)
        document = reference.acquire()

        assert reference.is_packaged
        assert document.root_name == "kml"
        assert document.source == str(valid_kmz)
        assert document.warnings == []

    def test_direct_open_skips_recovery(
        self, valid_kmz: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that a readable directory never triggers the fallbacks."""

        def fail(*args: object) -> None:
            raise AssertionError("recovery must not run")

        monkeypatch.setattr(FileSource, "_read_stream", fail)
        monkeypatch.setattr(FileSource, "_read_mislabeled", fail)

        assert FileSource(valid_kmz).acquire().namespace == KML_22

    def test_first_kml_entry_wins(self, three_entry_kmz: Path) -> None:
        document = FileSource(three_entry_kmz).acquire()
        assert document.root.findtext(f"{{{KML_22}}}Placemark/{{{KML_22}}}color") == "zz0000ff"

    def test_stream_recovery(self, broken_directory_kmz: Path) -> None:
        """Test that a damaged directory falls back to the stream reader."""
        document = FileSource(broken_directory_kmz).acquire()

        assert document.namespace == KML_22
        assert len(document.warnings) == 1
        assert document.warnings[0].startswith(
            "ZIP directory unreadable [retry using stream]"
        )

    def test_mislabeled_recovery(self, mislabeled_kmz: Path) -> None:
        """Test that plain KML named .kmz is read with one warning."""
        document = FileSource(mislabeled_kmz).acquire()

        assert document.namespace == KML_22
        assert len(document.warnings) == 1
        assert "invalid/mislabeled" in document.warnings[0]

    def test_zip_magic_without_entries(self, truncated_kmz: Path) -> None:
        """Test that a ZIP signature stops the plain-content retry."""
        with pytest.raises(ArchiveCorrupt):
            FileSource(truncated_kmz).acquire()

    def test_mislabeled_garbage(self, tmp_path: Path) -> None:
        path = tmp_path / "garbage.kmz"
        path.write_bytes(b"neither zip nor xml")

        with pytest.raises(ArchiveCorrupt):
            FileSource(path).acquire()

    def test_no_inner_document(self, empty_kmz: Path) -> None:
        with pytest.raises(MalformedDocument, match="no inner document"):
            FileSource(empty_kmz).acquire()


class TestArchiveEntries:
    """Tests for KMZ exploration."""

    def test_explore_skips_first_entry(self, three_entry_kmz: Path) -> None:
        references = explore_packaged(three_entry_kmz)

        assert [ref.entry_name for ref in references] == ["sub/second.kml", "third.kml"]
        assert references[0].source == f"{three_entry_kmz}/sub/second.kml"

    def test_entry_acquire(self, three_entry_kmz: Path) -> None:
        document = ArchiveEntrySource(three_entry_kmz, "third.kml").acquire()
        assert document.namespace == "http://earth.google.com/kml/2.2"

    def test_missing_entry(self, three_entry_kmz: Path) -> None:
        with pytest.raises(DocumentNotFound):
            ArchiveEntrySource(three_entry_kmz, "absent.kml").acquire()

    def test_explore_broken_archive(self, broken_directory_kmz: Path) -> None:
        with pytest.raises(ArchiveCorrupt):
            explore_packaged(broken_directory_kmz)


class TestReferences:
    """Tests for target classification."""

    def test_existing_path_is_file(self) -> None:
        assert isinstance(make_reference(str(KML_DIR / "valid.kml")), FileSource)

    def test_url_target(self) -> None:
        reference = make_reference("https://example.com/data/doc.kmz")
        assert isinstance(reference, UrlSource)
        assert reference.source == "https://example.com/data/doc.kmz"

    def test_plain_missing_path_is_file(self) -> None:
        assert isinstance(make_reference("missing/doc.kml"), FileSource)

    @pytest.mark.parametrize(
        ("content_type", "url", "expected"),
        [
            ("application/vnd.google-earth.kmz", "http://h/doc", True),
            ("application/octet-stream", "http://h/doc.KMZ", True),
            ("application/vnd.google-earth.kml+xml", "http://h/doc.kml", False),
            (None, "http://h/doc.kmz?x=1", True),
        ],
    )
    def test_is_packaged(self, content_type: str | None, url: str, expected: bool) -> None:
        assert is_packaged(content_type, url) is expected

    def test_unreachable_url(self) -> None:
        with pytest.raises(DocumentNotFound):
            UrlSource("http://127.0.0.1:9/absent.kml").acquire()


class TestUrlSource:
    """Tests for documents fetched over HTTP."""

    def test_plain_document(self, http_root: Path, http_server: str) -> None:
        shutil.copy(KML_DIR / "valid.kml", http_root / "valid.kml")

        document = UrlSource(f"{http_server}/valid.kml").acquire()

        assert document.namespace == KML_22
        assert document.root_name == "kml"

    def test_packaged_document(self, valid_kmz: Path, http_root: Path, http_server: str) -> None:
        shutil.copy(valid_kmz, http_root / "valid.kmz")

        document = UrlSource(f"{http_server}/valid.kmz").acquire()

        assert document.namespace == KML_22

    def test_http_error_status(self, http_server: str) -> None:
        with pytest.raises(DocumentNotFound, match="HTTP 404"):
            UrlSource(f"{http_server}/absent.kml").acquire()

    def test_connection_closed_without_response(self, dropping_server: str) -> None:
        """Test that a server hanging up mid-request is a failed acquisition."""
        with pytest.raises(AcquisitionError):
            UrlSource(f"{dropping_server}/doc.kml").acquire()

    def test_broken_transfer(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def broken_get(url: str, **kwargs: object) -> requests.Response:
            raise requests.exceptions.ChunkedEncodingError("connection broken")

        monkeypatch.setattr(requests, "get", broken_get)

        with pytest.raises(DocumentIOError, match="connection broken"):
            UrlSource("http://example.com/doc.kml").acquire()
