"""Tests for the namespace map and run configuration."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from tests.fixture_loader import FIXTURES_DIR, NS_MAP, SCHEMAS_DIR
from xml_validate.config import (
    NamespaceMap,
    ResolutionMode,
    ValidateConfig,
    resolve_schema_location,
)
from xml_validate.errors import ConfigurationError
from xml_validate.namespaces import KML_20, KML_22


class TestNamespaceMapFile:
    """Tests for loading namespace map files."""

    def test_home_token_expanded_to_file_uri(self) -> None:
        """Test that ${XV_HOME} locations become absolute file URIs."""
        schema_map = NamespaceMap.from_file(NS_MAP, FIXTURES_DIR)

        assert schema_map.get(KML_22) == (SCHEMAS_DIR / "kml22.xsd").resolve().as_uri()
        assert schema_map.get(KML_20) == (SCHEMAS_DIR / "kml20.xsd").resolve().as_uri()

    def test_home_defaults_to_working_directory(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that ${XV_HOME} is expanded against the current directory when unset."""
        monkeypatch.chdir(FIXTURES_DIR)

        schema_map = NamespaceMap.from_file(NS_MAP)

        assert schema_map.get(KML_22) == (SCHEMAS_DIR / "kml22.xsd").resolve().as_uri()
        assert all("${XV_HOME}" not in schema_map.get(ns) for ns in schema_map)

    def test_comments_and_blank_lines_ignored(self) -> None:
        schema_map = NamespaceMap.from_file(NS_MAP, FIXTURES_DIR)

        assert len(schema_map) == 3
        assert all(not ns.startswith("#") for ns in schema_map)

    def test_remote_location_left_untouched(self) -> None:
        schema_map = NamespaceMap.from_file(NS_MAP, FIXTURES_DIR)

        assert schema_map.get("http://example.com/remote") == (
            "http://example.com/schemas/remote.xsd"
        )

    def test_missing_local_schema_kept_as_is(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that a location missing on disk is kept and logged."""
        map_file = tmp_path / "ns.map"
        map_file.write_text("urn:a = missing/a.xsd\n", encoding="utf-8")

        with caplog.at_level(logging.INFO, logger="xml_validate.config"):
            schema_map = NamespaceMap.from_file(map_file)

        assert schema_map.get("urn:a") == "missing/a.xsd"
        assert "does not exist locally" in caplog.text

    def test_first_equals_is_delimiter(self, tmp_path: Path) -> None:
        map_file = tmp_path / "ns.map"
        map_file.write_text("urn:a = http://host/get?name=a.xsd\n", encoding="utf-8")

        schema_map = NamespaceMap.from_file(map_file)

        assert schema_map.get("urn:a") == "http://host/get?name=a.xsd"

    def test_keys_compared_literally(self, tmp_path: Path) -> None:
        """Test that a trailing slash makes a different namespace."""
        map_file = tmp_path / "ns.map"
        map_file.write_text("http://a/ = http://a/a.xsd\n", encoding="utf-8")

        schema_map = NamespaceMap.from_file(map_file)

        assert "http://a/" in schema_map
        assert "http://a" not in schema_map

    def test_unreadable_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError):
            NamespaceMap.from_file(tmp_path / "absent.map")

    def test_add_overrides_entry(self) -> None:
        schema_map = NamespaceMap.from_file(NS_MAP, FIXTURES_DIR)
        schema_map.add(KML_22, "http://example.com/kml22.xsd")

        assert schema_map.get(KML_22) == "http://example.com/kml22.xsd"


class TestResolveSchemaLocation:
    """Tests for schema location normalization."""

    def test_existing_file_becomes_uri(self) -> None:
        path = SCHEMAS_DIR / "event.xsd"
        assert resolve_schema_location(str(path)) == path.resolve().as_uri()

    def test_url_unchanged(self) -> None:
        url = "https://schemas.opengis.net/kml/2.2.0/ogckml22.xsd"
        assert resolve_schema_location(url) == url

    def test_missing_file_unchanged(self) -> None:
        assert resolve_schema_location("nowhere/schema.xsd") == "nowhere/schema.xsd"


class TestValidateConfig:
    """Tests for resolution mode selection and option checks."""

    def test_map_mode(self) -> None:
        config = ValidateConfig(schema_map=NamespaceMap())
        assert config.mode == ResolutionMode.MAP

    def test_fixed_mode_requires_namespace(self) -> None:
        config = ValidateConfig(schema_location="kml22.xsd", namespace=KML_22)
        assert config.mode == ResolutionMode.FIXED

    def test_no_namespace_mode(self) -> None:
        config = ValidateConfig(schema_location="event.xsd")
        assert config.mode == ResolutionMode.NO_NAMESPACE

    def test_schema_wins_over_map(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test that a schema location overrides a namespace map."""
        config = ValidateConfig(schema_map=NamespaceMap(), schema_location="event.xsd")

        with caplog.at_level(logging.WARNING, logger="xml_validate.config"):
            config.check()

        assert config.mode == ResolutionMode.NO_NAMESPACE
        assert "overrides the namespace map" in caplog.text

    def test_no_schema_source_is_fatal(self) -> None:
        with pytest.raises(ConfigurationError, match="namespace map or a schema"):
            ValidateConfig().check()

    def test_empty_schema_location_is_fatal(self) -> None:
        with pytest.raises(ConfigurationError, match="must not be empty"):
            ValidateConfig(schema_location="", namespace=KML_22).check()

    @pytest.mark.parametrize("level", [-1, 3])
    def test_invalid_dump_level(self, level: int) -> None:
        config = ValidateConfig(schema_map=NamespaceMap(), dump_level=level)
        with pytest.raises(ConfigurationError):
            config.check()

    def test_extension_filter_case_insensitive(self) -> None:
        config = ValidateConfig(extensions={"kml", "KMZ"})

        assert config.accepts(Path("a/b.KML"))
        assert config.accepts(Path("a/b.kmz"))
        assert not config.accepts(Path("a/b.xml"))
        assert not config.accepts(Path("a/README"))
