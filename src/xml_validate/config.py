"""Run configuration and the namespace-to-schema map."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from xml_validate.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)

HOME_TOKEN = "${XV_HOME}"
REMOTE_PREFIXES = ("http:", "https:")


class ResolutionMode(Enum):
    """How the schema for a document is chosen."""

    MAP = "map"  # root namespace looked up in a namespace map
    FIXED = "fixed"  # every document forced into one namespace + schema
    NO_NAMESPACE = "no_namespace"  # noNamespaceSchemaLocation on every document


def resolve_schema_location(value: str) -> str:
    """Return an absolute file URI for an existing local schema, else the value."""
    if value.startswith(REMOTE_PREFIXES) or value.startswith("file:"):
        return value
    path = Path(value)
    if path.exists():
        return path.resolve().as_uri()
    return value


class NamespaceMap:
    """Mapping from namespace URI to schema location.

    Keys are compared literally, so ``http://a/`` and ``http://a`` are distinct.
    """

    def __init__(self, entries: dict[str, str] | None = None):
        self._entries: dict[str, str] = dict(entries or {})

    @classmethod
    def from_file(cls, path: str | Path, home_dir: str | Path | None = None) -> NamespaceMap:
        """Load a namespace map file.

        Each non-blank line not starting with ``#`` has the form
        ``namespace-uri = schema-location``. The first ``=`` is the delimiter.

        Args:
            path: Map file to read (UTF-8).
            home_dir: Directory substituted for a leading ``${XV_HOME}`` token.
                Defaults to the current directory.

        Raises:
            ConfigurationError: If the file cannot be read.
        """
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigurationError(f"Cannot read namespace map {path}: {exc}") from exc

        home = str(Path(home_dir or ".").resolve())
        ns_map = cls()
        for line in text.splitlines():
            if not line or line.startswith("#"):
                continue
            namespace, sep, location = line.partition("=")
            namespace = namespace.strip()
            if not sep or not namespace:
                continue
            location = location.strip()
            if location.startswith(HOME_TOKEN):
                location = home + location[len(HOME_TOKEN):]
            if not location.startswith(REMOTE_PREFIXES):
                local = Path(location)
                if local.exists():
                    location = local.resolve().as_uri()
                else:
                    logger.info("%s does not exist locally", location)
            logger.debug("Set %s -> %s", namespace, location)
            ns_map.add(namespace, location)
        return ns_map

    def add(self, namespace: str, location: str) -> None:
        """Add or override a single namespace mapping."""
        self._entries[namespace] = location

    def get(self, namespace: str) -> str | None:
        return self._entries.get(namespace)

    def __contains__(self, namespace: object) -> bool:
        return namespace in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"NamespaceMap({self._entries!r})"


@dataclass
class ValidateConfig:
    """Configuration threaded through every component of a run."""

    schema_map: NamespaceMap | None = None
    schema_location: str | None = None  # target schema for fixed/no-namespace modes
    namespace: str | None = None  # target namespace for fixed mode
    kml_mode: bool = False
    kmz_mode: bool = False
    summary: bool = False
    verbose: bool = False
    debug: bool = False
    dump_level: int = 0  # 0 none, 1 on first finding, 2 every document
    dump_limit: int = 0  # 0 means unlimited
    extensions: set[str] = field(default_factory=lambda: {"xml"})

    @property
    def mode(self) -> ResolutionMode:
        """The resolution mode implied by the configured schema sources.

        Raises:
            ConfigurationError: If neither a map nor a schema is configured.
        """
        if self.schema_location is not None:
            if self.namespace:
                return ResolutionMode.FIXED
            return ResolutionMode.NO_NAMESPACE
        if self.schema_map is not None:
            return ResolutionMode.MAP
        raise ConfigurationError("Must specify a namespace map or a schema")

    def check(self) -> None:
        """Validate the configuration before any document is processed."""
        mode = self.mode
        if mode != ResolutionMode.MAP and not self.schema_location:
            raise ConfigurationError("Schema location must not be empty")
        if mode != ResolutionMode.MAP and self.schema_map is not None:
            logger.warning("Schema %s overrides the namespace map", self.schema_location)
        if self.dump_level not in (0, 1, 2):
            raise ConfigurationError(f"Invalid dump level: {self.dump_level}")
        if self.dump_limit < 0:
            raise ConfigurationError(f"Invalid dump limit: {self.dump_limit}")

    def accepts(self, path: Path) -> bool:
        """Check a file name against the configured extensions."""
        suffix = path.suffix.lower().lstrip(".")
        return bool(suffix) and suffix in {ext.lower() for ext in self.extensions}
