"""Namespace resolution: choose the schema for a document and rewrite it to match.

Three modes are supported, selected by the run configuration:

- map: the root namespace is looked up in a namespace map, and every other
  mapped namespace used in the document is added to ``xsi:schemaLocation``.
- fixed: every document is moved into one target namespace and validated
  against one schema (e.g. KML 2.1 instances against the KML 2.2 schema).
- no-namespace: ``xsi:noNamespaceSchemaLocation`` is set on every document.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

from lxml import etree

from xml_validate.config import NamespaceMap, ResolutionMode, ValidateConfig
from xml_validate.errors import ConfigurationError
from xml_validate.namespaces import (
    KML_20,
    KML_ROOT_ELEMENTS,
    NAMESPACE_MIGRATIONS,
    XSI,
    XSI_NO_NAMESPACE_SCHEMA_LOCATION,
    XSI_SCHEMA_LOCATION,
)

if TYPE_CHECKING:
    from xml_validate.source import ParsedDocument

logger = logging.getLogger(__name__)

SKIP_NO_NAMESPACE = "no root namespace"
SKIP_UNREGISTERED = "namespace not registered"


@dataclass(frozen=True)
class Validate:
    """Validate the document against ``schema_target``."""

    schema_target: str
    namespace: str | None = None  # namespace the target schema describes


@dataclass(frozen=True)
class Skip:
    """Resolution declined; the document is not validated."""

    reason: str
    namespace: str | None = None


Decision = Union[Validate, Skip]


def change_namespace(root: etree._Element, namespace: str) -> None:
    """Move every element of the subtree into ``namespace``.

    This also recolors descendants that use a different namespace on purpose,
    such as extension elements.
    """
    for element in root.iter(etree.Element):
        element.tag = etree.QName(namespace, etree.QName(element).localname).text
    etree.cleanup_namespaces(root)


def migrate_namespace(namespace: str | None) -> str | None:
    """Map a deprecated namespace to its current standard namespace."""
    if namespace is None:
        return None
    return NAMESPACE_MIGRATIONS.get(namespace, namespace)


def declared_namespaces(element: etree._Element) -> list[str]:
    """Namespace URIs declared on the element itself, in declaration order."""
    parent = element.getparent()
    inherited = parent.nsmap if parent is not None else {}
    return [
        uri
        for prefix, uri in element.nsmap.items()
        if inherited.get(prefix) != uri
    ]


def format_schema_location(pairs: list[tuple[str, str]]) -> str:
    """Format namespace/location pairs as an ``xsi:schemaLocation`` value."""
    return " ".join(f"{namespace} {location}" for namespace, location in pairs)


class NamespaceResolver:
    """Decides which schema applies to a document and rewrites it in place."""

    def __init__(self, config: ValidateConfig):
        self._config = config

    def resolve(self, document: ParsedDocument) -> Decision:
        """Resolve the target schema for a document.

        Mutates the document's namespaces and schema location attributes when
        the result is ``Validate``.
        """
        mode = self._config.mode
        if mode == ResolutionMode.MAP:
            return self._resolve_map(document)
        if mode == ResolutionMode.FIXED:
            return self._resolve_fixed(document)
        return self._resolve_no_namespace(document)

    def _resolve_map(self, document: ParsedDocument) -> Decision:
        schema_map = self._config.schema_map
        if schema_map is None:
            raise ConfigurationError("Map resolution requires a namespace map")
        root = document.root
        namespace = document.namespace

        if not namespace:
            logger.info("%s: no root namespace", document.source)
            name = document.root_name
            if name == "kml" or (self._config.kml_mode and name in KML_ROOT_ELEMENTS):
                namespace = KML_20
                change_namespace(root, namespace)
            else:
                return Skip(SKIP_NO_NAMESPACE)
        else:
            migrated = migrate_namespace(namespace)
            if migrated != namespace:
                logger.info("%s: migrate namespace %s -> %s", document.source, namespace, migrated)
                namespace = migrated
                change_namespace(root, namespace)

        location = schema_map.get(namespace)
        if location is None:
            return Skip(SKIP_UNREGISTERED, namespace)

        pairs = [(namespace, location)]
        covered = [namespace]
        for uri in declared_namespaces(root):
            # An empty URI is a legal reference but never a namespace name
            if not uri or uri in covered:
                continue
            extra = schema_map.get(uri)
            if extra is not None:
                logger.debug("additional namespace %s -> %s", uri, extra)
                pairs.append((uri, extra))
                covered.append(uri)
            elif uri != XSI:
                logger.info("Cannot find location of schema: %s", uri)

        root.set(XSI_SCHEMA_LOCATION, format_schema_location(pairs))
        for child in root.iterchildren(etree.Element):
            self._assign_locations(child, schema_map, covered)

        return Validate(location, namespace)

    def _assign_locations(
        self, element: etree._Element, schema_map: NamespaceMap, covered: list[str]
    ) -> None:
        """Add schema locations for namespaces first used below the root."""
        local = list(covered)
        pairs: list[tuple[str, str]] = []

        candidates = [etree.QName(element).namespace, *declared_namespaces(element)]
        for uri in candidates:
            if not uri or uri in local:
                continue
            location = schema_map.get(uri)
            if location is not None:
                logger.debug("assign namespace %s -> %s", uri, location)
                pairs.append((uri, location))
                local.append(uri)

        if pairs:
            element.set(XSI_SCHEMA_LOCATION, format_schema_location(pairs))
        for child in element.iterchildren(etree.Element):
            self._assign_locations(child, schema_map, local)

    def _resolve_fixed(self, document: ParsedDocument) -> Decision:
        namespace = self._config.namespace
        location = self._config.schema_location
        if not namespace or not location:
            raise ConfigurationError("Fixed resolution requires a namespace and a schema")
        if document.namespace == namespace:
            logger.debug("same target namespace: %s", namespace)
        else:
            logger.info(
                "change namespace: %s -> %s", document.namespace or "<none>", namespace
            )
            change_namespace(document.root, namespace)
        document.root.set(XSI_SCHEMA_LOCATION, format_schema_location([(namespace, location)]))
        return Validate(location, namespace)

    def _resolve_no_namespace(self, document: ParsedDocument) -> Decision:
        location = self._config.schema_location
        if not location:
            raise ConfigurationError("No-namespace resolution requires a schema")
        detached = document.root.attrib.pop(XSI_SCHEMA_LOCATION, None)
        if detached is not None:
            logger.info("detach schemaLocation: %s", detached)
        document.root.set(XSI_NO_NAMESPACE_SCHEMA_LOCATION, location)
        return Validate(location)
