"""XML Schema validation backed by lxml.

The validator honors the ``xsi:schemaLocation`` and
``xsi:noNamespaceSchemaLocation`` hints written into the document: every hint
is imported into one wrapper schema, compiled once per distinct hint set.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import requests
from lxml import etree

from xml_validate.errors import ErrorKind, Finding, Severity
from xml_validate.namespaces import (
    XSD,
    XSI_NO_NAMESPACE_SCHEMA_LOCATION,
    XSI_SCHEMA_LOCATION,
)

if TYPE_CHECKING:
    from xml_validate.session import FindingSink

logger = logging.getLogger(__name__)

# lxml reports documents parsed from memory under this name
STRING_SOURCE = "<string>"

SCHEMA_FETCH_TIMEOUT = 60

SEVERITY_BY_LEVEL = {
    "WARNING": Severity.WARNING,
    "ERROR": Severity.ERROR,
    "FATAL": Severity.FATAL,
}


class SchemaValidator(ABC):
    """Capability that checks XML text and reports findings to a sink."""

    @abstractmethod
    def validate(self, text: str, sink: FindingSink) -> None:
        """Validate the text, reporting every finding to ``sink``.

        A document that is not well-formed yields fatal findings and no schema
        check.
        """


@dataclass(frozen=True)
class SchemaHints:
    """Schema locations requested by a document."""

    pairs: tuple[tuple[str, str], ...] = ()
    no_namespace: str | None = None

    @classmethod
    def collect(cls, root: etree._Element) -> SchemaHints:
        """Gather schema location hints from every element.

        The first location given for a namespace wins.
        """
        locations: dict[str, str] = {}
        no_namespace = None
        for element in root.iter(etree.Element):
            value = element.get(XSI_SCHEMA_LOCATION)
            if value:
                tokens = value.split()
                for namespace, location in zip(tokens[::2], tokens[1::2]):
                    locations.setdefault(namespace, location)
            if no_namespace is None:
                no_namespace = element.get(XSI_NO_NAMESPACE_SCHEMA_LOCATION)
        return cls(pairs=tuple(locations.items()), no_namespace=no_namespace)

    def __bool__(self) -> bool:
        return bool(self.pairs) or self.no_namespace is not None

    def to_wrapper(self) -> bytes:
        """Build a schema document importing every hinted schema."""
        wrapper = etree.Element(f"{{{XSD}}}schema", nsmap={"xs": XSD})
        for namespace, location in self.pairs:
            etree.SubElement(
                wrapper, f"{{{XSD}}}import", namespace=namespace, schemaLocation=location
            )
        if self.no_namespace is not None:
            etree.SubElement(wrapper, f"{{{XSD}}}include", schemaLocation=self.no_namespace)
        return etree.tostring(wrapper)


class RemoteSchemaResolver(etree.Resolver):
    """Fetches schema documents over HTTP(S)."""

    def resolve(self, system_url, public_id, context):  # type: ignore[override]
        if not system_url or not system_url.startswith(("http:", "https:")):
            return None
        try:
            response = requests.get(system_url, timeout=SCHEMA_FETCH_TIMEOUT)
            response.raise_for_status()
            data = response.content
        except requests.RequestException as exc:
            # libxml2 reports the unresolved location as a schema error
            logger.warning("Cannot fetch schema %s: %s", system_url, exc)
            return None
        return self.resolve_string(data, context, base_url=system_url)


@dataclass
class _CompiledSchema:
    schema: etree.XMLSchema | None
    errors: list[Finding] = field(default_factory=list)


class LxmlSchemaValidator(SchemaValidator):
    """Validates serialized documents with libxml2 through lxml."""

    def __init__(self, base_dir: str | Path | None = None):
        """Initialize the validator.

        Args:
            base_dir: Directory relative schema locations are resolved against.
                      Defaults to the current directory.
        """
        self._base_url = Path(base_dir or ".").resolve().as_uri() + "/"
        self._cache: dict[SchemaHints, _CompiledSchema] = {}

    def _schema_parser(self) -> etree.XMLParser:
        parser = etree.XMLParser(no_network=True)
        parser.resolvers.add(RemoteSchemaResolver())
        return parser

    def compile(self, hints: SchemaHints) -> _CompiledSchema:
        """Compile (or fetch from cache) the schema for a hint set."""
        compiled = self._cache.get(hints)
        if compiled is None:
            compiled = self._compile(hints)
            self._cache[hints] = compiled
        return compiled

    def _compile(self, hints: SchemaHints) -> _CompiledSchema:
        target = hints.no_namespace or (hints.pairs[0][1] if hints.pairs else None)
        try:
            wrapper = etree.fromstring(
                hints.to_wrapper(), self._schema_parser(), base_url=self._base_url
            )
            return _CompiledSchema(etree.XMLSchema(wrapper))
        except etree.XMLSchemaParseError as exc:
            entries = list(exc.error_log)
            errors = [
                Finding(
                    severity=SEVERITY_BY_LEVEL.get(entry.level_name, Severity.ERROR),
                    message=entry.message,
                    line=entry.line,
                    column=entry.column,
                    rule=entry.type_name,
                    system_id=_system_id(entry.filename) or target,
                )
                for entry in entries
            ]
            if not errors:
                errors.append(Finding(Severity.ERROR, str(exc), system_id=target))
            return _CompiledSchema(None, errors)

    def validate(self, text: str, sink: FindingSink) -> None:
        parser = etree.XMLParser(no_network=True, load_dtd=False)
        try:
            root = etree.fromstring(text, parser)
        except etree.XMLSyntaxError as exc:
            entries = list(exc.error_log)
            for entry in entries:
                sink.on_fatal(
                    Finding(
                        severity=Severity.FATAL,
                        kind=ErrorKind.NOT_WELL_FORMED,
                        message=entry.message,
                        line=entry.line,
                        column=entry.column,
                        rule=entry.type_name,
                    )
                )
            if not entries:
                line, column = exc.position
                sink.on_fatal(
                    Finding(Severity.FATAL, exc.msg, ErrorKind.NOT_WELL_FORMED, line, column)
                )
            return

        hints = SchemaHints.collect(root)
        if not hints:
            sink.on_error(Finding(Severity.ERROR, "No schema location hint found in document"))
            return

        compiled = self.compile(hints)
        for finding in compiled.errors:
            _dispatch(sink, finding)
        if compiled.schema is None:
            return

        compiled.schema.validate(root)
        for entry in compiled.schema.error_log:
            _dispatch(
                sink,
                Finding(
                    severity=SEVERITY_BY_LEVEL.get(entry.level_name, Severity.ERROR),
                    message=entry.message,
                    line=entry.line,
                    column=entry.column,
                    rule=entry.type_name,
                    system_id=_system_id(entry.filename),
                ),
            )


def _system_id(filename: str | None) -> str | None:
    if not filename or filename == STRING_SOURCE:
        return None
    return filename


def _dispatch(sink: FindingSink, finding: Finding) -> None:
    if finding.severity == Severity.WARNING:
        sink.on_warning(finding)
    elif finding.severity == Severity.FATAL:
        sink.on_fatal(finding)
    else:
        sink.on_error(finding)
