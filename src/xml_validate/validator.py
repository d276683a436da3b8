"""Batch validator - entry point for validation runs."""

from __future__ import annotations

import gc
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from xml_validate.aggregator import NO_DEFAULT_NAMESPACE, Aggregator, BatchStatistics
from xml_validate.errors import AcquisitionError, DocumentIOError, MalformedDocument
from xml_validate.namespaces import KML_ROOT_ELEMENTS
from xml_validate.report import Reporter
from xml_validate.resolver import SKIP_UNREGISTERED, NamespaceResolver, Skip
from xml_validate.schema import LxmlSchemaValidator, SchemaValidator
from xml_validate.session import Outcome, ValidationSession
from xml_validate.source import (
    DocumentReference,
    FileSource,
    ParsedDocument,
    explore_packaged,
    make_reference,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from rich.console import Console

    from xml_validate.config import ValidateConfig

logger = logging.getLogger(__name__)

# Version-control metadata directories never descended into
VCS_DIRECTORIES = frozenset({".svn", ".git", ".hg", ".bzr", "CVS"})

ZERO_LENGTH_ERROR = "ERROR: zero length file"


class XmlValidator:
    """Validates XML, KML and KMZ documents against XML Schemas.

    Example:
        config = ValidateConfig(schema_map=NamespaceMap.from_file("ns.map"))
        validator = XmlValidator(config)
        validator.validate_target("data/")
        validator.report()
    """

    def __init__(
        self,
        config: ValidateConfig,
        schema_validator: SchemaValidator | None = None,
        console: Console | None = None,
    ):
        """Initialize the validator.

        Args:
            config: Run configuration.
            schema_validator: Validator capability; lxml/libxml2 by default.
            console: Console the report is written to.

        Raises:
            ConfigurationError: If no schema source is configured.
        """
        config.check()
        self._config = config
        self._reporter = Reporter(console, config.dump_level, config.dump_limit)
        self._resolver = NamespaceResolver(config)
        self._session = ValidationSession(
            schema_validator or LxmlSchemaValidator(), self._reporter, config
        )
        self._stats = BatchStatistics()
        self._aggregator = Aggregator(self._stats, self._reporter, config.summary)

    @property
    def config(self) -> ValidateConfig:
        return self._config

    @property
    def stats(self) -> BatchStatistics:
        """Statistics accumulated so far in this run."""
        return self._stats

    @property
    def all_valid(self) -> bool:
        stats = self._stats
        return stats.errors == 0 and stats.valid == stats.documents

    def run(self, targets: Iterable[str]) -> BatchStatistics:
        """Validate every target, then print the final report."""
        for target in targets:
            self.validate_target(target)
        self.report()
        return self._stats

    def report(self) -> None:
        self._aggregator.report()

    def validate_target(self, target: str) -> None:
        """Validate a file, directory or URL given on the command line."""
        path = Path(target)
        if path.exists():
            self.validate_path(path)
            return
        reference = make_reference(target)
        if isinstance(reference, FileSource):
            self._reporter.print(f"WARN: file/URL not found {target}")
            return
        self.validate_reference(reference)

    def validate_path(self, path: Path) -> None:
        """Validate a file, or every matching file below a directory."""
        if path.is_dir():
            logger.info("dir: %s", path)
            try:
                children = sorted(path.iterdir())
            except OSError as exc:
                self._reject_unreadable(path, exc)
                return
            for child in children:
                if child.is_dir():
                    if child.name not in VCS_DIRECTORIES:
                        self.validate_path(child)
                elif self._config.accepts(child):
                    self._validate_file(child)
            return
        self._validate_file(path)

    def _validate_file(self, path: Path) -> None:
        try:
            size = path.stat().st_size
        except OSError as exc:
            self._reject_unreadable(path, exc)
            return
        if size == 0:
            self._reject_empty(path)
            return
        reference = FileSource(path)
        self.validate_reference(reference)
        if self._config.kmz_mode and reference.is_packaged:
            self._explore(path)

    def _reject_empty(self, path: Path) -> None:
        # Never handed to the parser
        self._stats.errors += 1
        if self._config.summary:
            self._aggregator.add_status(ZERO_LENGTH_ERROR)
            self._aggregator.add_source_error(str(path), ZERO_LENGTH_ERROR)
        else:
            self._reporter.print(f"\nCheck: {path}")
            self._reporter.print(ZERO_LENGTH_ERROR)

    def _reject_unreadable(self, path: Path, exc: OSError) -> None:
        """Count a file or directory that cannot be listed or read."""
        error = DocumentIOError(f"Cannot read {path}: {exc.strerror or exc}", str(path))
        name = type(error).__name__
        self._stats.errors += 1
        logger.debug("%s: %s", path, exc, exc_info=self._config.debug)
        if self._config.summary:
            self._aggregator.add_status(f"ERROR: {name}")
            self._aggregator.add_source_error(
                str(path), f"ERROR: parse failed: {name}: {error.message}"
            )
        else:
            self._reporter.print(f"\nCheck: {path}")
            self._reporter.print(f"\tparse failed: {name}: {error.message}")

    def _explore(self, path: Path) -> None:
        """Validate every KML entry of a KMZ after the root document."""
        try:
            references = explore_packaged(path)
        except AcquisitionError as exc:
            self._reporter.print(f"\tparse failed: {exc}")
            return
        for reference in references:
            self.validate_reference(reference)

    def validate_reference(self, reference: DocumentReference) -> bool:
        """Acquire, resolve and validate one document.

        Failures are reported and counted; they never propagate.

        Returns:
            True if the document was validated without errors.
        """
        config = self._config
        reporter = self._reporter
        outcome = Outcome(source=reference.source)
        if config.verbose:
            reporter.check(outcome)

        try:
            document = reference.acquire()
            self._record_warnings(outcome, document)
            if config.summary:
                self._record_root(outcome, document)

            decision = self._resolver.resolve(document)
            if isinstance(decision, Skip):
                self._report_skip(outcome, decision)
                return False

            outcome.schema_namespace = decision.namespace
            self._session.validate(document, decision.schema_target, outcome)
            if outcome.is_valid and config.verbose:
                reporter.print("\t *OK*")
            return outcome.is_valid
        except MemoryError as exc:
            reporter.check(outcome)
            reporter.print(f"\tparse failed: {exc!r}")
            outcome.errors += 1
            gc.collect()
        except AcquisitionError as exc:
            self._report_failure(outcome, exc)
        finally:
            self._aggregator.complete(outcome)
        return False

    def _record_warnings(self, outcome: Outcome, document: ParsedDocument) -> None:
        for message in document.warnings:
            self._reporter.check(outcome)
            self._reporter.print(f"WARN: {message}")
            outcome.warnings += 1
            outcome.stats.add(f"WARN: {message}")

    def _record_root(self, outcome: Outcome, document: ParsedDocument) -> None:
        """Record root element and namespace usage for the summary."""
        reporter = self._reporter
        kml_mode = self._config.kml_mode
        name = document.root_name
        outcome.stats.add(f"root element={name}")
        if kml_mode and name != "kml" and name not in KML_ROOT_ELEMENTS:
            reporter.check(outcome)
            reporter.print(f"non-kml root element: {name}")
            outcome.stats.add("non-kml root element")

        namespace = document.namespace
        if not namespace:
            reporter.check(outcome)
            reporter.print(NO_DEFAULT_NAMESPACE)
            outcome.stats.add(f"xmlns={NO_DEFAULT_NAMESPACE}")
            return
        outcome.stats.add(f"xmlns={namespace}")
        outcome.default_namespace = namespace
        if kml_mode and "/kml" not in namespace:
            reporter.check(outcome)
            reporter.print(f"non-kml root namespace: {namespace}")

    def _report_skip(self, outcome: Outcome, decision: Skip) -> None:
        if decision.reason == SKIP_UNREGISTERED:
            self._reporter.check(outcome)
            self._reporter.print(f"INFO: {decision.reason}: {decision.namespace}")
            if self._config.summary:
                outcome.stats.add(f"INFO: {decision.reason}")
        elif not self._config.summary:
            self._reporter.check(outcome)
            self._reporter.print(f"INFO: {decision.reason}")

    def _report_failure(self, outcome: Outcome, exc: AcquisitionError) -> None:
        name = type(exc).__name__
        outcome.errors += 1
        logger.debug("%s: %s", outcome.source, exc, exc_info=self._config.debug)
        if self._config.summary:
            outcome.stats.add(f"ERROR: {name}")
            outcome.add_error_key(f"ERROR: parse failed: {name}: {exc.message}")
            return
        self._reporter.check(outcome)
        if isinstance(exc, MalformedDocument):
            self._reporter.print(
                f"\tparse failed: {name}: {exc.message} "
                f"at line: {exc.line} column: {exc.column}"
            )
        else:
            self._reporter.print(f"\tparse failed: {name}: {exc.message}")


def validate_documents(
    targets: Iterable[str],
    config: ValidateConfig,
    console: Console | None = None,
) -> BatchStatistics:
    """Validate files, directories or URLs and print the report.

    Args:
        targets: Files, directories or URLs.
        config: Run configuration.
        console: Console the report is written to.

    Returns:
        The batch statistics of the run.
    """
    return XmlValidator(config, console=console).run(targets)
