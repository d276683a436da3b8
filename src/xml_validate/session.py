"""Per-document validation session.

A session serializes a resolved document, hands the text to the injected
schema validator and records what it reports in the document's Outcome.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from xml_validate.errors import Finding, Severity

if TYPE_CHECKING:
    from xml_validate.config import ValidateConfig
    from xml_validate.report import Reporter
    from xml_validate.schema import SchemaValidator
    from xml_validate.source import ParsedDocument

logger = logging.getLogger(__name__)

CONTEXT_WIDTH = 80


@dataclass
class Outcome:
    """Validation state of a single document."""

    source: str
    schema_namespace: str | None = None  # printed once before the first finding
    errors: int = 0
    warnings: int = 0
    stats: set[str] = field(default_factory=set)
    error_keys: list[str] = field(default_factory=list)  # grouped across documents
    findings: list[Finding] = field(default_factory=list)
    default_namespace: str | None = None
    printed: bool = False
    schema_printed: bool = False
    dumped: bool = False
    validated: bool = False
    xml_content: str | None = None

    @property
    def is_valid(self) -> bool:
        return self.validated and self.errors == 0

    def add_finding(self, finding: Finding) -> None:
        self.findings.append(finding)
        if finding.severity == Severity.WARNING:
            self.warnings += 1
        else:
            self.errors += 1

    def add_error_key(self, key: str) -> None:
        if key not in self.error_keys:
            self.error_keys.append(key)


class FindingSink(ABC):
    """Receives findings from a validator; must not raise for normal findings."""

    @abstractmethod
    def on_warning(self, finding: Finding) -> None: ...

    @abstractmethod
    def on_error(self, finding: Finding) -> None: ...

    @abstractmethod
    def on_fatal(self, finding: Finding) -> None: ...


class CollectingSink(FindingSink):
    """Keeps every finding in the order reported."""

    def __init__(self) -> None:
        self.findings: list[Finding] = []

    def on_warning(self, finding: Finding) -> None:
        self.findings.append(finding)

    def on_error(self, finding: Finding) -> None:
        self.findings.append(finding)

    def on_fatal(self, finding: Finding) -> None:
        self.findings.append(finding)


class SourceLines:
    """Line index over serialized text, used to show where a finding points."""

    def __init__(self, text: str):
        self._lines = text.splitlines()

    def context(self, line_number: int, column: int) -> str | None:
        """One trimmed line with the offending column marked by ``***``."""
        if line_number < 1 or line_number > len(self._lines):
            return None
        line = self._lines[line_number - 1]
        if not line:
            return None
        col = column - 1
        if 0 < col <= len(line):
            if col > CONTEXT_WIDTH:
                line = "..." + line[col - 50 : col] + "***" + line[col:]
            else:
                line = line[:col] + "***" + line[col:]
        line = line.strip()
        if len(line) > CONTEXT_WIDTH:
            line = line[: CONTEXT_WIDTH - 2] + "..."
        return f"{line_number}: {line}"


class ValidationSession:
    """Runs schema validation for resolved documents."""

    def __init__(
        self,
        validator: SchemaValidator,
        reporter: Reporter,
        config: ValidateConfig,
    ):
        self._validator = validator
        self._reporter = reporter
        self._config = config

    def validate(
        self, document: ParsedDocument, schema_target: str | None, outcome: Outcome
    ) -> Outcome:
        """Validate a document against its resolved schema.

        Args:
            document: Well-formed document, already namespace-resolved.
            schema_target: Schema chosen by the resolver; nothing is checked
                           when None.
            outcome: Outcome the findings are recorded in.

        Returns:
            The updated outcome.
        """
        if schema_target is None:
            return outcome

        text = document.serialize()
        outcome.xml_content = text
        if self._config.dump_level == 2:
            self._reporter.check(outcome)
            self._reporter.dump(outcome)

        logger.debug("validate %s against %s", document.source, schema_target)
        sink = CollectingSink()
        self._validator.validate(text, sink)
        outcome.validated = True

        lines = SourceLines(text)
        for finding in sink.findings:
            outcome.add_finding(finding)
            if self._config.summary:
                outcome.stats.add(finding.signature)
                outcome.add_error_key(finding.signature)
            else:
                self._report(outcome, finding, lines)
        return outcome

    def _report(self, outcome: Outcome, finding: Finding, lines: SourceLines) -> None:
        reporter = self._reporter
        reporter.check(outcome)
        if not outcome.schema_printed and outcome.schema_namespace is not None:
            reporter.print(outcome.schema_namespace)
            outcome.schema_printed = True

        location = f"Line: {finding.line}, column: {finding.column}"
        if finding.public_id is not None:
            location += f", publicId={finding.public_id}"
        if finding.system_id is not None:
            location += f", systemId={finding.system_id}"
        reporter.print(str(finding))
        reporter.print(location)

        # A finding tied to a system identifier points into the schema, not the document
        if finding.line != -1 and finding.system_id is None:
            context = lines.context(finding.line, finding.column)
            if context is not None:
                reporter.print(context)
