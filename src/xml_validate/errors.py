"""Finding types, error kinds and acquisition exceptions."""

from dataclasses import dataclass
from enum import Enum


class Severity(Enum):
    """Severity of a single validator finding."""

    WARNING = "WARN"
    ERROR = "ERROR"
    FATAL = "FATAL"


class ErrorKind(Enum):
    """Document-level failure categories."""

    NOT_WELL_FORMED = "not_well_formed"  # parse failure before any schema check
    SCHEMA_CONFORMANCE = "schema_conformance"
    ARCHIVE_CORRUPT = "archive_corrupt"
    NAMESPACE_UNREGISTERED = "namespace_unregistered"
    OUT_OF_MEMORY = "out_of_memory"
    IO_FAILURE = "io_failure"
    NOT_FOUND = "not_found"
    ZERO_LENGTH = "zero_length"


@dataclass
class Finding:
    """A warning, error or fatal report emitted while parsing or validating."""

    severity: Severity
    message: str
    kind: ErrorKind = ErrorKind.SCHEMA_CONFORMANCE
    line: int = -1
    column: int = -1
    rule: str | None = None  # validator rule identifier, e.g. SCHEMAV_CVC_PATTERN_VALID
    public_id: str | None = None
    system_id: str | None = None

    @property
    def signature(self) -> str:
        """Instance-independent form of the finding used for grouping.

        The rule identifier names the structural rule that was broken. When the
        validator supplies none, the part of the message before its first colon
        is used instead.
        """
        rule = self.rule
        if not rule:
            rule = self.message.split(":", 1)[0].strip()
        return f"{self.severity.value}: {rule}"

    def __str__(self) -> str:
        return f"{self.severity.value}: {self.message}"


class ConfigurationError(Exception):
    """Raised before any document is processed when the run cannot start."""


class AcquisitionError(Exception):
    """Raised when no document can be produced from a reference."""

    kind = ErrorKind.IO_FAILURE

    def __init__(self, message: str, source: str = ""):
        super().__init__(message)
        self.message = message
        self.source = source


class MalformedDocument(AcquisitionError):
    """The referenced content is not well-formed XML."""

    kind = ErrorKind.NOT_WELL_FORMED

    def __init__(self, message: str, source: str = "", line: int = -1, column: int = -1):
        super().__init__(message, source)
        self.line = line
        self.column = column


class ArchiveCorrupt(AcquisitionError):
    """The packaged container could not be opened by any recovery path."""

    kind = ErrorKind.ARCHIVE_CORRUPT


class DocumentNotFound(AcquisitionError):
    """The file, URL or archive entry does not exist or is unreachable."""

    kind = ErrorKind.NOT_FOUND


class DocumentIOError(AcquisitionError):
    """The file or network resource exists but could not be read."""

    kind = ErrorKind.IO_FAILURE
