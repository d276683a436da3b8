"""XML Validate - schema validation for XML, KML and KMZ documents.

Validate documents against XML Schemas chosen by their root namespace, by a
fixed target schema, or by a no-namespace schema.

Example:
    from xml_validate import NamespaceMap, ValidateConfig, XmlValidator

    # Validate every .kml file below a directory using a namespace map
    config = ValidateConfig(
        schema_map=NamespaceMap.from_file("ns.map"),
        extensions={"kml", "kmz"},
    )
    validator = XmlValidator(config)
    stats = validator.run(["data/"])
    print(stats.errors, stats.valid, stats.documents)

    # Force every document into the KML 2.2 namespace
    config = ValidateConfig(
        schema_location="schemas/ogckml22.xsd",
        namespace="http://www.opengis.net/kml/2.2",
    )
"""

from xml_validate.aggregator import Aggregator, BatchStatistics
from xml_validate.config import NamespaceMap, ResolutionMode, ValidateConfig
from xml_validate.errors import (
    AcquisitionError,
    ArchiveCorrupt,
    ConfigurationError,
    DocumentIOError,
    DocumentNotFound,
    ErrorKind,
    Finding,
    MalformedDocument,
    Severity,
)
from xml_validate.package import KmzPackage
from xml_validate.resolver import NamespaceResolver, Skip, Validate
from xml_validate.schema import LxmlSchemaValidator, SchemaValidator
from xml_validate.session import FindingSink, Outcome, ValidationSession
from xml_validate.source import (
    ArchiveEntrySource,
    DocumentReference,
    FileSource,
    ParsedDocument,
    UrlSource,
    make_reference,
)
from xml_validate.validator import XmlValidator, validate_documents

__version__ = "0.1.0"

__all__ = [
    # Main API
    "XmlValidator",
    "validate_documents",
    "ValidateConfig",
    "NamespaceMap",
    "ResolutionMode",
    # Documents
    "DocumentReference",
    "FileSource",
    "UrlSource",
    "ArchiveEntrySource",
    "ParsedDocument",
    "KmzPackage",
    "make_reference",
    # Resolution and validation
    "NamespaceResolver",
    "Validate",
    "Skip",
    "SchemaValidator",
    "LxmlSchemaValidator",
    "ValidationSession",
    "FindingSink",
    "Outcome",
    "Aggregator",
    "BatchStatistics",
    # Findings and errors
    "Finding",
    "Severity",
    "ErrorKind",
    "AcquisitionError",
    "MalformedDocument",
    "ArchiveCorrupt",
    "DocumentNotFound",
    "DocumentIOError",
    "ConfigurationError",
]
