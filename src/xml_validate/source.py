"""Document references: local files, URLs and entries inside KMZ containers.

Every reference builds its parsed document at most once and caches it.
"""

from __future__ import annotations

import copy
import io
import logging
import zipfile
import zlib
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO
from urllib.parse import urlparse

import requests
from lxml import etree

from xml_validate.errors import (
    AcquisitionError,
    ArchiveCorrupt,
    DocumentIOError,
    DocumentNotFound,
    MalformedDocument,
)
from xml_validate.namespaces import KMZ_CONTENT_TYPE, KMZ_SUFFIX, ZIP_MAGIC
from xml_validate.package import KmzPackage, first_stream_entry

logger = logging.getLogger(__name__)

# Seconds to wait for a server to answer or send more data
REQUEST_TIMEOUT = 60

# Errors raised while decompressing an archive entry
ARCHIVE_READ_ERRORS = (zipfile.BadZipFile, zlib.error, EOFError)


@dataclass
class ParsedDocument:
    """An in-memory XML tree with exactly one root element and no DOCTYPE."""

    root: etree._Element
    source: str
    warnings: list[str] = field(default_factory=list)

    @classmethod
    def from_tree(cls, tree: etree._ElementTree, source: str) -> ParsedDocument:
        """Wrap a parsed tree, dropping any DOCTYPE declaration.

        DTD validation is never performed, so the internal subset is not
        carried into the serialized document.
        """
        root = tree.getroot()
        if tree.docinfo.doctype:
            root = copy.deepcopy(root)
        return cls(root=root, source=source)

    @property
    def namespace(self) -> str | None:
        """Namespace URI of the root element, None when it has none."""
        return etree.QName(self.root).namespace

    @property
    def root_name(self) -> str:
        return etree.QName(self.root).localname

    def serialize(self) -> str:
        """Serialize the (possibly rewritten) document as indented XML text."""
        return etree.tostring(self.root, encoding="unicode", pretty_print=True)


def make_parser() -> etree.XMLParser:
    """Create the non-validating parser used to acquire documents."""
    return etree.XMLParser(remove_blank_text=True, load_dtd=False, no_network=True)


def parse_xml(
    content: str | IO[bytes], source: str, base_url: str | None = None
) -> ParsedDocument:
    """Parse a file name or binary stream into a ParsedDocument.

    Raises:
        MalformedDocument: If the content is not well-formed.
    """
    try:
        tree = etree.parse(content, make_parser(), base_url=base_url)
    except etree.XMLSyntaxError as exc:
        line, column = exc.position
        raise MalformedDocument(exc.msg, source, line, column) from exc
    return ParsedDocument.from_tree(tree, source)


def is_packaged(content_type: str | None, url: str) -> bool:
    """Decide whether a network resource is a packaged container.

    Either the transport content type or the final path extension is enough.
    """
    if content_type == KMZ_CONTENT_TYPE:
        return True
    return urlparse(url).path.lower().endswith(KMZ_SUFFIX)


class DocumentReference(ABC):
    """Identifies where a document comes from and builds it on demand."""

    def __init__(self) -> None:
        self._document: ParsedDocument | None = None

    @property
    @abstractmethod
    def source(self) -> str:
        """Identifier used in reports."""

    @property
    def is_packaged(self) -> bool:
        return False

    def acquire(self) -> ParsedDocument:
        """Get the parsed document, building it on first use.

        Raises:
            AcquisitionError: If no well-formed document can be produced.
        """
        if self._document is None:
            self._document = self._build()
        return self._document

    @abstractmethod
    def _build(self) -> ParsedDocument:
        """Build the parsed document."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.source!r})"


class FileSource(DocumentReference):
    """A document on the local file system, plain XML or KMZ."""

    def __init__(self, path: str | Path):
        super().__init__()
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def source(self) -> str:
        return str(self._path)

    @property
    def is_packaged(self) -> bool:
        # A KMZ named .kml fails to parse; the extension decides
        return self._path.name.lower().endswith(KMZ_SUFFIX)

    @property
    def _base_url(self) -> str:
        return self._path.resolve().as_uri()

    def _build(self) -> ParsedDocument:
        if not self._path.is_file():
            raise DocumentNotFound(f"File not found: {self._path}", self.source)
        if not self.is_packaged:
            try:
                return parse_xml(str(self._path), self.source)
            except OSError as exc:
                raise DocumentIOError(f"Cannot read {self._path}: {exc}", self.source) from exc
        return self._build_packaged()

    def _build_packaged(self) -> ParsedDocument:
        # Attempt 1: open through the central directory
        package = KmzPackage(self._path)
        try:
            package.open()
        except ArchiveCorrupt as exc:
            return self._recover(exc)

        try:
            # Only the first KML entry is taken, regardless of name or folder
            name = package.first_inner_document()
            if name is None:
                raise MalformedDocument("no inner document found", self.source)
            with package.open_entry(name) as entry:
                return parse_xml(entry, self.source, base_url=self._base_url)
        except ARCHIVE_READ_ERRORS as exc:
            raise ArchiveCorrupt(f"Cannot read KMZ entry: {exc}", self.source) from exc
        finally:
            package.close()

    def _recover(self, open_error: ArchiveCorrupt) -> ParsedDocument:
        document = self._read_stream(open_error)
        if document is not None:
            return document
        return self._read_mislabeled(open_error)

    def _read_stream(self, open_error: ArchiveCorrupt) -> ParsedDocument | None:
        """Attempt 2: walk local file headers sequentially."""
        try:
            with self._path.open("rb") as stream:
                entry = first_stream_entry(stream)
                if entry is None:
                    return None
                document = parse_xml(entry, self.source, base_url=self._base_url)
        except (OSError, *ARCHIVE_READ_ERRORS) as exc:
            logger.debug("Streaming read of %s failed: %s", self._path, exc)
            return None

        document.warnings.append(
            f"ZIP directory unreadable [retry using stream]: {open_error.message}"
        )
        return document

    def _read_mislabeled(self, open_error: ArchiveCorrupt) -> ParsedDocument:
        """Attempt 3: a .kmz without the ZIP signature may be plain KML."""
        try:
            with self._path.open("rb") as stream:
                magic = stream.read(len(ZIP_MAGIC))
        except OSError as exc:
            raise DocumentIOError(f"Cannot read {self._path}: {exc}", self.source) from exc

        if magic == ZIP_MAGIC:
            raise open_error

        try:
            document = parse_xml(str(self._path), self.source)
        except (MalformedDocument, OSError) as exc:
            raise open_error from exc

        document.warnings.append(
            f"KMZ file is invalid/mislabeled. Retry as KML: {open_error.message}"
        )
        return document


class UrlSource(DocumentReference):
    """A document fetched over the network."""

    def __init__(self, url: str):
        super().__init__()
        self._url = url

    @property
    def url(self) -> str:
        return self._url

    @property
    def source(self) -> str:
        return self._url

    def _build(self) -> ParsedDocument:
        content_type, content = self._fetch()
        if is_packaged(content_type, self._url):
            return self._read_packaged(io.BytesIO(content))
        return parse_xml(io.BytesIO(content), self.source, base_url=self._url)

    def _fetch(self) -> tuple[str | None, bytes]:
        """Download the resource.

        Raises:
            DocumentNotFound: If the server is unreachable or answers with an error.
            DocumentIOError: If the transfer fails part way.
        """
        try:
            response = requests.get(self._url, timeout=REQUEST_TIMEOUT)
            response.raise_for_status()
            content = response.content
        except requests.HTTPError as exc:
            raise DocumentNotFound(
                f"HTTP {exc.response.status_code}: {self._url}", self.source
            ) from exc
        except (
            requests.ConnectionError,
            requests.Timeout,
            requests.exceptions.URLRequired,
            requests.exceptions.InvalidURL,
            requests.exceptions.InvalidSchema,
            requests.exceptions.MissingSchema,
        ) as exc:
            raise DocumentNotFound(f"Cannot reach {self._url}: {exc}", self.source) from exc
        except requests.RequestException as exc:
            raise DocumentIOError(f"Cannot read {self._url}: {exc}", self.source) from exc

        content_type = response.headers.get("Content-Type")
        if content_type:
            content_type = content_type.split(";", 1)[0].strip().lower()
        return content_type or None, content

    def _read_packaged(self, stream: IO[bytes]) -> ParsedDocument:
        try:
            entry = first_stream_entry(stream)
            if entry is None:
                raise MalformedDocument("no inner document found", self.source)
            return parse_xml(entry, self.source, base_url=self._url)
        except ARCHIVE_READ_ERRORS as exc:
            raise ArchiveCorrupt(f"Cannot read KMZ stream: {exc}", self.source) from exc


class ArchiveEntrySource(DocumentReference):
    """A named entry inside a KMZ container."""

    def __init__(self, archive_path: str | Path, entry_name: str):
        super().__init__()
        self._archive_path = Path(archive_path)
        self._entry_name = entry_name

    @property
    def archive_path(self) -> Path:
        return self._archive_path

    @property
    def entry_name(self) -> str:
        return self._entry_name

    @property
    def source(self) -> str:
        return f"{self._archive_path}/{self._entry_name}"

    def _build(self) -> ParsedDocument:
        base_url = self._archive_path.resolve().as_uri()
        try:
            with KmzPackage(self._archive_path) as package:
                with package.open_entry(self._entry_name) as entry:
                    return parse_xml(entry, self.source, base_url=base_url)
        except ARCHIVE_READ_ERRORS as exc:
            raise ArchiveCorrupt(f"Cannot read KMZ entry: {exc}", self.source) from exc


def explore_packaged(archive_path: str | Path) -> list[ArchiveEntrySource]:
    """List every inner document after the root one, in container order.

    Raises:
        AcquisitionError: If the container cannot be opened.
    """
    with KmzPackage(archive_path) as package:
        names = list(package.inner_documents())
    return [ArchiveEntrySource(archive_path, name) for name in names[1:]]


def make_reference(target: str) -> DocumentReference:
    """Create a reference for a command-line target.

    Existing paths are files; anything else with a URL scheme is fetched.
    """
    path = Path(target)
    if path.exists() or not urlparse(target).scheme:
        return FileSource(path)
    return UrlSource(target)

