"""KMZ package handling.

A KMZ file is a ZIP archive wrapping one or more KML documents. The first KML
entry in archive order is the root document, whatever its name or folder.
"""

from __future__ import annotations

import struct
import zipfile
import zlib
from pathlib import Path
from typing import IO, TYPE_CHECKING

from xml_validate.errors import ArchiveCorrupt, DocumentIOError, DocumentNotFound
from xml_validate.namespaces import KML_SUFFIX

if TYPE_CHECKING:
    from collections.abc import Iterator

LOCAL_HEADER = struct.Struct("<4sHHHHHIIIHH")
LOCAL_HEADER_SIGNATURE = b"PK\x03\x04"
DATA_DESCRIPTOR_SIGNATURE = b"PK\x07\x08"

FLAG_DATA_DESCRIPTOR = 0x08
FLAG_UTF8 = 0x800

CHUNK_SIZE = 64 * 1024


def is_inner_document(name: str, suffix: str = KML_SUFFIX) -> bool:
    """Check whether an entry name looks like an inner document."""
    return name.lower().endswith(suffix) and not name.endswith("/")


class KmzPackage:
    """A ZIP-backed KMZ container opened through its central directory."""

    def __init__(self, path: str | Path, suffix: str = KML_SUFFIX):
        self._path = Path(path)
        self._suffix = suffix
        self._zip: zipfile.ZipFile | None = None

    def __enter__(self) -> KmzPackage:
        self.open()
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()

    def open(self) -> None:
        """Open the package for reading."""
        if self._zip is not None:
            return

        try:
            self._zip = zipfile.ZipFile(self._path, "r")
        except zipfile.BadZipFile as exc:
            raise ArchiveCorrupt(f"Invalid ZIP file: {exc}", str(self._path)) from exc
        except FileNotFoundError as exc:
            raise DocumentNotFound(f"File not found: {self._path}", str(self._path)) from exc
        except OSError as exc:
            raise DocumentIOError(f"Cannot read {self._path}: {exc}", str(self._path)) from exc

    def close(self) -> None:
        """Close the package."""
        if self._zip is not None:
            self._zip.close()
            self._zip = None

    @property
    def path(self) -> Path:
        """Get the path to the package file."""
        return self._path

    def inner_documents(self) -> Iterator[str]:
        """List inner document entries in archive order."""
        if self._zip is None:
            raise ArchiveCorrupt("Package not opened", str(self._path))

        for info in self._zip.infolist():
            if is_inner_document(info.filename, self._suffix):
                yield info.filename

    def first_inner_document(self) -> str | None:
        """Get the first inner document entry, or None when there is none."""
        return next(self.inner_documents(), None)

    def open_entry(self, name: str) -> IO[bytes]:
        """Open an entry for reading.

        Raises:
            DocumentNotFound: If the entry does not exist.
        """
        if self._zip is None:
            raise ArchiveCorrupt("Package not opened", str(self._path))

        try:
            return self._zip.open(name)
        except KeyError as exc:
            raise DocumentNotFound(
                f"Entry not found: {name}", f"{self._path}/{name}"
            ) from exc


class _PushbackReader:
    """Byte reader that can return over-read data to the front of the stream."""

    def __init__(self, stream: IO[bytes]):
        self._stream = stream
        self._buffer = b""

    def read(self, size: int) -> bytes:
        if self._buffer:
            data, self._buffer = self._buffer[:size], self._buffer[size:]
            return data
        return self._stream.read(size)

    def read_exact(self, size: int) -> bytes:
        """Read up to ``size`` bytes, stopping early only at end of stream."""
        parts = []
        remaining = size
        while remaining > 0:
            data = self.read(remaining)
            if not data:
                break
            parts.append(data)
            remaining -= len(data)
        return b"".join(parts)

    def unread(self, data: bytes) -> None:
        if data:
            self._buffer = data + self._buffer


class StreamEntry:
    """One archive entry read sequentially from a local file header onward.

    Behaves as a readable binary file, so it can be handed straight to a parser.
    """

    def __init__(
        self,
        reader: _PushbackReader,
        name: str,
        method: int,
        flags: int,
        compressed_size: int,
    ):
        self.name = name
        self._reader = reader
        self._method = method
        self._flags = flags
        self._remaining = compressed_size
        self._pending = b""
        self._finished = False
        if method == zipfile.ZIP_DEFLATED:
            self._decompressor = zlib.decompressobj(-zlib.MAX_WBITS)
        elif method == zipfile.ZIP_STORED:
            if flags & FLAG_DATA_DESCRIPTOR and compressed_size == 0:
                raise zipfile.BadZipFile(f"Cannot stream stored entry {name} of unknown size")
            self._decompressor = None
        else:
            raise zipfile.BadZipFile(f"Unsupported compression method {method} for {name}")

    @property
    def _sized(self) -> bool:
        return not self._flags & FLAG_DATA_DESCRIPTOR

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            return b"".join(iter(lambda: self.read(CHUNK_SIZE), b""))
        while len(self._pending) < size and not self._finished:
            self._fill()
        data, self._pending = self._pending[:size], self._pending[size:]
        return data

    def _fill(self) -> None:
        if self._decompressor is None:
            chunk = self._reader.read_exact(min(CHUNK_SIZE, self._remaining))
            self._remaining -= len(chunk)
            if self._remaining > 0 and not chunk:
                raise EOFError(f"Truncated entry {self.name}")
            self._pending += chunk
            self._finished = self._remaining <= 0
            return

        want = CHUNK_SIZE if not self._sized else min(CHUNK_SIZE, self._remaining)
        chunk = self._reader.read(want) if want else b""
        if self._sized:
            self._remaining -= len(chunk)
        if not chunk and not self._decompressor.eof:
            if self._sized and self._remaining <= 0:
                self._pending += self._decompressor.flush()
                self._finished = True
                return
            raise EOFError(f"Truncated entry {self.name}")
        self._pending += self._decompressor.decompress(chunk)
        if self._decompressor.eof:
            if self._sized:
                self._reader.read_exact(self._remaining)
                self._remaining = 0
            else:
                self._reader.unread(self._decompressor.unused_data)
            self._finished = True

    def drain(self) -> None:
        """Consume the rest of the entry including any trailing data descriptor."""
        while not self._finished:
            self._fill()
            self._pending = b""
        self._pending = b""
        if self._flags & FLAG_DATA_DESCRIPTOR:
            head = self._reader.read_exact(4)
            if head == DATA_DESCRIPTOR_SIGNATURE:
                self._reader.read_exact(12)
            else:
                self._reader.read_exact(8)


def iter_stream_entries(stream: IO[bytes]) -> Iterator[StreamEntry]:
    """Iterate archive entries strictly in the order they appear in the stream.

    The central directory is never consulted, so containers whose directory is
    damaged can still be read. Iteration stops at the first record that is not
    a local file header.

    Raises:
        zipfile.BadZipFile: If an entry uses an unsupported layout.
        EOFError: If the stream ends inside an entry.
    """
    reader = _PushbackReader(stream)
    while True:
        header = reader.read_exact(LOCAL_HEADER.size)
        if len(header) < LOCAL_HEADER.size:
            return
        (
            signature,
            _version,
            flags,
            method,
            _mtime,
            _mdate,
            _crc,
            compressed_size,
            _size,
            name_length,
            extra_length,
        ) = LOCAL_HEADER.unpack(header)
        if signature != LOCAL_HEADER_SIGNATURE:
            return
        raw_name = reader.read_exact(name_length)
        reader.read_exact(extra_length)
        name = raw_name.decode("utf-8" if flags & FLAG_UTF8 else "cp437")
        entry = StreamEntry(reader, name, method, flags, compressed_size)
        yield entry
        entry.drain()


def first_stream_entry(stream: IO[bytes], suffix: str = KML_SUFFIX) -> StreamEntry | None:
    """Advance the stream to the first inner document entry.

    Entries are never revisited: the returned entry reads from the current
    stream position.
    """
    for entry in iter_stream_entries(stream):
        if is_inner_document(entry.name, suffix):
            return entry
    return None
