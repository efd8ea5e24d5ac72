"""Container readers: byte-level access to archives, binary files and text.

Readers know nothing about document formats. They hand out entry bytes,
byte ranges or decoded text and fail with ``ContainerClosedError`` once
closed.
"""

import io
import logging
import os
import zipfile
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Iterator, Union

from ebook_engine.errors import ContainerClosedError

log = logging.getLogger(__name__)

BookSource = Union[str, os.PathLike, bytes, bytearray, BinaryIO]


def source_stem(source: BookSource) -> str | None:
    """Filename stem of a path-like source (or a named file object)."""
    if isinstance(source, (str, os.PathLike)):
        return Path(source).stem or None
    name = getattr(source, "name", None)
    if isinstance(name, str) and name:
        return Path(name).stem or None
    return None


def source_suffix(source: BookSource) -> str:
    """Lowercased extension of a path-like source, without the dot."""
    if isinstance(source, (str, os.PathLike)):
        return Path(source).suffix.lower().lstrip(".")
    name = getattr(source, "name", None)
    if isinstance(name, str):
        return Path(name).suffix.lower().lstrip(".")
    return ""


@contextmanager
def open_stream(source: BookSource) -> Iterator[BinaryIO]:
    """Yield a seekable binary stream positioned at 0.

    Paths are opened (and closed afterwards); caller-owned file objects are
    rewound and restored to their original position.
    """
    if isinstance(source, (bytes, bytearray)):
        yield io.BytesIO(bytes(source))
    elif isinstance(source, (str, os.PathLike)):
        with open(source, "rb") as f:
            yield f
    else:
        position = source.tell()
        source.seek(0)
        try:
            yield source
        finally:
            source.seek(position)


def read_prefix(source: BookSource, size: int) -> bytes:
    """Read at most ``size`` bytes from the start of the source."""
    if isinstance(source, (bytes, bytearray)):
        return bytes(source[:size])
    with open_stream(source) as stream:
        return stream.read(size)


def read_text_source(source: BookSource) -> str:
    """Read a whole text source as UTF-8, replacing undecodable bytes."""
    with open_stream(source) as stream:
        data = stream.read()
    return data.decode("utf-8-sig", errors="replace")


class ZipContainer:
    """Entry-name access to a ZIP archive (EPUB, DOCX, CBZ)."""

    def __init__(self, source: BookSource):
        if isinstance(source, (bytes, bytearray)):
            source = io.BytesIO(bytes(source))
        elif not isinstance(source, (str, os.PathLike)):
            source.seek(0)
        self._zip: zipfile.ZipFile | None = zipfile.ZipFile(source)

    def _archive(self) -> zipfile.ZipFile:
        if self._zip is None:
            raise ContainerClosedError("Archive has been closed")
        return self._zip

    def file_names(self) -> list[str]:
        """Entry names that are not directories."""
        return [info.filename for info in self._archive().infolist() if not info.is_dir()]

    def has(self, name: str) -> bool:
        try:
            self._archive().getinfo(name)
        except KeyError:
            return False
        return True

    def read_bytes(self, name: str) -> bytes | None:
        """Entry content, or None if the entry is missing or unreadable."""
        archive = self._archive()
        try:
            return archive.read(name)
        except KeyError:
            return None
        except (zipfile.BadZipFile, OSError, RuntimeError, EOFError) as e:
            # RuntimeError: encrypted entry; EOFError: truncated stream
            log.warning(f"Unreadable archive entry {name!r}: {e}")
            return None

    def close(self) -> None:
        if self._zip is not None:
            self._zip.close()
            self._zip = None

    def __enter__(self) -> "ZipContainer":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class BinaryContainer:
    """Byte-range access to a flat binary file (MOBI/AZW)."""

    def __init__(self, source: BookSource):
        self._owned = False
        if isinstance(source, (bytes, bytearray)):
            self._stream: BinaryIO | None = io.BytesIO(bytes(source))
        elif isinstance(source, (str, os.PathLike)):
            self._stream = open(source, "rb")
            self._owned = True
        else:
            self._stream = source
        self._stream.seek(0, os.SEEK_END)
        self.size = self._stream.tell()
        self._stream.seek(0)

    def read_at(self, offset: int, length: int) -> bytes:
        """Read up to ``length`` bytes at ``offset``; short near end of file."""
        if self._stream is None:
            raise ContainerClosedError("Binary source has been closed")
        if offset < 0 or length <= 0 or offset >= self.size:
            return b""
        self._stream.seek(offset)
        return self._stream.read(min(length, self.size - offset))

    def close(self) -> None:
        if self._stream is not None:
            if self._owned:
                self._stream.close()
            self._stream = None

    def __enter__(self) -> "BinaryContainer":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
