"""Factory for creating book parsers based on file format."""

import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import ClassVar

from ebook_engine.config import DEFAULT_SETTINGS, EngineSettings
from ebook_engine.core.containers import BookSource, source_stem
from ebook_engine.core.validators import EXTENSION_HINTS, detect_format
from ebook_engine.errors import ContainerClosedError, UnsupportedFormatError
from ebook_engine.models.book import ChapterRef, Document
from ebook_engine.models.formats import BookFormat

log = logging.getLogger(__name__)


class BookParser(ABC):
    """Abstract base class for book parsers.

    A parser owns its container from ``parse()`` until ``close()``. Chapter
    references in the returned ``Document`` resolve only through the parser
    that produced them; after ``close()`` resolution raises
    ``ContainerClosedError``. Content is re-read on every resolution.
    """

    format: ClassVar[BookFormat]

    def __init__(
        self,
        source: BookSource,
        settings: EngineSettings | None = None,
        name: str | None = None,
    ):
        self.source = source
        self.settings = settings or DEFAULT_SETTINGS
        self.name = name or source_stem(source)
        self._chapters: list[ChapterRef] = []
        self._closed = False

    @property
    def fallback_title(self) -> str:
        return self.name or self.settings.fallback_title

    @property
    def closed(self) -> bool:
        return self._closed

    @abstractmethod
    def parse(self) -> Document | None:
        """Parse the book and return its structure, or None if unusable."""
        pass

    @abstractmethod
    def _read_chapter(self, ref: ChapterRef) -> str | None:
        """Read and convert one chapter to HTML."""
        pass

    def _release(self) -> None:
        """Close format-specific resources."""

    def get_chapter_html(self, chapter: ChapterRef | int) -> str | None:
        """Resolve a chapter reference (or chapter index) to HTML.

        Out-of-range indices return None.
        """
        if self._closed:
            raise ContainerClosedError(f"{self.format.value} parser has been closed")
        if isinstance(chapter, int):
            if chapter < 0 or chapter >= len(self._chapters):
                return None
            chapter = self._chapters[chapter]
        return self._read_chapter(chapter)

    def close(self) -> None:
        if not self._closed:
            self._release()
            self._closed = True

    def __enter__(self) -> "BookParser":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class ParserFactory:
    """Factory for creating appropriate parser based on file format."""

    SUPPORTED_FORMATS = EXTENSION_HINTS

    @classmethod
    def create(
        cls,
        source: BookSource,
        hint: str | BookFormat | None = None,
        settings: EngineSettings | None = None,
        name: str | None = None,
    ) -> BookParser:
        """Create appropriate parser for the given source.

        Args:
            source: Path, in-memory bytes, or seekable binary file
            hint: Declared extension, MIME type or format; sniffed if absent
            settings: Engine limits; defaults apply if omitted
            name: Display name for in-memory sources (title fallback)

        Returns:
            BookParser instance for the detected format

        Raises:
            FileNotFoundError: If a path source does not exist
            UnsupportedFormatError: If no validator accepts the source
        """
        if isinstance(source, (str, os.PathLike)) and not Path(source).exists():
            raise FileNotFoundError(f"File not found: {source}")

        settings = settings or DEFAULT_SETTINGS
        fmt = detect_format(source, hint, settings)
        if fmt is None:
            raise UnsupportedFormatError("Source is not a supported document format")

        log.info(f"Opening {name or source_stem(source) or 'document'} as {fmt.value}")
        return cls.for_format(fmt, source, settings, name)

    @classmethod
    def for_format(
        cls,
        fmt: BookFormat,
        source: BookSource,
        settings: EngineSettings | None = None,
        name: str | None = None,
    ) -> BookParser:
        """Create the parser for a known format without validation."""
        if fmt is BookFormat.EPUB:
            from ebook_engine.core.epub_parser import EpubParser

            return EpubParser(source, settings, name)
        elif fmt is BookFormat.MOBI:
            from ebook_engine.core.mobi_parser import MobiParser

            return MobiParser(source, settings, name)
        elif fmt is BookFormat.FB2:
            from ebook_engine.core.fb2_parser import Fb2Parser

            return Fb2Parser(source, settings, name)
        elif fmt is BookFormat.DOCX:
            from ebook_engine.core.docx_parser import DocxParser

            return DocxParser(source, settings, name)
        elif fmt is BookFormat.CBZ:
            from ebook_engine.core.cbz_parser import CbzParser

            return CbzParser(source, settings, name)
        elif fmt is BookFormat.MARKDOWN:
            from ebook_engine.core.markdown_parser import MarkdownParser

            return MarkdownParser(source, settings, name)
        elif fmt is BookFormat.PDF:
            from ebook_engine.core.pdf_parser import PdfParser

            return PdfParser(source, settings, name)

        raise UnsupportedFormatError(f"Unsupported format: {fmt}")

    @classmethod
    def detect_format(cls, path: Path) -> str:
        """Detect file format from extension.

        Returns:
            Format string ("epub", "mobi", ... or "unknown")
        """
        suffix = path.suffix.lower().lstrip(".")
        fmt = cls.SUPPORTED_FORMATS.get(suffix)
        return fmt.value if fmt else "unknown"

    @classmethod
    def is_supported(cls, path: Path) -> bool:
        """Check if file extension is supported."""
        return path.suffix.lower().lstrip(".") in cls.SUPPORTED_FORMATS
