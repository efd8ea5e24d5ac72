"""Multi-format e-book parsing and text-to-speech text preparation."""

from ebook_engine.config import DEFAULT_SETTINGS, EngineSettings
from ebook_engine.core.containers import BookSource
from ebook_engine.core.parser_factory import BookParser, ParserFactory
from ebook_engine.errors import (
    ContainerClosedError,
    EbookEngineError,
    InvalidRuleSetError,
    UnsupportedFormatError,
)
from ebook_engine.models import (
    BookFormat,
    BookMetadata,
    ChapterRef,
    ChunkKind,
    Document,
    RefKind,
    TextChunk,
    TOCEntry,
    Validity,
)

__version__ = "0.1.0"


def open_book(
    source: BookSource,
    hint: str | BookFormat | None = None,
    settings: EngineSettings | None = None,
    name: str | None = None,
) -> BookParser:
    """Detect the format of ``source`` and return an unparsed parser for it.

    Use the parser as a context manager; chapter references resolve only
    until it is closed.
    """
    return ParserFactory.create(source, hint, settings, name)


def parse_book(
    source: BookSource,
    hint: str | BookFormat | None = None,
    settings: EngineSettings | None = None,
    name: str | None = None,
) -> Document | None:
    """Parse metadata and structure only; the container is closed on return."""
    with open_book(source, hint, settings, name) as parser:
        return parser.parse()


__all__ = [
    "open_book",
    "parse_book",
    "BookParser",
    "ParserFactory",
    # Configuration
    "DEFAULT_SETTINGS",
    "EngineSettings",
    # Errors
    "ContainerClosedError",
    "EbookEngineError",
    "InvalidRuleSetError",
    "UnsupportedFormatError",
    # Models
    "BookFormat",
    "BookMetadata",
    "ChapterRef",
    "ChunkKind",
    "Document",
    "RefKind",
    "TextChunk",
    "TOCEntry",
    "Validity",
]
