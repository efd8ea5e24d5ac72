"""Data models."""

from ebook_engine.models.book import (
    BookMetadata,
    ChapterRef,
    Document,
    TOCEntry,
)
from ebook_engine.models.epub import (
    ManifestItem,
    OpfPackage,
    SpineItem,
)
from ebook_engine.models.formats import (
    BookFormat,
    RefKind,
    Validity,
)
from ebook_engine.models.tts import (
    ChunkKind,
    TextChunk,
)

__all__ = [
    # Document models
    "BookMetadata",
    "ChapterRef",
    "Document",
    "TOCEntry",
    # EPUB models
    "ManifestItem",
    "OpfPackage",
    "SpineItem",
    # Enums
    "BookFormat",
    "RefKind",
    "Validity",
    # TTS models
    "ChunkKind",
    "TextChunk",
]
