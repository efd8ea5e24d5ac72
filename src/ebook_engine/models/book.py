"""Data models for parsed documents (all formats)."""

from pydantic import BaseModel, ConfigDict, Field

from ebook_engine.models.formats import BookFormat, RefKind


class ChapterRef(BaseModel):
    """Lazy handle to one chapter, resolved through the parser that made it."""

    model_config = ConfigDict(frozen=True)

    index: int
    kind: RefKind
    key: str = ""  # manifest id, archive entry name, ...
    offset: int | None = None  # byte offset for binary formats
    linear: bool = True
    title: str | None = None


class TOCEntry(BaseModel):
    """Single entry in table of contents."""

    title: str
    href: str = ""
    target: ChapterRef | None = None
    anchor: str | None = None
    level: int = Field(default=0, ge=0)
    order: int = 0


class BookMetadata(BaseModel):
    """Optional, format-dependent metadata."""

    genre: str | None = None
    publisher: str | None = None
    year: str | None = None
    language: str | None = None
    isbn: str | None = None
    description: str | None = None
    subject: str | None = None
    cover_href: str | None = None


class Document(BaseModel):
    """Complete parsed document structure (unified for every format)."""

    title: str
    author: str
    source_format: BookFormat
    chapters: list[ChapterRef] = Field(default_factory=list)
    toc: list[TOCEntry] = Field(default_factory=list)
    metadata: BookMetadata = Field(default_factory=BookMetadata)
    warnings: list[str] = Field(default_factory=list)

    @property
    def chapter_count(self) -> int:
        return len(self.chapters)
