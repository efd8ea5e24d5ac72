"""Enumerations describing formats and validation verdicts."""

from enum import Enum


class BookFormat(str, Enum):
    """Document formats the engine can parse."""

    EPUB = "epub"
    MOBI = "mobi"
    FB2 = "fb2"
    DOCX = "docx"
    CBZ = "cbz"
    MARKDOWN = "markdown"
    PDF = "pdf"


class Validity(str, Enum):
    """Verdict returned by a format validator."""

    VALID = "valid"
    INVALID = "invalid"


class RefKind(str, Enum):
    """What a chapter reference points at inside its container."""

    SPINE = "spine"  # EPUB spine item
    RECORD = "record"  # MOBI text record
    SECTION = "section"  # FB2 top-level section
    PAGE = "page"  # CBZ image or PDF page
    DOCUMENT = "document"  # whole document as one chapter
