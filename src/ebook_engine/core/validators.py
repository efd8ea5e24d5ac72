"""Format validators and format sniffing.

Signature validators look only at a byte prefix. Archive validators must open
the ZIP central directory, so they take the whole source. No validator
raises on malformed input: anything unreadable is ``Validity.INVALID``.
"""

import codecs
import logging
import zipfile
from contextlib import contextmanager
from typing import Callable, Iterator

from ebook_engine.config import DEFAULT_SETTINGS, EngineSettings
from ebook_engine.core.containers import BookSource, open_stream, read_prefix, source_suffix
from ebook_engine.models.formats import BookFormat, Validity

log = logging.getLogger(__name__)

EPUB_MIMETYPE = "application/epub+zip"
PALMDB_SIGNATURES = (b"BOOKMOBI", b"TEXtREAd")
IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "bmp", "webp"}

# Errors a damaged or truncated archive can surface while being opened/read
_ARCHIVE_ERRORS = (
    zipfile.BadZipFile,
    zipfile.LargeZipFile,
    OSError,
    EOFError,
    ValueError,
    RuntimeError,
    NotImplementedError,
)

# Signature formats cannot collide with each other, so PDF goes first
DETECTION_ORDER = (
    BookFormat.PDF,
    BookFormat.EPUB,
    BookFormat.MOBI,
    BookFormat.FB2,
    BookFormat.DOCX,
    BookFormat.CBZ,
    BookFormat.MARKDOWN,
)

EXTENSION_HINTS = {
    "epub": BookFormat.EPUB,
    "mobi": BookFormat.MOBI,
    "azw": BookFormat.MOBI,
    "azw3": BookFormat.MOBI,
    "prc": BookFormat.MOBI,
    "pdb": BookFormat.MOBI,
    "fb2": BookFormat.FB2,
    "docx": BookFormat.DOCX,
    "cbz": BookFormat.CBZ,
    "md": BookFormat.MARKDOWN,
    "markdown": BookFormat.MARKDOWN,
    "txt": BookFormat.MARKDOWN,
    "pdf": BookFormat.PDF,
}

MIME_HINTS = {
    "application/epub+zip": BookFormat.EPUB,
    "application/x-mobipocket-ebook": BookFormat.MOBI,
    "application/vnd.amazon.ebook": BookFormat.MOBI,
    "application/vnd.amazon.mobi8-ebook": BookFormat.MOBI,
    "application/x-fictionbook+xml": BookFormat.FB2,
    "application/x-fictionbook": BookFormat.FB2,
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": BookFormat.DOCX,
    "application/vnd.comicbook+zip": BookFormat.CBZ,
    "application/x-cbz": BookFormat.CBZ,
    "text/markdown": BookFormat.MARKDOWN,
    "text/x-markdown": BookFormat.MARKDOWN,
    "text/plain": BookFormat.MARKDOWN,
    "application/pdf": BookFormat.PDF,
}


def _verdict(ok: bool) -> Validity:
    return Validity.VALID if ok else Validity.INVALID


# =============================================================================
# Signature validators (byte prefix only)
# =============================================================================


def validate_pdf(prefix: bytes) -> Validity:
    """``%PDF-`` in the first five bytes."""
    return _verdict(prefix[:5] == b"%PDF-")


def validate_mobi(prefix: bytes) -> Validity:
    """PalmDB type/creator signature at bytes [60, 68)."""
    return _verdict(prefix[60:68] in PALMDB_SIGNATURES)


def validate_fb2(prefix: bytes, sniff_bytes: int = DEFAULT_SETTINGS.fb2_sniff_bytes) -> Validity:
    """XML declaration plus a ``<FictionBook`` root near the top of the file."""
    head = prefix[:sniff_bytes].decode("utf-8", errors="replace").lower()
    return _verdict("<?xml" in head and "<fictionbook" in head)


def validate_markdown(prefix: bytes) -> Validity:
    """Any non-empty, UTF-8 decodable text.

    The prefix may end in the middle of a multi-byte sequence, so an
    incremental decoder is used without finalising.
    """
    if not prefix.strip():
        return Validity.INVALID
    decoder = codecs.getincrementaldecoder("utf-8-sig")()
    try:
        text = decoder.decode(prefix, final=False)
    except UnicodeDecodeError:
        return Validity.INVALID
    return _verdict("\x00" not in text)


# =============================================================================
# Archive validators (whole source)
# =============================================================================


@contextmanager
def _open_zip(source: BookSource) -> Iterator[zipfile.ZipFile]:
    with open_stream(source) as stream:
        with zipfile.ZipFile(stream) as archive:
            yield archive


def validate_epub(source: BookSource) -> Validity:
    """``mimetype`` entry reading ``application/epub+zip``, else a container.xml."""
    try:
        with _open_zip(source) as archive:
            names = set(archive.namelist())
            if "mimetype" in names:
                mimetype = archive.read("mimetype").decode("ascii", errors="replace")
                return _verdict(mimetype.strip() == EPUB_MIMETYPE)
            return _verdict("META-INF/container.xml" in names)
    except _ARCHIVE_ERRORS as e:
        log.debug(f"EPUB validation failed: {e}")
        return Validity.INVALID


def validate_docx(source: BookSource) -> Validity:
    """ZIP archive holding ``word/document.xml``."""
    try:
        with _open_zip(source) as archive:
            return _verdict("word/document.xml" in archive.namelist())
    except _ARCHIVE_ERRORS as e:
        log.debug(f"DOCX validation failed: {e}")
        return Validity.INVALID


def is_image_name(name: str) -> bool:
    extension = name.rsplit(".", 1)[-1].lower() if "." in name else ""
    return extension in IMAGE_EXTENSIONS


def validate_cbz(source: BookSource) -> Validity:
    """ZIP archive with at least one raster image file."""
    try:
        with _open_zip(source) as archive:
            return _verdict(
                any(not info.is_dir() and is_image_name(info.filename) for info in archive.infolist())
            )
    except _ARCHIVE_ERRORS as e:
        log.debug(f"CBZ validation failed: {e}")
        return Validity.INVALID


# =============================================================================
# Dispatch and sniffing
# =============================================================================


def validate(
    fmt: BookFormat,
    source: BookSource,
    settings: EngineSettings = DEFAULT_SETTINGS,
    prefix: bytes | None = None,
) -> Validity:
    """Run the validator for ``fmt`` against ``source``."""
    archive_validators: dict[BookFormat, Callable[[BookSource], Validity]] = {
        BookFormat.EPUB: validate_epub,
        BookFormat.DOCX: validate_docx,
        BookFormat.CBZ: validate_cbz,
    }
    if fmt in archive_validators:
        return archive_validators[fmt](source)

    if prefix is None:
        try:
            prefix = read_prefix(source, settings.sniff_prefix_size)
        except OSError as e:
            log.debug(f"Cannot read source prefix: {e}")
            return Validity.INVALID

    if fmt is BookFormat.PDF:
        return validate_pdf(prefix)
    if fmt is BookFormat.MOBI:
        return validate_mobi(prefix)
    if fmt is BookFormat.FB2:
        return validate_fb2(prefix, settings.fb2_sniff_bytes)
    return validate_markdown(prefix)


def format_from_hint(hint: str | BookFormat | None) -> BookFormat | None:
    """Map an extension, MIME type or ``BookFormat`` to a format."""
    if hint is None:
        return None
    if isinstance(hint, BookFormat):
        return hint
    value = hint.strip().lower()
    if value in MIME_HINTS:
        return MIME_HINTS[value]
    value = value.rsplit(".", 1)[-1]
    return EXTENSION_HINTS.get(value)


def detect_format(
    source: BookSource,
    hint: str | BookFormat | None = None,
    settings: EngineSettings = DEFAULT_SETTINGS,
) -> BookFormat | None:
    """Determine the format of ``source``.

    A hint (explicit, or the path's extension) is tried first; if its validator
    rejects the file, every format is tried in ``DETECTION_ORDER``. Returns
    None when nothing, not even Markdown, accepts the file.
    """
    try:
        prefix = read_prefix(source, settings.sniff_prefix_size)
    except OSError as e:
        log.error(f"Cannot read source: {e}")
        return None

    hinted = format_from_hint(hint) or format_from_hint(source_suffix(source) or None)
    if hinted is not None:
        if validate(hinted, source, settings, prefix) is Validity.VALID:
            return hinted
        log.info(f"Source does not look like {hinted.value}; sniffing format")

    for fmt in DETECTION_ORDER:
        if fmt is hinted:
            continue
        if validate(fmt, source, settings, prefix) is Validity.VALID:
            log.debug(f"Detected format: {fmt.value}")
            return fmt
    return None
