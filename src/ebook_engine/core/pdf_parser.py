"""PDF text parsing: one page chapter per page, outline as table of contents."""

import io
import logging
import os

# Suppress warnings about malformed PDF object references
logging.getLogger("pypdf").setLevel(logging.ERROR)

import pypdf
from pypdf.errors import FileNotDecryptedError, PdfReadError

from ebook_engine.core.content_processor import ContentProcessor
from ebook_engine.core.parser_factory import BookParser
from ebook_engine.models.book import BookMetadata, ChapterRef, Document, TOCEntry
from ebook_engine.models.formats import BookFormat, RefKind

log = logging.getLogger(__name__)


class PdfParser(BookParser):
    """Parse text PDFs with pypdf."""

    format = BookFormat.PDF

    def __init__(self, source, settings=None, name=None):
        super().__init__(source, settings, name)
        self._reader: pypdf.PdfReader | None = None
        self.processor = ContentProcessor()

    def _open_reader(self) -> pypdf.PdfReader | None:
        source = self.source
        if isinstance(source, (bytes, bytearray)):
            source = io.BytesIO(bytes(source))
        elif isinstance(source, os.PathLike):
            source = os.fspath(source)
        try:
            reader = pypdf.PdfReader(source)
            if reader.is_encrypted:
                log.error("PDF is encrypted. Please decrypt first.")
                return None
            # Broken page trees raise on first access
            len(reader.pages)
        except FileNotDecryptedError:
            log.error("PDF is encrypted. Please decrypt first.")
            return None
        except (PdfReadError, OSError, ValueError, KeyError) as e:
            log.error(f"PDF appears corrupted: {e}")
            return None
        return reader

    def parse(self) -> Document | None:
        """Parse the PDF and return complete structure."""
        self._reader = self._open_reader()
        if self._reader is None:
            return None

        page_count = len(self._reader.pages)
        if page_count == 0:
            log.error("PDF has no pages.")
            return None

        self._chapters = [
            ChapterRef(index=i, kind=RefKind.PAGE, key=str(i), title=f"Page {i + 1}")
            for i in range(page_count)
        ]

        info = self._reader.metadata or {}
        document = Document(
            title=str(info.get("/Title") or "").strip() or self.fallback_title,
            author=str(info.get("/Author") or "").strip() or self.settings.default_author,
            source_format=BookFormat.PDF,
            chapters=self._chapters,
            toc=self._build_toc(),
            metadata=BookMetadata(subject=str(info.get("/Subject") or "").strip() or None),
        )
        log.info(f"Parsed PDF '{document.title}': {page_count} pages")
        return document

    def _build_toc(self) -> list[TOCEntry]:
        """Flatten the outline (bookmarks); nesting depth becomes the level."""
        entries: list[TOCEntry] = []
        try:
            outline = self._reader.outline
        except (PdfReadError, KeyError, ValueError, TypeError) as e:
            log.warning(f"Unreadable PDF outline: {e}")
            return entries

        def flatten_outline(items: list, level: int = 0) -> None:
            for item in items:
                if isinstance(item, list):
                    flatten_outline(item, level + 1)
                    continue
                try:
                    page_num = self._reader.get_destination_page_number(item)
                except (PdfReadError, KeyError, ValueError, TypeError, AttributeError):
                    log.debug(f"Skipping malformed outline destination {item!r}")
                    continue
                if page_num is None or not 0 <= page_num < len(self._chapters):
                    continue
                entries.append(
                    TOCEntry(
                        title=str(item.title),
                        href=f"page_{page_num}",
                        target=self._chapters[page_num],
                        level=level,
                        order=len(entries),
                    )
                )

        flatten_outline(outline)
        return entries

    def _read_chapter(self, ref: ChapterRef) -> str | None:
        if self._reader is None or not ref.key.isdigit():
            return None
        page_num = int(ref.key)
        if page_num >= len(self._reader.pages):
            return None
        try:
            text = self._reader.pages[page_num].extract_text() or ""
        except (PdfReadError, KeyError, ValueError, TypeError) as e:
            log.warning(f"Cannot extract text from page {page_num + 1}: {e}")
            return None
        return self.processor.text_to_html(text)

    def _release(self) -> None:
        self._reader = None
