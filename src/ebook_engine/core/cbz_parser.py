"""CBZ (comic book ZIP) parsing: one page chapter per image entry."""

import html
import logging
import re
import zipfile

from ebook_engine.core.containers import ZipContainer
from ebook_engine.core.parser_factory import BookParser
from ebook_engine.core.validators import is_image_name
from ebook_engine.errors import ContainerClosedError
from ebook_engine.models.book import ChapterRef, Document, TOCEntry
from ebook_engine.models.formats import BookFormat, RefKind

log = logging.getLogger(__name__)


def natural_key(name: str) -> list:
    """Sort key that orders ``page2`` before ``page10``."""
    return [int(part) if part.isdigit() else part.lower() for part in re.split(r"(\d+)", name)]


class CbzParser(BookParser):
    """Parse comic archives; pages are image entries in natural order."""

    format = BookFormat.CBZ

    def __init__(self, source, settings=None, name=None):
        super().__init__(source, settings, name)
        self._container: ZipContainer | None = None

    def parse(self) -> Document | None:
        """Parse the CBZ archive and return complete structure."""
        try:
            self._release()
            self._container = ZipContainer(self.source)
        except (zipfile.BadZipFile, OSError, EOFError, ValueError) as e:
            log.error(f"Cannot open CBZ archive: {e}")
            return None

        pages = sorted(
            (name for name in self._container.file_names() if is_image_name(name)),
            key=natural_key,
        )
        if not pages:
            log.error("No image pages found in CBZ archive")
            return None

        self._chapters = [
            ChapterRef(index=i, kind=RefKind.PAGE, key=name, title=f"Page {i + 1}")
            for i, name in enumerate(pages)
        ]
        toc = [
            TOCEntry(title=self.fallback_title, href=pages[0], target=self._chapters[0])
        ]

        document = Document(
            title=self.fallback_title,
            author=self.settings.default_author,
            source_format=BookFormat.CBZ,
            chapters=self._chapters,
            toc=toc,
        )
        log.info(f"Parsed CBZ '{document.title}': {len(pages)} pages")
        return document

    def _read_chapter(self, ref: ChapterRef) -> str | None:
        if self._container is None or not self._container.has(ref.key):
            return None
        return f"<img src='{html.escape(ref.key)}' alt='Page {ref.index + 1}'/>"

    def read_page(self, ref: ChapterRef | int) -> bytes | None:
        """Raw image bytes of a page."""
        if self.closed:
            raise ContainerClosedError("cbz parser has been closed")
        if self._container is None:
            return None
        if isinstance(ref, int):
            if ref < 0 or ref >= len(self._chapters):
                return None
            ref = self._chapters[ref]
        return self._container.read_bytes(ref.key)

    def _release(self) -> None:
        if self._container is not None:
            self._container.close()
            self._container = None
