"""DOCX parsing: paragraph text from word/document.xml, metadata from core.xml.

Only text survives conversion. Runs are flattened into their paragraph and
all character formatting is dropped.
"""

import html
import logging
import re
import zipfile
from enum import Enum

from ebook_engine.core.containers import ZipContainer
from ebook_engine.core.parser_factory import BookParser
from ebook_engine.core.xml_events import XmlHandler, get_attr, local_name, run_handler
from ebook_engine.models.book import BookMetadata, ChapterRef, Document, TOCEntry
from ebook_engine.models.formats import BookFormat, RefKind

log = logging.getLogger(__name__)

DOCUMENT_XML = "word/document.xml"
CORE_XML = "docProps/core.xml"
CORE_FIELDS = ("creator", "title", "subject", "description")

WORD_NAMESPACES = (
    "http://schemas.openxmlformats.org/wordprocessingml/2006/main",
    "http://purl.oclc.org/ooxml/wordprocessingml/main",
)

HEADING_STYLE = re.compile(r"^(?:heading\s*([1-9])|title)$", re.IGNORECASE)


def word_name(tag: str) -> str | None:
    """Local name of a WordprocessingML element; None for any other namespace."""
    if not isinstance(tag, str) or not tag.startswith("{"):
        return None
    namespace, _, name = tag[1:].partition("}")
    return name if namespace in WORD_NAMESPACES else None


class DocxState(Enum):
    """Position of the event loop relative to paragraphs and text runs."""

    OUTSIDE = "outside"
    PARAGRAPH = "paragraph"
    TEXT = "text"


class _CoreHandler(XmlHandler):
    """Dublin Core fields of docProps/core.xml, prefixed or not."""

    def __init__(self):
        self.fields: dict[str, str] = {}
        self._current: str | None = None
        self._text: list[str] = []

    def start(self, tag, attrib):
        name = local_name(tag)
        if name in CORE_FIELDS and name not in self.fields:
            self._current = name
            self._text = []

    def data(self, text):
        if self._current:
            self._text.append(text)

    def end(self, tag):
        if self._current and local_name(tag) == self._current:
            value = "".join(self._text).strip()
            if value:
                self.fields[self._current] = value
            self._current = None


class _DocumentHandler(XmlHandler):
    """Convert ``w:p`` paragraphs to ``<p>`` blocks and collect heading paragraphs.

    Only WordprocessingML elements count; DrawingML ``a:p``/``a:t`` are
    ignored. Paragraphs nested in an outer one (text boxes) are merged into
    the outer block.
    """

    def __init__(self):
        self.state = DocxState.OUTSIDE
        self.html: list[str] = []
        self.headings: list[tuple[str, int]] = []
        self._depth = 0
        self._text: list[str] = []
        self._heading_level: int | None = None

    def start(self, tag, attrib):
        name = word_name(tag)
        if name == "p":
            self._depth += 1
            if self._depth == 1:
                self.state = DocxState.PARAGRAPH
                self._text = []
                self._heading_level = None
            else:
                self._text.append(" ")
        elif self.state is DocxState.OUTSIDE:
            return
        elif name == "t":
            self.state = DocxState.TEXT
        elif name == "tab":
            self._text.append(" ")
        elif name == "pStyle" and self._depth == 1:
            match = HEADING_STYLE.match(get_attr(attrib, "w:val") or "")
            if match:
                self._heading_level = int(match.group(1)) - 1 if match.group(1) else 0

    def data(self, text):
        if self.state is DocxState.TEXT:
            self._text.append(text)

    def end(self, tag):
        name = word_name(tag)
        if name == "t" and self.state is DocxState.TEXT:
            self.state = DocxState.PARAGRAPH
        elif name == "p" and self._depth > 1:
            self._depth -= 1
            self._text.append(" ")
        elif name == "p" and self._depth == 1:
            self._depth = 0
            self.state = DocxState.OUTSIDE
            text = re.sub(r" {2,}", " ", "".join(self._text)).strip()
            if not text:
                self.html.append("<br/>")
                return
            self.html.append(f"<p>{html.escape(text)}</p>")
            if self._heading_level is not None:
                self.headings.append((text, self._heading_level))


class DocxParser(BookParser):
    """Parse Word documents into a single-chapter document."""

    format = BookFormat.DOCX

    def __init__(self, source, settings=None, name=None):
        super().__init__(source, settings, name)
        self._container: ZipContainer | None = None

    def parse(self) -> Document | None:
        """Parse the DOCX file and return complete structure."""
        try:
            self._release()
            self._container = ZipContainer(self.source)
        except (zipfile.BadZipFile, OSError, EOFError, ValueError) as e:
            log.error(f"Cannot open DOCX archive: {e}")
            return None

        handler = self._convert()
        if handler is None:
            return None

        core = _CoreHandler()
        core_xml = self._container.read_bytes(CORE_XML)
        if core_xml is not None and not run_handler(core, core_xml):
            log.warning("Unreadable docProps/core.xml; metadata skipped")

        chapter = ChapterRef(index=0, kind=RefKind.DOCUMENT, key=DOCUMENT_XML)
        self._chapters = [chapter]
        toc = [
            TOCEntry(title=text, href=DOCUMENT_XML, target=chapter, level=level, order=i)
            for i, (text, level) in enumerate(handler.headings)
        ]

        document = Document(
            title=core.fields.get("title") or self.fallback_title,
            author=core.fields.get("creator") or self.settings.default_author,
            source_format=BookFormat.DOCX,
            chapters=self._chapters,
            toc=toc,
            metadata=BookMetadata(
                subject=core.fields.get("subject"),
                description=core.fields.get("description"),
            ),
        )
        log.info(f"Parsed DOCX '{document.title}': {len(handler.html)} paragraphs")
        return document

    def _convert(self) -> _DocumentHandler | None:
        content = self._container.read_bytes(DOCUMENT_XML)
        if content is None:
            log.error(f"{DOCUMENT_XML} not found in archive")
            return None
        handler = _DocumentHandler()
        if not run_handler(handler, content, root="document"):
            log.error(f"Error parsing {DOCUMENT_XML}")
            return None
        return handler

    def _read_chapter(self, ref: ChapterRef) -> str | None:
        if self._container is None or ref.kind is not RefKind.DOCUMENT:
            return None
        handler = self._convert()
        if handler is None:
            return None
        return "".join(handler.html)

    def _release(self) -> None:
        if self._container is not None:
            self._container.close()
            self._container = None
