"""FictionBook 2 parsing: one streaming pass for metadata, sections and HTML."""

import html
import logging
import re
from enum import Enum

from ebook_engine.core.containers import open_stream
from ebook_engine.core.parser_factory import BookParser
from ebook_engine.core.xml_events import XmlHandler, local_name, run_handler
from ebook_engine.models.book import BookMetadata, ChapterRef, Document, TOCEntry
from ebook_engine.models.formats import BookFormat, RefKind

log = logging.getLogger(__name__)


class Fb2State(Enum):
    """Element whose text the event loop is currently capturing."""

    NONE = "none"
    BOOK_TITLE = "book-title"
    AUTHOR = "author"
    GENRE = "genre"
    PUBLISHER = "publisher"
    YEAR = "year"
    LANG = "lang"
    ISBN = "isbn"
    BODY = "body"


_STATE_TAGS = {state.value: state for state in Fb2State if state is not Fb2State.NONE}

# FB2 element -> (opening, closing) HTML
BODY_TAGS = {
    "section": ("<div>", "</div>"),
    "title": ("<h2>", "</h2>"),
    "p": ("<p>", "</p>"),
    "emphasis": ("<em>", "</em>"),
    "strong": ("<strong>", "</strong>"),
    "subtitle": ("<h3>", "</h3>"),
    "v": ("<p class='verse'>", "</p>"),
    "empty-line": ("<br/>", ""),
}


class _Fb2Handler(XmlHandler):
    """Collect metadata and section titles; render body HTML on request.

    ``render`` selects what is converted: None renders nothing, -1 renders
    every body, and a non-negative number renders only that top-level
    section.
    """

    def __init__(self, render: int | None = None):
        self.render = render
        self.state = Fb2State.NONE
        self.fields: dict[Fb2State, list[str]] = {}
        self.html: list[str] = []
        self.sections: list[str | None] = []
        self.titles: list[tuple[str, int, int]] = []  # (title, level, top-level section)

        self._piece: list[str] = []
        self._in_document_info = False
        self._section_depth = 0
        self._in_title = False
        self._title_text: list[str] = []

    def _emitting(self) -> bool:
        if self.render is None or self.state is not Fb2State.BODY:
            return False
        if self.render < 0:
            return True
        return self._section_depth > 0 and len(self.sections) - 1 == self.render

    def _flush(self) -> None:
        """Close the text piece of the current metadata element."""
        piece = "".join(self._piece).strip()
        self._piece = []
        if piece and self.state not in (Fb2State.NONE, Fb2State.BODY):
            self.fields[self.state].append(piece)

    def start(self, tag, attrib):
        name = local_name(tag)
        if name == "document-info":
            self._in_document_info = True
        self._flush()

        if self.state is Fb2State.NONE:
            state = _STATE_TAGS.get(name)
            if state is Fb2State.AUTHOR and self._in_document_info:
                return
            if state is not None:
                self.state = state
                self.fields.setdefault(state, [])
            return

        if self.state is not Fb2State.BODY:
            return

        if name == "section":
            if self._section_depth == 0:
                self.sections.append(None)
            self._section_depth += 1
        elif name == "title" and self._section_depth > 0:
            self._in_title = True
            self._title_text = []

        if name in BODY_TAGS and self._emitting():
            self.html.append(BODY_TAGS[name][0])

    def data(self, text):
        if self.state is Fb2State.BODY:
            if self._in_title:
                self._title_text.append(text)
            if self._emitting():
                self.html.append(html.escape(text))
        elif self.state is not Fb2State.NONE:
            self._piece.append(text)

    def end(self, tag):
        name = local_name(tag)
        if name == "document-info":
            self._in_document_info = False
        self._flush()

        if self.state is Fb2State.BODY and name != "body":
            if name in BODY_TAGS and self._emitting():
                self.html.append(BODY_TAGS[name][1])
            if name == "title" and self._in_title:
                self._in_title = False
                title = re.sub(r"\s+", " ", "".join(self._title_text)).strip()
                if title:
                    top = len(self.sections) - 1
                    if self.sections[top] is None:
                        self.sections[top] = title
                    self.titles.append((title, self._section_depth - 1, top))
            elif name == "section":
                self._section_depth -= 1
            return

        if self.state is not Fb2State.NONE and name == self.state.value:
            self.state = Fb2State.NONE

    def field(self, state: Fb2State, separator: str = " ") -> str | None:
        value = separator.join(self.fields.get(state, [])).strip()
        return value or None


class Fb2Parser(BookParser):
    """Parse FB2 documents; each top-level body section is a chapter."""

    format = BookFormat.FB2

    def _read_source(self) -> bytes:
        with open_stream(self.source) as stream:
            return stream.read()

    def _run(self, render: int | None) -> _Fb2Handler | None:
        try:
            content = self._read_source()
        except OSError as e:
            log.error(f"Cannot read FB2 file: {e}")
            return None
        handler = _Fb2Handler(render)
        if not run_handler(handler, content, root="FictionBook"):
            log.error("Error parsing FB2 file")
            return None
        return handler

    def parse(self) -> Document | None:
        """Parse the FB2 file and return complete structure."""
        handler = self._run(render=None)
        if handler is None:
            return None

        if handler.sections:
            self._chapters = [
                ChapterRef(index=i, kind=RefKind.SECTION, key=str(i), title=title)
                for i, title in enumerate(handler.sections)
            ]
        else:
            self._chapters = [ChapterRef(index=0, kind=RefKind.DOCUMENT)]

        toc = [
            TOCEntry(
                title=title,
                href=f"section{top}",
                target=self._chapters[top] if handler.sections else None,
                level=level,
                order=i,
            )
            for i, (title, level, top) in enumerate(handler.titles)
        ]

        document = Document(
            title=handler.field(Fb2State.BOOK_TITLE) or self.fallback_title,
            author=handler.field(Fb2State.AUTHOR) or self.settings.default_author,
            source_format=BookFormat.FB2,
            chapters=self._chapters,
            toc=toc,
            metadata=BookMetadata(
                genre=handler.field(Fb2State.GENRE, ", "),
                publisher=handler.field(Fb2State.PUBLISHER),
                year=handler.field(Fb2State.YEAR),
                language=handler.field(Fb2State.LANG),
                isbn=handler.field(Fb2State.ISBN),
            ),
        )
        log.info(f"Parsed FB2 '{document.title}': {len(document.chapters)} sections")
        return document

    def _read_chapter(self, ref: ChapterRef) -> str | None:
        if ref.kind is RefKind.DOCUMENT:
            render = -1
        elif ref.key.isdigit():
            render = int(ref.key)
        else:
            return None
        handler = self._run(render)
        if handler is None or render >= len(handler.sections):
            return None
        return "".join(handler.html)

    def render_html(self) -> str | None:
        """The whole book as one HTML document."""
        handler = self._run(render=-1)
        if handler is None:
            return None
        return (
            "<html><head><meta charset='UTF-8'></head><body>"
            + "".join(handler.html)
            + "</body></html>"
        )
