"""Markdown (and plain text) to HTML conversion.

A deliberately small line-oriented converter: headings, lists, blockquotes,
fenced code, horizontal rules and the common inline spans. Anything else is
rendered as a paragraph.
"""

import html
import logging
import re

from ebook_engine.core.containers import read_text_source
from ebook_engine.core.parser_factory import BookParser
from ebook_engine.models.book import ChapterRef, Document, TOCEntry
from ebook_engine.models.formats import BookFormat, RefKind

log = logging.getLogger(__name__)

HEADING_PATTERN = re.compile(r"^(#{1,6}) (.*)$")
ORDERED_ITEM_PATTERN = re.compile(r"^\d+\.\s")

# Applied in order; images must be replaced before links
INLINE_RULES = [
    (re.compile(r"\*\*(.+?)\*\*"), r"<strong>\1</strong>"),
    (re.compile(r"__(.+?)__"), r"<strong>\1</strong>"),
    (re.compile(r"\*(.+?)\*"), r"<em>\1</em>"),
    (re.compile(r"(?<!\w)_(.+?)_(?!\w)"), r"<em>\1</em>"),
    (re.compile(r"`(.+?)`"), r"<code>\1</code>"),
    (re.compile(r"!\[(.*?)\]\((.+?)\)"), r"<img src='\2' alt='\1'/>"),
    (re.compile(r"\[(.+?)\]\((.+?)\)"), r"<a href='\2'>\1</a>"),
]


def process_inline(text: str) -> str:
    """Escape ``text`` and convert inline Markdown spans."""
    result = html.escape(text)
    for pattern, replacement in INLINE_RULES:
        result = pattern.sub(replacement, result)
    return result


def parse_heading(line: str) -> tuple[int, str] | None:
    """(level, text) of an ATX heading line, or None."""
    match = HEADING_PATTERN.match(line)
    if not match:
        return None
    return len(match.group(1)), match.group(2).strip()


class _Converter:
    """One forward pass with independent code-block, list and blockquote states."""

    def __init__(self):
        self.out: list[str] = []
        self.in_code = False
        self.list_tag: str | None = None
        self.in_quote = False

    def close_blocks(self) -> None:
        if self.list_tag:
            self.out.append(f"</{self.list_tag}>")
            self.list_tag = None
        if self.in_quote:
            self.out.append("</blockquote>")
            self.in_quote = False

    def open_list(self, tag: str) -> None:
        if self.in_quote:
            self.out.append("</blockquote>")
            self.in_quote = False
        if self.list_tag != tag:
            if self.list_tag:
                self.out.append(f"</{self.list_tag}>")
            self.out.append(f"<{tag}>")
            self.list_tag = tag

    def feed(self, line: str) -> None:
        stripped = line.strip()

        if stripped.startswith("```"):
            if self.in_code:
                self.out.append("</code></pre>")
            else:
                self.close_blocks()
                self.out.append("<pre><code>")
            self.in_code = not self.in_code
            return

        if self.in_code:
            self.out.append(html.escape(line) + "\n")
            return

        heading = parse_heading(line)
        if heading:
            level, text = heading
            self.close_blocks()
            self.out.append(f"<h{level}>{process_inline(text)}</h{level}>")
        elif stripped.startswith(("- ", "* ")):
            self.open_list("ul")
            self.out.append(f"<li>{process_inline(stripped[2:])}</li>")
        elif ORDERED_ITEM_PATTERN.match(stripped):
            self.open_list("ol")
            content = stripped.split(".", 1)[1].strip()
            self.out.append(f"<li>{process_inline(content)}</li>")
        elif stripped.startswith("> "):
            if self.list_tag:
                self.out.append(f"</{self.list_tag}>")
                self.list_tag = None
            if not self.in_quote:
                self.out.append("<blockquote>")
                self.in_quote = True
            self.out.append(f"<p>{process_inline(stripped[2:])}</p>")
        elif stripped in ("---", "***"):
            self.close_blocks()
            self.out.append("<hr/>")
        elif not stripped:
            self.close_blocks()
            self.out.append("<br/>")
        else:
            self.close_blocks()
            self.out.append(f"<p>{process_inline(line)}</p>")

    def finish(self) -> str:
        if self.in_code:
            self.out.append("</code></pre>")
            self.in_code = False
        self.close_blocks()
        return "".join(self.out)


def convert_markdown_to_html(markdown: str) -> str:
    """Convert Markdown text to an HTML fragment."""
    converter = _Converter()
    for line in markdown.split("\n"):
        converter.feed(line.rstrip("\r"))
    return converter.finish()


def find_headings(markdown: str) -> list[tuple[int, str]]:
    """ATX headings outside fenced code blocks, in document order."""
    headings = []
    in_code = False
    for line in markdown.split("\n"):
        line = line.rstrip("\r")
        if line.strip().startswith("```"):
            in_code = not in_code
            continue
        if not in_code:
            heading = parse_heading(line)
            if heading and heading[1]:
                headings.append(heading)
    return headings


class MarkdownParser(BookParser):
    """Parse Markdown or plain-text files into a single-chapter document."""

    format = BookFormat.MARKDOWN

    def _read_text(self) -> str | None:
        try:
            return read_text_source(self.source)
        except OSError as e:
            log.error(f"Cannot read Markdown file: {e}")
            return None

    def parse(self) -> Document | None:
        """Parse the Markdown file and return complete structure."""
        text = self._read_text()
        if text is None:
            return None

        chapter = ChapterRef(index=0, kind=RefKind.DOCUMENT)
        self._chapters = [chapter]

        headings = find_headings(text)
        toc = [
            TOCEntry(title=title, target=chapter, level=level - 1, order=i)
            for i, (level, title) in enumerate(headings)
        ]
        title = next((title for level, title in headings if level == 1), None)

        document = Document(
            title=title or self.fallback_title,
            author=self.settings.default_author,
            source_format=BookFormat.MARKDOWN,
            chapters=self._chapters,
            toc=toc,
        )
        log.info(f"Parsed Markdown '{document.title}': {len(toc)} headings")
        return document

    def _read_chapter(self, ref: ChapterRef) -> str | None:
        if ref.kind is not RefKind.DOCUMENT:
            return None
        text = self._read_text()
        if text is None:
            return None
        return convert_markdown_to_html(text)
