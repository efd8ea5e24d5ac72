"""Normalize parser output into a minimal HTML subset, plain text or Markdown."""

import html
import re
from typing import Literal

from bs4 import BeautifulSoup, Comment
from markdownify import markdownify as md

# Tags a renderer is expected to handle; anything else is unwrapped
ALLOWED_TAGS = {
    "p", "div", "span", "br", "hr",
    "h1", "h2", "h3", "h4", "h5", "h6",
    "em", "strong", "b", "i", "u", "sup", "sub", "code", "pre",
    "a", "img",
    "ul", "ol", "li", "blockquote",
    "table", "thead", "tbody", "tr", "th", "td",
}
ALLOWED_ATTRIBUTES = {
    "a": {"href"},
    "img": {"src", "alt"},
}
GLOBAL_ATTRIBUTES = {"id", "class"}
DROPPED_TAGS = ["script", "style", "head", "title", "meta", "link", "nav", "header", "footer", "aside"]


class ContentProcessor:
    """Process format-specific markup into renderer- and TTS-friendly forms."""

    def process(
        self,
        content: str | bytes,
        output_format: Literal["html", "text", "markdown"] = "html",
    ) -> str:
        """Convert chapter content to the specified format."""
        if isinstance(content, bytes):
            content = content.decode("utf-8", errors="replace")
        if output_format == "html":
            return self.to_html(content)

        soup = self._soup(self.to_html(content))
        if output_format == "text":
            return self._to_plain_text(soup)
        else:  # markdown
            return self._to_markdown(soup)

    def to_html(self, content: str) -> str:
        """Minimal HTML for markup; escaped paragraphs for plain text."""
        if "<" not in content:
            return self.text_to_html(content)
        return self._to_clean_html(self._soup(content))

    def text_to_html(self, text: str) -> str:
        """Wrap blank-line separated plain text in ``<p>`` blocks."""
        paragraphs = []
        for block in re.split(r"\n\s*\n", text.strip()):
            block = block.strip()
            if block:
                lines = [html.escape(line.strip()) for line in block.split("\n")]
                paragraphs.append(f"<p>{'<br/>'.join(lines)}</p>")
        return "".join(paragraphs)

    def _soup(self, content: str) -> BeautifulSoup:
        soup = BeautifulSoup(content, "lxml")
        for tag in soup(DROPPED_TAGS):
            tag.decompose()
        for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
            comment.extract()
        return soup

    def _to_clean_html(self, soup: BeautifulSoup) -> str:
        """Return cleaned body HTML restricted to ``ALLOWED_TAGS``."""
        body = soup.body or soup
        for tag in body.find_all(True):
            name = tag.name.lower()
            if name not in ALLOWED_TAGS:
                tag.unwrap()
                continue
            allowed = GLOBAL_ATTRIBUTES | ALLOWED_ATTRIBUTES.get(name, set())
            tag.attrs = {key: value for key, value in tag.attrs.items() if key in allowed}
        return "".join(str(child) for child in body.contents).strip()

    def _to_plain_text(self, soup: BeautifulSoup) -> str:
        """Extract plain text with paragraph preservation."""
        paragraphs = []
        for p in soup.find_all(["p", "h1", "h2", "h3", "h4", "h5", "h6", "li", "pre", "blockquote"]):
            if p.find_parent(["p", "li", "blockquote"]):
                continue
            text = p.get_text(" ", strip=True)
            if text:
                paragraphs.append(re.sub(r"\s+", " ", text))
        return "\n\n".join(paragraphs)

    def _to_markdown(self, soup: BeautifulSoup) -> str:
        """Convert BeautifulSoup to clean Markdown."""
        body = soup.body or soup
        markdown = md(
            str(body),
            heading_style="ATX",
            bullets="-",
        )
        # Clean up excessive whitespace
        lines = [line.rstrip() for line in markdown.split("\n")]
        # Remove multiple consecutive blank lines
        cleaned = []
        prev_blank = False
        for line in lines:
            is_blank = not line.strip()
            if is_blank and prev_blank:
                continue
            cleaned.append(line)
            prev_blank = is_blank

        return "\n".join(cleaned).strip()
