"""Turn chapter HTML into plain text and speakable chunks.

Chunk offsets index into the text passed to ``split_into_paragraphs``:
for every chunk, ``text[chunk.start_position:chunk.end_position] == chunk.text``.
"""

import logging
import re
from collections.abc import Mapping

from bs4 import BeautifulSoup

from ebook_engine.config import DEFAULT_SETTINGS, EngineSettings
from ebook_engine.models.tts import ChunkKind, TextChunk
from ebook_engine.tts.replacements import ReplacementProcessor, apply_replacements

log = logging.getLogger(__name__)

MAX_CHUNK_SIZE = DEFAULT_SETTINGS.max_chunk_size

BLOCK_END = re.compile(r"</(p|div|h[1-6]|li|br)>", re.IGNORECASE)
LINE_BREAK = re.compile(r"<br\s*/?>", re.IGNORECASE)
INLINE_END = re.compile(r"</(span|a|strong|em|b|i)>", re.IGNORECASE)

PARAGRAPH_BREAK = re.compile(r"\n{2,}")
SENTENCE_END = re.compile(r"([.!?]+)\s+")
WORD = re.compile(r"\S+")


def _clean_whitespace(text: str) -> str:
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r" ?\n ?", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def extract_text_from_html(
    html: str,
    rules: Mapping[str, str] | ReplacementProcessor | None = None,
    enabled: bool = True,
) -> str:
    """Plain text of ``html`` with paragraph breaks kept as blank lines.

    Input without any ``<`` is taken to be plain text already. If ``rules``
    is given the replacement rules are applied to the result.
    """
    if "<" not in html:
        text = html
    else:
        # Source formatting whitespace carries no meaning in HTML
        processed = re.sub(r"\s+", " ", html)
        processed = BLOCK_END.sub("\n\n", processed)
        processed = LINE_BREAK.sub("\n", processed)
        processed = INLINE_END.sub(" ", processed)

        soup = BeautifulSoup(processed, "lxml")
        for tag in soup(["script", "style", "head"]):
            tag.decompose()
        text = _clean_whitespace(soup.get_text())

    if rules is None or not enabled:
        return text
    if isinstance(rules, ReplacementProcessor):
        return rules.apply(text)
    return apply_replacements(text, rules, enabled)


def _strip_span(text: str, start: int, end: int) -> tuple[int, int]:
    """Narrow ``[start, end)`` to exclude leading and trailing whitespace."""
    while start < end and text[start].isspace():
        start += 1
    while end > start and text[end - 1].isspace():
        end -= 1
    return start, end


def _sentence_spans(text: str, start: int, end: int) -> list[tuple[int, int]]:
    """Sentences of ``text[start:end]``; the unterminated tail is the last one."""
    spans = []
    last = start
    for match in SENTENCE_END.finditer(text, start, end):
        spans.append(_strip_span(text, last, match.end(1)))
        last = match.end()
    if last < end:
        spans.append(_strip_span(text, last, end))
    return [(s, e) for s, e in spans if s < e]


def _word_spans(text: str, start: int, end: int, limit: int) -> list[tuple[int, int]]:
    """Split an over-long span at word boundaries; over-long words are cut."""
    spans = []
    chunk_start = chunk_end = None
    for match in WORD.finditer(text, start, end):
        word_start, word_end = match.span()
        if chunk_start is not None and word_end - chunk_start <= limit:
            chunk_end = word_end
            continue
        if chunk_start is not None:
            spans.append((chunk_start, chunk_end))
            chunk_start = None
        while word_end - word_start > limit:
            spans.append((word_start, word_start + limit))
            word_start += limit
        chunk_start, chunk_end = word_start, word_end
    if chunk_start is not None:
        spans.append((chunk_start, chunk_end))
    return spans


def split_into_paragraphs(text: str, settings: EngineSettings | None = None) -> list[TextChunk]:
    """Split normalized text into paragraph chunks, or sentence chunks for long paragraphs.

    Paragraphs are separated by two or more newlines. A paragraph longer than
    ``settings.max_chunk_size`` is split into sentences; a sentence that is
    still too long is split between words.
    """
    limit = (settings or DEFAULT_SETTINGS).max_chunk_size
    chunks: list[TextChunk] = []

    position = 0
    bounds = [(m.start(), m.end()) for m in PARAGRAPH_BREAK.finditer(text)]
    bounds.append((len(text), len(text)))
    for break_start, break_end in bounds:
        start, end = _strip_span(text, position, break_start)
        position = break_end
        if start >= end:
            continue

        if end - start <= limit:
            chunks.append(TextChunk(text=text[start:end], start_position=start, kind=ChunkKind.PARAGRAPH))
            continue

        for s, e in _sentence_spans(text, start, end):
            spans = [(s, e)] if e - s <= limit else _word_spans(text, s, e, limit)
            for span_start, span_end in spans:
                chunks.append(
                    TextChunk(
                        text=text[span_start:span_end],
                        start_position=span_start,
                        kind=ChunkKind.SENTENCE,
                    )
                )

    log.debug(f"Split {len(text)} characters into {len(chunks)} chunks")
    return chunks


def find_chunk_at_position(chunks: list[TextChunk], position: int) -> int:
    """Index of the chunk containing ``position``; 0 if none does."""
    for i, chunk in enumerate(chunks):
        if chunk.start_position <= position < chunk.end_position:
            return i
    return 0
