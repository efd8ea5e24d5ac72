"""MOBI/AZW parsing: PalmDB record table, EXTH metadata and PalmDOC text records.

Only DRM-free files are supported. Every offset and length read from the
file is bounds-checked before use; corrupt records are skipped rather than
failing the book.
"""

import logging
import re
import struct

from bs4 import BeautifulSoup

from ebook_engine.core.containers import BinaryContainer
from ebook_engine.core.content_processor import ContentProcessor
from ebook_engine.core.palmdoc import decompress_palmdoc
from ebook_engine.core.parser_factory import BookParser
from ebook_engine.core.validators import PALMDB_SIGNATURES
from ebook_engine.models.book import BookMetadata, ChapterRef, Document, TOCEntry
from ebook_engine.models.formats import BookFormat, RefKind

log = logging.getLogger(__name__)

PALMDB_HEADER_SIZE = 78
RECORD_INFO_SIZE = 8
MOBI_HEADER_PROBE = 256
EXTH_FLAG = 0x40
NO_COMPRESSION = 1

EXTH_FIELDS = {
    100: "author",
    105: "title",
    106: "publisher",
    109: "description",
}

NUMBER_WORDS = (
    "one|two|three|four|five|six|seven|eight|nine|ten|eleven|twelve|thirteen"
    "|fourteen|fifteen|sixteen|seventeen|eighteen|nineteen|twenty"
)
HEADING_PATTERN = re.compile(
    r"^\s*("
    rf"(?:chapter|part|book)\s+(?:\d+|[ivxlcdm]+|{NUMBER_WORDS})\b[^\n]*"
    r"|prologue\b.*|epilogue\b.*|introduction|preface|foreword|afterword"
    r")\s*$",
    re.IGNORECASE | re.MULTILINE,
)
MAX_HEADING_LENGTH = 80


def parse_exth(data: bytes) -> dict[str, str]:
    """Parse an EXTH block into known metadata fields.

    Layout: ``EXTH``, header length (u32), record count (u32), then records of
    (type u32, length u32, payload). Stops at the first record that would
    overrun the buffer.
    """
    metadata: dict[str, str] = {}
    if len(data) < 12 or data[:4] != b"EXTH":
        return metadata

    (record_count,) = struct.unpack_from(">I", data, 8)
    offset = 12
    for _ in range(record_count):
        if offset + 8 > len(data):
            break
        record_type, record_length = struct.unpack_from(">II", data, offset)
        if record_length < 8 or offset + record_length > len(data):
            log.debug(f"EXTH record at {offset} overruns buffer; stopping")
            break
        field = EXTH_FIELDS.get(record_type)
        if field is not None:
            value = data[offset + 8:offset + record_length].decode("utf-8", errors="replace").strip()
            if value:
                metadata[field] = value
        offset += record_length

    return metadata


def find_headings(text: str) -> list[str]:
    """Heading-like lines of a decoded text record (plain text or MOBI markup)."""
    headings: list[str] = []
    if "<" in text:
        soup = BeautifulSoup(text, "lxml")
        for tag in soup.find_all(["h1", "h2"]):
            heading = tag.get_text(" ", strip=True)
            if heading:
                headings.append(heading)
        text = soup.get_text("\n")

    for match in HEADING_PATTERN.finditer(text):
        heading = re.sub(r"\s+", " ", match.group(1)).strip()
        if heading and len(heading) <= MAX_HEADING_LENGTH and heading not in headings:
            headings.append(heading)
    return headings


class MobiParser(BookParser):
    """Parse MOBI/AZW (PalmDB) files; one chapter per non-empty text record."""

    format = BookFormat.MOBI

    def __init__(self, source, settings=None, name=None):
        super().__init__(source, settings, name)
        self._container: BinaryContainer | None = None
        self._offsets: list[int] = []
        self._compression = 0
        self._texts: list[str] = []
        self.processor = ContentProcessor()

    def parse(self) -> Document | None:
        """Parse the MOBI file and return complete structure."""
        try:
            self._release()
            self._container = BinaryContainer(self.source)
        except OSError as e:
            log.error(f"Cannot open MOBI file: {e}")
            return None

        # Step 1: PalmDB header
        header = self._container.read_at(0, PALMDB_HEADER_SIZE)
        if len(header) < PALMDB_HEADER_SIZE or header[60:68] not in PALMDB_SIGNATURES:
            log.error(f"Invalid AZW/MOBI signature: {header[60:68]!r}")
            return None
        (record_count,) = struct.unpack_from(">H", header, 76)
        if record_count < 1:
            log.error("No records found in file")
            return None

        # Step 2: record offset table
        self._offsets = self._read_offsets(record_count)
        if not self._offsets:
            return None

        # Steps 3-4: MOBI header and EXTH
        exth = self._read_exth()
        metadata = BookMetadata(
            publisher=exth.get("publisher"),
            description=exth.get("description"),
        )

        # Step 5: text records
        warnings: list[str] = []
        self._chapters, self._texts = self._read_text_records(warnings)
        if not self._texts:
            log.error("No text content found in MOBI records")
            return None

        # Step 6
        title = exth.get("title") or self.fallback_title
        document = Document(
            title=title,
            author=exth.get("author") or self.settings.default_author,
            source_format=BookFormat.MOBI,
            chapters=self._chapters,
            toc=self._build_toc(title),
            metadata=metadata,
            warnings=warnings,
        )
        log.info(f"Parsed MOBI '{document.title}': {len(document.chapters)} text records")
        return document

    def _read_offsets(self, record_count: int) -> list[int]:
        """Big-endian record offsets; the unique-id half of each entry is ignored."""
        table = self._container.read_at(PALMDB_HEADER_SIZE, record_count * RECORD_INFO_SIZE)
        available = len(table) // RECORD_INFO_SIZE
        if available < record_count:
            log.warning(f"Record table truncated: {available} of {record_count} entries")
        return [
            struct.unpack_from(">I", table, i * RECORD_INFO_SIZE)[0]
            for i in range(available)
        ]

    def _record_span(self, index: int) -> tuple[int, int]:
        """(offset, size) of a record; the last record runs to end of file."""
        offset = self._offsets[index]
        next_offset = self._offsets[index + 1] if index + 1 < len(self._offsets) else self._container.size
        return offset, next_offset - offset

    def _read_exth(self) -> dict[str, str]:
        """EXTH metadata from the header record, if its flag bit is set."""
        record0 = self._container.read_at(self._offsets[0], MOBI_HEADER_PROBE)
        if len(record0) >= 4:
            (self._compression,) = struct.unpack_from(">H", record0, 0)
        if len(record0) < 132:
            return {}
        (flags,) = struct.unpack_from(">I", record0, 128)
        if not flags & EXTH_FLAG:
            return {}

        _, record0_size = self._record_span(0)
        exth_size = min(record0_size, self.settings.max_record_size) - self.settings.exth_offset
        if exth_size <= 0:
            return {}
        data = self._container.read_at(self._offsets[0] + self.settings.exth_offset, exth_size)
        return parse_exth(data)

    def _decode_record(self, index: int) -> str | None:
        """Decompressed, decoded, NUL-stripped text of one record, or None if skipped."""
        offset, size = self._record_span(index)
        if size <= 0 or size > self.settings.max_record_size:
            log.debug(f"Skipping record {index}: size {size}")
            return None
        data = self._container.read_at(offset, size)
        if self._compression != NO_COMPRESSION:
            data = decompress_palmdoc(data)
        return data.decode("utf-8", errors="replace").replace("\x00", "").strip()

    def _read_text_records(self, warnings: list[str]) -> tuple[list[ChapterRef], list[str]]:
        chapters: list[ChapterRef] = []
        texts: list[str] = []
        last = min(len(self._offsets), self.settings.max_text_records)
        if len(self._offsets) > last:
            log.info(f"Reading first {last - 1} of {len(self._offsets) - 1} text records")

        for i in range(1, last):
            text = self._decode_record(i)
            if text is None:
                warnings.append(f"Skipped corrupt record {i}")
                continue
            if not text:
                continue
            chapters.append(
                ChapterRef(
                    index=len(chapters),
                    kind=RefKind.RECORD,
                    key=str(i),
                    offset=self._offsets[i],
                )
            )
            texts.append(text)
        return chapters, texts

    def _build_toc(self, title: str) -> list[TOCEntry]:
        """Heading heuristics over the record texts; falls back to one entry."""
        entries: list[TOCEntry] = []
        for chapter, text in zip(self._chapters, self._texts):
            for heading in find_headings(text):
                entries.append(
                    TOCEntry(
                        title=heading,
                        href=f"record{chapter.key}",
                        target=chapter,
                        level=0,
                        order=len(entries),
                    )
                )
        if not entries and self._chapters:
            entries.append(
                TOCEntry(title=title, href=f"record{self._chapters[0].key}", target=self._chapters[0])
            )
        return entries

    def full_text(self) -> str:
        """All text records joined by blank lines."""
        return "\n\n".join(self._texts)

    def _read_chapter(self, ref: ChapterRef) -> str | None:
        if self._container is None or not ref.key.isdigit():
            return None
        record = int(ref.key)
        if record < 1 or record >= len(self._offsets):
            return None
        text = self._decode_record(record)
        if not text:
            return None
        return self.processor.to_html(text)

    def _release(self) -> None:
        if self._container is not None:
            self._container.close()
            self._container = None
