"""EPUB parsing: container.xml → OPF → manifest/spine → NCX or NAV table of contents."""

import logging
import posixpath
import re
import zipfile
from enum import Enum
from urllib.parse import unquote

from ebook_engine.core.containers import ZipContainer
from ebook_engine.core.parser_factory import BookParser
from ebook_engine.core.xml_events import XmlHandler, get_attr, local_name, run_handler
from ebook_engine.errors import ContainerClosedError
from ebook_engine.models.book import BookMetadata, ChapterRef, Document, TOCEntry
from ebook_engine.models.epub import ManifestItem, OpfPackage, SpineItem
from ebook_engine.models.formats import BookFormat, RefKind

log = logging.getLogger(__name__)

CONTAINER_PATH = "META-INF/container.xml"
NCX_MEDIA_TYPE = "application/x-dtbncx+xml"
XHTML_MEDIA_TYPE = "application/xhtml+xml"
COVER_IMAGE_SUFFIXES = (".jpg", ".jpeg", ".png")


# =============================================================================
# XML handlers
# =============================================================================


class _ContainerHandler(XmlHandler):
    """Pick the ``full-path`` of the first ``<rootfile>``."""

    def __init__(self):
        self.opf_path: str | None = None

    def start(self, tag, attrib):
        if self.opf_path is None and local_name(tag) == "rootfile":
            self.opf_path = get_attr(attrib, "full-path") or None


class OpfSection(Enum):
    """Top-level OPF section the event loop is currently inside."""

    NONE = "none"
    METADATA = "metadata"
    MANIFEST = "manifest"
    SPINE = "spine"


_SECTION_TAGS = {
    "metadata": OpfSection.METADATA,
    "manifest": OpfSection.MANIFEST,
    "spine": OpfSection.SPINE,
}

# Dublin Core elements captured from <metadata>: local name -> OpfPackage field
_METADATA_FIELDS = {
    "title": "title",
    "creator": "author",
    "language": "language",
    "publisher": "publisher",
    "description": "description",
}


class _OpfHandler(XmlHandler):
    """Single pass over the OPF, one section at a time."""

    def __init__(self):
        self.package = OpfPackage()
        self.section = OpfSection.NONE
        self.has_spine = False
        self._field: str | None = None
        self._text: list[str] = []

    def start(self, tag, attrib):
        name = local_name(tag)
        if name in _SECTION_TAGS:
            self.section = _SECTION_TAGS[name]
            if self.section is OpfSection.SPINE:
                self.has_spine = True
            return

        if self.section is OpfSection.METADATA:
            if name in _METADATA_FIELDS and self._field is None:
                self._field = name
                self._text = []
            elif name == "meta" and get_attr(attrib, "name") == "cover":
                self.package.cover_id = get_attr(attrib, "content") or None
        elif self.section is OpfSection.MANIFEST and name == "item":
            item_id = get_attr(attrib, "id") or ""
            href = get_attr(attrib, "href") or ""
            if item_id and href:
                self.package.manifest[item_id] = ManifestItem(
                    id=item_id,
                    href=href,
                    media_type=get_attr(attrib, "media-type") or "",
                )
        elif self.section is OpfSection.SPINE and name == "itemref":
            idref = get_attr(attrib, "idref") or ""
            if idref:
                self.package.spine.append(
                    SpineItem(idref=idref, linear=get_attr(attrib, "linear") != "no")
                )

    def data(self, text):
        if self._field is not None:
            self._text.append(text)

    def end(self, tag):
        name = local_name(tag)
        if name in _SECTION_TAGS and self.section is _SECTION_TAGS[name]:
            self.section = OpfSection.NONE
        elif name == self._field:
            attr = _METADATA_FIELDS[name]
            value = "".join(self._text).strip()
            # First occurrence wins
            if value and not getattr(self.package, attr):
                setattr(self.package, attr, value)
            self._field = None


class _NcxHandler(XmlHandler):
    """Collect every ``<navPoint>`` (nested ones flattened) in document order."""

    def __init__(self):
        self.points: list[dict] = []
        self._stack: list[dict] = []
        self._in_label = False
        self._in_text = False

    def start(self, tag, attrib):
        name = local_name(tag)
        if name == "navPoint":
            point = {
                "id": get_attr(attrib, "id") or "",
                "play_order": get_attr(attrib, "playOrder"),
                "title": [],
                "src": "",
            }
            self.points.append(point)
            self._stack.append(point)
        elif name == "navLabel":
            self._in_label = True
        elif name == "text" and self._in_label:
            self._in_text = True
        elif name == "content" and self._stack and not self._stack[-1]["src"]:
            self._stack[-1]["src"] = get_attr(attrib, "src") or ""

    def data(self, text):
        if self._in_text and self._stack:
            self._stack[-1]["title"].append(text)

    def end(self, tag):
        name = local_name(tag)
        if name == "navPoint" and self._stack:
            self._stack.pop()
        elif name == "navLabel":
            self._in_label = False
        elif name == "text":
            self._in_text = False


class _NavHandler(XmlHandler):
    """Collect ``<a href>`` links of the first ``<nav epub:type="toc">``."""

    def __init__(self):
        self.links: list[tuple[str, str]] = []
        self._nav_depth = 0
        self._in_toc = False
        self._done = False
        self._href: str | None = None
        self._text: list[str] = []

    def start(self, tag, attrib):
        name = local_name(tag).lower()
        if name == "nav":
            if self._in_toc:
                self._nav_depth += 1
            elif not self._done:
                nav_type = get_attr(attrib, "epub:type") or get_attr(attrib, "type") or ""
                if "toc" in nav_type.split():
                    self._in_toc = True
                    self._nav_depth = 1
        elif name == "a" and self._in_toc:
            self._href = get_attr(attrib, "href") or ""
            self._text = []

    def data(self, text):
        if self._href is not None:
            self._text.append(text)

    def end(self, tag):
        name = local_name(tag).lower()
        if name == "nav" and self._in_toc:
            self._nav_depth -= 1
            if self._nav_depth == 0:
                self._in_toc = False
                self._done = True
        elif name == "a" and self._href is not None:
            title = re.sub(r"\s+", " ", "".join(self._text)).strip()
            if title and self._href:
                self.links.append((title, self._href))
            self._href = None


# =============================================================================
# Parser
# =============================================================================


def _resolve_href(base_dir: str, href: str) -> str:
    """Archive path for an href relative to ``base_dir``."""
    path = posixpath.join(base_dir, unquote(href))
    return posixpath.normpath(path).lstrip("/")


class EpubParser(BookParser):
    """Parse EPUB archives and resolve spine chapters on demand."""

    format = BookFormat.EPUB

    def __init__(self, source, settings=None, name=None):
        super().__init__(source, settings, name)
        self._container: ZipContainer | None = None
        self.package: OpfPackage | None = None
        self.opf_path: str | None = None
        self.opf_base = ""

    def parse(self) -> Document | None:
        """Parse the EPUB and return complete structure."""
        try:
            self._release()
            self._container = ZipContainer(self.source)
        except (zipfile.BadZipFile, OSError, EOFError, ValueError) as e:
            log.error(f"Cannot open EPUB archive: {e}")
            return None

        # Step 1: OPF location from container.xml
        self.opf_path = self._find_opf_path()
        if not self.opf_path:
            log.error("Could not find OPF file path")
            return None

        # Step 2: OPF base directory
        self.opf_base = self.opf_path.rsplit("/", 1)[0] + "/" if "/" in self.opf_path else ""

        # Step 3: metadata, manifest and spine
        opf_bytes = self._read_entry(self.opf_path)
        if opf_bytes is None:
            log.error(f"Could not read OPF file {self.opf_path}")
            return None
        handler = _OpfHandler()
        if not run_handler(handler, opf_bytes, root="package"):
            log.error(f"Could not parse OPF file {self.opf_path}")
            return None
        if not handler.has_spine:
            log.error(f"OPF file {self.opf_path} has no spine")
            return None
        self.package = handler.package

        # Steps 4-6: table of contents
        warnings: list[str] = []
        toc = self._get_toc(warnings)

        self._chapters = self._get_chapters(toc)
        cover_href = self.find_cover_href()

        document = Document(
            title=self.package.title or self.fallback_title,
            author=self.package.author or self.settings.default_author,
            source_format=BookFormat.EPUB,
            chapters=self._chapters,
            toc=toc,
            metadata=BookMetadata(
                language=self.package.language,
                publisher=self.package.publisher,
                description=self.package.description,
                cover_href=cover_href,
            ),
            warnings=warnings,
        )
        log.info(
            f"Parsed EPUB '{document.title}': {len(document.chapters)} chapters, "
            f"{len(document.toc)} TOC entries"
        )
        return document

    def _read_entry(self, path: str) -> bytes | None:
        return self._container.read_bytes(path) if self._container else None

    def _read_href(self, base_dir: str, href: str) -> bytes | None:
        """Read ``base_dir + href`` literally, then with unquoting and ``..`` folding."""
        data = self._read_entry(base_dir + href)
        if data is None:
            resolved = _resolve_href(base_dir, href)
            if resolved != base_dir + href:
                data = self._read_entry(resolved)
        return data

    def _find_opf_path(self) -> str | None:
        """Find the path to the OPF file from META-INF/container.xml."""
        container_xml = self._read_entry(CONTAINER_PATH)
        if container_xml is None:
            return None
        handler = _ContainerHandler()
        run_handler(handler, container_xml)
        return handler.opf_path

    def _find_toc_item(self) -> ManifestItem | None:
        """NCX item if present, else an XHTML item that looks like an EPUB3 NAV."""
        items = list(self.package.manifest.values())
        for item in items:
            if item.media_type == NCX_MEDIA_TYPE or item.href.endswith(".ncx"):
                return item
        for item in items:
            if item.media_type == XHTML_MEDIA_TYPE and ("nav" in item.href or "toc" in item.href):
                return item
        return None

    def _get_toc(self, warnings: list[str]) -> list[TOCEntry]:
        """Extract the table of contents; nesting is flattened and every entry is level 0."""
        toc_item = self._find_toc_item()
        if toc_item is None:
            log.warning("No TOC file found")
            return []

        toc_bytes = self._read_href(self.opf_base, toc_item.href)
        if toc_bytes is None:
            warnings.append(f"TOC file {toc_item.href} is missing")
            return []

        # NCX/NAV hrefs are relative to the TOC file itself
        toc_path = _resolve_href(self.opf_base, toc_item.href)
        toc_dir = posixpath.dirname(toc_path)
        toc_dir = toc_dir + "/" if toc_dir else ""

        is_ncx = toc_item.media_type == NCX_MEDIA_TYPE or toc_item.href.endswith(".ncx")
        raw = self._parse_ncx(toc_bytes) if is_ncx else self._parse_nav(toc_bytes)
        if raw is None:
            warnings.append(f"TOC file {toc_item.href} could not be parsed")
            return []

        spine_paths = self._spine_path_index()
        entries = []
        for title, href, order in raw:
            file_part, _, anchor = href.partition("#")
            path = _resolve_href(toc_dir, file_part) if file_part else ""
            spine_index = spine_paths.get(path)
            target = None
            if spine_index is not None:
                spine_item = self.package.spine[spine_index]
                target = ChapterRef(
                    index=spine_index,
                    kind=RefKind.SPINE,
                    key=spine_item.idref,
                    linear=spine_item.linear,
                )
            entries.append(
                TOCEntry(
                    title=title,
                    href=path + (f"#{anchor}" if anchor else ""),
                    target=target,
                    anchor=anchor or None,
                    order=order,
                )
            )
        return sorted(entries, key=lambda entry: entry.order)

    def _parse_ncx(self, content: bytes) -> list[tuple[str, str, int]] | None:
        """Parse NCX (EPUB 2) navPoints into (title, href, order)."""
        handler = _NcxHandler()
        if not run_handler(handler, content):
            return None
        result = []
        for i, point in enumerate(handler.points):
            title = re.sub(r"\s+", " ", "".join(point["title"])).strip()
            if not title and not point["src"]:
                continue
            try:
                order = int(point["play_order"])
            except (TypeError, ValueError):
                order = i
            result.append((title, point["src"], order))
        return result

    def _parse_nav(self, content: bytes) -> list[tuple[str, str, int]] | None:
        """Parse NAV (EPUB 3) links into (title, href, order)."""
        handler = _NavHandler()
        if not run_handler(handler, content):
            return None
        return [(title, href, i) for i, (title, href) in enumerate(handler.links)]

    def _spine_path_index(self) -> dict[str, int]:
        """Map normalized archive paths to their first spine index."""
        index: dict[str, int] = {}
        for i, spine_item in enumerate(self.package.spine):
            item = self.package.manifest.get(spine_item.idref)
            if item is None:
                continue
            index.setdefault(_resolve_href(self.opf_base, item.href), i)
        return index

    def _get_chapters(self, toc: list[TOCEntry]) -> list[ChapterRef]:
        """One reference per spine item, titled from the TOC where possible."""
        toc_titles: dict[int, str] = {}
        for entry in toc:
            if entry.target is not None and entry.title:
                toc_titles.setdefault(entry.target.index, entry.title)

        return [
            ChapterRef(
                index=i,
                kind=RefKind.SPINE,
                key=spine_item.idref,
                linear=spine_item.linear,
                title=toc_titles.get(i),
            )
            for i, spine_item in enumerate(self.package.spine)
        ]

    def _read_chapter(self, ref: ChapterRef) -> str | None:
        """Spine index → manifest href → archive entry, decoded as UTF-8."""
        if self.package is None:
            return None
        if ref.index < 0 or ref.index >= len(self.package.spine):
            return None
        spine_item = self.package.spine[ref.index]
        item = self.package.manifest.get(spine_item.idref)
        if item is None:
            log.warning(f"Spine item {spine_item.idref!r} is not in the manifest")
            return None
        data = self._read_href(self.opf_base, item.href)
        if data is None:
            log.warning(f"Chapter file {self.opf_base + item.href} not found")
            return None
        return data.decode("utf-8-sig", errors="replace")

    def find_cover_href(self) -> str | None:
        """Archive path of the cover image, or None."""
        if self.package is None:
            return None
        manifest = self.package.manifest

        # Method 1: <meta name="cover" content="id">
        if self.package.cover_id:
            item = manifest.get(self.package.cover_id)
            if item is not None and item.media_type.startswith("image/"):
                return self.opf_base + item.href

        images = [item for item in manifest.values() if item.media_type.startswith("image/")]

        # Method 2: "cover" in id or href
        for item in images:
            if "cover" in item.id.lower() or "cover" in item.href.lower():
                return self.opf_base + item.href

        # Method 3: first jpg/png
        for item in images:
            if item.href.lower().endswith(COVER_IMAGE_SUFFIXES):
                return self.opf_base + item.href

        return None

    def read_cover(self) -> bytes | None:
        """Cover image bytes, or None if the book has no cover."""
        if self._closed:
            raise ContainerClosedError("epub parser has been closed")
        href = self.find_cover_href()
        if href is None:
            return None
        return self._read_href("", href)

    def _release(self) -> None:
        if self._container is not None:
            self._container.close()
            self._container = None
