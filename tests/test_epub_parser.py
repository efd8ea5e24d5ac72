import io
import zipfile
from pathlib import Path

import pytest

from ebook_engine.core.epub_parser import EpubParser
from ebook_engine.errors import ContainerClosedError
from ebook_engine.models.formats import BookFormat, RefKind


def test_parse_metadata_and_spine(epub_bytes: bytes) -> None:
    parser = EpubParser(epub_bytes, name="sample")
    book = parser.parse()

    assert book is not None
    assert book.source_format is BookFormat.EPUB
    assert book.title == "Sample Book"
    assert book.author == "Jane Author"
    assert book.metadata.language == "en"
    assert book.metadata.publisher == "Example Press"
    assert book.chapter_count == 2
    assert [c.key for c in book.chapters] == ["ch1", "ch2"]
    assert all(c.kind is RefKind.SPINE for c in book.chapters)
    assert book.chapters[0].linear
    assert not book.chapters[1].linear


def test_every_chapter_resolves(epub_bytes: bytes) -> None:
    with EpubParser(epub_bytes) as parser:
        book = parser.parse()
        for i in range(book.chapter_count):
            assert parser.get_chapter_html(i) is not None
        assert "Hello from chapter one." in parser.get_chapter_html(0)
        # href is URL-encoded in the manifest, literal in the archive
        assert "Second chapter text." in parser.get_chapter_html(book.chapters[1])


def test_out_of_range_chapters_return_none(epub_bytes: bytes) -> None:
    with EpubParser(epub_bytes) as parser:
        book = parser.parse()
        assert parser.get_chapter_html(-1) is None
        assert parser.get_chapter_html(book.chapter_count) is None


def test_resolution_after_close_raises(epub_bytes: bytes) -> None:
    parser = EpubParser(epub_bytes)
    book = parser.parse()
    parser.close()

    with pytest.raises(ContainerClosedError):
        parser.get_chapter_html(book.chapters[0])
    with pytest.raises(ContainerClosedError):
        parser.read_cover()


def test_ncx_toc_is_flattened(epub_bytes: bytes) -> None:
    with EpubParser(epub_bytes) as parser:
        book = parser.parse()

    assert [e.title for e in book.toc] == ["Chapter One", "Section", "Chapter Two"]
    # nesting is flattened
    assert [e.level for e in book.toc] == [0, 0, 0]
    assert [e.order for e in book.toc] == [1, 2, 3]
    assert book.toc[1].anchor == "s1"
    assert book.toc[1].href == "OEBPS/text/ch1.xhtml#s1"
    assert book.toc[0].target.index == 0
    assert book.toc[2].target.index == 1
    assert book.chapters[0].title == "Chapter One"
    assert book.chapters[1].title == "Chapter Two"


def test_nav_toc(nav_epub_bytes: bytes) -> None:
    with EpubParser(nav_epub_bytes) as parser:
        book = parser.parse()

    assert book.title == "Nav Book"
    assert book.author == "Unknown"
    assert [e.title for e in book.toc] == ["First Chapter", "Nested"]
    assert [e.level for e in book.toc] == [0, 0]
    assert book.toc[1].anchor == "p2"
    assert all(e.target is not None and e.target.index == 0 for e in book.toc)


def test_cover(epub_bytes: bytes) -> None:
    with EpubParser(epub_bytes) as parser:
        book = parser.parse()
        assert book.metadata.cover_href == "OEBPS/images/cover.jpg"
        assert parser.read_cover() == b"\xff\xd8\xff\xe0cover"


def test_title_falls_back_to_file_name(tmp_path: Path, build_epub) -> None:
    opf = (
        '<?xml version="1.0"?><package xmlns="http://www.idpf.org/2007/opf">'
        "<metadata/><manifest>"
        '<item id="c" href="c.xhtml" media-type="application/xhtml+xml"/>'
        '</manifest><spine><itemref idref="c"/></spine></package>'
    )
    path = tmp_path / "my-book.epub"
    path.write_bytes(build_epub(opf, {"OEBPS/c.xhtml": "<html><body><p>x</p></body></html>"}))

    with EpubParser(path) as parser:
        book = parser.parse()

    assert book.title == "my-book"
    assert book.author == "Unknown"
    assert book.toc == []
    assert book.chapter_count == 1


def test_missing_opf_gives_no_document(build_epub) -> None:
    assert EpubParser(build_epub(None)).parse() is None


def test_missing_container_gives_no_document(build_zip) -> None:
    assert EpubParser(build_zip({"mimetype": "application/epub+zip"})).parse() is None


def test_not_a_zip_gives_no_document() -> None:
    assert EpubParser(b"PK\x03\x04 truncated").parse() is None


def test_missing_chapter_file_returns_none(build_epub) -> None:
    opf = (
        '<?xml version="1.0"?><package xmlns="http://www.idpf.org/2007/opf">'
        "<metadata/><manifest>"
        '<item id="gone" href="gone.xhtml" media-type="application/xhtml+xml"/>'
        '</manifest><spine><itemref idref="gone"/><itemref idref="not-in-manifest"/></spine></package>'
    )
    with EpubParser(build_epub(opf)) as parser:
        book = parser.parse()
        assert book.chapter_count == 2
        assert parser.get_chapter_html(0) is None
        assert parser.get_chapter_html(1) is None


def test_chapter_html_is_the_stored_entry(epub_bytes: bytes) -> None:
    with zipfile.ZipFile(io.BytesIO(epub_bytes)) as archive:
        stored = archive.read("OEBPS/text/ch1.xhtml").decode("utf-8")

    with EpubParser(epub_bytes) as parser:
        parser.parse()
        assert parser.get_chapter_html(0) == stored


@pytest.mark.parametrize(
    "opf",
    [
        "this is not xml at all",
        "",
        "<html><body><p>wrong root</p></body></html>",
        '<package xmlns="http://www.idpf.org/2007/opf"><metadata/><manifest/></package>',
    ],
)
def test_unparsable_opf_gives_no_document(build_epub, opf: str) -> None:
    assert EpubParser(build_epub(opf)).parse() is None
