from pathlib import Path

import pytest

from ebook_engine.config import EngineSettings
from ebook_engine.core.validators import (
    detect_format,
    format_from_hint,
    validate,
    validate_cbz,
    validate_docx,
    validate_epub,
    validate_fb2,
    validate_markdown,
    validate_mobi,
    validate_pdf,
)
from ebook_engine.models.formats import BookFormat, Validity


def test_truncated_epub_is_invalid(tmp_path: Path) -> None:
    path = tmp_path / "broken.epub"
    path.write_bytes(b"PK\x03\x04\x00\x00\x00\x00\x00\x00")

    assert validate_epub(path) is Validity.INVALID
    assert validate_epub(path.read_bytes()) is Validity.INVALID


def test_epub_mimetype_or_container(epub_bytes: bytes, build_zip) -> None:
    assert validate_epub(epub_bytes) is Validity.VALID
    assert validate_epub(build_zip({"META-INF/container.xml": "<container/>"})) is Validity.VALID
    assert validate_epub(build_zip({"mimetype": "application/zip"})) is Validity.INVALID
    assert validate_epub(build_zip({"other.txt": "x"})) is Validity.INVALID


def test_epub_mimetype_is_trimmed(build_zip) -> None:
    assert validate_epub(build_zip({"mimetype": "application/epub+zip\n"})) is Validity.VALID


def test_pdf_signature() -> None:
    assert validate_pdf(b"%PDF-1.7\n") is Validity.VALID
    assert validate_pdf(b"%PDF") is Validity.INVALID
    assert validate_pdf(b"") is Validity.INVALID


def test_mobi_signature(mobi_bytes: bytes) -> None:
    assert validate_mobi(mobi_bytes[:100]) is Validity.VALID
    assert validate_mobi(b"\x00" * 60 + b"TEXtREAd") is Validity.VALID
    assert validate_mobi(b"\x00" * 60 + b"BOOKMOB") is Validity.INVALID
    assert validate_mobi(b"short") is Validity.INVALID


def test_fb2_needs_declaration_and_root() -> None:
    assert validate_fb2(b'<?xml version="1.0"?>\n<FictionBook xmlns="x">') is Validity.VALID
    assert validate_fb2(b'<?xml version="1.0"?>\n<fictionbook>') is Validity.VALID
    assert validate_fb2(b"<FictionBook>") is Validity.INVALID
    assert validate_fb2(b'<?xml version="1.0"?><html/>') is Validity.INVALID


def test_fb2_root_must_be_within_sniff_window() -> None:
    data = b'<?xml version="1.0"?>' + b" " * 2000 + b"<FictionBook>"
    assert validate_fb2(data, sniff_bytes=1000) is Validity.INVALID
    assert validate_fb2(data, sniff_bytes=4000) is Validity.VALID


def test_markdown_accepts_text() -> None:
    assert validate_markdown(b"# Title\n\nSome text") is Validity.VALID
    assert validate_markdown("café".encode("utf-8")[:-1]) is Validity.VALID
    assert validate_markdown(b"") is Validity.INVALID
    assert validate_markdown(b"  \n ") is Validity.INVALID
    assert validate_markdown(b"\xff\xfe\xfd") is Validity.INVALID
    assert validate_markdown(b"bin\x00ary") is Validity.INVALID


def test_docx_and_cbz(docx_bytes: bytes, cbz_bytes: bytes, build_zip) -> None:
    assert validate_docx(docx_bytes) is Validity.VALID
    assert validate_docx(cbz_bytes) is Validity.INVALID
    assert validate_cbz(cbz_bytes) is Validity.VALID
    assert validate_cbz(build_zip({"readme.txt": "no images", "img/": b""})) is Validity.INVALID
    assert validate_cbz(b"not a zip") is Validity.INVALID


def test_validate_dispatch(fb2_bytes: bytes) -> None:
    assert validate(BookFormat.FB2, fb2_bytes) is Validity.VALID
    assert validate(BookFormat.PDF, fb2_bytes) is Validity.INVALID


@pytest.mark.parametrize(
    "hint,expected",
    [
        ("epub", BookFormat.EPUB),
        (".AZW3", BookFormat.MOBI),
        ("book.prc", BookFormat.MOBI),
        ("application/x-fictionbook+xml", BookFormat.FB2),
        ("text/plain", BookFormat.MARKDOWN),
        (BookFormat.CBZ, BookFormat.CBZ),
        ("exe", None),
        (None, None),
    ],
)
def test_format_from_hint(hint, expected) -> None:
    assert format_from_hint(hint) is expected


def test_detect_format_by_sniffing(epub_bytes, mobi_bytes, fb2_bytes, docx_bytes, cbz_bytes) -> None:
    assert detect_format(b"%PDF-1.4\n...") is BookFormat.PDF
    assert detect_format(epub_bytes) is BookFormat.EPUB
    assert detect_format(mobi_bytes) is BookFormat.MOBI
    assert detect_format(fb2_bytes) is BookFormat.FB2
    assert detect_format(docx_bytes) is BookFormat.DOCX
    assert detect_format(cbz_bytes) is BookFormat.CBZ
    assert detect_format(b"Just some notes.") is BookFormat.MARKDOWN


def test_mislabelled_hint_falls_back_to_sniffing(fb2_bytes: bytes) -> None:
    assert detect_format(fb2_bytes, hint="epub") is BookFormat.FB2


def test_path_extension_is_used_as_hint(tmp_path: Path, fb2_bytes: bytes) -> None:
    path = tmp_path / "book.fb2"
    path.write_bytes(fb2_bytes)
    assert detect_format(path) is BookFormat.FB2


def test_undetectable_source(tmp_path: Path) -> None:
    path = tmp_path / "broken.epub"
    path.write_bytes(b"PK\x03\x04\x00\x00\x00\x00\x00\x00")
    assert detect_format(path) is None


def test_settings_change_sniff_window() -> None:
    data = b'<?xml version="1.0"?>' + b" " * 1500 + b"<FictionBook>"
    assert detect_format(data) is BookFormat.MARKDOWN
    assert detect_format(data, settings=EngineSettings(fb2_sniff_bytes=2000)) is BookFormat.FB2
