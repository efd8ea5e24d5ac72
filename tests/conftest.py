import io
import struct
import zipfile

import pytest

CONTAINER_XML = """<?xml version="1.0"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="OEBPS/content.opf" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>
"""

OPF_NCX = """<?xml version="1.0" encoding="UTF-8"?>
<package xmlns="http://www.idpf.org/2007/opf" version="2.0" unique-identifier="bookid">
  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/">
    <dc:title>Sample Book</dc:title>
    <dc:creator>Jane Author</dc:creator>
    <dc:creator>Second Author</dc:creator>
    <dc:language>en</dc:language>
    <dc:publisher>Example Press</dc:publisher>
    <meta name="cover" content="cover-img"/>
  </metadata>
  <manifest>
    <item id="ncx" href="toc.ncx" media-type="application/x-dtbncx+xml"/>
    <item id="ch1" href="text/ch1.xhtml" media-type="application/xhtml+xml"/>
    <item id="ch2" href="text/ch%202.xhtml" media-type="application/xhtml+xml"/>
    <item id="cover-img" href="images/cover.jpg" media-type="image/jpeg"/>
  </manifest>
  <spine toc="ncx">
    <itemref idref="ch1"/>
    <itemref idref="ch2" linear="no"/>
  </spine>
</package>
"""

NCX = """<?xml version="1.0" encoding="UTF-8"?>
<ncx xmlns="http://www.daisy.org/z3986/2005/ncx/" version="2005-1">
  <navMap>
    <navPoint id="np1" playOrder="1">
      <navLabel><text>Chapter One</text></navLabel>
      <content src="text/ch1.xhtml"/>
      <navPoint id="np2" playOrder="2">
        <navLabel><text>Section</text></navLabel>
        <content src="text/ch1.xhtml#s1"/>
      </navPoint>
    </navPoint>
    <navPoint id="np3" playOrder="3">
      <navLabel><text>Chapter Two</text></navLabel>
      <content src="text/ch%202.xhtml"/>
    </navPoint>
  </navMap>
</ncx>
"""

OPF_NAV = """<?xml version="1.0" encoding="UTF-8"?>
<package xmlns="http://www.idpf.org/2007/opf" version="3.0" unique-identifier="bookid">
  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/">
    <dc:title>Nav Book</dc:title>
  </metadata>
  <manifest>
    <item id="nav" href="nav.xhtml" media-type="application/xhtml+xml" properties="nav"/>
    <item id="ch1" href="text/ch1.xhtml" media-type="application/xhtml+xml"/>
  </manifest>
  <spine>
    <itemref idref="ch1"/>
  </spine>
</package>
"""

NAV = """<?xml version="1.0" encoding="UTF-8"?>
<html xmlns="http://www.w3.org/1999/xhtml" xmlns:epub="http://www.idpf.org/2007/ops">
<body>
  <nav epub:type="toc">
    <ol>
      <li><a href="text/ch1.xhtml">First
        Chapter</a>
        <ol><li><a href="text/ch1.xhtml#p2">Nested</a></li></ol>
      </li>
    </ol>
  </nav>
  <nav epub:type="landmarks">
    <ol><li><a href="text/ch1.xhtml">Landmark</a></li></ol>
  </nav>
</body>
</html>
"""


def xhtml(title: str, body: str) -> str:
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<html xmlns="http://www.w3.org/1999/xhtml">'
        f"<head><title>{title}</title></head><body>{body}</body></html>"
    )


def make_zip(entries: dict[str, str | bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, content in entries.items():
            if name == "mimetype":
                archive.writestr(name, content, compress_type=zipfile.ZIP_STORED)
            else:
                archive.writestr(name, content, compress_type=zipfile.ZIP_DEFLATED)
    return buffer.getvalue()


@pytest.fixture
def epub_bytes() -> bytes:
    return make_zip(
        {
            "mimetype": "application/epub+zip",
            "META-INF/container.xml": CONTAINER_XML,
            "OEBPS/content.opf": OPF_NCX,
            "OEBPS/toc.ncx": NCX,
            "OEBPS/text/ch1.xhtml": xhtml("One", "<h1>Chapter One</h1><p>Hello from chapter one.</p>"),
            "OEBPS/text/ch 2.xhtml": xhtml("Two", "<p>Second chapter text.</p>"),
            "OEBPS/images/cover.jpg": b"\xff\xd8\xff\xe0cover",
        }
    )


@pytest.fixture
def nav_epub_bytes() -> bytes:
    return make_zip(
        {
            "mimetype": "application/epub+zip",
            "META-INF/container.xml": CONTAINER_XML,
            "OEBPS/content.opf": OPF_NAV,
            "OEBPS/nav.xhtml": NAV,
            "OEBPS/text/ch1.xhtml": xhtml("One", "<p>Only chapter.</p>"),
        }
    )


DOCUMENT_XML = """<?xml version="1.0" encoding="UTF-8" standalone="yes"?>
<w:document xmlns:w="http://schemas.openxmlformats.org/wordprocessingml/2006/main">
  <w:body>
    <w:p><w:pPr><w:pStyle w:val="Heading1"/></w:pPr><w:r><w:t>Intro</w:t></w:r></w:p>
    <w:p><w:r><w:t xml:space="preserve">Hello </w:t></w:r><w:r><w:t>world &amp; more</w:t></w:r></w:p>
    <w:p/>
    <w:p><w:pPr><w:pStyle w:val="Heading2"/></w:pPr><w:r><w:t>Details</w:t></w:r></w:p>
  </w:body>
</w:document>
"""

CORE_XML = """<?xml version="1.0" encoding="UTF-8" standalone="yes"?>
<cp:coreProperties
    xmlns:cp="http://schemas.openxmlformats.org/package/2006/metadata/core-properties"
    xmlns:dc="http://purl.org/dc/elements/1.1/">
  <dc:title>Doc Title</dc:title>
  <dc:creator>Writer Person</dc:creator>
  <dc:subject>Testing</dc:subject>
  <dc:description>A short document</dc:description>
</cp:coreProperties>
"""


@pytest.fixture
def docx_bytes() -> bytes:
    return make_zip(
        {
            "[Content_Types].xml": "<Types/>",
            "word/document.xml": DOCUMENT_XML,
            "docProps/core.xml": CORE_XML,
        }
    )


@pytest.fixture
def cbz_bytes() -> bytes:
    return make_zip(
        {
            "page10.png": b"\x89PNG ten",
            "page2.png": b"\x89PNG two",
            "page1.jpg": b"\xff\xd8 one",
            "ComicInfo.xml": "<ComicInfo/>",
        }
    )


FB2 = """<?xml version="1.0" encoding="UTF-8"?>
<FictionBook xmlns="http://www.gribuser.ru/xml/fictionbook/2.0" xmlns:l="http://www.w3.org/1999/xlink">
  <description>
    <title-info>
      <genre>sf</genre>
      <author><first-name>Ivan</first-name><last-name>Petrov</last-name></author>
      <book-title>Test &amp; Book</book-title>
      <lang>ru</lang>
    </title-info>
    <document-info>
      <author><nickname>converter</nickname></author>
    </document-info>
    <publish-info>
      <publisher>Pub House</publisher>
      <year>2001</year>
      <isbn>978-3-16-148410-0</isbn>
    </publish-info>
  </description>
  <body>
    <title><p>Book</p></title>
    <section>
      <title><p>Chapter 1</p></title>
      <p>Hello <emphasis>world</emphasis> &lt;tag&gt;</p>
      <empty-line/>
      <section>
        <title><p>Part A</p></title>
        <p>Nested <strong>text</strong></p>
      </section>
    </section>
    <section>
      <title><p>Chapter 2</p></title>
      <subtitle>Sub</subtitle>
      <poem><stanza><v>Line one</v></stanza></poem>
    </section>
  </body>
</FictionBook>
"""


@pytest.fixture
def fb2_bytes() -> bytes:
    return FB2.encode("utf-8")


def make_mobi(
    records: list[bytes],
    compression: int = 1,
    exth: dict[int, str] | None = None,
    signature: bytes = b"BOOKMOBI",
) -> bytes:
    """PalmDB file: record 0 is a MOBI header (EXTH at byte 232), then ``records``."""
    record0 = bytearray(232)
    struct.pack_into(">H", record0, 0, compression)
    if exth:
        struct.pack_into(">I", record0, 128, 0x40)
        body = b""
        for record_type, value in exth.items():
            payload = value.encode("utf-8")
            body += struct.pack(">II", record_type, 8 + len(payload)) + payload
        record0 += b"EXTH" + struct.pack(">II", 12 + len(body), len(exth)) + body

    all_records = [bytes(record0)] + records
    header = bytearray(78)
    header[:9] = b"test-book"
    header[60:68] = signature
    struct.pack_into(">H", header, 76, len(all_records))

    offset = 78 + 8 * len(all_records) + 2
    table = b""
    for i, record in enumerate(all_records):
        table += struct.pack(">II", offset, i)
        offset += len(record)
    return bytes(header) + table + b"\x00\x00" + b"".join(all_records)


@pytest.fixture
def mobi_bytes() -> bytes:
    return make_mobi(
        [
            b"Chapter 1\n\nIt was a dark and stormy night.",
            b"<h2>The Second Part</h2><p>More text &amp; prose.</p>",
        ],
        exth={100: "Mobi Author", 105: "Mobi Title", 106: "Mobi Press"},
    )


@pytest.fixture
def build_mobi():
    return make_mobi


@pytest.fixture
def build_zip():
    return make_zip


@pytest.fixture
def build_epub():
    """EPUB bytes with the standard container pointing at ``OEBPS/content.opf``."""

    def build(opf: str | None, files: dict[str, str | bytes] | None = None) -> bytes:
        entries = {"mimetype": "application/epub+zip", "META-INF/container.xml": CONTAINER_XML}
        if opf is not None:
            entries["OEBPS/content.opf"] = opf
        entries.update(files or {})
        return make_zip(entries)

    return build
