"""Streaming XML event loop shared by the OPF, NCX, NAV, FB2 and DOCX readers.

Handlers receive start/end/data callbacks from an lxml parser target, so a
document is walked once without building a tree. The parser runs in recover
mode: undeclared entities and unbalanced tags in real-world books degrade
the output instead of aborting it.
"""

import logging

from lxml import etree

log = logging.getLogger(__name__)


def local_name(tag: str) -> str:
    """``{ns}name`` or ``prefix:name`` reduced to ``name``."""
    if not isinstance(tag, str):
        return ""
    if tag.startswith("{"):
        tag = tag.rsplit("}", 1)[-1]
    return tag.rsplit(":", 1)[-1]


def get_attr(attrib, name: str) -> str | None:
    """Attribute value by local name, ignoring any namespace.

    ``name`` may itself carry a prefix (``epub:type``); only its local part
    is compared when the exact key is absent.
    """
    if name in attrib:
        return attrib[name]
    wanted = local_name(name)
    for key, value in attrib.items():
        if local_name(key) == wanted:
            return value
    return None


class XmlHandler:
    """Base parser target. Subclasses override the callbacks they need.

    ``root`` is the local name of the document element, set by
    ``run_handler`` before the first ``start`` callback.
    """

    root: str | None = None

    def start(self, tag: str, attrib) -> None:
        pass

    def end(self, tag: str) -> None:
        pass

    def data(self, text: str) -> None:
        pass

    def comment(self, text: str) -> None:
        pass

    def close(self) -> None:
        return None


class _RootTracker:
    """Parser target recording the document element before delegating."""

    def __init__(self, handler: XmlHandler):
        self.handler = handler

    def start(self, tag, attrib):
        if self.handler.root is None:
            self.handler.root = local_name(tag)
        self.handler.start(tag, attrib)

    def end(self, tag):
        self.handler.end(tag)

    def data(self, text):
        self.handler.data(text)

    def comment(self, text):
        self.handler.comment(text)

    def close(self):
        return self.handler.close()


def run_handler(handler: XmlHandler, content: bytes | str, root: str | None = None) -> bool:
    """Feed ``content`` through ``handler``. Returns False if parsing failed.

    Recover mode keeps going past damage, so failure means no element was
    found at all, or the document element is not ``root`` (compared without
    case) when one is required.

    Text is encoded back to UTF-8 so the parser never sees a str carrying an
    encoding declaration; raw bytes keep their declared encoding.
    """
    if isinstance(content, str):
        content = content.encode("utf-8")
    parser = etree.XMLParser(
        target=_RootTracker(handler),
        recover=True,
        resolve_entities=False,
        no_network=True,
    )
    try:
        parser.feed(content)
        parser.close()
    except etree.XMLSyntaxError as e:
        log.warning(f"XML parsing failed: {e}")
        return False

    if handler.root is None:
        log.warning("XML parsing failed: no document element")
        return False
    if root is not None and handler.root.lower() != root.lower():
        log.warning(f"Unexpected document element <{handler.root}>, expected <{root}>")
        return False
    return True
