"""DOCX package access.

The engine reads exactly one part, word/document.xml, and writes back only
that part. Every other entry of the archive is copied byte-for-byte.
"""
from __future__ import annotations

import zipfile
from io import BytesIO
from typing import Tuple

# lxml keeps the original namespace prefixes on serialization; Word rejects
# documents whose prefixes were rewritten.
from lxml import etree as ET

from .errors import MalformedDocument


DOCUMENT_PART = "word/document.xml"

NS = {
    "w": "http://schemas.openxmlformats.org/wordprocessingml/2006/main",
    "w14": "http://schemas.microsoft.com/office/word/2010/wordml",
    "mc": "http://schemas.openxmlformats.org/markup-compatibility/2006",
}

XML_SPACE = "{http://www.w3.org/XML/1998/namespace}space"


def w(tag: str) -> str:
    """Clark-notation name for a WordprocessingML tag, e.g. w("p")."""
    return f"{{{NS['w']}}}{tag}"


def _open_zip(data: bytes) -> zipfile.ZipFile:
    try:
        return zipfile.ZipFile(BytesIO(data), "r")
    except zipfile.BadZipFile as exc:
        raise MalformedDocument("Invalid DOCX: not a ZIP package") from exc


def read_document_xml(data: bytes) -> bytes:
    """Return the raw bytes of word/document.xml."""
    with _open_zip(data) as zf:
        try:
            return zf.read(DOCUMENT_PART)
        except KeyError as exc:
            raise MalformedDocument(f"Invalid DOCX: missing {DOCUMENT_PART}") from exc


def load_document_root(data: bytes) -> Tuple[ET._Element, ET._Element]:
    """Parse the body part and return (w:document root, w:body)."""
    xml_bytes = read_document_xml(data)
    # resolve_entities=False: a document part has no business defining entities
    parser = ET.XMLParser(resolve_entities=False, huge_tree=True)
    try:
        root = ET.fromstring(xml_bytes, parser=parser)
    except ET.XMLSyntaxError as exc:
        raise MalformedDocument(f"Invalid DOCX: {DOCUMENT_PART} is not well-formed XML") from exc

    body = root.find("w:body", NS)
    if body is None:
        raise MalformedDocument("Invalid DOCX: missing w:body")
    return root, body


def serialize_document(root: ET._Element) -> bytes:
    return ET.tostring(
        root,
        xml_declaration=True,
        encoding="UTF-8",
        standalone=True,  # Word requires standalone="yes"
    )


def replace_document_xml(data: bytes, new_document_xml: bytes) -> bytes:
    """Rebuild the package with word/document.xml replaced.

    Entries keep their order and their original ZipInfo (compression, dates).
    """
    out = BytesIO()
    with _open_zip(data) as zin, zipfile.ZipFile(out, "w", compression=zipfile.ZIP_DEFLATED) as zout:
        names = [item.filename for item in zin.infolist()]
        if DOCUMENT_PART not in names:
            raise MalformedDocument(f"Invalid DOCX: missing {DOCUMENT_PART}")
        for item in zin.infolist():
            if item.filename == DOCUMENT_PART:
                zout.writestr(item, new_document_xml)
            else:
                zout.writestr(item, zin.read(item.filename))
    return out.getvalue()
