"""Builds small DOCX packages in memory for the manual engine tests."""
from __future__ import annotations

import zipfile
from io import BytesIO
from typing import Iterable, List, Optional, Sequence, Union
from xml.sax.saxutils import escape

W_NS = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"
MC_NS = "http://schemas.openxmlformats.org/markup-compatibility/2006"
WPS_NS = "http://schemas.microsoft.com/office/word/2010/wordprocessingShape"

CONTENT_TYPES = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
    '<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types">'
    '<Default Extension="rels" ContentType="application/vnd.openxmlformats-package.relationships+xml"/>'
    '<Default Extension="xml" ContentType="application/xml"/>'
    '<Override PartName="/word/document.xml" '
    'ContentType="application/vnd.openxmlformats-officedocument.wordprocessingml.document.main+xml"/>'
    '<Override PartName="/word/styles.xml" '
    'ContentType="application/vnd.openxmlformats-officedocument.wordprocessingml.styles+xml"/>'
    "</Types>"
)
ROOT_RELS = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
    '<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">'
    '<Relationship Id="rId1" '
    'Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/officeDocument" '
    'Target="word/document.xml"/>'
    "</Relationships>"
)
FIXED_DATE = (2024, 1, 1, 0, 0, 0)

STYLES = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
    f'<w:styles xmlns:w="{W_NS}"><w:docDefaults/></w:styles>'
)


def run(text: str, bold: bool = False) -> str:
    rpr = "<w:rPr><w:b/></w:rPr>" if bold else ""
    return f'<w:r>{rpr}<w:t xml:space="preserve">{escape(text)}</w:t></w:r>'


def para(text: str = "", *, runs: Optional[Sequence[str]] = None, centered: bool = False) -> str:
    """A paragraph; `runs` are raw run XML, otherwise `text` becomes one run."""
    ppr = '<w:pPr><w:jc w:val="center"/></w:pPr>' if centered else ""
    if runs is not None:
        inner = "".join(runs)
    else:
        inner = run(text) if text else ""
    return f"<w:p>{ppr}{inner}</w:p>"


Cell = Union[str, List[str]]


def cell(content: Cell = "") -> str:
    """A cell from text, or from a list of raw block XML (paragraphs, tables)."""
    if isinstance(content, list):
        inner = "".join(content)
    elif content.startswith("<w:"):
        inner = content
    else:
        inner = para(content)
    return f'<w:tc><w:tcPr><w:tcW w:w="2000" w:type="dxa"/></w:tcPr>{inner}</w:tc>'


def row(cells: Iterable[Cell]) -> str:
    return "<w:tr>" + "".join(cell(c) for c in cells) + "</w:tr>"


def table(rows: Iterable[Iterable[Cell]]) -> str:
    return "<w:tbl><w:tblPr/>" + "".join(row(r) for r in rows) + "</w:tbl>"


def sdt(inner: str) -> str:
    return f"<w:sdt><w:sdtPr/><w:sdtContent>{inner}</w:sdtContent></w:sdt>"


def text_box_paragraph(anchor_text: str, box_text: str) -> str:
    """A paragraph holding a text box (mc:Choice plus its mc:Fallback copy)."""
    box = f"<w:txbxContent>{para(box_text)}</w:txbxContent>"
    return (
        "<w:p>"
        f"{run(anchor_text)}"
        "<w:r><mc:AlternateContent>"
        f"<mc:Choice Requires=\"wps\"><w:drawing><wps:wsp><wps:txbx>{box}</wps:txbx></wps:wsp></w:drawing></mc:Choice>"
        f"<mc:Fallback><w:pict><v:shape xmlns:v=\"urn:schemas-microsoft-com:vml\"><v:textbox>{box}</v:textbox></v:shape></w:pict></mc:Fallback>"
        "</mc:AlternateContent></w:r>"
        "</w:p>"
    )


def document_xml(*blocks: str) -> str:
    return (
        '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
        f'<w:document xmlns:w="{W_NS}" xmlns:mc="{MC_NS}" xmlns:wps="{WPS_NS}">'
        "<w:body>" + "".join(blocks) + '<w:sectPr><w:pgSz w:w="12240" w:h="15840"/></w:sectPr>'
        "</w:body></w:document>"
    )


def make_docx(*blocks: str, document: Optional[str] = None, include_document: bool = True) -> bytes:
    """Zip a minimal package. `document` overrides the generated body part."""
    entries = [("[Content_Types].xml", CONTENT_TYPES), ("_rels/.rels", ROOT_RELS)]
    if include_document:
        entries.append(("word/document.xml", document if document is not None else document_xml(*blocks)))
    entries.append(("word/styles.xml", STYLES))
    entries.append(("word/media/logo.bin", bytes(range(64))))

    buf = BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, content in entries:
            # fixed timestamp so the same blocks always zip to the same bytes
            info = zipfile.ZipInfo(name, date_time=FIXED_DATE)
            info.compress_type = zipfile.ZIP_DEFLATED
            zf.writestr(info, content)
    return buf.getvalue()


# =============================================================================
# A REALISTIC TEMPLATE
# =============================================================================

INFO_GENERAL_ROWS = [
    ["INFORMACIÓN GENERAL"],
    ["ID de Cambio: CHG-1001", "*Tipo de Requerimiento: "],
    ["Afectación a otras áreas:", "Respuesta: SI/NO"],
    ["1. Afecta DWH", "NO"],
    ["2. Afecta Cierre", "Sí"],
    ["3. Afecta Robot", ""],
    ["4. Notificó al NOC sobre los servicios a monitorear", "SI"],
    ["5. Es Regulatorio", "NO"],
    ["Otros:", ""],
    ["Afectación a los países de la región"],
    ["Seleccionar país afectado con una X:", "REG", "HN", "GT", "PA", "NI"],
    ["", "", "X", "", "", ""],
    ["Participación de proveedores"],
    ["Participa Proveedor", "NO"],
]

PIECES_ROWS = [
    ["Listado de piezas detalladas"],
    ["Middleware/OSB"],
    ["Nombre", "Tipo", "Nuevo o Modificado"],
    ["ConsultaSaldo.proxy", "Proxy", "Nuevo"],
    ["Transformacion.xqy", "XQuery", "Modificado (cambio de lógica)"],
    ["DB12"],
    ["Nombre", "Tipo", "Nuevo o Modificado"],
    ["PKG_TARJETAS.pkb", "Oracle Package", "Modificado"],
]


def manual_template() -> bytes:
    return make_docx(
        para("Manual de implementación", centered=True),
        table(INFO_GENERAL_ROWS),
        para("Responsable: Equipo Core"),
        table(PIECES_ROWS),
    )
