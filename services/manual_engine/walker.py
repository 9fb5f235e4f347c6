"""Document tree walker and text extraction.

The walker projects w:body onto an ordered list of paragraph and table nodes,
whatever wrappers (content controls, custom XML, smart tags) the template
puts around them. Tables nested inside cells come out as their own table
node, right after the table that contains them.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, List, Tuple, Union

from lxml import etree as ET

from .normalize import clean
from .package import NS, w

P = w("p")
R = w("r")
T = w("t")
TBL = w("tbl")
TR = w("tr")
TC = w("tc")
SDT = w("sdt")
SDT_CONTENT = w("sdtContent")

# Elements that never hold body content, or whose text is not part of the
# paragraph it sits in (drawings and text boxes carry their own paragraphs).
_NOT_CONTENT = {
    w("pPr"), w("rPr"), w("tblPr"), w("tblGrid"), w("trPr"), w("tcPr"),
    w("sectPr"), w("sdtPr"), w("sdtEndPr"), w("delText"), w("instrText"),
}
_OPAQUE_IN_PARAGRAPH = _NOT_CONTENT | {
    P, TBL, w("drawing"), w("pict"), w("object"), w("txbxContent"),
    f"{{{NS['mc']}}}AlternateContent",
}


@dataclass(frozen=True)
class ParagraphNode:
    text: str
    type: str = "paragraph"


@dataclass(frozen=True)
class TableNode:
    rows: Tuple[Tuple[str, ...], ...]
    type: str = "table"


DocumentNode = Union[ParagraphNode, TableNode]


# =============================================================================
# TEXT EXTRACTION
# =============================================================================

def _collect_text(el: ET._Element, parts: List[str]) -> None:
    for child in el:
        tag = child.tag
        if not isinstance(tag, str):
            # comments and processing instructions
            continue
        if tag == T:
            parts.append(child.text or "")
        elif tag == w("tab"):
            parts.append("\t")
        elif tag in (w("br"), w("cr")):
            parts.append(" ")
        elif tag == w("noBreakHyphen"):
            parts.append("-")
        elif tag in _OPAQUE_IN_PARAGRAPH:
            continue
        else:
            # runs, hyperlinks, inline content controls, smart tags, w:ins ...
            _collect_text(child, parts)


def paragraph_text(p_el: ET._Element | None) -> str:
    """Concatenate the text of a paragraph's runs, in run order.

    No separator is inserted between runs: Word splits words across runs
    freely, so "ID de Cam" + "bio:" must read back as "ID de Cambio:".
    """
    if p_el is None:
        return ""
    parts: List[str] = []
    _collect_text(p_el, parts)
    return "".join(parts)


def iter_table_rows(tbl_el: ET._Element) -> Iterator[ET._Element]:
    """Yield all rows of a table, including those wrapped in content controls."""
    for child in tbl_el:
        if child.tag == TR:
            yield child
        elif child.tag in (SDT, w("customXml")):
            content = child.find(SDT_CONTENT) if child.tag == SDT else child
            if content is not None:
                yield from iter_table_rows(content)


def iter_row_cells(tr_el: ET._Element) -> Iterator[ET._Element]:
    """Yield the cells of a row (direct or SDT-wrapped), never nested-table cells."""
    for child in tr_el:
        if child.tag == TC:
            yield child
        elif child.tag in (SDT, w("customXml")):
            content = child.find(SDT_CONTENT) if child.tag == SDT else child
            if content is not None:
                yield from iter_row_cells(content)


def iter_cell_paragraphs(tc_el: ET._Element) -> Iterator[ET._Element]:
    """Yield a cell's own paragraphs, unwrapping content controls.

    Paragraphs of tables nested in the cell are not included.
    """
    for child in tc_el:
        if child.tag == P:
            yield child
        elif child.tag in (SDT, w("customXml")):
            content = child.find(SDT_CONTENT) if child.tag == SDT else child
            if content is not None:
                yield from iter_cell_paragraphs(content)


def cell_text(tc_el: ET._Element | None) -> str:
    """Whitespace-collapsed text of a cell; its paragraphs joined by spaces."""
    if tc_el is None:
        return ""
    return clean(" ".join(paragraph_text(p) for p in iter_cell_paragraphs(tc_el)))


def table_rows(tbl_el: ET._Element) -> Tuple[Tuple[str, ...], ...]:
    return tuple(
        tuple(cell_text(tc) for tc in iter_row_cells(tr))
        for tr in iter_table_rows(tbl_el)
    )


# =============================================================================
# WALKER
# =============================================================================

def _emit_table(tbl_el: ET._Element, nodes: List[DocumentNode]) -> None:
    nodes.append(TableNode(rows=table_rows(tbl_el)))
    # Nested tables follow their parent; cell paragraphs already live in it.
    for tr in iter_table_rows(tbl_el):
        for tc in iter_row_cells(tr):
            _walk(tc, nodes, emit_paragraphs=False)


def _walk(el: ET._Element, nodes: List[DocumentNode], emit_paragraphs: bool) -> None:
    for child in el:
        tag = child.tag
        if not isinstance(tag, str) or tag in _NOT_CONTENT:
            continue
        if tag == P:
            if emit_paragraphs:
                nodes.append(ParagraphNode(text=paragraph_text(child)))
                # text boxes anchored in this paragraph
                for box in child.iter(w("txbxContent")):
                    # mc:Fallback repeats the mc:Choice text box for old readers
                    if next(box.iterancestors(f"{{{NS['mc']}}}Fallback"), None) is not None:
                        continue
                    if next(box.iterancestors(P), None) is not child:
                        continue
                    _walk(box, nodes, emit_paragraphs=True)
        elif tag == TBL:
            _emit_table(child, nodes)
        else:
            _walk(child, nodes, emit_paragraphs)


def walk_body(body_el: ET._Element) -> List[DocumentNode]:
    """Return every paragraph and table of the body in document order."""
    nodes: List[DocumentNode] = []
    _walk(body_el, nodes, emit_paragraphs=True)
    return nodes
