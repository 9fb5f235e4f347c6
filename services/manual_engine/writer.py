"""Writes an edited field model back into the original template.

The writer never rebuilds the document: it re-opens the original package,
locates each target cell by its label in the live XML tree and replaces the
cell text in place. Paragraphs and runs already present are reused, so row
height, alignment and run formatting stay as the template had them.
"""
from __future__ import annotations

import logging
import re
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from lxml import etree as ET

from models.schemas import FieldKind, FieldValue, UIField, UISection

from .constants import (
    COUNTRY_HEADER_TOKENS,
    COUNTRY_MARK,
    HEADER_LABELS,
    KEY_OTROS,
    KEY_PAIS,
    KEY_PARTICIPA_PROVEEDOR,
    LABEL_PARTICIPA_PROVEEDOR,
    MARKER_AFECTACION,
    MARKER_PROVEEDORES,
    MARKER_SELECCIONAR_PAIS,
    NO,
    YES,
)
from .errors import FieldNotFound
from .normalize import (
    clean,
    clean_otros,
    is_yes_no_key,
    normalize_key,
    normalize_yes_no,
    to_country_codes,
)
from .package import XML_SPACE, load_document_root, replace_document_xml, serialize_document, w
from .parser import (
    HEADER_KV_RE,
    country_header_index,
    is_country_header_row,
    is_country_marker,
    is_respuesta_placeholder,
    row_label,
)
from .walker import (
    P,
    R,
    T,
    TBL,
    cell_text,
    iter_cell_paragraphs,
    iter_row_cells,
    iter_table_rows,
    paragraph_text,
)

logger = logging.getLogger(__name__)

_TXBX = w("txbxContent")
_OTROS_PREFIX_RE = re.compile(r"^\s*(otros\s*:?)\s*", re.IGNORECASE)
_OTROS_INLINE_RE = re.compile(rf"^{KEY_OTROS}\s*:")

Rows = List[Tuple[ET._Element, List[ET._Element]]]


# =============================================================================
# TEXT NODE SURGERY
# =============================================================================

def _own_text_nodes(p_el: ET._Element) -> List[ET._Element]:
    """w:t nodes of the paragraph itself, not of text boxes anchored in it."""
    nodes = []
    for t in p_el.iter(T):
        parent = t.getparent()
        while parent is not None and parent is not p_el and parent.tag not in (_TXBX, P):
            parent = parent.getparent()
        if parent is p_el:
            nodes.append(t)
    return nodes


def set_paragraph_text(p_el: ET._Element, text: str) -> None:
    """Put text in the first w:t of the paragraph and blank the others.

    A run and a w:t are created only when the paragraph has none.
    """
    nodes = _own_text_nodes(p_el)
    if not nodes:
        if not text:
            return
        run = p_el.find(R)
        if run is None:
            run = ET.SubElement(p_el, R)
        nodes = [ET.SubElement(run, T)]

    first, rest = nodes[0], nodes[1:]
    first.text = text
    first.set(XML_SPACE, "preserve")
    for t in rest:
        t.text = ""


def set_cell_text(tc_el: ET._Element, text: str, paragraph: Optional[ET._Element] = None) -> None:
    """Replace the visible text of a cell, keeping its paragraphs and runs."""
    paragraphs = list(iter_cell_paragraphs(tc_el))
    if paragraph is None:
        if paragraphs:
            paragraph = paragraphs[0]
        else:
            paragraph = ET.SubElement(tc_el, P)
    set_paragraph_text(paragraph, text)
    for p in paragraphs:
        if p is paragraph:
            continue
        for t in _own_text_nodes(p):
            t.text = ""


# =============================================================================
# LOCATORS
# =============================================================================

def _tables(root: ET._Element) -> Iterator[ET._Element]:
    return root.iter(TBL)


def _rows(tbl_el: ET._Element) -> Rows:
    return [(tr, list(iter_row_cells(tr))) for tr in iter_table_rows(tbl_el)]


def _texts(cells: Sequence[ET._Element]) -> List[str]:
    return [cell_text(tc) for tc in cells]


def _label_probe(text: str) -> str:
    return normalize_key(text.replace("*", ""))


def find_label_cell(root: ET._Element, label: str) -> Tuple[List[ET._Element], int]:
    """(row cells, index) of the cell labelled `label`.

    A cell whose text starts with the label wins over one that merely
    contains it.
    """
    target = _label_probe(label).rstrip(":").strip()
    contains: Optional[Tuple[List[ET._Element], int]] = None
    for tbl in _tables(root):
        for _, cells in _rows(tbl):
            for i, tc in enumerate(cells):
                probe = _label_probe(cell_text(tc))
                if probe.startswith(target):
                    return cells, i
                if contains is None and target in probe:
                    contains = (cells, i)
    if contains is not None:
        return contains
    raise FieldNotFound(label)


def find_labelled_row(root: ET._Element, label: str) -> Tuple[ET._Element, List[ET._Element]]:
    """Table and cells of the first row whose first cell carries the label."""
    target = normalize_key(row_label(label))
    for tbl in _tables(root):
        for _, cells in _rows(tbl):
            if cells and normalize_key(row_label(cell_text(cells[0]))) == target:
                return tbl, cells
    raise FieldNotFound(label)


def respuesta_column(tbl_el: ET._Element) -> Optional[int]:
    """Index of the "Respuesta: SI/NO" column in the yes/no block header row."""
    marker = normalize_key(MARKER_AFECTACION)
    for _, cells in _rows(tbl_el):
        texts = _texts(cells)
        if marker not in normalize_key(" ".join(texts)):
            continue
        for i, text in enumerate(texts):
            if is_respuesta_placeholder(text):
                return i
    return None


# =============================================================================
# FIELD WRITERS (each returns True when it changed the tree)
# =============================================================================

def write_header_field(root: ET._Element, label: str, value: str) -> bool:
    cells, i = find_label_cell(root, label)
    tc = cells[i]
    text = cell_text(tc)

    if ":" in text:
        prefix, remainder = text.split(":", 1)
        prefix, remainder = prefix + ":", clean(remainder)
    else:
        prefix = clean(label).rstrip(":") + ":"
        remainder = "" if _label_probe(text) == _label_probe(label).rstrip(":").strip() else text

    # split layout: "Label:" | "value"
    if not remainder and i + 1 < len(cells):
        sibling = cells[i + 1]
        sibling_text = cell_text(sibling)
        if not HEADER_KV_RE.match(sibling_text):
            if clean(sibling_text) == clean(value):
                return False
            set_cell_text(sibling, clean(value))
            return True

    if remainder == clean(value):
        return False

    target = _label_probe(label).rstrip(":").strip()
    paragraphs = list(iter_cell_paragraphs(tc))
    holder = next((p for p in paragraphs if target in _label_probe(paragraph_text(p))), None)
    set_cell_text(tc, f"{prefix} {clean(value)}", paragraph=holder)
    return True


def _provider_value_row(root: ET._Element) -> Tuple[ET._Element, List[ET._Element]]:
    marker = normalize_key(MARKER_PROVEEDORES)
    for tbl in _tables(root):
        rows = _rows(tbl)
        for r, (_, cells) in enumerate(rows):
            if cells and normalize_key(cell_text(cells[0])).startswith(marker) and r + 1 < len(rows):
                return tbl, rows[r + 1][1]
    raise FieldNotFound(MARKER_PROVEEDORES)


def _current_answer(cells: Sequence[ET._Element], labelled: bool) -> str:
    """The value the parser reads back from a yes/no row."""
    if labelled:
        texts = _texts(cells[1:])
    else:
        label_key = normalize_key(LABEL_PARTICIPA_PROVEEDOR)
        texts = [t for t in _texts(cells) if normalize_key(row_label(t)) != label_key]
    answers = [clean(t) for t in texts if clean(t) and not is_respuesta_placeholder(t)]
    return normalize_yes_no(answers[-1]) if answers else NO


def write_yes_no(root: ET._Element, label: str, value: FieldValue, key: str = "") -> bool:
    canonical = normalize_yes_no(value)
    try:
        tbl, cells = find_labelled_row(root, label)
        labelled = True
    except FieldNotFound:
        if normalize_key(key) != KEY_PARTICIPA_PROVEEDOR:
            raise
        tbl, cells = _provider_value_row(root)
        labelled = False

    if not cells:
        raise FieldNotFound(label)
    # a blank answer already reads as NO
    if _current_answer(cells, labelled) == canonical:
        return False

    column = respuesta_column(tbl)
    if column is not None and 0 < column < len(cells):
        target = cells[column]
    elif labelled and len(cells) == 1:
        # never overwrite the label itself
        raise FieldNotFound(label)
    else:
        target = cells[-1]
    set_cell_text(target, canonical)
    return True


def write_otros(root: ET._Element, value: FieldValue) -> bool:
    new_value = clean(value if isinstance(value, str) else "")
    try:
        _, cells = find_labelled_row(root, "Otros")
    except FieldNotFound:
        _, cells = _find_otros_inline(root)

    if len(cells) >= 2:
        target = cells[1]
        if clean(cell_text(target)) == new_value:
            return False
        set_cell_text(target, new_value)
        return True

    tc = cells[0]
    current = cell_text(tc)
    if clean_otros(current) == new_value:
        return False
    m = _OTROS_PREFIX_RE.match(current)
    prefix = m.group(1).strip() if m else "Otros:"
    if not prefix.endswith(":"):
        prefix += ":"
    set_cell_text(tc, f"{prefix} {new_value}")
    return True


def _find_otros_inline(root: ET._Element) -> Tuple[ET._Element, List[ET._Element]]:
    for tbl in _tables(root):
        for _, cells in _rows(tbl):
            if cells and _OTROS_INLINE_RE.match(normalize_key(row_label(cell_text(cells[0])))):
                return tbl, cells
    raise FieldNotFound("Otros")


def _country_marks_row(rows: Rows, r: int, index: Dict[str, int]) -> List[ET._Element]:
    """Cells that hold the marks for the header row at `r`.

    The row right below wins when it carries a mark. Otherwise a
    "Seleccionar país afectado" row one or two rows below takes the marks.
    """
    below = rows[r + 1][1] if r + 1 < len(rows) else []
    if _marked_countries(index, below):
        return below
    marker = normalize_key(MARKER_SELECCIONAR_PAIS)
    for s in (r + 1, r + 2):
        if s >= len(rows):
            break
        if s == r + 2 and country_header_index(_texts(rows[r + 1][1])):
            break
        cells = rows[s][1]
        if cells and normalize_key(cell_text(cells[0])).startswith(marker):
            return cells
    return below


def _marked_countries(index: Dict[str, int], marks: Sequence[ET._Element]) -> List[str]:
    return [
        token for token in COUNTRY_HEADER_TOKENS
        if index[token] < len(marks) and is_country_marker(cell_text(marks[index[token]]))
    ]


def write_countries(root: ET._Element, value: FieldValue) -> bool:
    """Mark the selected countries under the REG/HN/GT/PA/NI header."""
    codes = to_country_codes(value)
    for tbl in _tables(root):
        rows = _rows(tbl)
        for r, (_, cells) in enumerate(rows):
            texts = _texts(cells)
            if not is_country_header_row(texts):
                continue
            index = country_header_index(texts)
            marks = _country_marks_row(rows, r, index)
            columns = [token for token in COUNTRY_HEADER_TOKENS if index[token] < len(marks)]
            if not columns:
                raise FieldNotFound("country selection row")
            if to_country_codes(_marked_countries(index, marks)) == codes:
                return False
            changed = False
            for token in columns:
                tc = marks[index[token]]
                mark = COUNTRY_MARK if token in codes else ""
                if clean(cell_text(tc)) != mark:
                    set_cell_text(tc, mark)
                    changed = True
            return changed
    raise FieldNotFound("country header row")


# =============================================================================
# ENTRY POINT
# =============================================================================

def _is_yes_no_field(f: UIField) -> bool:
    if is_yes_no_key(f.key):
        return True
    return f.kind == FieldKind.SELECT and set(f.option_values()) == {YES, NO}


def _writer_for(f: UIField) -> Optional[Callable[[ET._Element], bool]]:
    key = normalize_key(f.key)
    header_keys = {normalize_key(k): label for k, label in HEADER_LABELS.items()}

    if key in header_keys:
        text = f.value if isinstance(f.value, str) else ", ".join(f.value)
        return lambda root: write_header_field(root, header_keys[key], text)
    if key in (KEY_OTROS, f"{KEY_OTROS}:"):
        return lambda root: write_otros(root, f.value)
    if KEY_PAIS in key:
        return lambda root: write_countries(root, f.value)
    if _is_yes_no_field(f):
        return lambda root: write_yes_no(root, f.label, f.value, key=f.key)
    return None


def _collect_fields(sections: Sequence[UISection]) -> List[UIField]:
    by_key: Dict[str, UIField] = {}
    for section in sections:
        for f in section.fields:
            by_key.setdefault(normalize_key(f.key), f)
    return list(by_key.values())


def fill_manual(template: bytes, sections: Sequence[UISection]) -> bytes:
    """Return a copy of `template` with the section field values written in.

    Only word/document.xml is rewritten. A field the template has no place
    for is skipped. When nothing changes, the template bytes are returned
    as they are.
    """
    root, _ = load_document_root(template)

    written = 0
    for f in _collect_fields(sections):
        writer = _writer_for(f)
        if writer is None:
            logger.debug(f"[EXPORT] no writer for field '{f.key}'")
            continue
        try:
            if writer(root):
                written += 1
        except FieldNotFound as exc:
            logger.debug(f"[EXPORT] '{f.key}' not found in template ({exc}), left untouched")

    logger.info(f"[EXPORT] {written} field(s) written")
    if not written:
        return template
    return replace_document_xml(template, serialize_document(root))
