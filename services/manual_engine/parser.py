"""Section extractor for change-manual templates.

Each block of the "Información general" table is recovered by its own
heuristic (header labels, yes/no block, provider participation, country
selection); pieces tables are handled in pieces.py. parse_manual runs them
in order and assembles a ManualExtract.
"""
from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Sequence, Set, Tuple

from models.schemas import (
    FieldKind,
    KeyValueField,
    ManualExtract,
    RawContent,
    UIField,
    UISection,
)

from .constants import (
    COUNTRY_HEADER_TOKENS,
    COUNTRY_MARKERS,
    FIELD_ORDER,
    HEADER_LABELS,
    KEY_OTROS,
    KEY_PAIS,
    KEY_PARTICIPA_PROVEEDOR,
    LABEL_OTROS,
    LABEL_PAIS,
    LABEL_PARTICIPA_PROVEEDOR,
    MARKER_AFECTACION,
    MARKER_INFO_GENERAL,
    MARKER_PAISES_REGION,
    MARKER_PROVEEDORES,
    MARKER_SELECCIONAR_PAIS,
    NO,
    SECTION_INFO_GENERAL,
    SECTION_INFO_GENERAL_TITLE,
)
from .normalize import (
    clean,
    country_options,
    normalize_key,
    normalize_yes_no,
    slugify_label,
    strip_accents,
    to_country_codes,
    yes_no_options,
)
from .package import load_document_root
from .pieces import detect_piezas
from .walker import DocumentNode, ParagraphNode, TableNode, walk_body

logger = logging.getLogger(__name__)

Row = Sequence[str]
Table = Sequence[Row]

HEADER_KV_RE = re.compile(r"^([^:]{2,120}):\s*(.*)$")
PARAGRAPH_KV_RE = re.compile(r"^([^:]{2,80}):\s*(.+)$")
TABLE_KV_RE = re.compile(r"^([^:]{2,120}):\s*(.+)$")
ORDINAL_RE = re.compile(r"^\d+\s*[.)]\s*")
RESPUESTA_RE = re.compile(r"^respuesta\s*:\s*si\s*/\s*no$")
OTROS_RE = re.compile(r"^otros\s*(?::\s*(.*))?$", re.IGNORECASE)

_KV_NOISE = (
    re.compile(r"^informacion general$"),
    re.compile(r"^listado de piezas detalladas"),
    re.compile(r"^repositorio$"),
    re.compile(r"^paso$"),
    re.compile(r"^respuesta$"),
)


# =============================================================================
# ROW HELPERS
# =============================================================================

def _first(row: Row) -> str:
    return clean(row[0]) if row else ""


def _is_empty(row: Row) -> bool:
    return not any(clean(c) for c in row)


def _starts_with_marker(text: str, marker: str) -> bool:
    return normalize_key(text).startswith(normalize_key(marker))


def row_label(text: str) -> str:
    """Label of a block row: ordinal prefix ("1. ") and trailing colon removed."""
    return clean(ORDINAL_RE.sub("", clean(text))).rstrip(":").strip()


def is_respuesta_placeholder(text: str) -> bool:
    return bool(RESPUESTA_RE.match(normalize_key(text)))


def country_header_index(row: Row) -> Dict[str, int]:
    """Column index of each country token found in the row.

    Exact cell matches are preferred; a token standing as a word inside a
    longer cell is accepted after that.
    """
    index: Dict[str, int] = {}
    cells = [strip_accents(clean(c)).upper() for c in row]
    for i, cell in enumerate(cells):
        if cell in COUNTRY_HEADER_TOKENS and cell not in index:
            index[cell] = i
    for token in COUNTRY_HEADER_TOKENS:
        if token in index:
            continue
        for i, cell in enumerate(cells):
            if i not in index.values() and re.search(rf"\b{token}\b", cell):
                index[token] = i
                break
    return index


def is_country_header_row(row: Row) -> bool:
    index = country_header_index(row)
    return len(index) == len(COUNTRY_HEADER_TOKENS) and len(set(index.values())) == len(index)


def is_country_marker(text: str) -> bool:
    return clean(text).upper() in COUNTRY_MARKERS


def _marked_tokens(header_index: Dict[str, int], row: Row) -> List[str]:
    return [
        token for token in COUNTRY_HEADER_TOKENS
        if token in header_index
        and header_index[token] < len(row)
        and is_country_marker(row[header_index[token]])
    ]


# =============================================================================
# HEADER BLOCK
# =============================================================================

def find_header_table(tables: Sequence[Table]) -> Optional[Table]:
    """First table that looks like the "Información general" block, else the first table."""
    wanted = {normalize_key(label) for label in HEADER_LABELS.values()}
    info = normalize_key(MARKER_INFO_GENERAL)
    for table in tables:
        seen: Set[str] = set()
        for row in table:
            for cell in row:
                k = normalize_key(cell)
                if info in k:
                    return table
                m = HEADER_KV_RE.match(k)
                if m and m.group(1).lstrip("*").strip() in wanted:
                    seen.add(m.group(1).lstrip("*").strip())
        if seen == wanted:
            return table
    return tables[0] if tables else None


def _header_label_key(text: str) -> str:
    return normalize_key(text.lstrip("*").strip()).rstrip(":").strip()


def extract_header_fields(table: Table) -> List[UIField]:
    """"ID de Cambio" and "Tipo de Requerimiento" from the header table.

    A label found with no value yields ""; a label never found is omitted.
    """
    by_label = {normalize_key(label): key for key, label in HEADER_LABELS.items()}
    found: Dict[str, str] = {}

    for row in table:
        for c, raw in enumerate(row):
            text = clean(raw)
            m = HEADER_KV_RE.match(text)
            key = by_label.get(_header_label_key(m.group(1) if m else text))
            if key is None or key in found:
                continue
            value = clean(m.group(2)) if m else ""
            if not value and c + 1 < len(row):
                sibling = clean(row[c + 1])
                # a neighbouring "Other label: value" cell is another field
                if sibling and not HEADER_KV_RE.match(sibling) and _header_label_key(sibling) not in by_label:
                    value = sibling
            found[key] = value

    return [
        UIField(key=key, label=label, kind=FieldKind.TEXT, value=found[key])
        for key, label in HEADER_LABELS.items()
        if key in found
    ]


# =============================================================================
# YES / NO BLOCK
# =============================================================================

_BLOCK_END_MARKERS = (MARKER_PAISES_REGION, MARKER_PROVEEDORES, MARKER_SELECCIONAR_PAIS)


def _is_block_end(row: Row) -> bool:
    first = _first(row)
    if first and any(_starts_with_marker(first, m) for m in _BLOCK_END_MARKERS):
        return True
    return is_country_header_row(row)


def find_yes_no_block(tables: Sequence[Table]) -> Optional[Tuple[Table, int]]:
    marker = normalize_key(MARKER_AFECTACION)
    for table in tables:
        for r, row in enumerate(table):
            if normalize_key(_first(row)).rstrip(":").strip() == marker:
                return table, r
    return None


def extract_yes_no_block(table: Table, start: int) -> List[UIField]:
    """Rows after the "Afectación a otras áreas" marker up to the next block."""
    fields: List[UIField] = []
    for row in table[start + 1:]:
        if _is_block_end(row):
            break
        if _is_empty(row):
            continue
        cells = [clean(c) for c in row]
        label = row_label(cells[0])
        if not label or is_respuesta_placeholder(label):
            continue
        if any(is_respuesta_placeholder(c) for c in cells[1:]):
            continue

        m = OTROS_RE.match(ORDINAL_RE.sub("", cells[0]))
        if m:
            inline = clean(m.group(1) or "")
            value = cells[1] if len(cells) >= 2 and cells[1] else inline
            fields.append(UIField(key=KEY_OTROS, label=LABEL_OTROS, kind=FieldKind.TEXT, value=value))
            continue

        answers = [c for c in cells[1:] if c]
        fields.append(UIField(
            key=slugify_label(label),
            label=label,
            kind=FieldKind.SELECT,
            options=yes_no_options(),
            value=normalize_yes_no(answers[-1]) if answers else NO,
        ))
    return fields


# =============================================================================
# PROVIDER PARTICIPATION
# =============================================================================

def extract_provider_participation(tables: Sequence[Table]) -> Optional[UIField]:
    """"Participa Proveedor": a row with that label, or the row after the marker."""
    label_key = normalize_key(LABEL_PARTICIPA_PROVEEDOR)
    for table in tables:
        for r, row in enumerate(table):
            first = normalize_key(row_label(_first(row)))
            if first == label_key:
                value_row = row[1:]
            elif _starts_with_marker(_first(row), MARKER_PROVEEDORES):
                if r + 1 >= len(table):
                    continue
                value_row = [
                    c for c in table[r + 1]
                    if normalize_key(row_label(c)) != label_key
                ]
            else:
                continue
            answers = [clean(c) for c in value_row if clean(c) and not is_respuesta_placeholder(c)]
            return UIField(
                key=KEY_PARTICIPA_PROVEEDOR,
                label=LABEL_PARTICIPA_PROVEEDOR,
                kind=FieldKind.SELECT,
                options=yes_no_options(),
                value=normalize_yes_no(answers[-1]) if answers else NO,
            )
    return None


# =============================================================================
# COUNTRIES
# =============================================================================

def find_country_rows(tables: Sequence[Table]) -> Optional[Tuple[Table, int]]:
    """(table, header row index) of the REG/HN/GT/PA/NI header row."""
    for table in tables:
        for r, row in enumerate(table):
            if is_country_header_row(row):
                return table, r
    return None


def _primary_countries(tables: Sequence[Table]) -> Optional[List[str]]:
    """Tokens marked in the row right below the header row.

    [] when the header exists but that row carries no mark; None when there
    is no header row at all.
    """
    located = find_country_rows(tables)
    if located is None:
        return None
    table, r = located
    marks = table[r + 1] if r + 1 < len(table) else ()
    return _marked_tokens(country_header_index(table[r]), marks)


def _fallback_countries(tables: Sequence[Table]) -> Optional[List[str]]:
    """Row starting with "Seleccionar país afectado", headers one or two rows above."""
    for table in tables:
        for r, row in enumerate(table):
            if not _starts_with_marker(_first(row), MARKER_SELECCIONAR_PAIS):
                continue
            for k in (r - 1, r - 2):
                if k < 0:
                    break
                header_index = country_header_index(table[k])
                if header_index:
                    return _marked_tokens(header_index, row)
    return None


def extract_countries(tables: Sequence[Table]) -> Optional[UIField]:
    # a marked row under the header wins; otherwise the selection row may be
    # further down, and a header with nothing marked anywhere means REG
    selected = _primary_countries(tables)
    if not selected:
        fallback = _fallback_countries(tables)
        if fallback or selected is None:
            selected = fallback
    if selected is None:
        return None
    return UIField(
        key=KEY_PAIS,
        label=LABEL_PAIS,
        kind=FieldKind.MULTISELECT,
        options=country_options(),
        value=to_country_codes(selected),
    )


# =============================================================================
# LOOSE KEY / VALUE PAIRS
# =============================================================================

def detect_key_values(paragraphs: Sequence[str], tables: Sequence[Table]) -> List[KeyValueField]:
    detected: List[KeyValueField] = []
    seen: Set[str] = set()

    def push(key_raw: str, value_raw: str) -> None:
        key = clean(key_raw).lstrip("*").strip()
        value = clean(value_raw)
        if not key or not value or is_respuesta_placeholder(value):
            return
        k = normalize_key(key)
        if any(noise.match(k) for noise in _KV_NOISE):
            return
        if k in seen:
            return
        seen.add(k)
        detected.append(KeyValueField(key=key, value=value))

    for line in paragraphs:
        m = PARAGRAPH_KV_RE.match(clean(line))
        if m:
            push(m.group(1), m.group(2))

    for table in tables:
        for row in table:
            if len(row) == 1:
                m = TABLE_KV_RE.match(clean(row[0]))
                if m:
                    push(m.group(1), m.group(2))
                continue
            if len(row) < 2:
                continue
            c0, c1 = clean(row[0]), clean(row[1])
            m0, m1 = TABLE_KV_RE.match(c0), TABLE_KV_RE.match(c1)
            if m0:
                push(m0.group(1), m0.group(2))
            elif m1 and not c0:
                push(m1.group(1), m1.group(2))
            elif c0 and c1 and not normalize_key(c0).startswith("respuesta"):
                push(c0.rstrip(":"), c1)

    marked = _fallback_countries(tables)
    if marked:
        push(LABEL_PAIS, marked[0])
    return detected


# =============================================================================
# ASSEMBLY
# =============================================================================

def _field_rank(key: str) -> int:
    order = [normalize_key(k) for k in FIELD_ORDER]
    k = normalize_key(key)
    return order.index(k) if k in order else len(order)


def build_info_general(fields: Sequence[UIField]) -> Optional[UISection]:
    """Order fields canonically; unknown keys go last in the order found."""
    unique: Dict[str, UIField] = {}
    for f in fields:
        unique.setdefault(normalize_key(f.key), f)
    if not unique:
        return None
    ordered = sorted(unique.values(), key=lambda f: _field_rank(f.key))
    return UISection(id=SECTION_INFO_GENERAL, title=SECTION_INFO_GENERAL_TITLE, fields=ordered)


def extract_manual(nodes: Sequence[DocumentNode]) -> ManualExtract:
    paragraphs = [clean(n.text) for n in nodes if isinstance(n, ParagraphNode)]
    tables = [n.rows for n in nodes if isinstance(n, TableNode)]

    fields: List[UIField] = []
    header_table = find_header_table(tables)
    if header_table is not None:
        fields.extend(extract_header_fields(header_table))

    block = find_yes_no_block(tables)
    if block is not None:
        fields.extend(extract_yes_no_block(*block))

    provider = extract_provider_participation(tables)
    if provider is not None:
        fields.append(provider)

    countries = extract_countries(tables)
    if countries is not None:
        fields.append(countries)

    section = build_info_general(fields)
    piezas = detect_piezas(tables)
    detected = detect_key_values([p for p in paragraphs if p], tables)

    raw_tables = [
        [list(row) for row in table if not _is_empty(row)]
        for table in tables
    ]
    return ManualExtract(
        campos_detectados=detected,
        piezas_detalladas=piezas,
        secciones_reconocidas=[section] if section is not None else [],
        raw=RawContent(
            paragraphs=[p for p in paragraphs if p],
            tables=[t for t in raw_tables if t],
        ),
    )


def parse_manual(data: bytes) -> ManualExtract:
    """Parse a change-manual DOCX package.

    Raises MalformedDocument when the package or its body part is unusable.
    Heuristics that find nothing simply leave their fields out.
    """
    _, body = load_document_root(data)
    nodes = walk_body(body)
    result = extract_manual(nodes)

    n_fields = sum(len(s.fields) for s in result.secciones_reconocidas)
    n_items = sum(len(g.items) for g in result.piezas_detalladas)
    logger.info(
        f"[PARSE] {len(nodes)} nodes -> {n_fields} fields, "
        f"{len(result.piezas_detalladas)} piece group(s) / {n_items} item(s), "
        f"{len(result.campos_detectados)} loose pair(s)"
    )
    return result
