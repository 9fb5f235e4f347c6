"""Detection of "piezas detalladas" (deliverable artifacts) in the manual.

Three heuristics, in priority order:

1. Horizontal tables: a header row Nombre | Tipo | Nuevo o Modificado and
   data rows under it. Several blocks per table are allowed.
2. Vertical tables: the same three headers stacked in one column, followed by
   triples of data cells. Only tried on a table where (1) found nothing.
3. Installation tables ("Objeto a instalar" / "Objeto a respaldar"): file
   names are pulled out of free text. Only used when (1) and (2) found
   nothing anywhere in the document.

Whatever is found goes through merge_piezas_groups, so the same repository
detected twice ends up as one group.
"""
from __future__ import annotations

import logging
import re
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

from models.schemas import PiezasGrupo, PiezasItem

from .constants import (
    DEFAULT_GROUP_NAME,
    DEFAULT_STATUS,
    KNOWN_EXTENSIONS,
    KNOWN_REPOSITORIES,
    MARKER_LISTADO_PIEZAS,
    STATUS_MODIFIED,
    STATUS_NEW,
    tipo_for_extension,
)
from .normalize import clean, normalize_key

logger = logging.getLogger(__name__)

Row = Sequence[str]
Table = Sequence[Row]

GROUP_TITLE_MAX_LEN = 40
GROUP_LOOKBACK_ROWS = 4
VERTICAL_LOOKBACK_ROWS = 5
INSTALL_HEADER_ROWS = 4

_NEW_RE = re.compile(r"nuev[oa]s?", re.IGNORECASE)
_MODIFIED_RE = re.compile(r"modificad[oa]s?", re.IGNORECASE)
_NOMBRE_RE = re.compile(r"^nombre(\s+(del?|de la)\s+\w+)?$")
_TIPO_RE = re.compile(r"^tipo(\s+(del?|de la)\s+\w+)?$")
_STACKED_STATUS_RE = re.compile(r"nuevo\s*(o|/)\s*modificado")
_REPO_NAME_RE = re.compile(r"^[A-Z0-9 _\-/]{2,}$")
_FILE_TOKEN_RE = re.compile(r"[A-Za-z0-9._\-\\/]+\.([A-Za-z0-9]{1,8})")
_PATH_SEP_RE = re.compile(r"[\\/]")
_INSTALL_HEADER_RE = re.compile(r"^(objeto\s+a\s+instalar|objeto\s+a\s+respaldar|archivo|artefacto)")
_REPO_LABEL_RE = re.compile(r"^repositorio\s*:?\s*$")
_REPO_INLINE_RE = re.compile(r"^repositorio\s*:\s*(.+)$", re.IGNORECASE)
_IMPLEMENTATION_ROW_RE = re.compile(r"^(implementacion|base de datos|parametros|seguridad|oic|salesforce)")
_KNOWN_REPO_KEYS = frozenset(normalize_key(r) for r in KNOWN_REPOSITORIES)


class HeaderMap(NamedTuple):
    nombre: int
    tipo: int
    estado: int


def _cell(row: Row, index: int) -> str:
    return clean(row[index]) if 0 <= index < len(row) else ""


def _non_empty(row: Row) -> List[str]:
    return [c for c in (clean(x) for x in row) if c]


# =============================================================================
# STATUS AND NAMES
# =============================================================================

def normalize_status(raw: str | None, default: Optional[str] = None) -> str:
    """"Nuevo" / "Modificado" when the text clearly says so.

    Text that names both or neither is kept as-is (trimmed), unless a default
    is given.
    """
    text = clean(raw)
    is_new = bool(_NEW_RE.search(text))
    is_modified = bool(_MODIFIED_RE.search(text))
    if is_new and not is_modified:
        return STATUS_NEW
    if is_modified and not is_new:
        return STATUS_MODIFIED
    return default if default is not None else text


def is_known_repository(text: str) -> bool:
    return normalize_key(text).replace("_", " ") in {k.replace("_", " ") for k in _KNOWN_REPO_KEYS}


def is_listado_title(text: str) -> bool:
    return normalize_key(text).startswith(normalize_key(MARKER_LISTADO_PIEZAS))


def looks_like_group_title(text: str) -> bool:
    """Short, colon-free, and shaped like a repository or "Area/Subarea" name."""
    t = clean(text)
    if not t or len(t) > GROUP_TITLE_MAX_LEN or ":" in t:
        return False
    if _FILE_TOKEN_RE.search(t):
        return False
    return "/" in t or bool(_REPO_NAME_RE.match(t)) or is_known_repository(t)


def group_key(name: str) -> str:
    """Merge key for group names: "Middleware / OSB" == "middleware/osb"."""
    key = normalize_key(name)
    key = re.sub(r"\s*[/\\]\s*", "/", key)
    key = re.sub(r"[\s_\-]+", " ", key).strip()
    return key or normalize_key(DEFAULT_GROUP_NAME)


# =============================================================================
# HORIZONTAL LAYOUT
# =============================================================================

def map_piece_headers(row: Row) -> Optional[HeaderMap]:
    """Column indexes of Nombre / Tipo / status, or None if the row is not a header."""
    nombre = tipo = estado = -1
    for i, raw in enumerate(row):
        h = normalize_key(raw)
        if not h:
            continue
        if nombre < 0 and _NOMBRE_RE.match(h):
            nombre = i
        elif tipo < 0 and _TIPO_RE.match(h):
            tipo = i
        elif estado < 0 and ("nuevo" in h or "modificado" in h) and len(h) <= 40:
            # the status label wraps and varies between templates
            estado = i
    if nombre >= 0 and tipo >= 0 and estado >= 0:
        return HeaderMap(nombre, tipo, estado)
    return None


def infer_group_name(table: Table, header_index: int, lookback: int = GROUP_LOOKBACK_ROWS) -> str:
    """Nearest single-cell, colon-free, short row above a header row."""
    for k in range(header_index - 1, max(-1, header_index - 1 - lookback), -1):
        cells = _non_empty(table[k])
        if not cells:
            continue
        if is_listado_title(" ".join(cells)):
            continue
        if len(cells) == 1 and ":" not in cells[0] and len(cells[0]) <= GROUP_TITLE_MAX_LEN:
            return cells[0]
    return DEFAULT_GROUP_NAME


def _starts_new_group(row: Row, header: Row, header_map: HeaderMap) -> bool:
    cells = _non_empty(row)
    if len(cells) != 1:
        return False
    if _FILE_TOKEN_RE.search(cells[0]):
        return False
    # a merged title row has fewer cells than the header grid
    return len(row) < len(header) or looks_like_group_title(cells[0])


def extract_horizontal_groups(table: Table) -> List[PiezasGrupo]:
    groups: List[PiezasGrupo] = []
    h = 0
    while h < len(table):
        header_map = map_piece_headers(table[h])
        if header_map is None:
            h += 1
            continue

        header = table[h]
        grupo = infer_group_name(table, h)
        items: List[PiezasItem] = []
        i = h + 1
        while i < len(table):
            row = table[i]
            if map_piece_headers(row) is not None:
                break
            if not _non_empty(row):
                break
            if _starts_new_group(row, header, header_map):
                break
            nombre = _cell(row, header_map.nombre)
            tipo = _cell(row, header_map.tipo)
            estado_raw = _cell(row, header_map.estado)
            if nombre or tipo or estado_raw:
                items.append(PiezasItem(nombre=nombre, tipo=tipo, estado=normalize_status(estado_raw)))
            i += 1

        if items:
            groups.append(PiezasGrupo(grupo=clean(grupo), items=items))
        h = max(i, h + 1)
    return groups


# =============================================================================
# VERTICAL LAYOUT (stacked headers)
# =============================================================================

def _is_stacked_header(a: str, b: str, c: str) -> bool:
    return (
        normalize_key(a) == "nombre"
        and normalize_key(b) == "tipo"
        and bool(_STACKED_STATUS_RE.search(normalize_key(c)))
    )


def is_probable_group_name(text: str) -> bool:
    t = clean(text)
    if not t:
        return False
    k = normalize_key(t)
    if k in ("nombre", "tipo") or _STACKED_STATUS_RE.search(k) or is_listado_title(t):
        return False
    return bool(_REPO_NAME_RE.match(t)) or is_known_repository(t)


def extract_vertical_groups(table: Table) -> List[PiezasGrupo]:
    # one logical column: the first non-empty cell of every row
    col = [next((c for c in (clean(x) for x in row) if c), "") for row in table]
    groups: List[PiezasGrupo] = []

    i = 0
    while i + 2 < len(col):
        if not _is_stacked_header(col[i], col[i + 1], col[i + 2]):
            i += 1
            continue

        grupo = DEFAULT_GROUP_NAME
        for k in range(i - 1, max(-1, i - 1 - VERTICAL_LOOKBACK_ROWS), -1):
            if is_probable_group_name(col[k]):
                grupo = col[k]
                break

        items: List[PiezasItem] = []
        j = i + 3
        while j + 2 < len(col):
            nombre, tipo, estado_raw = col[j], col[j + 1], col[j + 2]
            if _is_stacked_header(nombre, tipo, estado_raw):
                break
            if not nombre and not tipo and not estado_raw:
                break
            if is_probable_group_name(nombre) and not tipo and not estado_raw:
                break
            items.append(PiezasItem(nombre=nombre, tipo=tipo, estado=normalize_status(estado_raw)))
            j += 3

        if items:
            groups.append(PiezasGrupo(grupo=grupo, items=items))
        i = j
    return groups


# =============================================================================
# INSTALLATION-TABLE FALLBACK
# =============================================================================

def extract_filenames(text: str) -> List[str]:
    """Base names of tokens that carry a known file extension."""
    out: List[str] = []
    for m in _FILE_TOKEN_RE.finditer(clean(text)):
        if m.group(1).lower() not in KNOWN_EXTENSIONS:
            continue
        base = _PATH_SEP_RE.split(m.group(0))[-1]
        if not base or base.upper() == "N/A" or base.startswith("."):
            continue
        if base not in out:
            out.append(base)
    return out


def guess_status(row: Row) -> str:
    return normalize_status(" ".join(row), default=DEFAULT_STATUS)


def find_repository_name(table: Table) -> str:
    """Repository named by a "Repositorio:" header (value below) or a triple row."""
    for r, row in enumerate(table):
        for c, raw in enumerate(row):
            text = clean(raw)
            m = _REPO_INLINE_RE.match(text)
            if m:
                return clean(m.group(1))
            if _REPO_LABEL_RE.match(normalize_key(text)):
                below = _cell(table[r + 1], c) if r + 1 < len(table) else ""
                if below:
                    return below

    for row in table:
        if len(row) >= 3 and _IMPLEMENTATION_ROW_RE.match(normalize_key(row[0])) and is_known_repository(row[2]):
            return clean(row[2])
    return ""


def find_install_column(table: Table) -> Tuple[int, int]:
    """(header row, column) of the "Objeto a instalar/respaldar" column, or (-1, -1)."""
    for r, row in enumerate(table[:INSTALL_HEADER_ROWS]):
        for c, raw in enumerate(row):
            if _INSTALL_HEADER_RE.match(normalize_key(raw)):
                return r, c
    return -1, -1


def extract_installation_groups(tables: Sequence[Table]) -> List[PiezasGrupo]:
    groups: Dict[str, PiezasGrupo] = {}
    current_repo = ""

    for table in tables:
        current_repo = find_repository_name(table) or current_repo
        header_row, column = find_install_column(table)
        if column < 0:
            continue

        items: List[PiezasItem] = []
        for row in table[header_row + 1:]:
            files = extract_filenames(_cell(row, column))
            if not files:
                # "Descargar del repositorio X el objeto" with the file in another cell
                for c, raw in enumerate(row):
                    if c == column:
                        continue
                    for name in extract_filenames(raw):
                        if name not in files:
                            files.append(name)
            if not files:
                continue
            estado = guess_status(row)
            for name in files:
                ext = name.rsplit(".", 1)[-1] if "." in name else ""
                items.append(PiezasItem(nombre=name, tipo=tipo_for_extension(ext), estado=estado))

        if not items:
            continue
        grupo = current_repo or DEFAULT_GROUP_NAME
        key = group_key(grupo)
        if key in groups:
            groups[key].items.extend(items)
        else:
            groups[key] = PiezasGrupo(grupo=grupo, items=items)

    return list(groups.values())


# =============================================================================
# NORMALIZER
# =============================================================================

def _item_signature(item: PiezasItem) -> Tuple[str, str, str]:
    return (
        clean(item.nombre).casefold(),
        clean(item.tipo).casefold(),
        clean(item.estado).casefold(),
    )


def merge_piezas_groups(groups: Sequence[PiezasGrupo]) -> List[PiezasGrupo]:
    """One group per normalized name; items deduped by (nombre, tipo, estado).

    Group order and item order are first-seen order.
    """
    merged: Dict[str, PiezasGrupo] = {}
    seen: Dict[str, set] = {}
    for group in groups:
        key = group_key(group.grupo)
        if key not in merged:
            merged[key] = PiezasGrupo(grupo=clean(group.grupo) or DEFAULT_GROUP_NAME, items=[])
            seen[key] = set()
        for item in group.items:
            sig = _item_signature(item)
            if sig in seen[key]:
                continue
            seen[key].add(sig)
            merged[key].items.append(item.model_copy())
    return list(merged.values())


def detect_piezas(tables: Sequence[Table]) -> List[PiezasGrupo]:
    """Run the pieces heuristics over every table of the document."""
    structured: List[PiezasGrupo] = []
    for index, table in enumerate(tables):
        groups = extract_horizontal_groups(table)
        layout = "horizontal"
        if not groups:
            groups = extract_vertical_groups(table)
            layout = "vertical"
        if groups:
            logger.debug(f"[PIECES] table #{index}: {layout}, {len(groups)} group(s)")
        structured.extend(groups)

    if structured:
        return merge_piezas_groups(structured)

    fallback = extract_installation_groups(tables)
    if fallback:
        logger.info(f"[PIECES] no pieces table found, {len(fallback)} group(s) inferred from installation tables")
    return merge_piezas_groups(fallback)
