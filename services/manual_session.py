"""Editing session: one open template, its field model and its pieces.

Opening replaces the whole state only after the template parsed cleanly;
a failed open leaves the previous document loaded. Export re-reads the
original template bytes and writes the current field values into them.
"""
from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from models.schemas import (
    FieldKind,
    FieldValue,
    ManualExtract,
    PiezasGrupo,
    RepoStatus,
    UIField,
    UISection,
)
from services.config import get_settings
from services.input_adapter import coerce_open_result, to_bytes
from services.manual_engine import (
    apply_country_selection,
    fill_manual,
    merge_piezas_groups,
    normalize_sections,
    parse_manual,
)
from services.manual_engine.constants import KEY_PAIS, NO, YES
from services.manual_engine.errors import (
    InvalidFieldValue,
    NoSectionsToExport,
    NoTemplateLoaded,
    UnknownField,
)
from services.manual_engine.normalize import is_yes_no_token, normalize_key, normalize_yes_no
from services.repo_changes import groups_from_statuses

logger = logging.getLogger(__name__)


@dataclass
class ManualSession:
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    filename: Optional[str] = None
    template_bytes: Optional[bytes] = None
    data: Optional[ManualExtract] = None
    sections: List[UISection] = field(default_factory=list)
    detailed_pieces: List[PiezasGrupo] = field(default_factory=list)

    # =========================================================================
    # OPEN / EXPORT
    # =========================================================================

    def open(self, raw: Any, filename: Optional[str] = None) -> List[UISection]:
        """Load a template from any supported transport shape.

        Raises UnsupportedInputShape or MalformedDocument; on either, the
        session keeps what it had before.
        """
        data = to_bytes(raw)
        extract = parse_manual(data)
        sections = normalize_sections(extract.secciones_reconocidas)

        self.template_bytes = data
        self.filename = filename
        self.data = extract
        self.sections = sections
        self.detailed_pieces = [g.model_copy(deep=True) for g in extract.piezas_detalladas]
        logger.info(
            f"[OPEN] session {self.id}: {filename or '<bytes>'} "
            f"({len(data)} bytes, {len(sections)} section(s))"
        )
        return self.sections

    def open_result(self, result: Optional[Mapping[str, Any]]) -> Optional[List[UISection]]:
        """Open from a file-picker result; a cancelled picker is a no-op (None)."""
        data = coerce_open_result(result)
        if data is None:
            logger.info(f"[OPEN] session {self.id}: open cancelled")
            return None
        return self.open(data, filename=(result or {}).get("filePath") or (result or {}).get("filename"))

    def export(self) -> Tuple[str, bytes]:
        """(suggested filename, DOCX bytes) with the current field values written in."""
        if self.template_bytes is None:
            raise NoTemplateLoaded("No template loaded")
        if not self.sections:
            raise NoSectionsToExport("No sections to export")

        out = fill_manual(self.template_bytes, self.sections)
        logger.info(f"[EXPORT] session {self.id}: {len(out)} bytes")
        return get_settings().export_filename, out

    # =========================================================================
    # EDITS
    # =========================================================================

    def get_field(self, section_id: str, key: str) -> UIField:
        for section in self.sections:
            if section.id != section_id:
                continue
            f = section.get_field(key)
            if f is not None:
                return f
            break
        raise UnknownField(f"{section_id}/{key}")

    def update_field(self, section_id: str, key: str, value: FieldValue) -> UIField:
        f = self.get_field(section_id, key)
        f.value = _coerce_value(f, value)
        return f

    def set_pieces(self, groups: Sequence[PiezasGrupo]) -> List[PiezasGrupo]:
        self.detailed_pieces = merge_piezas_groups(groups)
        return self.detailed_pieces

    def import_repo_changes(self, statuses: Sequence[RepoStatus], replace: bool = False) -> List[PiezasGrupo]:
        """Add the pieces found by the repository scanner to the current ones."""
        incoming = groups_from_statuses(statuses)
        base = [] if replace else self.detailed_pieces
        self.detailed_pieces = merge_piezas_groups([*base, *incoming])
        logger.info(f"[PIECES] session {self.id}: imported {len(incoming)} repository group(s)")
        return self.detailed_pieces


def _coerce_value(f: UIField, value: FieldValue) -> FieldValue:
    options = f.option_values()

    if f.kind == FieldKind.MULTISELECT:
        selected = [value] if isinstance(value, str) else list(value)
        selected = [s for s in (str(v).strip() for v in selected) if s]
        unknown = [s for s in selected if options and s not in options]
        if unknown:
            raise InvalidFieldValue(f"'{f.key}' has no option(s) {unknown}")
        if KEY_PAIS in normalize_key(f.key):
            previous = f.value if isinstance(f.value, list) else []
            return apply_country_selection(previous, selected)
        return [o for o in options if o in selected] if options else selected

    if not isinstance(value, str):
        raise InvalidFieldValue(f"'{f.key}' expects a single value")

    if f.kind == FieldKind.SELECT and options:
        if set(options) == {YES, NO} and is_yes_no_token(value):
            return normalize_yes_no(value)
        if value not in options:
            raise InvalidFieldValue(f"'{value}' is not an option of '{f.key}'")
    return value


# =============================================================================
# SESSION REGISTRY
# =============================================================================

class SessionRegistry:
    """In-memory sessions keyed by id. Nothing is persisted."""

    def __init__(self) -> None:
        self._sessions: Dict[str, ManualSession] = {}
        self._lock = threading.Lock()

    def create(self) -> ManualSession:
        session = ManualSession()
        with self._lock:
            self._sessions[session.id] = session
        return session

    def get(self, session_id: str) -> Optional[ManualSession]:
        with self._lock:
            return self._sessions.get(session_id)

    def drop(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()


registry = SessionRegistry()
