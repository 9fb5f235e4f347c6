from __future__ import annotations

from enum import Enum
from typing import Any, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator


class FieldKind(str, Enum):
    TEXT = "text"
    SELECT = "select"
    MULTISELECT = "multiselect"


def coerce_kind(value: Any) -> FieldKind:
    """Missing or unknown kinds fall back to free text."""
    if isinstance(value, FieldKind):
        return value
    try:
        return FieldKind(str(value).strip().lower())
    except ValueError:
        return FieldKind.TEXT


class FieldOption(BaseModel):
    value: str
    label: str


# A multiselect holds an ordered list of option values; everything else a string.
FieldValue = Union[str, List[str]]


class UIField(BaseModel):
    """One editable field of a recognized section."""

    key: str  # stable id, e.g. "id-cambio"
    label: str  # display text, e.g. "ID de Cambio"
    kind: FieldKind = FieldKind.TEXT
    value: FieldValue = ""
    options: Optional[List[FieldOption]] = None  # used by select and multiselect

    @field_validator("kind", mode="before")
    @classmethod
    def _default_kind(cls, v: Any) -> FieldKind:
        return coerce_kind(v)

    def option_values(self) -> List[str]:
        return [o.value for o in (self.options or [])]


class UISection(BaseModel):
    id: str
    title: str
    fields: List[UIField] = []

    def get_field(self, key: str) -> Optional[UIField]:
        for f in self.fields:
            if f.key == key:
                return f
        return None


# =============================================================================
# PIECES: named deliverable artifacts grouped by repository/category
# =============================================================================

class PiezasItem(BaseModel):
    nombre: str  # file name
    tipo: str  # category label derived from the extension or the table
    estado: str  # "Nuevo" | "Modificado" | free text


class PiezasGrupo(BaseModel):
    grupo: str  # usually a repository or subsystem name
    items: List[PiezasItem] = []


class KeyValueField(BaseModel):
    key: str
    value: str


class RawContent(BaseModel):
    """Plain text of the document, for diagnostics only."""

    paragraphs: List[str] = []
    tables: List[List[List[str]]] = []


class ManualExtract(BaseModel):
    """Top-level parse result of a change manual."""

    campos_detectados: List[KeyValueField] = []
    piezas_detalladas: List[PiezasGrupo] = []
    secciones_reconocidas: List[UISection] = []
    raw: RawContent = Field(default_factory=RawContent)


# =============================================================================
# REPOSITORY CHANGE RECORDS (supplied by the external scanner)
# =============================================================================

ChangeKind = Literal["modified", "added", "deleted", "untracked", "renamed", "copied", "unknown"]


class RepoChange(BaseModel):
    path: str  # relative to the repository root
    kind: ChangeKind = "unknown"
    rename_from: Optional[str] = None
    conflicted: bool = False


class RepoStatus(BaseModel):
    repo_name: str
    repo_path: str = ""
    branch: Optional[str] = None
    ahead: int = 0
    behind: int = 0
    changes: List[RepoChange] = []
