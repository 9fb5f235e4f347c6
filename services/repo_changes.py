"""Pieces from repository change records.

The scanner that produces RepoStatus records lives outside this service;
this module only maps its records onto the pieces model, using the same
extension table as the document parser.
"""
from __future__ import annotations

from pathlib import PurePosixPath
from typing import List, Sequence

from models.schemas import PiezasGrupo, PiezasItem, RepoChange, RepoStatus
from services.manual_engine.constants import (
    STATUS_DELETED,
    STATUS_MODIFIED,
    STATUS_NEW,
    tipo_for_extension,
)

_KIND_STATUS = {
    "added": STATUS_NEW,
    "untracked": STATUS_NEW,
    "deleted": STATUS_DELETED,
}


def piece_from_change(change: RepoChange) -> PiezasItem:
    # scanners on Windows report backslash paths
    name = PurePosixPath(change.path.replace("\\", "/")).name
    ext = name.rsplit(".", 1)[-1] if "." in name.lstrip(".") else ""
    return PiezasItem(
        nombre=name,
        tipo=tipo_for_extension(ext),
        estado=_KIND_STATUS.get(change.kind, STATUS_MODIFIED),
    )


def groups_from_statuses(statuses: Sequence[RepoStatus]) -> List[PiezasGrupo]:
    """One group per repository with changes, in the order given."""
    groups: List[PiezasGrupo] = []
    for status in statuses:
        if not status.changes:
            continue
        groups.append(PiezasGrupo(
            grupo=status.repo_name,
            items=[piece_from_change(c) for c in status.changes],
        ))
    return groups
