from __future__ import annotations

import logging
from typing import Any, Dict, List, NoReturn, Optional
from urllib.parse import quote

from fastapi import APIRouter, File, HTTPException, Response, UploadFile
from pydantic import BaseModel

from models.schemas import (
    FieldValue,
    KeyValueField,
    PiezasGrupo,
    RepoStatus,
    UIField,
    UISection,
)
from services.config import get_settings
from services.debug_output import save_open_snapshot
from services.manual_engine.errors import (
    InvalidFieldValue,
    MalformedDocument,
    ManualEngineError,
    NoSectionsToExport,
    NoTemplateLoaded,
    UnknownField,
    UnsupportedInputShape,
)
from services.manual_session import ManualSession, registry
from services.validation import validate_export

logger = logging.getLogger(__name__)


router = APIRouter(prefix="/manuals", tags=["manuals"])


DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


class ManualResponse(BaseModel):
    id: str
    filename: Optional[str] = None
    sections: List[UISection] = []
    pieces: List[PiezasGrupo] = []
    detected: List[KeyValueField] = []


class OpenRequest(BaseModel):
    """Template bytes in any supported transport shape, or a file-picker result."""
    data: Any = None
    result: Optional[Dict[str, Any]] = None
    filename: Optional[str] = None


class FieldUpdateRequest(BaseModel):
    value: FieldValue


class RepoChangesRequest(BaseModel):
    statuses: List[RepoStatus]
    replace: bool = False


class ValidationReportResponse(BaseModel):
    """Response containing detailed validation report."""
    document_id: str
    has_errors: bool
    has_warnings: bool
    stages: list[dict]
    issues: list[dict]


def _raise_http(exc: ManualEngineError) -> NoReturn:
    if isinstance(exc, (MalformedDocument, UnsupportedInputShape, InvalidFieldValue)):
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if isinstance(exc, (NoTemplateLoaded, NoSectionsToExport)):
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    if isinstance(exc, UnknownField):
        raise HTTPException(status_code=404, detail=f"Field not found: {exc}") from exc
    raise HTTPException(status_code=500, detail=str(exc)) from exc


def _get_session(manual_id: str) -> ManualSession:
    session = registry.get(manual_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Manual not found")
    return session


def _response(session: ManualSession) -> ManualResponse:
    return ManualResponse(
        id=session.id,
        filename=session.filename,
        sections=session.sections,
        pieces=session.detailed_pieces,
        detected=session.data.campos_detectados if session.data else [],
    )


def _after_open(session: ManualSession) -> None:
    if not get_settings().debug_output or session.template_bytes is None or session.data is None:
        return
    try:
        save_open_snapshot(session.id, session.template_bytes, session.data)
    except OSError as e:
        logger.warning(f"[DEBUG] Could not write debug snapshot for {session.id}: {e}")


def _open_into(session: ManualSession, request: OpenRequest) -> Optional[ManualResponse]:
    try:
        if request.result is not None:
            if session.open_result(request.result) is None:
                return None
        else:
            session.open(request.data, filename=request.filename)
    except ManualEngineError as exc:
        logger.warning(f"[OPEN] {session.id}: {exc}")
        _raise_http(exc)
    _after_open(session)
    return _response(session)


# =============================================================================
# OPEN
# =============================================================================

@router.post("/", response_model=ManualResponse)
async def upload_manual(file: UploadFile = File(...)) -> ManualResponse:
    """Upload a change-manual DOCX and parse it into an editable field model."""
    if not (file.filename or "").lower().endswith(".docx"):
        raise HTTPException(status_code=400, detail="Only .docx files are supported")

    content = await file.read()
    if len(content) > get_settings().max_upload_bytes:
        raise HTTPException(status_code=413, detail="File too large")

    session = registry.create()
    logger.info(f"[PARSE] Starting parse of {file.filename} into session {session.id}")
    try:
        session.open(content, filename=file.filename)
    except ManualEngineError as exc:
        registry.drop(session.id)
        logger.warning(f"[PARSE] {file.filename}: {exc}")
        _raise_http(exc)

    _after_open(session)
    return _response(session)


@router.post("/open", response_model=ManualResponse)
async def open_manual(request: OpenRequest):
    """Open a template sent as JSON (byte list, Buffer object, base64 ...).

    A cancelled file-picker result answers 204 and opens nothing.
    """
    session = registry.create()
    try:
        response = _open_into(session, request)
    except HTTPException:
        registry.drop(session.id)
        raise
    if response is None:
        registry.drop(session.id)
        return Response(status_code=204)
    return response


@router.post("/{manual_id}/open", response_model=ManualResponse)
async def reopen_manual(manual_id: str, request: OpenRequest):
    """Replace the session's template. A failed open keeps the previous one."""
    session = _get_session(manual_id)
    response = _open_into(session, request)
    if response is None:
        return Response(status_code=204)
    return response


@router.get("/{manual_id}", response_model=ManualResponse)
async def get_manual(manual_id: str) -> ManualResponse:
    return _response(_get_session(manual_id))


@router.delete("/{manual_id}", status_code=204)
async def close_manual(manual_id: str) -> Response:
    _get_session(manual_id)
    registry.drop(manual_id)
    return Response(status_code=204)


# =============================================================================
# EDITS
# =============================================================================

@router.put("/{manual_id}/fields/{section_id}/{key}", response_model=UIField)
async def update_field(manual_id: str, section_id: str, key: str, request: FieldUpdateRequest) -> UIField:
    session = _get_session(manual_id)
    try:
        return session.update_field(section_id, key, request.value)
    except ManualEngineError as exc:
        _raise_http(exc)


@router.put("/{manual_id}/pieces", response_model=List[PiezasGrupo])
async def replace_pieces(manual_id: str, groups: List[PiezasGrupo]) -> List[PiezasGrupo]:
    session = _get_session(manual_id)
    return session.set_pieces(groups)


@router.post("/{manual_id}/pieces/git", response_model=List[PiezasGrupo])
async def import_repo_changes(manual_id: str, request: RepoChangesRequest) -> List[PiezasGrupo]:
    """Add pieces from repository change records supplied by the scanner."""
    session = _get_session(manual_id)
    return session.import_repo_changes(request.statuses, replace=request.replace)


# =============================================================================
# EXPORT
# =============================================================================

@router.post("/{manual_id}/export")
async def export_manual(manual_id: str) -> Response:
    """Write the current field values into the template and return the DOCX."""
    session = _get_session(manual_id)
    logger.info(f"[EXPORT] Starting export for {manual_id}")
    try:
        filename, content = session.export()
    except ManualEngineError as exc:
        logger.warning(f"[EXPORT] {manual_id}: {exc}")
        _raise_http(exc)

    return Response(
        content=content,
        media_type=DOCX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"},
    )


@router.post("/{manual_id}/validate-export", response_model=ValidationReportResponse)
async def validate_manual_export(manual_id: str) -> ValidationReportResponse:
    """Run an export and compare it with the template, without returning the file.

    1. Entries other than word/document.xml must be byte-identical
    2. Paragraph / table / row / cell counts must match
    3. Every changed cell is listed with its before and after text
    """
    session = _get_session(manual_id)
    try:
        _, content = session.export()
        report = validate_export(session.template_bytes, content, document_id=manual_id)
    except ManualEngineError as exc:
        _raise_http(exc)

    logger.info(f"[VALIDATE-EXPORT] {manual_id}: errors={report.has_errors}, warnings={report.has_warnings}")
    return ValidationReportResponse(**report.to_dict())
