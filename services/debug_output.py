"""Debug Output Service - Saves intermediate results of each parse.

When MANUAL_DEBUG_OUTPUT is on, every opened template gets its own folder
under <data dir>/debug/<session id>/ with:
- document.xml (the body part, pretty-printed)
- extract.json (the full parse result, raw text included)
- manifest.json (what was written, with sizes)
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict

from lxml import etree as ET

from models.schemas import ManualExtract
from services.config import get_settings
from services.manual_engine.package import read_document_xml

logger = logging.getLogger(__name__)


def _ensure_debug_dir(session_id: str) -> Path:
    """Create and return the debug directory for a session."""
    # Sanitize id for filesystem
    safe_id = session_id.replace("/", "_").replace("\\", "_").replace(":", "_")
    debug_dir = get_settings().debug_dir / safe_id
    debug_dir.mkdir(parents=True, exist_ok=True)
    return debug_dir


def _prettify_xml(xml_bytes: bytes) -> bytes:
    """Pretty-print XML for readability."""
    parser = ET.XMLParser(remove_blank_text=True, resolve_entities=False, huge_tree=True)
    root = ET.fromstring(xml_bytes, parser=parser)
    return ET.tostring(root, pretty_print=True, xml_declaration=True, encoding="UTF-8")


def save_document_xml(session_id: str, data: bytes) -> Path:
    debug_dir = _ensure_debug_dir(session_id)
    path = debug_dir / "document.xml"
    xml_bytes = read_document_xml(data)
    try:
        path.write_bytes(_prettify_xml(xml_bytes))
    except ET.XMLSyntaxError as e:
        logger.warning(f"[DEBUG] Could not prettify document.xml for {session_id}: {e}")
        path.write_bytes(xml_bytes)
    return path


def save_extract(session_id: str, extract: ManualExtract) -> Dict[str, Any]:
    """Save the parse result with summary statistics."""
    debug_dir = _ensure_debug_dir(session_id)
    (debug_dir / "extract.json").write_text(
        extract.model_dump_json(indent=2), encoding="utf-8"
    )

    stats = {
        "sections": len(extract.secciones_reconocidas),
        "fields": sum(len(s.fields) for s in extract.secciones_reconocidas),
        "piece_groups": len(extract.piezas_detalladas),
        "piece_items": sum(len(g.items) for g in extract.piezas_detalladas),
        "loose_pairs": len(extract.campos_detectados),
        "paragraphs": len(extract.raw.paragraphs),
        "tables": len(extract.raw.tables),
    }
    logger.info(f"[DEBUG] Saved extract for {session_id}: {stats}")
    return stats


def create_debug_manifest(session_id: str, stats: Dict[str, Any] | None = None) -> Dict[str, Any]:
    """Create a manifest of all debug files for a session."""
    debug_dir = _ensure_debug_dir(session_id)

    manifest = {
        "session_id": session_id,
        "debug_dir": str(debug_dir),
        "created_at": datetime.now().isoformat(),
        "stats": stats or {},
        "files": [],
    }

    for file_path in sorted(debug_dir.glob("*")):
        if file_path.is_file() and file_path.name != "manifest.json":
            manifest["files"].append({
                "name": file_path.name,
                "size": file_path.stat().st_size,
            })

    (debug_dir / "manifest.json").write_text(json.dumps(manifest, indent=2), encoding="utf-8")
    return manifest


def save_open_snapshot(session_id: str, data: bytes, extract: ManualExtract) -> Dict[str, Any]:
    """Write document.xml, extract.json and manifest.json for one open."""
    save_document_xml(session_id, data)
    stats = save_extract(session_id, extract)
    return create_debug_manifest(session_id, stats)
