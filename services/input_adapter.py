"""Byte normalization for template input.

Template bytes reach the service in several transport shapes: raw bytes,
a buffer view, a serialized Node Buffer ({"type": "Buffer", "data": [...]}),
a length-indexed object ({"0": 80, "1": 75, "length": 2}), a list of ints,
or base64 text. All of them become plain `bytes` before parsing.
"""
from __future__ import annotations

import base64
import binascii
import logging
from typing import Any, Mapping, Optional, Sequence

from services.manual_engine.errors import UnsupportedInputShape

logger = logging.getLogger(__name__)

# keys tried, in order, on a file-picker result
OPEN_RESULT_KEYS = ("bytes", "buffer", "base64")


def _from_ints(values: Sequence[Any]) -> bytes:
    try:
        return bytes(int(v) for v in values)
    except (TypeError, ValueError) as exc:
        raise UnsupportedInputShape("Byte list holds values outside 0..255") from exc


def _from_length_indexed(value: Mapping[str, Any]) -> bytes:
    try:
        length = int(value["length"])
        return _from_ints([value[str(i)] for i in range(length)])
    except (KeyError, TypeError, ValueError) as exc:
        raise UnsupportedInputShape("Length-indexed object is incomplete") from exc


def _from_base64(text: str) -> bytes:
    payload = text.strip()
    if payload.startswith("data:") and "," in payload:
        # data URL: "data:application/...;base64,<payload>"
        payload = payload.split(",", 1)[1]
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise UnsupportedInputShape("Text input is not valid base64") from exc


def to_bytes(value: Any) -> bytes:
    """Convert any supported transport shape into bytes.

    Raises UnsupportedInputShape for anything else.
    """
    if isinstance(value, bytes):
        return value
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        return _from_base64(value)
    if isinstance(value, Mapping):
        if value.get("type") == "Buffer" and isinstance(value.get("data"), list):
            return _from_ints(value["data"])
        if "length" in value:
            return _from_length_indexed(value)
        raise UnsupportedInputShape(f"Unrecognized object keys: {sorted(map(str, value))[:5]}")
    if isinstance(value, (list, tuple)):
        return _from_ints(value)
    raise UnsupportedInputShape(f"Unsupported input type: {type(value).__name__}")


def coerce_open_result(result: Optional[Mapping[str, Any]]) -> Optional[bytes]:
    """Bytes of a file-picker result, or None when the user cancelled."""
    if result is None or result.get("canceled") or result.get("cancelled"):
        return None
    for key in OPEN_RESULT_KEYS:
        candidate = result.get(key)
        if candidate is None:
            continue
        data = to_bytes(candidate)
        if data:
            logger.debug(f"[OPEN] using '{key}' from open result ({len(data)} bytes)")
            return data
    raise UnsupportedInputShape("Open result carries no bytes, buffer or base64 payload")
