"""Error taxonomy for the change-manual engine.

Document-level failures abort the current operation (open or export) and are
surfaced to the caller. Field-level misses are recoverable and never escape
the writer.
"""
from __future__ import annotations


class ManualEngineError(Exception):
    """Base class for every error raised by the engine."""


class MalformedDocument(ManualEngineError):
    """The package is not a DOCX, or the body part / w:body is absent."""


class UnsupportedInputShape(ManualEngineError):
    """The byte-normalization adapter did not recognize the input."""


class NoTemplateLoaded(ManualEngineError):
    """Export was requested before a template was opened."""


class NoSectionsToExport(ManualEngineError):
    """Export was requested but the session holds no sections."""


class FieldNotFound(ManualEngineError):
    """A writer step could not locate its label/row/column in this template.

    Internal: the writer catches it per field and leaves that spot untouched.
    """


class UnknownField(ManualEngineError):
    """An edit named a section or field key the session does not hold."""


class InvalidFieldValue(ManualEngineError):
    """An edit value does not fit the field kind or its options."""
