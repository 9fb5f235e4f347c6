"""Manual Engine - change-manual DOCX to field model and back.

This module handles:
1. Parsing a change-manual template into sections, fields and pieces groups
2. Normalizing the parsed model for editing (yes/no, countries, "Otros")
3. Writing edited field values back into the original template in place
"""

from .errors import (
    FieldNotFound,
    MalformedDocument,
    ManualEngineError,
    NoSectionsToExport,
    NoTemplateLoaded,
    UnsupportedInputShape,
)
from .normalize import (
    apply_country_selection,
    normalize_key,
    normalize_sections,
    normalize_yes_no,
    to_country_codes,
)
from .parser import (
    detect_key_values,
    extract_countries,
    extract_header_fields,
    extract_provider_participation,
    extract_yes_no_block,
    parse_manual,
)
from .pieces import (
    detect_piezas,
    extract_horizontal_groups,
    extract_installation_groups,
    extract_vertical_groups,
    merge_piezas_groups,
    normalize_status,
)
from .walker import ParagraphNode, TableNode, walk_body
from .writer import fill_manual

__all__ = [
    # Errors
    "ManualEngineError",
    "MalformedDocument",
    "UnsupportedInputShape",
    "NoTemplateLoaded",
    "NoSectionsToExport",
    "FieldNotFound",
    # Parsing
    "parse_manual",
    "walk_body",
    "ParagraphNode",
    "TableNode",
    "extract_header_fields",
    "extract_yes_no_block",
    "extract_provider_participation",
    "extract_countries",
    "detect_key_values",
    # Pieces
    "detect_piezas",
    "extract_horizontal_groups",
    "extract_vertical_groups",
    "extract_installation_groups",
    "merge_piezas_groups",
    "normalize_status",
    # Normalization
    "normalize_key",
    "normalize_yes_no",
    "to_country_codes",
    "apply_country_selection",
    "normalize_sections",
    # Writing
    "fill_manual",
]
