"""Fixed vocabularies shared by the parser, the writer and the adapters."""
from __future__ import annotations

from typing import Dict, List, Tuple

SECTION_INFO_GENERAL = "informacion-general"
SECTION_INFO_GENERAL_TITLE = "Información general"

DEFAULT_GROUP_NAME = "Piezas detalladas"

# Status used when the installation fallback cannot decide. Documented default,
# not a rule discovered in the templates.
DEFAULT_STATUS = "Modificado"
STATUS_NEW = "Nuevo"
STATUS_MODIFIED = "Modificado"
STATUS_DELETED = "Eliminado"

YES = "SI"
NO = "NO"
YES_NO_OPTIONS: List[Tuple[str, str]] = [(YES, YES), (NO, NO)]

REGIONAL = "REG"
COUNTRY_CODES: Tuple[str, ...] = ("HN", "NI", "PA", "GT")
COUNTRY_HEADER_TOKENS: Tuple[str, ...] = (REGIONAL, "HN", "GT", "PA", "NI")
# (value, label) in display order
COUNTRY_OPTIONS: List[Tuple[str, str]] = [
    ("REG", "Regional (REG)"),
    ("HN", "Honduras (HN)"),
    ("GT", "Guatemala (GT)"),
    ("PA", "Panamá (PA)"),
    ("NI", "Nicaragua (NI)"),
]
COUNTRY_MARKERS = frozenset({"X", "SI", "SÍ", "✔", "✓", "✗", "☒"})
COUNTRY_MARK = "X"

KEY_ID_CAMBIO = "id-cambio"
KEY_TIPO_REQUERIMIENTO = "tipo-requerimiento"
KEY_OTROS = "otros"
KEY_PAIS = "pais-afectado"
KEY_PARTICIPA_PROVEEDOR = "participa-proveedor"

LABEL_ID_CAMBIO = "ID de Cambio"
LABEL_TIPO_REQUERIMIENTO = "Tipo de Requerimiento"
LABEL_OTROS = "Otros"
LABEL_PAIS = "País afectado"
LABEL_PARTICIPA_PROVEEDOR = "Participa Proveedor"

HEADER_LABELS: Dict[str, str] = {
    KEY_ID_CAMBIO: LABEL_ID_CAMBIO,
    KEY_TIPO_REQUERIMIENTO: LABEL_TIPO_REQUERIMIENTO,
}

# Keys coerced to SI/NO after parsing (compared with normalize_key, so the
# accent in "notificó" does not matter).
YES_NO_KEYS: Tuple[str, ...] = (
    "afecta-dwh",
    "afecta-cierre",
    "afecta-robot",
    "notifico-al-noc-sobre-los-servicios-a-monitorear",
    "es-regulatorio",
    KEY_PARTICIPA_PROVEEDOR,
)

FIELD_ORDER: Tuple[str, ...] = (
    KEY_ID_CAMBIO,
    KEY_TIPO_REQUERIMIENTO,
    "afecta-dwh",
    "afecta-cierre",
    "afecta-robot",
    "notificó-al-noc-sobre-los-servicios-a-monitorear",
    "es-regulatorio",
    KEY_OTROS,
    KEY_PAIS,
    KEY_PARTICIPA_PROVEEDOR,
)

MARKER_AFECTACION = "Afectación a otras áreas"
MARKER_PAISES_REGION = "Afectación a los países de la región"
MARKER_PROVEEDORES = "Participación de proveedores"
MARKER_SELECCIONAR_PAIS = "Seleccionar país afectado"
MARKER_INFO_GENERAL = "Información general"
MARKER_LISTADO_PIEZAS = "Listado de piezas detalladas"

# Repository names recognized by the vertical layout and the installation
# fallback when nothing else names the group.
KNOWN_REPOSITORIES: Tuple[str, ...] = (
    "RGCARD",
    "NICARD",
    "DB12",
    "OSB",
    "NITRANSFER",
    "RGTRANSFER",
    "DATABASE_CLOUD",
    "DATABASE CLOUD",
    "APLICACIONES-ESCRITORIO",
    "SALESFORCE",
    "COBIS",
    "DIGITALIZACION",
    "DIGITALIZACION-TARJETAS",
    "DIGITALIZACION TARJETAS",
    "OIC",
)

KNOWN_EXTENSIONS = frozenset({
    "jar", "sql", "sp", "spsql", "dtsx", "pks", "pkb", "tps", "pkg",
    "xml", "xqy", "xquery", "wsdl", "xsd", "yaml", "yml", "json",
    "js", "ts", "dll", "war", "ear",
})

_EXTENSION_TIPOS: Dict[str, str] = {
    "jar": "JAR",
    "sql": "Script SQL",
    "sp": "Stored Procedure",
    "spsql": "Stored Procedure",
    "dtsx": "SSIS Package",
    "pks": "Oracle Package",
    "pkb": "Oracle Package",
    "pkg": "Oracle Package",
    "tps": "Oracle Type",
    "xqy": "XQuery",
    "xquery": "XQuery",
    "wsdl": "WSDL",
    "xsd": "XSD",
    "yaml": "YAML",
    "yml": "YAML",
    "json": "JSON",
    "dll": "DLL",
}


def tipo_for_extension(ext: str | None) -> str:
    """Map a file extension (with or without the dot) to its piece type label."""
    e = (ext or "").strip().lstrip(".").lower()
    if not e:
        return "Archivo"
    return _EXTENSION_TIPOS.get(e, e.upper())
