"""Text, value and section normalization.

Text helpers used by every heuristic, the two-valued yes/no rule, the
country-code collapsing rule, and the post-parse canonicalization of the
"Información general" section.
"""
from __future__ import annotations

import re
import unicodedata
from typing import Dict, Iterable, List, Sequence

from models.schemas import FieldKind, FieldOption, FieldValue, UIField, UISection

from .constants import (
    COUNTRY_CODES,
    COUNTRY_OPTIONS,
    KEY_OTROS,
    KEY_PAIS,
    NO,
    REGIONAL,
    SECTION_INFO_GENERAL,
    YES,
    YES_NO_KEYS,
    YES_NO_OPTIONS,
)

_WS_RE = re.compile(r"\s+")
_OTROS_PREFIX_RE = re.compile(r"^\s*otros\s*:?\s*", re.IGNORECASE)
_COUNTRY_SPLIT_RE = re.compile(r"[,\s/;|]+")
_CODE_SUFFIX_RE = re.compile(r"\(([A-Z]{2,3})\)\s*$")


def clean(text: str | None) -> str:
    """Collapse whitespace (NBSP included) and trim."""
    return _WS_RE.sub(" ", (text or "").replace("\u00a0", " ")).strip()


def strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_key(text: str | None) -> str:
    """Comparison key: lowercase, no diacritics, collapsed whitespace."""
    return clean(strip_accents(clean(text).lower()))


def slugify_label(label: str) -> str:
    """Field key for a yes/no row label: "Afecta DWH" -> "afecta-dwh"."""
    return _WS_RE.sub("-", clean(label).lower())


# =============================================================================
# YES / NO
# =============================================================================

def normalize_yes_no(value: object) -> str:
    """Total, two-valued: "SI" for any spelling of yes, "NO" for anything else."""
    text = value if isinstance(value, str) else ("" if value is None else str(value))
    return YES if strip_accents(clean(text)).upper() == YES else NO


def is_yes_no_token(text: str) -> bool:
    return strip_accents(clean(text)).upper() in (YES, NO)


# =============================================================================
# COUNTRIES
# =============================================================================

def _code_for_token(token: str) -> str | None:
    s = strip_accents(clean(token)).upper()
    if not s:
        return None
    if "HONDURAS" in s or re.search(r"\bHN\b", s):
        return "HN"
    if "NICARAGUA" in s or re.search(r"\bNI\b", s):
        return "NI"
    if "GUATEMALA" in s or re.search(r"\bGT\b", s):
        return "GT"
    if "PANAMA" in s or re.search(r"\bPA\b", s):
        return "PA"
    if s.lstrip("(").startswith(REGIONAL):
        return REGIONAL
    m = _CODE_SUFFIX_RE.search(s)
    if m and (m.group(1) in COUNTRY_CODES or m.group(1) == REGIONAL):
        return m.group(1)
    return None


def _in_option_order(codes: Iterable[str]) -> List[str]:
    present = set(codes)
    return [value for value, _ in COUNTRY_OPTIONS if value in present]


def to_country_codes(value: FieldValue | None) -> List[str]:
    """Collapse free text or a list into ["REG"] or a subset of HN/NI/PA/GT.

    Unmatched or empty input means the whole region. All four countries
    collapse to the region; the region named alongside specific countries
    gives way to the specific ones.
    """
    if isinstance(value, (list, tuple)):
        tokens = [str(v) for v in value]
    else:
        tokens = [t for t in _COUNTRY_SPLIT_RE.split(str(value or "")) if t]

    found = {code for code in (_code_for_token(t) for t in tokens) if code}
    countries = found - {REGIONAL}
    if not countries or countries == set(COUNTRY_CODES):
        return [REGIONAL]
    return _in_option_order(countries)


def apply_country_selection(previous: Sequence[str], selected: Sequence[str]) -> List[str]:
    """Editing rule of the country multiselect.

    - picking REG (not selected before) leaves only REG
    - picking a country while REG was selected drops REG
    - selecting all four countries collapses to REG
    """
    selected = [s for s in selected if s]
    had_reg = REGIONAL in previous
    if REGIONAL in selected:
        if not had_reg or len(selected) == 1:
            return [REGIONAL]
        nxt = [s for s in selected if s != REGIONAL]
    else:
        nxt = list(selected)

    if set(nxt) >= set(COUNTRY_CODES):
        return [REGIONAL]
    return _in_option_order(nxt)


def country_options() -> List[FieldOption]:
    return [FieldOption(value=v, label=lbl) for v, lbl in COUNTRY_OPTIONS]


def yes_no_options() -> List[FieldOption]:
    return [FieldOption(value=v, label=lbl) for v, lbl in YES_NO_OPTIONS]


# =============================================================================
# SECTIONS
# =============================================================================

def clean_otros(value: FieldValue | None) -> str:
    text = value if isinstance(value, str) else ""
    stripped = _OTROS_PREFIX_RE.sub("", text, count=1)
    if re.fullmatch(r"\s*:*\s*", stripped):
        return ""
    return stripped.strip()


def is_yes_no_key(key: str) -> bool:
    # compare on the dashed slug, with or without accents
    k = normalize_key(key).replace(" ", "-")
    return any(k == yn or yn in k for yn in YES_NO_KEYS)


def _normalize_info_field(f: UIField) -> UIField:
    key = normalize_key(f.key)

    if KEY_PAIS in key:
        return UIField(
            key=f.key,
            label=f.label,
            kind=FieldKind.MULTISELECT,
            options=country_options(),
            value=to_country_codes(f.value),
        )

    if key in (KEY_OTROS, f"{KEY_OTROS}:"):
        return UIField(key=f.key, label=f.label, kind=FieldKind.TEXT, value=clean_otros(f.value))

    if is_yes_no_key(key):
        return UIField(
            key=f.key,
            label=f.label,
            kind=FieldKind.SELECT,
            options=yes_no_options(),
            value=normalize_yes_no(f.value),
        )

    return f.model_copy()


def dedupe_sections(sections: Iterable[UISection]) -> List[UISection]:
    """One section per id; the last occurrence wins, first-seen position kept."""
    by_id: Dict[str, UISection] = {}
    for section in sections:
        by_id[section.id] = section
    return list(by_id.values())


def normalize_sections(sections: Iterable[UISection]) -> List[UISection]:
    """Canonicalize parsed sections into the UI-facing field model."""
    out: List[UISection] = []
    for section in dedupe_sections(sections):
        if section.id != SECTION_INFO_GENERAL:
            out.append(section.model_copy(deep=True))
            continue
        out.append(UISection(
            id=section.id,
            title=section.title,
            fields=[_normalize_info_field(f) for f in section.fields],
        ))
    return out
