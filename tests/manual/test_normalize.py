import sys
from pathlib import Path

# Ensure project root (containing the `services` package) is on sys.path
ROOT = Path(__file__).resolve().parents[2]  # tests/manual/ -> tests/ -> project root
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest

from models.schemas import FieldKind, UIField, UISection
from services.manual_engine import (
    apply_country_selection,
    normalize_key,
    normalize_sections,
    normalize_yes_no,
    to_country_codes,
)
from services.manual_engine.normalize import clean, clean_otros, is_yes_no_key, slugify_label


def test_clean_collapses_whitespace_and_nbsp():
    assert clean("  Afecta   DWH \n") == "Afecta DWH"
    assert clean(None) == ""


def test_normalize_key_drops_accents_and_case():
    assert normalize_key("  Afectación  a otras ÁREAS ") == "afectacion a otras areas"


def test_slugify_keeps_accents():
    assert slugify_label("Notificó al NOC") == "notificó-al-noc"


@pytest.mark.parametrize("raw", ["SI", "si", "Sí", " sí ", "SÍ"])
def test_yes_variants(raw):
    assert normalize_yes_no(raw) == "SI"


@pytest.mark.parametrize("raw", ["NO", "", None, "tal vez", "X", 1, ["SI"]])
def test_everything_else_is_no(raw):
    assert normalize_yes_no(raw) == "NO"


@pytest.mark.parametrize(
    "value, expected",
    [
        ("", ["REG"]),
        (None, ["REG"]),
        ("Regional", ["REG"]),
        ("Honduras", ["HN"]),
        ("HN, PA", ["HN", "PA"]),
        ("Panamá (PA)", ["PA"]),
        ("REG HN", ["HN"]),
        (["NI", "GT"], ["GT", "NI"]),
        (["HN", "NI", "PA", "GT"], ["REG"]),
        ("cualquier cosa", ["REG"]),
    ],
)
def test_to_country_codes(value, expected):
    assert to_country_codes(value) == expected


def test_country_codes_never_mix_region_and_countries():
    for value in ("REG, HN", ["REG", "GT", "PA"], "Regional Nicaragua"):
        codes = to_country_codes(value)
        assert codes == ["REG"] or "REG" not in codes


def test_selecting_region_clears_countries():
    assert apply_country_selection(["HN", "PA"], ["HN", "PA", "REG"]) == ["REG"]


def test_selecting_country_while_region_drops_region():
    assert apply_country_selection(["REG"], ["REG", "GT"]) == ["GT"]


def test_selecting_all_four_collapses_to_region():
    assert apply_country_selection(["HN", "GT", "PA"], ["HN", "GT", "PA", "NI"]) == ["REG"]


def test_selection_is_returned_in_option_order():
    assert apply_country_selection([], ["NI", "HN"]) == ["HN", "NI"]


def test_clean_otros():
    assert clean_otros("Otros: integración SAP") == "integración SAP"
    assert clean_otros("otros:") == ""
    assert clean_otros(" : ") == ""
    assert clean_otros(["x"]) == ""
    assert clean_otros("Cambio en batch") == "Cambio en batch"


def _section(*fields: UIField, section_id: str = "informacion-general") -> UISection:
    return UISection(id=section_id, title="Información general", fields=list(fields))


def test_normalize_sections_canonicalizes_info_general():
    section = _section(
        UIField(key="id-cambio", label="ID de Cambio", value="CHG-1"),
        UIField(key="afecta-dwh", label="Afecta DWH", kind="text", value="sí"),
        UIField(key="notificó-al-noc-sobre-los-servicios-a-monitorear", label="Notificó", value="nope"),
        UIField(key="otros", label="Otros", value="Otros: SAP"),
        UIField(key="pais-afectado", label="País afectado", value="Honduras, Panamá"),
    )
    (out,) = normalize_sections([section])
    by_key = {f.key: f for f in out.fields}

    assert by_key["id-cambio"].value == "CHG-1"
    assert by_key["afecta-dwh"].kind == FieldKind.SELECT
    assert by_key["afecta-dwh"].value == "SI"
    assert by_key["afecta-dwh"].option_values() == ["SI", "NO"]
    assert by_key["notificó-al-noc-sobre-los-servicios-a-monitorear"].value == "NO"
    assert by_key["otros"].value == "SAP"
    assert by_key["pais-afectado"].kind == FieldKind.MULTISELECT
    assert by_key["pais-afectado"].value == ["HN", "PA"]


def test_normalize_sections_keeps_other_sections_and_dedupes_by_id():
    other = UISection(id="otra", title="Otra", fields=[UIField(key="k", label="K", value="v")])
    first = _section(UIField(key="id-cambio", label="ID de Cambio", value="viejo"))
    last = _section(UIField(key="id-cambio", label="ID de Cambio", value="nuevo"))
    out = normalize_sections([first, other, last])
    assert [s.id for s in out] == ["informacion-general", "otra"]
    assert out[0].fields[0].value == "nuevo"
    assert out[1].fields[0].value == "v"


def test_unknown_kind_defaults_to_text():
    assert UIField(key="k", label="K", kind="checkbox").kind == FieldKind.TEXT


@pytest.mark.parametrize("key", ["afecta-dwh", "Afecta DWH", "notificó al NOC sobre los servicios a monitorear", "participa-proveedor"])
def test_yes_no_keys(key):
    assert is_yes_no_key(key)


def test_other_keys_are_not_yes_no():
    assert not is_yes_no_key("id-cambio")
    assert not is_yes_no_key("otros")
