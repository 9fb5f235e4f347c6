import sys
import zipfile
from io import BytesIO
from pathlib import Path

# Ensure project root (containing the `services` package) is on sys.path
ROOT = Path(__file__).resolve().parents[2]  # tests/manual/ -> tests/ -> project root
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest

from docx_factory import W_NS, cell, make_docx, manual_template, para, run, table
from models.schemas import FieldKind, UIField, UISection
from services.manual_engine import MalformedDocument, fill_manual, normalize_sections, parse_manual
from services.manual_engine.package import DOCUMENT_PART, read_document_xml
from services.validation import validate_export


def _sections(data: bytes):
    return normalize_sections(parse_manual(data).secciones_reconocidas)


def _edit(sections, **values):
    """Copy of the sections with the given field values replaced (dashes as underscores)."""
    out = [s.model_copy(deep=True) for s in sections]
    for key, value in values.items():
        key = key.replace("_", "-")
        for f in out[0].fields:
            if f.key == key:
                f.value = value
                break
        else:
            raise AssertionError(f"no field {key}")
    return out


def _values(data: bytes):
    return {f.key: f.value for f in _sections(data)[0].fields}


def test_unmodified_export_is_byte_identical():
    template = manual_template()
    assert fill_manual(template, _sections(template)) == template


def test_header_edits_round_trip():
    template = manual_template()
    exported = fill_manual(template, _edit(_sections(template), id_cambio="CHG-2002", tipo_requerimiento="Emergencia"))
    values = _values(exported)
    assert values["id-cambio"] == "CHG-2002"
    assert values["tipo-requerimiento"] == "Emergencia"
    assert b"*Tipo de Requerimiento: Emergencia" in read_document_xml(exported)


def test_yes_no_otros_countries_and_provider_round_trip():
    template = manual_template()
    edited = _edit(
        _sections(template),
        afecta_robot="SI",
        afecta_dwh="SI",
        otros="Integración SAP",
        pais_afectado=["GT", "PA"],
        participa_proveedor="SI",
    )
    values = _values(fill_manual(template, edited))
    assert values["afecta-robot"] == "SI"
    assert values["afecta-dwh"] == "SI"
    assert values["afecta-cierre"] == "SI"
    assert values["otros"] == "Integración SAP"
    assert values["pais-afectado"] == ["GT", "PA"]
    assert values["participa-proveedor"] == "SI"


def test_regional_selection_clears_country_marks():
    template = manual_template()
    exported = fill_manual(template, _edit(_sections(template), pais_afectado=["REG"]))
    assert _values(exported)["pais-afectado"] == ["REG"]


def test_export_is_idempotent():
    template = manual_template()
    edited = _edit(_sections(template), id_cambio="CHG-3", afecta_robot="SI")
    once = fill_manual(template, edited)
    assert fill_manual(once, edited) == once


def test_yes_no_without_answer_column_writes_last_cell():
    template = make_docx(table([
        ["Afectación a otras áreas"],
        ["Afecta DWH", "", "NO"],
    ]))
    sections = _edit(_sections(template), afecta_dwh="SI")
    exported = fill_manual(template, sections)
    assert _values(exported)["afecta-dwh"] == "SI"


def test_yes_no_answer_before_blank_cell_is_left_alone():
    template = make_docx(table([
        ["Afectación a otras áreas"],
        ["Afecta DWH", "SI", ""],
    ]))
    sections = _sections(template)
    assert _values(template)["afecta-dwh"] == "SI"
    exported = fill_manual(template, sections)
    assert exported == template
    assert validate_export(template, exported).changed_cells == []

    flipped = fill_manual(template, _edit(sections, afecta_dwh="NO"))
    assert _values(flipped)["afecta-dwh"] == "NO"


def test_explicit_no_on_blank_answer_keeps_it_blank():
    template = manual_template()
    exported = fill_manual(template, _edit(_sections(template), afecta_robot="NO"))
    assert exported == template
    assert _values(exported)["afecta-robot"] == "NO"


COUNTRY_SELECTION_BELOW = [
    ["", "REG", "HN", "GT", "PA", "NI"],
    ["(marque con una X)"],
    ["Seleccionar país afectado con una X:", "", "X", "", "", ""],
]


def test_country_selection_row_below_header_round_trip():
    template = make_docx(table(COUNTRY_SELECTION_BELOW))
    sections = _sections(template)
    assert _values(template)["pais-afectado"] == ["HN"]
    assert fill_manual(template, sections) == template

    exported = fill_manual(template, _edit(sections, pais_afectado=["GT"]))
    assert _values(exported)["pais-afectado"] == ["GT"]
    changed = [(i.details["row"], i.details["before"], i.details["after"]) for i in validate_export(template, exported).changed_cells]
    assert changed == [(2, "X", ""), (2, "", "X")]


def test_fragmented_runs_are_not_duplicated():
    fragmented = cell([para(runs=[run("ID de Cam"), run("bio: ", bold=True), run("CHG-1"), run("001")])])
    template = make_docx(
        "<w:tbl><w:tblPr/><w:tr>" + fragmented + cell("*Tipo de Requerimiento: Normal") + "</w:tr></w:tbl>"
    )
    exported = fill_manual(template, _edit(_sections(template), id_cambio="CHG-2002"))
    xml = read_document_xml(exported).decode("utf-8")
    assert xml.count("CHG-2002") == 1
    assert "CHG-1" not in xml.replace("CHG-2002", "")
    assert _values(exported)["id-cambio"] == "CHG-2002"
    # the bold run is still there, only emptied
    assert "<w:b/>" in xml


def test_other_package_entries_and_order_are_preserved():
    template = manual_template()
    exported = fill_manual(template, _edit(_sections(template), id_cambio="CHG-9"))
    with zipfile.ZipFile(BytesIO(template)) as zin, zipfile.ZipFile(BytesIO(exported)) as zout:
        assert zin.namelist() == zout.namelist()
        for name in zin.namelist():
            if name != DOCUMENT_PART:
                assert zin.read(name) == zout.read(name)


def test_namespace_prefixes_survive_export():
    template = manual_template()
    exported = fill_manual(template, _edit(_sections(template), id_cambio="CHG-9"))
    xml = read_document_xml(exported)
    assert xml.startswith(b"<?xml")
    assert f'xmlns:w="{W_NS}"'.encode() in xml
    assert b"<w:body>" in xml
    assert b"standalone" in xml


def test_validate_export_reports_only_expected_cell_changes():
    template = manual_template()
    exported = fill_manual(template, _edit(_sections(template), id_cambio="CHG-9", afecta_robot="SI"))
    report = validate_export(template, exported, document_id="abc")
    assert not report.has_errors
    assert not report.has_warnings
    changed = [(i.details["before"], i.details["after"]) for i in report.changed_cells]
    assert ("ID de Cambio: CHG-1001", "ID de Cambio: CHG-9") in changed
    assert ("", "SI") in changed
    assert len(changed) == 2
    as_dict = report.to_dict()
    assert as_dict["document_id"] == "abc"
    assert [s["stage"] for s in as_dict["stages"]] == ["template", "export"]
    assert as_dict["stages"][0]["table_count"] == as_dict["stages"][1]["table_count"] == 2
    assert "cells" not in as_dict["stages"][0]


def test_fields_the_template_has_no_place_for_are_skipped():
    template = make_docx(table([["ID de Cambio: 1"]]))
    sections = [UISection(id="informacion-general", title="Información general", fields=[
        UIField(key="id-cambio", label="ID de Cambio", value="2"),
        UIField(key="afecta-dwh", label="Afecta DWH", kind=FieldKind.SELECT, value="SI"),
        UIField(key="pais-afectado", label="País afectado", kind=FieldKind.MULTISELECT, value=["HN"]),
        UIField(key="comentario", label="Comentario", value="ignorado"),
    ])]
    exported = fill_manual(template, sections)
    assert _values(exported) == {"id-cambio": "2"}


def test_missing_body_part_is_fatal():
    with pytest.raises(MalformedDocument):
        fill_manual(make_docx(include_document=False), [])
