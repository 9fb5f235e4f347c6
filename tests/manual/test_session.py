import sys
from pathlib import Path

# Ensure project root (containing the `services` package) is on sys.path
ROOT = Path(__file__).resolve().parents[2]  # tests/manual/ -> tests/ -> project root
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest

from docx_factory import make_docx, manual_template, para
from models.schemas import PiezasGrupo, PiezasItem, RepoChange, RepoStatus
from services.manual_engine.errors import (
    InvalidFieldValue,
    MalformedDocument,
    NoSectionsToExport,
    NoTemplateLoaded,
    UnknownField,
    UnsupportedInputShape,
)
from services.manual_engine.package import read_document_xml
from services.manual_session import ManualSession, SessionRegistry

INFO = "informacion-general"


@pytest.fixture
def session():
    """A session with the realistic template already open."""
    s = ManualSession()
    s.open(manual_template(), filename="Manual.docx")
    return s


def test_open_populates_state(session):
    assert session.filename == "Manual.docx"
    assert session.template_bytes == manual_template()
    assert [s.id for s in session.sections] == [INFO]
    assert [g.grupo for g in session.detailed_pieces] == ["Middleware/OSB", "DB12"]


def test_failed_open_keeps_previous_state(session):
    before = (session.template_bytes, session.sections, session.detailed_pieces, session.filename)
    with pytest.raises(MalformedDocument):
        session.open(b"not a zip", filename="roto.docx")
    with pytest.raises(UnsupportedInputShape):
        session.open(object())
    assert (session.template_bytes, session.sections, session.detailed_pieces, session.filename) == before


def test_open_result_cancelled_is_noop(session):
    before = session.template_bytes
    assert session.open_result({"canceled": True}) is None
    assert session.template_bytes is before


def test_open_result_uses_file_path():
    s = ManualSession()
    s.open_result({"filePath": "C:/manuales/m.docx", "bytes": list(manual_template())})
    assert s.filename == "C:/manuales/m.docx"
    assert s.sections


def test_export_without_template():
    with pytest.raises(NoTemplateLoaded):
        ManualSession().export()


def test_export_without_sections():
    s = ManualSession()
    s.open(make_docx(para("Sin tablas")))
    assert s.sections == []
    with pytest.raises(NoSectionsToExport):
        s.export()


def test_export_writes_current_values(session):
    session.update_field(INFO, "id-cambio", "CHG-77")
    filename, data = session.export()
    assert filename == "Manual-actualizado.docx"
    assert b"ID de Cambio: CHG-77" in read_document_xml(data)
    # the stored template is never modified
    assert session.template_bytes == manual_template()


def test_update_unknown_field(session):
    with pytest.raises(UnknownField):
        session.update_field(INFO, "no-existe", "x")
    with pytest.raises(UnknownField):
        session.update_field("otra-seccion", "id-cambio", "x")


def test_update_yes_no_field(session):
    assert session.update_field(INFO, "afecta-dwh", "sí").value == "SI"
    with pytest.raises(InvalidFieldValue):
        session.update_field(INFO, "afecta-dwh", "quizás")
    with pytest.raises(InvalidFieldValue):
        session.update_field(INFO, "afecta-dwh", ["SI"])


def test_update_country_selection_rules(session):
    assert session.update_field(INFO, "pais-afectado", ["HN", "REG"]).value == ["REG"]
    assert session.update_field(INFO, "pais-afectado", ["REG", "GT"]).value == ["GT"]
    assert session.update_field(INFO, "pais-afectado", ["GT", "HN", "PA", "NI"]).value == ["REG"]
    with pytest.raises(InvalidFieldValue):
        session.update_field(INFO, "pais-afectado", ["MX"])


def test_update_text_field(session):
    assert session.update_field(INFO, "otros", "Integración SAP").value == "Integración SAP"
    with pytest.raises(InvalidFieldValue):
        session.update_field(INFO, "id-cambio", ["a", "b"])


def test_set_pieces_merges(session):
    groups = session.set_pieces([
        PiezasGrupo(grupo="OSB", items=[PiezasItem(nombre="a.xqy", tipo="XQuery", estado="Nuevo")]),
        PiezasGrupo(grupo="osb", items=[PiezasItem(nombre="A.XQY", tipo="xquery", estado="nuevo")]),
    ])
    assert len(groups) == 1
    assert len(groups[0].items) == 1


def test_import_repo_changes_appends_or_replaces(session):
    statuses = [RepoStatus(repo_name="DB12", changes=[RepoChange(path="pkg/PKG_NUEVO.pks", kind="added")])]
    groups = session.import_repo_changes(statuses)
    assert [g.grupo for g in groups] == ["Middleware/OSB", "DB12"]
    assert [i.nombre for i in groups[1].items] == ["PKG_TARJETAS.pkb", "PKG_NUEVO.pks"]

    groups = session.import_repo_changes(statuses, replace=True)
    assert [g.grupo for g in groups] == ["DB12"]
    assert [i.nombre for i in groups[0].items] == ["PKG_NUEVO.pks"]


def test_registry_lifecycle():
    reg = SessionRegistry()
    s = reg.create()
    assert reg.get(s.id) is s
    reg.drop(s.id)
    assert reg.get(s.id) is None
    reg.drop(s.id)
    reg.create()
    reg.clear()
    assert reg.get(s.id) is None
