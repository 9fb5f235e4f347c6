import sys
from pathlib import Path

# Ensure project root (containing the `services` package) is on sys.path
ROOT = Path(__file__).resolve().parents[2]  # tests/manual/ -> tests/ -> project root
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest

from services.config import get_settings, reload_settings


@pytest.fixture(autouse=True)
def _restore_settings():
    yield
    reload_settings()


def test_defaults(monkeypatch):
    for name in ("MANUAL_DATA_DIR", "MANUAL_EXPORT_FILENAME", "MANUAL_MAX_UPLOAD_MB", "MANUAL_DEBUG_OUTPUT", "MANUAL_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    settings = reload_settings()
    assert settings.export_filename == "Manual-actualizado.docx"
    assert settings.debug_output is False
    assert settings.max_upload_bytes == 20 * 1024 * 1024
    assert settings.debug_dir == Path("data") / "debug"
    assert settings.log_level == "INFO"


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("MANUAL_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("MANUAL_EXPORT_FILENAME", "salida.docx")
    monkeypatch.setenv("MANUAL_MAX_UPLOAD_MB", "2")
    monkeypatch.setenv("MANUAL_DEBUG_OUTPUT", "true")
    monkeypatch.setenv("MANUAL_LOG_LEVEL", "debug")
    settings = reload_settings()
    assert settings.data_dir == tmp_path
    assert settings.export_filename == "salida.docx"
    assert settings.max_upload_bytes == 2 * 1024 * 1024
    assert settings.debug_output is True
    assert settings.log_level == "DEBUG"
    assert get_settings() is settings
