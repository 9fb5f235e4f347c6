"""Centralized service configuration.

Single source of truth for paths, export naming and limits.
Reads from environment variables with sensible defaults.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass
class ManualSettings:
    """Settings loaded from environment.

    Usage:
        settings = get_settings()
        print(settings.export_filename)  # "Manual-actualizado.docx"
    """
    data_dir: Path = Path("data")
    export_filename: str = "Manual-actualizado.docx"
    debug_output: bool = False
    max_upload_mb: int = 20
    log_level: str = "INFO"

    @property
    def debug_dir(self) -> Path:
        return self.data_dir / "debug"

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024


def _load_settings_from_env() -> ManualSettings:
    """Load settings from environment variables."""
    settings = ManualSettings()

    if os.getenv("MANUAL_DATA_DIR"):
        settings.data_dir = Path(os.getenv("MANUAL_DATA_DIR"))
    if os.getenv("MANUAL_EXPORT_FILENAME"):
        settings.export_filename = os.getenv("MANUAL_EXPORT_FILENAME")
    if os.getenv("MANUAL_MAX_UPLOAD_MB"):
        settings.max_upload_mb = int(os.getenv("MANUAL_MAX_UPLOAD_MB"))

    settings.debug_output = os.getenv("MANUAL_DEBUG_OUTPUT", "").lower() in ("1", "true", "yes")
    settings.log_level = os.getenv("MANUAL_LOG_LEVEL", "INFO").upper()

    return settings


# Singleton instance
_settings: ManualSettings | None = None


def get_settings() -> ManualSettings:
    """Get the settings singleton.

    Settings are loaded once from environment on first access.
    """
    global _settings
    if _settings is None:
        _settings = _load_settings_from_env()
    return _settings


def reload_settings() -> ManualSettings:
    """Force reload settings from environment (tests, env changes)."""
    global _settings
    _settings = _load_settings_from_env()
    return _settings
