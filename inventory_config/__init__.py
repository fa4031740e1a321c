"""
inventory_config -- single public entrypoint for engine settings.

Responsibility:
    Provides the one way to obtain settings at runtime through
    ``get_active_settings()``.  Returns a frozen ``EngineSettings``.

Architecture position:
    Configuration -- sits above ``inventory_kernel``.  The kernel MUST NEVER
    import from ``inventory_config``; ``bridges`` translates settings into
    kernel inputs.

Failure modes:
    - ``FileNotFoundError`` -- the settings file does not exist.
    - ``ValueError`` / ``KeyError`` -- the file fails schema parsing.

Audit relevance:
    Every successful ``get_active_settings()`` call emits an
    ``INVENTORY_CONFIG_TRACE`` log entry with the settings id, version and
    checksum.
"""

from __future__ import annotations

import logging
from pathlib import Path

from inventory_config.loader import load_settings
from inventory_config.schema import EngineSettings

_logger = logging.getLogger("inventory_kernel.config")

_DEFAULT_SETTINGS_PATH = Path(__file__).parent / "sets" / "default.yaml"

__all__ = ["EngineSettings", "get_active_settings"]


def get_active_settings(path: Path | None = None) -> EngineSettings:
    """
    The ONLY public settings entrypoint.

    Args:
        path: Settings YAML to load. Defaults to inventory_config/sets/default.yaml.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If a value is out of range or unknown.
        KeyError: If a required key is missing.
    """
    settings_path = Path(path) if path is not None else _DEFAULT_SETTINGS_PATH
    settings = load_settings(settings_path)

    _logger.info(
        "INVENTORY_CONFIG_TRACE",
        extra={
            "trace_type": "INVENTORY_CONFIG_TRACE",
            "settings_id": settings.settings_id,
            "settings_version": settings.version,
            "checksum": settings.checksum,
            "settings_path": str(settings_path),
            "audit_sink": settings.audit.sink,
            "database_configured": settings.database.url is not None,
        },
    )
    return settings
