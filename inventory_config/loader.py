"""
Settings Loader (``inventory_config.loader``).

Responsibility
--------------
Loads an engine settings YAML file and parses it into the frozen
``inventory_config.schema`` dataclasses.  Runtime callers go through
``inventory_config.get_active_settings()`` instead of calling this module.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Out-of-range or unknown values  -> ``ValueError``.

Audit relevance
---------------
``compute_checksum`` gives every loaded settings file a deterministic
SHA-256 identity, logged with each ``get_active_settings()`` call.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from inventory_config.schema import (
    AUDIT_SINKS,
    LOG_LEVELS,
    AuditSettings,
    BusinessSettings,
    DatabaseSettings,
    EngineSettings,
    LoggingSettings,
    ReconciliationSettings,
    RetrySettings,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _positive_int(data: dict[str, Any], key: str, default: int) -> int:
    value = int(data.get(key, default))
    if value < 1:
        raise ValueError(f"{key} must be >= 1, got {value}")
    return value


def _non_negative_float(data: dict[str, Any], key: str, default: float) -> float:
    value = float(data.get(key, default))
    if value < 0:
        raise ValueError(f"{key} must be >= 0, got {value}")
    return value


def parse_retry(data: dict[str, Any]) -> RetrySettings:
    return RetrySettings(
        max_conflict_attempts=_positive_int(data, "max_conflict_attempts", 5),
        max_unavailable_attempts=_positive_int(data, "max_unavailable_attempts", 3),
        backoff_base_seconds=_non_negative_float(data, "backoff_base_seconds", 0.05),
        backoff_max_seconds=_non_negative_float(data, "backoff_max_seconds", 1.0),
    )


def parse_tax_rate(value: Any) -> Decimal | None:
    """Parse a tax rate percentage; None and blank mean no tax."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        rate = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Invalid tax rate {value!r}") from None
    if not rate.is_finite() or rate < 0:
        raise ValueError(f"Tax rate must be a non-negative number, got {value!r}")
    return rate


def parse_reconciliation(data: dict[str, Any]) -> ReconciliationSettings:
    return ReconciliationSettings(
        max_attempts=_positive_int(data, "max_attempts", 5),
        default_tax_rate_pct=parse_tax_rate(data.get("default_tax_rate_pct")),
    )


def parse_business(data: dict[str, Any]) -> BusinessSettings:
    name = str(data.get("name", "Design Business")).strip()
    if not name:
        raise ValueError("business.name must not be blank")
    return BusinessSettings(name=name)


def parse_audit(data: dict[str, Any]) -> AuditSettings:
    sink = str(data.get("sink", "logging")).lower()
    if sink not in AUDIT_SINKS:
        raise ValueError(f"Unknown audit sink {sink!r}; expected one of {AUDIT_SINKS}")
    return AuditSettings(sink=sink)


def parse_logging(data: dict[str, Any]) -> LoggingSettings:
    level = str(data.get("level", "INFO")).upper()
    if level not in LOG_LEVELS:
        raise ValueError(f"Unknown log level {level!r}")
    return LoggingSettings(level=level)


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    return DatabaseSettings(
        url=data.get("url") or None,
        echo=bool(data.get("echo", False)),
        pool_size=_positive_int(data, "pool_size", 5),
        max_overflow=int(data.get("max_overflow", 10)),
        pool_pre_ping=bool(data.get("pool_pre_ping", True)),
    )


def parse_settings(data: dict[str, Any]) -> EngineSettings:
    """
    Parse a complete ``EngineSettings`` from a dict.

    ``settings_id`` and ``version`` are required; every section is optional
    and falls back to its defaults.
    """
    engine = data.get("engine") or {}
    return EngineSettings(
        settings_id=data["settings_id"],
        version=int(data["version"]),
        retry=parse_retry(engine.get("retry") or {}),
        reconciliation=parse_reconciliation(engine.get("reconciliation") or {}),
        business=parse_business(data.get("business") or {}),
        audit=parse_audit(data.get("audit") or {}),
        logging=parse_logging(data.get("logging") or {}),
        database=parse_database(data.get("database") or {}),
        checksum=compute_checksum(data),
    )


def load_settings(path: Path) -> EngineSettings:
    return parse_settings(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization; stable across key order."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
