"""
EngineSettings schema.

Typed, frozen view of an engine settings YAML file.  The loader parses
YAML into these types; bridges turn them into kernel inputs.  Nothing in
here performs I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RetrySettings:
    """Whole-operation retry limits and backoff."""

    max_conflict_attempts: int = 5
    max_unavailable_attempts: int = 3
    backoff_base_seconds: float = 0.05
    backoff_max_seconds: float = 1.0


@dataclass(frozen=True)
class ReconciliationSettings:
    max_attempts: int = 5
    default_tax_rate_pct: Decimal | None = None


@dataclass(frozen=True)
class BusinessSettings:
    """Naming used on canonical transactions."""

    name: str = "Design Business"


AUDIT_SINKS = ("logging", "memory", "sql")


@dataclass(frozen=True)
class AuditSettings:
    sink: str = "logging"  # logging, memory, sql


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection settings for the SQL stores. ``url`` None means in-memory stores."""

    url: str | None = None
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    pool_pre_ping: bool = True


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineSettings:
    """Complete engine settings, identified by ``settings_id`` and ``checksum``."""

    settings_id: str
    version: int
    retry: RetrySettings = field(default_factory=RetrySettings)
    reconciliation: ReconciliationSettings = field(default_factory=ReconciliationSettings)
    business: BusinessSettings = field(default_factory=BusinessSettings)
    audit: AuditSettings = field(default_factory=AuditSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    checksum: str = ""
