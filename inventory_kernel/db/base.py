"""
Module: inventory_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.
    Provides the type annotation map for consistent column types and the
    TrackedBase mixin with the optimistic-concurrency version column and
    audit timestamps.
Architecture position: Kernel > DB.  This is the lowest-level import target
    within the kernel.  ALL model files import from here.  This module MUST NOT
    import from models/, stores/, services/, domain/, or outer layers.

Invariants enforced:
    - Decimal precision: type_annotation_map maps Python Decimal to
      Numeric(9, 4), used for tax-rate percentages.  Monetary amounts are
      stored as exact text (see models/), never as float.
    - Version token: TrackedBase.version starts at 1 and is incremented by
      every store write (OPTIMISTIC_CONCURRENCY).
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar

from sqlalchemy import DateTime, Integer, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Record ids: item ids, transaction ids, project ids.
ID_LENGTH = 128

# Stored two-decimal amount text, e.g. "1234.50".
AMOUNT_LENGTH = 32


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - Decimal maps to Numeric(9, 4).
        - datetime maps to DateTime(timezone=True) -- always timezone-aware.
        - str maps to String(ID_LENGTH) unless a column says otherwise.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(9, 4),
        datetime: DateTime(timezone=True),
        str: String(ID_LENGTH),
    }


class TrackedBase(Base):
    """
    Abstract base with version token and audit timestamps.

    Guarantees:
        - version is 1 on INSERT; stores bump it in the same UPDATE that
          changes the row, conditioned on the version they read.
        - created_at is set to server NOW() on INSERT and never changes.
        - updated_at auto-updates on every UPDATE.
    """

    __abstract__ = True

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
