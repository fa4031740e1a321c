"""
Module: inventory_kernel.models.audit_log
Responsibility: ORM persistence for item allocation audit events.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/dtos.py.

Rows are append-only.  One row per moved item per operation, written
best-effort after the move has committed; a missing row never means the
move did not happen.
"""

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base
from inventory_kernel.domain.dtos import AllocationEvent, AuditEventType


class ItemAuditLogModel(Base):
    """Who moved which item from which transaction to which, and when."""

    __tablename__ = "item_audit_logs"

    __table_args__ = (
        Index("idx_item_audit_item", "item_id"),
        Index("idx_item_audit_occurred", "occurred_at"),
        Index("idx_item_audit_from_txn", "from_transaction_id"),
        Index("idx_item_audit_to_txn", "to_transaction_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    item_id: Mapped[str] = mapped_column(nullable=False)
    event_type: Mapped[str] = mapped_column(String(20), nullable=False)
    from_transaction_id: Mapped[str | None] = mapped_column(nullable=True)
    to_transaction_id: Mapped[str | None] = mapped_column(nullable=True)
    project_id: Mapped[str | None] = mapped_column(nullable=True)
    actor: Mapped[str | None] = mapped_column(nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def to_dto(self) -> AllocationEvent:
        return AllocationEvent(
            item_id=self.item_id,
            event_type=AuditEventType(self.event_type),
            from_transaction_id=self.from_transaction_id,
            to_transaction_id=self.to_transaction_id,
            actor=self.actor,
            timestamp=self.occurred_at,
            project_id=self.project_id,
            note=self.note,
        )
