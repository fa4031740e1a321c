"""
Audit emitters -- sinks for item allocation events.

The engine calls record_allocation_event() once per moved item after the
move has been applied.  Emission is best-effort: MovementExecutor logs and
swallows emitter failures, so a broken sink never undoes a move.

Sinks:
    InMemoryAuditEmitter  keeps events in a list (tests, local runs)
    LoggingAuditEmitter   one structured log line per event
    SqlAuditEmitter       one row per event in item_audit_logs

The in-memory and SQL sinks can also read events back per item or per
transaction, giving an item's lineage across transactions.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, sessionmaker

from inventory_kernel.db.engine import get_session_factory, session_scope
from inventory_kernel.domain.dtos import AllocationEvent
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.audit_log import ItemAuditLogModel

logger = get_logger("services.audit_emitter")


class AuditEmitter(ABC):
    @abstractmethod
    def record_allocation_event(self, event: AllocationEvent) -> None:
        ...


class InMemoryAuditEmitter(AuditEmitter):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._events: list[AllocationEvent] = []

    def record_allocation_event(self, event: AllocationEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> list[AllocationEvent]:
        with self._lock:
            return list(self._events)

    def events_for_item(self, item_id: str) -> list[AllocationEvent]:
        return [e for e in self.events if e.item_id == item_id]

    def events_for_transaction(self, transaction_id: str) -> list[AllocationEvent]:
        return [
            e for e in self.events
            if transaction_id in (e.from_transaction_id, e.to_transaction_id)
        ]


class LoggingAuditEmitter(AuditEmitter):
    def record_allocation_event(self, event: AllocationEvent) -> None:
        logger.info(
            "allocation_event_recorded",
            extra={
                "audit_item_id": event.item_id,
                "event_type": event.event_type.value,
                "from_transaction_id": event.from_transaction_id,
                "to_transaction_id": event.to_transaction_id,
                "audit_project_id": event.project_id,
                "actor": event.actor,
                "occurred_at": event.timestamp,
                "note": event.note,
            },
        )


class SqlAuditEmitter(AuditEmitter):
    def __init__(self, session_factory: sessionmaker[Session] | None = None):
        self._session_factory = session_factory

    def record_allocation_event(self, event: AllocationEvent) -> None:
        with session_scope(self._session_factory or get_session_factory()) as session:
            session.add(
                ItemAuditLogModel(
                    item_id=event.item_id,
                    event_type=event.event_type.value,
                    from_transaction_id=event.from_transaction_id,
                    to_transaction_id=event.to_transaction_id,
                    project_id=event.project_id,
                    actor=event.actor,
                    note=event.note,
                    occurred_at=event.timestamp,
                )
            )

    def events_for_item(self, item_id: str) -> list[AllocationEvent]:
        """An item's lineage, oldest first."""
        return self._query(ItemAuditLogModel.item_id == item_id)

    def events_for_transaction(self, transaction_id: str) -> list[AllocationEvent]:
        """Events that moved an item into or out of ``transaction_id``, oldest first."""
        return self._query(
            or_(
                ItemAuditLogModel.from_transaction_id == transaction_id,
                ItemAuditLogModel.to_transaction_id == transaction_id,
            )
        )

    def _query(self, condition) -> list[AllocationEvent]:
        with session_scope(self._session_factory or get_session_factory()) as session:
            rows = session.scalars(
                select(ItemAuditLogModel)
                .where(condition)
                .order_by(ItemAuditLogModel.occurred_at, ItemAuditLogModel.id)
            ).all()
            return [row.to_dto() for row in rows]
