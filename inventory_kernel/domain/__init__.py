"""
Pure domain layer.

This module contains immutable records and move-planning logic with NO
dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

Everything here is deterministic; the services layer supplies state.
"""

from inventory_kernel.domain.amounts import compute_breakdown
from inventory_kernel.domain.canonical import (
    BUSINESS_INVENTORY_KEY,
    canonical_transaction_id,
    default_reimbursement,
    is_canonical_transaction_id,
    parse_canonical_transaction_id,
)
from inventory_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from inventory_kernel.domain.dtos import (
    AllocationEvent,
    AmountBreakdown,
    AuditEventType,
    Direction,
    Disposition,
    InventoryStatus,
    Item,
    PaymentMethod,
    ReimbursementType,
    Transaction,
    TransactionStatus,
    ValuationBasis,
)
from inventory_kernel.domain.placement import (
    AttachTarget,
    MoveAction,
    MovePlan,
    Placement,
    PlacementKind,
    derive_placement,
    plan_allocation,
    plan_deallocation,
)

__all__ = [
    "AllocationEvent",
    "AmountBreakdown",
    "AttachTarget",
    "AuditEventType",
    "BUSINESS_INVENTORY_KEY",
    "Clock",
    "DeterministicClock",
    "Direction",
    "Disposition",
    "InventoryStatus",
    "Item",
    "MoveAction",
    "MovePlan",
    "PaymentMethod",
    "Placement",
    "PlacementKind",
    "ReimbursementType",
    "SystemClock",
    "Transaction",
    "TransactionStatus",
    "ValuationBasis",
    "canonical_transaction_id",
    "compute_breakdown",
    "default_reimbursement",
    "derive_placement",
    "is_canonical_transaction_id",
    "parse_canonical_transaction_id",
    "plan_allocation",
    "plan_deallocation",
]
