"""Services for the inventory kernel (allocation, reconciliation, integrity)."""

from inventory_kernel.services.allocation_engine import AllocationEngine
from inventory_kernel.services.allocation_service import (
    AllocationResult,
    AllocationStatus,
    InventoryAllocationService,
)
from inventory_kernel.services.audit_emitter import (
    AuditEmitter,
    InMemoryAuditEmitter,
    LoggingAuditEmitter,
    SqlAuditEmitter,
)
from inventory_kernel.services.canonical_resolver import CanonicalTransactionResolver
from inventory_kernel.services.deallocation_handler import DeallocationHandler
from inventory_kernel.services.integrity_service import (
    IntegrityService,
    IntegrityViolation,
    ViolationKind,
)
from inventory_kernel.services.movement import MovementExecutor, MovementOutcome
from inventory_kernel.services.reconciler import (
    ReconcileOutcome,
    ReconcileStatus,
    TransactionReconciler,
)
from inventory_kernel.services.retry_service import RetryPolicy, RetryService

__all__ = [
    "AllocationEngine",
    "AllocationResult",
    "AllocationStatus",
    "AuditEmitter",
    "CanonicalTransactionResolver",
    "DeallocationHandler",
    "InMemoryAuditEmitter",
    "IntegrityService",
    "IntegrityViolation",
    "InventoryAllocationService",
    "LoggingAuditEmitter",
    "MovementExecutor",
    "MovementOutcome",
    "ReconcileOutcome",
    "ReconcileStatus",
    "RetryPolicy",
    "RetryService",
    "SqlAuditEmitter",
    "TransactionReconciler",
    "ViolationKind",
]
