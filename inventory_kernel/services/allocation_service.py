"""
InventoryAllocationService -- public entry point for item allocation.

Responsibility:
    Wires the kernel services together and exposes the operations callers
    use: allocate, deallocate (single, batch, whole project) and disposition
    updates.  Each call runs inside RetryService and returns an
    AllocationResult instead of raising for expected failures.

Architecture position:
    Kernel > Services -- imperative shell, top of the allocation stack.

Operation flow:
    allocate_item(item_id, project_id, direction)
      1. Bind log context (correlation_id, item_id, project_id, actor_id)
      2. RetryService.run(...)
           a. AllocationEngine plans from fresh reads
           b. MovementExecutor detaches, attaches, reconciles, commits
      3. Map the outcome or the kernel error to an AllocationResult

Result mapping:
    moved / unchanged         -- success
    NotFoundError             -- NOT_FOUND
    InvariantViolationError   -- INVARIANT_VIOLATION (logged at error level)
    ConcurrencyError          -- CONCURRENT_MODIFICATION (retries exhausted)
    StoreError                -- STORE_UNAVAILABLE (retries exhausted)
    anything else             -- re-raised

Usage:
    service = InventoryAllocationService(item_store, transaction_store)
    result = service.allocate_item("I1", "P1")
    if not result.is_success:
        print(result.error_code, result.message)
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Callable, Iterable
from uuid import uuid4

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import Direction, Disposition, Item, Transaction
from inventory_kernel.exceptions import (
    ConcurrencyError,
    InvariantViolationError,
    InventoryKernelError,
    NotFoundError,
    StoreError,
)
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.services.allocation_engine import AllocationEngine
from inventory_kernel.services.audit_emitter import AuditEmitter, LoggingAuditEmitter
from inventory_kernel.services.canonical_resolver import (
    DEFAULT_BUSINESS_NAME,
    CanonicalTransactionResolver,
)
from inventory_kernel.services.deallocation_handler import DeallocationHandler
from inventory_kernel.services.movement import MovementExecutor, MovementOutcome
from inventory_kernel.services.reconciler import TransactionReconciler
from inventory_kernel.services.retry_service import RetryPolicy, RetryService
from inventory_kernel.stores.base import ItemStore, TransactionStore

logger = get_logger("services.allocation_service")


class AllocationStatus(str, Enum):
    """Status of an allocation operation."""

    MOVED = "moved"
    UNCHANGED = "unchanged"
    NOT_FOUND = "not_found"
    INVARIANT_VIOLATION = "invariant_violation"
    CONCURRENT_MODIFICATION = "concurrent_modification"
    STORE_UNAVAILABLE = "store_unavailable"


@dataclass(frozen=True)
class AllocationResult:
    """Result of an allocation operation."""

    status: AllocationStatus
    items: tuple[Item, ...] = ()
    transactions: tuple[Transaction, ...] = ()
    deleted_transaction_ids: tuple[str, ...] = ()
    cancelled_transaction_ids: tuple[str, ...] = ()
    error_code: str | None = None
    message: str | None = None

    @property
    def is_success(self) -> bool:
        return self.status in (AllocationStatus.MOVED, AllocationStatus.UNCHANGED)

    @property
    def item(self) -> Item | None:
        """The first item, for single-item calls."""
        return self.items[0] if self.items else None

    @classmethod
    def from_outcome(cls, outcome: MovementOutcome) -> AllocationResult:
        return cls(
            status=AllocationStatus.MOVED if outcome.changed else AllocationStatus.UNCHANGED,
            items=tuple(outcome.items),
            transactions=tuple(outcome.transactions),
            deleted_transaction_ids=tuple(outcome.deleted_transaction_ids),
            cancelled_transaction_ids=tuple(outcome.cancelled_transaction_ids),
        )

    @classmethod
    def failure(cls, status: AllocationStatus, exc: InventoryKernelError) -> AllocationResult:
        return cls(status=status, error_code=exc.code, message=str(exc))


# Most specific first
_FAILURE_STATUSES: tuple[tuple[type[InventoryKernelError], AllocationStatus], ...] = (
    (NotFoundError, AllocationStatus.NOT_FOUND),
    (InvariantViolationError, AllocationStatus.INVARIANT_VIOLATION),
    (ConcurrencyError, AllocationStatus.CONCURRENT_MODIFICATION),
    (StoreError, AllocationStatus.STORE_UNAVAILABLE),
)


class InventoryAllocationService:
    """
    Allocates items between projects and business inventory.

    Contract:
        Every public method re-reads the records it needs, applies the move
        with conditional writes, and reports the final item and transaction
        state.  Expected failures come back as a non-success result; nothing
        half-applied is left attributed to two transactions.

    Guarantees:
        - Idempotent: repeating a call with the same arguments is UNCHANGED.
        - Each touched transaction is reconciled once per call.
        - Audit events are emitted after the move; emitter failures are
          logged and never fail the call.

    Non-goals:
        - Does NOT manage database transactions across stores; each store
          call commits on its own.
    """

    def __init__(
        self,
        item_store: ItemStore,
        transaction_store: TransactionStore,
        audit_emitter: AuditEmitter | None = None,
        clock: Clock | None = None,
        retry_policy: RetryPolicy | None = None,
        business_name: str = DEFAULT_BUSINESS_NAME,
        default_tax_rate_pct: Decimal | None = None,
        reconcile_max_attempts: int = 5,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._clock = clock or SystemClock()
        self._default_tax_rate_pct = default_tax_rate_pct
        self._reconciler = TransactionReconciler(
            item_store, transaction_store, max_attempts=reconcile_max_attempts
        )
        self._resolver = CanonicalTransactionResolver(
            transaction_store, business_name, max_attempts=reconcile_max_attempts
        )
        executor = MovementExecutor(
            item_store,
            transaction_store,
            self._reconciler,
            self._resolver,
            audit_emitter or LoggingAuditEmitter(),
            self._clock,
        )
        self._engine = AllocationEngine(item_store, transaction_store, executor)
        self._handler = DeallocationHandler(item_store, transaction_store, executor)
        self._retry = RetryService(retry_policy, sleep=sleep)

    @property
    def reconciler(self) -> TransactionReconciler:
        return self._reconciler

    # ------------------------------------------------------------------
    # Allocation
    # ------------------------------------------------------------------

    def allocate_item(
        self,
        item_id: str,
        target_project_id: str | None,
        direction: Direction | str | None = None,
        *,
        actor: str | None = None,
        note: str | None = None,
        tax_rate_pct: Decimal | None = None,
    ) -> AllocationResult:
        return self.allocate_items(
            [item_id],
            target_project_id,
            direction,
            actor=actor,
            note=note,
            tax_rate_pct=tax_rate_pct,
        )

    def allocate_items(
        self,
        item_ids: Iterable[str],
        target_project_id: str | None,
        direction: Direction | str | None = None,
        *,
        actor: str | None = None,
        note: str | None = None,
        tax_rate_pct: Decimal | None = None,
    ) -> AllocationResult:
        item_ids = list(item_ids)
        direction = Direction(direction) if direction is not None else None
        rate = self._rate(tax_rate_pct)
        return self._run(
            "allocate_items",
            lambda: self._engine.allocate_items(
                item_ids,
                target_project_id,
                direction,
                actor=actor,
                note=note,
                tax_rate_pct=rate,
            ),
            item_ids=item_ids,
            project_id=target_project_id,
            actor=actor,
        )

    # ------------------------------------------------------------------
    # Deallocation
    # ------------------------------------------------------------------

    def deallocate_item(
        self,
        item_id: str,
        *,
        actor: str | None = None,
        note: str | None = None,
        tax_rate_pct: Decimal | None = None,
    ) -> AllocationResult:
        return self.deallocate_items(
            [item_id], actor=actor, note=note, tax_rate_pct=tax_rate_pct
        )

    def deallocate_items(
        self,
        item_ids: Iterable[str],
        *,
        actor: str | None = None,
        note: str | None = None,
        tax_rate_pct: Decimal | None = None,
    ) -> AllocationResult:
        item_ids = list(item_ids)
        rate = self._rate(tax_rate_pct)
        return self._run(
            "deallocate_items",
            lambda: self._handler.deallocate_items(
                item_ids, actor=actor, note=note, tax_rate_pct=rate
            ),
            item_ids=item_ids,
            actor=actor,
        )

    def deallocate_project(
        self,
        project_id: str,
        *,
        actor: str | None = None,
        note: str | None = None,
        tax_rate_pct: Decimal | None = None,
    ) -> AllocationResult:
        rate = self._rate(tax_rate_pct)
        return self._run(
            "deallocate_project",
            lambda: self._handler.deallocate_project(
                project_id, actor=actor, note=note, tax_rate_pct=rate
            ),
            project_id=project_id,
            actor=actor,
        )

    def update_disposition(
        self,
        item_id: str,
        disposition: Disposition | str,
        *,
        actor: str | None = None,
        note: str | None = None,
        tax_rate_pct: Decimal | None = None,
    ) -> AllocationResult:
        disposition = Disposition(disposition)
        rate = self._rate(tax_rate_pct)
        return self._run(
            "update_disposition",
            lambda: self._handler.update_disposition(
                item_id, disposition, actor=actor, note=note, tax_rate_pct=rate
            ),
            item_ids=[item_id],
            actor=actor,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _rate(self, tax_rate_pct: Decimal | None) -> Decimal | None:
        return tax_rate_pct if tax_rate_pct is not None else self._default_tax_rate_pct

    def _run(
        self,
        operation_name: str,
        operation: Callable[[], MovementOutcome],
        *,
        item_ids: list[str] | None = None,
        project_id: str | None = None,
        actor: str | None = None,
    ) -> AllocationResult:
        item_ids = item_ids or []
        with LogContext.bind(
            correlation_id=str(uuid4()),
            item_id=item_ids[0] if len(item_ids) == 1 else None,
            project_id=project_id,
            actor_id=actor,
        ):
            logger.info(
                "allocation_started",
                extra={"operation": operation_name, "item_ids": item_ids},
            )
            t0 = time.monotonic()
            try:
                outcome = self._retry.run(operation, operation_name=operation_name)
            except InventoryKernelError as exc:
                status = self._status_for(exc)
                if status is None:
                    raise
                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                log = logger.error if status is AllocationStatus.INVARIANT_VIOLATION else logger.warning
                log(
                    "allocation_failed",
                    extra={
                        "operation": operation_name,
                        "status": status.value,
                        "error_code": exc.code,
                        "duration_ms": duration_ms,
                    },
                    exc_info=status is AllocationStatus.INVARIANT_VIOLATION,
                )
                return AllocationResult.failure(status, exc)

            result = AllocationResult.from_outcome(outcome)
            duration_ms = round((time.monotonic() - t0) * 1000, 2)
            logger.info(
                "allocation_completed",
                extra={
                    "operation": operation_name,
                    "status": result.status.value,
                    "duration_ms": duration_ms,
                    "moved_item_ids": outcome.moved_item_ids,
                    "deleted_transaction_ids": outcome.deleted_transaction_ids,
                    "cancelled_transaction_ids": outcome.cancelled_transaction_ids,
                },
            )
            return result

    @staticmethod
    def _status_for(exc: InventoryKernelError) -> AllocationStatus | None:
        for exc_type, status in _FAILURE_STATUSES:
            if isinstance(exc, exc_type):
                return status
        return None
