"""
CanonicalTransactionResolver -- get-or-create the canonical transaction.

Responsibility:
    Given an AttachTarget (direction, project, valuation and reimbursement
    terms), returns the one transaction that owns that (direction, project)
    pair, creating it on first use.  A canonical transaction that was
    cancelled because it emptied out is re-opened rather than replaced.

Architecture position:
    Kernel > Services -- imperative shell around domain.canonical.

Invariants enforced:
    CANONICAL_UNIQUENESS -- identity comes only from canonical_transaction_id()
        and creation goes only through the store's atomic upsert, so two
        concurrent callers converge on the same record.

Failure modes:
    - ConcurrentModificationError if re-opening keeps losing races past
      max_attempts.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from inventory_kernel.domain.canonical import canonical_description
from inventory_kernel.domain.dtos import AuditEventType, Transaction, TransactionStatus
from inventory_kernel.domain.placement import AttachTarget
from inventory_kernel.domain.values import format_amount
from inventory_kernel.exceptions import ConcurrentModificationError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.stores.base import TransactionStore

logger = get_logger("services.canonical_resolver")

DEFAULT_BUSINESS_NAME = "Design Business"


class CanonicalTransactionResolver:
    """Upserts canonical transactions by deterministic id."""

    def __init__(
        self,
        transaction_store: TransactionStore,
        business_name: str = DEFAULT_BUSINESS_NAME,
        max_attempts: int = 5,
    ):
        self._transactions = transaction_store
        self._business_name = business_name
        self._max_attempts = max_attempts

    def initial_fields(
        self,
        target: AttachTarget,
        tax_rate_pct: Decimal | None = None,
        trigger_event: AuditEventType | None = None,
    ) -> dict[str, Any]:
        zero = format_amount(0)
        return {
            "direction": target.direction,
            "project_id": target.project_id,
            "status": TransactionStatus.PENDING,
            "reimbursement_type": target.reimbursement_type,
            "payment_method": target.payment_method,
            "valuation_basis": target.valuation_basis,
            "tax_rate_pct": tax_rate_pct,
            "subtotal": zero,
            "tax_amount": zero,
            "amount": zero,
            "sum_item_purchase_prices": zero,
            "description": canonical_description(target.direction, self._business_name),
            "trigger_event": trigger_event,
            "is_canonical": True,
        }

    def resolve(
        self,
        target: AttachTarget,
        tax_rate_pct: Decimal | None = None,
        trigger_event: AuditEventType | None = None,
    ) -> Transaction:
        transaction_id = target.transaction_id
        initial = self.initial_fields(target, tax_rate_pct, trigger_event)

        for attempt in range(1, self._max_attempts + 1):
            txn = self._transactions.upsert_transaction(transaction_id, initial)
            if not txn.is_cancelled:
                return txn
            try:
                reopened = self._transactions.update_transaction(
                    transaction_id,
                    {"status": TransactionStatus.PENDING},
                    expected_version=txn.version,
                )
            except ConcurrentModificationError:
                logger.debug(
                    "canonical_reopen_conflict",
                    extra={"transaction_id": transaction_id, "attempt": attempt},
                )
                continue
            logger.info(
                "canonical_transaction_reopened",
                extra={"transaction_id": transaction_id},
            )
            return reopened

        raise ConcurrentModificationError("transaction", transaction_id)
