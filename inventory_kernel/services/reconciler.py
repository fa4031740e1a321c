"""
TransactionReconciler -- recompute a transaction's amounts from its items.

Responsibility:
    Given a transaction id, re-reads the transaction and every item in its
    item set, derives subtotal/tax/amount with exact decimal arithmetic and
    writes them back.  A transaction whose item set is empty is closed:
    canonical transactions are cancelled with zero amounts (keeping their
    deterministic id for reuse), non-canonical ones are deleted.

Architecture position:
    Kernel > Services -- imperative shell around domain.amounts.

Invariants enforced:
    AMOUNT_DERIVATION   -- amount == subtotal + tax, subtotal == sum of items.
    NON_NEGATIVE_AMOUNT -- a negative result raises NegativeAmountError and
                           nothing is written.
    EMPTY_CLOSURE       -- see above.
    OPTIMISTIC_CONCURRENCY -- every write is conditional on the version read;
                           on conflict the whole read-compute-write is redone.

Failure modes:
    - NegativeAmountError (not retried).
    - ConcurrentModificationError after max_attempts conflicting attempts.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from inventory_kernel.domain.amounts import compute_breakdown, is_negative
from inventory_kernel.domain.dtos import AmountBreakdown, Item, Transaction, TransactionStatus
from inventory_kernel.domain.values import format_amount
from inventory_kernel.exceptions import (
    ConcurrentModificationError,
    ItemNotFoundError,
    NegativeAmountError,
    TransactionNotFoundError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.services.base import StoreBackedService
from inventory_kernel.stores.base import ItemStore, TransactionStore

logger = get_logger("services.reconciler")

ZERO_AMOUNTS = {
    "subtotal": format_amount(0),
    "tax_amount": format_amount(0),
    "amount": format_amount(0),
    "sum_item_purchase_prices": format_amount(0),
}


class ReconcileStatus(str, Enum):
    RECONCILED = "reconciled"
    UNCHANGED = "unchanged"
    CANCELLED = "cancelled"
    DELETED = "deleted"
    MISSING = "missing"


@dataclass(frozen=True)
class ReconcileOutcome:
    transaction_id: str
    status: ReconcileStatus
    transaction: Transaction | None = None
    breakdown: AmountBreakdown | None = None


class TransactionReconciler(StoreBackedService):
    """Recomputes and writes derived transaction amounts."""

    def __init__(
        self,
        item_store: ItemStore,
        transaction_store: TransactionStore,
        max_attempts: int = 5,
    ):
        super().__init__(item_store, transaction_store)
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._max_attempts = max_attempts

    def reconcile(self, transaction_id: str) -> ReconcileOutcome:
        attempt = 0
        while True:
            attempt += 1
            txn = self._transactions.get_transaction(transaction_id)
            if txn is None:
                return ReconcileOutcome(transaction_id, ReconcileStatus.MISSING)
            try:
                outcome = self._reconcile_once(txn)
            except (ConcurrentModificationError, TransactionNotFoundError):
                if attempt == self._max_attempts:
                    raise
                logger.debug(
                    "reconcile_conflict_retry",
                    extra={"transaction_id": transaction_id, "attempt": attempt},
                )
                continue
            if outcome.status is not ReconcileStatus.UNCHANGED:
                logger.info(
                    "transaction_reconciled",
                    extra={
                        "transaction_id": transaction_id,
                        "outcome": outcome.status.value,
                        "amount": outcome.transaction.amount if outcome.transaction else None,
                        "item_count": len(txn.item_ids),
                    },
                )
            return outcome

    def load_members(
        self, transaction_id: str, item_ids: Iterable[str]
    ) -> tuple[list[Item], list[str]]:
        """Member items that still exist, and the ids of those that do not."""
        items: list[Item] = []
        missing: list[str] = []
        for item_id in item_ids:
            try:
                items.append(self._items.get_item(item_id))
            except ItemNotFoundError:
                missing.append(item_id)
        if missing:
            logger.warning(
                "transaction_member_missing",
                extra={"transaction_id": transaction_id, "missing_item_ids": missing},
            )
        return items, missing

    def _reconcile_once(self, txn: Transaction) -> ReconcileOutcome:
        if not txn.item_ids:
            return self._close_empty(txn)

        items, missing = self.load_members(txn.transaction_id, txn.item_ids)
        breakdown = compute_breakdown(
            items, txn.valuation_basis, txn.tax_rate_pct, missing
        )
        if is_negative(breakdown):
            logger.error(
                "negative_amount_refused",
                extra={"transaction_id": txn.transaction_id, "amount": breakdown.amount},
            )
            raise NegativeAmountError(txn.transaction_id, breakdown.amount)

        changes = {
            name: value
            for name, value in breakdown.as_fields().items()
            if getattr(txn, name) != value
        }
        if txn.is_cancelled and txn.is_canonical:
            changes["status"] = TransactionStatus.PENDING

        if not changes:
            return ReconcileOutcome(
                txn.transaction_id, ReconcileStatus.UNCHANGED, txn, breakdown
            )
        updated = self._transactions.update_transaction(
            txn.transaction_id, changes, expected_version=txn.version
        )
        return ReconcileOutcome(
            txn.transaction_id, ReconcileStatus.RECONCILED, updated, breakdown
        )

    def _close_empty(self, txn: Transaction) -> ReconcileOutcome:
        if not txn.is_canonical:
            self._transactions.delete_transaction(
                txn.transaction_id, expected_version=txn.version
            )
            return ReconcileOutcome(txn.transaction_id, ReconcileStatus.DELETED)

        changes = {
            name: value for name, value in ZERO_AMOUNTS.items() if getattr(txn, name) != value
        }
        if not txn.is_cancelled:
            changes["status"] = TransactionStatus.CANCELLED
        if not changes:
            return ReconcileOutcome(txn.transaction_id, ReconcileStatus.UNCHANGED, txn)
        updated = self._transactions.update_transaction(
            txn.transaction_id, changes, expected_version=txn.version
        )
        return ReconcileOutcome(txn.transaction_id, ReconcileStatus.CANCELLED, updated)
