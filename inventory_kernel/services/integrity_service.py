"""
IntegrityService -- read-only consistency checks over items and transactions.

Responsibility:
    Finds records that disagree with each other: item pointers that name a
    transaction which does not hold the item, transactions that hold an
    item pointing elsewhere, items held by several transactions, and stored
    amounts that no longer match their items.

Architecture position:
    Kernel > Services -- imperative shell, read only.

Contract:
    Reports, never repairs.  Fixing a violation is an explicit allocation
    or reconcile call made by whoever reviews the report.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from inventory_kernel.domain.amounts import compute_breakdown
from inventory_kernel.domain.canonical import canonical_transaction_id
from inventory_kernel.domain.dtos import Direction, Item, Transaction
from inventory_kernel.exceptions import ItemNotFoundError, TransactionNotFoundError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.services.base import StoreBackedService

logger = get_logger("services.integrity_service")


class ViolationKind(str, Enum):
    MULTIPLE_ATTRIBUTION = "multiple_attribution"
    POINTER_MISMATCH = "pointer_mismatch"              # item -> txn, txn lacks item
    MEMBER_POINTER_MISMATCH = "member_pointer_mismatch"  # txn -> item, item points elsewhere
    DANGLING_POINTER = "dangling_pointer"
    MISSING_MEMBER = "missing_member"
    AMOUNT_DRIFT = "amount_drift"


@dataclass(frozen=True)
class IntegrityViolation:
    kind: ViolationKind
    entity_id: str
    detail: str


class IntegrityService(StoreBackedService):
    def check_transaction(self, transaction_id: str) -> list[IntegrityViolation]:
        txn = self._transactions.get_transaction(transaction_id)
        if txn is None:
            raise TransactionNotFoundError(transaction_id)
        violations = self._check_transaction(txn)
        self._report("transaction", transaction_id, violations)
        return violations

    def check_items(self, item_ids: Iterable[str]) -> list[IntegrityViolation]:
        violations: list[IntegrityViolation] = []
        for item in self._load_items(item_ids):
            violations.extend(self._check_item(item))
        self._report("items", None, violations)
        return violations

    def check_project(self, project_id: str) -> list[IntegrityViolation]:
        """Check the project's items and every transaction they or the project use."""
        items = self._items.list_items_by_project(project_id)
        violations: list[IntegrityViolation] = []
        transaction_ids: dict[str, None] = {}
        for item in items:
            violations.extend(self._check_item(item))
            if item.transaction_id is not None:
                transaction_ids[item.transaction_id] = None
        for direction in Direction:
            transaction_ids[canonical_transaction_id(direction, project_id)] = None

        for transaction_id in transaction_ids:
            txn = self._transactions.get_transaction(transaction_id)
            if txn is not None:
                violations.extend(self._check_transaction(txn))

        self._report("project", project_id, violations)
        return violations

    def _check_item(self, item: Item) -> list[IntegrityViolation]:
        found: list[IntegrityViolation] = []
        containing = [
            t.transaction_id
            for t in self._transactions.list_transactions_for_item(item.item_id)
        ]
        if len(containing) > 1:
            found.append(
                IntegrityViolation(
                    ViolationKind.MULTIPLE_ATTRIBUTION,
                    item.item_id,
                    f"held by {', '.join(containing)}",
                )
            )

        if item.transaction_id is None:
            for transaction_id in containing:
                found.append(
                    IntegrityViolation(
                        ViolationKind.MEMBER_POINTER_MISMATCH,
                        item.item_id,
                        f"held by {transaction_id} but item has no transaction",
                    )
                )
            return found

        pointed = self._transactions.get_transaction(item.transaction_id)
        if pointed is None:
            found.append(
                IntegrityViolation(
                    ViolationKind.DANGLING_POINTER,
                    item.item_id,
                    f"transaction {item.transaction_id} does not exist",
                )
            )
        elif not pointed.contains(item.item_id):
            found.append(
                IntegrityViolation(
                    ViolationKind.POINTER_MISMATCH,
                    item.item_id,
                    f"points to {item.transaction_id}, which does not hold it",
                )
            )
        return found

    def _check_transaction(self, txn: Transaction) -> list[IntegrityViolation]:
        found: list[IntegrityViolation] = []
        items: list[Item] = []
        missing: list[str] = []
        for item_id in txn.item_ids:
            try:
                item = self._items.get_item(item_id)
            except ItemNotFoundError:
                missing.append(item_id)
                found.append(
                    IntegrityViolation(
                        ViolationKind.MISSING_MEMBER,
                        txn.transaction_id,
                        f"item {item_id} does not exist",
                    )
                )
                continue
            items.append(item)
            if item.transaction_id != txn.transaction_id:
                found.append(
                    IntegrityViolation(
                        ViolationKind.MEMBER_POINTER_MISMATCH,
                        txn.transaction_id,
                        f"item {item_id} points to {item.transaction_id}",
                    )
                )

        expected = compute_breakdown(items, txn.valuation_basis, txn.tax_rate_pct, missing)
        for name, value in expected.as_fields().items():
            stored = getattr(txn, name)
            if stored != value:
                found.append(
                    IntegrityViolation(
                        ViolationKind.AMOUNT_DRIFT,
                        txn.transaction_id,
                        f"{name} is {stored}, items give {value}",
                    )
                )
        return found

    @staticmethod
    def _report(scope: str, scope_id: str | None, violations: list[IntegrityViolation]) -> None:
        if not violations:
            logger.debug("integrity_check_clean", extra={"scope": scope, "scope_id": scope_id})
            return
        logger.warning(
            "integrity_violations_found",
            extra={
                "scope": scope,
                "scope_id": scope_id,
                "violation_count": len(violations),
                "violation_kinds": sorted({v.kind.value for v in violations}),
            },
        )
