"""
In-memory stores.

Thread-safe, versioned implementations of ItemStore and TransactionStore.
Each public call holds the store's lock for its own duration only, which
gives the same per-record atomicity the SQL stores get from conditional
UPDATE statements. Used by the test suite and for local experiments.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from typing import Any, Mapping

from inventory_kernel.domain.dtos import (
    Item,
    Transaction,
    apply_item_fields,
    apply_transaction_fields,
)
from inventory_kernel.exceptions import (
    ConcurrentModificationError,
    ItemAlreadyExistsError,
    ItemNotFoundError,
    TransactionAlreadyExistsError,
    TransactionNotFoundError,
)
from inventory_kernel.stores.base import ItemStore, TransactionStore, merge_missing_fields


class InMemoryItemStore(ItemStore):
    def __init__(self, items: list[Item] | None = None):
        self._lock = threading.RLock()
        self._items: dict[str, Item] = {}
        for item in items or ():
            self.create_item(item)

    def get_item(self, item_id: str) -> Item:
        with self._lock:
            try:
                return self._items[item_id]
            except KeyError:
                raise ItemNotFoundError(item_id) from None

    def create_item(self, item: Item) -> Item:
        with self._lock:
            if item.item_id in self._items:
                raise ItemAlreadyExistsError(item.item_id)
            stored = replace(item, version=1)
            self._items[item.item_id] = stored
            return stored

    def update_item(
        self,
        item_id: str,
        fields: Mapping[str, Any],
        expected_version: int | None = None,
    ) -> Item:
        with self._lock:
            current = self.get_item(item_id)
            if expected_version is not None and current.version != expected_version:
                raise ConcurrentModificationError(
                    "item", item_id, expected_version, current.version
                )
            updated = apply_item_fields(current, dict(fields))
            self._items[item_id] = updated
            return updated

    def list_items_by_transaction(self, transaction_id: str) -> list[Item]:
        with self._lock:
            return [i for i in self._items.values() if i.transaction_id == transaction_id]

    def list_items_by_project(self, project_id: str | None) -> list[Item]:
        with self._lock:
            return [i for i in self._items.values() if i.project_id == project_id]

    def all_items(self) -> list[Item]:
        with self._lock:
            return list(self._items.values())


class InMemoryTransactionStore(TransactionStore):
    def __init__(self, transactions: list[Transaction] | None = None):
        self._lock = threading.RLock()
        self._transactions: dict[str, Transaction] = {}
        for txn in transactions or ():
            self.create_transaction(txn)

    def _require(self, transaction_id: str) -> Transaction:
        try:
            return self._transactions[transaction_id]
        except KeyError:
            raise TransactionNotFoundError(transaction_id) from None

    def _check_version(self, current: Transaction, expected_version: int | None) -> None:
        if expected_version is not None and current.version != expected_version:
            raise ConcurrentModificationError(
                "transaction", current.transaction_id, expected_version, current.version
            )

    def get_transaction(self, transaction_id: str) -> Transaction | None:
        with self._lock:
            return self._transactions.get(transaction_id)

    def create_transaction(self, transaction: Transaction) -> Transaction:
        with self._lock:
            if transaction.transaction_id in self._transactions:
                raise TransactionAlreadyExistsError(transaction.transaction_id)
            stored = replace(
                transaction,
                item_ids=tuple(dict.fromkeys(transaction.item_ids)),
                version=1,
            )
            self._transactions[transaction.transaction_id] = stored
            return stored

    def upsert_transaction(
        self, transaction_id: str, initial_fields: Mapping[str, Any]
    ) -> Transaction:
        with self._lock:
            existing = self._transactions.get(transaction_id)
            if existing is None:
                return self.create_transaction(
                    Transaction(transaction_id=transaction_id, **initial_fields)
                )
            missing = merge_missing_fields(existing, initial_fields)
            if not missing:
                return existing
            merged = apply_transaction_fields(existing, missing)
            self._transactions[transaction_id] = merged
            return merged

    def update_transaction(
        self,
        transaction_id: str,
        fields: Mapping[str, Any],
        expected_version: int | None = None,
    ) -> Transaction:
        with self._lock:
            current = self._require(transaction_id)
            self._check_version(current, expected_version)
            updated = apply_transaction_fields(current, dict(fields))
            self._transactions[transaction_id] = updated
            return updated

    def delete_transaction(
        self, transaction_id: str, expected_version: int | None = None
    ) -> None:
        with self._lock:
            current = self._require(transaction_id)
            self._check_version(current, expected_version)
            del self._transactions[transaction_id]

    def add_item_to_transaction(self, transaction_id: str, item_id: str) -> bool:
        with self._lock:
            current = self._require(transaction_id)
            if item_id in current.item_ids:
                return False
            self._transactions[transaction_id] = replace(
                current,
                item_ids=current.item_ids + (item_id,),
                version=current.version + 1,
            )
            return True

    def remove_item_from_transaction(self, transaction_id: str, item_id: str) -> bool:
        with self._lock:
            current = self._require(transaction_id)
            if item_id not in current.item_ids:
                return False
            self._transactions[transaction_id] = replace(
                current,
                item_ids=tuple(i for i in current.item_ids if i != item_id),
                version=current.version + 1,
            )
            return True

    def list_transactions_for_item(self, item_id: str) -> list[Transaction]:
        with self._lock:
            return [t for t in self._transactions.values() if item_id in t.item_ids]

    def all_transactions(self) -> list[Transaction]:
        with self._lock:
            return list(self._transactions.values())
