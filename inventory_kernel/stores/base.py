"""
Store interfaces -- the record-level collaborators the engine consumes.

Responsibility:
    Declares the Item Store and Transaction Store contracts. The engine
    only ever talks to these interfaces; concrete stores (in-memory,
    SQLAlchemy) are injected.

Architecture position:
    Kernel > Stores. Imports only the domain layer.

Contract shared by all implementations:
    - Every write bumps the record's ``version`` by one.
    - ``expected_version`` makes a write conditional; a mismatch raises
      ConcurrentModificationError and writes nothing.
    - Membership operations and upsert are atomic within the store.
    - Failures of the backing store surface as StoreUnavailableError.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping

from inventory_kernel.domain.dtos import Item, Transaction


class ItemStore(ABC):
    """Holds Item records."""

    @abstractmethod
    def get_item(self, item_id: str) -> Item:
        """Return the item. Raises ItemNotFoundError."""

    @abstractmethod
    def create_item(self, item: Item) -> Item:
        """Insert a new item at version 1. Raises ItemAlreadyExistsError."""

    @abstractmethod
    def update_item(
        self,
        item_id: str,
        fields: Mapping[str, Any],
        expected_version: int | None = None,
    ) -> Item:
        """Partial update; None values clear a field. Returns the new record."""

    @abstractmethod
    def list_items_by_transaction(self, transaction_id: str) -> list[Item]:
        """Items whose transaction pointer names ``transaction_id``."""

    @abstractmethod
    def list_items_by_project(self, project_id: str | None) -> list[Item]:
        """Items located in ``project_id`` (None = business inventory)."""


class TransactionStore(ABC):
    """Holds Transaction records and their ordered item sets."""

    @abstractmethod
    def get_transaction(self, transaction_id: str) -> Transaction | None:
        ...

    @abstractmethod
    def create_transaction(self, transaction: Transaction) -> Transaction:
        """Insert a new transaction. Raises TransactionAlreadyExistsError."""

    @abstractmethod
    def upsert_transaction(
        self, transaction_id: str, initial_fields: Mapping[str, Any]
    ) -> Transaction:
        """
        Create-if-absent, merge-if-present.

        Merging only fills fields that are currently None on the stored
        record; existing values are never overwritten.
        """

    @abstractmethod
    def update_transaction(
        self,
        transaction_id: str,
        fields: Mapping[str, Any],
        expected_version: int | None = None,
    ) -> Transaction:
        """Partial update. ``item_ids`` cannot be set here."""

    @abstractmethod
    def delete_transaction(
        self, transaction_id: str, expected_version: int | None = None
    ) -> None:
        ...

    @abstractmethod
    def add_item_to_transaction(self, transaction_id: str, item_id: str) -> bool:
        """Add with set semantics. True if the item was not already a member."""

    @abstractmethod
    def remove_item_from_transaction(self, transaction_id: str, item_id: str) -> bool:
        """Remove with set semantics. True if the item was a member."""

    @abstractmethod
    def list_transactions_for_item(self, item_id: str) -> list[Transaction]:
        """Every transaction whose item set contains ``item_id``."""


def merge_missing_fields(
    existing: Transaction, initial_fields: Mapping[str, Any]
) -> dict[str, Any]:
    """Fields from ``initial_fields`` that are None on ``existing``."""
    return {
        name: value
        for name, value in initial_fields.items()
        if value is not None and getattr(existing, name) is None
    }
