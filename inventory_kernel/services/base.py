"""
StoreBackedService -- abstract base for kernel services.

Responsibility:
    Provides the common constructor for every service that reads items and
    transactions, plus the two reads every move starts with: loading a
    batch of items and deriving each item's placement.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Contract:
    Services receive their stores by injection and never cache records
    between calls; each operation (and each retry of it) re-reads state.
"""

from __future__ import annotations

from abc import ABC
from typing import Iterable

from inventory_kernel.domain.dtos import Item
from inventory_kernel.domain.placement import Placement, derive_placement
from inventory_kernel.logging_config import get_logger
from inventory_kernel.stores.base import ItemStore, TransactionStore

logger = get_logger("services.base")


class StoreBackedService(ABC):
    """Abstract base class for services that read the record stores."""

    def __init__(self, item_store: ItemStore, transaction_store: TransactionStore):
        self._items = item_store
        self._transactions = transaction_store

    def _load_items(self, item_ids: Iterable[str]) -> list[Item]:
        """Load items in order, once each. Raises ItemNotFoundError."""
        return [self._items.get_item(item_id) for item_id in dict.fromkeys(item_ids)]

    def _placement_of(self, item: Item) -> Placement:
        txn = None
        if item.transaction_id is not None:
            txn = self._transactions.get_transaction(item.transaction_id)
            if txn is None:
                logger.warning(
                    "dangling_transaction_pointer",
                    extra={
                        "item_id": item.item_id,
                        "transaction_id": item.transaction_id,
                    },
                )
        return derive_placement(item, txn)
