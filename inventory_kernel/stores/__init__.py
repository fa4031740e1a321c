"""Record stores consumed by the engine: interfaces, in-memory and SQL implementations."""

from inventory_kernel.stores.base import ItemStore, TransactionStore
from inventory_kernel.stores.memory import InMemoryItemStore, InMemoryTransactionStore

__all__ = [
    "InMemoryItemStore",
    "InMemoryTransactionStore",
    "ItemStore",
    "TransactionStore",
]
