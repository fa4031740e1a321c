"""ORM models for the inventory kernel."""

from inventory_kernel.models.audit_log import ItemAuditLogModel
from inventory_kernel.models.item import ItemModel
from inventory_kernel.models.transaction import TransactionItemModel, TransactionModel

__all__ = [
    "ItemAuditLogModel",
    "ItemModel",
    "TransactionItemModel",
    "TransactionModel",
]
