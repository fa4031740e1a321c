"""
DTOs -- Pure domain records and closed enumerations.

Responsibility:
    Defines the immutable records that flow between the stores and the
    services: Item, Transaction and AllocationEvent, plus the closed enums
    for every string-typed field (direction, status, disposition, ...).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Free of ORM dependencies. Stores convert rows to these records at their
    boundary; services never see ORM entities.

Invariants enforced:
    - Closed enums: string values are coerced on construction, so an unknown
      status or disposition fails loudly with ValueError instead of being
      carried through the system.
    - Amounts are exact strings (never floats). Tax rates are Decimal.

Failure modes:
    - ValueError when an enum field holds a value outside its enum.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from inventory_kernel.domain.values import is_blank


class Direction(str, Enum):
    """Economic direction of a transaction. Never relabeled."""

    SALE = "Sale"
    PURCHASE = "Purchase"

    def opposite(self) -> Direction:
        return Direction.PURCHASE if self is Direction.SALE else Direction.SALE


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ReimbursementType(str, Enum):
    """Who owes whom for a transaction."""

    CLIENT_OWES_BUSINESS = "Client Owes Business"
    BUSINESS_OWES_CLIENT = "Business Owes Client"


class InventoryStatus(str, Enum):
    AVAILABLE = "available"
    PENDING = "pending"
    ALLOCATED = "allocated"
    SOLD = "sold"


class Disposition(str, Enum):
    """Item disposition. INVENTORY is the deallocation trigger."""

    KEEP = "keep"
    TO_RETURN = "to return"
    RETURNED = "returned"
    INVENTORY = "inventory"


class PaymentMethod(str, Enum):
    BUSINESS_CARD = "business card"
    CLIENT_CARD = "client card"


class ValuationBasis(str, Enum):
    """Which item price a transaction sums."""

    PURCHASE_PRICE = "purchase_price"
    PROJECT_PRICE = "project_price"

    @classmethod
    def default_for(cls, direction: Direction) -> ValuationBasis:
        if direction is Direction.SALE:
            return cls.PROJECT_PRICE
        return cls.PURCHASE_PRICE


class AuditEventType(str, Enum):
    ALLOCATION = "allocation"
    DEALLOCATION = "deallocation"
    RETURN = "return"


def _coerce(enum_cls: type[Enum], value: Any, nullable: bool = False) -> Any:
    if value is None:
        if nullable:
            return None
        raise ValueError(f"{enum_cls.__name__} value is required")
    if isinstance(value, enum_cls):
        return value
    return enum_cls(value)


@dataclass(frozen=True)
class Item:
    """
    A physical item tracked by the design business.

    ``project_id`` is the item's location; None means business inventory.
    Price fields are stored text and may be blank.
    """

    item_id: str
    project_id: str | None = None
    inventory_status: InventoryStatus = InventoryStatus.AVAILABLE
    disposition: Disposition | None = None
    transaction_id: str | None = None
    payment_method: PaymentMethod | None = None
    purchase_price: str | None = None
    project_price: str | None = None
    market_value: str | None = None
    description: str = ""
    origin_transaction_id: str | None = None
    previous_project_id: str | None = None
    previous_project_transaction_id: str | None = None
    version: int = 1

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "inventory_status", _coerce(InventoryStatus, self.inventory_status)
        )
        object.__setattr__(
            self, "disposition", _coerce(Disposition, self.disposition, nullable=True)
        )
        object.__setattr__(
            self,
            "payment_method",
            _coerce(PaymentMethod, self.payment_method, nullable=True),
        )

    @property
    def is_free(self) -> bool:
        """Free stock: in business inventory with no transaction."""
        return self.project_id is None and self.transaction_id is None

    def value_for(self, basis: ValuationBasis) -> str | None:
        """
        The amount this item contributes under a valuation basis.

        Blank basis fields fall back to market_value; a blank market value
        contributes nothing.
        """
        primary = getattr(self, basis.value)
        if not is_blank(primary):
            return primary
        if not is_blank(self.market_value):
            return self.market_value
        return None


@dataclass(frozen=True)
class Transaction:
    """A financial record accounting for a set of items."""

    transaction_id: str
    direction: Direction
    project_id: str | None = None
    status: TransactionStatus = TransactionStatus.PENDING
    reimbursement_type: ReimbursementType | None = None
    payment_method: PaymentMethod | None = None
    valuation_basis: ValuationBasis | None = None
    item_ids: tuple[str, ...] = ()
    subtotal: str = "0.00"
    tax_rate_pct: Decimal | None = None
    tax_amount: str = "0.00"
    amount: str = "0.00"
    sum_item_purchase_prices: str = "0.00"
    description: str = ""
    trigger_event: AuditEventType | None = None
    is_canonical: bool = False
    version: int = 1

    def __post_init__(self) -> None:
        direction = _coerce(Direction, self.direction)
        object.__setattr__(self, "direction", direction)
        object.__setattr__(self, "status", _coerce(TransactionStatus, self.status))
        object.__setattr__(
            self,
            "reimbursement_type",
            _coerce(ReimbursementType, self.reimbursement_type, nullable=True),
        )
        object.__setattr__(
            self,
            "payment_method",
            _coerce(PaymentMethod, self.payment_method, nullable=True),
        )
        basis = _coerce(ValuationBasis, self.valuation_basis, nullable=True)
        object.__setattr__(
            self, "valuation_basis", basis or ValuationBasis.default_for(direction)
        )
        object.__setattr__(
            self,
            "trigger_event",
            _coerce(AuditEventType, self.trigger_event, nullable=True),
        )
        object.__setattr__(self, "item_ids", tuple(self.item_ids))
        if self.tax_rate_pct is not None and not isinstance(self.tax_rate_pct, Decimal):
            object.__setattr__(self, "tax_rate_pct", Decimal(str(self.tax_rate_pct)))

    @property
    def is_cancelled(self) -> bool:
        return self.status is TransactionStatus.CANCELLED

    def contains(self, item_id: str) -> bool:
        return item_id in self.item_ids


@dataclass(frozen=True)
class AllocationEvent:
    """One audit record for an item move."""

    item_id: str
    event_type: AuditEventType
    from_transaction_id: str | None
    to_transaction_id: str | None
    actor: str | None
    timestamp: datetime
    project_id: str | None = None
    note: str | None = None


ITEM_FIELDS: frozenset[str] = frozenset(f.name for f in fields(Item))
TRANSACTION_FIELDS: frozenset[str] = frozenset(f.name for f in fields(Transaction))

# Fields owned by the stores; callers never write them directly.
IMMUTABLE_ITEM_FIELDS: frozenset[str] = frozenset({"item_id", "version"})
IMMUTABLE_TRANSACTION_FIELDS: frozenset[str] = frozenset(
    {"transaction_id", "version", "item_ids"}
)


def apply_item_fields(item: Item, changes: dict[str, Any]) -> Item:
    """Return a copy of ``item`` with ``changes`` applied and the version bumped."""
    _check_fields("item", changes, ITEM_FIELDS, IMMUTABLE_ITEM_FIELDS)
    return replace(item, **changes, version=item.version + 1)


def apply_transaction_fields(txn: Transaction, changes: dict[str, Any]) -> Transaction:
    """Return a copy of ``txn`` with ``changes`` applied and the version bumped."""
    _check_fields(
        "transaction", changes, TRANSACTION_FIELDS, IMMUTABLE_TRANSACTION_FIELDS
    )
    return replace(txn, **changes, version=txn.version + 1)


def _check_fields(
    kind: str,
    changes: dict[str, Any],
    known: frozenset[str],
    immutable: frozenset[str],
) -> None:
    unknown = set(changes) - known
    if unknown:
        raise ValueError(f"Unknown {kind} fields: {sorted(unknown)}")
    locked = set(changes) & immutable
    if locked:
        raise ValueError(f"Cannot update {kind} fields directly: {sorted(locked)}")


@dataclass(frozen=True)
class AmountBreakdown:
    """Derived amounts for a transaction, as canonical strings."""

    subtotal: str
    tax_amount: str
    amount: str
    sum_item_purchase_prices: str
    item_count: int = 0
    missing_item_ids: tuple[str, ...] = field(default=())

    def as_fields(self) -> dict[str, str]:
        return {
            "subtotal": self.subtotal,
            "tax_amount": self.tax_amount,
            "amount": self.amount,
            "sum_item_purchase_prices": self.sum_item_purchase_prices,
        }
