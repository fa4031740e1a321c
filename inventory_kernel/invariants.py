"""
Kernel Invariants Contract.

These invariants are structural law. They hold for every allocation,
deallocation and reconciliation the kernel performs. No setting in
inventory_config may switch them off.

This module exists solely to declare these invariants explicitly. The
enforcement is distributed across MovementExecutor, TransactionReconciler,
CanonicalTransactionResolver and the store implementations.
"""

from enum import Enum, unique


@unique
class KernelInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel.

    Configuration may influence *how* an item is moved (retry budgets,
    default tax rate, audit sink), but never *whether* these rules apply.
    """

    SINGLE_ATTRIBUTION = "single_attribution"
    """An item is contained in at most one transaction's item set, and
    item.transaction_id names exactly that transaction. Checked in the
    pre-flight of MovementExecutor before any write."""

    AMOUNT_DERIVATION = "amount_derivation"
    """A transaction's subtotal equals the exact sum of its member items'
    basis values; amount is subtotal plus tax. Enforced by
    TransactionReconciler after every membership change."""

    NON_NEGATIVE_AMOUNT = "non_negative_amount"
    """No reconciliation may write a negative subtotal or amount. Checked
    on the projected amounts before the first write."""

    CANONICAL_UNIQUENESS = "canonical_uniqueness"
    """At most one canonical transaction exists per (direction, project).
    Enforced by deterministic ids and the store's atomic upsert."""

    EMPTY_CLOSURE = "empty_closure"
    """A canonical transaction left with zero items is cancelled with zero
    amounts; an empty non-canonical transaction is deleted."""

    OPTIMISTIC_CONCURRENCY = "optimistic_concurrency"
    """Every item and transaction write is conditional on the version the
    writer read. Lost updates surface as ConcurrentModificationError."""


# All invariants as a frozenset for programmatic checks.
ALL_KERNEL_INVARIANTS: frozenset[KernelInvariant] = frozenset(KernelInvariant)

# The kernel package may not import from these packages.
# This is enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "inventory_config",
)
