"""
Typed Exception Hierarchy for the Inventory Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Allocation failures have very different remedies. A missing item is a caller
bug, a version conflict is a race that a retry resolves, and an attribution
violation is a data-integrity incident someone must investigate. Callers must
be able to tell these apart without parsing message strings, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example - WRONG way to handle errors:
    try:
        engine.allocate_item(item_id, "P1")
    except Exception as e:
        if "version" in str(e):  # FRAGILE - message might change
            retry()

Example - RIGHT way (what this module enables):
    try:
        engine.allocate_item(item_id, "P1")
    except ConcurrentModificationError as e:
        log.warning("conflict", extra={"entity_id": e.entity_id})
        retry()

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from InventoryKernelError:

    InventoryKernelError (base)
    |
    +-- NotFoundError
    |   +-- ItemNotFoundError
    |   +-- TransactionNotFoundError
    |
    +-- InvariantViolationError
    |   +-- MultipleAttributionError
    |   +-- NegativeAmountError
    |   +-- InvalidAmountError
    |
    +-- ConcurrencyError
    |   +-- ConcurrentModificationError
    |
    +-- DuplicateRecordError
    |   +-- ItemAlreadyExistsError
    |   +-- TransactionAlreadyExistsError
    |
    +-- StoreError
        +-- StoreUnavailableError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Not found       | ITEM_NOT_FOUND              | Item id doesn't exist
                | TRANSACTION_NOT_FOUND       | Transaction id doesn't exist
----------------|-----------------------------|-----------------------------------------
Invariant       | MULTIPLE_ATTRIBUTION        | Item sits in more than one transaction
                | NEGATIVE_AMOUNT             | Reconciliation would go below zero
                | INVALID_AMOUNT              | Stored amount text is not a number
----------------|-----------------------------|-----------------------------------------
Concurrency     | CONCURRENT_MODIFICATION     | Version token changed under the writer
----------------|-----------------------------|-----------------------------------------
Duplicate       | ITEM_ALREADY_EXISTS         | create_item with an existing id
                | TRANSACTION_ALREADY_EXISTS  | create_transaction with an existing id
----------------|-----------------------------|-----------------------------------------
Store           | STORE_UNAVAILABLE           | Backing store unreachable / failed

===============================================================================
HANDLING PATTERNS
===============================================================================

1. RETRY CONCURRENCY AND STORE ERRORS:

    RetryService re-runs the whole operation on ConcurrentModificationError
    and StoreUnavailableError. Every attempt re-reads state, so a retry
    never acts on stale data.

2. NEVER RETRY INVARIANT VIOLATIONS:

    except InvariantViolationError as e:
        # Data needs a human. Nothing has been written yet.
        alert(e.code, e)

3. NOT FOUND IS A CALLER ERROR:

    InventoryAllocationService maps NotFoundError to a not_found result.

===============================================================================
"""


class InventoryKernelError(Exception):
    """
    Base exception for all inventory kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "INVENTORY_KERNEL_ERROR"


# Lookup exceptions


class NotFoundError(InventoryKernelError):
    """Base exception for missing records."""

    code: str = "NOT_FOUND"


class ItemNotFoundError(NotFoundError):
    """Item with given ID was not found."""

    code: str = "ITEM_NOT_FOUND"

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Item not found: {item_id}")


class TransactionNotFoundError(NotFoundError):
    """Transaction with given ID was not found."""

    code: str = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction not found: {transaction_id}")


# Invariant exceptions


class InvariantViolationError(InventoryKernelError):
    """Base exception for data that breaks a kernel invariant."""

    code: str = "INVARIANT_VIOLATION"


class MultipleAttributionError(InvariantViolationError):
    """
    Item is contained in more than one transaction.

    Raised during pre-flight; the kernel refuses to guess which
    attribution is correct.
    """

    code: str = "MULTIPLE_ATTRIBUTION"

    def __init__(self, item_id: str, transaction_ids: tuple[str, ...]):
        self.item_id = item_id
        self.transaction_ids = tuple(transaction_ids)
        super().__init__(
            f"Item {item_id} is attributed to multiple transactions: "
            f"{', '.join(self.transaction_ids)}"
        )


class NegativeAmountError(InvariantViolationError):
    """Reconciliation would produce a negative transaction amount."""

    code: str = "NEGATIVE_AMOUNT"

    def __init__(self, transaction_id: str, amount: str):
        self.transaction_id = transaction_id
        self.amount = amount
        super().__init__(
            f"Transaction {transaction_id} would reconcile to negative amount {amount}"
        )


class InvalidAmountError(InvariantViolationError):
    """Stored amount text cannot be parsed as a decimal."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, value: str, reason: str = "not a decimal number"):
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid amount {value!r}: {reason}")


# Concurrency exceptions


class ConcurrencyError(InventoryKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrentModificationError(ConcurrencyError):
    """A conditional write found a different version than expected."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        expected_version: int | None = None,
        actual_version: int | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Concurrent modification of {entity_type} {entity_id}: "
            f"expected version {expected_version}, found {actual_version}"
        )


# Store exceptions


class StoreError(InventoryKernelError):
    """Base exception for backing-store failures."""

    code: str = "STORE_ERROR"


class StoreUnavailableError(StoreError):
    """The backing store could not complete a call."""

    code: str = "STORE_UNAVAILABLE"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Store unavailable during {operation}: {reason}")


# Duplicate-record exceptions


class DuplicateRecordError(InventoryKernelError):
    """Base exception for creating a record whose id is taken."""

    code: str = "DUPLICATE_RECORD"


class ItemAlreadyExistsError(DuplicateRecordError):
    """Item with given ID already exists."""

    code: str = "ITEM_ALREADY_EXISTS"

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Item already exists: {item_id}")


class TransactionAlreadyExistsError(DuplicateRecordError):
    """Transaction with given ID already exists."""

    code: str = "TRANSACTION_ALREADY_EXISTS"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction already exists: {transaction_id}")
