"""
Tests for InventoryAllocationService: result mapping, retries, audit and
log context.
"""

from decimal import Decimal

import pytest

from inventory_kernel.domain.dtos import Direction, Item, Transaction, TransactionStatus
from inventory_kernel.exceptions import ConcurrentModificationError, StoreUnavailableError
from inventory_kernel.logging_config import LogContext
from inventory_kernel.services.allocation_service import (
    AllocationResult,
    AllocationStatus,
    InventoryAllocationService,
)
from inventory_kernel.services.audit_emitter import AuditEmitter
from inventory_kernel.services.retry_service import RetryPolicy
from inventory_kernel.stores.memory import InMemoryItemStore
from tests.conftest import FAST_RETRY, TEST_ACTOR


class ConflictingItemStore(InMemoryItemStore):
    """Fails the first ``failures`` conditional item updates with a version conflict."""

    def __init__(self, failures: int):
        super().__init__()
        self.failures = failures
        self.update_calls = 0

    def update_item(self, item_id, fields, expected_version=None):
        if expected_version is not None:
            self.update_calls += 1
            if self.failures > 0:
                self.failures -= 1
                raise ConcurrentModificationError(
                    "item", item_id, expected_version, expected_version + 1
                )
        return super().update_item(item_id, fields, expected_version)


class ConcurrentEditItemStore(InMemoryItemStore):
    """Another writer edits the item right before each of the first ``edits`` conditional updates."""

    def __init__(self, edits: int = 1):
        super().__init__()
        self.edits = edits

    def update_item(self, item_id, fields, expected_version=None):
        if expected_version is not None and self.edits > 0:
            self.edits -= 1
            super().update_item(item_id, {"description": "edited elsewhere"})
        return super().update_item(item_id, fields, expected_version)


class UnavailableItemStore(InMemoryItemStore):
    """Fails the first ``failures`` reads as if the database were down."""

    def __init__(self, failures: int):
        super().__init__()
        self.failures = failures
        self.armed = False

    def get_item(self, item_id):
        if self.armed and self.failures > 0:
            self.failures -= 1
            raise StoreUnavailableError("get_item", "connection refused")
        return super().get_item(item_id)


class BrokenItemStore(InMemoryItemStore):
    def get_item(self, item_id):
        raise RuntimeError("driver bug")


class FailingAuditEmitter(AuditEmitter):
    def record_allocation_event(self, event):
        raise RuntimeError("audit sink down")


def build_service(item_store, transaction_store, **kwargs):
    kwargs.setdefault("retry_policy", FAST_RETRY)
    return InventoryAllocationService(item_store, transaction_store, **kwargs)


def seed(item_store, item_id="I1", **fields):
    fields.setdefault("purchase_price", "500.00")
    return item_store.create_item(Item(item_id, **fields))


class TestResultMapping:
    def test_not_found(self, service):
        result = service.allocate_item("missing", "X")

        assert result.status is AllocationStatus.NOT_FOUND
        assert result.error_code == "ITEM_NOT_FOUND"
        assert "missing" in result.message
        assert result.item is None

    def test_failure_result(self):
        result = AllocationResult.failure(
            AllocationStatus.STORE_UNAVAILABLE, StoreUnavailableError("get", "down")
        )
        assert not result.is_success
        assert result.items == ()
        assert result.error_code == "STORE_UNAVAILABLE"

    def test_unknown_direction_rejected(self, service, make_item):
        make_item("I1")
        with pytest.raises(ValueError):
            service.allocate_item("I1", "X", "Refund")

    def test_unexpected_error_propagates(self, transaction_store):
        service = build_service(BrokenItemStore(), transaction_store)
        with pytest.raises(RuntimeError, match="driver bug"):
            service.allocate_item("I1", "X")


class TestConflictRetry:
    def test_conflict_retried_to_success(self, transaction_store, captured_logs):
        items = ConflictingItemStore(failures=1)
        seed(items)
        service = build_service(items, transaction_store)

        result = service.allocate_item("I1", "X", Direction.PURCHASE)

        assert result.status is AllocationStatus.MOVED
        assert result.item.transaction_id == "INV_PURCHASE_X"
        txn = transaction_store.get_transaction("INV_PURCHASE_X")
        assert txn.amount == "500.00"
        assert txn.item_ids == ("I1",)
        messages = [r["message"] for r in captured_logs()]
        assert "retrying_after_conflict" in messages
        assert "attach_undone_after_conflict" in messages

    def test_conflict_exhausted(self, transaction_store):
        items = ConflictingItemStore(failures=100)
        seed(items)
        service = build_service(
            items, transaction_store,
            retry_policy=RetryPolicy(max_conflict_attempts=4, backoff_base_seconds=0),
        )

        result = service.allocate_item("I1", "X")

        assert result.status is AllocationStatus.CONCURRENT_MODIFICATION
        assert result.error_code == "CONCURRENT_MODIFICATION"
        assert items.update_calls == 4
        # Every attach was undone: nothing attributes the item
        txn = transaction_store.get_transaction("INV_PURCHASE_X")
        assert txn.item_ids == ()
        assert txn.is_cancelled
        assert transaction_store.list_transactions_for_item("I1") == []
        assert items.get_item("I1").transaction_id is None

    def test_move_out_of_plain_transaction_survives_conflict(
        self, transaction_store, captured_logs
    ):
        """A lost commit must not change where the retried move lands."""
        items = ConcurrentEditItemStore()
        seed(items, project_id="X", transaction_id="T-100", project_price="650.00")
        transaction_store.create_transaction(
            Transaction("T-100", "Purchase", project_id="X", item_ids=("I1",), amount="500.00")
        )
        service = build_service(items, transaction_store)

        result = service.allocate_item("I1", "Y")

        assert result.status is AllocationStatus.MOVED
        assert result.item.transaction_id == "INV_SALE_Y"
        assert result.item.description == "edited elsewhere"
        assert result.deleted_transaction_ids == ("T-100",)
        sale = transaction_store.get_transaction("INV_SALE_Y")
        assert sale.item_ids == ("I1",)
        assert sale.amount == "650.00"
        assert sale.status is TransactionStatus.PENDING
        assert transaction_store.get_transaction("INV_PURCHASE_Y") is None
        assert transaction_store.get_transaction("T-100") is None
        assert transaction_store.list_transactions_for_item("I1") == [sale]
        messages = [r["message"] for r in captured_logs()]
        assert "retrying_after_conflict" in messages
        assert "dangling_transaction_pointer" not in messages

    def test_plain_source_closed_when_item_moved_elsewhere(self, transaction_store):
        """A lost commit to a writer that re-homed the item still closes the emptied source."""

        class RehomingItemStore(InMemoryItemStore):
            rehomed = False

            def update_item(self, item_id, fields, expected_version=None):
                if expected_version is not None and not self.rehomed:
                    self.rehomed = True
                    super().update_item(item_id, {"transaction_id": None, "project_id": None})
                return super().update_item(item_id, fields, expected_version)

        items = RehomingItemStore()
        seed(items, project_id="X", transaction_id="T-100")
        transaction_store.create_transaction(
            Transaction("T-100", "Purchase", project_id="X", item_ids=("I1",), amount="500.00")
        )
        service = build_service(items, transaction_store)

        result = service.allocate_item("I1", "Y")

        assert result.status is AllocationStatus.MOVED
        assert transaction_store.get_transaction("T-100") is None
        # Re-planned from Free, so the default direction applies
        assert result.item.transaction_id == "INV_PURCHASE_Y"

    def test_backoff_passed_to_sleep(self, transaction_store):
        items = ConflictingItemStore(failures=2)
        seed(items)
        sleeps = []
        service = build_service(
            items, transaction_store,
            retry_policy=RetryPolicy(backoff_base_seconds=0.1, backoff_max_seconds=1.0),
            sleep=sleeps.append,
        )

        assert service.allocate_item("I1", "X").status is AllocationStatus.MOVED
        assert sleeps == pytest.approx([0.1, 0.2])


class TestStoreUnavailable:
    def test_outage_retried(self, transaction_store):
        items = UnavailableItemStore(failures=2)
        seed(items)
        items.armed = True
        service = build_service(items, transaction_store)

        assert service.allocate_item("I1", "X").status is AllocationStatus.MOVED

    def test_outage_exhausted(self, transaction_store, captured_logs):
        items = UnavailableItemStore(failures=10)
        seed(items)
        items.armed = True
        service = build_service(items, transaction_store)

        result = service.allocate_item("I1", "X")

        assert result.status is AllocationStatus.STORE_UNAVAILABLE
        assert result.error_code == "STORE_UNAVAILABLE"
        assert transaction_store.get_transaction("INV_PURCHASE_X") is None
        failed = [r for r in captured_logs() if r["message"] == "allocation_failed"]
        assert failed[0]["level"] == "WARNING"


class TestAudit:
    def test_emitter_failure_does_not_fail_move(self, item_store, transaction_store, captured_logs):
        seed(item_store)
        service = build_service(item_store, transaction_store, audit_emitter=FailingAuditEmitter())

        result = service.allocate_item("I1", "X")

        assert result.status is AllocationStatus.MOVED
        assert transaction_store.get_transaction("INV_PURCHASE_X").amount == "500.00"
        assert any(r["message"] == "audit_emit_failed" for r in captured_logs())


class TestTaxRate:
    def test_default_rate_used(self, item_store, transaction_store):
        seed(item_store)
        service = build_service(
            item_store, transaction_store, default_tax_rate_pct=Decimal("10")
        )

        service.allocate_item("I1", "X")

        assert transaction_store.get_transaction("INV_PURCHASE_X").amount == "550.00"

    def test_explicit_rate_wins(self, item_store, transaction_store):
        seed(item_store)
        service = build_service(
            item_store, transaction_store, default_tax_rate_pct=Decimal("10")
        )

        service.allocate_item("I1", "X", tax_rate_pct=Decimal("0"))

        assert transaction_store.get_transaction("INV_PURCHASE_X").amount == "500.00"


class TestBusinessName:
    def test_description_uses_business_name(self, item_store, transaction_store):
        seed(item_store)
        service = build_service(item_store, transaction_store, business_name="Acme Interiors")

        service.allocate_item("I1", "X", Direction.SALE)

        txn = transaction_store.get_transaction("INV_SALE_X")
        assert txn.description == "Acme Interiors Inventory Sale"


class TestLogging:
    def test_completed_log_has_context(self, service, make_item, captured_logs):
        make_item("I1", purchase_price="500.00")

        service.allocate_item("I1", "X", actor=TEST_ACTOR)

        logs = captured_logs()
        [started] = [r for r in logs if r["message"] == "allocation_started"]
        [completed] = [r for r in logs if r["message"] == "allocation_completed"]
        assert completed["correlation_id"] == started["correlation_id"]
        assert completed["item_id"] == "I1"
        assert completed["project_id"] == "X"
        assert completed["actor_id"] == TEST_ACTOR
        assert completed["status"] == "moved"
        assert completed["moved_item_ids"] == ["I1"]
        assert "duration_ms" in completed

    def test_each_call_new_correlation_id(self, service, make_item, captured_logs):
        make_item("I1", purchase_price="500.00")

        service.allocate_item("I1", "X")
        service.allocate_item("I1", "Y")

        ids = {r["correlation_id"] for r in captured_logs() if r["message"] == "allocation_completed"}
        assert len(ids) == 2

    def test_invariant_violation_logged_as_error(self, service, make_item, captured_logs):
        make_item("I1", purchase_price="-1.00")

        service.allocate_item("I1", "X")

        [failed] = [r for r in captured_logs() if r["message"] == "allocation_failed"]
        assert failed["level"] == "ERROR"
        assert failed["error_code"] == "NEGATIVE_AMOUNT"
        assert failed["exc_code"] == "NEGATIVE_AMOUNT"

    def test_context_cleared_after_call(self, service, make_item):
        make_item("I1", purchase_price="500.00")
        service.allocate_item("I1", "X")

        assert LogContext.get_all() == {}
