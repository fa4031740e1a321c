"""
Deallocation tests: items leaving a project for business inventory.

Branches:
    return   canonical source -> attribution unwound, no buyback
    buyback  client paid -> canonical business-inventory Purchase
    release  business owned -> location change only

Scenario E: disposition set to inventory on a client-paid item.
"""

import pytest

from inventory_kernel.domain.dtos import (
    AuditEventType,
    Direction,
    Disposition,
    InventoryStatus,
    PaymentMethod,
    ReimbursementType,
    TransactionStatus,
    ValuationBasis,
)
from inventory_kernel.services.allocation_service import AllocationStatus
from tests.conftest import TEST_ACTOR

BUYBACK_ID = "INV_PURCHASE_BUSINESS_INVENTORY"


class TestScenarioE:
    """Client-paid item marked for inventory is bought back."""

    def test_buyback_transaction_created(self, service, make_item, transaction_store):
        make_item(
            "I1", project_id="P", payment_method=PaymentMethod.CLIENT_CARD,
            project_price="200.00", disposition=Disposition.KEEP,
        )

        result = service.update_disposition("I1", "inventory", actor=TEST_ACTOR)

        assert result.status is AllocationStatus.MOVED
        txn = transaction_store.get_transaction(BUYBACK_ID)
        assert txn.amount == "200.00"
        assert txn.direction is Direction.PURCHASE
        assert txn.project_id is None
        assert txn.is_canonical
        assert txn.payment_method is PaymentMethod.BUSINESS_CARD
        assert txn.reimbursement_type is ReimbursementType.BUSINESS_OWES_CLIENT
        assert txn.valuation_basis is ValuationBasis.PROJECT_PRICE
        assert txn.item_ids == ("I1",)

    def test_item_returned_to_inventory(self, service, make_item):
        make_item(
            "I1", project_id="P", payment_method=PaymentMethod.CLIENT_CARD,
            project_price="200.00",
        )

        item = service.update_disposition("I1", Disposition.INVENTORY).item

        assert item.project_id is None
        assert item.transaction_id == BUYBACK_ID
        assert item.disposition is Disposition.INVENTORY
        assert item.inventory_status is InventoryStatus.AVAILABLE
        assert item.previous_project_id == "P"
        assert item.previous_project_transaction_id is None

    def test_second_item_merges(self, service, make_item, transaction_store):
        for item_id in ("I1", "I2"):
            make_item(
                item_id, project_id="P", payment_method=PaymentMethod.CLIENT_CARD,
                project_price="200.00",
            )

        service.update_disposition("I1", "inventory")
        service.update_disposition("I2", "inventory")

        txn = transaction_store.get_transaction(BUYBACK_ID)
        assert txn.amount == "400.00"
        assert txn.item_ids == ("I1", "I2")

    def test_audit_event_is_deallocation(self, service, make_item, audit):
        make_item(
            "I1", project_id="P", payment_method=PaymentMethod.CLIENT_CARD,
            project_price="200.00",
        )

        service.update_disposition("I1", "inventory", actor=TEST_ACTOR)

        [event] = audit.events_for_item("I1")
        assert event.event_type is AuditEventType.DEALLOCATION
        assert event.to_transaction_id == BUYBACK_ID
        assert event.project_id == "P"

    def test_repeat_is_unchanged(self, service, make_item, transaction_store):
        make_item(
            "I1", project_id="P", payment_method=PaymentMethod.CLIENT_CARD,
            project_price="200.00",
        )
        service.update_disposition("I1", "inventory")
        before = transaction_store.get_transaction(BUYBACK_ID)

        result = service.update_disposition("I1", "inventory")

        assert result.status is AllocationStatus.UNCHANGED
        assert transaction_store.get_transaction(BUYBACK_ID) == before


class TestReturnBranch:
    def test_canonical_source_unwound(self, service, make_item, transaction_store):
        make_item("I1", purchase_price="500.00", payment_method=PaymentMethod.CLIENT_CARD)
        service.allocate_item("I1", "X", Direction.PURCHASE)

        result = service.deallocate_item("I1")

        assert result.status is AllocationStatus.MOVED
        assert transaction_store.get_transaction("INV_PURCHASE_X").is_cancelled
        assert transaction_store.get_transaction(BUYBACK_ID) is None
        item = result.item
        assert item.transaction_id is None
        assert item.project_id is None
        assert item.previous_project_id == "X"
        assert item.previous_project_transaction_id == "INV_PURCHASE_X"
        assert item.disposition is Disposition.INVENTORY

    def test_audit_event_is_return(self, service, make_item, audit):
        make_item("I1", purchase_price="500.00")
        service.allocate_item("I1", "X")

        service.deallocate_item("I1")

        assert audit.events_for_item("I1")[-1].event_type is AuditEventType.RETURN


class TestReleaseBranch:
    @pytest.mark.parametrize("payment_method", [PaymentMethod.BUSINESS_CARD, None])
    def test_no_transaction_created(self, service, make_item, transaction_store, payment_method):
        make_item("I1", project_id="P", payment_method=payment_method, project_price="80.00")

        result = service.deallocate_item("I1")

        assert result.status is AllocationStatus.MOVED
        assert transaction_store.all_transactions() == []
        assert result.item.project_id is None
        assert result.item.transaction_id is None
        assert result.item.previous_project_id == "P"

    def test_partial_detach_from_project_transaction(
        self, service, make_item, make_transaction, transaction_store
    ):
        make_transaction("T-5", "Sale", project_id="P", item_ids=("a", "b"), amount="150.00")
        make_item("a", project_id="P", transaction_id="T-5", project_price="100.00",
                  payment_method=PaymentMethod.BUSINESS_CARD)
        make_item("b", project_id="P", transaction_id="T-5", project_price="50.00")

        service.deallocate_item("a")

        txn = transaction_store.get_transaction("T-5")
        assert txn.item_ids == ("b",)
        assert txn.amount == "50.00"
        assert txn.status is TransactionStatus.PENDING

    def test_client_paid_item_in_project_transaction_transferred(
        self, service, make_item, make_transaction, transaction_store
    ):
        make_transaction("T-9", "Sale", project_id="P", item_ids=("a",))
        make_item("a", project_id="P", transaction_id="T-9", project_price="70.00",
                  payment_method=PaymentMethod.CLIENT_CARD)

        result = service.deallocate_item("a")

        assert transaction_store.get_transaction("T-9") is None
        assert result.deleted_transaction_ids == ("T-9",)
        assert transaction_store.get_transaction(BUYBACK_ID).amount == "70.00"
        assert result.item.previous_project_transaction_id == "T-9"


class TestProjectBatch:
    @pytest.fixture
    def project_items(self, make_item):
        for item_id, price in (("a", "100.00"), ("b", "200.00"), ("c", "300.00")):
            make_item(
                item_id, project_id="P", project_price=price,
                payment_method=PaymentMethod.CLIENT_CARD, disposition=Disposition.INVENTORY,
            )
        make_item(
            "kept", project_id="P", project_price="999.00",
            payment_method=PaymentMethod.CLIENT_CARD, disposition=Disposition.KEEP,
        )

    def test_one_buyback_reconciled_once(
        self, service, project_items, transaction_store, captured_logs
    ):
        result = service.deallocate_project("P")

        assert result.status is AllocationStatus.MOVED
        assert {i.item_id for i in result.items} == {"a", "b", "c"}
        txn = transaction_store.get_transaction(BUYBACK_ID)
        assert txn.amount == "600.00"
        assert set(txn.item_ids) == {"a", "b", "c"}
        reconciles = [
            r for r in captured_logs()
            if r["message"] == "transaction_reconciled" and r.get("transaction_id") == BUYBACK_ID
        ]
        assert len(reconciles) == 1

    def test_only_inventory_disposition_items(self, service, project_items, item_store):
        service.deallocate_project("P")

        assert [i.item_id for i in item_store.list_items_by_project("P")] == ["kept"]

    def test_empty_project_unchanged(self, service):
        assert service.deallocate_project("EMPTY").status is AllocationStatus.UNCHANGED

    def test_batch_of_items(self, service, make_item, transaction_store):
        make_item("a", project_id="P", project_price="10.00",
                  payment_method=PaymentMethod.CLIENT_CARD)
        make_item("b", project_id="Q", project_price="15.00",
                  payment_method=PaymentMethod.CLIENT_CARD)

        service.deallocate_items(["a", "b"])

        assert transaction_store.get_transaction(BUYBACK_ID).amount == "25.00"


class TestDispositionUpdates:
    def test_non_inventory_disposition_only_updates_field(
        self, service, make_item, transaction_store
    ):
        make_item("I1", project_id="P", payment_method=PaymentMethod.CLIENT_CARD)

        result = service.update_disposition("I1", "to return")

        assert result.status is AllocationStatus.MOVED
        assert result.item.disposition is Disposition.TO_RETURN
        assert result.item.project_id == "P"
        assert transaction_store.all_transactions() == []

    def test_same_disposition_unchanged(self, service, make_item):
        make_item("I1", project_id="P", disposition=Disposition.KEEP)

        result = service.update_disposition("I1", "keep")

        assert result.status is AllocationStatus.UNCHANGED
        assert result.item.version == 1

    def test_inventory_item_already_free_records_disposition(self, service, make_item):
        make_item("I1", disposition=Disposition.KEEP)

        result = service.update_disposition("I1", "inventory")

        assert result.status is AllocationStatus.MOVED
        assert result.item.disposition is Disposition.INVENTORY

    def test_unknown_disposition_rejected(self, service, make_item):
        make_item("I1")
        with pytest.raises(ValueError):
            service.update_disposition("I1", "donate")

    def test_failed_deallocation_reverts_disposition(
        self, service, make_item, item_store, transaction_store, captured_logs
    ):
        make_item(
            "I1", project_id="P", payment_method=PaymentMethod.CLIENT_CARD,
            project_price="-5.00", disposition=Disposition.KEEP,
        )

        result = service.update_disposition("I1", "inventory")

        assert result.status is AllocationStatus.INVARIANT_VIOLATION
        assert result.error_code == "NEGATIVE_AMOUNT"
        item = item_store.get_item("I1")
        assert item.disposition is Disposition.KEEP
        assert item.project_id == "P"
        assert transaction_store.get_transaction(BUYBACK_ID) is None
        assert any(r["message"] == "disposition_reverted" for r in captured_logs())
