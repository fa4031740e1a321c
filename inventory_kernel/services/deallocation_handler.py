"""
DeallocationHandler -- send items from a project back to business inventory.

Responsibility:
    Specializes allocation for the "disposition = inventory" direction.
    Each item is planned with domain.placement.plan_deallocation:

        return    the item came out of business inventory through a canonical
                  transaction; unwind that attribution only
        buyback   the client paid for the item; the business buys it back
                  through the canonical business-inventory Purchase, valued
                  at project price and paid with the business card
        release   the business already owns the item; location and status
                  change, no transaction is created

    Every branch leaves the item AVAILABLE in business inventory with
    disposition INVENTORY and its previous project recorded.

Batches:
    All buybacks in one call share one target transaction, which
    MovementExecutor resolves and reconciles once.

Architecture position:
    Kernel > Services -- imperative shell.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from inventory_kernel.domain.dtos import Disposition
from inventory_kernel.domain.placement import plan_deallocation
from inventory_kernel.exceptions import InventoryKernelError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.services.base import StoreBackedService
from inventory_kernel.services.movement import MovementExecutor, MovementOutcome, PlannedMove
from inventory_kernel.stores.base import ItemStore, TransactionStore

logger = get_logger("services.deallocation_handler")


class DeallocationHandler(StoreBackedService):
    def __init__(
        self,
        item_store: ItemStore,
        transaction_store: TransactionStore,
        executor: MovementExecutor,
    ):
        super().__init__(item_store, transaction_store)
        self._executor = executor

    def deallocate_item(
        self,
        item_id: str,
        *,
        actor: str | None = None,
        note: str | None = None,
        tax_rate_pct: Decimal | None = None,
    ) -> MovementOutcome:
        return self.deallocate_items(
            [item_id], actor=actor, note=note, tax_rate_pct=tax_rate_pct
        )

    def deallocate_items(
        self,
        item_ids: Iterable[str],
        *,
        actor: str | None = None,
        note: str | None = None,
        tax_rate_pct: Decimal | None = None,
    ) -> MovementOutcome:
        moves = []
        for item in self._load_items(item_ids):
            placement = self._placement_of(item)
            plan = plan_deallocation(item, placement)
            logger.debug(
                "deallocation_planned",
                extra={
                    "item_id": item.item_id,
                    "placement": placement.kind.value,
                    "action": plan.action.value,
                    "payment_method": item.payment_method,
                    "target_transaction_id": plan.target_transaction_id,
                },
            )
            moves.append(PlannedMove(item, plan))
        return self._executor.execute(
            moves, actor=actor, note=note, tax_rate_pct=tax_rate_pct
        )

    def deallocate_project(
        self,
        project_id: str,
        *,
        actor: str | None = None,
        note: str | None = None,
        tax_rate_pct: Decimal | None = None,
    ) -> MovementOutcome:
        """Deallocate every item in the project marked for inventory, as one batch."""
        item_ids = [
            item.item_id
            for item in self._items.list_items_by_project(project_id)
            if item.disposition is Disposition.INVENTORY
        ]
        logger.info(
            "project_deallocation_started",
            extra={"deallocate_project_id": project_id, "item_count": len(item_ids)},
        )
        return self.deallocate_items(
            item_ids, actor=actor, note=note, tax_rate_pct=tax_rate_pct
        )

    def update_disposition(
        self,
        item_id: str,
        disposition: Disposition,
        *,
        actor: str | None = None,
        note: str | None = None,
        tax_rate_pct: Decimal | None = None,
    ) -> MovementOutcome:
        """
        Set an item's disposition.

        INVENTORY triggers deallocation.  If deallocation fails, the previous
        disposition is restored and the failure is re-raised.
        """
        disposition = Disposition(disposition)
        item = self._items.get_item(item_id)

        previous = item.disposition

        if disposition is not Disposition.INVENTORY:
            if previous is disposition:
                return MovementOutcome(items=[item])
            updated = self._items.update_item(
                item_id, {"disposition": disposition}, expected_version=item.version
            )
            return MovementOutcome(items=[updated], moved_item_ids=[item_id])

        if previous is not Disposition.INVENTORY:
            self._items.update_item(
                item_id, {"disposition": disposition}, expected_version=item.version
            )
        try:
            outcome = self.deallocate_item(
                item_id, actor=actor, note=note, tax_rate_pct=tax_rate_pct
            )
        except InventoryKernelError:
            if previous is not Disposition.INVENTORY:
                self._revert_disposition(item_id, previous)
            raise
        if previous is not Disposition.INVENTORY and not outcome.changed:
            # Already in business inventory; only the disposition changed
            outcome.moved_item_ids.append(item_id)
        return outcome

    def _revert_disposition(self, item_id: str, previous: Disposition | None) -> None:
        try:
            current = self._items.get_item(item_id)
            # Only undo our own write: the item must still be in its project
            if current.disposition is not Disposition.INVENTORY or current.project_id is None:
                return
            self._items.update_item(
                item_id, {"disposition": previous}, expected_version=current.version
            )
        except InventoryKernelError:
            logger.exception("disposition_revert_failed", extra={"item_id": item_id})
            return
        logger.warning(
            "disposition_reverted",
            extra={"item_id": item_id, "disposition": previous},
        )
