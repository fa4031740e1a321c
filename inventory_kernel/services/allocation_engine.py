"""
AllocationEngine -- move items to a project or back to business inventory.

Responsibility:
    Reads each item and its current transaction, plans the move with
    domain.placement.plan_allocation and hands the batch to
    MovementExecutor.  A single-item call is a batch of one.

Architecture position:
    Kernel > Services -- imperative shell.

Idempotence:
    Planning starts from current records every time, so calling
    allocate_item twice with the same arguments plans a NOOP the second
    time: no second transaction, no doubled amount.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from inventory_kernel.domain.dtos import Direction
from inventory_kernel.domain.placement import plan_allocation
from inventory_kernel.logging_config import get_logger
from inventory_kernel.services.base import StoreBackedService
from inventory_kernel.services.movement import MovementExecutor, MovementOutcome, PlannedMove
from inventory_kernel.stores.base import ItemStore, TransactionStore

logger = get_logger("services.allocation_engine")


class AllocationEngine(StoreBackedService):
    def __init__(
        self,
        item_store: ItemStore,
        transaction_store: TransactionStore,
        executor: MovementExecutor,
    ):
        super().__init__(item_store, transaction_store)
        self._executor = executor

    def allocate_item(
        self,
        item_id: str,
        target_project_id: str | None,
        direction: Direction | None = None,
        *,
        actor: str | None = None,
        note: str | None = None,
        tax_rate_pct: Decimal | None = None,
    ) -> MovementOutcome:
        return self.allocate_items(
            [item_id],
            target_project_id,
            direction,
            actor=actor,
            note=note,
            tax_rate_pct=tax_rate_pct,
        )

    def allocate_items(
        self,
        item_ids: Iterable[str],
        target_project_id: str | None,
        direction: Direction | None = None,
        *,
        actor: str | None = None,
        note: str | None = None,
        tax_rate_pct: Decimal | None = None,
    ) -> MovementOutcome:
        moves = []
        for item in self._load_items(item_ids):
            placement = self._placement_of(item)
            plan = plan_allocation(placement, target_project_id, direction)
            logger.debug(
                "allocation_planned",
                extra={
                    "item_id": item.item_id,
                    "placement": placement.kind.value,
                    "action": plan.action.value,
                    "target_transaction_id": plan.target_transaction_id,
                },
            )
            moves.append(PlannedMove(item, plan))
        return self._executor.execute(
            moves, actor=actor, note=note, tax_rate_pct=tax_rate_pct
        )
