"""
Placement -- Pure allocation/deallocation state machine.

Responsibility:
    Derives an item's placement from its record and its current transaction,
    and plans the move that takes it to a target. Planning is pure: it reads
    no store and writes nothing. MovementExecutor carries a plan out.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Placements:
    FREE         business inventory, no transaction
    UNLINKED(X)  in project X with no transaction (project-originated stock)
    IN_SALE(X)   attributed to a Sale transaction for project X
    IN_PURCHASE(X) attributed to a Purchase transaction for project X

Allocation rules (target project T, optional requested direction d):
    IN_*(X), T == X, d absent or equal  -> NOOP (idempotent re-run)
    IN_*(X), T == X, d differs          -> DETACH, item becomes free stock
    IN_SALE(X), T != X                  -> TRANSFER to (d or Purchase)(T)
    IN_PURCHASE(X), T != X              -> TRANSFER to (d or Sale)(T)
    FREE / UNLINKED(Z), T               -> ATTACH to (d or Purchase)(T)
    UNLINKED(T), d absent               -> NOOP
    held by a business-inventory txn, T -> TRANSFER to (d or Purchase)(T)
    linked to a project, T is inventory -> DETACH
    UNLINKED, T is inventory            -> RELOCATE
    in business inventory, T inventory  -> NOOP

Deallocation rules:
    already in business inventory       -> NOOP
    current transaction is canonical    -> DETACH (return: unwind only)
    payment method is client card       -> ATTACH/TRANSFER to the business
                                           inventory Purchase (buyback)
    otherwise                           -> DETACH or RELOCATE (release)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from inventory_kernel.domain.canonical import (
    canonical_transaction_id,
    default_reimbursement,
    is_canonical_transaction_id,
)
from inventory_kernel.domain.dtos import (
    AuditEventType,
    Direction,
    Disposition,
    InventoryStatus,
    Item,
    PaymentMethod,
    ReimbursementType,
    Transaction,
    ValuationBasis,
)


class PlacementKind(str, Enum):
    FREE = "free"
    UNLINKED = "unlinked"
    IN_SALE = "in_sale"
    IN_PURCHASE = "in_purchase"


@dataclass(frozen=True)
class Placement:
    kind: PlacementKind
    project_id: str | None = None
    transaction_id: str | None = None

    @property
    def is_linked(self) -> bool:
        return self.kind in (PlacementKind.IN_SALE, PlacementKind.IN_PURCHASE)

    @property
    def in_business_inventory(self) -> bool:
        """Linked to a transaction that belongs to no project."""
        return self.is_linked and self.project_id is None

    @property
    def direction(self) -> Direction | None:
        if self.kind is PlacementKind.IN_SALE:
            return Direction.SALE
        if self.kind is PlacementKind.IN_PURCHASE:
            return Direction.PURCHASE
        return None


def derive_placement(item: Item, transaction: Transaction | None) -> Placement:
    """
    Placement of ``item`` given the transaction its pointer names.

    Pass None when the item has no pointer or the pointer dangles; the item
    is then placed by its location alone.
    """
    if item.transaction_id is not None and transaction is not None:
        kind = (
            PlacementKind.IN_SALE
            if transaction.direction is Direction.SALE
            else PlacementKind.IN_PURCHASE
        )
        return Placement(kind, transaction.project_id, transaction.transaction_id)
    if item.project_id is None:
        return Placement(PlacementKind.FREE)
    return Placement(PlacementKind.UNLINKED, item.project_id)


class MoveAction(str, Enum):
    NOOP = "noop"
    ATTACH = "attach"        # no source transaction, add to target
    DETACH = "detach"        # leave source transaction, no target
    TRANSFER = "transfer"    # leave source, join target
    RELOCATE = "relocate"    # location/status only, no transactions


@dataclass(frozen=True)
class AttachTarget:
    """The canonical transaction an item should join."""

    direction: Direction
    project_id: str | None
    valuation_basis: ValuationBasis
    reimbursement_type: ReimbursementType
    payment_method: PaymentMethod | None = None

    @classmethod
    def for_project(cls, direction: Direction, project_id: str | None) -> AttachTarget:
        return cls(
            direction=direction,
            project_id=project_id,
            valuation_basis=ValuationBasis.default_for(direction),
            reimbursement_type=default_reimbursement(direction, project_id),
        )

    @property
    def transaction_id(self) -> str:
        return canonical_transaction_id(self.direction, self.project_id)


# Client-paid items leaving a project are bought back by the business,
# valued at what the client paid.
BUYBACK_TARGET = AttachTarget(
    direction=Direction.PURCHASE,
    project_id=None,
    valuation_basis=ValuationBasis.PROJECT_PRICE,
    reimbursement_type=ReimbursementType.BUSINESS_OWES_CLIENT,
    payment_method=PaymentMethod.BUSINESS_CARD,
)


@dataclass(frozen=True)
class MovePlan:
    """
    What should happen to one item.

    ``disposition`` None leaves the item's disposition unchanged.
    ``record_previous_project`` stores the item's current project and
    transaction in its previous_* fields.
    """

    action: MoveAction
    event_type: AuditEventType | None = None
    target: AttachTarget | None = None
    project_id: str | None = None
    inventory_status: InventoryStatus | None = None
    disposition: Disposition | None = None
    record_previous_project: bool = False

    @property
    def is_noop(self) -> bool:
        return self.action is MoveAction.NOOP

    @property
    def target_transaction_id(self) -> str | None:
        return self.target.transaction_id if self.target is not None else None


NOOP_PLAN = MovePlan(MoveAction.NOOP)


def status_after_attach(direction: Direction) -> InventoryStatus:
    """Purchased into a project -> allocated; pending sale -> pending."""
    if direction is Direction.PURCHASE:
        return InventoryStatus.ALLOCATED
    return InventoryStatus.PENDING


def _attach(action: MoveAction, direction: Direction, project_id: str) -> MovePlan:
    return MovePlan(
        action=action,
        event_type=AuditEventType.ALLOCATION,
        target=AttachTarget.for_project(direction, project_id),
        project_id=project_id,
        inventory_status=status_after_attach(direction),
    )


def _to_inventory(action: MoveAction, event_type: AuditEventType) -> MovePlan:
    return MovePlan(
        action=action,
        event_type=event_type,
        project_id=None,
        inventory_status=InventoryStatus.AVAILABLE,
    )


def plan_allocation(
    placement: Placement,
    target_project_id: str | None,
    direction: Direction | None = None,
) -> MovePlan:
    """Plan moving an item to ``target_project_id`` (None = business inventory)."""
    if direction is not None:
        direction = Direction(direction)

    if target_project_id is None:
        if placement.kind is PlacementKind.FREE or placement.in_business_inventory:
            return NOOP_PLAN
        if placement.is_linked:
            return _to_inventory(MoveAction.DETACH, AuditEventType.RETURN)
        return _to_inventory(MoveAction.RELOCATE, AuditEventType.RETURN)

    if placement.in_business_inventory:
        # Held by a business-inventory transaction: business stock, like FREE
        return _attach(MoveAction.TRANSFER, direction or Direction.PURCHASE, target_project_id)

    if not placement.is_linked:
        if (
            placement.kind is PlacementKind.UNLINKED
            and placement.project_id == target_project_id
            and direction is None
        ):
            return NOOP_PLAN
        return _attach(MoveAction.ATTACH, direction or Direction.PURCHASE, target_project_id)

    current = placement.direction
    if placement.project_id == target_project_id:
        if direction is None or direction is current:
            return NOOP_PLAN
        return _to_inventory(MoveAction.DETACH, AuditEventType.RETURN)

    return _attach(MoveAction.TRANSFER, direction or current.opposite(), target_project_id)


def plan_deallocation(item: Item, placement: Placement) -> MovePlan:
    """Plan sending an item back to business inventory."""
    if placement.kind is PlacementKind.FREE or placement.in_business_inventory:
        return NOOP_PLAN

    common = dict(
        project_id=None,
        inventory_status=InventoryStatus.AVAILABLE,
        disposition=Disposition.INVENTORY,
        record_previous_project=True,
    )

    if placement.is_linked and is_canonical_transaction_id(placement.transaction_id):
        return MovePlan(MoveAction.DETACH, AuditEventType.RETURN, **common)

    if item.payment_method is PaymentMethod.CLIENT_CARD:
        action = MoveAction.TRANSFER if placement.is_linked else MoveAction.ATTACH
        return MovePlan(action, AuditEventType.DEALLOCATION, BUYBACK_TARGET, **common)

    action = MoveAction.DETACH if placement.is_linked else MoveAction.RELOCATE
    return MovePlan(action, AuditEventType.DEALLOCATION, **common)
