"""
MovementExecutor -- applies planned item moves to the stores.

Responsibility:
    Carries out a batch of MovePlans with one protocol shared by allocation
    and deallocation:

        pre-flight  validate attribution and projected amounts, no writes
        (a) detach  remove each item from every source transaction
        (b) attach  resolve each distinct target once, add its items
        reconcile   each touched transaction exactly once, closing empties
        (c) commit  conditional update of each item record
        close       delete emptied non-canonical sources, deferred past (c)
        audit       best-effort event per moved item

Architecture position:
    Kernel > Services -- imperative shell.  Planning happens in
    domain.placement; this module only executes.

Invariants enforced:
    SINGLE_ATTRIBUTION  -- pre-flight refuses items contained in more than
        one transaction.  Sources are the item's pointer plus every
        transaction that still contains it, so re-running a move that died
        between (a) and (c) finishes it instead of leaving a second
        attribution behind.
    NON_NEGATIVE_AMOUNT -- projected on every touched transaction before
        the first write.
    OPTIMISTIC_CONCURRENCY -- (c) is conditional on the item version read
        by the planner.  On conflict, an attach this call made is undone if
        the item now belongs elsewhere, and the conflict is re-raised so the
        caller retries the whole operation against fresh state.

Failure modes:
    - MultipleAttributionError, NegativeAmountError before any write.
    - ConcurrentModificationError from (c) or from a reconcile that kept
      losing races.
    - Audit emitter failures are logged and never propagate.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Sequence

from inventory_kernel.domain.amounts import compute_breakdown, is_negative
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import AllocationEvent, Item, Transaction
from inventory_kernel.domain.placement import AttachTarget, MovePlan
from inventory_kernel.exceptions import (
    ConcurrentModificationError,
    InventoryKernelError,
    MultipleAttributionError,
    NegativeAmountError,
    TransactionNotFoundError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.services.audit_emitter import AuditEmitter, LoggingAuditEmitter
from inventory_kernel.services.base import StoreBackedService
from inventory_kernel.services.canonical_resolver import CanonicalTransactionResolver
from inventory_kernel.services.reconciler import (
    ReconcileOutcome,
    ReconcileStatus,
    TransactionReconciler,
)
from inventory_kernel.stores.base import ItemStore, TransactionStore

logger = get_logger("services.movement")


@dataclass(frozen=True)
class PlannedMove:
    item: Item
    plan: MovePlan


@dataclass
class MovementOutcome:
    """Final state after a batch of moves."""

    items: list[Item] = field(default_factory=list)
    transactions: list[Transaction] = field(default_factory=list)
    deleted_transaction_ids: list[str] = field(default_factory=list)
    cancelled_transaction_ids: list[str] = field(default_factory=list)
    moved_item_ids: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.moved_item_ids)

    def record(self, result: ReconcileOutcome) -> None:
        if result.status is ReconcileStatus.DELETED:
            self.deleted_transaction_ids.append(result.transaction_id)
            return
        if result.status is ReconcileStatus.CANCELLED:
            self.cancelled_transaction_ids.append(result.transaction_id)
        if result.transaction is not None:
            self.transactions.append(result.transaction)


class MovementExecutor(StoreBackedService):
    """Executes MovePlans against the stores."""

    def __init__(
        self,
        item_store: ItemStore,
        transaction_store: TransactionStore,
        reconciler: TransactionReconciler,
        resolver: CanonicalTransactionResolver,
        audit_emitter: AuditEmitter | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(item_store, transaction_store)
        self._reconciler = reconciler
        self._resolver = resolver
        self._audit = audit_emitter or LoggingAuditEmitter()
        self._clock = clock or SystemClock()

    def execute(
        self,
        moves: Sequence[PlannedMove],
        *,
        actor: str | None = None,
        note: str | None = None,
        tax_rate_pct: Decimal | None = None,
    ) -> MovementOutcome:
        active = [m for m in moves if not m.plan.is_noop]
        if not active:
            return MovementOutcome(items=[m.item for m in moves])

        sources = self._preflight(active, tax_rate_pct)

        # Ordered set of every transaction whose membership may have changed
        touched: dict[str, None] = {}

        # (a) detach
        for move in active:
            for source_id in sources[move.item.item_id]:
                self._detach(source_id, move.item.item_id)
                touched[source_id] = None

        # (b) attach; remember what this call added so a conflict can undo it
        attached: dict[str, str] = {}
        for target_id, group in self._group_by_target(active).items():
            plan = group[0].plan
            self._resolver.resolve(plan.target, tax_rate_pct, plan.event_type)
            for move in group:
                if self._transactions.add_item_to_transaction(target_id, move.item.item_id):
                    attached[move.item.item_id] = target_id
            touched[target_id] = None

        # Emptied non-canonical sources are deleted only after (c); until then
        # an item pointer that still names them must resolve on a retry.
        deferred = self._emptied_plain_sources(touched)
        outcome = MovementOutcome()
        for transaction_id in touched:
            if transaction_id not in deferred:
                outcome.record(self._reconciler.reconcile(transaction_id))

        # (c) commit item records
        committed: dict[str, Item] = {}
        try:
            for move in active:
                committed[move.item.item_id] = self._commit_item(
                    move, attached.get(move.item.item_id)
                )
                outcome.moved_item_ids.append(move.item.item_id)
        except ConcurrentModificationError:
            self._close_released_sources(deferred, active)
            raise

        for transaction_id in deferred:
            outcome.record(self._reconciler.reconcile(transaction_id))

        for move in active:
            self._emit(move, actor, note)

        outcome.items = [committed.get(m.item.item_id, m.item) for m in moves]
        logger.info(
            "items_moved",
            extra={
                "moved_count": len(active),
                "touched_transactions": list(touched),
                "deleted_transactions": outcome.deleted_transaction_ids,
                "cancelled_transactions": outcome.cancelled_transaction_ids,
            },
        )
        return outcome

    # ------------------------------------------------------------------
    # Pre-flight
    # ------------------------------------------------------------------

    def _preflight(
        self, active: list[PlannedMove], tax_rate_pct: Decimal | None
    ) -> dict[str, list[str]]:
        sources: dict[str, list[str]] = {}
        removals: dict[str, set[str]] = defaultdict(set)
        additions: dict[str, list[Item]] = defaultdict(list)
        targets: dict[str, AttachTarget] = {}

        for move in active:
            item = move.item
            containing = [
                t.transaction_id
                for t in self._transactions.list_transactions_for_item(item.item_id)
            ]
            if len(containing) > 1:
                logger.error(
                    "multiple_attribution_detected",
                    extra={"item_id": item.item_id, "transaction_ids": containing},
                )
                raise MultipleAttributionError(item.item_id, tuple(containing))

            candidates = dict.fromkeys(containing)
            if item.transaction_id is not None:
                candidates[item.transaction_id] = None
            target_id = move.plan.target_transaction_id
            candidates.pop(target_id, None)
            sources[item.item_id] = list(candidates)

            for source_id in candidates:
                removals[source_id].add(item.item_id)
            if target_id is not None:
                additions[target_id].append(item)
                targets[target_id] = move.plan.target

        for transaction_id in dict.fromkeys([*removals, *additions]):
            self._check_projection(
                transaction_id,
                removals.get(transaction_id, set()),
                additions.get(transaction_id, []),
                targets.get(transaction_id),
                tax_rate_pct,
            )
        return sources

    def _check_projection(
        self,
        transaction_id: str,
        leaving: set[str],
        joining: list[Item],
        target: AttachTarget | None,
        tax_rate_pct: Decimal | None,
    ) -> None:
        txn = self._transactions.get_transaction(transaction_id)
        if txn is None:
            if target is None:
                return
            members = joining
            basis, rate = target.valuation_basis, tax_rate_pct
        else:
            kept_ids = [i for i in txn.item_ids if i not in leaving]
            members, _ = self._reconciler.load_members(transaction_id, kept_ids)
            members += [item for item in joining if item.item_id not in kept_ids]
            basis, rate = txn.valuation_basis, txn.tax_rate_pct

        projected = compute_breakdown(members, basis, rate)
        if is_negative(projected):
            logger.error(
                "negative_amount_refused",
                extra={"transaction_id": transaction_id, "amount": projected.amount},
            )
            raise NegativeAmountError(transaction_id, projected.amount)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _detach(self, transaction_id: str, item_id: str) -> None:
        try:
            self._transactions.remove_item_from_transaction(transaction_id, item_id)
        except TransactionNotFoundError:
            logger.info(
                "detach_source_missing",
                extra={"transaction_id": transaction_id, "item_id": item_id},
            )

    @staticmethod
    def _group_by_target(active: list[PlannedMove]) -> dict[str, list[PlannedMove]]:
        groups: dict[str, list[PlannedMove]] = {}
        for move in active:
            target_id = move.plan.target_transaction_id
            if target_id is not None:
                groups.setdefault(target_id, []).append(move)
        return groups

    def _commit_item(self, move: PlannedMove, attached_to: str | None) -> Item:
        item, plan = move.item, move.plan
        fields: dict = {
            "project_id": plan.project_id,
            "transaction_id": plan.target_transaction_id,
            "inventory_status": plan.inventory_status,
        }
        if plan.disposition is not None:
            fields["disposition"] = plan.disposition
        if plan.record_previous_project and item.project_id is not None:
            fields["previous_project_id"] = item.project_id
            fields["previous_project_transaction_id"] = item.transaction_id
        if plan.target is not None and item.origin_transaction_id is None:
            fields["origin_transaction_id"] = plan.target_transaction_id

        try:
            return self._items.update_item(item.item_id, fields, expected_version=item.version)
        except ConcurrentModificationError:
            self._undo_attach(item.item_id, attached_to)
            raise

    def _emptied_plain_sources(self, touched: dict[str, None]) -> list[str]:
        emptied = []
        for transaction_id in touched:
            txn = self._transactions.get_transaction(transaction_id)
            if txn is not None and not txn.is_canonical and not txn.item_ids:
                emptied.append(transaction_id)
        return emptied

    def _close_released_sources(
        self, deferred: list[str], active: list[PlannedMove]
    ) -> None:
        """After a lost commit, close deferred sources no item points at any more."""
        if not deferred:
            return
        try:
            pointers = {
                self._items.get_item(m.item.item_id).transaction_id for m in active
            }
            for transaction_id in deferred:
                if transaction_id not in pointers:
                    self._reconciler.reconcile(transaction_id)
        except InventoryKernelError:
            logger.exception(
                "deferred_source_close_failed",
                extra={"transaction_ids": deferred},
            )

    def _undo_attach(self, item_id: str, attached_to: str | None) -> None:
        if attached_to is None:
            return
        try:
            current = self._items.get_item(item_id)
            if current.transaction_id == attached_to:
                return
            self._transactions.remove_item_from_transaction(attached_to, item_id)
            self._reconciler.reconcile(attached_to)
        except InventoryKernelError:
            logger.exception(
                "attach_undo_failed",
                extra={"item_id": item_id, "transaction_id": attached_to},
            )
            return
        logger.warning(
            "attach_undone_after_conflict",
            extra={"item_id": item_id, "transaction_id": attached_to},
        )

    def _emit(self, move: PlannedMove, actor: str | None, note: str | None) -> None:
        item, plan = move.item, move.plan
        event = AllocationEvent(
            item_id=item.item_id,
            event_type=plan.event_type,
            from_transaction_id=item.transaction_id,
            to_transaction_id=plan.target_transaction_id,
            actor=actor,
            timestamp=self._clock.now(),
            project_id=plan.project_id if plan.project_id is not None else item.project_id,
            note=note,
        )
        try:
            self._audit.record_allocation_event(event)
        except Exception:
            logger.exception(
                "audit_emit_failed",
                extra={"item_id": item.item_id, "event_type": plan.event_type.value},
            )
