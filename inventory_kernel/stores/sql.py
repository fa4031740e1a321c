"""
SQLAlchemy stores.

Responsibility:
    ItemStore and TransactionStore backed by the ORM models.  Every public
    method runs in its own short session_scope(); nothing is held open
    across calls, so no lock outlives a round trip.

Concurrency:
    Conditional writes are single UPDATE/DELETE statements filtered on
    ``version = :expected`` that also set ``version = version + 1``.  A
    rowcount of zero means the row is gone (NotFound) or moved on
    (ConcurrentModificationError).  Membership inserts rely on the
    (transaction_id, item_id) unique constraint; upsert relies on the
    primary key.

Failure modes:
    - OperationalError / InterfaceError from the driver are translated to
      StoreUnavailableError at this boundary.
"""

from __future__ import annotations

from contextlib import contextmanager
from enum import Enum
from typing import Any, Generator, Iterable, Mapping

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from inventory_kernel.db.engine import get_session_factory, session_scope
from inventory_kernel.domain.dtos import (
    Item,
    Transaction,
    apply_item_fields,
    apply_transaction_fields,
)
from inventory_kernel.exceptions import (
    ConcurrentModificationError,
    ItemAlreadyExistsError,
    ItemNotFoundError,
    StoreUnavailableError,
    TransactionAlreadyExistsError,
    TransactionNotFoundError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.item import ItemModel
from inventory_kernel.models.transaction import TransactionItemModel, TransactionModel
from inventory_kernel.stores.base import ItemStore, TransactionStore, merge_missing_fields

logger = get_logger("stores.sql")

_UPSERT_ATTEMPTS = 3

_ITEM_COLUMNS = (
    "project_id",
    "inventory_status",
    "disposition",
    "transaction_id",
    "payment_method",
    "purchase_price",
    "project_price",
    "market_value",
    "description",
    "origin_transaction_id",
    "previous_project_id",
    "previous_project_transaction_id",
)

_TRANSACTION_COLUMNS = (
    "direction",
    "project_id",
    "status",
    "reimbursement_type",
    "payment_method",
    "valuation_basis",
    "subtotal",
    "tax_rate_pct",
    "tax_amount",
    "amount",
    "sum_item_purchase_prices",
    "description",
    "trigger_event",
    "is_canonical",
)


def _column_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _columns(record: Any, names: Iterable[str]) -> dict[str, Any]:
    return {name: _column_value(getattr(record, name)) for name in names}


class _SqlStore:
    def __init__(self, session_factory: sessionmaker[Session] | None = None):
        self._session_factory = session_factory

    @contextmanager
    def _session(self, operation: str) -> Generator[Session, None, None]:
        factory = self._session_factory or get_session_factory()
        try:
            with session_scope(factory) as session:
                yield session
        except (OperationalError, InterfaceError) as exc:
            reason = str(exc.orig if exc.orig is not None else exc)
            logger.warning(
                "store_call_failed",
                extra={"operation": operation, "reason": reason},
            )
            raise StoreUnavailableError(operation, reason) from exc


class SqlItemStore(_SqlStore, ItemStore):
    def get_item(self, item_id: str) -> Item:
        with self._session("get_item") as session:
            row = session.get(ItemModel, item_id)
            if row is None:
                raise ItemNotFoundError(item_id)
            return row.to_dto()

    def create_item(self, item: Item) -> Item:
        try:
            with self._session("create_item") as session:
                row = ItemModel(item_id=item.item_id, version=1, **_columns(item, _ITEM_COLUMNS))
                session.add(row)
                session.flush()
                return row.to_dto()
        except IntegrityError:
            raise ItemAlreadyExistsError(item.item_id) from None

    def update_item(
        self,
        item_id: str,
        fields: Mapping[str, Any],
        expected_version: int | None = None,
    ) -> Item:
        with self._session("update_item") as session:
            row = session.get(ItemModel, item_id)
            if row is None:
                raise ItemNotFoundError(item_id)
            # Validates field names and enum values before touching the row
            candidate = apply_item_fields(row.to_dto(), dict(fields))

            stmt = update(ItemModel).where(ItemModel.item_id == item_id)
            if expected_version is not None:
                stmt = stmt.where(ItemModel.version == expected_version)
            stmt = stmt.values(
                **_columns(candidate, tuple(fields)),
                version=ItemModel.version + 1,
            ).execution_options(synchronize_session=False)

            if session.execute(stmt).rowcount == 0:
                actual = session.scalar(
                    select(ItemModel.version).where(ItemModel.item_id == item_id)
                )
                raise ConcurrentModificationError("item", item_id, expected_version, actual)

            return session.get(ItemModel, item_id, populate_existing=True).to_dto()

    def list_items_by_transaction(self, transaction_id: str) -> list[Item]:
        with self._session("list_items_by_transaction") as session:
            rows = session.scalars(
                select(ItemModel)
                .where(ItemModel.transaction_id == transaction_id)
                .order_by(ItemModel.item_id)
            )
            return [row.to_dto() for row in rows]

    def list_items_by_project(self, project_id: str | None) -> list[Item]:
        if project_id is None:
            condition = ItemModel.project_id.is_(None)
        else:
            condition = ItemModel.project_id == project_id
        with self._session("list_items_by_project") as session:
            rows = session.scalars(select(ItemModel).where(condition).order_by(ItemModel.item_id))
            return [row.to_dto() for row in rows]


class SqlTransactionStore(_SqlStore, TransactionStore):
    def get_transaction(self, transaction_id: str) -> Transaction | None:
        with self._session("get_transaction") as session:
            row = session.get(TransactionModel, transaction_id)
            return row.to_dto() if row is not None else None

    def create_transaction(self, transaction: Transaction) -> Transaction:
        try:
            with self._session("create_transaction") as session:
                row = TransactionModel(
                    transaction_id=transaction.transaction_id,
                    version=1,
                    **_columns(transaction, _TRANSACTION_COLUMNS),
                )
                row.item_links = [
                    TransactionItemModel(item_id=item_id, position=position)
                    for position, item_id in enumerate(dict.fromkeys(transaction.item_ids))
                ]
                session.add(row)
                session.flush()
                return row.to_dto()
        except IntegrityError:
            raise TransactionAlreadyExistsError(transaction.transaction_id) from None

    def upsert_transaction(
        self, transaction_id: str, initial_fields: Mapping[str, Any]
    ) -> Transaction:
        for _ in range(_UPSERT_ATTEMPTS):
            existing = self.get_transaction(transaction_id)
            if existing is None:
                try:
                    return self.create_transaction(
                        Transaction(transaction_id=transaction_id, **initial_fields)
                    )
                except TransactionAlreadyExistsError:
                    logger.debug(
                        "upsert_create_race_lost",
                        extra={"transaction_id": transaction_id},
                    )
                    continue
            missing = merge_missing_fields(existing, initial_fields)
            if not missing:
                return existing
            try:
                return self.update_transaction(
                    transaction_id, missing, expected_version=existing.version
                )
            except (ConcurrentModificationError, TransactionNotFoundError):
                continue
        raise ConcurrentModificationError("transaction", transaction_id)

    def update_transaction(
        self,
        transaction_id: str,
        fields: Mapping[str, Any],
        expected_version: int | None = None,
    ) -> Transaction:
        with self._session("update_transaction") as session:
            row = session.get(TransactionModel, transaction_id)
            if row is None:
                raise TransactionNotFoundError(transaction_id)
            candidate = apply_transaction_fields(row.to_dto(), dict(fields))

            stmt = update(TransactionModel).where(
                TransactionModel.transaction_id == transaction_id
            )
            if expected_version is not None:
                stmt = stmt.where(TransactionModel.version == expected_version)
            stmt = stmt.values(
                **_columns(candidate, tuple(fields)),
                version=TransactionModel.version + 1,
            ).execution_options(synchronize_session=False)

            if session.execute(stmt).rowcount == 0:
                raise ConcurrentModificationError(
                    "transaction",
                    transaction_id,
                    expected_version,
                    self._current_version(session, transaction_id),
                )

            return session.get(
                TransactionModel, transaction_id, populate_existing=True
            ).to_dto()

    def delete_transaction(
        self, transaction_id: str, expected_version: int | None = None
    ) -> None:
        with self._session("delete_transaction") as session:
            if self._current_version(session, transaction_id) is None:
                raise TransactionNotFoundError(transaction_id)
            session.execute(
                delete(TransactionItemModel)
                .where(TransactionItemModel.transaction_id == transaction_id)
                .execution_options(synchronize_session=False)
            )
            stmt = delete(TransactionModel).where(
                TransactionModel.transaction_id == transaction_id
            )
            if expected_version is not None:
                stmt = stmt.where(TransactionModel.version == expected_version)
            stmt = stmt.execution_options(synchronize_session=False)
            if session.execute(stmt).rowcount == 0:
                raise ConcurrentModificationError(
                    "transaction",
                    transaction_id,
                    expected_version,
                    self._current_version(session, transaction_id),
                )

    def add_item_to_transaction(self, transaction_id: str, item_id: str) -> bool:
        try:
            with self._session("add_item_to_transaction") as session:
                if self._current_version(session, transaction_id) is None:
                    raise TransactionNotFoundError(transaction_id)
                if self._membership_id(session, transaction_id, item_id) is not None:
                    return False
                position = session.scalar(
                    select(func.coalesce(func.max(TransactionItemModel.position) + 1, 0))
                    .where(TransactionItemModel.transaction_id == transaction_id)
                )
                session.add(
                    TransactionItemModel(
                        transaction_id=transaction_id, item_id=item_id, position=position
                    )
                )
                session.flush()
                self._bump_version(session, transaction_id)
                return True
        except IntegrityError:
            # A concurrent caller inserted the same pair first.
            return False

    def remove_item_from_transaction(self, transaction_id: str, item_id: str) -> bool:
        with self._session("remove_item_from_transaction") as session:
            if self._current_version(session, transaction_id) is None:
                raise TransactionNotFoundError(transaction_id)
            result = session.execute(
                delete(TransactionItemModel)
                .where(
                    TransactionItemModel.transaction_id == transaction_id,
                    TransactionItemModel.item_id == item_id,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                return False
            self._bump_version(session, transaction_id)
            return True

    def list_transactions_for_item(self, item_id: str) -> list[Transaction]:
        with self._session("list_transactions_for_item") as session:
            rows = session.scalars(
                select(TransactionModel)
                .join(
                    TransactionItemModel,
                    TransactionItemModel.transaction_id == TransactionModel.transaction_id,
                )
                .where(TransactionItemModel.item_id == item_id)
                .order_by(TransactionModel.transaction_id)
            )
            return [row.to_dto() for row in rows]

    @staticmethod
    def _current_version(session: Session, transaction_id: str) -> int | None:
        return session.scalar(
            select(TransactionModel.version).where(
                TransactionModel.transaction_id == transaction_id
            )
        )

    @staticmethod
    def _membership_id(session: Session, transaction_id: str, item_id: str) -> int | None:
        return session.scalar(
            select(TransactionItemModel.id).where(
                TransactionItemModel.transaction_id == transaction_id,
                TransactionItemModel.item_id == item_id,
            )
        )

    @staticmethod
    def _bump_version(session: Session, transaction_id: str) -> None:
        session.execute(
            update(TransactionModel)
            .where(TransactionModel.transaction_id == transaction_id)
            .values(version=TransactionModel.version + 1)
            .execution_options(synchronize_session=False)
        )
