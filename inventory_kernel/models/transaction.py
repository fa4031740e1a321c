"""
Module: inventory_kernel.models.transaction
Responsibility: ORM persistence for Transaction records and their ordered
    item membership.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/dtos.py only.

Invariants enforced:
    CANONICAL_UNIQUENESS -- transaction_id is the primary key, and canonical
        ids are deterministic, so a second canonical row for the same
        (direction, project) cannot be inserted.
    SINGLE_ATTRIBUTION -- (transaction_id, item_id) is unique in
        transaction_items; set semantics are enforced by the database.

Failure modes:
    - IntegrityError on concurrent insert of the same canonical id or the
      same membership pair; the SQL store treats both as "already there".
"""

from decimal import Decimal

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_kernel.db.base import AMOUNT_LENGTH, Base, TrackedBase
from inventory_kernel.domain.dtos import Transaction


class TransactionModel(TrackedBase):
    """A financial record accounting for a set of items."""

    __tablename__ = "transactions"

    __table_args__ = (
        Index("idx_transactions_project", "project_id"),
        Index("idx_transactions_direction_project", "direction", "project_id"),
    )

    transaction_id: Mapped[str] = mapped_column(primary_key=True)
    direction: Mapped[str] = mapped_column(String(20), nullable=False)
    project_id: Mapped[str | None] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    reimbursement_type: Mapped[str | None] = mapped_column(String(40), nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(20), nullable=True)
    valuation_basis: Mapped[str] = mapped_column(String(20), nullable=False)

    # Derived amounts, two-decimal text
    subtotal: Mapped[str] = mapped_column(String(AMOUNT_LENGTH), nullable=False, default="0.00")
    tax_rate_pct: Mapped[Decimal | None] = mapped_column(nullable=True)
    tax_amount: Mapped[str] = mapped_column(String(AMOUNT_LENGTH), nullable=False, default="0.00")
    amount: Mapped[str] = mapped_column(String(AMOUNT_LENGTH), nullable=False, default="0.00")
    sum_item_purchase_prices: Mapped[str] = mapped_column(
        String(AMOUNT_LENGTH), nullable=False, default="0.00"
    )

    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    trigger_event: Mapped[str | None] = mapped_column(String(20), nullable=True)
    is_canonical: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    item_links: Mapped[list["TransactionItemModel"]] = relationship(
        order_by="TransactionItemModel.position",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    def to_dto(self) -> Transaction:
        return Transaction(
            transaction_id=self.transaction_id,
            direction=self.direction,
            project_id=self.project_id,
            status=self.status,
            reimbursement_type=self.reimbursement_type,
            payment_method=self.payment_method,
            valuation_basis=self.valuation_basis,
            item_ids=tuple(link.item_id for link in self.item_links),
            subtotal=self.subtotal,
            tax_rate_pct=self.tax_rate_pct,
            tax_amount=self.tax_amount,
            amount=self.amount,
            sum_item_purchase_prices=self.sum_item_purchase_prices,
            description=self.description,
            trigger_event=self.trigger_event,
            is_canonical=self.is_canonical,
            version=self.version,
        )


class TransactionItemModel(Base):
    """Membership of one item in one transaction, with display order."""

    __tablename__ = "transaction_items"

    __table_args__ = (
        UniqueConstraint("transaction_id", "item_id", name="uq_transaction_item"),
        Index("idx_transaction_items_item", "item_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    transaction_id: Mapped[str] = mapped_column(
        ForeignKey("transactions.transaction_id", ondelete="CASCADE"),
        nullable=False,
    )
    item_id: Mapped[str] = mapped_column(nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
