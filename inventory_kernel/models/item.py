"""
Module: inventory_kernel.models.item
Responsibility: ORM persistence for Item records.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/dtos.py only.

Invariants enforced:
    SINGLE_ATTRIBUTION -- transaction_id is the item side of the
        item<->transaction relation; it is written only by the engine.
    Price fields are stored as exact text, the form the application has
    always kept them in, and parsed with the Money utility on read.
"""

from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import AMOUNT_LENGTH, TrackedBase
from inventory_kernel.domain.dtos import Item


class ItemModel(TrackedBase):
    """One physical item. project_id NULL means business inventory."""

    __tablename__ = "items"

    __table_args__ = (
        Index("idx_items_project", "project_id"),
        Index("idx_items_transaction", "transaction_id"),
    )

    item_id: Mapped[str] = mapped_column(primary_key=True)
    project_id: Mapped[str | None] = mapped_column(nullable=True)
    inventory_status: Mapped[str] = mapped_column(String(20), nullable=False)
    disposition: Mapped[str | None] = mapped_column(String(20), nullable=True)
    transaction_id: Mapped[str | None] = mapped_column(nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(20), nullable=True)

    purchase_price: Mapped[str | None] = mapped_column(String(AMOUNT_LENGTH))
    project_price: Mapped[str | None] = mapped_column(String(AMOUNT_LENGTH))
    market_value: Mapped[str | None] = mapped_column(String(AMOUNT_LENGTH))

    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Lineage
    origin_transaction_id: Mapped[str | None] = mapped_column(nullable=True)
    previous_project_id: Mapped[str | None] = mapped_column(nullable=True)
    previous_project_transaction_id: Mapped[str | None] = mapped_column(nullable=True)

    def to_dto(self) -> Item:
        return Item(
            item_id=self.item_id,
            project_id=self.project_id,
            inventory_status=self.inventory_status,
            disposition=self.disposition,
            transaction_id=self.transaction_id,
            payment_method=self.payment_method,
            purchase_price=self.purchase_price,
            project_price=self.project_price,
            market_value=self.market_value,
            description=self.description,
            origin_transaction_id=self.origin_transaction_id,
            previous_project_id=self.previous_project_id,
            previous_project_transaction_id=self.previous_project_transaction_id,
            version=self.version,
        )
