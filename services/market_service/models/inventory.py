"""Market inventory models: the stock ledger and its audit trail."""

import uuid
from datetime import datetime
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.market_service.models.enums import InventoryMovementType, enum_values
from sqlalchemy import CheckConstraint, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

_NO_VARIANT = text("variant_id IS NULL")

# ============================================================================
# INVENTORY MODELS
# ============================================================================


class InventoryItem(Base):
    """Stock counts per product, or per product variant when variants exist."""

    __tablename__ = "market_inventory_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("market_products.id", ondelete="CASCADE"),
        nullable=False,
    )
    variant_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    # Stock levels
    quantity_on_hand: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )
    quantity_reserved: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )  # Held by pending and processing orders

    # Thresholds
    low_stock_threshold: Mapped[int] = mapped_column(
        Integer, default=5, server_default="5"
    )

    # Tracking
    last_restock_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_sold_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("quantity_on_hand >= 0", name="positive_stock"),
        CheckConstraint(
            "quantity_reserved >= 0 AND quantity_reserved <= quantity_on_hand",
            name="valid_reserved",
        ),
        Index(
            "uq_market_inventory_variant",
            "product_id",
            "variant_id",
            unique=True,
        ),
        Index(
            "uq_market_inventory_product",
            "product_id",
            unique=True,
            postgresql_where=_NO_VARIANT,
            sqlite_where=_NO_VARIANT,
        ),
    )

    @property
    def quantity_available(self) -> int:
        """Available quantity (on hand minus reserved)."""
        return self.quantity_on_hand - self.quantity_reserved

    @property
    def is_low_stock(self) -> bool:
        return self.quantity_available <= self.low_stock_threshold

    def __repr__(self):
        return (
            f"<InventoryItem product={self.product_id} "
            f"on_hand={self.quantity_on_hand} reserved={self.quantity_reserved}>"
        )


class InventoryMovement(Base):
    """Append-only audit trail for every ledger mutation."""

    __tablename__ = "market_inventory_movements"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    product_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    variant_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    movement_type: Mapped[InventoryMovementType] = mapped_column(
        SAEnum(
            InventoryMovementType,
            values_callable=enum_values,
            name="market_inventory_movement_type_enum",
        ),
        nullable=False,
    )
    quantity: Mapped[int] = mapped_column(
        Integer, nullable=False
    )  # Positive = add, negative = subtract

    reference_type: Mapped[Optional[str]] = mapped_column(
        String(30), nullable=True
    )  # order, manual
    reference_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    performed_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    def __repr__(self):
        return f"<InventoryMovement {self.movement_type} qty={self.quantity}>"
