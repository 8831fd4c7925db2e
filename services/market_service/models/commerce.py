"""Market commerce models: carts and orders."""

import random
import string
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.market_service.models.enums import CartStatus, OrderStatus, enum_values
from sqlalchemy import JSON, CheckConstraint, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Index, Integer, Numeric, String, Text, Uuid, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

JSONType = JSON().with_variant(JSONB(), "postgresql")

_ACTIVE_CART = text("status = 'active'")
_NO_VARIANT = text("variant_id IS NULL")

# ============================================================================
# CART MODELS
# ============================================================================


class Cart(Base):
    """Shopping carts, owned by a user or by an anonymous guest token."""

    __tablename__ = "market_carts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Owner (auth user id when logged in, guest token otherwise)
    owner_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    guest_token: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    status: Mapped[CartStatus] = mapped_column(
        SAEnum(
            CartStatus,
            values_callable=enum_values,
            name="market_cart_status_enum",
        ),
        default=CartStatus.ACTIVE,
        server_default="active",
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint(
            "owner_id IS NOT NULL OR guest_token IS NOT NULL",
            name="cart_has_owner",
        ),
        # At most one active cart per owner and per guest token
        Index(
            "uq_market_carts_active_owner",
            "owner_id",
            unique=True,
            postgresql_where=_ACTIVE_CART,
            sqlite_where=_ACTIVE_CART,
        ),
        Index(
            "uq_market_carts_active_guest",
            "guest_token",
            unique=True,
            postgresql_where=_ACTIVE_CART,
            sqlite_where=_ACTIVE_CART,
        ),
    )

    items = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.created_at",
    )

    def __repr__(self):
        return f"<Cart {self.id} status={self.status}>"


class CartItem(Base):
    """Cart line items."""

    __tablename__ = "market_cart_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    cart_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("market_carts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("market_products.id"), nullable=False
    )
    variant_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # Price seen when the item was added; checkout re-validates against the catalog
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("quantity > 0", name="cart_item_positive_quantity"),
        Index(
            "uq_market_cart_items_variant",
            "cart_id",
            "product_id",
            "variant_id",
            unique=True,
        ),
        Index(
            "uq_market_cart_items_product",
            "cart_id",
            "product_id",
            unique=True,
            postgresql_where=_NO_VARIANT,
            sqlite_where=_NO_VARIANT,
        ),
    )

    cart = relationship("Cart", back_populates="items")
    product = relationship("Product")

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def __repr__(self):
        return f"<CartItem product={self.product_id} qty={self.quantity}>"


# ============================================================================
# ORDER MODELS
# ============================================================================


class Order(Base):
    """Orders. Money columns are fixed at creation; only status fields move."""

    __tablename__ = "market_orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_number: Mapped[str] = mapped_column(
        String(32), unique=True, nullable=False, index=True
    )
    owner_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    cart_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    status: Mapped[OrderStatus] = mapped_column(
        SAEnum(
            OrderStatus,
            values_callable=enum_values,
            name="market_order_status_enum",
        ),
        default=OrderStatus.PENDING,
        server_default="pending",
        nullable=False,
        index=True,
    )

    # Pricing
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=0, server_default="0", nullable=False
    )
    shipping_cost: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=0, server_default="0", nullable=False
    )
    discount_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=0, server_default="0", nullable=False
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # Address snapshots (copied at checkout, never live references)
    shipping_address: Mapped[dict] = mapped_column(JSONType, nullable=False)
    billing_address: Mapped[dict] = mapped_column(JSONType, nullable=False)

    payment_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    tracking_number: Mapped[Optional[str]] = mapped_column(
        String(100), nullable=True
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Timestamps
    processed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    shipped_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    delivered_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint(
            "subtotal >= 0 AND tax_amount >= 0 AND shipping_cost >= 0 "
            "AND discount_amount >= 0 AND total_amount >= 0",
            name="order_amounts_non_negative",
        ),
    )

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.product_id",
    )

    @property
    def item_count(self) -> int:
        return len(self.items)

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.items)

    @staticmethod
    def generate_order_number(prefix: str = "MK") -> str:
        """Generate an order number like MK-20260104-A1B2C."""
        date_part = utc_now().strftime("%Y%m%d")
        random_part = "".join(
            random.choices(string.ascii_uppercase + string.digits, k=5)
        )
        return f"{prefix}-{date_part}-{random_part}"

    def __repr__(self):
        return f"<Order {self.order_number} status={self.status}>"


class OrderItem(Base):
    """Order line items (snapshot at order time)."""

    __tablename__ = "market_order_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("market_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    variant_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    # Snapshot at order time (products may change)
    product_title: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    line_total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    __table_args__ = (
        CheckConstraint("quantity > 0", name="order_item_positive_quantity"),
        CheckConstraint(
            "unit_price >= 0 AND line_total >= 0",
            name="order_item_amounts_non_negative",
        ),
    )

    order = relationship("Order", back_populates="items")

    def __repr__(self):
        return f"<OrderItem {self.product_title} qty={self.quantity}>"
