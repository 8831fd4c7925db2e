"""Pydantic schemas for market service."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from services.market_service.models import CartStatus, OrderStatus

# ============================================================================
# ADDRESS SCHEMAS
# ============================================================================


class Address(BaseModel):
    """Postal address copied onto an order at checkout."""

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    company: Optional[str] = Field(None, max_length=255)
    address_line1: str = Field(..., min_length=1, max_length=255)
    address_line2: Optional[str] = Field(None, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    postal_code: str = Field(..., min_length=1, max_length=20)
    country: str = Field(..., min_length=2, max_length=2, description="ISO 3166 alpha-2")
    phone: Optional[str] = Field(None, max_length=50)

    @field_validator("country")
    @classmethod
    def upper_country(cls, v: str) -> str:
        return v.upper()


# ============================================================================
# CART SCHEMAS
# ============================================================================


class CartItemCreate(BaseModel):
    product_id: uuid.UUID
    variant_id: Optional[uuid.UUID] = None
    quantity: int = Field(1, ge=1)


class CartItemUpdate(BaseModel):
    quantity: int = Field(..., ge=1)


class CartMergeRequest(BaseModel):
    guest_token: str = Field(..., min_length=1, max_length=255)


class CartItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    product_id: uuid.UUID
    variant_id: Optional[uuid.UUID]
    quantity: int
    unit_price: Decimal
    line_total: Decimal

    # Enriched from product
    product_title: Optional[str] = None
    current_price: Optional[Decimal] = None


class CartResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    owner_id: Optional[str]
    guest_token: Optional[str]
    status: CartStatus
    expires_at: datetime
    created_at: datetime
    updated_at: datetime

    items: list[CartItemResponse] = []

    # Calculated totals
    item_count: int = 0
    subtotal: Decimal = Decimal("0")


# ============================================================================
# ORDER SCHEMAS
# ============================================================================


class OrderCreate(BaseModel):
    """Checkout request."""

    cart_id: uuid.UUID
    shipping_address: Address
    billing_address: Optional[Address] = None  # Defaults to the shipping address
    notes: Optional[str] = Field(None, max_length=1000)


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    product_id: uuid.UUID
    variant_id: Optional[uuid.UUID]
    product_title: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    order_number: str
    owner_id: str
    status: OrderStatus

    subtotal: Decimal
    tax_amount: Decimal
    shipping_cost: Decimal
    discount_amount: Decimal
    total_amount: Decimal

    shipping_address: dict
    billing_address: dict
    payment_id: Optional[str]
    tracking_number: Optional[str]
    notes: Optional[str]

    item_count: int
    total_quantity: int
    items: list[OrderItemResponse] = []

    processed_at: Optional[datetime]
    shipped_at: Optional[datetime]
    delivered_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime


SortField = Literal["created_at", "updated_at", "total_amount"]
SortDirection = Literal["asc", "desc"]


class OrderListResponse(BaseModel):
    """Paginated order list."""

    items: list[OrderResponse]
    total: int
    page: int
    page_size: int


class OrderStatusUpdate(BaseModel):
    """Update order status (admin)."""

    status: OrderStatus
    notes: Optional[str] = Field(None, max_length=1000)
    tracking_number: Optional[str] = Field(None, max_length=100)


class OrderStatisticsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_orders: int
    total_revenue: Decimal
    total_items: int
    average_order_value: Decimal
    status_counts: dict[str, int]


# ============================================================================
# INVENTORY SCHEMAS
# ============================================================================


class InventoryItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    product_id: uuid.UUID
    variant_id: Optional[uuid.UUID]
    quantity_on_hand: int
    quantity_reserved: int
    quantity_available: int
    low_stock_threshold: int
    is_low_stock: bool
    last_restock_at: Optional[datetime]
    last_sold_at: Optional[datetime]


class InventoryAdjustment(BaseModel):
    """Adjust inventory (restock, write-off, correction)."""

    quantity: int = Field(..., description="Positive to add, negative to subtract")
    reason: str = Field(..., min_length=1, max_length=255)
    variant_id: Optional[uuid.UUID] = None

    @field_validator("quantity")
    @classmethod
    def non_zero(cls, v: int) -> int:
        if v == 0:
            raise ValueError("quantity must be non-zero")
        return v


# ============================================================================
# ERROR SCHEMAS
# ============================================================================


class ErrorResponse(BaseModel):
    detail: str
    code: str
