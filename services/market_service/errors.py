"""Exceptions raised by the market service core.

Every error carries a stable ``code`` and the HTTP ``status_code`` the API
boundary maps it to; routers never translate them by hand.
"""

import uuid
from decimal import Decimal
from typing import Optional


class MarketError(Exception):
    """Base exception for all market errors."""

    code = "market_error"
    status_code = 500
    retryable = False

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(MarketError):
    """Raised when input is well-formed but not acceptable."""

    code = "validation_error"
    status_code = 400


class NotFoundError(MarketError):
    """Raised when a requested entity does not exist (or is not the caller's)."""

    code = "not_found"
    status_code = 404


class CartNotFoundError(NotFoundError):
    """Raised when a cart is missing, expired or no longer active."""

    code = "cart_not_found"

    def __init__(self, cart_id: Optional[uuid.UUID] = None):
        self.cart_id = cart_id
        msg = "Cart not found"
        if cart_id:
            msg = f"Cart not found: {cart_id}"
        super().__init__(msg)


class CartItemNotFoundError(NotFoundError):
    code = "cart_item_not_found"

    def __init__(self, item_id: uuid.UUID):
        self.item_id = item_id
        super().__init__(f"Cart item not found: {item_id}")


class OrderNotFoundError(NotFoundError):
    code = "order_not_found"

    def __init__(self, order_id: uuid.UUID):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class ProductNotFoundError(NotFoundError):
    code = "product_not_found"

    def __init__(self, product_id: uuid.UUID):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class InventoryNotFoundError(NotFoundError):
    code = "inventory_not_found"

    def __init__(self, product_id: uuid.UUID, variant_id: Optional[uuid.UUID] = None):
        self.product_id = product_id
        self.variant_id = variant_id
        msg = f"No inventory record for product {product_id}"
        if variant_id:
            msg = f"{msg} variant {variant_id}"
        super().__init__(msg)


class UnauthorizedError(MarketError):
    """Raised when an operation needs an identified caller and has none."""

    code = "unauthorized"
    status_code = 401


class ForbiddenError(MarketError):
    """Raised when the caller is identified but does not own the resource."""

    code = "forbidden"
    status_code = 403


class EmptyCartError(MarketError):
    """Raised when checking out a cart with no line items."""

    code = "empty_cart"
    status_code = 400

    def __init__(self, cart_id: uuid.UUID):
        self.cart_id = cart_id
        super().__init__(f"Cart {cart_id} has no items")


class CartChangedError(MarketError):
    """Raised when the cart was edited while it was being checked out."""

    code = "cart_changed"
    status_code = 409

    def __init__(self, cart_id: uuid.UUID):
        self.cart_id = cart_id
        super().__init__(
            f"Cart {cart_id} changed during checkout; review it and try again"
        )


class ProductUnavailableError(MarketError):
    """Raised when a product in the cart is no longer for sale."""

    code = "product_unavailable"
    status_code = 409

    def __init__(self, product_id: uuid.UUID, status: str):
        self.product_id = product_id
        self.status = status
        super().__init__(f"Product {product_id} is not available (status: {status})")


class PriceChangedError(MarketError):
    """Raised when the live price drifted past the allowed tolerance."""

    code = "price_changed"
    status_code = 409

    def __init__(
        self, product_id: uuid.UUID, snapshot_price: Decimal, live_price: Decimal
    ):
        self.product_id = product_id
        self.snapshot_price = snapshot_price
        self.live_price = live_price
        super().__init__(
            f"Price of product {product_id} changed from {snapshot_price} "
            f"to {live_price}; review the cart before checking out"
        )


class InsufficientStockError(MarketError):
    """Raised when a reservation asks for more than is available."""

    code = "insufficient_stock"
    status_code = 409

    def __init__(
        self,
        product_id: uuid.UUID,
        requested: int,
        variant_id: Optional[uuid.UUID] = None,
    ):
        self.product_id = product_id
        self.variant_id = variant_id
        self.requested = requested
        super().__init__(
            f"Insufficient stock for product {product_id}: requested {requested}"
        )


class InvalidTransitionError(MarketError):
    """Raised when an order status change is not in the transition table."""

    code = "invalid_transition"
    status_code = 409

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot transition order from {current} to {requested}")


class InfrastructureError(MarketError):
    """Raised when the store fails mid-operation. Safe to retry."""

    code = "infrastructure_error"
    status_code = 503
    retryable = True
