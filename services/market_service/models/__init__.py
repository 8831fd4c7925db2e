"""Market Service models package."""

from services.market_service.models.catalog import Product
from services.market_service.models.commerce import Cart, CartItem, Order, OrderItem
from services.market_service.models.enums import (
    CartStatus,
    InventoryMovementType,
    OrderStatus,
    ProductStatus,
)
from services.market_service.models.inventory import InventoryItem, InventoryMovement

__all__ = [
    "Cart",
    "CartItem",
    "CartStatus",
    "InventoryItem",
    "InventoryMovement",
    "InventoryMovementType",
    "Order",
    "OrderItem",
    "OrderStatus",
    "Product",
    "ProductStatus",
]
