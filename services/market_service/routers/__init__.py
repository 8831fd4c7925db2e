"""Market service routers package."""

from services.market_service.routers.admin_inventory import (
    router as admin_inventory_router,
)
from services.market_service.routers.admin_orders import router as admin_orders_router
from services.market_service.routers.cart import router as cart_router
from services.market_service.routers.orders import router as orders_router

__all__ = [
    "admin_inventory_router",
    "admin_orders_router",
    "cart_router",
    "orders_router",
]
