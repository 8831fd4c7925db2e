"""FastAPI application for the Market Service."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from libs.common.logging import get_logger
from libs.common.middleware import add_observability_middleware
from services.market_service.errors import MarketError
from services.market_service.routers import (
    admin_inventory_router,
    admin_orders_router,
    cart_router,
    orders_router,
)

logger = get_logger(__name__)


async def market_error_handler(request: Request, exc: MarketError) -> JSONResponse:
    """Translate core errors into ``{"detail", "code"}`` responses."""
    headers = {"Retry-After": "1"} if exc.retryable else None
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", exc.code, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
        headers=headers,
    )


def create_app() -> FastAPI:
    """Create and configure the Market Service FastAPI app."""
    app = FastAPI(
        title="Market Service",
        version="0.1.0",
        description="Marketplace carts, checkout, stock reservation and orders.",
    )
    add_observability_middleware(app)
    app.add_exception_handler(MarketError, market_error_handler)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "market"}

    # Buyer routes (cart, checkout, orders)
    app.include_router(cart_router, prefix="/market")
    app.include_router(orders_router, prefix="/market")

    # Admin routes (order management, inventory)
    app.include_router(admin_orders_router, prefix="/admin/market")
    app.include_router(admin_inventory_router, prefix="/admin/market")

    return app


app = create_app()
