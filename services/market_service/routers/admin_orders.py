"""Admin market orders router: order oversight and fulfilment status."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from libs.auth.dependencies import require_admin
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.market_service.models import OrderStatus
from services.market_service.schemas import (
    OrderListResponse,
    OrderResponse,
    OrderStatisticsResponse,
    OrderStatusUpdate,
    SortDirection,
    SortField,
)
from services.market_service.services import order_service
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["admin-market"])


@router.get("/orders", response_model=OrderListResponse)
async def list_all_orders(
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    owner_id: Optional[str] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    sort_by: SortField = "created_at",
    sort_direction: SortDirection = "desc",
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """List all orders."""
    orders, total = await order_service.list_orders(
        db,
        owner_id=owner_id,
        status=status_filter,
        search=search,
        page=page,
        page_size=page_size,
        sort_by=sort_by,
        sort_direction=sort_direction,
    )
    return OrderListResponse(
        items=[OrderResponse.model_validate(o) for o in orders],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/orders/statistics", response_model=OrderStatisticsResponse)
async def get_order_statistics(
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Marketplace-wide order counts and revenue."""
    stats = await order_service.get_order_statistics(db)
    return OrderStatisticsResponse.model_validate(stats)


@router.get("/orders/{order_id}", response_model=OrderResponse)
async def get_order_admin(
    order_id: uuid.UUID,
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Get order detail (admin)."""
    return await order_service.get_order(db, order_id)


@router.patch("/orders/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: uuid.UUID,
    status_update: OrderStatusUpdate,
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Move an order along its lifecycle."""
    return await order_service.update_order_status(
        db,
        order_id=order_id,
        new_status=status_update.status,
        notes=status_update.notes,
        tracking_number=status_update.tracking_number,
        performed_by=current_user.user_id,
    )
