"""Market orders router: checkout, order history and buyer cancellation."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.market_service.models import OrderStatus
from services.market_service.schemas import (
    OrderCreate,
    OrderListResponse,
    OrderResponse,
    OrderStatisticsResponse,
    SortDirection,
    SortField,
)
from services.market_service.services import order_service
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["market"])


# ============================================================================
# CHECKOUT
# ============================================================================


@router.post(
    "/orders", response_model=OrderResponse, status_code=status.HTTP_201_CREATED
)
async def create_order(
    order_in: OrderCreate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Check out a cart: price it, reserve stock and create a pending order."""
    billing = order_in.billing_address or order_in.shipping_address
    return await order_service.create_order(
        db,
        owner_id=current_user.user_id,
        cart_id=order_in.cart_id,
        shipping_address=order_in.shipping_address.model_dump(),
        billing_address=billing.model_dump(),
        notes=order_in.notes,
    )


# ============================================================================
# ORDER HISTORY
# ============================================================================


@router.get("/orders", response_model=OrderListResponse)
async def list_my_orders(
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    sort_by: SortField = "created_at",
    sort_direction: SortDirection = "desc",
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """List the caller's orders."""
    orders, total = await order_service.list_orders(
        db,
        owner_id=current_user.user_id,
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
async def get_my_order_statistics(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Order counts and spend for the caller."""
    stats = await order_service.get_order_statistics(
        db, owner_id=current_user.user_id
    )
    return OrderStatisticsResponse.model_validate(stats)


@router.get("/orders/{order_id}", response_model=OrderResponse)
async def get_my_order(
    order_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Get one of the caller's orders."""
    return await order_service.get_order(db, order_id, owner_id=current_user.user_id)


@router.post("/orders/{order_id}/cancel", response_model=OrderResponse)
async def cancel_my_order(
    order_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Cancel a pending order and release its stock."""
    return await order_service.cancel_order(
        db, order_id=order_id, owner_id=current_user.user_id
    )
