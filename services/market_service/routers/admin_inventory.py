"""Admin market inventory router: stock levels and adjustments."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from libs.auth.dependencies import require_admin
from libs.auth.models import AuthUser
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.market_service.schemas import InventoryAdjustment, InventoryItemResponse
from services.market_service.services import catalog, inventory_ledger
from services.market_service.services.unit_of_work import atomic
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["admin-market"])
logger = get_logger(__name__)


@router.get("/inventory/{product_id}", response_model=InventoryItemResponse)
async def get_inventory(
    product_id: uuid.UUID,
    variant_id: Optional[uuid.UUID] = Query(None),
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Current on-hand, reserved and available stock for a product."""
    return await inventory_ledger.get_stock_level(db, product_id, variant_id=variant_id)


@router.post("/inventory/{product_id}/adjust", response_model=InventoryItemResponse)
async def adjust_inventory(
    product_id: uuid.UUID,
    adjustment: InventoryAdjustment,
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Adjust inventory (restock or correction)."""
    async with atomic(db):
        await catalog.get_product(db, product_id)
        item = await inventory_ledger.adjust_stock(
            db,
            product_id,
            adjustment.quantity,
            adjustment.reason,
            variant_id=adjustment.variant_id,
            performed_by=current_user.user_id,
        )
    return item
