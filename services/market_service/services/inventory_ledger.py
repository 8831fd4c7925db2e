"""Inventory ledger: atomic stock reservation, release and adjustment.

Counters change through conditional UPDATE statements so the database
serializes competing writers on the row. Fulfilment is the one read before
write: it reads the reserved count under a row lock and its UPDATE is still
guarded on that count. None of these functions commit: they run inside the
caller's unit of work.
"""

import uuid
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.market_service.errors import (
    InsufficientStockError,
    InventoryNotFoundError,
    ValidationError,
)
from services.market_service.models import (
    InventoryItem,
    InventoryMovement,
    InventoryMovementType,
)
from sqlalchemy import and_, case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _stock_key(product_id: uuid.UUID, variant_id: Optional[uuid.UUID]):
    variant_clause = (
        InventoryItem.variant_id.is_(None)
        if variant_id is None
        else InventoryItem.variant_id == variant_id
    )
    return and_(InventoryItem.product_id == product_id, variant_clause)


def _require_positive(quantity: int) -> None:
    if quantity <= 0:
        raise ValidationError(f"Quantity must be positive, got {quantity}")


def _record_movement(
    db: AsyncSession,
    *,
    product_id: uuid.UUID,
    variant_id: Optional[uuid.UUID],
    movement_type: InventoryMovementType,
    quantity: int,
    reference_type: Optional[str] = None,
    reference_id: Optional[uuid.UUID] = None,
    notes: Optional[str] = None,
    performed_by: Optional[str] = None,
) -> InventoryMovement:
    movement = InventoryMovement(
        product_id=product_id,
        variant_id=variant_id,
        movement_type=movement_type,
        quantity=quantity,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
        performed_by=performed_by,
    )
    db.add(movement)
    return movement


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def get_stock_level(
    db: AsyncSession,
    product_id: uuid.UUID,
    *,
    variant_id: Optional[uuid.UUID] = None,
) -> InventoryItem:
    """Return the current inventory record, freshly read from the database."""
    result = await db.execute(
        select(InventoryItem)
        .where(_stock_key(product_id, variant_id))
        .execution_options(populate_existing=True)
    )
    item = result.scalar_one_or_none()
    if not item:
        raise InventoryNotFoundError(product_id, variant_id)
    return item


# ---------------------------------------------------------------------------
# Reservation
# ---------------------------------------------------------------------------


async def reserve(
    db: AsyncSession,
    product_id: uuid.UUID,
    quantity: int,
    *,
    variant_id: Optional[uuid.UUID] = None,
    reference_id: Optional[uuid.UUID] = None,
) -> None:
    """Hold ``quantity`` units, or raise ``InsufficientStockError``.

    A product without an inventory record has nothing available.
    """
    _require_positive(quantity)

    result = await db.execute(
        update(InventoryItem)
        .where(
            _stock_key(product_id, variant_id),
            InventoryItem.quantity_on_hand - InventoryItem.quantity_reserved
            >= quantity,
        )
        .values(
            quantity_reserved=InventoryItem.quantity_reserved + quantity,
            updated_at=utc_now(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.warning(
            "Reservation rejected: product %s variant %s wanted %d",
            product_id,
            variant_id,
            quantity,
        )
        raise InsufficientStockError(product_id, quantity, variant_id)

    _record_movement(
        db,
        product_id=product_id,
        variant_id=variant_id,
        movement_type=InventoryMovementType.RESERVATION,
        quantity=quantity,
        reference_type="order" if reference_id else None,
        reference_id=reference_id,
    )
    logger.info("Reserved %d of product %s", quantity, product_id)


async def release(
    db: AsyncSession,
    product_id: uuid.UUID,
    quantity: int,
    *,
    variant_id: Optional[uuid.UUID] = None,
    reference_id: Optional[uuid.UUID] = None,
) -> None:
    """Return ``quantity`` reserved units to available stock.

    The reserved count never drops below zero, so a repeated release is
    harmless to the ledger.
    """
    _require_positive(quantity)

    result = await db.execute(
        update(InventoryItem)
        .where(_stock_key(product_id, variant_id))
        .values(
            quantity_reserved=case(
                (
                    InventoryItem.quantity_reserved >= quantity,
                    InventoryItem.quantity_reserved - quantity,
                ),
                else_=0,
            ),
            updated_at=utc_now(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.warning(
            "Release skipped: no inventory record for product %s variant %s",
            product_id,
            variant_id,
        )
        return

    _record_movement(
        db,
        product_id=product_id,
        variant_id=variant_id,
        movement_type=InventoryMovementType.RELEASE,
        quantity=-quantity,
        reference_type="order" if reference_id else None,
        reference_id=reference_id,
    )
    logger.info("Released %d of product %s", quantity, product_id)


async def fulfill(
    db: AsyncSession,
    product_id: uuid.UUID,
    quantity: int,
    *,
    variant_id: Optional[uuid.UUID] = None,
    reference_id: Optional[uuid.UUID] = None,
) -> None:
    """Ship reserved units: they leave both the reserved and on-hand counts.

    At most the reserved count ships, so the ledger invariant holds even if
    part of the reservation was already released. The recorded movement is
    the amount actually shipped.
    """
    _require_positive(quantity)

    locked = await db.execute(
        select(InventoryItem.quantity_reserved)
        .where(_stock_key(product_id, variant_id))
        .with_for_update()
    )
    reserved = locked.scalar_one_or_none()
    if reserved is None:
        logger.warning(
            "Fulfilment skipped: no inventory record for product %s variant %s",
            product_id,
            variant_id,
        )
        return

    shipped = min(quantity, reserved)
    if shipped < quantity:
        logger.warning(
            "Fulfilment of product %s short: %d requested, %d reserved",
            product_id,
            quantity,
            reserved,
        )
    if shipped == 0:
        return

    result = await db.execute(
        update(InventoryItem)
        .where(
            _stock_key(product_id, variant_id),
            InventoryItem.quantity_reserved >= shipped,
        )
        .values(
            quantity_on_hand=InventoryItem.quantity_on_hand - shipped,
            quantity_reserved=InventoryItem.quantity_reserved - shipped,
            last_sold_at=utc_now(),
            updated_at=utc_now(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InsufficientStockError(product_id, shipped, variant_id)

    _record_movement(
        db,
        product_id=product_id,
        variant_id=variant_id,
        movement_type=InventoryMovementType.SALE,
        quantity=-shipped,
        reference_type="order" if reference_id else None,
        reference_id=reference_id,
    )
    logger.info("Fulfilled %d of product %s", shipped, product_id)


# ---------------------------------------------------------------------------
# Administrative adjustments
# ---------------------------------------------------------------------------


async def adjust_stock(
    db: AsyncSession,
    product_id: uuid.UUID,
    delta: int,
    reason: str,
    *,
    variant_id: Optional[uuid.UUID] = None,
    performed_by: Optional[str] = None,
) -> InventoryItem:
    """Change on-hand stock by ``delta`` (restock, write-off, correction).

    Reserved stock is untouched; an adjustment that would leave fewer units
    on hand than are reserved is rejected.
    """
    if delta == 0:
        raise ValidationError("Stock adjustment must be non-zero")

    existing = await db.execute(
        select(InventoryItem.id).where(_stock_key(product_id, variant_id))
    )
    if existing.scalar_one_or_none() is None:
        if delta < 0:
            raise ValidationError(
                f"Cannot reduce stock below zero for product {product_id}"
            )
        db.add(
            InventoryItem(
                product_id=product_id,
                variant_id=variant_id,
                quantity_on_hand=0,
                quantity_reserved=0,
            )
        )
        await db.flush()

    values = {
        "quantity_on_hand": InventoryItem.quantity_on_hand + delta,
        "updated_at": utc_now(),
    }
    if delta > 0:
        values["last_restock_at"] = utc_now()

    result = await db.execute(
        update(InventoryItem)
        .where(
            _stock_key(product_id, variant_id),
            InventoryItem.quantity_on_hand + delta >= InventoryItem.quantity_reserved,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ValidationError(
            f"Adjustment of {delta} would leave product {product_id} "
            "with less stock than is reserved"
        )

    _record_movement(
        db,
        product_id=product_id,
        variant_id=variant_id,
        movement_type=(
            InventoryMovementType.RESTOCK if delta > 0 else InventoryMovementType.ADJUSTMENT
        ),
        quantity=delta,
        reference_type="manual",
        notes=reason,
        performed_by=performed_by,
    )
    logger.info(
        "Adjusted product %s stock by %d (%s) by %s",
        product_id,
        delta,
        reason,
        performed_by or "system",
    )
    return await get_stock_level(db, product_id, variant_id=variant_id)
