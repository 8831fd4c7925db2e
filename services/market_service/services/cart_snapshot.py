"""Read-only, fully priced snapshots of a cart.

Line prices in a snapshot are the catalog prices at the moment it is taken,
not the prices stored when the items were added; both are kept so checkout
can tell how far they have drifted.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import ensure_utc, utc_now
from services.market_service.errors import CartNotFoundError
from services.market_service.models import Cart, CartItem, CartStatus
from services.market_service.services.pricing import quantize_money
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload


@dataclass(frozen=True)
class SnapshotLine:
    item_id: uuid.UUID
    product_id: uuid.UUID
    variant_id: Optional[uuid.UUID]
    title: str
    quantity: int
    unit_price: Decimal
    added_unit_price: Decimal
    line_total: Decimal

    @property
    def stock_key(self) -> tuple[str, str]:
        return (str(self.product_id), str(self.variant_id or ""))


@dataclass(frozen=True)
class CartSnapshot:
    cart_id: uuid.UUID
    owner_id: Optional[str]
    guest_token: Optional[str]
    items: tuple[SnapshotLine, ...]
    subtotal: Decimal
    total_item_count: int
    # Cart version seen by the snapshot; checkout converts only this version
    updated_at: datetime

    @property
    def is_empty(self) -> bool:
        return not self.items


def is_cart_live(cart: Cart) -> bool:
    """Active and not past its expiry."""
    if cart.status != CartStatus.ACTIVE:
        return False
    return ensure_utc(cart.expires_at) > utc_now()


async def snapshot(
    db: AsyncSession, cart_id: uuid.UUID, *, for_update: bool = False
) -> CartSnapshot:
    """Snapshot a live cart, or raise ``CartNotFoundError``.

    With ``for_update`` the cart row stays locked until the caller's
    transaction ends, so cart edits wait for the checkout to finish.
    """
    query = (
        select(Cart)
        .where(Cart.id == cart_id)
        .options(selectinload(Cart.items).selectinload(CartItem.product))
    )
    if for_update:
        query = query.with_for_update(of=Cart)
    result = await db.execute(query.execution_options(populate_existing=True))
    cart = result.scalar_one_or_none()
    if not cart or not is_cart_live(cart):
        raise CartNotFoundError(cart_id)

    lines = []
    for item in cart.items:
        price = item.product.price
        lines.append(
            SnapshotLine(
                item_id=item.id,
                product_id=item.product_id,
                variant_id=item.variant_id,
                title=item.product.title,
                quantity=item.quantity,
                unit_price=price,
                added_unit_price=item.unit_price,
                line_total=quantize_money(price * item.quantity),
            )
        )

    return CartSnapshot(
        cart_id=cart.id,
        owner_id=cart.owner_id,
        guest_token=cart.guest_token,
        items=tuple(lines),
        subtotal=quantize_money(sum((line.line_total for line in lines), Decimal("0"))),
        total_item_count=sum(line.quantity for line in lines),
        updated_at=cart.updated_at,
    )
