"""Cart lifecycle: lazy creation, line item edits, guest merge and expiry."""

import uuid
from datetime import timedelta
from decimal import Decimal
from typing import Optional

from libs.common.config import get_settings
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.market_service.errors import (
    CartItemNotFoundError,
    CartNotFoundError,
    InsufficientStockError,
    ProductUnavailableError,
    ValidationError,
)
from services.market_service.models import Cart, CartItem, CartStatus, InventoryItem
from services.market_service.services import catalog
from services.market_service.services.cart_snapshot import is_cart_live
from services.market_service.services.unit_of_work import atomic
from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _expiry():
    return utc_now() + timedelta(minutes=get_settings().CART_EXPIRY_MINUTES)


def cart_subtotal(cart: Cart) -> Decimal:
    """Sum of line totals at the prices stored on the lines."""
    return sum((item.line_total for item in cart.items), Decimal("0"))


async def load_cart(db: AsyncSession, cart_id: uuid.UUID) -> Cart:
    """Load a cart with its items and their products."""
    result = await db.execute(
        select(Cart)
        .where(Cart.id == cart_id)
        .options(selectinload(Cart.items).selectinload(CartItem.product))
        .execution_options(populate_existing=True)
    )
    cart = result.scalar_one_or_none()
    if not cart:
        raise CartNotFoundError(cart_id)
    return cart


async def _find_active_cart(db: AsyncSession, *criteria) -> Optional[Cart]:
    result = await db.execute(
        select(Cart)
        .where(*criteria, Cart.status == CartStatus.ACTIVE)
        .order_by(Cart.created_at.desc())
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def _available_quantity(
    db: AsyncSession, product_id: uuid.UUID, variant_id: Optional[uuid.UUID]
) -> int:
    variant_clause = (
        InventoryItem.variant_id.is_(None)
        if variant_id is None
        else InventoryItem.variant_id == variant_id
    )
    result = await db.execute(
        select(
            InventoryItem.quantity_on_hand - InventoryItem.quantity_reserved
        ).where(and_(InventoryItem.product_id == product_id, variant_clause))
    )
    return result.scalar_one_or_none() or 0


def _find_line(
    cart: Cart, product_id: uuid.UUID, variant_id: Optional[uuid.UUID]
) -> Optional[CartItem]:
    for item in cart.items:
        if item.product_id == product_id and item.variant_id == variant_id:
            return item
    return None


async def _lock_cart(db: AsyncSession, cart_id: uuid.UUID) -> None:
    """Hold the cart row until the transaction ends; checkout takes the same lock."""
    await db.execute(select(Cart.id).where(Cart.id == cart_id).with_for_update())


# ---------------------------------------------------------------------------
# Cart lookup / creation
# ---------------------------------------------------------------------------


async def get_or_create_cart(
    db: AsyncSession,
    *,
    owner_id: Optional[str] = None,
    guest_token: Optional[str] = None,
) -> Cart:
    """Return the caller's live cart, creating one on first use.

    Authenticated callers are keyed by ``owner_id``; anonymous callers by
    ``guest_token``. An active cart found past its expiry is marked
    expired and replaced.
    """
    if owner_id:
        criteria = (Cart.owner_id == owner_id,)
    elif guest_token:
        criteria = (Cart.guest_token == guest_token, Cart.owner_id.is_(None))
    else:
        raise ValidationError("Guest token required for anonymous carts")

    async with atomic(db):
        cart = await _find_active_cart(db, *criteria)
        if cart and not is_cart_live(cart):
            cart.status = CartStatus.EXPIRED
            await db.flush()
            logger.info("Cart %s expired", cart.id)
            cart = None

        if not cart:
            cart = Cart(
                owner_id=owner_id,
                guest_token=None if owner_id else guest_token,
                expires_at=_expiry(),
            )
            db.add(cart)
            await db.flush()
            logger.info(
                "Created cart %s for %s",
                cart.id,
                f"owner {owner_id}" if owner_id else "guest",
            )
        cart_id = cart.id

    return await load_cart(db, cart_id)


# ---------------------------------------------------------------------------
# Line items
# ---------------------------------------------------------------------------


async def add_item(
    db: AsyncSession,
    cart: Cart,
    *,
    product_id: uuid.UUID,
    quantity: int,
    variant_id: Optional[uuid.UUID] = None,
) -> Cart:
    """Add ``quantity`` of a product, merging into an existing line."""
    if quantity <= 0:
        raise ValidationError("Quantity must be at least 1")

    async with atomic(db):
        await _lock_cart(db, cart.id)
        product = await catalog.get_product(db, product_id)
        if not product.is_sellable:
            raise ProductUnavailableError(product_id, product.status.value)

        existing = _find_line(cart, product_id, variant_id)
        new_quantity = quantity + (existing.quantity if existing else 0)

        available = await _available_quantity(db, product_id, variant_id)
        if available < new_quantity:
            raise InsufficientStockError(product_id, new_quantity, variant_id)

        if existing:
            existing.quantity = new_quantity
        else:
            db.add(
                CartItem(
                    cart_id=cart.id,
                    product_id=product_id,
                    variant_id=variant_id,
                    quantity=quantity,
                    unit_price=product.price,
                )
            )
        cart.expires_at = _expiry()
        cart.updated_at = utc_now()

    return await load_cart(db, cart.id)


async def update_item(
    db: AsyncSession, cart: Cart, item_id: uuid.UUID, *, quantity: int
) -> Cart:
    """Set a line's quantity."""
    if quantity <= 0:
        raise ValidationError("Quantity must be at least 1")

    item = next((line for line in cart.items if line.id == item_id), None)
    if not item:
        raise CartItemNotFoundError(item_id)

    async with atomic(db):
        await _lock_cart(db, cart.id)
        available = await _available_quantity(db, item.product_id, item.variant_id)
        if available < quantity:
            raise InsufficientStockError(item.product_id, quantity, item.variant_id)
        item.quantity = quantity
        cart.expires_at = _expiry()
        cart.updated_at = utc_now()

    return await load_cart(db, cart.id)


async def remove_item(db: AsyncSession, cart: Cart, item_id: uuid.UUID) -> Cart:
    item = next((line for line in cart.items if line.id == item_id), None)
    if not item:
        raise CartItemNotFoundError(item_id)

    async with atomic(db):
        await _lock_cart(db, cart.id)
        cart.items.remove(item)
        cart.updated_at = utc_now()

    return await load_cart(db, cart.id)


async def clear_cart(db: AsyncSession, cart: Cart) -> Cart:
    async with atomic(db):
        await _lock_cart(db, cart.id)
        cart.items.clear()
        cart.updated_at = utc_now()

    logger.info("Cleared cart %s", cart.id)
    return await load_cart(db, cart.id)


# ---------------------------------------------------------------------------
# Guest merge
# ---------------------------------------------------------------------------


async def merge_guest_cart(
    db: AsyncSession, *, owner_id: str, guest_token: str
) -> Cart:
    """Fold a guest cart into the owner's cart after sign-in.

    Quantities of lines present in both are added together, capped at the
    stock currently available; a guest line with nothing available is
    dropped. The guest cart is marked abandoned so it cannot be reused. A
    guest cart past its expiry is marked expired and not merged.
    """
    owner_cart = await get_or_create_cart(db, owner_id=owner_id)

    async with atomic(db):
        guest_cart = await _find_active_cart(
            db, Cart.guest_token == guest_token, Cart.owner_id.is_(None)
        )
        if not guest_cart or guest_cart.id == owner_cart.id:
            return owner_cart
        if not is_cart_live(guest_cart):
            guest_cart.status = CartStatus.EXPIRED
            logger.info("Guest cart %s expired before merge", guest_cart.id)
            return owner_cart

        await _lock_cart(db, owner_cart.id)
        await _lock_cart(db, guest_cart.id)
        guest_cart = await load_cart(db, guest_cart.id)

        merged = 0
        for guest_item in guest_cart.items:
            existing = _find_line(owner_cart, guest_item.product_id, guest_item.variant_id)
            current = existing.quantity if existing else 0
            available = await _available_quantity(
                db, guest_item.product_id, guest_item.variant_id
            )
            quantity = min(current + guest_item.quantity, available)
            if quantity < current + guest_item.quantity:
                logger.info(
                    "Merge capped product %s at %d available (wanted %d)",
                    guest_item.product_id,
                    available,
                    current + guest_item.quantity,
                )
            if quantity <= current:
                continue

            if existing:
                existing.quantity = quantity
            else:
                owner_cart.items.append(
                    CartItem(
                        product_id=guest_item.product_id,
                        variant_id=guest_item.variant_id,
                        quantity=quantity,
                        unit_price=guest_item.unit_price,
                    )
                )
            merged += 1

        guest_cart.status = CartStatus.ABANDONED
        owner_cart.expires_at = _expiry()
        owner_cart.updated_at = utc_now()

    logger.info(
        "Merged %d line(s) from guest cart %s into cart %s",
        merged,
        guest_cart.id,
        owner_cart.id,
    )
    return await load_cart(db, owner_cart.id)
