"""Order orchestration: checkout, cancellation, status changes and reporting.

Checkout turns a live cart into an immutable order in one unit of work:
the order, its items, every stock reservation and the cart conversion
commit together or not at all.
"""

import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Mapping, Optional

from libs.common.config import get_settings
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.market_service.errors import (
    CartChangedError,
    CartNotFoundError,
    EmptyCartError,
    ForbiddenError,
    InvalidTransitionError,
    OrderNotFoundError,
    PriceChangedError,
    ProductUnavailableError,
    ValidationError,
)
from services.market_service.models import (
    Cart,
    CartItem,
    CartStatus,
    Order,
    OrderItem,
    OrderStatus,
    Product,
)
from services.market_service.services import cart_snapshot, catalog, inventory_ledger
from services.market_service.services.cart_snapshot import CartSnapshot, SnapshotLine
from services.market_service.services.order_status import (
    INITIAL_STATUS,
    RESERVING_STATUSES,
    ensure_transition,
)
from services.market_service.services.pricing import (
    PricingEngine,
    get_pricing_engine,
    quantize_money,
)
from services.market_service.services.unit_of_work import atomic
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

logger = get_logger(__name__)

SORTABLE_COLUMNS = {
    "created_at": Order.created_at,
    "updated_at": Order.updated_at,
    "total_amount": Order.total_amount,
}
MAX_PAGE_SIZE = 100

# Timestamp column stamped when an order enters each status
STATUS_TIMESTAMPS = {
    OrderStatus.PROCESSING: "processed_at",
    OrderStatus.SHIPPED: "shipped_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.CANCELLED: "cancelled_at",
}


@dataclass(frozen=True)
class OrderStatistics:
    total_orders: int
    total_revenue: Decimal
    total_items: int
    average_order_value: Decimal
    status_counts: dict[str, int] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def price_drift(snapshot_price: Decimal, live_price: Decimal) -> Decimal:
    """Relative change from the snapshot price to the live price."""
    if snapshot_price == 0:
        return Decimal("0") if live_price == 0 else Decimal("Infinity")
    return (Decimal(live_price) - Decimal(snapshot_price)) / Decimal(snapshot_price)


def check_line(line: SnapshotLine, product: Product, tolerance: Decimal) -> None:
    """Reject a line whose product is off sale or whose price moved too far."""
    if not product.is_sellable:
        raise ProductUnavailableError(product.id, product.status.value)
    if abs(price_drift(line.unit_price, product.price)) > tolerance:
        logger.warning(
            "Price drift on product %s: snapshot %s, live %s",
            product.id,
            line.unit_price,
            product.price,
        )
        raise PriceChangedError(product.id, line.unit_price, product.price)


def _escape_like(term: str) -> str:
    """Make LIKE wildcards in user input match literally."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


async def _load_order(
    db: AsyncSession, order_id: uuid.UUID, *, for_update: bool = False
) -> Optional[Order]:
    query = (
        select(Order)
        .where(Order.id == order_id)
        .options(selectinload(Order.items))
        .execution_options(populate_existing=True)
    )
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def _convert_cart(db: AsyncSession, snap: CartSnapshot) -> None:
    """Mark the snapshotted cart converted and drop exactly its lines.

    The status guard means a cart can back at most one order even when two
    checkouts of it race. The ``updated_at`` guard and the line count reject
    a cart edited after the snapshot was taken.
    """
    cart_id = snap.cart_id
    result = await db.execute(
        update(Cart)
        .where(
            Cart.id == cart_id,
            Cart.status == CartStatus.ACTIVE,
            Cart.updated_at == snap.updated_at,
        )
        .values(status=CartStatus.CONVERTED, updated_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        current = await db.execute(select(Cart.status).where(Cart.id == cart_id))
        if current.scalar_one_or_none() == CartStatus.ACTIVE:
            raise CartChangedError(cart_id)
        raise CartNotFoundError(cart_id)

    deleted = await db.execute(
        delete(CartItem)
        .where(CartItem.cart_id == cart_id)
        .execution_options(synchronize_session=False)
    )
    if deleted.rowcount != len(snap.items):
        logger.warning(
            "Cart %s held %d line(s) at conversion, snapshot had %d",
            cart_id,
            deleted.rowcount,
            len(snap.items),
        )
        raise CartChangedError(cart_id)


async def _apply_status(
    db: AsyncSession,
    order: Order,
    target: OrderStatus,
    **values,
) -> None:
    """Write ``target`` only if the row still holds the status we validated."""
    now = utc_now()
    values["status"] = target
    values["updated_at"] = now
    stamp = STATUS_TIMESTAMPS.get(target)
    if stamp:
        values[stamp] = now

    result = await db.execute(
        update(Order)
        .where(Order.id == order.id, Order.status == order.status)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InvalidTransitionError(order.status.value, target.value)


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------


async def create_order(
    db: AsyncSession,
    *,
    owner_id: str,
    cart_id: uuid.UUID,
    shipping_address: Mapping,
    billing_address: Mapping,
    notes: Optional[str] = None,
    pricing: Optional[PricingEngine] = None,
) -> Order:
    """Convert a cart into a pending order with its stock reserved."""
    settings = get_settings()
    pricing = pricing or get_pricing_engine()

    async with atomic(db):
        snap = await cart_snapshot.snapshot(db, cart_id, for_update=True)
        if snap.owner_id and snap.owner_id != owner_id:
            raise ForbiddenError("Cart belongs to another user")
        if snap.is_empty:
            raise EmptyCartError(cart_id)

        # Ascending (product, variant) keeps lock acquisition order deterministic
        lines = sorted(snap.items, key=lambda line: line.stock_key)
        products = await catalog.get_products(
            db, (line.product_id for line in lines), for_update=True
        )
        for line in lines:
            check_line(line, products[line.product_id], settings.PRICE_CHANGE_TOLERANCE)

        subtotal = snap.subtotal
        tax_amount = pricing.compute_tax(subtotal, shipping_address)
        shipping_cost = pricing.compute_shipping(
            shipping_address, snap.total_item_count
        )
        discount_amount = Decimal("0.00")
        total_amount = quantize_money(
            subtotal + tax_amount + shipping_cost - discount_amount
        )

        order = Order(
            order_number=Order.generate_order_number(settings.ORDER_NUMBER_PREFIX),
            owner_id=owner_id,
            cart_id=cart_id,
            status=INITIAL_STATUS,
            subtotal=subtotal,
            tax_amount=tax_amount,
            shipping_cost=shipping_cost,
            discount_amount=discount_amount,
            total_amount=total_amount,
            shipping_address=dict(shipping_address),
            billing_address=dict(billing_address),
            notes=notes,
            items=[
                OrderItem(
                    product_id=line.product_id,
                    variant_id=line.variant_id,
                    product_title=line.title,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    line_total=line.line_total,
                )
                for line in lines
            ],
        )
        db.add(order)
        await db.flush()

        for line in lines:
            await inventory_ledger.reserve(
                db,
                line.product_id,
                line.quantity,
                variant_id=line.variant_id,
                reference_id=order.id,
            )

        await _convert_cart(db, snap)
        order_id = order.id

    logger.info(
        "Created order %s for %s from cart %s (%d items, total %s)",
        order.order_number,
        owner_id,
        cart_id,
        len(lines),
        total_amount,
    )
    return await get_order(db, order_id)


# ---------------------------------------------------------------------------
# Status changes
# ---------------------------------------------------------------------------


async def cancel_order(
    db: AsyncSession, *, order_id: uuid.UUID, owner_id: str
) -> Order:
    """Buyer cancellation. Only pending orders can be cancelled this way."""
    async with atomic(db):
        order = await _load_order(db, order_id, for_update=True)
        if not order or order.owner_id != owner_id:
            raise OrderNotFoundError(order_id)
        if order.status != OrderStatus.PENDING:
            raise InvalidTransitionError(order.status.value, OrderStatus.CANCELLED.value)
        target = ensure_transition(order.status, OrderStatus.CANCELLED)

        await _apply_status(db, order, target)
        for item in order.items:
            await inventory_ledger.release(
                db,
                item.product_id,
                item.quantity,
                variant_id=item.variant_id,
                reference_id=order.id,
            )

    logger.info("Order %s cancelled by owner %s", order.order_number, owner_id)
    return await get_order(db, order_id)


async def update_order_status(
    db: AsyncSession,
    *,
    order_id: uuid.UUID,
    new_status: OrderStatus,
    notes: Optional[str] = None,
    tracking_number: Optional[str] = None,
    performed_by: Optional[str] = None,
) -> Order:
    """Operator status change, gated by the transition table.

    Cancelling releases the order's reservations; shipping turns them into
    sales.
    """
    async with atomic(db):
        order = await _load_order(db, order_id, for_update=True)
        if not order:
            raise OrderNotFoundError(order_id)
        previous = order.status
        target = ensure_transition(previous, new_status)

        values = {}
        if notes is not None:
            values["notes"] = notes
        if tracking_number is not None:
            values["tracking_number"] = tracking_number
        await _apply_status(db, order, target, **values)

        if target == OrderStatus.CANCELLED and previous in RESERVING_STATUSES:
            for item in order.items:
                await inventory_ledger.release(
                    db,
                    item.product_id,
                    item.quantity,
                    variant_id=item.variant_id,
                    reference_id=order.id,
                )
        elif target == OrderStatus.SHIPPED:
            for item in order.items:
                await inventory_ledger.fulfill(
                    db,
                    item.product_id,
                    item.quantity,
                    variant_id=item.variant_id,
                    reference_id=order.id,
                )

    logger.info(
        "Order %s status %s -> %s by %s",
        order.order_number,
        previous.value,
        target.value,
        performed_by or "system",
    )
    return await get_order(db, order_id)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def get_order(
    db: AsyncSession, order_id: uuid.UUID, *, owner_id: Optional[str] = None
) -> Order:
    """Load an order with its items. Pass ``owner_id`` to scope to a buyer."""
    order = await _load_order(db, order_id)
    if not order or (owner_id is not None and order.owner_id != owner_id):
        raise OrderNotFoundError(order_id)
    return order


async def list_orders(
    db: AsyncSession,
    *,
    owner_id: Optional[str] = None,
    status: Optional[OrderStatus] = None,
    search: Optional[str] = None,
    page: int = 1,
    page_size: int = 20,
    sort_by: str = "created_at",
    sort_direction: str = "desc",
) -> tuple[list[Order], int]:
    """Filter, sort and paginate orders. Returns ``(orders, total)``."""
    if sort_by not in SORTABLE_COLUMNS:
        raise ValidationError(
            f"Cannot sort by {sort_by!r}; use one of {', '.join(SORTABLE_COLUMNS)}"
        )
    if sort_direction not in ("asc", "desc"):
        raise ValidationError("sort_direction must be 'asc' or 'desc'")
    if page < 1 or not 1 <= page_size <= MAX_PAGE_SIZE:
        raise ValidationError(
            f"page must be >= 1 and page_size between 1 and {MAX_PAGE_SIZE}"
        )

    query = select(Order)
    if owner_id is not None:
        query = query.where(Order.owner_id == owner_id)
    if status is not None:
        query = query.where(Order.status == status)
    if search:
        pattern = f"%{_escape_like(search.strip())}%"
        query = query.where(
            or_(
                Order.order_number.ilike(pattern, escape="\\"),
                Order.notes.ilike(pattern, escape="\\"),
            )
        )

    # Count
    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar() or 0

    # Paginate
    column = SORTABLE_COLUMNS[sort_by]
    ordering = column.asc() if sort_direction == "asc" else column.desc()
    query = (
        query.options(selectinload(Order.items))
        .order_by(ordering, Order.id)
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(query)
    return list(result.scalars().all()), total


async def get_order_statistics(
    db: AsyncSession, *, owner_id: Optional[str] = None
) -> OrderStatistics:
    """Order counts and revenue. Cancelled orders are excluded from revenue."""
    scope = [] if owner_id is None else [Order.owner_id == owner_id]

    status_rows = await db.execute(
        select(Order.status, func.count(Order.id))
        .where(*scope)
        .group_by(Order.status)
    )
    status_counts = {status.value: 0 for status in OrderStatus}
    for status, count in status_rows.all():
        status_counts[OrderStatus(status).value] = count

    live = [*scope, Order.status != OrderStatus.CANCELLED]
    totals = await db.execute(
        select(
            func.count(Order.id),
            func.coalesce(func.sum(Order.total_amount), 0),
        ).where(*live)
    )
    total_orders, revenue = totals.one()
    items = await db.execute(
        select(func.coalesce(func.sum(OrderItem.quantity), 0))
        .join(Order, OrderItem.order_id == Order.id)
        .where(*live)
    )

    total_revenue = quantize_money(Decimal(str(revenue)))
    average = (
        quantize_money(total_revenue / total_orders)
        if total_orders
        else Decimal("0.00")
    )
    return OrderStatistics(
        total_orders=total_orders,
        total_revenue=total_revenue,
        total_items=int(items.scalar() or 0),
        average_order_value=average,
        status_counts=status_counts,
    )
