"""Unit tests for cart lifecycle operations."""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from services.market_service.errors import (
    CartItemNotFoundError,
    InsufficientStockError,
    ProductUnavailableError,
    ValidationError,
)
from services.market_service.models import Cart, CartStatus, ProductStatus
from services.market_service.services import cart_service, inventory_ledger
from sqlalchemy import select
from tests.factories import seed_cart, seed_product


# ---------------------------------------------------------------------------
# get_or_create_cart
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_get_or_create_cart_is_idempotent(db_session):
    first = await cart_service.get_or_create_cart(db_session, owner_id="user-a")
    second = await cart_service.get_or_create_cart(db_session, owner_id="user-a")

    assert first.id == second.id
    assert first.status == CartStatus.ACTIVE
    assert first.items == []


@pytest.mark.asyncio
@pytest.mark.unit
async def test_guest_cart_requires_token(db_session):
    with pytest.raises(ValidationError):
        await cart_service.get_or_create_cart(db_session)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_guest_carts_are_keyed_by_token(db_session):
    cart = await cart_service.get_or_create_cart(db_session, guest_token="tok-1")
    again = await cart_service.get_or_create_cart(db_session, guest_token="tok-1")
    other = await cart_service.get_or_create_cart(db_session, guest_token="tok-2")

    assert cart.owner_id is None
    assert cart.id == again.id
    assert cart.id != other.id


@pytest.mark.asyncio
@pytest.mark.unit
async def test_expired_cart_is_replaced(db_session):
    stale = await seed_cart(
        db_session,
        owner_id="user-b",
        expires_at=datetime.now(timezone.utc) - timedelta(hours=1),
    )

    fresh = await cart_service.get_or_create_cart(db_session, owner_id="user-b")

    assert fresh.id != stale.id
    result = await db_session.execute(
        select(Cart.status).where(Cart.id == stale.id)
    )
    assert result.scalar_one() == CartStatus.EXPIRED


# ---------------------------------------------------------------------------
# Line items
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_add_item_merges_into_existing_line(db_session):
    product = await seed_product(db_session, price=Decimal("4.00"), stock=10)
    cart = await cart_service.get_or_create_cart(db_session, owner_id="user-c")

    cart = await cart_service.add_item(db_session, cart, product_id=product.id, quantity=2)
    cart = await cart_service.add_item(db_session, cart, product_id=product.id, quantity=3)

    [line] = cart.items
    assert line.quantity == 5
    assert line.unit_price == Decimal("4.00")
    assert cart_service.cart_subtotal(cart) == Decimal("20.00")


@pytest.mark.asyncio
@pytest.mark.unit
async def test_add_item_rejects_unsellable_product(db_session):
    product = await seed_product(db_session, status=ProductStatus.DRAFT)
    cart = await cart_service.get_or_create_cart(db_session, owner_id="user-d")

    with pytest.raises(ProductUnavailableError):
        await cart_service.add_item(db_session, cart, product_id=product.id, quantity=1)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_add_item_rejects_more_than_available(db_session):
    product = await seed_product(db_session, stock=3, reserved=1)
    product_id = product.id
    cart = await cart_service.get_or_create_cart(db_session, owner_id="user-e")
    cart_id = cart.id

    with pytest.raises(InsufficientStockError):
        await cart_service.add_item(db_session, cart, product_id=product_id, quantity=3)

    cart = await cart_service.load_cart(db_session, cart_id)
    assert cart.items == []


@pytest.mark.asyncio
@pytest.mark.unit
async def test_add_item_without_inventory_record(db_session):
    product = await seed_product(db_session, stock=None)
    cart = await cart_service.get_or_create_cart(db_session, owner_id="user-f")

    with pytest.raises(InsufficientStockError):
        await cart_service.add_item(db_session, cart, product_id=product.id, quantity=1)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_update_remove_and_clear(db_session):
    first = await seed_product(db_session, stock=10)
    second = await seed_product(db_session, stock=10)
    cart = await cart_service.get_or_create_cart(db_session, owner_id="user-g")
    cart = await cart_service.add_item(db_session, cart, product_id=first.id, quantity=1)
    cart = await cart_service.add_item(db_session, cart, product_id=second.id, quantity=1)

    second_id = second.id
    line_id = next(item.id for item in cart.items if item.product_id == first.id)
    cart = await cart_service.update_item(db_session, cart, line_id, quantity=4)
    assert next(i for i in cart.items if i.id == line_id).quantity == 4
    cart_id = cart.id

    with pytest.raises(InsufficientStockError):
        await cart_service.update_item(db_session, cart, line_id, quantity=11)

    # A failed edit rolls back and expires the loaded cart
    cart = await cart_service.load_cart(db_session, cart_id)
    cart = await cart_service.remove_item(db_session, cart, line_id)
    assert [item.product_id for item in cart.items] == [second_id]

    with pytest.raises(CartItemNotFoundError):
        await cart_service.remove_item(db_session, cart, uuid.uuid4())

    cart = await cart_service.clear_cart(db_session, cart)
    assert cart.items == []
    assert cart.status == CartStatus.ACTIVE


# ---------------------------------------------------------------------------
# Guest merge
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_merge_guest_cart_sums_quantities(db_session):
    shared = await seed_product(db_session, stock=20)
    guest_only = await seed_product(db_session, stock=20)

    guest = await cart_service.get_or_create_cart(db_session, guest_token="tok-merge")
    guest = await cart_service.add_item(db_session, guest, product_id=shared.id, quantity=2)
    guest = await cart_service.add_item(
        db_session, guest, product_id=guest_only.id, quantity=1
    )
    owned = await cart_service.get_or_create_cart(db_session, owner_id="user-h")
    await cart_service.add_item(db_session, owned, product_id=shared.id, quantity=3)

    merged = await cart_service.merge_guest_cart(
        db_session, owner_id="user-h", guest_token="tok-merge"
    )

    quantities = {item.product_id: item.quantity for item in merged.items}
    assert quantities == {shared.id: 5, guest_only.id: 1}

    result = await db_session.execute(select(Cart.status).where(Cart.id == guest.id))
    assert result.scalar_one() == CartStatus.ABANDONED


@pytest.mark.asyncio
@pytest.mark.unit
async def test_merge_without_guest_cart_returns_owner_cart(db_session):
    owned = await cart_service.get_or_create_cart(db_session, owner_id="user-i")

    merged = await cart_service.merge_guest_cart(
        db_session, owner_id="user-i", guest_token="no-such-token"
    )

    assert merged.id == owned.id


@pytest.mark.asyncio
@pytest.mark.unit
async def test_merge_skips_expired_guest_cart(db_session):
    product = await seed_product(db_session, stock=10)
    guest = await seed_cart(
        db_session,
        owner_id=None,
        guest_token="tok-stale",
        expires_at=datetime.now(timezone.utc) - timedelta(days=1),
        lines=[(product, 3)],
    )
    guest_id = guest.id

    merged = await cart_service.merge_guest_cart(
        db_session, owner_id="user-j", guest_token="tok-stale"
    )

    assert merged.items == []
    result = await db_session.execute(select(Cart.status).where(Cart.id == guest_id))
    assert result.scalar_one() == CartStatus.EXPIRED


@pytest.mark.asyncio
@pytest.mark.unit
async def test_merge_caps_lines_at_available_stock(db_session):
    shared = await seed_product(db_session, stock=4)
    sold_out = await seed_product(db_session, stock=2)

    guest = await cart_service.get_or_create_cart(db_session, guest_token="tok-cap")
    guest = await cart_service.add_item(db_session, guest, product_id=shared.id, quantity=3)
    guest = await cart_service.add_item(
        db_session, guest, product_id=sold_out.id, quantity=2
    )
    owned = await cart_service.get_or_create_cart(db_session, owner_id="user-k")
    await cart_service.add_item(db_session, owned, product_id=shared.id, quantity=2)

    # Someone else takes the last of sold_out before the merge
    await inventory_ledger.reserve(db_session, sold_out.id, 2)
    await db_session.commit()

    merged = await cart_service.merge_guest_cart(
        db_session, owner_id="user-k", guest_token="tok-cap"
    )

    quantities = {item.product_id: item.quantity for item in merged.items}
    assert quantities == {shared.id: 4}
