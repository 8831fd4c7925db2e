"""Unit tests for cart snapshots."""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from services.market_service.errors import CartNotFoundError
from services.market_service.models import CartStatus, Product
from services.market_service.services.cart_snapshot import snapshot
from sqlalchemy import update
from tests.factories import seed_cart, seed_product


@pytest.mark.asyncio
@pytest.mark.unit
async def test_snapshot_prices_lines_and_totals(db_session):
    mug = await seed_product(db_session, price=Decimal("12.50"), title="Mug")
    tee = await seed_product(db_session, price=Decimal("20.00"), title="Tee")
    cart = await seed_cart(db_session, lines=[(mug, 2), (tee, 1)])

    snap = await snapshot(db_session, cart.id)

    assert snap.cart_id == cart.id
    assert snap.owner_id == cart.owner_id
    assert not snap.is_empty
    assert [line.title for line in snap.items] == ["Mug", "Tee"]
    assert snap.items[0].line_total == Decimal("25.00")
    assert snap.subtotal == Decimal("45.00")
    assert snap.total_item_count == 3


@pytest.mark.asyncio
@pytest.mark.unit
async def test_snapshot_uses_current_catalog_price(db_session):
    product = await seed_product(db_session, price=Decimal("10.00"))
    cart = await seed_cart(db_session, lines=[(product, 3)])

    await db_session.execute(
        update(Product).where(Product.id == product.id).values(price=Decimal("11.00"))
    )
    await db_session.commit()

    [line] = (await snapshot(db_session, cart.id)).items
    assert line.unit_price == Decimal("11.00")
    assert line.added_unit_price == Decimal("10.00")
    assert line.line_total == Decimal("33.00")


@pytest.mark.asyncio
@pytest.mark.unit
async def test_snapshot_of_empty_cart(db_session):
    cart = await seed_cart(db_session)

    snap = await snapshot(db_session, cart.id)

    assert snap.is_empty
    assert snap.subtotal == Decimal("0.00")
    assert snap.total_item_count == 0


@pytest.mark.asyncio
@pytest.mark.unit
async def test_snapshot_unknown_cart(db_session):
    with pytest.raises(CartNotFoundError):
        await snapshot(db_session, uuid.uuid4())


@pytest.mark.asyncio
@pytest.mark.unit
async def test_snapshot_expired_cart(db_session):
    cart = await seed_cart(
        db_session, expires_at=datetime.now(timezone.utc) - timedelta(minutes=1)
    )

    with pytest.raises(CartNotFoundError):
        await snapshot(db_session, cart.id)


@pytest.mark.asyncio
@pytest.mark.unit
@pytest.mark.parametrize(
    "status", [CartStatus.CONVERTED, CartStatus.ABANDONED, CartStatus.EXPIRED]
)
async def test_snapshot_inactive_cart(db_session, status):
    cart = await seed_cart(db_session, status=status)

    with pytest.raises(CartNotFoundError):
        await snapshot(db_session, cart.id)
