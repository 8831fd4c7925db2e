"""Integration tests for checkout, order history and admin order management."""

import uuid
from decimal import Decimal

import pytest
from tests.conftest import make_admin_user, make_member_user, override_auth
from tests.factories import seed_product, us_address


async def _fill_cart(client, *lines):
    cart = None
    for product, quantity in lines:
        response = await client.post(
            "/market/cart/items",
            json={"product_id": str(product.id), "quantity": quantity},
        )
        assert response.status_code == 200
        cart = response.json()
    return cart


async def _checkout(client, cart_id, **extra):
    return await client.post(
        "/market/orders",
        json={"cart_id": cart_id, "shipping_address": us_address(), **extra},
    )


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_creates_pending_order(market_client, db_session):
    product = await seed_product(db_session, price=Decimal("20.00"), stock=5)
    cart = await _fill_cart(market_client, (product, 2))

    response = await _checkout(market_client, cart["id"], notes="gift")

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "pending"
    assert data["owner_id"] == "buyer-1"
    assert Decimal(data["subtotal"]) == Decimal("40.00")
    assert Decimal(data["tax_amount"]) == Decimal("3.20")
    assert Decimal(data["shipping_cost"]) == Decimal("5.99")
    assert Decimal(data["total_amount"]) == Decimal("49.19")
    assert data["billing_address"] == data["shipping_address"]
    assert data["item_count"] == 1
    assert data["total_quantity"] == 2

    # The converted cart is replaced by a fresh one
    fresh = (await market_client.get("/market/cart")).json()
    assert fresh["id"] != cart["id"]
    assert fresh["items"] == []


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_empty_cart_is_bad_request(market_client):
    cart = (await market_client.get("/market/cart")).json()

    response = await _checkout(market_client, cart["id"])

    assert response.status_code == 400
    assert response.json()["code"] == "empty_cart"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_unknown_cart_is_not_found(market_client):
    response = await _checkout(market_client, str(uuid.uuid4()))

    assert response.status_code == 404
    assert response.json()["code"] == "cart_not_found"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_of_someone_elses_cart_is_forbidden(
    market_app, market_client, db_session
):
    product = await seed_product(db_session)
    cart = await _fill_cart(market_client, (product, 1))

    with override_auth(market_app, make_member_user(user_id="intruder")):
        response = await _checkout(market_client, cart["id"])

    assert response.status_code == 403
    assert response.json()["code"] == "forbidden"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_rejects_bad_address(market_client, db_session):
    product = await seed_product(db_session)
    cart = await _fill_cart(market_client, (product, 1))

    response = await market_client.post(
        "/market/orders",
        json={"cart_id": cart["id"], "shipping_address": us_address(country="USA")},
    )

    assert response.status_code == 422


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_requires_authentication(market_app, market_client):
    with override_auth(market_app, None):
        response = await _checkout(market_client, str(uuid.uuid4()))

    assert response.status_code in (401, 403)


# ---------------------------------------------------------------------------
# Buyer order history
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_list_get_and_cancel_orders(market_client, db_session):
    product = await seed_product(db_session, stock=10)
    cart = await _fill_cart(market_client, (product, 3))
    order = (await _checkout(market_client, cart["id"])).json()

    listing = await market_client.get("/market/orders", params={"status": "pending"})
    assert listing.status_code == 200
    body = listing.json()
    assert body["total"] == 1
    assert body["page"] == 1
    assert body["items"][0]["id"] == order["id"]

    detail = await market_client.get(f"/market/orders/{order['id']}")
    assert detail.status_code == 200
    assert detail.json()["order_number"] == order["order_number"]

    cancelled = await market_client.post(f"/market/orders/{order['id']}/cancel")
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled"
    assert cancelled.json()["cancelled_at"] is not None

    again = await market_client.post(f"/market/orders/{order['id']}/cancel")
    assert again.status_code == 409
    assert again.json()["code"] == "invalid_transition"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_orders_of_other_buyers_are_hidden(market_app, market_client, db_session):
    product = await seed_product(db_session)
    cart = await _fill_cart(market_client, (product, 1))
    order = (await _checkout(market_client, cart["id"])).json()

    with override_auth(market_app, make_member_user(user_id="stranger")):
        detail = await market_client.get(f"/market/orders/{order['id']}")
        cancel = await market_client.post(f"/market/orders/{order['id']}/cancel")
        listing = await market_client.get("/market/orders")

    assert detail.status_code == 404
    assert cancel.status_code == 404
    assert listing.json()["total"] == 0


@pytest.mark.asyncio
@pytest.mark.integration
async def test_list_orders_rejects_unknown_sort_field(market_client):
    response = await market_client.get("/market/orders", params={"sort_by": "owner_id"})

    assert response.status_code == 422


@pytest.mark.asyncio
@pytest.mark.integration
async def test_buyer_statistics(market_client, db_session):
    product = await seed_product(db_session, price=Decimal("20.00"))
    cart = await _fill_cart(market_client, (product, 2))
    await _checkout(market_client, cart["id"])

    response = await market_client.get("/market/orders/statistics")

    assert response.status_code == 200
    data = response.json()
    assert data["total_orders"] == 1
    assert Decimal(data["total_revenue"]) == Decimal("49.19")
    assert data["total_items"] == 2
    assert data["status_counts"]["pending"] == 1


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_admin_moves_order_through_fulfilment(
    market_app, market_client, db_session
):
    product = await seed_product(db_session, stock=4)
    cart = await _fill_cart(market_client, (product, 3))
    order = (await _checkout(market_client, cart["id"])).json()
    url = f"/admin/market/orders/{order['id']}/status"

    with override_auth(market_app, make_admin_user()):
        processing = await market_client.patch(url, json={"status": "processing"})
        shipped = await market_client.patch(
            url, json={"status": "shipped", "tracking_number": "TRK-9"}
        )
        stock = await market_client.get(f"/admin/market/inventory/{product.id}")
        listing = await market_client.get(
            "/admin/market/orders", params={"owner_id": "buyer-1"}
        )

    assert processing.status_code == 200
    assert shipped.status_code == 200
    assert shipped.json()["tracking_number"] == "TRK-9"
    assert stock.json()["quantity_on_hand"] == 1
    assert stock.json()["quantity_reserved"] == 0
    assert listing.json()["total"] == 1


@pytest.mark.asyncio
@pytest.mark.integration
async def test_admin_invalid_transition_is_conflict(
    market_app, market_client, db_session
):
    product = await seed_product(db_session)
    cart = await _fill_cart(market_client, (product, 1))
    order = (await _checkout(market_client, cart["id"])).json()

    with override_auth(market_app, make_admin_user()):
        response = await market_client.patch(
            f"/admin/market/orders/{order['id']}/status", json={"status": "delivered"}
        )

    assert response.status_code == 409
    assert response.json()["code"] == "invalid_transition"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_admin_routes_require_admin_role(market_client):
    response = await market_client.get("/admin/market/orders")

    assert response.status_code == 403


@pytest.mark.asyncio
@pytest.mark.integration
async def test_admin_adjusts_inventory(market_app, market_client, db_session):
    product = await seed_product(db_session, stock=None)

    with override_auth(market_app, make_admin_user()):
        restock = await market_client.post(
            f"/admin/market/inventory/{product.id}/adjust",
            json={"quantity": 8, "reason": "delivery"},
        )
        write_off = await market_client.post(
            f"/admin/market/inventory/{product.id}/adjust",
            json={"quantity": -9, "reason": "lost"},
        )
        unknown = await market_client.post(
            f"/admin/market/inventory/{uuid.uuid4()}/adjust",
            json={"quantity": 1, "reason": "typo"},
        )

    assert restock.status_code == 200
    assert restock.json()["quantity_on_hand"] == 8
    assert restock.json()["quantity_available"] == 8
    assert restock.json()["is_low_stock"] is False
    assert write_off.status_code == 400
    assert unknown.status_code == 404


@pytest.mark.asyncio
@pytest.mark.integration
async def test_admin_statistics_cover_all_buyers(market_app, market_client, db_session):
    product = await seed_product(db_session, price=Decimal("20.00"))
    cart = await _fill_cart(market_client, (product, 1))
    await _checkout(market_client, cart["id"])

    other = make_member_user(user_id="buyer-2")
    with override_auth(market_app, other):
        cart = await _fill_cart(market_client, (product, 1))
        await _checkout(market_client, cart["id"])

    with override_auth(market_app, make_admin_user()):
        response = await market_client.get("/admin/market/orders/statistics")

    assert response.status_code == 200
    assert response.json()["total_orders"] == 2
