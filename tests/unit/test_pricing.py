"""Unit tests for tax and shipping calculation.

Pure functions: no database involved.
"""

from decimal import Decimal

import pytest
from libs.common.config import Settings, ShippingTier
from services.market_service.services.pricing import (
    PricingEngine,
    RateTableShipping,
    RateTableTax,
    quantize_money,
)
from tests.factories import us_address


@pytest.fixture
def engine() -> PricingEngine:
    return PricingEngine.from_settings(Settings(DATABASE_URL="sqlite+aiosqlite://"))


def _to(country: str) -> dict:
    return us_address(country=country)


# ---------------------------------------------------------------------------
# Tax
# ---------------------------------------------------------------------------


@pytest.mark.unit
@pytest.mark.parametrize(
    "country, expected",
    [
        ("US", Decimal("3.20")),
        ("GB", Decimal("8.00")),
        ("DE", Decimal("7.60")),
        ("FR", Decimal("8.00")),
        ("NG", Decimal("4.00")),
    ],
)
def test_tax_by_destination(engine, country, expected):
    assert engine.compute_tax(Decimal("40.00"), _to(country)) == expected


@pytest.mark.unit
def test_tax_country_is_case_insensitive(engine):
    assert engine.compute_tax(Decimal("40.00"), _to("us")) == Decimal("3.20")


@pytest.mark.unit
def test_tax_rounds_half_up_to_cents(engine):
    # 0.25 * 0.10 = 0.025
    assert engine.compute_tax(Decimal("0.25"), _to("NG")) == Decimal("0.03")


@pytest.mark.unit
def test_tax_missing_country_uses_default_rate(engine):
    assert engine.compute_tax(Decimal("10.00"), {}) == Decimal("1.00")


# ---------------------------------------------------------------------------
# Shipping
# ---------------------------------------------------------------------------


@pytest.mark.unit
@pytest.mark.parametrize(
    "country, item_count, expected",
    [
        ("US", 1, Decimal("5.99")),
        ("US", 5, Decimal("5.99")),
        ("US", 6, Decimal("12.99")),
        ("CA", 1, Decimal("15.99")),
        ("CA", 40, Decimal("15.99")),
        ("GB", 3, Decimal("25.99")),
        ("GB", 4, Decimal("45.99")),
    ],
)
def test_shipping_tiers(engine, country, item_count, expected):
    assert engine.compute_shipping(_to(country), item_count) == expected


@pytest.mark.unit
def test_shipping_for_no_items_is_free(engine):
    assert engine.compute_shipping(_to("US"), 0) == Decimal("0.00")


@pytest.mark.unit
def test_capped_tiers_fall_back_to_last_tier():
    shipping = RateTableShipping(
        default_tiers=(ShippingTier(max_items=2, cost=Decimal("3.00")),)
    )
    assert shipping.shipping_for(_to("US"), 9) == Decimal("3.00")


@pytest.mark.unit
def test_pricing_is_deterministic(engine):
    address = _to("DE")
    first = (engine.compute_tax(Decimal("19.99"), address), engine.compute_shipping(address, 2))
    second = (engine.compute_tax(Decimal("19.99"), address), engine.compute_shipping(address, 2))
    assert first == second


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


class _FlatShipping:
    def shipping_for(self, destination, item_count):
        return Decimal("1.5")


@pytest.mark.unit
def test_strategies_are_swappable():
    engine = PricingEngine(
        tax=RateTableTax(rates={"US": Decimal("0.5")}),
        shipping=_FlatShipping(),
    )

    assert engine.compute_tax(Decimal("10.00"), _to("US")) == Decimal("5.00")
    assert engine.compute_tax(Decimal("10.00"), _to("CA")) == Decimal("0.00")
    assert engine.compute_shipping(_to("US"), 3) == Decimal("1.50")


@pytest.mark.unit
def test_rate_tables_come_from_settings():
    settings = Settings(
        DATABASE_URL="sqlite+aiosqlite://",
        TAX_RATES={"ca": Decimal("0.13")},
        SHIPPING_RATES={"ca": [ShippingTier(cost=Decimal("9.00"))]},
    )
    engine = PricingEngine.from_settings(settings)

    assert engine.compute_tax(Decimal("100.00"), _to("CA")) == Decimal("13.00")
    assert engine.compute_shipping(_to("CA"), 1) == Decimal("9.00")
    # Tables not overridden keep their defaults
    assert engine.compute_shipping(_to("FR"), 1) == Decimal("25.99")


@pytest.mark.unit
def test_quantize_money():
    assert quantize_money(Decimal("2.345")) == Decimal("2.35")
    assert quantize_money(Decimal("2.344")) == Decimal("2.34")
