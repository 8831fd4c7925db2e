"""Tax and shipping calculation.

Both calculations are pure functions of their inputs. The rate tables come
from settings; swap a strategy to change how a destination is priced
without touching checkout.
"""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping, Optional, Protocol, Sequence

from libs.common.config import Settings, ShippingTier, get_settings

CENTS = Decimal("0.01")


def quantize_money(amount: Decimal) -> Decimal:
    """Round to cents, half up."""
    return Decimal(amount).quantize(CENTS, rounding=ROUND_HALF_UP)


def _country_of(destination: Mapping) -> str:
    return str(destination.get("country") or "").strip().upper()


class TaxStrategy(Protocol):
    def tax_for(self, subtotal: Decimal, destination: Mapping) -> Decimal: ...


class ShippingStrategy(Protocol):
    def shipping_for(self, destination: Mapping, item_count: int) -> Decimal: ...


@dataclass(frozen=True)
class RateTableTax:
    """Flat percentage of the subtotal, looked up by destination country."""

    rates: Mapping[str, Decimal] = field(default_factory=dict)
    default_rate: Decimal = Decimal("0")

    def rate_for(self, country: str) -> Decimal:
        return self.rates.get(country, self.default_rate)

    def tax_for(self, subtotal: Decimal, destination: Mapping) -> Decimal:
        return subtotal * self.rate_for(_country_of(destination))


@dataclass(frozen=True)
class RateTableShipping:
    """Tiered flat rates by destination country and order item count."""

    rates: Mapping[str, Sequence[ShippingTier]] = field(default_factory=dict)
    default_tiers: Sequence[ShippingTier] = ()

    def tiers_for(self, country: str) -> Sequence[ShippingTier]:
        return self.rates.get(country, self.default_tiers)

    def shipping_for(self, destination: Mapping, item_count: int) -> Decimal:
        tiers = self.tiers_for(_country_of(destination))
        for tier in tiers:
            if tier.max_items is None or item_count <= tier.max_items:
                return tier.cost
        # Every configured tier is capped below item_count; charge the last one
        return tiers[-1].cost if tiers else Decimal("0")


@dataclass(frozen=True)
class PricingEngine:
    tax: TaxStrategy
    shipping: ShippingStrategy

    def compute_tax(self, subtotal: Decimal, destination: Mapping) -> Decimal:
        return quantize_money(self.tax.tax_for(Decimal(subtotal), destination))

    def compute_shipping(self, destination: Mapping, item_count: int) -> Decimal:
        if item_count <= 0:
            return Decimal("0.00")
        return quantize_money(self.shipping.shipping_for(destination, item_count))

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "PricingEngine":
        settings = settings or get_settings()
        return cls(
            tax=RateTableTax(
                rates=dict(settings.TAX_RATES),
                default_rate=settings.DEFAULT_TAX_RATE,
            ),
            shipping=RateTableShipping(
                rates={
                    country: tuple(tiers)
                    for country, tiers in settings.SHIPPING_RATES.items()
                },
                default_tiers=tuple(settings.DEFAULT_SHIPPING_RATES),
            ),
        )


def get_pricing_engine() -> PricingEngine:
    """Pricing engine built from the current settings."""
    return PricingEngine.from_settings()
