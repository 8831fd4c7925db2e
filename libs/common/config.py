from decimal import Decimal
from functools import lru_cache
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ShippingTier(BaseModel):
    """One row of a shipping rate table.

    A tier applies while the order's item count is at most ``max_items``;
    ``max_items=None`` is the catch-all tier and must come last.
    """

    max_items: Optional[int] = None
    cost: Decimal


def _default_tax_rates() -> dict[str, Decimal]:
    return {
        "US": Decimal("0.08"),
        "GB": Decimal("0.20"),
        "DE": Decimal("0.19"),
        "FR": Decimal("0.20"),
    }


def _default_shipping_rates() -> dict[str, list[ShippingTier]]:
    return {
        "US": [
            ShippingTier(max_items=5, cost=Decimal("5.99")),
            ShippingTier(cost=Decimal("12.99")),
        ],
        "CA": [ShippingTier(cost=Decimal("15.99"))],
    }


def _default_fallback_shipping() -> list[ShippingTier]:
    return [
        ShippingTier(max_items=3, cost=Decimal("25.99")),
        ShippingTier(cost=Decimal("45.99")),
    ]


class Settings(BaseSettings):
    """Global application settings."""

    # Application
    ENVIRONMENT: Literal["local", "development", "production", "test"] = "local"
    LOG_LEVEL: str = "INFO"
    SERVICE_NAME: str = "market"

    # Database
    DATABASE_URL: str
    DB_ECHO: bool = False
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800

    # Auth (tokens are issued elsewhere; this service only verifies them)
    JWT_SECRET: str = "test-jwt-secret"
    JWT_ALGORITHM: str = "HS256"
    ADMIN_ROLE: str = "admin"

    # Checkout policy
    PRICE_CHANGE_TOLERANCE: Decimal = Decimal("0.05")
    CART_EXPIRY_MINUTES: int = 7 * 24 * 60
    ORDER_NUMBER_PREFIX: str = "MK"

    # Pricing tables
    TAX_RATES: dict[str, Decimal] = Field(default_factory=_default_tax_rates)
    DEFAULT_TAX_RATE: Decimal = Decimal("0.10")
    SHIPPING_RATES: dict[str, list[ShippingTier]] = Field(
        default_factory=_default_shipping_rates
    )
    DEFAULT_SHIPPING_RATES: list[ShippingTier] = Field(
        default_factory=_default_fallback_shipping
    )

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("DATABASE_URL")
    @classmethod
    def assemble_db_connection(cls, v: Optional[str]) -> str:
        if isinstance(v, str):
            if v.startswith("postgresql://"):
                return v.replace("postgresql://", "postgresql+psycopg://", 1)
        return v

    @field_validator("TAX_RATES", "SHIPPING_RATES")
    @classmethod
    def normalize_country_keys(cls, v: dict) -> dict:
        return {country.upper(): value for country, value in v.items()}

    @field_validator("PRICE_CHANGE_TOLERANCE", "DEFAULT_TAX_RATE")
    @classmethod
    def non_negative_rate(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("rate must be non-negative")
        return v


@lru_cache
def get_settings() -> Settings:
    """
    Return the global settings instance, cached.
    """
    return Settings()
