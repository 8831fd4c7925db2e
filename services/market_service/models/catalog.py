"""Market catalog model: the slice of a product the order pipeline reads."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.market_service.models.enums import ProductStatus, enum_values
from sqlalchemy import CheckConstraint, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column


class Product(Base):
    """Products listed by sellers. Only ``active`` products can be bought."""

    __tablename__ = "market_products"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    seller_id: Mapped[Optional[str]] = mapped_column(
        String(255), index=True, nullable=True
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    status: Mapped[ProductStatus] = mapped_column(
        SAEnum(
            ProductStatus,
            values_callable=enum_values,
            name="market_product_status_enum",
        ),
        default=ProductStatus.DRAFT,
        server_default="draft",
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    __table_args__ = (CheckConstraint("price >= 0", name="product_price_non_negative"),)

    @property
    def is_sellable(self) -> bool:
        return self.status == ProductStatus.ACTIVE

    def __repr__(self):
        return f"<Product {self.title} status={self.status}>"
