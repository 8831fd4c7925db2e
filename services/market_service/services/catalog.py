"""Catalog lookups used by the cart and checkout flows."""

import uuid
from typing import Iterable

from services.market_service.errors import ProductNotFoundError
from services.market_service.models import Product
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession


async def get_product(
    db: AsyncSession, product_id: uuid.UUID, *, for_update: bool = False
) -> Product:
    """Return the live product row, or raise ``ProductNotFoundError``."""
    query = select(Product).where(Product.id == product_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query.execution_options(populate_existing=True))
    product = result.scalar_one_or_none()
    if not product:
        raise ProductNotFoundError(product_id)
    return product


async def get_products(
    db: AsyncSession, product_ids: Iterable[uuid.UUID], *, for_update: bool = False
) -> dict[uuid.UUID, Product]:
    """Load many products at once, keyed by id.

    Rows are locked in ascending id order so concurrent checkouts over
    overlapping carts take their locks in the same sequence.
    """
    ids = sorted(set(product_ids))
    if not ids:
        return {}
    query = select(Product).where(Product.id.in_(ids)).order_by(Product.id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query.execution_options(populate_existing=True))
    products = {product.id: product for product in result.scalars().all()}

    missing = [product_id for product_id in ids if product_id not in products]
    if missing:
        raise ProductNotFoundError(missing[0])
    return products
