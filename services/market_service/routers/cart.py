"""Market cart router: cart lookup and line item edits."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from libs.auth.dependencies import get_current_user, get_optional_user
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.market_service.models import Cart
from services.market_service.schemas import (
    CartItemCreate,
    CartItemResponse,
    CartItemUpdate,
    CartMergeRequest,
    CartResponse,
)
from services.market_service.services import cart_service
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["market"])


# ============================================================================
# CART HELPERS
# ============================================================================


async def resolve_cart(
    db: AsyncSession,
    user: Optional[AuthUser],
    guest_token: Optional[str],
) -> Cart:
    """The caller's cart: by user when signed in, by guest token otherwise."""
    return await cart_service.get_or_create_cart(
        db,
        owner_id=user.user_id if user else None,
        guest_token=guest_token,
    )


def build_cart_response(cart: Cart) -> CartResponse:
    """Cart with product details and totals at the stored line prices."""
    items = [
        CartItemResponse(
            id=item.id,
            product_id=item.product_id,
            variant_id=item.variant_id,
            quantity=item.quantity,
            unit_price=item.unit_price,
            line_total=item.line_total,
            product_title=item.product.title if item.product else None,
            current_price=item.product.price if item.product else None,
        )
        for item in cart.items
    ]
    return CartResponse(
        id=cart.id,
        owner_id=cart.owner_id,
        guest_token=cart.guest_token,
        status=cart.status,
        expires_at=cart.expires_at,
        created_at=cart.created_at,
        updated_at=cart.updated_at,
        items=items,
        item_count=sum(item.quantity for item in cart.items),
        subtotal=cart_service.cart_subtotal(cart),
    )


# ============================================================================
# CART ENDPOINTS
# ============================================================================


@router.get("/cart", response_model=CartResponse)
async def get_cart(
    guest_token: Optional[str] = Query(None),
    current_user: Optional[AuthUser] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Get current cart. Guest carts are merged only through POST /cart/merge."""
    cart = await resolve_cart(db, current_user, guest_token)
    return build_cart_response(cart)


@router.post("/cart/items", response_model=CartResponse)
async def add_to_cart(
    item_in: CartItemCreate,
    guest_token: Optional[str] = Query(None),
    current_user: Optional[AuthUser] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Add item to cart."""
    cart = await resolve_cart(db, current_user, guest_token)
    cart = await cart_service.add_item(
        db,
        cart,
        product_id=item_in.product_id,
        variant_id=item_in.variant_id,
        quantity=item_in.quantity,
    )
    return build_cart_response(cart)


@router.patch("/cart/items/{item_id}", response_model=CartResponse)
async def update_cart_item(
    item_id: uuid.UUID,
    item_in: CartItemUpdate,
    guest_token: Optional[str] = Query(None),
    current_user: Optional[AuthUser] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Update cart item quantity."""
    cart = await resolve_cart(db, current_user, guest_token)
    cart = await cart_service.update_item(db, cart, item_id, quantity=item_in.quantity)
    return build_cart_response(cart)


@router.delete("/cart/items/{item_id}", response_model=CartResponse)
async def remove_cart_item(
    item_id: uuid.UUID,
    guest_token: Optional[str] = Query(None),
    current_user: Optional[AuthUser] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Remove item from cart."""
    cart = await resolve_cart(db, current_user, guest_token)
    cart = await cart_service.remove_item(db, cart, item_id)
    return build_cart_response(cart)


@router.delete("/cart", response_model=CartResponse)
async def clear_cart(
    guest_token: Optional[str] = Query(None),
    current_user: Optional[AuthUser] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Remove every item from the cart."""
    cart = await resolve_cart(db, current_user, guest_token)
    cart = await cart_service.clear_cart(db, cart)
    return build_cart_response(cart)


@router.post("/cart/merge", response_model=CartResponse)
async def merge_cart(
    request: CartMergeRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Merge a guest cart into the signed-in user's cart."""
    cart = await cart_service.merge_guest_cart(
        db, owner_id=current_user.user_id, guest_token=request.guest_token
    )
    return build_cart_response(cart)
