"""create_market_tables

Revision ID: 3f1c9a7d2b10
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3f1c9a7d2b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')

product_status = sa.Enum(
    'draft', 'active', 'sold', 'cancelled', name='market_product_status_enum'
)
cart_status = sa.Enum(
    'active', 'converted', 'abandoned', 'expired', name='market_cart_status_enum'
)
order_status = sa.Enum(
    'pending', 'processing', 'shipped', 'delivered', 'cancelled',
    name='market_order_status_enum',
)
movement_type = sa.Enum(
    'restock', 'adjustment', 'reservation', 'release', 'sale',
    name='market_inventory_movement_type_enum',
)

ACTIVE_CART = sa.text("status = 'active'")
NO_VARIANT = sa.text('variant_id IS NULL')


def upgrade() -> None:
    """Upgrade schema - Add market catalog, cart, order and inventory tables."""

    op.create_table(
        'market_products',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('seller_id', sa.String(length=255), nullable=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('status', product_status, server_default='draft', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('price >= 0', name='product_price_non_negative'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_market_products_seller_id', 'market_products', ['seller_id'])

    op.create_table(
        'market_carts',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('owner_id', sa.String(length=255), nullable=True),
        sa.Column('guest_token', sa.String(length=255), nullable=True),
        sa.Column('status', cart_status, server_default='active', nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            'owner_id IS NOT NULL OR guest_token IS NOT NULL', name='cart_has_owner'
        ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'uq_market_carts_active_owner', 'market_carts', ['owner_id'],
        unique=True, postgresql_where=ACTIVE_CART, sqlite_where=ACTIVE_CART,
    )
    op.create_index(
        'uq_market_carts_active_guest', 'market_carts', ['guest_token'],
        unique=True, postgresql_where=ACTIVE_CART, sqlite_where=ACTIVE_CART,
    )

    op.create_table(
        'market_cart_items',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('cart_id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('variant_id', sa.Uuid(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('quantity > 0', name='cart_item_positive_quantity'),
        sa.ForeignKeyConstraint(['cart_id'], ['market_carts.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['market_products.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_market_cart_items_cart_id', 'market_cart_items', ['cart_id'])
    op.create_index(
        'uq_market_cart_items_variant', 'market_cart_items',
        ['cart_id', 'product_id', 'variant_id'], unique=True,
    )
    op.create_index(
        'uq_market_cart_items_product', 'market_cart_items',
        ['cart_id', 'product_id'],
        unique=True, postgresql_where=NO_VARIANT, sqlite_where=NO_VARIANT,
    )

    op.create_table(
        'market_orders',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_number', sa.String(length=32), nullable=False),
        sa.Column('owner_id', sa.String(length=255), nullable=False),
        sa.Column('cart_id', sa.Uuid(), nullable=True),
        sa.Column('status', order_status, server_default='pending', nullable=False),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False),
        sa.Column('tax_amount', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('shipping_cost', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('discount_amount', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('shipping_address', JSONType, nullable=False),
        sa.Column('billing_address', JSONType, nullable=False),
        sa.Column('payment_id', sa.String(length=100), nullable=True),
        sa.Column('tracking_number', sa.String(length=100), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('shipped_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            'subtotal >= 0 AND tax_amount >= 0 AND shipping_cost >= 0 '
            'AND discount_amount >= 0 AND total_amount >= 0',
            name='order_amounts_non_negative',
        ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_market_orders_order_number', 'market_orders', ['order_number'], unique=True)
    op.create_index('ix_market_orders_owner_id', 'market_orders', ['owner_id'])
    op.create_index('ix_market_orders_status', 'market_orders', ['status'])
    op.create_index('ix_market_orders_created_at', 'market_orders', ['created_at'])

    op.create_table(
        'market_order_items',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('variant_id', sa.Uuid(), nullable=True),
        sa.Column('product_title', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('line_total', sa.Numeric(12, 2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('quantity > 0', name='order_item_positive_quantity'),
        sa.CheckConstraint(
            'unit_price >= 0 AND line_total >= 0',
            name='order_item_amounts_non_negative',
        ),
        sa.ForeignKeyConstraint(['order_id'], ['market_orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_market_order_items_order_id', 'market_order_items', ['order_id'])

    op.create_table(
        'market_inventory_items',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('variant_id', sa.Uuid(), nullable=True),
        sa.Column('quantity_on_hand', sa.Integer(), server_default='0', nullable=False),
        sa.Column('quantity_reserved', sa.Integer(), server_default='0', nullable=False),
        sa.Column('low_stock_threshold', sa.Integer(), server_default='5', nullable=True),
        sa.Column('last_restock_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_sold_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('quantity_on_hand >= 0', name='positive_stock'),
        sa.CheckConstraint(
            'quantity_reserved >= 0 AND quantity_reserved <= quantity_on_hand',
            name='valid_reserved',
        ),
        sa.ForeignKeyConstraint(['product_id'], ['market_products.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'uq_market_inventory_variant', 'market_inventory_items',
        ['product_id', 'variant_id'], unique=True,
    )
    op.create_index(
        'uq_market_inventory_product', 'market_inventory_items', ['product_id'],
        unique=True, postgresql_where=NO_VARIANT, sqlite_where=NO_VARIANT,
    )

    op.create_table(
        'market_inventory_movements',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('variant_id', sa.Uuid(), nullable=True),
        sa.Column('movement_type', movement_type, nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('reference_type', sa.String(length=30), nullable=True),
        sa.Column('reference_id', sa.Uuid(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('performed_by', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_market_inventory_movements_product_id',
        'market_inventory_movements', ['product_id'],
    )


def downgrade() -> None:
    """Downgrade schema - Drop market tables."""
    op.drop_table('market_inventory_movements')
    op.drop_table('market_inventory_items')
    op.drop_table('market_order_items')
    op.drop_table('market_orders')
    op.drop_table('market_cart_items')
    op.drop_table('market_carts')
    op.drop_table('market_products')

    bind = op.get_bind()
    for enum in (movement_type, order_status, cart_status, product_status):
        enum.drop(bind, checkfirst=True)
