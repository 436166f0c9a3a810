"""create_unified_commerce_tables

Revision ID: a1c4e7f20b3d
Revises:
Create Date: 2026-10-19

Tenants, marketplace connections and the unified order/product tables the
sync adapters write and the channel-fit engine reads.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a1c4e7f20b3d'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create tenant, connection, order, order item and product tables."""
    op.create_table(
        'tenants',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime()),
    )

    op.create_table(
        'marketplace_connections',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('tenant_id', sa.String(), sa.ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('marketplace', sa.String(), nullable=False),
        # PENDING, CONNECTED, DISCONNECTED, ERROR
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('connected_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime()),
    )
    op.create_index(
        'ix_marketplace_connections_tenant_status',
        'marketplace_connections',
        ['tenant_id', 'status']
    )

    op.create_table(
        'unified_products',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('tenant_id', sa.String(), sa.ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('marketplace', sa.String(), nullable=False),
        sa.Column('external_id', sa.String(), nullable=True),

        # Listing
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('sku', sa.String(), index=True, nullable=True),
        sa.Column('category', sa.String(), nullable=True),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('currency', sa.String(), nullable=False),

        # Stock
        sa.Column('inventory', sa.Integer(), nullable=False, server_default='0'),
        # ACTIVE, INACTIVE, OUT_OF_STOCK
        sa.Column('status', sa.String(), nullable=False, server_default='ACTIVE'),

        sa.Column('updated_at', sa.DateTime()),
    )
    op.create_index(
        'ix_unified_products_tenant_status',
        'unified_products',
        ['tenant_id', 'status']
    )

    op.create_table(
        'unified_orders',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('tenant_id', sa.String(), sa.ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('marketplace', sa.String(), nullable=False, index=True),
        sa.Column('external_order_id', sa.String(), nullable=False),

        # PENDING, CONFIRMED, SHIPPED, DELIVERED, CANCELLED, RETURNED
        sa.Column('status', sa.String(), nullable=False, index=True),
        sa.Column('currency', sa.String(), nullable=False),
        sa.Column('total_amount', sa.Numeric(10, 2), nullable=False),

        sa.Column('ordered_at', sa.DateTime(), nullable=False, index=True),
        sa.Column('fulfilled_at', sa.DateTime(), nullable=True),
        sa.Column('synced_at', sa.DateTime()),
    )
    # Date-range scans are always per tenant
    op.create_index(
        'ix_unified_orders_tenant_ordered_at',
        'unified_orders',
        ['tenant_id', 'ordered_at']
    )

    op.create_table(
        'unified_order_items',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('order_id', sa.String(), sa.ForeignKey('unified_orders.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('product_id', sa.String(), sa.ForeignKey('unified_products.id', ondelete='SET NULL'), nullable=True, index=True),

        sa.Column('title', sa.String(), nullable=True),
        sa.Column('sku', sa.String(), index=True, nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('currency', sa.String(), nullable=False),
    )


def downgrade() -> None:
    """Drop the unified commerce tables."""
    op.drop_table('unified_order_items')
    op.drop_index('ix_unified_orders_tenant_ordered_at', table_name='unified_orders')
    op.drop_table('unified_orders')
    op.drop_index('ix_unified_products_tenant_status', table_name='unified_products')
    op.drop_table('unified_products')
    op.drop_index('ix_marketplace_connections_tenant_status', table_name='marketplace_connections')
    op.drop_table('marketplace_connections')
    op.drop_table('tenants')
