"""Initial try-on schema

Revision ID: 5d2c81e4a7b9
Revises:
Create Date: 2026-10-17 09:00:00.000000+00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '5d2c81e4a7b9'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create shops table
    op.create_table('shops',
    sa.Column('shop_domain', sa.String(length=255), nullable=False),
    sa.Column('shop_id', sa.String(length=255), nullable=False),
    sa.Column('plan_type', sa.String(length=50), nullable=False),
    sa.Column('images_used', sa.Integer(), nullable=False),
    sa.Column('images_limit', sa.Integer(), nullable=False),
    sa.Column('is_active', sa.Boolean(), nullable=False),
    sa.Column('app_status', sa.String(length=50), nullable=False),
    sa.Column('access_token', sa.String(length=255), nullable=True),
    sa.Column('order_sync', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('last_reset_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('shop_domain'),
    schema='tryon'
    )
    op.create_index('ix_shops_active', 'shops', ['is_active'], unique=False, schema='tryon')

    # Create orders table; order_id is the dedup key
    op.create_table('orders',
    sa.Column('order_id', sa.String(length=64), nullable=False),
    sa.Column('shop_domain', sa.String(length=255), nullable=False),
    sa.Column('order_number', sa.String(length=64), nullable=False),
    sa.Column('total_price', sa.Numeric(precision=12, scale=2), nullable=False),
    sa.Column('currency', sa.String(length=8), nullable=False),
    sa.Column('customer_email', sa.String(length=320), nullable=True),
    sa.Column('line_items', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column('has_sbb_items', sa.Boolean(), nullable=False),
    sa.Column('sbb_session_ids', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    sa.Column('synced_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('order_id'),
    schema='tryon'
    )
    op.create_index('ix_orders_shop_created', 'orders', ['shop_domain', 'created_at'], unique=False, schema='tryon')


def downgrade() -> None:
    op.drop_index('ix_orders_shop_created', table_name='orders', schema='tryon')
    op.drop_table('orders', schema='tryon')
    op.drop_index('ix_shops_active', table_name='shops', schema='tryon')
    op.drop_table('shops', schema='tryon')
