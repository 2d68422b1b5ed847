"""Add usage events table.

Storefront events (generated try-on images, add-to-cart clicks, quota hits)
feeding the shop status metrics and try-on revenue attribution.

Revision ID: 8a41c3f6d2e1
Revises: 5d2c81e4a7b9
Create Date: 2026-10-17 10:30:00.000000+00:00
"""

import sqlalchemy as sa
from alembic import op

revision = "8a41c3f6d2e1"
down_revision = "5d2c81e4a7b9"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "usage_events",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("shop_domain", sa.String(length=255), nullable=False),
        sa.Column("event_type", sa.String(length=50), nullable=False),
        sa.Column("session_id", sa.String(length=255), nullable=True),
        sa.Column("product_id", sa.String(length=255), nullable=True),
        sa.Column("product_name", sa.String(length=500), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        schema="tryon",
    )

    # Newest-first event window per shop
    op.create_index(
        "ix_usage_events_shop_created",
        "usage_events",
        ["shop_domain", "created_at"],
        schema="tryon",
    )


def downgrade() -> None:
    op.drop_index("ix_usage_events_shop_created", table_name="usage_events", schema="tryon")
    op.drop_table("usage_events", schema="tryon")
