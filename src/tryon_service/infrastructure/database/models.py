"""SQLAlchemy models for the try-on backend.

Tables live in the 'tryon' schema. The order sync checkpoint is embedded in
the shop row as the ``order_sync`` JSONB document.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Schema for all application tables
SCHEMA = "tryon"


class Base(DeclarativeBase):
    """Base class for all models."""

    __table_args__ = {"schema": SCHEMA}


# =============================================================================
# Shops
# =============================================================================


class Shop(Base):
    """A merchant store with its usage quota and order sync checkpoint."""

    __tablename__ = "shops"

    shop_domain: Mapped[str] = mapped_column(String(255), primary_key=True)
    shop_id: Mapped[str] = mapped_column(String(255), nullable=False)

    # Plan and usage quota
    plan_type: Mapped[str] = mapped_column(String(50), default="free", nullable=False)
    images_used: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    images_limit: Mapped[int] = mapped_column(Integer, default=15, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    app_status: Mapped[str] = mapped_column(String(50), default="disabled", nullable=False)

    # Offline Admin API token stored by onboarding (used by scheduled syncs)
    access_token: Mapped[Optional[str]] = mapped_column(String(255))

    # Order sync checkpoint
    order_sync: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONB)

    # Timestamps
    last_reset_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_shops_active", "is_active"),
        {"schema": SCHEMA},
    )


# =============================================================================
# Imported Orders
# =============================================================================


class ImportedOrderRecord(Base):
    """An order carrying try-on line items, imported once from Shopify."""

    __tablename__ = "orders"

    order_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    shop_domain: Mapped[str] = mapped_column(String(255), nullable=False)
    order_number: Mapped[str] = mapped_column(String(64), nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(8), default="USD", nullable=False)
    customer_email: Mapped[Optional[str]] = mapped_column(String(320))
    line_items: Mapped[list] = mapped_column(JSONB, default=list, nullable=False)
    has_sbb_items: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sbb_session_ids: Mapped[list] = mapped_column(JSONB, default=list, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    synced_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_orders_shop_created", "shop_domain", "created_at"),
        {"schema": SCHEMA},
    )


# =============================================================================
# Usage Events
# =============================================================================


class UsageEvent(Base):
    """A storefront try-on event: image generated, add to cart or quota hit."""

    __tablename__ = "usage_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shop_domain: Mapped[str] = mapped_column(String(255), nullable=False)
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)

    # Storefront visitor session, the same id carried on try-on line items
    session_id: Mapped[Optional[str]] = mapped_column(String(255))
    product_id: Mapped[Optional[str]] = mapped_column(String(255))
    product_name: Mapped[Optional[str]] = mapped_column(String(500))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_usage_events_shop_created", "shop_domain", "created_at"),
        {"schema": SCHEMA},
    )
