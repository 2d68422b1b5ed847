"""Storefront usage events and the try-on metrics derived from them.

Events are appended by the storefront widget (image generated, add to cart)
and by the quota check (limit reached). Metrics are computed over the most
recent window of events, newest first.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from shared.constants import (
    DEFAULT_EVENT_LIST_LIMIT,
    EVENT_ADD_TO_CART,
    EVENT_IMAGE_GENERATED,
    TOP_PRODUCTS_LIMIT,
    USAGE_EVENT_TYPES,
    USAGE_STATS_EVENT_LIMIT,
)
from tryon_service.infrastructure.database.models import UsageEvent

logger = structlog.get_logger()

UNKNOWN_PRODUCT = "Unknown Product"


def _percent(part: int, whole: int) -> float:
    if whole <= 0:
        return 0.0
    return round(part / whole * 100, 1)


@dataclass
class UsageSummary:
    """Aggregates over a shop's recent usage events."""

    counts: dict[str, int] = field(default_factory=lambda: dict.fromkeys(USAGE_EVENT_TYPES, 0))
    session_ids: set[str] = field(default_factory=set)
    top_products: list[dict[str, Any]] = field(default_factory=list)

    @property
    def unique_users(self) -> int:
        return len(self.session_ids)


def event_counts(events: list[UsageEvent]) -> dict[str, int]:
    """Count events per known type; unknown types are ignored."""
    counts = dict.fromkeys(USAGE_EVENT_TYPES, 0)
    for event in events:
        if event.event_type in counts:
            counts[event.event_type] += 1
    return counts


def unique_sessions(events: list[UsageEvent]) -> set[str]:
    return {event.session_id for event in events if event.session_id}


def product_analytics(
    events: list[UsageEvent], limit: int = TOP_PRODUCTS_LIMIT
) -> list[dict[str, Any]]:
    """Per-product try-on and add-to-cart counts, most tried-on first."""
    products: dict[str, dict[str, Any]] = {}
    for event in events:
        name = event.product_name or UNKNOWN_PRODUCT
        product = products.setdefault(
            name, {"product_name": name, "try_on_count": 0, "add_to_cart_count": 0}
        )
        if event.event_type == EVENT_IMAGE_GENERATED:
            product["try_on_count"] += 1
        elif event.event_type == EVENT_ADD_TO_CART:
            product["add_to_cart_count"] += 1

    ranked = sorted(products.values(), key=lambda p: p["try_on_count"], reverse=True)
    for product in ranked:
        product["conversion_rate"] = _percent(
            product["add_to_cart_count"], product["try_on_count"]
        )
    return ranked[:limit]


def build_metrics(
    summary: UsageSummary,
    revenue: dict[str, Any],
    images_used: int,
    images_limit: int,
) -> dict[str, Any]:
    """
    Combine usage events with imported order revenue.

    ``converted_users`` counts storefront sessions that generated a try-on
    image and later appear on an imported order's try-on line items.
    """
    try_ons = summary.counts[EVENT_IMAGE_GENERATED]
    add_to_cart = summary.counts[EVENT_ADD_TO_CART]
    total_revenue = Decimal(revenue["total_revenue"])
    order_sessions = revenue.get("session_ids") or set()
    converted = len(summary.session_ids & set(order_sessions))

    return {
        "try_on_generated": try_ons,
        "unique_users": summary.unique_users,
        "add_to_cart_count": add_to_cart,
        "add_to_cart_rate": _percent(add_to_cart, try_ons),
        "credit_remaining": max(images_limit - images_used, 0),
        "credit_used": images_used,
        "avg_try_on_per_product": (
            round(try_ons / len(summary.top_products), 1) if summary.top_products else 0.0
        ),
        "total_revenue": float(total_revenue),
        "total_orders": revenue["total_orders"],
        "revenue_per_try_on": float(round(total_revenue / try_ons, 2)) if try_ons else 0.0,
        "converted_users": converted,
        "user_conversion_rate": _percent(converted, summary.unique_users),
    }


class UsageEventRepository:
    """Repository for storefront usage events."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        shop_domain: str,
        event_type: str,
        session_id: str | None = None,
        product_id: str | None = None,
        product_name: str | None = None,
    ) -> UsageEvent:
        event = UsageEvent(
            shop_domain=shop_domain,
            event_type=event_type,
            session_id=session_id or None,
            product_id=product_id or None,
            product_name=product_name or None,
        )
        self.session.add(event)
        try:
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            raise

        logger.info(
            "Usage event recorded",
            shop_domain=shop_domain,
            event_type=event_type,
            session_id=session_id,
        )
        return event

    async def find_by_shop(
        self, shop_domain: str, limit: int = DEFAULT_EVENT_LIST_LIMIT
    ) -> list[UsageEvent]:
        """Newest-first events for a shop. Returns [] if the query fails."""
        stmt = (
            select(UsageEvent)
            .where(UsageEvent.shop_domain == shop_domain)
            .order_by(UsageEvent.created_at.desc())
            .limit(limit)
        )
        try:
            result = await self.session.execute(stmt)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("Error finding usage events", shop_domain=shop_domain, error=str(e))
            return []

    async def get_summary(
        self, shop_domain: str, top_products: int = TOP_PRODUCTS_LIMIT
    ) -> UsageSummary:
        """Counts, unique sessions and top products over the recent event window."""
        events = await self.find_by_shop(shop_domain, USAGE_STATS_EVENT_LIMIT)
        return UsageSummary(
            counts=event_counts(events),
            session_ids=unique_sessions(events),
            top_products=product_analytics(events, top_products),
        )
