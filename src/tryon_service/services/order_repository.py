"""Imported order persistence.

``order_id`` is the primary key; inserts use ``ON CONFLICT DO NOTHING`` so a
given Shopify order is stored at most once no matter how many sync runs or
concurrent callers try to write it.
"""

from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy import select, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from shared.constants import DEFAULT_ORDER_LIST_LIMIT, REVENUE_STATS_ORDER_LIMIT
from tryon_service.domain import ImportedOrder
from tryon_service.infrastructure.database.models import ImportedOrderRecord

logger = structlog.get_logger()


class OrderRepository:
    """Repository for orders imported from Shopify."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def exists(self, order_id: str) -> bool:
        """Whether an order is already stored. Returns False if the lookup fails."""
        query = text("SELECT 1 FROM tryon.orders WHERE order_id = :order_id")
        try:
            result = await self.session.execute(query, {"order_id": str(order_id)})
            return result.scalar() is not None
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("Error checking order existence", order_id=order_id, error=str(e))
            return False

    async def create(self, order: ImportedOrder) -> ImportedOrder | None:
        """
        Insert an imported order unless one with the same ``order_id`` exists.

        Returns:
            The stored order, or None when it already existed.

        Raises:
            SQLAlchemyError: for any storage failure other than the duplicate
        """
        stmt = (
            pg_insert(ImportedOrderRecord)
            .values(
                order_id=str(order.order_id),
                shop_domain=order.shop_domain,
                order_number=order.order_number,
                total_price=order.total_price,
                currency=order.currency,
                customer_email=order.customer_email,
                line_items=order.line_items,
                has_sbb_items=order.has_sbb_items,
                sbb_session_ids=order.sbb_session_ids,
                created_at=order.created_at,
                synced_at=order.synced_at,
            )
            .on_conflict_do_nothing(index_elements=[ImportedOrderRecord.order_id])
            .returning(ImportedOrderRecord.order_id)
        )
        try:
            result = await self.session.execute(stmt)
            inserted = result.scalar_one_or_none()
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            raise

        if inserted is None:
            logger.info("Order already exists", order_id=order.order_id)
            return None

        logger.info(
            "Order created",
            order_id=order.order_id,
            shop_domain=order.shop_domain,
            total_price=str(order.total_price),
        )
        return order

    async def find_by_shop(
        self, shop_domain: str, limit: int = DEFAULT_ORDER_LIST_LIMIT
    ) -> list[ImportedOrder]:
        """Newest-first orders for a shop. Returns [] if the query fails."""
        stmt = (
            select(ImportedOrderRecord)
            .where(ImportedOrderRecord.shop_domain == shop_domain)
            .order_by(ImportedOrderRecord.created_at.desc())
            .limit(limit)
        )
        try:
            result = await self.session.execute(stmt)
            records = result.scalars().all()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("Error finding orders", shop_domain=shop_domain, error=str(e))
            return []
        return [self._to_domain(record) for record in records]

    async def get_revenue_stats(self, shop_domain: str) -> dict[str, Any]:
        """
        Revenue, order count and buying session ids attributed to try-on,
        over recent orders. Falls back to zeros if the query fails.
        """
        orders = await self.find_by_shop(shop_domain, REVENUE_STATS_ORDER_LIMIT)
        try_on_orders = [order for order in orders if order.has_sbb_items]
        total_revenue = sum((order.total_price for order in try_on_orders), Decimal("0"))
        return {
            "total_revenue": total_revenue,
            "total_orders": len(try_on_orders),
            "session_ids": {sid for order in try_on_orders for sid in order.sbb_session_ids},
        }

    @staticmethod
    def _to_domain(record: ImportedOrderRecord) -> ImportedOrder:
        return ImportedOrder(
            order_id=record.order_id,
            shop_domain=record.shop_domain,
            order_number=record.order_number,
            total_price=Decimal(record.total_price),
            currency=record.currency,
            customer_email=record.customer_email,
            line_items=list(record.line_items or []),
            has_sbb_items=record.has_sbb_items,
            sbb_session_ids=list(record.sbb_session_ids or []),
            created_at=record.created_at,
            synced_at=record.synced_at,
        )
