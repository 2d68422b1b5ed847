"""Order synchronization service.

Imports try-on orders from Shopify into the order store and advances the
shop's sync checkpoint. A run moves the checkpoint from idle to syncing and
always moves it back to idle, whether it succeeds, finds nothing new, or
fails.
"""

from collections.abc import Callable
from datetime import datetime
from decimal import Decimal

import structlog

from tryon_service.domain import (
    ImportedOrder,
    Order,
    ShopSession,
    SyncCheckpoint,
    SyncOutcome,
    SyncResult,
    utcnow,
)
from tryon_service.exceptions import OrderSyncError, ShopNotFoundError
from tryon_service.services.order_filter import extract_session_ids, filter_try_on_orders
from tryon_service.services.order_repository import OrderRepository
from tryon_service.services.shop_repository import ShopRepository
from tryon_service.services.shopify_orders import ShopifyOrderSource

logger = structlog.get_logger()


class OrderSyncService:
    """Runs incremental order syncs for a shop."""

    def __init__(
        self,
        shops: ShopRepository,
        orders: OrderRepository,
        source: ShopifyOrderSource,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Args:
            shops: shop repository (checkpoint reads and writes)
            orders: order repository (idempotent inserts)
            source: order source with ``fetch_orders(session, created_at_min)``
            clock: returns the current aware UTC time
        """
        self.shops = shops
        self.orders = orders
        self.source = source
        self._clock = clock

    async def sync_orders(self, shop_domain: str, session: ShopSession) -> SyncResult:
        """
        Sync new try-on orders for a shop.

        Returns:
            SyncResult with outcome ALREADY_SYNCING, NO_NEW_ORDERS or SYNCED

        Raises:
            ShopNotFoundError: if the shop does not exist
            OrderSyncError: if the run aborted (the sync flag is cleared first)
        """
        shop = await self.shops.find_one(shop_domain)
        if shop is None:
            raise ShopNotFoundError(shop_domain)

        checkpoint = await self.shops.try_begin_sync(shop_domain)
        if checkpoint is None:
            logger.info("Sync already in progress", shop_domain=shop_domain)
            current = SyncCheckpoint.from_dict(shop.order_sync)
            return SyncResult(
                outcome=SyncOutcome.ALREADY_SYNCING,
                total_orders=current.total_orders_synced,
                last_sync_time=current.last_sync_time,
            )

        completed = False
        try:
            result = await self._run(shop, checkpoint, session)
            completed = True
            return result
        except Exception as e:
            logger.error("Order sync failed", shop_domain=shop_domain, error=str(e))
            raise OrderSyncError(shop_domain, f"Failed to sync orders: {e}") from e
        finally:
            if not completed:
                await self._release(shop_domain, checkpoint)

    async def _run(
        self, shop, checkpoint: SyncCheckpoint, session: ShopSession
    ) -> SyncResult:
        shop_domain = shop.shop_domain

        # First sync starts at app install so pre-install orders are never imported
        if checkpoint.is_first_sync:
            created_at_min = shop.created_at
        else:
            created_at_min = checkpoint.last_synced_order_created_at

        logger.info(
            "Starting order sync",
            shop_domain=shop_domain,
            first_sync=checkpoint.is_first_sync,
            created_at_min=created_at_min.isoformat() if created_at_min else None,
        )

        fetched = await self.source.fetch_orders(session, created_at_min=created_at_min)
        try_on_orders = filter_try_on_orders(fetched)

        if not try_on_orders:
            now = self._clock()
            await self.shops.write_checkpoint(
                shop_domain, checkpoint.replace(is_syncing=False, last_sync_time=now)
            )
            logger.info("No new try-on orders", shop_domain=shop_domain)
            return SyncResult(
                outcome=SyncOutcome.NO_NEW_ORDERS,
                total_orders=checkpoint.total_orders_synced,
                last_sync_time=now,
            )

        # Newest first, so the checkpoint tracks the latest order whatever the page order
        try_on_orders.sort(key=lambda order: order.created_at, reverse=True)

        new_orders = 0
        duplicates = 0
        failed = 0
        revenue = Decimal("0")

        for order in try_on_orders:
            try:
                created = await self.orders.create(self._to_imported(order, shop_domain))
            except Exception as e:
                failed += 1
                logger.error(
                    "Error storing order",
                    shop_domain=shop_domain,
                    order_id=order.id,
                    error=str(e),
                )
                continue

            if created is None:
                duplicates += 1
            else:
                new_orders += 1
                revenue += created.total_price

        latest = try_on_orders[0]
        now = self._clock()
        total = checkpoint.total_orders_synced + new_orders
        await self.shops.write_checkpoint(
            shop_domain,
            SyncCheckpoint(
                is_syncing=False,
                last_sync_time=now,
                last_synced_order_id=str(latest.id),
                last_synced_order_number=latest.order_number,
                last_synced_order_created_at=latest.created_at,
                total_orders_synced=total,
                last_sync_count=new_orders,
            ),
        )

        logger.info(
            "Order sync complete",
            shop_domain=shop_domain,
            new_orders=new_orders,
            duplicates_skipped=duplicates,
            failed_orders=failed,
            total_revenue=str(revenue),
        )
        return SyncResult(
            outcome=SyncOutcome.SYNCED,
            new_orders=new_orders,
            duplicates_skipped=duplicates,
            failed_orders=failed,
            total_orders=total,
            total_revenue=revenue,
            last_sync_time=now,
        )

    def _to_imported(self, order: Order, shop_domain: str) -> ImportedOrder:
        return ImportedOrder.from_order(
            order,
            shop_domain,
            extract_session_ids(order),
            synced_at=self._clock(),
        )

    async def _release(self, shop_domain: str, checkpoint: SyncCheckpoint) -> None:
        """Clear the sync flag after an aborted run, keeping the prior progress."""
        try:
            await self.shops.write_checkpoint(shop_domain, checkpoint.replace(is_syncing=False))
        except Exception as e:
            logger.error(
                "Failed to clear sync flag",
                shop_domain=shop_domain,
                error=str(e),
            )
