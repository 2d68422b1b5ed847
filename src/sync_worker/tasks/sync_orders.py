"""Order synchronization tasks."""

import asyncio

import structlog
from celery import shared_task

from tryon_service.domain import ShopSession
from tryon_service.exceptions import ShopNotFoundError
from tryon_service.infrastructure.database.connection import dispose_engine, get_db_session
from tryon_service.infrastructure.redis import (
    CacheService,
    close_redis,
    get_redis_client,
    shop_status_key,
)
from tryon_service.services.order_repository import OrderRepository
from tryon_service.services.order_sync import OrderSyncService
from tryon_service.services.shop_repository import ShopRepository
from tryon_service.services.shopify_orders import ShopifyOrderSource

logger = structlog.get_logger()


async def run_shop_sync(shop_domain: str) -> dict:
    """Sync one shop using its stored offline access token."""
    async with get_db_session() as session:
        shops = ShopRepository(session)
        shop = await shops.find_one(shop_domain)
        if shop is None:
            raise ShopNotFoundError(shop_domain)
        if not shop.access_token:
            logger.warning("Shop has no access token, skipping sync", shop_domain=shop_domain)
            return {"shop_domain": shop_domain, "skipped": True}

        service = OrderSyncService(
            shops,
            OrderRepository(session),
            ShopifyOrderSource.from_settings(),
        )
        result = await service.sync_orders(
            shop_domain,
            ShopSession(shop=shop_domain, access_token=shop.access_token),
        )

    cache = CacheService(await get_redis_client())
    await cache.delete(shop_status_key(shop_domain))
    return {"shop_domain": shop_domain, "skipped": False, **result.to_dict()}


async def list_syncable_shops() -> list[ShopSession]:
    async with get_db_session() as session:
        return await ShopRepository(session).list_syncable_shops()


async def _run_and_cleanup(coro):
    # Each task owns its event loop, so pooled connections cannot outlive it
    try:
        return await coro
    finally:
        await close_redis()
        await dispose_engine()


@shared_task
def sync_all_shops() -> dict:
    """
    Queue an order sync for every active shop with a stored access token.

    Returns:
        dict: Number of shops queued
    """
    logger.info("Queueing scheduled order syncs")
    sessions = asyncio.run(_run_and_cleanup(list_syncable_shops()))
    for shop_session in sessions:
        sync_shop_orders.delay(shop_session.shop)

    logger.info("Scheduled order syncs queued", shops=len(sessions))
    return {"shops_queued": len(sessions)}


@shared_task
def sync_shop_orders(shop_domain: str) -> dict:
    """
    Synchronize try-on orders for one shop.

    A failed run is not retried here; the next scheduled run picks up from
    the unchanged checkpoint.

    Returns:
        dict: Summary of the sync run
    """
    logger.info("Starting scheduled order sync", shop_domain=shop_domain)
    return asyncio.run(_run_and_cleanup(run_shop_sync(shop_domain)))
