"""FastAPI dependencies wiring repositories and services per request."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tryon_service.infrastructure.database.connection import get_session
from tryon_service.services.order_repository import OrderRepository
from tryon_service.services.order_sync import OrderSyncService
from tryon_service.services.shop_repository import ShopRepository
from tryon_service.services.shopify_orders import ShopifyOrderSource
from tryon_service.services.usage_events import UsageEventRepository


def get_order_source() -> ShopifyOrderSource:
    return ShopifyOrderSource.from_settings()


def get_shop_repository(session: AsyncSession = Depends(get_session)) -> ShopRepository:
    return ShopRepository(session)


def get_order_repository(session: AsyncSession = Depends(get_session)) -> OrderRepository:
    return OrderRepository(session)


def get_order_sync_service(
    shops: ShopRepository = Depends(get_shop_repository),
    orders: OrderRepository = Depends(get_order_repository),
    source: ShopifyOrderSource = Depends(get_order_source),
) -> OrderSyncService:
    return OrderSyncService(shops, orders, source)


def get_usage_event_repository(
    session: AsyncSession = Depends(get_session),
) -> UsageEventRepository:
    return UsageEventRepository(session)
