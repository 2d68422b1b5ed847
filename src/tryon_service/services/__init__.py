"""Business logic services."""

from tryon_service.services.order_repository import OrderRepository
from tryon_service.services.order_sync import OrderSyncService
from tryon_service.services.shop_repository import ShopRepository
from tryon_service.services.shopify_orders import ShopifyOrderSource

__all__ = [
    "OrderRepository",
    "OrderSyncService",
    "ShopRepository",
    "ShopifyOrderSource",
]
