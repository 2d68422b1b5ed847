"""Shop status, app status, usage quota and usage event endpoints."""

from typing import Any, Literal

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from shared.constants import EVENT_IMAGE_GENERATED, EVENT_LIMIT_REACHED
from tryon_service.api.deps import (
    get_order_repository,
    get_shop_repository,
    get_usage_event_repository,
)
from tryon_service.config import get_settings
from tryon_service.domain import SyncCheckpoint, format_timestamp
from tryon_service.infrastructure.database.models import Shop
from tryon_service.infrastructure.redis import CacheService, get_cache, shop_status_key
from tryon_service.services.order_repository import OrderRepository
from tryon_service.services.shop_repository import ShopRepository
from tryon_service.services.usage_events import UsageEventRepository, build_metrics

logger = structlog.get_logger()

router = APIRouter()


# =============================================================================
# Request / Response Models
# =============================================================================


class ShopInfo(BaseModel):
    domain: str
    plan: str
    is_active: bool
    app_status: str


class UsageInfo(BaseModel):
    used: int
    limit: int
    remaining: int


class RevenueInfo(BaseModel):
    total_revenue: float
    total_orders: int


class UsageStats(BaseModel):
    total_images_generated: int = 0
    total_add_to_cart: int = 0
    total_limit_reached: int = 0


class ShopMetrics(BaseModel):
    """Try-on funnel metrics combining usage events with imported orders."""

    try_on_generated: int = 0
    unique_users: int = 0
    add_to_cart_count: int = 0
    add_to_cart_rate: float = 0.0
    credit_remaining: int = 0
    credit_used: int = 0
    avg_try_on_per_product: float = 0.0
    total_revenue: float = 0.0
    total_orders: int = 0
    revenue_per_try_on: float = 0.0
    converted_users: int = 0
    user_conversion_rate: float = 0.0


class ProductAnalytics(BaseModel):
    product_name: str
    try_on_count: int
    add_to_cart_count: int
    conversion_rate: float


class ShopRegistration(BaseModel):
    """Install callback from the embedded app."""

    model_config = ConfigDict(populate_by_name=True)

    shop_domain: str = Field(..., min_length=1)
    access_token: str | None = Field(default=None, alias="accessToken")


class AppStatusRequest(BaseModel):
    status: Literal["disabled", "active"]


class AppStatusResponse(BaseModel):
    success: bool
    message: str
    shop_domain: str
    app_status: str
    updated_at: str | None = None


class ImageUsageRequest(BaseModel):
    """Optional context for a generated try-on image."""

    session_id: str | None = None
    product_id: str | None = None
    product_name: str | None = None


class UsageEventRequest(BaseModel):
    event_type: Literal["image_generated", "add_to_cart", "limit_reached"]
    session_id: str | None = None
    product_id: str | None = None
    product_name: str | None = None


class UsageEventResponse(BaseModel):
    success: bool
    message: str


class ShopStatusResponse(BaseModel):
    """Shop overview: plan, quota, sync checkpoint, try-on metrics and revenue."""

    account_exists: bool
    shop: ShopInfo | None = None
    usage: UsageInfo | None = None
    order_sync: dict[str, Any] | None = None
    stats: UsageStats | None = None
    metrics: ShopMetrics | None = None
    revenue: RevenueInfo | None = None
    top_products: list[ProductAnalytics] = Field(default_factory=list)


def _usage(shop: Shop) -> UsageInfo:
    return UsageInfo(
        used=shop.images_used,
        limit=shop.images_limit,
        remaining=max(shop.images_limit - shop.images_used, 0),
    )


def _shop_info(shop: Shop) -> ShopInfo:
    return ShopInfo(
        domain=shop.shop_domain,
        plan=shop.plan_type,
        is_active=shop.is_active,
        app_status=shop.app_status,
    )


# =============================================================================
# Endpoints
# =============================================================================


@router.post("", response_model=ShopInfo)
async def register_shop(
    request: ShopRegistration,
    shops: ShopRepository = Depends(get_shop_repository),
    cache: CacheService = Depends(get_cache),
) -> ShopInfo:
    """
    Create the shop on first install, on the free plan with an empty sync
    checkpoint. When an offline access token is supplied it is stored for
    scheduled order syncs.
    """
    shop = await shops.find_or_create(request.shop_domain)
    if request.access_token:
        shop = await shops.save_access_token(request.shop_domain, request.access_token)

    await cache.delete(shop_status_key(request.shop_domain))
    return _shop_info(shop)


@router.get("/{shop_domain}/status", response_model=ShopStatusResponse)
async def get_shop_status(
    shop_domain: str,
    shops: ShopRepository = Depends(get_shop_repository),
    orders: OrderRepository = Depends(get_order_repository),
    events: UsageEventRepository = Depends(get_usage_event_repository),
    cache: CacheService = Depends(get_cache),
) -> ShopStatusResponse:
    """
    Get plan, usage, order sync checkpoint, try-on metrics and revenue for a shop.

    Unknown shops are reported with `account_exists: false` rather than 404,
    so the embedded app can start onboarding.
    """
    cache_key = shop_status_key(shop_domain)
    cached = await cache.get(cache_key)
    if cached:
        return ShopStatusResponse(**cached)

    shop = await shops.find_one(shop_domain)
    if shop is None:
        logger.info("Status requested for unknown shop", shop_domain=shop_domain)
        return ShopStatusResponse(account_exists=False)

    # Read the shop before the analytics queries: their failure fallback
    # rolls the session back, which expires loaded instances
    shop_info = _shop_info(shop)
    usage = _usage(shop)
    order_sync = SyncCheckpoint.from_dict(shop.order_sync).to_dict()

    summary = await events.get_summary(shop_domain)
    revenue = await orders.get_revenue_stats(shop_domain)

    response = ShopStatusResponse(
        account_exists=True,
        shop=shop_info,
        usage=usage,
        order_sync=order_sync,
        stats=UsageStats(
            total_images_generated=summary.counts[EVENT_IMAGE_GENERATED],
            total_add_to_cart=summary.counts["add_to_cart"],
            total_limit_reached=summary.counts[EVENT_LIMIT_REACHED],
        ),
        metrics=ShopMetrics(**build_metrics(summary, revenue, usage.used, usage.limit)),
        revenue=RevenueInfo(
            total_revenue=float(revenue["total_revenue"]),
            total_orders=revenue["total_orders"],
        ),
        top_products=[ProductAnalytics(**product) for product in summary.top_products],
    )
    await cache.set(
        cache_key,
        response.model_dump(),
        ttl_seconds=get_settings().shop_status_cache_ttl_seconds,
    )
    return response


@router.post("/{shop_domain}/app-status", response_model=AppStatusResponse)
async def update_app_status(
    shop_domain: str,
    request: AppStatusRequest,
    shops: ShopRepository = Depends(get_shop_repository),
    cache: CacheService = Depends(get_cache),
) -> AppStatusResponse:
    """
    Mark the storefront widget as active or disabled.

    Called when the merchant enables or removes the theme app extension.
    """
    if await shops.find_one(shop_domain) is None:
        raise HTTPException(status_code=404, detail="Shop not found")

    shop = await shops.update_app_status(shop_domain, request.status)
    await cache.delete(shop_status_key(shop_domain))
    return AppStatusResponse(
        success=True,
        message=f"App status updated to {shop.app_status}",
        shop_domain=shop.shop_domain,
        app_status=shop.app_status,
        updated_at=format_timestamp(shop.updated_at),
    )


@router.post("/{shop_domain}/usage", response_model=UsageInfo)
async def record_image_generated(
    shop_domain: str,
    request: ImageUsageRequest | None = None,
    shops: ShopRepository = Depends(get_shop_repository),
    events: UsageEventRepository = Depends(get_usage_event_repository),
    cache: CacheService = Depends(get_cache),
) -> UsageInfo:
    """
    Count one generated try-on image against the shop's monthly quota and
    log it as an `image_generated` event.

    Responds 403 when the shop is inactive or the quota is used up; a full
    quota is logged as a `limit_reached` event.
    """
    request = request or ImageUsageRequest()
    shop = await shops.find_one(shop_domain)
    if shop is None:
        raise HTTPException(status_code=404, detail="Shop not found")

    if not ShopRepository.can_generate_image(shop):
        if shop.is_active:
            await events.create(
                shop_domain,
                EVENT_LIMIT_REACHED,
                session_id=request.session_id,
                product_id=request.product_id,
                product_name=request.product_name,
            )
            await cache.delete(shop_status_key(shop_domain))
        raise HTTPException(status_code=403, detail="Monthly image limit reached")

    shop = await shops.increment_usage(shop_domain)
    usage = _usage(shop)
    await events.create(
        shop_domain,
        EVENT_IMAGE_GENERATED,
        session_id=request.session_id,
        product_id=request.product_id,
        product_name=request.product_name,
    )
    await cache.delete(shop_status_key(shop_domain))
    return usage


@router.post("/{shop_domain}/events", response_model=UsageEventResponse)
async def track_usage_event(
    shop_domain: str,
    request: UsageEventRequest,
    shops: ShopRepository = Depends(get_shop_repository),
    events: UsageEventRepository = Depends(get_usage_event_repository),
    cache: CacheService = Depends(get_cache),
) -> UsageEventResponse:
    """Record a storefront event such as an add-to-cart after a try-on."""
    if await shops.find_one(shop_domain) is None:
        raise HTTPException(status_code=404, detail="Shop not found")

    await events.create(
        shop_domain,
        request.event_type,
        session_id=request.session_id,
        product_id=request.product_id,
        product_name=request.product_name,
    )
    await cache.delete(shop_status_key(shop_domain))
    return UsageEventResponse(success=True, message="Event tracked successfully")
