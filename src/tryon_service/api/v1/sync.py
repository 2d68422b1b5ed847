"""Order sync API endpoints."""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from tryon_service.api.deps import get_order_sync_service
from tryon_service.domain import ShopSession, SyncOutcome, format_timestamp
from tryon_service.exceptions import OrderSyncError, ShopNotFoundError
from tryon_service.infrastructure.redis import CacheService, get_cache, shop_status_key
from tryon_service.services.order_sync import OrderSyncService

router = APIRouter()


# =============================================================================
# Request / Response Models
# =============================================================================


class SessionPayload(BaseModel):
    """Authenticated Shopify session forwarded by the embedded app."""

    model_config = ConfigDict(populate_by_name=True)

    shop: str = Field(..., min_length=1, description="Store domain, e.g. example.myshopify.com")
    access_token: str = Field(..., min_length=1, alias="accessToken")


class SyncOrdersRequest(BaseModel):
    """Request model for a manual order sync."""

    shop_domain: str = Field(..., min_length=1, description="Shop to sync")
    session: SessionPayload


class SyncOrdersResponse(BaseModel):
    """Summary of a sync request."""

    success: bool
    message: str
    is_syncing: bool = False
    new_orders: int = 0
    duplicates_skipped: int = 0
    failed_orders: int = 0
    total_orders: int = 0
    total_revenue: float = 0.0
    last_sync_time: str | None = None


# =============================================================================
# Endpoints
# =============================================================================


@router.post("", response_model=SyncOrdersResponse)
async def sync_orders(
    request: SyncOrdersRequest,
    service: OrderSyncService = Depends(get_order_sync_service),
    cache: CacheService = Depends(get_cache),
) -> SyncOrdersResponse:
    """
    Import new try-on orders from Shopify for a shop.

    Returns `success: false, is_syncing: true` when another sync for the same
    shop is still running. A run that finds nothing new succeeds with
    `new_orders: 0`.
    """
    session = ShopSession(
        shop=request.session.shop,
        access_token=request.session.access_token,
    )
    try:
        result = await service.sync_orders(request.shop_domain, session)
    except ShopNotFoundError:
        raise HTTPException(status_code=404, detail="Shop not found")
    except OrderSyncError as e:
        raise HTTPException(
            status_code=500,
            detail={"error": "Failed to sync orders", "message": e.message},
        )

    already_syncing = result.outcome is SyncOutcome.ALREADY_SYNCING
    if not already_syncing:
        await cache.delete(shop_status_key(request.shop_domain))

    return SyncOrdersResponse(
        success=not already_syncing,
        message=result.message,
        is_syncing=already_syncing,
        new_orders=result.new_orders,
        duplicates_skipped=result.duplicates_skipped,
        failed_orders=result.failed_orders,
        total_orders=result.total_orders,
        total_revenue=float(result.total_revenue),
        last_sync_time=format_timestamp(result.last_sync_time),
    )
