"""API v1 router that aggregates all endpoint routers."""

from fastapi import APIRouter

from tryon_service.api.v1 import (
    health,
    shops,
    sync,
)

api_router = APIRouter()

# Include all routers
api_router.include_router(
    health.router,
    tags=["Health"],
)

api_router.include_router(
    sync.router,
    prefix="/sync-orders",
    tags=["Order Sync"],
)

api_router.include_router(
    shops.router,
    prefix="/shops",
    tags=["Shops"],
)
