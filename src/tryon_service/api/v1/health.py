"""Health check endpoints."""

from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import text

from tryon_service import __version__
from tryon_service.config import get_settings
from tryon_service.infrastructure.database.connection import get_db_session
from tryon_service.infrastructure.redis import CacheService, get_redis_client

logger = structlog.get_logger()

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    environment: str
    timestamp: str
    dependencies: dict[str, Any]


class ReadinessResponse(BaseModel):
    """Readiness check response model."""

    ready: bool
    checks: dict[str, bool]


async def check_database() -> bool:
    try:
        async with get_db_session() as session:
            await session.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning("Database readiness check failed", error=str(e))
        return False


async def check_redis() -> bool:
    return await CacheService(await get_redis_client()).health_check()


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Basic health check endpoint.

    Returns the service status and version information.
    This endpoint is used by load balancers and orchestrators
    to determine if the service is running.
    """
    settings = get_settings()

    return HealthResponse(
        status="healthy",
        version=__version__,
        environment=settings.app_env,
        timestamp=datetime.now(timezone.utc).isoformat(),
        dependencies={
            "postgres": "configured",
            "redis": "configured",
            "shopify_api_version": settings.shopify_api_version,
        },
    )


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_check() -> ReadinessResponse:
    """
    Readiness check endpoint.

    Verifies that PostgreSQL and Redis are reachable. Only PostgreSQL is
    required for readiness; Redis only backs the status cache.
    """
    checks = {
        "postgres": await check_database(),
        "redis": await check_redis(),
    }

    return ReadinessResponse(
        ready=checks["postgres"],
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """
    Liveness check endpoint.

    Simple endpoint that returns 200 if the service is running.
    This endpoint is used by Kubernetes liveness probes.
    """
    return {"status": "alive"}
