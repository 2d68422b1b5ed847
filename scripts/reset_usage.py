#!/usr/bin/env python3
"""CLI script to reset a shop's monthly image usage."""

import asyncio
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import structlog

from tryon_service.infrastructure.database.connection import get_db_session
from tryon_service.services.shop_repository import ShopRepository

logger = structlog.get_logger()


async def main(shop_domain: str) -> None:
    async with get_db_session() as session:
        shop = await ShopRepository(session).reset_monthly_usage(shop_domain)

    logger.info(
        "Usage reset",
        shop_domain=shop.shop_domain,
        plan=shop.plan_type,
        used=shop.images_used,
        limit=shop.images_limit,
    )


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("Usage: scripts/reset_usage.py <shop_domain>")
        sys.exit(1)
    asyncio.run(main(sys.argv[1]))
