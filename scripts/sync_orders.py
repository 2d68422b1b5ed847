#!/usr/bin/env python3
"""CLI script to run an order sync for one shop using its stored access token."""

import asyncio
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import structlog

from sync_worker.tasks.sync_orders import run_shop_sync

logger = structlog.get_logger()


async def main(shop_domain: str) -> None:
    """Main sync function."""
    logger.info("Starting order sync", shop_domain=shop_domain)
    result = await run_shop_sync(shop_domain)
    logger.info("Order sync finished", **result)


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("Usage: scripts/sync_orders.py <shop_domain>")
        sys.exit(1)
    asyncio.run(main(sys.argv[1]))
