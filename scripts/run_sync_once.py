"""
Single-pass eBay sync for an external scheduler.
Runs one auto-sync batch and, with --inventory, one inventory refresh pass, then exits.
Exit code is 1 when any connection reported an error.
"""

import argparse
import asyncio
import sys

import structlog

from app.config import settings
from app.services.ebay_services import get_ebay_services
from app.utils.logger import configure_logging
from app.workers.auto_sync import run_auto_sync

configure_logging()
logger = structlog.get_logger()


async def main(refresh_inventory: bool) -> int:
    services = get_ebay_services()
    errors: list[str] = []

    logger.info("Scheduled eBay sync: starting")
    result = await run_auto_sync(
        services,
        max_pages=settings.auto_sync_max_pages,
        max_connections=settings.auto_sync_max_connections,
    )
    errors.extend(result.errors)

    if refresh_inventory:
        refreshed = await services.reconciler.refresh_all(settings.refresh_inventory_max_connections)
        errors.extend(refreshed.errors)
        logger.info(
            "Scheduled inventory refresh finished",
            connections=refreshed.connections,
            total_updated=refreshed.total_updated,
        )

    logger.info(
        "Scheduled eBay sync: finished",
        synced_connections=result.synced_connections,
        total_saved=result.total_saved,
        errors=errors,
    )
    return 1 if errors else 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--inventory", action="store_true", help="also pull eBay quantities")
    args = parser.parse_args()
    sys.exit(asyncio.run(main(args.inventory)))
