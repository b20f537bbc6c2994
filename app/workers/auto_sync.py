"""
Batch orchestrator: runs order sync for every eligible connection on a schedule.
One connection's failure is recorded and never stops the rest of the batch.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any

import structlog

from app.config import settings
from app.integrations.ebay.errors import MarketplaceRejected, TokenInvalid
from app.services.ebay_services import EbayServices, get_ebay_services
from app.utils.logger import connection_log_context

logger = structlog.get_logger()


@dataclass
class AutoSyncResult:
    scanned: int = 0
    attempted: int = 0
    synced_connections: int = 0
    total_fetched: int = 0
    total_saved: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": True,
            "scanned": self.scanned,
            "attempted": self.attempted,
            "synced_connections": self.synced_connections,
            "total_fetched": self.total_fetched,
            "total_saved": self.total_saved,
            "errors": self.errors,
        }


async def run_auto_sync(
    services: EbayServices,
    max_pages: int,
    max_connections: int,
) -> AutoSyncResult:
    """
    Sync orders for up to max_connections connections that have a listing selection.

    Connections are processed one at a time; the batch keeps going past failures.
    """
    result = AutoSyncResult()
    connections = services.connections.list_all(max_connections)
    result.scanned = len(connections)

    for connection in connections:
        label = f"{connection.tenant_id}/{connection.id}"
        try:
            with connection_log_context(connection.tenant_id, connection.id):
                if services.selections.get(connection.tenant_id, connection.id).is_empty:
                    continue
                result.attempted += 1
                synced = await services.order_sync.sync_orders(
                    connection.tenant_id,
                    connection.id,
                    max_pages=max_pages,
                )
        except TokenInvalid as e:
            result.errors.append(f"{label}: {e}")
            logger.warning("Auto-sync skipped connection, reconnect required", connection=label)
            continue
        except MarketplaceRejected as e:
            result.errors.append(f"{label}: {e.message}")
            continue
        except Exception as e:
            result.errors.append(f"{label}: {e}")
            logger.error("Auto-sync failed for connection", connection=label, error=str(e))
            continue

        result.total_fetched += synced.total_fetched
        result.total_saved += synced.total_saved
        if synced.ok:
            result.synced_connections += 1
        else:
            result.errors.append(f"{label}: {synced.error or 'sync failed'}")

    logger.info(
        "eBay auto-sync completed",
        scanned=result.scanned,
        attempted=result.attempted,
        synced_connections=result.synced_connections,
        total_saved=result.total_saved,
        errors=len(result.errors),
    )
    return result


class AutoSyncWorker:
    """Runs the auto-sync batch on a fixed interval."""

    def __init__(self, services: EbayServices | None = None, interval_seconds: int | None = None):
        self.services = services or get_ebay_services()
        self.interval_seconds = interval_seconds or settings.auto_sync_interval_seconds
        self.running = False

    async def start(self):
        """Start the auto-sync loop."""
        self.running = True
        logger.info("eBay auto-sync worker started", interval_seconds=self.interval_seconds)

        while self.running:
            try:
                await run_auto_sync(
                    self.services,
                    max_pages=settings.auto_sync_max_pages,
                    max_connections=settings.auto_sync_max_connections,
                )
            except Exception as e:
                logger.error("Error in auto-sync worker loop", error=str(e))

            await asyncio.sleep(self.interval_seconds)

    async def stop(self):
        """Stop the auto-sync loop and release the HTTP client."""
        self.running = False
        if self.services.http_client is not None:
            await self.services.http_client.aclose()
        logger.info("eBay auto-sync worker stopped")


async def run_worker():
    """Run the auto-sync worker until interrupted."""
    worker = AutoSyncWorker()
    try:
        await worker.start()
    except KeyboardInterrupt:
        logger.info("Received shutdown signal")
    finally:
        await worker.stop()
