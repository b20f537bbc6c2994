"""
Scheduler-triggered endpoints for the eBay batch jobs.
Guarded by a shared secret (Authorization: Bearer <secret> or ?secret=).
"""

import hmac
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Query, status

from app.config import settings
from app.services.ebay_services import EbayServices, get_ebay_services
from app.workers.auto_sync import run_auto_sync

logger = structlog.get_logger()

router = APIRouter(prefix="/api/cron/ebay", tags=["cron"])


async def verify_cron_secret(
    authorization: Optional[str] = Header(None),
    secret: Optional[str] = Query(None),
) -> None:
    """Reject the request unless it carries the configured cron secret."""
    expected = settings.cron_secret
    if not expected:
        logger.warning("Cron request rejected, no cron secret configured")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    provided = secret
    if authorization and authorization.lower().startswith("bearer "):
        provided = authorization[7:].strip()
    if not provided or not hmac.compare_digest(provided, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


@router.api_route("/auto-sync", methods=["GET", "POST"], dependencies=[Depends(verify_cron_secret)])
async def auto_sync(services: EbayServices = Depends(get_ebay_services)):
    """Sync orders for every connection with a listing selection."""
    result = await run_auto_sync(
        services,
        max_pages=settings.auto_sync_max_pages,
        max_connections=settings.auto_sync_max_connections,
    )
    return result.to_dict()


@router.post("/refresh-inventory", dependencies=[Depends(verify_cron_secret)])
async def refresh_inventory_all(services: EbayServices = Depends(get_ebay_services)):
    """Pull eBay quantities for the first N connections."""
    result = await services.reconciler.refresh_all(settings.refresh_inventory_max_connections)
    return {
        "ok": True,
        "connections": result.connections,
        "total_updated": result.total_updated,
        "errors": result.errors,
    }
