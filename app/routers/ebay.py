"""
FastAPI router for the eBay integration.
Tenant-scoped endpoints for connecting accounts, choosing listings, syncing orders,
submitting fulfillments and reconciling inventory quantities.
"""

from typing import Any, List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from app.integrations.ebay.errors import (
    MarketplaceRejected,
    MarketplaceSyncError,
    TokenInvalid,
    Unauthorized,
    ValidationFailed,
)
from app.integrations.ebay.fulfillment import FulfillmentLine
from app.integrations.ebay.order_sync import MAX_ORDER_PAGES
from app.models.database import ListingSourceTag, SelectedListing
from app.routers.auth import verify_token
from app.services.ebay_services import EbayServices, get_ebay_services

logger = structlog.get_logger()

router = APIRouter(prefix="/api/integrations/ebay", tags=["ebay"])


def to_http_error(error: MarketplaceSyncError) -> HTTPException:
    """Map a sync engine error onto the HTTP response the caller sees."""
    if isinstance(error, Unauthorized):
        return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(error))
    if isinstance(error, ValidationFailed):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    if isinstance(error, TokenInvalid):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": "eBay authorization expired. Reconnect your eBay account.", "reason": str(error)},
        )
    if isinstance(error, MarketplaceRejected):
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"error": error.message, "detail": error.detail},
        )
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True


class ExchangeTokenRequest(CamelModel):
    code: str
    add_new: bool = False


class SelectedListingIn(CamelModel):
    listing_id: Optional[str] = None
    offer_id: Optional[str] = None
    title: Optional[str] = None
    sku: Optional[str] = None
    status: Optional[str] = None
    source: ListingSourceTag = "unknown"


class SaveSelectionRequest(CamelModel):
    connection_id: Optional[str] = None
    selected_listings: List[SelectedListingIn] = Field(default_factory=list)
    offer_ids: List[str] = Field(default_factory=list)
    listing_ids: List[str] = Field(default_factory=list)


class SyncOrdersRequest(CamelModel):
    connection_id: Optional[str] = None
    filter_not_started: bool = False
    max_pages: int = Field(default=MAX_ORDER_PAGES, ge=1, le=100)


class FulfillmentLineIn(CamelModel):
    line_item_id: str
    quantity: int


class FulfillmentRequest(CamelModel):
    connection_id: Optional[str] = None
    order_id: str
    line_items: List[FulfillmentLineIn] = Field(default_factory=list)
    shipping_carrier_code: Optional[str] = None
    tracking_number: Optional[str] = None
    shipped_date: Optional[str] = None


class RefreshInventoryRequest(CamelModel):
    connection_id: str


class SyncInventoryRequest(CamelModel):
    connection_id: str
    new_quantity: float
    offer_id: Optional[str] = None
    listing_id: Optional[str] = None


@router.get("/authorize-url")
async def get_authorize_url(
    add_new: bool = Query(False, alias="addNew"),
    user_data: dict = Depends(verify_token),
    services: EbayServices = Depends(get_ebay_services),
):
    """Consent URL for connecting (or adding another) eBay seller account."""
    try:
        return {"url": services.tokens.build_authorize_url(add_new)}
    except MarketplaceSyncError as e:
        raise to_http_error(e) from e


@router.post("/exchange-token")
async def exchange_token(
    request: ExchangeTokenRequest,
    user_data: dict = Depends(verify_token),
    services: EbayServices = Depends(get_ebay_services),
):
    """Exchange the OAuth code returned to the RuName redirect and store the connection."""
    try:
        connection = await services.tokens.exchange_code(user_data["tenant_id"], request.code, request.add_new)
    except MarketplaceSyncError as e:
        raise to_http_error(e) from e
    return {
        "success": True,
        "connection_id": connection.id,
        "environment": connection.environment,
    }


@router.get("/connections")
async def list_connections(
    user_data: dict = Depends(verify_token),
    services: EbayServices = Depends(get_ebay_services),
):
    """List the tenant's eBay connections, most recently connected first."""
    tenant_id = user_data["tenant_id"]
    rows = []
    for connection in services.connections.list_for_tenant(tenant_id):
        selection = services.selections.get(tenant_id, connection.id)
        rows.append(
            {
                "id": connection.id,
                "connected_at": connection.connected_at,
                "environment": connection.environment,
                "selected_count": len(selection.selected_listings),
                "last_order_sync_at": selection.last_order_sync_at,
            }
        )
    return {"connections": rows}


@router.delete("/connections/{connection_id}")
async def delete_connection(
    connection_id: str,
    user_data: dict = Depends(verify_token),
    services: EbayServices = Depends(get_ebay_services),
):
    """Disconnect an eBay account. Its listing selection goes with it."""
    tenant_id = user_data["tenant_id"]
    if not services.tokens.disconnect(tenant_id, connection_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="eBay connection not found")
    services.selections.delete(tenant_id, connection_id)
    return {"success": True}


@router.get("/listings")
async def get_listings(
    connection_id: Optional[str] = Query(None, alias="connectionId"),
    user_data: dict = Depends(verify_token),
    services: EbayServices = Depends(get_ebay_services),
):
    """Every listing of the connection, merged across the Inventory and Trading APIs."""
    try:
        connection = await services.tokens.get_valid_token(user_data["tenant_id"], connection_id)
        if connection is None:
            raise ValidationFailed("No eBay connection. Connect your eBay account first.")
        result = await services.discovery.discover_listings(connection)
    except MarketplaceSyncError as e:
        raise to_http_error(e) from e

    return {
        "connection_id": connection.id,
        "listings": [listing.model_dump() for listing in result.listings],
        "partial": [
            {"source": p.source, "reason": p.reason, "pages_fetched": p.pages_fetched}
            for p in result.partial
        ],
    }


@router.get("/selected-listings")
async def get_selected_listings(
    connection_id: Optional[str] = Query(None, alias="connectionId"),
    user_data: dict = Depends(verify_token),
    services: EbayServices = Depends(get_ebay_services),
):
    """The listings this tenant fulfills internally."""
    selection = services.selection_service.get_selection(user_data["tenant_id"], connection_id)
    if selection is None:
        return {"connection_id": None, "selected_listings": [], "selected_offer_ids": [], "selected_listing_ids": []}
    return selection.model_dump()


@router.post("/selected-listings")
async def save_selected_listings(
    request: SaveSelectionRequest,
    user_data: dict = Depends(verify_token),
    services: EbayServices = Depends(get_ebay_services),
):
    """Replace the selected listing set for a connection."""
    listings = [SelectedListing(**row.model_dump()) for row in request.selected_listings]
    try:
        saved = await services.selection_service.save_selection(
            user_data["tenant_id"],
            request.connection_id,
            listings,
            request.offer_ids,
            request.listing_ids,
        )
    except MarketplaceSyncError as e:
        raise to_http_error(e) from e
    return {"success": True, **saved.model_dump()}


@router.post("/orders/sync")
async def sync_orders(
    request: SyncOrdersRequest,
    user_data: dict = Depends(verify_token),
    services: EbayServices = Depends(get_ebay_services),
):
    """Pull eBay orders containing selected listings into the order store."""
    try:
        result = await services.order_sync.sync_orders(
            user_data["tenant_id"],
            request.connection_id,
            filter_not_started=request.filter_not_started,
            max_pages=request.max_pages,
        )
    except MarketplaceSyncError as e:
        raise to_http_error(e) from e

    if not result.ok:
        code = status.HTTP_400_BAD_REQUEST if result.connection_id is None else status.HTTP_502_BAD_GATEWAY
        raise HTTPException(status_code=code, detail=result.to_dict())
    return result.to_dict()


@router.get("/orders")
async def list_orders(
    limit: int = Query(200, ge=1, le=500),
    user_data: dict = Depends(verify_token),
    services: EbayServices = Depends(get_ebay_services),
):
    """Stored eBay orders, newest first."""
    orders = services.orders.list_for_tenant(user_data["tenant_id"], limit=limit)
    return {"orders": [order.model_dump() for order in orders]}


@router.post("/fulfillment")
async def create_fulfillment(
    request: FulfillmentRequest,
    user_data: dict = Depends(verify_token),
    services: EbayServices = Depends(get_ebay_services),
):
    """Mark line items of an eBay order as shipped, with optional tracking."""
    lines = [FulfillmentLine(li.line_item_id, li.quantity) for li in request.line_items]
    try:
        result = await services.fulfillment.fulfill_order(
            user_data["tenant_id"],
            request.connection_id,
            request.order_id,
            lines,
            carrier_code=request.shipping_carrier_code,
            tracking_number=request.tracking_number,
            shipped_date=request.shipped_date,
        )
    except MarketplaceSyncError as e:
        raise to_http_error(e) from e
    return {"ok": result.ok, "fulfillment_id": result.fulfillment_id}


@router.post("/refresh-inventory")
async def refresh_inventory(
    request: RefreshInventoryRequest,
    user_data: dict = Depends(verify_token),
    services: EbayServices = Depends(get_ebay_services),
):
    """Pull current eBay quantities into inventory for the connection's selected listings."""
    try:
        result = await services.reconciler.refresh_inventory_from_marketplace(
            user_data["tenant_id"], request.connection_id
        )
    except MarketplaceSyncError as e:
        raise to_http_error(e) from e
    if result.error:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=result.error)
    return {"ok": True, "updated": result.updated, "skipped": result.skipped}


@router.post("/sync-inventory")
async def sync_inventory(
    request: SyncInventoryRequest,
    user_data: dict = Depends(verify_token),
    services: EbayServices = Depends(get_ebay_services),
) -> dict[str, Any]:
    """Push an internally edited quantity to eBay."""
    try:
        quantity = await services.reconciler.set_marketplace_quantity(
            user_data["tenant_id"],
            request.connection_id,
            request.new_quantity,
            offer_id=request.offer_id,
            listing_id=request.listing_id,
        )
    except MarketplaceSyncError as e:
        raise to_http_error(e) from e
    return {"ok": True, "quantity": quantity}
