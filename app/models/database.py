"""
Pydantic models for the documents persisted by the sync engine.
Each model maps to one keyed document under a tenant (see app.services.repositories).
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Literal
from datetime import datetime


ListingSourceTag = Literal["inventory-api", "trading-api", "unknown"]
Environment = Literal["sandbox", "production"]


class Connection(BaseModel):
    """Model for ebay_connections documents. Written only by the token manager."""
    id: str
    tenant_id: str
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: datetime
    refresh_expires_at: Optional[datetime] = None
    environment: Environment = "sandbox"
    connected_at: datetime

    @property
    def is_sandbox(self) -> bool:
        return self.environment == "sandbox"


class SelectedListing(BaseModel):
    """One listing the tenant fulfills internally."""
    listing_id: Optional[str] = None  # marketplace item id, stable across both APIs
    offer_id: Optional[str] = None  # Inventory API offer id, when the listing has one
    title: Optional[str] = None
    sku: Optional[str] = None
    status: Optional[str] = None
    source: ListingSourceTag = "unknown"

    @property
    def key(self) -> str:
        return self.listing_id or self.offer_id or ""


class ConnectionSelection(BaseModel):
    """Model for ebay_selections documents (keyed by connection id)."""
    connection_id: str
    selected_listings: List[SelectedListing] = Field(default_factory=list)
    selected_offer_ids: List[str] = Field(default_factory=list)
    selected_listing_ids: List[str] = Field(default_factory=list)
    last_order_sync_at: Optional[datetime] = None
    last_inventory_refresh_at: Optional[datetime] = None

    def listing_id_set(self) -> set[str]:
        """Listing ids that gate order line items."""
        ids = {i for i in self.selected_listing_ids if i}
        ids.update(s.listing_id for s in self.selected_listings if s.listing_id)
        return ids

    @property
    def is_empty(self) -> bool:
        return not self.selected_listings and not self.selected_listing_ids and not self.selected_offer_ids


class BuyerContact(BaseModel):
    email: Optional[str] = None
    full_name: Optional[str] = None


class LineItem(BaseModel):
    """Line item embedded in a stored order."""
    line_item_id: Optional[str] = None
    listing_id: Optional[str] = None  # eBay legacyItemId
    sku: Optional[str] = None
    title: Optional[str] = None
    quantity: int = 0
    fulfillment_status: Optional[str] = None  # NOT_STARTED | IN_PROGRESS | FULFILLED

    @property
    def is_fulfillable(self) -> bool:
        return (self.fulfillment_status or "NOT_STARTED") in ("NOT_STARTED", "IN_PROGRESS")


class MarketplaceOrder(BaseModel):
    """Model for ebay_orders documents, keyed by the eBay order id."""
    order_id: str
    connection_id: Optional[str] = None
    creation_date: Optional[str] = None
    last_modified_date: Optional[str] = None
    order_fulfillment_status: Optional[str] = None
    order_payment_status: Optional[str] = None
    buyer: Optional[BuyerContact] = None
    line_items: List[LineItem] = Field(default_factory=list)
    synced_at: Optional[datetime] = None


class InventoryRecord(BaseModel):
    """Model for inventory documents sourced from eBay."""
    id: str
    product_name: Optional[str] = None
    sku: Optional[str] = None
    quantity: int = 0
    status: Literal["In Stock", "Out of Stock"] = "Out of Stock"
    source: Optional[str] = None
    ebay_connection_id: Optional[str] = None
    ebay_offer_id: Optional[str] = None
    ebay_listing_id: Optional[str] = None
    updated_at: Optional[datetime] = None
