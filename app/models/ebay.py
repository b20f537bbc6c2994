"""
Pydantic models for eBay API payloads.
REST (Inventory / Fulfillment) responses use eBay's camelCase field names.
Trading API listings are parsed from XML into TradingApiListing.
"""

from typing import Annotated, Literal

from pydantic import BaseModel, Field


class EbayTokenResponse(BaseModel):
    """OAuth token endpoint response."""

    access_token: str
    refresh_token: str | None = None
    expires_in: int = 7200
    refresh_token_expires_in: int = 47304000

    class Config:
        extra = "allow"


class EbayLineItem(BaseModel):
    lineItemId: str | None = None
    legacyItemId: str | None = None
    sku: str | None = None
    title: str | None = None
    quantity: int = 0
    lineItemFulfillmentStatus: str | None = None

    class Config:
        extra = "allow"


class EbayBuyer(BaseModel):
    username: str | None = None
    email: str | None = None
    fullName: str | None = None

    class Config:
        extra = "allow"


class EbayOrder(BaseModel):
    orderId: str | None = None
    creationDate: str | None = None
    lastModifiedDate: str | None = None
    orderFulfillmentStatus: str | None = None
    orderPaymentStatus: str | None = None
    buyer: EbayBuyer | None = None
    lineItems: list[EbayLineItem] = Field(default_factory=list)

    class Config:
        extra = "allow"


class EbayOrderSearchPage(BaseModel):
    orders: list[EbayOrder] = Field(default_factory=list)
    next: str | None = None
    total: int | None = None

    class Config:
        extra = "allow"


class EbayOfferListing(BaseModel):
    listingId: str | None = None
    listingStatus: str | None = None

    class Config:
        extra = "allow"


class EbayOffer(BaseModel):
    offerId: str | None = None
    sku: str | None = None
    status: str | None = None
    availableQuantity: int | None = None
    listing: EbayOfferListing | None = None

    class Config:
        extra = "allow"


class InventoryApiListing(BaseModel):
    """A listing as reported by the REST Inventory API (offer + inventory item)."""

    source: Literal["inventory-api"] = "inventory-api"
    offer_id: str
    sku: str
    title: str | None = None
    status: str | None = None
    listing_id: str | None = None
    available_quantity: int | None = None


class TradingApiListing(BaseModel):
    """A listing as reported by the Trading API (GetMyeBaySelling ActiveList)."""

    source: Literal["trading-api"] = "trading-api"
    item_id: str
    sku: str | None = None
    title: str | None = None
    listing_status: str | None = None
    quantity: int | None = None
    quantity_sold: int | None = None
    quantity_available: int | None = None


ListingSource = Annotated[InventoryApiListing | TradingApiListing, Field(discriminator="source")]


class Listing(BaseModel):
    """Normalized listing row shared by both sources."""

    offer_id: str | None = None
    sku: str = ""
    title: str = ""
    status: str = "UNKNOWN"
    listing_id: str | None = None
    quantity: int = 0
    source: Literal["inventory-api", "trading-api"]


class TradingListingsPage(BaseModel):
    """One page of a GetMyeBaySelling ActiveList call."""

    ack: str
    listings: list[TradingApiListing] = Field(default_factory=list)
    total_pages: int = 1
    total_entries: int = 0
