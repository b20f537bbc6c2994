"""
Transform eBay API payloads into normalized listings and stored order documents.
"""

from datetime import datetime
from typing import Any
from xml.etree import ElementTree as ET

from app.models.database import BuyerContact, LineItem
from app.models.ebay import (
    EbayLineItem,
    EbayOrder,
    InventoryApiListing,
    Listing,
    ListingSource,
    TradingApiListing,
)


def _int_or_none(value: str | None) -> int | None:
    if value is None or not value.strip():
        return None
    try:
        return int(float(value.strip()))
    except ValueError:
        return None


def parse_trading_item(item: ET.Element) -> TradingApiListing | None:
    """
    Parse one <Item> from a GetMyeBaySelling response (namespaces already stripped).
    Returns None for items without an ItemID.
    """
    item_id = (item.findtext("ItemID") or "").strip()
    if not item_id:
        return None

    return TradingApiListing(
        item_id=item_id,
        sku=(item.findtext("SKU") or "").strip() or None,
        title=(item.findtext("Title") or "").strip() or None,
        listing_status=item.findtext("SellingStatus/ListingStatus") or item.findtext("ListingStatus"),
        quantity=_int_or_none(item.findtext("Quantity")),
        quantity_sold=_int_or_none(
            item.findtext("SellingStatus/QuantitySold") or item.findtext("QuantitySold")
        ),
        quantity_available=_int_or_none(item.findtext("QuantityAvailable")),
    )


def resolve_trading_quantity(listing: TradingApiListing) -> int:
    """
    Available quantity for a Trading listing.

    QuantityAvailable when reported, else Quantity - QuantitySold, else raw Quantity.
    With none of them reported the listing resolves to 0.
    """
    if listing.quantity_available is not None:
        return max(listing.quantity_available, 0)
    if listing.quantity is not None and listing.quantity_sold is not None:
        return max(listing.quantity - listing.quantity_sold, 0)
    if listing.quantity is not None:
        return max(listing.quantity, 0)
    return 0


def normalize_listing(source: ListingSource) -> Listing:
    """Produce the common Listing row from either API's representation."""
    if isinstance(source, InventoryApiListing):
        return Listing(
            offer_id=source.offer_id,
            sku=source.sku,
            title=source.title or source.sku,
            status=source.status or "UNKNOWN",
            listing_id=source.listing_id,
            quantity=max(source.available_quantity or 0, 0),
            source="inventory-api",
        )
    return Listing(
        offer_id=None,
        sku=source.sku or "",
        title=source.title or source.item_id,
        status=source.listing_status or "Active",
        listing_id=source.item_id,
        quantity=resolve_trading_quantity(source),
        source="trading-api",
    )


def merge_listings(inventory_rows: list[Listing], trading_rows: list[Listing]) -> list[Listing]:
    """
    Inventory API rows first; Trading rows whose listing id is already known are dropped.
    """
    known_ids = {row.listing_id for row in inventory_rows if row.listing_id}
    merged = list(inventory_rows)
    for row in trading_rows:
        if row.listing_id and row.listing_id in known_ids:
            continue
        if row.listing_id:
            known_ids.add(row.listing_id)
        merged.append(row)
    return merged


def matching_line_items(order: EbayOrder, selected_ids: set[str] | None) -> list[EbayLineItem]:
    """Line items whose legacy item id is selected. None (no selection at all) matches everything."""
    if selected_ids is None:
        return list(order.lineItems)
    return [
        li for li in order.lineItems
        if li.legacyItemId and str(li.legacyItemId) in selected_ids
    ]


def to_line_item(li: EbayLineItem) -> LineItem:
    return LineItem(
        line_item_id=li.lineItemId,
        listing_id=li.legacyItemId,
        sku=li.sku,
        title=li.title,
        quantity=li.quantity,
        fulfillment_status=li.lineItemFulfillmentStatus,
    )


def order_patch(
    order: EbayOrder,
    items: list[EbayLineItem],
    connection_id: str,
    synced_at: datetime,
) -> dict[str, Any]:
    """Build the merge patch for one stored order."""
    buyer = None
    if order.buyer is not None:
        buyer = BuyerContact(email=order.buyer.email, full_name=order.buyer.fullName).model_dump()
    return {
        "order_id": order.orderId,
        "connection_id": connection_id,
        "creation_date": order.creationDate,
        "last_modified_date": order.lastModifiedDate,
        "order_fulfillment_status": order.orderFulfillmentStatus,
        "order_payment_status": order.orderPaymentStatus,
        "buyer": buyer,
        "line_items": [to_line_item(li).model_dump() for li in items],
        "synced_at": synced_at,
    }
