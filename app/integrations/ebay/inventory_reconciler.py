"""
Inventory quantity reconciliation between internal inventory records and eBay.

Pull: read available quantity for every selected listing (Inventory API offer, or Trading API
listing when there is no offer) and merge it into the matching inventory record.
Push: write an internally edited quantity to whichever API owns the listing.
"""

import math
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

import httpx
import structlog

from app.integrations.ebay.api_client import EbayRestClient
from app.integrations.ebay.client_config import MarketplaceClientConfig
from app.integrations.ebay.errors import MarketplaceRejected, MarketplaceSyncError, ValidationFailed
from app.integrations.ebay.token_refresh import EbayTokenManager, utc_now
from app.integrations.ebay.trading_client import EbayTradingClient
from app.integrations.ebay.transformer import resolve_trading_quantity
from app.models.database import Connection, SelectedListing
from app.services.repositories import InventoryRepository, SelectionRepository

logger = structlog.get_logger()

MAX_TRADING_PAGES = 50


def inventory_record_id(connection_id: str, listing_key: str) -> str:
    """Deterministic inventory document id for one connection's listing."""
    return re.sub(r"\s", "_", f"ebay_{connection_id}_{listing_key}")


def clamp_quantity(value: float | int) -> int:
    if value is None or isinstance(value, bool) or not math.isfinite(float(value)):
        raise ValidationFailed("newQuantity must be a number")
    return max(0, math.floor(value))


@dataclass
class RefreshResult:
    updated: int = 0
    skipped: int = 0
    error: str | None = None


@dataclass
class RefreshAllResult:
    connections: int = 0
    total_updated: int = 0
    errors: list[str] = field(default_factory=list)


class InventoryReconciler:
    def __init__(
        self,
        config: MarketplaceClientConfig,
        tokens: EbayTokenManager,
        selections: SelectionRepository,
        inventory: InventoryRepository,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config
        self.tokens = tokens
        self.selections = selections
        self.inventory = inventory
        self.http_client = http_client
        self.clock = clock

    async def refresh_inventory_from_marketplace(self, tenant_id: str, connection_id: str) -> RefreshResult:
        """
        Pull eBay quantities into inventory records for a connection's selected listings.

        Raises:
            TokenInvalid: The connection's token could not be refreshed.
        """
        connection = await self.tokens.get_valid_token(tenant_id, connection_id)
        if connection is None:
            return RefreshResult(error="eBay connection not found")

        selection = self.selections.get(tenant_id, connection.id)
        listings = [s for s in selection.selected_listings if s.key]
        if not listings:
            return RefreshResult()

        config = self.config.for_environment(connection.environment)
        quantities: dict[str, int] = {}
        rest = EbayRestClient(config, connection.access_token, self.http_client)
        trading = EbayTradingClient(config, connection.access_token, self.http_client)
        try:
            for listing in listings:
                if not listing.offer_id:
                    continue
                try:
                    offer = await rest.get_offer(listing.offer_id)
                except MarketplaceRejected as e:
                    logger.warning("Could not read offer quantity", offer_id=listing.offer_id, error=e.message)
                    continue
                quantities[listing.offer_id] = max(int(offer.get("availableQuantity") or 0), 0)

            legacy_ids = {s.listing_id for s in listings if s.listing_id and not s.offer_id}
            if legacy_ids:
                quantities.update(await self._trading_quantities(trading, legacy_ids))
        finally:
            await rest.close()
            await trading.close()

        result = RefreshResult()
        now = self.clock()
        for listing in listings:
            quantity = self._quantity_for(listing, quantities)
            if quantity is None:
                result.skipped += 1
                continue
            self.inventory.upsert(
                tenant_id,
                inventory_record_id(connection.id, listing.key),
                self._record_patch(connection, listing, quantity, now),
            )
            result.updated += 1

        self.selections.stamp(tenant_id, connection.id, "last_inventory_refresh_at", now)
        logger.info(
            "eBay inventory refreshed",
            tenant_id=tenant_id,
            connection_id=connection.id,
            updated=result.updated,
            skipped=result.skipped,
        )
        return result

    async def _trading_quantities(self, trading: EbayTradingClient, wanted: set[str]) -> dict[str, int]:
        found: dict[str, int] = {}
        page_number = 1
        total_pages = 1
        while page_number <= total_pages and page_number <= MAX_TRADING_PAGES:
            try:
                page = await trading.get_seller_listings_page(page_number)
            except MarketplaceRejected as e:
                logger.warning("Trading API quantity lookup failed", page_number=page_number, error=e.message)
                break
            for listing in page.listings:
                if listing.item_id in wanted:
                    found[listing.item_id] = resolve_trading_quantity(listing)
            if wanted.issubset(found):
                break
            total_pages = page.total_pages
            page_number += 1
        return found

    @staticmethod
    def _quantity_for(listing: SelectedListing, quantities: dict[str, int]) -> int | None:
        for key in (listing.offer_id, listing.listing_id):
            if key and key in quantities:
                return quantities[key]
        return None

    @staticmethod
    def _record_patch(connection: Connection, listing: SelectedListing, quantity: int, now: datetime) -> dict:
        patch = {
            "quantity": quantity,
            "status": "In Stock" if quantity > 0 else "Out of Stock",
            "source": "ebay",
            "ebay_connection_id": connection.id,
            "ebay_offer_id": listing.offer_id,
            "ebay_listing_id": listing.listing_id,
            "updated_at": now,
        }
        if listing.sku:
            patch["sku"] = listing.sku
        if listing.title:
            patch["product_name"] = listing.title
        return patch

    async def set_marketplace_quantity(
        self,
        tenant_id: str,
        connection_id: str,
        new_quantity: float | int,
        offer_id: str | None = None,
        listing_id: str | None = None,
    ) -> int:
        """
        Push a quantity to eBay. Returns the quantity written.

        With an offer id the offer is fetched, its availableQuantity replaced, and the full
        object PUT back. With only a listing id, ReviseInventoryStatus is used instead.

        Raises:
            ValidationFailed: Missing ids, bad quantity, or unknown connection.
            TokenInvalid: Token could not be refreshed.
            MarketplaceRejected: eBay refused the update (including Ack=Failure on HTTP 200).
        """
        quantity = clamp_quantity(new_quantity)
        offer_id = (offer_id or "").strip() or None
        listing_id = (listing_id or "").strip() or None
        if not connection_id:
            raise ValidationFailed("Missing connectionId")
        if not offer_id and not listing_id:
            raise ValidationFailed("Provide at least one of offerId or listingId")

        connection = await self.tokens.get_valid_token(tenant_id, connection_id)
        if connection is None:
            raise ValidationFailed("eBay connection not found")

        config = self.config.for_environment(connection.environment)
        if offer_id:
            rest = EbayRestClient(config, connection.access_token, self.http_client)
            try:
                offer = await rest.get_offer(offer_id)
                offer["availableQuantity"] = quantity
                await rest.update_offer(offer_id, offer)
            finally:
                await rest.close()
        else:
            trading = EbayTradingClient(config, connection.access_token, self.http_client)
            try:
                await trading.revise_inventory_status(listing_id, quantity)
            finally:
                await trading.close()

        logger.info(
            "eBay quantity updated",
            tenant_id=tenant_id,
            connection_id=connection.id,
            offer_id=offer_id,
            listing_id=listing_id,
            quantity=quantity,
        )
        return quantity

    async def refresh_all(self, max_connections: int) -> RefreshAllResult:
        """Pull quantities for the first max_connections connections, isolating failures."""
        result = RefreshAllResult()
        for connection in self.tokens.connections.list_all(max_connections):
            result.connections += 1
            try:
                refreshed = await self.refresh_inventory_from_marketplace(connection.tenant_id, connection.id)
            except MarketplaceSyncError as e:
                result.errors.append(f"{connection.tenant_id}/{connection.id}: {e}")
                continue
            result.total_updated += refreshed.updated
            if refreshed.error:
                result.errors.append(f"{connection.tenant_id}/{connection.id}: {refreshed.error}")
        return result
