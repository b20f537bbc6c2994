"""
Listing discovery across both eBay APIs.

A seller's listings are split between the REST Inventory API (offers created through the API)
and the legacy Trading API (listings created in Seller Hub). Neither API returns the full
catalog, so both are paged and merged; the Inventory API wins when a listing appears in both.
A failing page stops that source's pagination only; whatever was gathered is still returned.
"""

import asyncio
from dataclasses import dataclass, field

import httpx
import structlog

from app.integrations.ebay.api_client import EbayRestClient
from app.integrations.ebay.client_config import MarketplaceClientConfig
from app.integrations.ebay.errors import MarketplaceRejected, PartialDiscovery
from app.integrations.ebay.trading_client import DEFAULT_ENTRIES_PER_PAGE, EbayTradingClient
from app.integrations.ebay.transformer import merge_listings, normalize_listing
from app.models.database import Connection
from app.models.ebay import InventoryApiListing, Listing

logger = structlog.get_logger()

LISTINGS_PAGE_SIZE = 50
# Concurrent SKU detail fetches; keeps the credential under eBay's rate limits
SKU_BATCH = 5
MAX_TRADING_PAGES = 100


@dataclass
class DiscoveryResult:
    listings: list[Listing] = field(default_factory=list)
    partial: list[PartialDiscovery] = field(default_factory=list)

    @property
    def is_partial(self) -> bool:
        return bool(self.partial)


class ListingDiscovery:
    """Discovers and merges a connection's listings from both APIs."""

    def __init__(
        self,
        config: MarketplaceClientConfig,
        http_client: httpx.AsyncClient | None = None,
        page_size: int = LISTINGS_PAGE_SIZE,
        sku_batch: int = SKU_BATCH,
        trading_page_size: int = DEFAULT_ENTRIES_PER_PAGE,
    ):
        self.config = config
        self.http_client = http_client
        self.page_size = page_size
        self.sku_batch = sku_batch
        self.trading_page_size = trading_page_size

    async def discover_listings(self, connection: Connection) -> DiscoveryResult:
        config = self.config.for_environment(connection.environment)
        rest = EbayRestClient(config, connection.access_token, self.http_client)
        trading = EbayTradingClient(config, connection.access_token, self.http_client)
        result = DiscoveryResult()
        try:
            inventory_rows, inventory_partial = await self._discover_inventory_api(rest)
            trading_rows, trading_partial = await self._discover_trading_api(trading)
        finally:
            await rest.close()
            await trading.close()

        for partial in (inventory_partial, trading_partial):
            if partial is not None:
                result.partial.append(partial)

        result.listings = merge_listings(inventory_rows, trading_rows)
        logger.info(
            "eBay listings discovered",
            tenant_id=connection.tenant_id,
            connection_id=connection.id,
            inventory_api=len(inventory_rows),
            trading_api=len(trading_rows),
            merged=len(result.listings),
            partial_sources=[p.source for p in result.partial],
        )
        return result

    async def _discover_inventory_api(
        self, rest: EbayRestClient
    ) -> tuple[list[Listing], PartialDiscovery | None]:
        skus: list[str] = []
        offset = 0
        pages = 0
        partial = None
        while True:
            try:
                page = await rest.list_inventory_skus(limit=self.page_size, offset=offset)
            except MarketplaceRejected as e:
                partial = PartialDiscovery("inventory-api", e.message, pages)
                logger.warning("Inventory API paging stopped early", offset=offset, error=e.message)
                break
            pages += 1
            skus.extend(page)
            if len(page) < self.page_size:
                break
            offset += self.page_size

        rows: list[Listing] = []
        for i in range(0, len(skus), self.sku_batch):
            batch = skus[i : i + self.sku_batch]
            results = await asyncio.gather(*(self._listings_for_sku(rest, sku) for sku in batch))
            for sku_rows in results:
                rows.extend(sku_rows)
        return rows, partial

    async def _listings_for_sku(self, rest: EbayRestClient, sku: str) -> list[Listing]:
        offers_result, item_result = await asyncio.gather(
            rest.get_offers_for_sku(sku),
            rest.get_inventory_item(sku),
            return_exceptions=True,
        )
        if isinstance(offers_result, BaseException):
            logger.warning("Failed to load offers for SKU", sku=sku, error=str(offers_result))
            return []

        title = sku
        if isinstance(item_result, dict):
            title = (item_result.get("product") or {}).get("title") or sku
        else:
            logger.debug("Inventory item lookup failed, using SKU as title", sku=sku, error=str(item_result))

        rows = []
        for offer in offers_result:
            if not offer.offerId:
                continue
            rows.append(
                normalize_listing(
                    InventoryApiListing(
                        offer_id=offer.offerId,
                        sku=offer.sku or sku,
                        title=title,
                        status=offer.status or "UNKNOWN",
                        listing_id=offer.listing.listingId if offer.listing else None,
                        available_quantity=offer.availableQuantity,
                    )
                )
            )
        return rows

    async def _discover_trading_api(
        self, trading: EbayTradingClient
    ) -> tuple[list[Listing], PartialDiscovery | None]:
        rows: list[Listing] = []
        page_number = 1
        total_pages = 1
        while page_number <= total_pages and page_number <= MAX_TRADING_PAGES:
            try:
                page = await trading.get_seller_listings_page(page_number, self.trading_page_size)
            except MarketplaceRejected as e:
                logger.warning("Trading API paging stopped early", page_number=page_number, error=e.message)
                return rows, PartialDiscovery("trading-api", e.message, page_number - 1)
            rows.extend(normalize_listing(listing) for listing in page.listings)
            total_pages = page.total_pages
            page_number += 1
        return rows, None
