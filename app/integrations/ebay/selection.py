"""
Selected listings: the tenant's allow-list of listings fulfilled internally.
Saving replaces the whole set. Order sync and the inventory reconciler only read it.
"""

import asyncio

import httpx
import structlog

from app.integrations.ebay.api_client import EbayRestClient
from app.integrations.ebay.client_config import MarketplaceClientConfig
from app.integrations.ebay.errors import MarketplaceRejected, TokenInvalid, ValidationFailed
from app.integrations.ebay.token_refresh import EbayTokenManager
from app.models.database import ConnectionSelection, SelectedListing
from app.services.repositories import SelectionRepository

logger = structlog.get_logger()

# Cap on offers resolved to listing ids per save
MAX_OFFERS_TO_RESOLVE = 100
RESOLVE_BATCH = 5


def _dedupe(values: list[str]) -> list[str]:
    seen: dict[str, None] = {}
    for value in values:
        value = (value or "").strip()
        if value:
            seen.setdefault(value, None)
    return list(seen)


class SelectionService:
    def __init__(
        self,
        config: MarketplaceClientConfig,
        selections: SelectionRepository,
        tokens: EbayTokenManager,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.config = config
        self.selections = selections
        self.tokens = tokens
        self.http_client = http_client

    def _resolve_connection_id(self, tenant_id: str, connection_id: str | None) -> str | None:
        connections = self.tokens.connections
        if connection_id:
            return connection_id if connections.get(tenant_id, connection_id) else None
        latest = connections.latest_for_tenant(tenant_id)
        return latest.id if latest else None

    def get_selection(self, tenant_id: str, connection_id: str | None = None) -> ConnectionSelection | None:
        resolved = self._resolve_connection_id(tenant_id, connection_id)
        if resolved is None:
            return None
        return self.selections.get(tenant_id, resolved)

    async def save_selection(
        self,
        tenant_id: str,
        connection_id: str | None,
        selected_listings: list[SelectedListing],
        offer_ids: list[str] | None = None,
        listing_ids: list[str] | None = None,
    ) -> ConnectionSelection:
        """
        Replace a connection's selection.

        Listing ids of selected offers are resolved through the Inventory API so order
        line items (which only carry the legacy item id) can be matched.
        """
        resolved_id = self._resolve_connection_id(tenant_id, connection_id)
        if resolved_id is None:
            raise ValidationFailed("No eBay connection found")

        by_key: dict[str, SelectedListing] = {}
        for row in selected_listings:
            if row.key:
                by_key[row.key] = row
        unique_offer_ids = _dedupe(
            list(offer_ids or []) + [row.offer_id for row in by_key.values() if row.offer_id]
        )
        all_listing_ids = list(listing_ids or [])

        known = {row.offer_id: row.listing_id for row in by_key.values() if row.offer_id and row.listing_id}
        to_resolve = [o for o in unique_offer_ids if o not in known][:MAX_OFFERS_TO_RESOLVE]
        all_listing_ids.extend(known.values())
        all_listing_ids.extend(await self._resolve_listing_ids(tenant_id, resolved_id, to_resolve))

        selection = ConnectionSelection(
            connection_id=resolved_id,
            selected_listings=list(by_key.values()),
            selected_offer_ids=unique_offer_ids,
            selected_listing_ids=_dedupe(all_listing_ids),
        )
        saved = self.selections.replace(tenant_id, selection)
        logger.info(
            "eBay listing selection saved",
            tenant_id=tenant_id,
            connection_id=resolved_id,
            listings=len(saved.selected_listings),
            offer_ids=len(saved.selected_offer_ids),
            listing_ids=len(saved.selected_listing_ids),
        )
        return saved

    async def _resolve_listing_ids(self, tenant_id: str, connection_id: str, offer_ids: list[str]) -> list[str]:
        if not offer_ids:
            return []
        try:
            connection = await self.tokens.get_valid_token(tenant_id, connection_id)
        except TokenInvalid as e:
            logger.warning("Skipping offer resolution, token invalid", connection_id=connection_id, error=str(e))
            return []
        if connection is None:
            return []

        rest = EbayRestClient(
            self.config.for_environment(connection.environment),
            connection.access_token,
            self.http_client,
        )

        async def _one(offer_id: str) -> str | None:
            try:
                offer = await rest.get_offer(offer_id)
            except MarketplaceRejected as e:
                logger.warning("Could not resolve offer listing id", offer_id=offer_id, error=e.message)
                return None
            return (offer.get("listing") or {}).get("listingId")

        resolved: list[str] = []
        try:
            for i in range(0, len(offer_ids), RESOLVE_BATCH):
                batch = offer_ids[i : i + RESOLVE_BATCH]
                resolved.extend(r for r in await asyncio.gather(*(_one(o) for o in batch)) if r)
        finally:
            await rest.close()
        return resolved
