"""
eBay REST API client (Sell Inventory + Sell Fulfillment).
Bearer-token authenticated JSON over HTTPS. Base URL comes from MarketplaceClientConfig.
Inventory items use limit/offset pagination; order search uses eBay's opaque `next` link.
"""

from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
import structlog

from app.integrations.ebay.client_config import MarketplaceClientConfig
from app.integrations.ebay.errors import MarketplaceRejected
from app.models.ebay import EbayOffer, EbayOrderSearchPage

logger = structlog.get_logger()

# Filter for orders that still need fulfillment work
NOT_STARTED_FILTER = "orderfulfillmentstatus:{NOT_STARTED|IN_PROGRESS}"


class EbayRestClient:
    """Async client for the eBay Sell REST APIs, bound to one access token."""

    def __init__(
        self,
        config: MarketplaceClientConfig,
        access_token: str,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the eBay REST client.

        Args:
            config: Marketplace config for the connection's environment.
            access_token: Valid OAuth user access token.
            http_client: Optional shared client. Not closed by close() when provided.
        """
        self.config = config
        self.access_token = access_token
        self.base_url = config.api_base_url
        self._client = http_client
        self._owns_client = http_client is None

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
            "Accept-Language": "en-US",
            "Content-Language": "en-US",
        }

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=30.0)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        url: str,
        operation: str,
        **kwargs: Any,
    ) -> httpx.Response:
        client = await self._get_client()
        try:
            response = await client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.RequestError as e:
            logger.error("eBay API request failed", operation=operation, error=str(e))
            raise MarketplaceRejected(0, f"{operation} request failed: {e}") from e

        if response.status_code >= 400:
            logger.error(
                "eBay API error",
                operation=operation,
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise MarketplaceRejected.from_response(
                response, f"{operation} failed: {response.status_code}"
            )
        return response

    # Inventory API

    async def list_inventory_skus(self, limit: int, offset: int) -> List[str]:
        """
        Fetch one page of inventory item SKUs.

        GET /sell/inventory/v1/inventory_item?limit=&offset=
        """
        response = await self._request(
            "GET",
            f"{self.base_url}/sell/inventory/v1/inventory_item",
            "getInventoryItems",
            params={"limit": limit, "offset": offset},
        )
        data = response.json()
        items = data.get("inventoryItems") if isinstance(data, dict) else None
        skus: List[str] = []
        for item in items or []:
            # Older responses list bare SKU strings
            sku = item if isinstance(item, str) else item.get("sku")
            if sku:
                skus.append(sku)
        return skus

    async def get_inventory_item(self, sku: str) -> Dict[str, Any]:
        """GET /sell/inventory/v1/inventory_item/{sku}"""
        response = await self._request(
            "GET",
            f"{self.base_url}/sell/inventory/v1/inventory_item/{quote(sku, safe='')}",
            "getInventoryItem",
        )
        return response.json()

    async def get_offers_for_sku(self, sku: str, limit: int = 10) -> List[EbayOffer]:
        """GET /sell/inventory/v1/offer?sku="""
        response = await self._request(
            "GET",
            f"{self.base_url}/sell/inventory/v1/offer",
            "getOffers",
            params={"sku": sku, "limit": limit},
        )
        data = response.json()
        return [EbayOffer(**o) for o in (data.get("offers") or [])]

    async def get_offer(self, offer_id: str) -> Dict[str, Any]:
        """
        Fetch the full offer object.

        GET /sell/inventory/v1/offer/{offerId}
        """
        response = await self._request(
            "GET",
            f"{self.base_url}/sell/inventory/v1/offer/{quote(offer_id, safe='')}",
            "getOffer",
        )
        return response.json()

    async def update_offer(self, offer_id: str, offer: Dict[str, Any]) -> Dict[str, Any]:
        """
        Replace an offer in full. The Inventory API has no partial update for offers.

        PUT /sell/inventory/v1/offer/{offerId}
        """
        response = await self._request(
            "PUT",
            f"{self.base_url}/sell/inventory/v1/offer/{quote(offer_id, safe='')}",
            "updateOffer",
            json=offer,
        )
        if not response.content:
            return {}
        return response.json()

    # Fulfillment API

    def first_orders_url(self, page_size: int, filter_not_started: bool = False) -> str:
        params = {"limit": str(page_size)}
        if filter_not_started:
            params["filter"] = NOT_STARTED_FILTER
        return str(httpx.URL(f"{self.base_url}/sell/fulfillment/v1/order", params=params))

    async def get_orders_page(self, url: str) -> EbayOrderSearchPage:
        """
        Fetch one order-search page. `url` is either first_orders_url() or a previous
        page's `next` link.
        """
        response = await self._request("GET", url, "getOrders")
        return EbayOrderSearchPage(**response.json())

    async def create_shipping_fulfillment(
        self, order_id: str, payload: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        POST /sell/fulfillment/v1/order/{orderId}/shipping_fulfillment
        """
        response = await self._request(
            "POST",
            f"{self.base_url}/sell/fulfillment/v1/order/{quote(order_id, safe='')}/shipping_fulfillment",
            "createShippingFulfillment",
            json=payload,
        )
        body: Dict[str, Any] = {}
        if response.content:
            try:
                body = response.json()
            except ValueError:
                body = {}
        if not body.get("fulfillmentId"):
            # eBay returns the new fulfillment URI in the Location header
            location = response.headers.get("location", "")
            if location:
                body["fulfillmentId"] = location.rstrip("/").rsplit("/", 1)[-1]
        return body
