"""
eBay Trading API (legacy XML) client.
Single POST endpoint; the call name, compatibility level, site id and the OAuth token travel
in X-EBAY-API-* headers. Business errors come back inside a 200 envelope, so every response's
<Ack> is checked: Failure raises MarketplaceRejected even on HTTP 200.
"""

from typing import Optional
from xml.etree import ElementTree as ET
from xml.sax.saxutils import escape

import httpx
import structlog

from app.integrations.ebay.client_config import MarketplaceClientConfig
from app.integrations.ebay.errors import MarketplaceRejected
from app.integrations.ebay.transformer import parse_trading_item
from app.models.ebay import TradingListingsPage

logger = structlog.get_logger()

EBAY_XML_NS = "urn:ebay:apis:eBLBaseComponents"
DEFAULT_ENTRIES_PER_PAGE = 200


def _strip_namespaces(root: ET.Element) -> ET.Element:
    for elem in root.iter():
        if isinstance(elem.tag, str) and "}" in elem.tag:
            elem.tag = elem.tag.split("}", 1)[1]
    return root


def parse_trading_response(xml_text: str) -> ET.Element:
    """Parse a Trading API response body with namespaces removed."""
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise MarketplaceRejected(200, f"Malformed Trading API response: {e}", detail=xml_text[:1000]) from e
    return _strip_namespaces(root)


def trading_errors(root: ET.Element) -> list[dict[str, Optional[str]]]:
    return [
        {
            "code": err.findtext("ErrorCode"),
            "severity": err.findtext("SeverityCode"),
            "message": err.findtext("LongMessage") or err.findtext("ShortMessage"),
        }
        for err in root.findall("Errors")
    ]


class EbayTradingClient:
    """Async client for Trading API calls used by discovery and inventory sync."""

    def __init__(
        self,
        config: MarketplaceClientConfig,
        access_token: str,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config
        self.access_token = access_token
        self._client = http_client
        self._owns_client = http_client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=30.0)
        return self._client

    async def close(self) -> None:
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _headers(self, call_name: str) -> dict[str, str]:
        return {
            "Content-Type": "text/xml; charset=utf-8",
            "X-EBAY-API-CALL-NAME": call_name,
            "X-EBAY-API-SITEID": str(self.config.trading_site_id),
            "X-EBAY-API-COMPATIBILITY-LEVEL": str(self.config.trading_compatibility_level),
            "X-EBAY-API-IAF-TOKEN": self.access_token,
        }

    async def call(self, call_name: str, request_xml: str) -> ET.Element:
        """
        POST one Trading API call and return the parsed response root.

        Raises:
            MarketplaceRejected: On transport error, non-2xx status, or Ack=Failure.
        """
        client = await self._get_client()
        try:
            response = await client.post(
                self.config.trading_url,
                headers=self._headers(call_name),
                content=request_xml.encode("utf-8"),
            )
        except httpx.RequestError as e:
            logger.error("Trading API request failed", call_name=call_name, error=str(e))
            raise MarketplaceRejected(0, f"{call_name} request failed: {e}") from e

        if response.status_code != 200:
            logger.error(
                "Trading API error",
                call_name=call_name,
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise MarketplaceRejected(
                response.status_code,
                f"{call_name} failed: HTTP {response.status_code}",
                detail=response.text[:1000],
            )

        root = parse_trading_response(response.text)
        ack = (root.findtext("Ack") or "").strip()
        if ack.lower() not in ("success", "warning"):
            errors = trading_errors(root)
            message = next((e["message"] for e in errors if e["message"]), None)
            logger.error("Trading API returned failure ack", call_name=call_name, ack=ack, errors=errors)
            raise MarketplaceRejected(
                response.status_code,
                message or f"{call_name} returned Ack={ack or 'missing'}",
                detail=response.text[:1000],
            )
        if ack.lower() == "warning":
            logger.warning("Trading API returned warning ack", call_name=call_name, errors=trading_errors(root))
        return root

    async def get_seller_listings_page(
        self, page_number: int, entries_per_page: int = DEFAULT_ENTRIES_PER_PAGE
    ) -> TradingListingsPage:
        """
        Fetch one page of the seller's active listings.

        GetMyeBaySelling / ActiveList with Pagination.PageNumber.
        """
        request_xml = (
            '<?xml version="1.0" encoding="utf-8"?>'
            f'<GetMyeBaySellingRequest xmlns="{EBAY_XML_NS}">'
            "<DetailLevel>ReturnAll</DetailLevel>"
            "<ActiveList>"
            "<Include>true</Include>"
            "<Pagination>"
            f"<EntriesPerPage>{int(entries_per_page)}</EntriesPerPage>"
            f"<PageNumber>{int(page_number)}</PageNumber>"
            "</Pagination>"
            "</ActiveList>"
            "</GetMyeBaySellingRequest>"
        )
        root = await self.call("GetMyeBaySelling", request_xml)

        active = root.find("ActiveList")
        listings = []
        total_pages = 1
        total_entries = 0
        if active is not None:
            for item in active.findall("ItemArray/Item"):
                listing = parse_trading_item(item)
                if listing is not None:
                    listings.append(listing)
            try:
                total_pages = int(active.findtext("PaginationResult/TotalNumberOfPages") or 1)
                total_entries = int(active.findtext("PaginationResult/TotalNumberOfEntries") or 0)
            except ValueError:
                total_pages = 1

        return TradingListingsPage(
            ack=root.findtext("Ack") or "",
            listings=listings,
            total_pages=total_pages,
            total_entries=total_entries,
        )

    async def revise_inventory_status(self, item_id: str, quantity: int) -> str:
        """
        Set the available quantity of a Trading listing.

        ReviseInventoryStatus. Returns the Ack value (Success or Warning).
        """
        request_xml = (
            '<?xml version="1.0" encoding="utf-8"?>'
            f'<ReviseInventoryStatusRequest xmlns="{EBAY_XML_NS}">'
            "<InventoryStatus>"
            f"<ItemID>{escape(str(item_id))}</ItemID>"
            f"<Quantity>{int(quantity)}</Quantity>"
            "</InventoryStatus>"
            "</ReviseInventoryStatusRequest>"
        )
        root = await self.call("ReviseInventoryStatus", request_xml)
        return root.findtext("Ack") or ""
