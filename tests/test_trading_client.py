import httpx
import pytest

from app.integrations.ebay.errors import MarketplaceRejected
from app.integrations.ebay.trading_client import EbayTradingClient, parse_trading_response
from conftest import active_list_xml, trading_envelope

FAILURE_BODY = (
    "<Errors><ShortMessage>Invalid item</ShortMessage>"
    "<LongMessage>The item 999 is not active.</LongMessage>"
    "<ErrorCode>291</ErrorCode><SeverityCode>Error</SeverityCode></Errors>"
)


def make_client(config, handler):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return EbayTradingClient(config, "access-1", http_client)


async def test_call_sends_trading_headers(config):
    seen = {}

    def handler(request):
        seen.update(request.headers)
        seen["url"] = str(request.url)
        return httpx.Response(200, text=trading_envelope("ReviseInventoryStatus"))

    client = make_client(config, handler)
    ack = await client.revise_inventory_status("3001", 5)

    assert ack == "Success"
    assert seen["url"] == "https://api.sandbox.ebay.com/ws/api.dll"
    assert seen["x-ebay-api-call-name"] == "ReviseInventoryStatus"
    assert seen["x-ebay-api-compatibility-level"] == "1209"
    assert seen["x-ebay-api-siteid"] == "0"
    assert seen["x-ebay-api-iaf-token"] == "access-1"


async def test_failure_ack_on_http_200_raises(config):
    response_text = trading_envelope("ReviseInventoryStatus", FAILURE_BODY, ack="Failure")

    def handler(request):
        return httpx.Response(200, text=response_text)

    client = make_client(config, handler)

    with pytest.raises(MarketplaceRejected) as excinfo:
        await client.revise_inventory_status("999", 1)

    assert excinfo.value.status_code == 200
    assert excinfo.value.message == "The item 999 is not active."
    assert excinfo.value.detail == response_text[:1000]
    assert "<ErrorCode>291</ErrorCode>" in excinfo.value.detail


async def test_warning_ack_is_accepted(config):
    def handler(request):
        return httpx.Response(200, text=trading_envelope("ReviseInventoryStatus", ack="Warning"))

    assert await make_client(config, handler).revise_inventory_status("3001", 0) == "Warning"


async def test_http_error_raises(config):
    client = make_client(config, lambda request: httpx.Response(503, text="unavailable"))

    with pytest.raises(MarketplaceRejected) as excinfo:
        await client.get_seller_listings_page(1)

    assert excinfo.value.status_code == 503


async def test_seller_listings_page_is_parsed(config):
    items = [
        "<Item><ItemID>1</ItemID><Title>One</Title><QuantityAvailable>2</QuantityAvailable></Item>",
        "<Item><ItemID>2</ItemID><Title>Two</Title><Quantity>5</Quantity></Item>",
    ]
    client = make_client(config, lambda request: httpx.Response(200, text=active_list_xml(items, total_pages=3)))

    page = await client.get_seller_listings_page(1)

    assert [listing.item_id for listing in page.listings] == ["1", "2"]
    assert page.total_pages == 3
    assert page.total_entries == 2


def test_malformed_xml_is_rejected():
    with pytest.raises(MarketplaceRejected):
        parse_trading_response("<not-closed")
