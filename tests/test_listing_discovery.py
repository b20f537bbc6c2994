import httpx

from conftest import TENANT, active_list_xml

OFFERS = {
    "A": [{"offerId": "o-a", "sku": "A", "status": "PUBLISHED", "availableQuantity": 3, "listing": {"listingId": "L-A"}}],
    "B": [{"offerId": "o-b", "sku": "B", "status": "PUBLISHED", "availableQuantity": 1, "listing": {"listingId": "L-B"}}],
}
TRADING_ITEMS = [
    "<Item><ItemID>L-B</ItemID><SKU>B</SKU><Title>B from Seller Hub</Title><Quantity>9</Quantity></Item>",
    "<Item><ItemID>L-C</ItemID><SKU>C</SKU><Title>Gamma</Title>"
    "<Quantity>10</Quantity><SellingStatus><QuantitySold>3</QuantitySold></SellingStatus></Item>",
]


def marketplace(inventory_status=200, trading_pages=None):
    trading_pages = trading_pages or {1: active_list_xml(TRADING_ITEMS)}

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/sell/inventory/v1/inventory_item":
            if inventory_status != 200:
                return httpx.Response(inventory_status, json={"errors": [{"message": "Internal error"}]})
            return httpx.Response(200, json={"inventoryItems": [{"sku": "A"}, {"sku": "B"}]})
        if path.startswith("/sell/inventory/v1/inventory_item/"):
            sku = path.rsplit("/", 1)[-1]
            return httpx.Response(200, json={"sku": sku, "product": {"title": {"A": "Alpha", "B": "Beta"}[sku]}})
        if path == "/sell/inventory/v1/offer":
            return httpx.Response(200, json={"offers": OFFERS[request.url.params["sku"]]})
        if path == "/ws/api.dll":
            page_number = int(request.content.decode().split("<PageNumber>")[1].split("<")[0])
            return trading_pages[page_number]
        raise AssertionError(f"unexpected {path}")

    def wrap(request):
        response = handler(request)
        return response if isinstance(response, httpx.Response) else httpx.Response(200, text=response)

    return wrap


async def test_listings_from_both_apis_are_merged(make_services, add_connection):
    services = make_services(marketplace())
    add_connection()
    connection = services.connections.get(TENANT, "conn-1")

    result = await services.discovery.discover_listings(connection)

    assert not result.is_partial
    assert [(row.listing_id, row.source) for row in result.listings] == [
        ("L-A", "inventory-api"),
        ("L-B", "inventory-api"),
        ("L-C", "trading-api"),
    ]
    assert result.listings[0].title == "Alpha"
    assert result.listings[2].quantity == 7


async def test_failed_inventory_page_still_returns_trading_listings(make_services, add_connection):
    services = make_services(marketplace(inventory_status=500))
    add_connection()
    connection = services.connections.get(TENANT, "conn-1")

    result = await services.discovery.discover_listings(connection)

    assert result.is_partial
    assert result.partial[0].source == "inventory-api"
    assert {row.listing_id for row in result.listings} == {"L-B", "L-C"}


async def test_trading_pages_followed_until_last(make_services, add_connection):
    pages = {
        1: active_list_xml(TRADING_ITEMS[:1], total_pages=2),
        2: active_list_xml(TRADING_ITEMS[1:], total_pages=2),
    }
    services = make_services(marketplace(trading_pages=pages))
    add_connection()
    connection = services.connections.get(TENANT, "conn-1")

    result = await services.discovery.discover_listings(connection)

    assert "L-C" in {row.listing_id for row in result.listings}


async def test_failed_trading_page_keeps_earlier_pages(make_services, add_connection):
    pages = {
        1: active_list_xml(TRADING_ITEMS[1:], total_pages=2),
        2: httpx.Response(500, text="boom"),
    }
    services = make_services(marketplace(trading_pages=pages))
    add_connection()
    connection = services.connections.get(TENANT, "conn-1")

    result = await services.discovery.discover_listings(connection)

    assert [p.source for p in result.partial] == ["trading-api"]
    assert result.partial[0].pages_fetched == 1
    assert "L-C" in {row.listing_id for row in result.listings}
