import json

import httpx
import pytest

from app.integrations.ebay.errors import MarketplaceRejected, ValidationFailed
from app.integrations.ebay.inventory_reconciler import clamp_quantity, inventory_record_id
from app.models.database import ConnectionSelection, SelectedListing
from conftest import NOW, TENANT, active_list_xml, trading_envelope

OFFER = {
    "offerId": "o-1",
    "sku": "SKU-1",
    "marketplaceId": "EBAY_US",
    "format": "FIXED_PRICE",
    "availableQuantity": 4,
    "pricingSummary": {"price": {"value": "12.00", "currency": "USD"}},
    "listing": {"listingId": "L-1"},
}


def select(services, *listings):
    services.selections.replace(TENANT, ConnectionSelection(connection_id="conn-1", selected_listings=list(listings)))


def test_record_id_replaces_whitespace():
    assert inventory_record_id("conn-1", "my sku\t1") == "ebay_conn-1_my_sku_1"


@pytest.mark.parametrize("value, expected", [(5, 5), (2.9, 2), (-3, 0), (0, 0)])
def test_quantity_is_clamped(value, expected):
    assert clamp_quantity(value) == expected


def test_non_numeric_quantity_is_rejected():
    with pytest.raises(ValidationFailed):
        clamp_quantity(float("nan"))


async def test_pull_reads_offer_and_trading_quantities(make_services, add_connection):
    def handler(request):
        if request.url.path == "/sell/inventory/v1/offer/o-1":
            return httpx.Response(200, json=OFFER)
        assert request.url.path == "/ws/api.dll"
        items = [
            "<Item><ItemID>L-9</ItemID><Quantity>10</Quantity>"
            "<SellingStatus><QuantitySold>3</QuantitySold></SellingStatus></Item>",
            "<Item><ItemID>L-other</ItemID><Quantity>1</Quantity></Item>",
        ]
        return httpx.Response(200, text=active_list_xml(items))

    services = make_services(handler)
    add_connection()
    select(
        services,
        SelectedListing(offer_id="o-1", listing_id="L-1", sku="SKU-1", title="Mug", source="inventory-api"),
        SelectedListing(listing_id="L-9", title="Legacy lamp", source="trading-api"),
    )

    result = await services.reconciler.refresh_inventory_from_marketplace(TENANT, "conn-1")

    assert (result.updated, result.skipped) == (2, 0)
    mug = services.inventory.get(TENANT, "ebay_conn-1_L-1")
    assert mug.quantity == 4
    assert mug.status == "In Stock"
    assert mug.ebay_offer_id == "o-1"
    lamp = services.inventory.get(TENANT, "ebay_conn-1_L-9")
    assert lamp.quantity == 7
    assert lamp.product_name == "Legacy lamp"
    assert services.selections.get(TENANT, "conn-1").last_inventory_refresh_at == NOW


async def test_pull_skips_listing_when_offer_read_fails(make_services, add_connection):
    services = make_services(lambda request: httpx.Response(404, json={"errors": [{"message": "Offer not found"}]}))
    add_connection()
    select(services, SelectedListing(offer_id="o-404", source="inventory-api"))

    result = await services.reconciler.refresh_inventory_from_marketplace(TENANT, "conn-1")

    assert (result.updated, result.skipped) == (0, 1)
    assert services.inventory.get(TENANT, "ebay_conn-1_o-404") is None


async def test_pull_marks_zero_quantity_out_of_stock(make_services, add_connection):
    services = make_services(lambda request: httpx.Response(200, json={**OFFER, "availableQuantity": 0}))
    add_connection()
    select(services, SelectedListing(offer_id="o-1", source="inventory-api"))

    await services.reconciler.refresh_inventory_from_marketplace(TENANT, "conn-1")

    assert services.inventory.get(TENANT, "ebay_conn-1_o-1").status == "Out of Stock"


async def test_push_to_offer_puts_full_object(make_services, add_connection):
    seen = []

    def handler(request):
        seen.append(request)
        if request.method == "GET":
            return httpx.Response(200, json=OFFER)
        return httpx.Response(204)

    services = make_services(handler)
    add_connection()

    quantity = await services.reconciler.set_marketplace_quantity(TENANT, "conn-1", 9.7, offer_id="o-1")

    assert quantity == 9
    put = seen[-1]
    assert put.method == "PUT"
    assert put.url.path == "/sell/inventory/v1/offer/o-1"
    assert json.loads(put.content) == {**OFFER, "availableQuantity": 9}


async def test_push_to_trading_listing_uses_revise_inventory_status(make_services, add_connection):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, text=trading_envelope("ReviseInventoryStatus"))

    services = make_services(handler)
    add_connection()

    quantity = await services.reconciler.set_marketplace_quantity(TENANT, "conn-1", -4, listing_id="L-9")

    assert quantity == 0
    assert seen[0].headers["x-ebay-api-call-name"] == "ReviseInventoryStatus"
    assert b"<ItemID>L-9</ItemID><Quantity>0</Quantity>" in seen[0].content


async def test_push_failure_ack_is_rejected(make_services, add_connection):
    failure = trading_envelope(
        "ReviseInventoryStatus",
        "<Errors><LongMessage>Item cannot be revised.</LongMessage></Errors>",
        ack="Failure",
    )
    services = make_services(lambda request: httpx.Response(200, text=failure))
    add_connection()

    with pytest.raises(MarketplaceRejected) as excinfo:
        await services.reconciler.set_marketplace_quantity(TENANT, "conn-1", 3, listing_id="L-9")

    assert excinfo.value.message == "Item cannot be revised."


async def test_push_requires_an_identifier(make_services, add_connection):
    services = make_services()
    add_connection()

    with pytest.raises(ValidationFailed):
        await services.reconciler.set_marketplace_quantity(TENANT, "conn-1", 3)
