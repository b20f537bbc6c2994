from datetime import timedelta

import httpx

from app.models.database import ConnectionSelection, SelectedListing
from app.services.document_store import ORDERS
from conftest import NOW, SANDBOX, TENANT

NEXT_URL = f"{SANDBOX}/sell/fulfillment/v1/order?limit=2&offset=2"


def ebay_order(order_id, *legacy_ids, created="2026-02-01T10:00:00.000Z"):
    return {
        "orderId": order_id,
        "creationDate": created,
        "orderFulfillmentStatus": "NOT_STARTED",
        "orderPaymentStatus": "PAID",
        "buyer": {"username": "buyer1", "fullName": "Pat Buyer", "email": "pat@example.com"},
        "lineItems": [
            {
                "lineItemId": f"{order_id}-{legacy_id}",
                "legacyItemId": legacy_id,
                "sku": f"SKU-{legacy_id}",
                "title": f"Item {legacy_id}",
                "quantity": 1,
                "lineItemFulfillmentStatus": "NOT_STARTED",
            }
            for legacy_id in legacy_ids
        ],
    }


def orders_api(pages, seen_urls=None):
    """pages: list of (orders, next_url) or an httpx.Response, served in order."""
    remaining = list(pages)

    def handler(request):
        assert request.url.path == "/sell/fulfillment/v1/order"
        if seen_urls is not None:
            seen_urls.append(request.url)
        page = remaining.pop(0)
        if isinstance(page, httpx.Response):
            return page
        orders, next_url = page
        body = {"orders": orders, "total": len(orders)}
        if next_url:
            body["next"] = next_url
        return httpx.Response(200, json=body)

    return handler


def select(services, *listing_ids):
    services.selections.replace(
        TENANT,
        ConnectionSelection(
            connection_id="conn-1",
            selected_listings=[SelectedListing(listing_id=i, source="trading-api") for i in listing_ids],
        ),
    )


async def test_only_selected_line_items_are_stored(make_services, add_connection):
    services = make_services(orders_api([([ebay_order("O-1", "L1", "L2")], None)]))
    add_connection()
    select(services, "L1")

    result = await services.order_sync.sync_orders(TENANT)

    assert result.ok
    stored = services.orders.get(TENANT, "O-1")
    assert [li.listing_id for li in stored.line_items] == ["L1"]
    assert stored.connection_id == "conn-1"
    assert stored.synced_at == NOW
    assert stored.buyer.full_name == "Pat Buyer"


async def test_orders_without_selected_items_are_skipped(make_services, add_connection):
    services = make_services(orders_api([([ebay_order("O-1", "L9"), ebay_order("O-2", "L1")], None)]))
    add_connection()
    select(services, "L1")

    result = await services.order_sync.sync_orders(TENANT)

    assert result.total_fetched == 2
    assert result.total_saved == 1
    assert services.orders.get(TENANT, "O-1") is None


async def test_selection_with_unresolved_offers_stores_nothing(make_services, add_connection):
    services = make_services(orders_api([([ebay_order("O-unselected", "L999")], None)]))
    add_connection()
    services.selections.replace(
        TENANT,
        ConnectionSelection(connection_id="conn-1", selected_listings=[SelectedListing(offer_id="OFF-1")]),
    )

    result = await services.order_sync.sync_orders(TENANT)

    assert result.ok
    assert result.total_fetched == 1
    assert result.total_saved == 0
    assert services.orders.get(TENANT, "O-unselected") is None


async def test_deselected_listing_leaves_stored_orders_alone(make_services, add_connection):
    first_run = make_services(orders_api([([ebay_order("O-1", "L1")], None)]))
    add_connection()
    select(first_run, "L1")
    await first_run.order_sync.sync_orders(TENANT)
    before = first_run.orders.get(TENANT, "O-1")

    later = NOW + timedelta(hours=1)
    second_run = make_services(
        orders_api([([ebay_order("O-1", "L1"), ebay_order("O-3", "L1")], None)]),
        clock=lambda: later,
    )
    select(second_run, "L2")
    result = await second_run.order_sync.sync_orders(TENANT)

    after = second_run.orders.get(TENANT, "O-1")
    assert result.total_saved == 0
    assert after.line_items == before.line_items
    assert after.synced_at == NOW
    assert second_run.orders.get(TENANT, "O-3") is None
    assert second_run.selections.get(TENANT, "conn-1").last_order_sync_at == later


async def test_empty_selection_stores_every_order(make_services, add_connection):
    services = make_services(orders_api([([ebay_order("O-1", "L9"), ebay_order("O-2", "L1", "L2")], None)]))
    add_connection()

    result = await services.order_sync.sync_orders(TENANT)

    assert result.total_saved == 2
    assert len(services.orders.get(TENANT, "O-2").line_items) == 2


async def test_sync_is_idempotent(make_services, add_connection, store):
    page = ([ebay_order("O-1", "L1", "L2"), ebay_order("O-2", "L1")], None)
    services = make_services(orders_api([page, page]))
    add_connection()
    select(services, "L1")

    await services.order_sync.sync_orders(TENANT)
    first = sorted(store.list_for_tenant(ORDERS, TENANT))
    await services.order_sync.sync_orders(TENANT)
    second = sorted(store.list_for_tenant(ORDERS, TENANT))

    assert first == second
    assert len(second) == 2


async def test_resync_keeps_fields_written_by_others(make_services, add_connection, store):
    page = ([ebay_order("O-1", "L1")], None)
    services = make_services(orders_api([page, page]))
    add_connection()

    await services.order_sync.sync_orders(TENANT)
    store.set(ORDERS, TENANT, "O-1", {"internal_note": "packed"})
    await services.order_sync.sync_orders(TENANT)

    assert store.get(ORDERS, TENANT, "O-1")["internal_note"] == "packed"


async def test_pages_follow_next_link_until_short_page(make_services, add_connection):
    seen = []
    pages = [
        ([ebay_order("O-1", "L1"), ebay_order("O-2", "L1")], NEXT_URL),
        ([ebay_order("O-3", "L1")], f"{SANDBOX}/sell/fulfillment/v1/order?limit=2&offset=4"),
    ]
    services = make_services(orders_api(pages, seen))
    add_connection()

    result = await services.order_sync.sync_orders(TENANT, page_size=2)

    assert result.total_fetched == 3
    assert len(seen) == 2
    assert str(seen[1]) == NEXT_URL


async def test_max_pages_bounds_the_run(make_services, add_connection):
    pages = [([ebay_order(f"O-{i}", "L1"), ebay_order(f"O-{i}b", "L1")], NEXT_URL) for i in range(5)]
    services = make_services(orders_api(pages))
    add_connection()

    result = await services.order_sync.sync_orders(TENANT, max_pages=3, page_size=2)

    assert result.total_fetched == 6


async def test_not_started_filter_is_sent(make_services, add_connection):
    seen = []
    services = make_services(orders_api([([], None)], seen))
    add_connection()

    await services.order_sync.sync_orders(TENANT, filter_not_started=True)

    assert seen[0].params["filter"] == "orderfulfillmentstatus:{NOT_STARTED|IN_PROGRESS}"


async def test_marketplace_error_stops_run_and_keeps_saved_pages(make_services, add_connection):
    error = httpx.Response(500, json={"errors": [{"errorId": 2003, "message": "Internal error"}]})
    pages = [([ebay_order("O-1", "L1"), ebay_order("O-2", "L1")], NEXT_URL), error]
    services = make_services(orders_api(pages))
    add_connection()

    result = await services.order_sync.sync_orders(TENANT, page_size=2)

    assert not result.ok
    assert result.error == "Internal error"
    assert result.total_saved == 2
    assert services.orders.get(TENANT, "O-2") is not None


async def test_last_sync_is_stamped_on_selection(make_services, add_connection):
    services = make_services(orders_api([([], None)]))
    add_connection()

    await services.order_sync.sync_orders(TENANT)

    assert services.selections.get(TENANT, "conn-1").last_order_sync_at == NOW


async def test_missing_connection_is_reported(make_services):
    result = await make_services().order_sync.sync_orders(TENANT)

    assert not result.ok
    assert "Connect your eBay account" in result.error
