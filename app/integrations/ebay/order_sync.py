"""
Order sync: pull eBay orders into the tenant's order store, filtered to selected listings.

Pages are followed through eBay's `next` link, up to max_pages or a short page. An order is
written only when at least one of its line items is selected, and then only with those line
items. A connection with no selection at all syncs every line item. Writes are merge-upserts
keyed by the eBay order id, so repeated runs converge.
A marketplace error aborts the run; there is no mid-page resume in the order API.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import httpx
import structlog

from app.integrations.ebay.api_client import EbayRestClient
from app.integrations.ebay.client_config import MarketplaceClientConfig
from app.integrations.ebay.errors import MarketplaceRejected
from app.integrations.ebay.token_refresh import EbayTokenManager, utc_now
from app.integrations.ebay.transformer import matching_line_items, order_patch
from app.services.repositories import OrderRepository, SelectionRepository

logger = structlog.get_logger()

ORDERS_PAGE_SIZE = 50
MAX_ORDER_PAGES = 20


@dataclass
class SyncOrdersResult:
    ok: bool
    total_fetched: int = 0
    total_saved: int = 0
    connection_id: str | None = None
    error: str | None = None
    detail: Any = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "ok": self.ok,
            "total_fetched": self.total_fetched,
            "total_saved": self.total_saved,
        }
        if self.error:
            data["error"] = self.error
        if self.detail is not None:
            data["detail"] = self.detail
        return data


class OrderSyncEngine:
    def __init__(
        self,
        config: MarketplaceClientConfig,
        tokens: EbayTokenManager,
        selections: SelectionRepository,
        orders: OrderRepository,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config
        self.tokens = tokens
        self.selections = selections
        self.orders = orders
        self.http_client = http_client
        self.clock = clock

    async def sync_orders(
        self,
        tenant_id: str,
        connection_id: str | None = None,
        filter_not_started: bool = False,
        max_pages: int = MAX_ORDER_PAGES,
        page_size: int = ORDERS_PAGE_SIZE,
    ) -> SyncOrdersResult:
        """
        Sync one connection's orders.

        Raises:
            TokenInvalid: The connection's token could not be refreshed.
        """
        connection = await self.tokens.get_valid_token(tenant_id, connection_id)
        if connection is None:
            return SyncOrdersResult(
                ok=False,
                error="No eBay connection. Connect your eBay account in Integrations first.",
            )

        selection = self.selections.get(tenant_id, connection.id)
        log = logger.bind(tenant_id=tenant_id, connection_id=connection.id)
        selected_ids: set[str] | None = None
        if selection.is_empty:
            log.info("No listing filter configured, syncing every line item")
        else:
            selected_ids = selection.listing_id_set()
            if not selected_ids:
                log.warning(
                    "Selection has no resolved listing ids, no orders will match",
                    selected_offer_ids=len(selection.selected_offer_ids),
                )

        rest = EbayRestClient(
            self.config.for_environment(connection.environment),
            connection.access_token,
            self.http_client,
        )
        result = SyncOrdersResult(ok=True, connection_id=connection.id)
        next_url: str | None = rest.first_orders_url(page_size, filter_not_started)

        try:
            for page_number in range(max_pages):
                if not next_url:
                    break
                try:
                    page = await rest.get_orders_page(next_url)
                except MarketplaceRejected as e:
                    log.error(
                        "Order sync aborted by eBay error",
                        page_number=page_number,
                        status_code=e.status_code,
                        error=e.message,
                    )
                    result.ok = False
                    result.error = e.message
                    result.detail = e.detail
                    return result

                result.total_fetched += len(page.orders)
                for order in page.orders:
                    if not order.orderId:
                        continue
                    items = matching_line_items(order, selected_ids)
                    if not items:
                        continue
                    patch = order_patch(order, items, connection.id, self.clock())
                    self.orders.upsert_order(tenant_id, order.orderId, patch)
                    result.total_saved += 1

                next_url = page.next
                if len(page.orders) < page_size:
                    break
        finally:
            await rest.close()

        self.selections.stamp(tenant_id, connection.id, "last_order_sync_at", self.clock())
        log.info(
            "eBay order sync completed",
            total_fetched=result.total_fetched,
            total_saved=result.total_saved,
        )
        return result
