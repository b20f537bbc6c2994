"""
Wiring for the eBay sync components.
Builds every service around one document store, one client config and one shared HTTP client.
"""

from collections.abc import Callable
from datetime import datetime
from functools import lru_cache

import httpx

from app.integrations.ebay.client_config import MarketplaceClientConfig
from app.integrations.ebay.fulfillment import FulfillmentSubmitter
from app.integrations.ebay.inventory_reconciler import InventoryReconciler
from app.integrations.ebay.listing_discovery import ListingDiscovery
from app.integrations.ebay.order_sync import OrderSyncEngine
from app.integrations.ebay.selection import SelectionService
from app.integrations.ebay.token_refresh import EbayTokenManager, utc_now
from app.services.document_store import DocumentStore
from app.services.repositories import (
    ConnectionRepository,
    InventoryRepository,
    OrderRepository,
    SelectionRepository,
)


class EbayServices:
    def __init__(
        self,
        store: DocumentStore,
        config: MarketplaceClientConfig,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.config = config
        self.http_client = http_client

        self.connections = ConnectionRepository(store)
        self.selections = SelectionRepository(store)
        self.orders = OrderRepository(store)
        self.inventory = InventoryRepository(store)

        self.tokens = EbayTokenManager(config, self.connections, http_client, clock)
        self.discovery = ListingDiscovery(config, http_client)
        self.selection_service = SelectionService(config, self.selections, self.tokens, http_client)
        self.order_sync = OrderSyncEngine(config, self.tokens, self.selections, self.orders, http_client, clock)
        self.fulfillment = FulfillmentSubmitter(config, self.tokens, self.orders, http_client)
        self.reconciler = InventoryReconciler(
            config, self.tokens, self.selections, self.inventory, http_client, clock
        )


@lru_cache
def get_ebay_services() -> EbayServices:
    """Process-wide services backed by Supabase. Overridden in tests."""
    from app.services.supabase_service import SupabaseDocumentStore

    return EbayServices(SupabaseDocumentStore(), MarketplaceClientConfig.from_settings())
