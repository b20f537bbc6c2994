"""
Typed repositories over the document store.
Map pydantic models (app.models.database) to tenant-scoped documents.
"""

from datetime import datetime
from typing import Any
from uuid import uuid4

import structlog

from app.models.database import (
    Connection,
    ConnectionSelection,
    InventoryRecord,
    MarketplaceOrder,
)
from app.services.document_store import (
    CONNECTIONS,
    INVENTORY,
    ORDERS,
    SELECTIONS,
    DocumentStore,
)

logger = structlog.get_logger()


class ConnectionRepository:
    """Connection records. Only the token manager writes through this repository."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def get(self, tenant_id: str, connection_id: str) -> Connection | None:
        data = self.store.get(CONNECTIONS, tenant_id, connection_id)
        if data is None:
            return None
        return Connection(**{**data, "id": connection_id, "tenant_id": tenant_id})

    def list_for_tenant(self, tenant_id: str) -> list[Connection]:
        """Return a tenant's connections, most recently connected first."""
        connections = [
            Connection(**{**data, "id": doc_id, "tenant_id": tenant_id})
            for doc_id, data in self.store.list_for_tenant(CONNECTIONS, tenant_id)
        ]
        return sorted(connections, key=lambda c: c.connected_at, reverse=True)

    def latest_for_tenant(self, tenant_id: str) -> Connection | None:
        connections = self.list_for_tenant(tenant_id)
        return connections[0] if connections else None

    def list_all(self, limit: int) -> list[Connection]:
        """Connections across all tenants, up to limit. Unparseable rows are skipped."""
        result = []
        for tenant_id, doc_id, data in self.store.list_all(CONNECTIONS, limit):
            try:
                result.append(Connection(**{**data, "id": doc_id, "tenant_id": tenant_id}))
            except Exception as e:
                logger.warning(
                    "Failed to parse eBay connection",
                    tenant_id=tenant_id,
                    connection_id=doc_id,
                    error=str(e),
                )
        return result

    def create(self, tenant_id: str, fields: dict[str, Any]) -> Connection:
        connection_id = uuid4().hex
        data = {**fields, "id": connection_id, "tenant_id": tenant_id}
        stored = self.store.set(CONNECTIONS, tenant_id, connection_id, data, merge=False)
        return Connection(**stored)

    def update(self, tenant_id: str, connection_id: str, patch: dict[str, Any]) -> Connection:
        stored = self.store.set(CONNECTIONS, tenant_id, connection_id, patch, merge=True)
        return Connection(**{**stored, "id": connection_id, "tenant_id": tenant_id})

    def delete(self, tenant_id: str, connection_id: str) -> bool:
        return self.store.delete(CONNECTIONS, tenant_id, connection_id)


class SelectionRepository:
    """Per-connection selected listings plus last-sync stamps."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def get(self, tenant_id: str, connection_id: str) -> ConnectionSelection:
        data = self.store.get(SELECTIONS, tenant_id, connection_id)
        if data is None:
            return ConnectionSelection(connection_id=connection_id)
        return ConnectionSelection(**{**data, "connection_id": connection_id})

    def replace(self, tenant_id: str, selection: ConnectionSelection) -> ConnectionSelection:
        """Replace the selected set wholesale. Sync stamps are kept."""
        patch = selection.model_dump(
            include={"connection_id", "selected_listings", "selected_offer_ids", "selected_listing_ids"}
        )
        stored = self.store.set(SELECTIONS, tenant_id, selection.connection_id, patch, merge=True)
        return ConnectionSelection(**stored)

    def stamp(self, tenant_id: str, connection_id: str, field: str, when: datetime) -> None:
        self.store.set(
            SELECTIONS,
            tenant_id,
            connection_id,
            {"connection_id": connection_id, field: when},
            merge=True,
        )

    def delete(self, tenant_id: str, connection_id: str) -> bool:
        return self.store.delete(SELECTIONS, tenant_id, connection_id)


class OrderRepository:
    """Marketplace orders keyed by the eBay order id."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def get(self, tenant_id: str, order_id: str) -> MarketplaceOrder | None:
        data = self.store.get(ORDERS, tenant_id, order_id)
        return MarketplaceOrder(**data) if data is not None else None

    def upsert_order(self, tenant_id: str, order_id: str, patch: dict[str, Any]) -> MarketplaceOrder:
        """Merge-write an order and return the merged record."""
        stored = self.store.set(ORDERS, tenant_id, order_id, {**patch, "order_id": order_id}, merge=True)
        return MarketplaceOrder(**stored)

    def list_for_tenant(self, tenant_id: str, limit: int = 200) -> list[MarketplaceOrder]:
        orders = [MarketplaceOrder(**data) for _, data in self.store.list_for_tenant(ORDERS, tenant_id)]
        orders.sort(key=lambda o: o.creation_date or "", reverse=True)
        return orders[:limit]


class InventoryRepository:
    """Internal inventory records mirrored from eBay listings."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def get(self, tenant_id: str, record_id: str) -> InventoryRecord | None:
        data = self.store.get(INVENTORY, tenant_id, record_id)
        return InventoryRecord(**{**data, "id": record_id}) if data is not None else None

    def upsert(self, tenant_id: str, record_id: str, patch: dict[str, Any]) -> InventoryRecord:
        stored = self.store.set(INVENTORY, tenant_id, record_id, {**patch, "id": record_id}, merge=True)
        return InventoryRecord(**stored)
