"""
Keyed document store interface used by the sync engine.

Documents live under (collection, tenant_id, doc_id). Writes with merge=True follow
merge_document(): top-level fields in the patch overwrite, fields absent from the patch
are left untouched, and nested values (lists, dicts) are replaced wholesale.
"""

import copy
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

CONNECTIONS = "ebay_connections"
SELECTIONS = "ebay_selections"
ORDERS = "ebay_orders"
INVENTORY = "inventory"


def serialize_document(data: Any) -> Any:
    """
    Recursively convert datetime objects to ISO format strings and UUIDs to strings,
    so documents are JSON-safe before they reach the store.
    """
    if isinstance(data, dict):
        return {k: serialize_document(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [serialize_document(item) for item in data]
    elif isinstance(data, datetime):
        if data.tzinfo is None:
            data = data.replace(tzinfo=UTC)
        return data.isoformat()
    elif isinstance(data, UUID):
        return str(data)
    else:
        return data


def merge_document(existing: dict[str, Any] | None, patch: dict[str, Any]) -> dict[str, Any]:
    """
    Merge a partial document into an existing one.

    Field-level overwrite only. No deep merge: a nested list or dict in the patch
    replaces the stored value entirely.
    """
    merged = copy.deepcopy(existing) if existing else {}
    for key, value in patch.items():
        merged[key] = copy.deepcopy(value)
    return merged


class DocumentStore(ABC):
    """Opaque keyed document store, scoped per tenant."""

    @abstractmethod
    def get(self, collection: str, tenant_id: str, doc_id: str) -> dict[str, Any] | None:
        """Return the document or None."""

    @abstractmethod
    def set(
        self,
        collection: str,
        tenant_id: str,
        doc_id: str,
        data: dict[str, Any],
        merge: bool = True,
    ) -> dict[str, Any]:
        """
        Write a document and return the stored result.

        With merge=True the data is applied via merge_document(); otherwise the
        document is replaced.
        """

    @abstractmethod
    def delete(self, collection: str, tenant_id: str, doc_id: str) -> bool:
        """Delete a document. Returns True if it existed."""

    @abstractmethod
    def list_for_tenant(self, collection: str, tenant_id: str) -> list[tuple[str, dict[str, Any]]]:
        """Return (doc_id, data) pairs for one tenant."""

    @abstractmethod
    def list_all(self, collection: str, limit: int) -> list[tuple[str, str, dict[str, Any]]]:
        """Return up to `limit` (tenant_id, doc_id, data) triples across all tenants."""


class InMemoryDocumentStore(DocumentStore):
    """Process-local store. Used for local runs and tests."""

    def __init__(self):
        self._data: dict[str, dict[tuple[str, str], dict[str, Any]]] = {}

    def get(self, collection, tenant_id, doc_id):
        doc = self._data.get(collection, {}).get((tenant_id, doc_id))
        return copy.deepcopy(doc) if doc is not None else None

    def set(self, collection, tenant_id, doc_id, data, merge=True):
        docs = self._data.setdefault(collection, {})
        payload = serialize_document(data)
        if merge:
            stored = merge_document(docs.get((tenant_id, doc_id)), payload)
        else:
            stored = copy.deepcopy(payload)
        docs[(tenant_id, doc_id)] = stored
        return copy.deepcopy(stored)

    def delete(self, collection, tenant_id, doc_id):
        return self._data.get(collection, {}).pop((tenant_id, doc_id), None) is not None

    def list_for_tenant(self, collection, tenant_id):
        return [
            (doc_id, copy.deepcopy(data))
            for (tid, doc_id), data in self._data.get(collection, {}).items()
            if tid == tenant_id
        ]

    def list_all(self, collection, limit):
        rows = [
            (tid, doc_id, copy.deepcopy(data))
            for (tid, doc_id), data in self._data.get(collection, {}).items()
        ]
        return rows[:limit]
