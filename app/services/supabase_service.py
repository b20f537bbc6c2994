"""
Supabase implementation of the keyed document store.
One table per collection (ebay_connections, ebay_selections, ebay_orders, inventory), each with
columns tenant_id, id, data (jsonb), updated_at and a unique key on (tenant_id, id).
"""

from typing import Any, Dict, List, Optional, Tuple
from datetime import datetime, timezone
from supabase import create_client, Client
import structlog

from app.config import settings
from app.services.document_store import DocumentStore, merge_document, serialize_document

logger = structlog.get_logger()


class SupabaseDocumentStore(DocumentStore):
    """Document store backed by Supabase tables."""

    def __init__(self, client: Optional[Client] = None):
        """Initialize Supabase client."""
        self.client: Client = client or create_client(
            settings.supabase_url, settings.supabase_service_key
        )

    def get(self, collection: str, tenant_id: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """
        Get one document.

        Args:
            collection: Table name
            tenant_id: Owning tenant
            doc_id: Document key

        Returns:
            Document data if found, None otherwise
        """
        try:
            # Don't use .single() - it throws exception on 0 rows
            result = (
                self.client.table(collection)
                .select("data")
                .eq("tenant_id", tenant_id)
                .eq("id", doc_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error(
                "Failed to get document",
                collection=collection,
                tenant_id=tenant_id,
                doc_id=doc_id,
                error=str(e),
            )
            raise

        if result.data and len(result.data) > 0:
            return result.data[0].get("data") or {}
        return None

    def set(
        self,
        collection: str,
        tenant_id: str,
        doc_id: str,
        data: Dict[str, Any],
        merge: bool = True,
    ) -> Dict[str, Any]:
        """
        Write a document. With merge=True the current document is re-fetched right
        before the write and the patch is merged onto it.
        """
        payload = serialize_document(data)
        if merge:
            payload = merge_document(self.get(collection, tenant_id, doc_id), payload)

        row = {
            "tenant_id": tenant_id,
            "id": doc_id,
            "data": payload,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            result = (
                self.client.table(collection)
                .upsert(row, on_conflict="tenant_id,id")
                .execute()
            )
        except Exception as e:
            logger.error(
                "Failed to write document",
                collection=collection,
                tenant_id=tenant_id,
                doc_id=doc_id,
                error=str(e),
            )
            raise

        if result.data:
            return result.data[0].get("data") or payload
        return payload

    def delete(self, collection: str, tenant_id: str, doc_id: str) -> bool:
        try:
            result = (
                self.client.table(collection)
                .delete()
                .eq("tenant_id", tenant_id)
                .eq("id", doc_id)
                .execute()
            )
        except Exception as e:
            logger.error(
                "Failed to delete document",
                collection=collection,
                tenant_id=tenant_id,
                doc_id=doc_id,
                error=str(e),
            )
            raise
        return bool(result.data)

    def list_for_tenant(self, collection: str, tenant_id: str) -> List[Tuple[str, Dict[str, Any]]]:
        try:
            result = (
                self.client.table(collection)
                .select("id, data")
                .eq("tenant_id", tenant_id)
                .execute()
            )
        except Exception as e:
            logger.error(
                "Failed to list documents",
                collection=collection,
                tenant_id=tenant_id,
                error=str(e),
            )
            raise
        return [(row["id"], row.get("data") or {}) for row in result.data or []]

    def list_all(self, collection: str, limit: int) -> List[Tuple[str, str, Dict[str, Any]]]:
        try:
            result = (
                self.client.table(collection)
                .select("tenant_id, id, data")
                .order("tenant_id")
                .limit(limit)
                .execute()
            )
        except Exception as e:
            logger.error("Failed to list documents", collection=collection, error=str(e))
            raise
        return [
            (row["tenant_id"], row["id"], row.get("data") or {})
            for row in result.data or []
        ]
