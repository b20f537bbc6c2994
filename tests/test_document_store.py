from datetime import datetime
from uuid import UUID

from app.services.document_store import InMemoryDocumentStore, merge_document, serialize_document


def test_merge_overwrites_top_level_fields_only():
    existing = {"a": 1, "b": {"x": 1, "y": 2}, "c": [1, 2, 3]}
    patch = {"b": {"x": 9}, "c": [4]}

    merged = merge_document(existing, patch)

    assert merged == {"a": 1, "b": {"x": 9}, "c": [4]}


def test_merge_leaves_absent_fields_untouched():
    merged = merge_document({"keep": "me", "status": "old"}, {"status": "new"})
    assert merged == {"keep": "me", "status": "new"}


def test_merge_does_not_alias_inputs():
    existing = {"items": [1]}
    patch = {"more": [2]}

    merged = merge_document(existing, patch)
    merged["items"].append(99)
    merged["more"].append(99)

    assert existing == {"items": [1]}
    assert patch == {"more": [2]}


def test_serialize_makes_naive_datetimes_utc():
    data = {"at": datetime(2026, 1, 2, 3, 4, 5), "id": UUID("12345678-1234-5678-1234-567812345678")}

    assert serialize_document(data) == {
        "at": "2026-01-02T03:04:05+00:00",
        "id": "12345678-1234-5678-1234-567812345678",
    }


def test_in_memory_store_merge_and_replace():
    store = InMemoryDocumentStore()
    store.set("things", "t1", "d1", {"a": 1, "b": 2})

    assert store.set("things", "t1", "d1", {"b": 3}) == {"a": 1, "b": 3}
    assert store.set("things", "t1", "d1", {"c": 4}, merge=False) == {"c": 4}


def test_in_memory_store_is_tenant_scoped():
    store = InMemoryDocumentStore()
    store.set("things", "t1", "d1", {"a": 1})
    store.set("things", "t2", "d1", {"a": 2})

    assert store.get("things", "t1", "d1") == {"a": 1}
    assert store.list_for_tenant("things", "t2") == [("d1", {"a": 2})]
    assert len(store.list_all("things", limit=1)) == 1
    assert store.delete("things", "t1", "d1") is True
    assert store.delete("things", "t1", "d1") is False
