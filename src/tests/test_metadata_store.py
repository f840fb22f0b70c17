from __future__ import annotations

import pytest
from sqlalchemy import create_engine, text

from src.metadata.store import (
    DocumentRecord,
    DocumentStoreError,
    InMemoryDocumentStore,
    SQLDocumentStore,
)


def _record(document_id: str = "lease-1", org_id: str = "org-a", **kwargs) -> DocumentRecord:
    return DocumentRecord(
        document_id=document_id,
        org_id=org_id,
        file_name="lease.pdf",
        analysis={"summary": "Mietvertrag für die Wohnung", "keyPoints": ["Kaution"]},
        page_count=3,
        extraction_status="COMPLETED",
        text_hash="abc123",
        **kwargs,
    )


@pytest.fixture(params=["memory", "sql"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryDocumentStore()
    return SQLDocumentStore(f"sqlite:///{tmp_path / 'documents.db'}")


def test_create_and_get_round_trip(store) -> None:
    store.create(_record())

    fetched = store.get("lease-1", "org-a")

    assert fetched is not None
    assert fetched.analysis == {"summary": "Mietvertrag für die Wohnung", "keyPoints": ["Kaution"]}
    assert fetched.page_count == 3
    assert fetched.index_status == "PENDING"


def test_records_are_scoped_to_org(store) -> None:
    store.create(_record())

    assert store.get("lease-1", "org-b") is None
    assert store.delete("lease-1", "org-b") is False
    assert store.get("lease-1", "org-a") is not None


def test_update_index_outcome(store) -> None:
    store.create(_record())

    store.update_index("lease-1", 0, "FAILED", "embedding service unavailable")
    failed = store.get("lease-1", "org-a")
    store.update_index("lease-1", 12, "COMPLETED")
    completed = store.get("lease-1", "org-a")

    assert failed.index_status == "FAILED"
    assert failed.index_error == "embedding service unavailable"
    assert completed.chunk_count == 12
    assert completed.index_error is None


def test_find_by_hash(store) -> None:
    store.create(_record())

    assert store.find_by_hash("org-a", "abc123").document_id == "lease-1"
    assert store.find_by_hash("org-b", "abc123") is None


def test_duplicate_id_rejected(store) -> None:
    store.create(_record())

    with pytest.raises(DocumentStoreError):
        store.create(_record())


def test_delete(store) -> None:
    store.create(_record())

    assert store.delete("lease-1", "org-a") is True
    assert store.get("lease-1", "org-a") is None


def test_sql_errors_are_wrapped(tmp_path) -> None:
    uri = f"sqlite:///{tmp_path / 'documents.db'}"
    store = SQLDocumentStore(uri)
    engine = create_engine(uri)
    with engine.begin() as conn:
        conn.execute(text("DROP TABLE documents"))
    engine.dispose()

    with pytest.raises(DocumentStoreError):
        store.get("lease-1", "org-a")
    with pytest.raises(DocumentStoreError):
        store.update_index("lease-1", 3, "COMPLETED")
    with pytest.raises(DocumentStoreError):
        store.delete("lease-1", "org-a")
    with pytest.raises(DocumentStoreError):
        store.find_by_hash("org-a", "abc123")
