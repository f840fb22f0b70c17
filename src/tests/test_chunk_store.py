from __future__ import annotations

import pytest
from sqlalchemy import create_engine, text

from src.rag.types import ChunkEmbedding, DocumentChunk
from src.vectorstore.inmemory import PREVIEW_CHARS, InMemoryChunkStore
from src.vectorstore.sql import ChunkStoreError, SQLChunkStore


def _embedding(document_id: str, index: int, text: str = "clause", model: str = "hash-4"):
    chunk = DocumentChunk(
        document_id=document_id,
        chunk_index=index,
        text=text,
        char_start=index * 100,
        char_end=index * 100 + len(text),
        page_start=1,
        page_end=2,
    )
    return ChunkEmbedding(chunk=chunk, embedding=[0.5, 0.5, 0.5, 0.5], model=model)


@pytest.fixture(params=["memory", "sql"])
def make_store(request, tmp_path):
    def factory(text_retention: str = "full"):
        if request.param == "memory":
            return InMemoryChunkStore(text_retention=text_retention)
        return SQLChunkStore(
            f"sqlite:///{tmp_path / f'chunks-{text_retention}.db'}",
            text_retention=text_retention,
        )

    return factory


def test_list_is_ordered_by_chunk_index(make_store) -> None:
    store = make_store()
    store.add([_embedding("lease", 2), _embedding("lease", 0), _embedding("lease", 1)])

    listed = store.list_for_document("lease")

    assert [item.chunk.chunk_index for item in listed] == [0, 1, 2]
    assert listed[0].embedding == [0.5, 0.5, 0.5, 0.5]
    assert listed[0].model == "hash-4"
    assert (listed[0].chunk.page_start, listed[0].chunk.page_end) == (1, 2)


def test_list_limit(make_store) -> None:
    store = make_store()
    store.add([_embedding("lease", idx) for idx in range(5)])

    assert [item.chunk.chunk_index for item in store.list_for_document("lease", limit=2)] == [0, 1]


def test_documents_are_isolated(make_store) -> None:
    store = make_store()
    store.add([_embedding("lease", 0), _embedding("will", 0), _embedding("will", 1)])

    assert store.count("lease") == 1
    assert store.count("will") == 2
    assert store.delete_document("will") == 2
    assert store.list_for_document("will") == []
    assert store.count("lease") == 1


def test_stats(make_store) -> None:
    store = make_store()
    store.add([_embedding("lease", 0), _embedding("will", 0)])

    stats = store.stats()

    assert stats["document_count"] == 2
    assert stats["chunk_count"] == 2
    assert stats["backend"] in {"memory", "sql"}


def test_preview_retention_truncates_text(make_store) -> None:
    store = make_store(text_retention="preview")
    store.add([_embedding("lease", 0, text="x" * 1200)])

    stored = store.list_for_document("lease")[0]

    assert len(stored.chunk.text) == PREVIEW_CHARS
    assert stored.chunk.char_end == 1200


def test_add_nothing(make_store) -> None:
    assert make_store().add([]) == 0


def test_replace_document_swaps_chunks(make_store) -> None:
    store = make_store()
    store.add([_embedding("lease", idx) for idx in range(3)] + [_embedding("will", 0)])

    stored = store.replace_document("lease", [_embedding("lease", 0, text="new clause")])

    assert stored == 1
    assert [item.chunk.text for item in store.list_for_document("lease")] == ["new clause"]
    assert store.count("will") == 1


def test_replace_document_with_nothing_clears(make_store) -> None:
    store = make_store()
    store.add([_embedding("lease", 0)])

    assert store.replace_document("lease", []) == 0
    assert store.list_for_document("lease") == []


def test_failed_replace_keeps_previous_chunks(tmp_path) -> None:
    store = SQLChunkStore(f"sqlite:///{tmp_path / 'chunks.db'}")
    store.add([_embedding("lease", 0), _embedding("lease", 1)])

    with pytest.raises(ChunkStoreError):
        store.replace_document("lease", [_embedding("lease", 0), _embedding("lease", 0)])

    assert [item.chunk.chunk_index for item in store.list_for_document("lease")] == [0, 1]


def test_sql_errors_are_wrapped(tmp_path) -> None:
    uri = f"sqlite:///{tmp_path / 'chunks.db'}"
    store = SQLChunkStore(uri)
    engine = create_engine(uri)
    with engine.begin() as conn:
        conn.execute(text("DROP TABLE document_chunks"))
    engine.dispose()

    with pytest.raises(ChunkStoreError):
        store.delete_document("lease")
    with pytest.raises(ChunkStoreError):
        store.count("lease")
    with pytest.raises(ChunkStoreError):
        store.stats()
    with pytest.raises(ChunkStoreError):
        store.replace_document("lease", [_embedding("lease", 0)])
