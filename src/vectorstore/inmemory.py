from __future__ import annotations

"""In-memory chunk embedding store for local testing and small deployments."""

from dataclasses import dataclass, field, replace
from typing import Iterable, Protocol

from src.rag.types import ChunkEmbedding

PREVIEW_CHARS = 500


class ChunkStore(Protocol):
    """Protocol for persisted chunk embeddings."""

    def add(self, embeddings: Iterable[ChunkEmbedding]) -> int:
        """Store chunk embeddings and return how many were written."""
        raise NotImplementedError

    def list_for_document(
        self, document_id: str, limit: int | None = None
    ) -> list[ChunkEmbedding]:
        """Return a document's chunk embeddings ordered by chunk index."""
        raise NotImplementedError

    def replace_document(
        self, document_id: str, embeddings: Iterable[ChunkEmbedding]
    ) -> int:
        """Swap a document's chunks for a new set as one operation."""
        raise NotImplementedError

    def count(self, document_id: str) -> int:
        raise NotImplementedError

    def delete_document(self, document_id: str) -> int:
        raise NotImplementedError

    def stats(self) -> dict[str, int | str]:
        raise NotImplementedError


def retain_text(embedding: ChunkEmbedding, retention: str) -> ChunkEmbedding:
    """Apply the chunk text retention policy before storage."""
    if retention != "preview" or len(embedding.chunk.text) <= PREVIEW_CHARS:
        return embedding
    chunk = replace(embedding.chunk, text=embedding.chunk.text[:PREVIEW_CHARS])
    return replace(embedding, chunk=chunk)


@dataclass
class InMemoryChunkStore:
    """Chunk embeddings held in process memory, keyed by document."""
    text_retention: str = "full"
    documents: dict[str, dict[int, ChunkEmbedding]] = field(default_factory=dict)

    def add(self, embeddings: Iterable[ChunkEmbedding]) -> int:
        """Store embeddings; an existing (document, index) pair is replaced."""
        added = 0
        for embedding in embeddings:
            rows = self.documents.setdefault(embedding.chunk.document_id, {})
            rows[embedding.chunk.chunk_index] = retain_text(embedding, self.text_retention)
            added += 1
        return added

    def list_for_document(
        self, document_id: str, limit: int | None = None
    ) -> list[ChunkEmbedding]:
        """Return embeddings for a document in chunk index order."""
        rows = self.documents.get(document_id, {})
        ordered = [rows[index] for index in sorted(rows)]
        if limit is not None:
            return ordered[:limit]
        return ordered

    def replace_document(
        self, document_id: str, embeddings: Iterable[ChunkEmbedding]
    ) -> int:
        """Replace every chunk of a document with a new set."""
        rows: dict[int, ChunkEmbedding] = {}
        for embedding in embeddings:
            rows[embedding.chunk.chunk_index] = retain_text(embedding, self.text_retention)
        self.documents.pop(document_id, None)
        if rows:
            self.documents[document_id] = rows
        return len(rows)

    def count(self, document_id: str) -> int:
        return len(self.documents.get(document_id, {}))

    def delete_document(self, document_id: str) -> int:
        """Delete every chunk of a document."""
        return len(self.documents.pop(document_id, {}))

    def stats(self) -> dict[str, int | str]:
        """Return basic stats for the store."""
        return {
            "backend": "memory",
            "document_count": len(self.documents),
            "chunk_count": sum(len(rows) for rows in self.documents.values()),
        }
