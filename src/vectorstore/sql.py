from __future__ import annotations

"""SQL-backed chunk embedding store."""

import json
from datetime import datetime, timezone
from typing import Any, Iterable

from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    func,
    select,
)
from sqlalchemy.exc import SQLAlchemyError

from src.rag.types import ChunkEmbedding, DocumentChunk
from src.vectorstore.inmemory import retain_text


class ChunkStoreError(RuntimeError):
    """Raised when chunk persistence fails."""
    pass


class SQLChunkStore:
    """Store chunk rows keyed by (document_id, chunk_index) in a SQL database."""
    def __init__(self, connection_uri: str, text_retention: str = "full") -> None:
        """Initialize the store and ensure the table exists."""
        self.text_retention = text_retention
        self._engine = create_engine(connection_uri)
        self._metadata = MetaData()
        self._table = Table(
            "document_chunks",
            self._metadata,
            Column("document_id", String(64), primary_key=True),
            Column("chunk_index", Integer, primary_key=True),
            Column("text", Text, nullable=False),
            Column("char_start", Integer, nullable=False),
            Column("char_end", Integer, nullable=False),
            Column("page_start", Integer, nullable=True),
            Column("page_end", Integer, nullable=True),
            Column("embedding", Text, nullable=False),
            Column("embedding_model", String(128), nullable=False),
            Column("created_at", DateTime(timezone=True), nullable=False),
        )
        self._metadata.create_all(self._engine)

    def add(self, embeddings: Iterable[ChunkEmbedding]) -> int:
        """Insert chunk rows in a single transaction."""
        created_at = datetime.now(timezone.utc)
        rows = [
            self._serialize(retain_text(embedding, self.text_retention), created_at)
            for embedding in embeddings
        ]
        if not rows:
            return 0
        try:
            with self._engine.begin() as conn:
                conn.execute(self._table.insert(), rows)
        except SQLAlchemyError as exc:
            raise ChunkStoreError(str(exc)) from exc
        return len(rows)

    def list_for_document(
        self, document_id: str, limit: int | None = None
    ) -> list[ChunkEmbedding]:
        """Load a document's chunk rows ordered by chunk index."""
        query = (
            select(self._table)
            .where(self._table.c.document_id == document_id)
            .order_by(self._table.c.chunk_index)
        )
        if limit is not None:
            query = query.limit(limit)
        try:
            with self._engine.connect() as conn:
                rows = conn.execute(query).mappings().all()
        except SQLAlchemyError as exc:
            raise ChunkStoreError(str(exc)) from exc
        return [self._deserialize(row) for row in rows]

    def count(self, document_id: str) -> int:
        query = (
            select(func.count())
            .select_from(self._table)
            .where(self._table.c.document_id == document_id)
        )
        try:
            with self._engine.connect() as conn:
                return int(conn.execute(query).scalar_one())
        except SQLAlchemyError as exc:
            raise ChunkStoreError(str(exc)) from exc

    def replace_document(
        self, document_id: str, embeddings: Iterable[ChunkEmbedding]
    ) -> int:
        """Delete a document's rows and insert the new set in one transaction."""
        created_at = datetime.now(timezone.utc)
        rows = [
            self._serialize(retain_text(embedding, self.text_retention), created_at)
            for embedding in embeddings
        ]
        try:
            with self._engine.begin() as conn:
                conn.execute(
                    self._table.delete().where(self._table.c.document_id == document_id)
                )
                if rows:
                    conn.execute(self._table.insert(), rows)
        except SQLAlchemyError as exc:
            raise ChunkStoreError(str(exc)) from exc
        return len(rows)

    def delete_document(self, document_id: str) -> int:
        """Delete every chunk row of a document."""
        try:
            with self._engine.begin() as conn:
                result = conn.execute(
                    self._table.delete().where(self._table.c.document_id == document_id)
                )
        except SQLAlchemyError as exc:
            raise ChunkStoreError(str(exc)) from exc
        return int(result.rowcount or 0)

    def stats(self) -> dict[str, int | str]:
        """Return basic stats for the store."""
        try:
            with self._engine.connect() as conn:
                chunk_count = conn.execute(
                    select(func.count()).select_from(self._table)
                ).scalar_one()
                document_count = conn.execute(
                    select(func.count(func.distinct(self._table.c.document_id)))
                ).scalar_one()
        except SQLAlchemyError as exc:
            raise ChunkStoreError(str(exc)) from exc
        return {
            "backend": "sql",
            "document_count": int(document_count),
            "chunk_count": int(chunk_count),
        }

    def _serialize(self, embedding: ChunkEmbedding, created_at: datetime) -> dict[str, Any]:
        """Prepare a chunk row for insertion."""
        chunk = embedding.chunk
        return {
            "document_id": chunk.document_id,
            "chunk_index": chunk.chunk_index,
            "text": chunk.text,
            "char_start": chunk.char_start,
            "char_end": chunk.char_end,
            "page_start": chunk.page_start,
            "page_end": chunk.page_end,
            "embedding": json.dumps(embedding.embedding),
            "embedding_model": embedding.model,
            "created_at": created_at,
        }

    def _deserialize(self, row: Any) -> ChunkEmbedding:
        """Rebuild a chunk embedding from a stored row."""
        chunk = DocumentChunk(
            document_id=row["document_id"],
            chunk_index=row["chunk_index"],
            text=row["text"],
            char_start=row["char_start"],
            char_end=row["char_end"],
            page_start=row["page_start"],
            page_end=row["page_end"],
        )
        return ChunkEmbedding(
            chunk=chunk,
            embedding=[float(value) for value in json.loads(row["embedding"])],
            model=row["embedding_model"],
        )
