from __future__ import annotations

"""Document records: analysis metadata plus extraction and index status."""

import json
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Protocol

from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    select,
)
from sqlalchemy.exc import SQLAlchemyError


class DocumentStoreError(RuntimeError):
    """Raised when document persistence fails."""
    pass


@dataclass(frozen=True)
class DocumentRecord:
    """Document tracked for question answering."""
    document_id: str
    org_id: str
    file_name: str
    analysis: dict[str, Any] | None = None
    page_count: int | None = None
    extraction_status: str = "PENDING"
    extraction_error: str | None = None
    text_hash: str | None = None
    chunk_count: int = 0
    index_status: str = "PENDING"
    index_error: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class DocumentStore(Protocol):
    """Protocol for document record persistence."""

    def create(self, record: DocumentRecord) -> DocumentRecord:
        raise NotImplementedError

    def get(self, document_id: str, org_id: str) -> DocumentRecord | None:
        raise NotImplementedError

    def update_index(
        self,
        document_id: str,
        chunk_count: int,
        index_status: str,
        index_error: str | None = None,
    ) -> None:
        raise NotImplementedError

    def delete(self, document_id: str, org_id: str) -> bool:
        raise NotImplementedError

    def find_by_hash(self, org_id: str, text_hash: str) -> DocumentRecord | None:
        raise NotImplementedError


class InMemoryDocumentStore:
    """Document records held in process memory."""
    def __init__(self) -> None:
        self._records: dict[str, DocumentRecord] = {}

    def create(self, record: DocumentRecord) -> DocumentRecord:
        if record.document_id in self._records:
            raise DocumentStoreError(f"Document {record.document_id} already exists")
        self._records[record.document_id] = record
        return record

    def get(self, document_id: str, org_id: str) -> DocumentRecord | None:
        record = self._records.get(document_id)
        if record is None or record.org_id != org_id:
            return None
        return record

    def update_index(
        self,
        document_id: str,
        chunk_count: int,
        index_status: str,
        index_error: str | None = None,
    ) -> None:
        record = self._records.get(document_id)
        if record is None:
            raise DocumentStoreError(f"Document {document_id} not found")
        self._records[document_id] = replace(
            record,
            chunk_count=chunk_count,
            index_status=index_status,
            index_error=index_error,
        )

    def delete(self, document_id: str, org_id: str) -> bool:
        if self.get(document_id, org_id) is None:
            return False
        del self._records[document_id]
        return True

    def find_by_hash(self, org_id: str, text_hash: str) -> DocumentRecord | None:
        for record in self._records.values():
            if record.org_id == org_id and record.text_hash == text_hash:
                return record
        return None


class SQLDocumentStore:
    """Store document records in a SQL database."""
    def __init__(self, connection_uri: str) -> None:
        """Initialize the document store and ensure tables exist."""
        self._engine = create_engine(connection_uri)
        self._metadata = MetaData()
        self._table = Table(
            "documents",
            self._metadata,
            Column("id", String(64), primary_key=True),
            Column("org_id", String(128), nullable=False, index=True),
            Column("file_name", String(255), nullable=False),
            Column("analysis", Text, nullable=True),
            Column("page_count", Integer, nullable=True),
            Column("extraction_status", String(32), nullable=False),
            Column("extraction_error", Text, nullable=True),
            Column("text_hash", String(64), nullable=True, index=True),
            Column("chunk_count", Integer, nullable=False),
            Column("index_status", String(32), nullable=False),
            Column("index_error", Text, nullable=True),
            Column("created_at", DateTime(timezone=True), nullable=False),
        )
        self._metadata.create_all(self._engine)

    def create(self, record: DocumentRecord) -> DocumentRecord:
        """Insert a new document record."""
        try:
            with self._engine.begin() as conn:
                conn.execute(self._table.insert().values(**self._serialize(record)))
        except SQLAlchemyError as exc:
            raise DocumentStoreError(str(exc)) from exc
        return record

    def get(self, document_id: str, org_id: str) -> DocumentRecord | None:
        """Fetch a record scoped to an organisation."""
        query = select(self._table).where(
            self._table.c.id == document_id,
            self._table.c.org_id == org_id,
        )
        try:
            with self._engine.connect() as conn:
                row = conn.execute(query).mappings().first()
        except SQLAlchemyError as exc:
            raise DocumentStoreError(str(exc)) from exc
        return self._deserialize(row) if row else None

    def update_index(
        self,
        document_id: str,
        chunk_count: int,
        index_status: str,
        index_error: str | None = None,
    ) -> None:
        """Record the outcome of indexing a document."""
        try:
            with self._engine.begin() as conn:
                conn.execute(
                    self._table.update()
                    .where(self._table.c.id == document_id)
                    .values(
                        chunk_count=chunk_count,
                        index_status=index_status,
                        index_error=index_error,
                    )
                )
        except SQLAlchemyError as exc:
            raise DocumentStoreError(str(exc)) from exc

    def delete(self, document_id: str, org_id: str) -> bool:
        try:
            with self._engine.begin() as conn:
                result = conn.execute(
                    self._table.delete().where(
                        self._table.c.id == document_id,
                        self._table.c.org_id == org_id,
                    )
                )
        except SQLAlchemyError as exc:
            raise DocumentStoreError(str(exc)) from exc
        return bool(result.rowcount)

    def find_by_hash(self, org_id: str, text_hash: str) -> DocumentRecord | None:
        query = (
            select(self._table)
            .where(self._table.c.org_id == org_id, self._table.c.text_hash == text_hash)
            .order_by(self._table.c.created_at)
        )
        try:
            with self._engine.connect() as conn:
                row = conn.execute(query).mappings().first()
        except SQLAlchemyError as exc:
            raise DocumentStoreError(str(exc)) from exc
        return self._deserialize(row) if row else None

    def _serialize(self, record: DocumentRecord) -> dict[str, Any]:
        """Prepare a document row for insertion."""
        analysis = None
        if record.analysis is not None:
            analysis = json.dumps(record.analysis, ensure_ascii=False, default=str)
        return {
            "id": record.document_id,
            "org_id": record.org_id,
            "file_name": record.file_name,
            "analysis": analysis,
            "page_count": record.page_count,
            "extraction_status": record.extraction_status,
            "extraction_error": record.extraction_error,
            "text_hash": record.text_hash,
            "chunk_count": record.chunk_count,
            "index_status": record.index_status,
            "index_error": record.index_error,
            "created_at": record.created_at,
        }

    def _deserialize(self, row: Any) -> DocumentRecord:
        analysis = json.loads(row["analysis"]) if row["analysis"] else None
        return DocumentRecord(
            document_id=row["id"],
            org_id=row["org_id"],
            file_name=row["file_name"],
            analysis=analysis,
            page_count=row["page_count"],
            extraction_status=row["extraction_status"],
            extraction_error=row["extraction_error"],
            text_hash=row["text_hash"],
            chunk_count=row["chunk_count"],
            index_status=row["index_status"],
            index_error=row["index_error"],
            created_at=row["created_at"],
        )
