from __future__ import annotations

"""Core data types for document chunks, embeddings and retrieval."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class DocumentChunk:
    """Contiguous slice of one document's extracted text."""
    document_id: str
    chunk_index: int
    text: str
    char_start: int
    char_end: int
    page_start: int | None = None
    page_end: int | None = None


@dataclass(frozen=True)
class ChunkEmbedding:
    """Chunk paired with its embedding vector and the model that produced it."""
    chunk: DocumentChunk
    embedding: list[float]
    model: str

    @property
    def dimension(self) -> int:
        return len(self.embedding)


@dataclass(frozen=True)
class RetrievalResult:
    """Chunk ranked against a query vector."""
    chunk: DocumentChunk
    score: float


@dataclass(frozen=True)
class AssembledContext:
    """Bounded context block handed to answer generation."""
    text: str
    was_truncated: bool
    citations: list[str] = field(default_factory=list)
    sources: list[RetrievalResult] = field(default_factory=list)


@dataclass(frozen=True)
class ExtractedText:
    """Text extraction result for an uploaded document."""
    text: str
    page_count: int
    text_hash: str
    likely_scanned: bool = False
