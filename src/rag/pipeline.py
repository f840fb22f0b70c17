from __future__ import annotations

"""Per-document indexing and question answering."""

import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Sequence

from src.loaders.chunking import (
    DEFAULT_CHUNK_OVERLAP,
    DEFAULT_CHUNK_SIZE,
    ChunkingError,
    chunk_document,
)
from src.rag.context import DEFAULT_CONTEXT_MAX_CHARS, assemble_context
from src.rag.embeddings import Embedder, EmbeddingConfigError, EmbeddingError
from src.rag.guardrails import require_query, require_text
from src.rag.llm import AnswerGenerator, AnswerRequest, build_system_prompt
from src.rag.messages import ChatMessage
from src.rag.types import RetrievalResult
from src.vectorstore.inmemory import ChunkStore
from src.vectorstore.similarity import (
    DEFAULT_MIN_SIMILARITY,
    DEFAULT_TOP_K,
    DimensionMismatchError,
    EmbeddingModelMismatchError,
    ensure_same_model,
    find_relevant,
)
from src.vectorstore.sql import ChunkStoreError

logger = logging.getLogger(__name__)

DEFAULT_MAX_CANDIDATES = 1000

RETRIEVAL_OK = "ok"
RETRIEVAL_NOT_INDEXED = "not_indexed"
RETRIEVAL_UNAVAILABLE = "unavailable"

_RETRIEVAL_ERRORS = (
    EmbeddingError,
    EmbeddingConfigError,
    DimensionMismatchError,
    EmbeddingModelMismatchError,
    ChunkStoreError,
)


class IndexingError(RuntimeError):
    """Raised when a document cannot be chunked, embedded or stored."""
    pass


@dataclass(frozen=True)
class RetrievalOutcome:
    results: list[RetrievalResult]
    status: str


@dataclass
class QueryAnswer:
    """Streamed answer plus the retrieval facts known before generation starts."""
    fragments: AsyncIterator[str]
    citations: list[str] = field(default_factory=list)
    was_truncated: bool = False
    retrieval_status: str = RETRIEVAL_OK

    async def collect(self) -> str:
        """Drain the fragment stream into a single string."""
        return "".join([fragment async for fragment in self.fragments])


@dataclass
class DocumentQAPipeline:
    embedder: Embedder
    chunk_store: ChunkStore
    generator: AnswerGenerator
    chunk_size: int = DEFAULT_CHUNK_SIZE
    chunk_overlap: int = DEFAULT_CHUNK_OVERLAP
    top_k: int = DEFAULT_TOP_K
    min_similarity: float = DEFAULT_MIN_SIMILARITY
    context_max_chars: int = DEFAULT_CONTEXT_MAX_CHARS
    max_candidates: int = DEFAULT_MAX_CANDIDATES
    system_prompt: str | None = None

    async def index_document(
        self, document_id: str, text: str, page_count: int | None = None
    ) -> int:
        """Chunk, embed and store a document, returning the stored chunk count.

        Any chunks already stored for the document are replaced.
        """
        require_text(text)
        try:
            chunks = chunk_document(
                document_id,
                text,
                page_count,
                chunk_size=self.chunk_size,
                chunk_overlap=self.chunk_overlap,
            )
            embeddings = await self.embedder.embed_chunks(chunks)
            stored = self.chunk_store.replace_document(document_id, embeddings)
        except (ChunkingError, EmbeddingError, EmbeddingConfigError, ChunkStoreError) as exc:
            logger.warning(
                "document_index_failed",
                extra={"document_id": document_id, "error": str(exc)},
            )
            raise IndexingError(str(exc)) from exc
        logger.info(
            "document_indexed",
            extra={
                "document_id": document_id,
                "chunks_created": stored,
                "chunks_skipped": len(chunks) - len(embeddings),
                "embedding_model": self.embedder.model,
            },
        )
        return stored

    def delete_document(self, document_id: str) -> int:
        return self.chunk_store.delete_document(document_id)

    async def retrieve(self, document_id: str, query: str) -> RetrievalOutcome:
        """Rank a document's stored chunks against the query."""
        try:
            candidates = self.chunk_store.list_for_document(
                document_id, limit=self.max_candidates
            )
            if not candidates:
                logger.info("retrieval_not_indexed", extra={"document_id": document_id})
                return RetrievalOutcome(results=[], status=RETRIEVAL_NOT_INDEXED)
            ensure_same_model(candidates, self.embedder.model)
            query_vector = await self.embedder.embed_query(query)
            results = find_relevant(
                query_vector,
                candidates,
                top_k=self.top_k,
                min_similarity=self.min_similarity,
            )
        except _RETRIEVAL_ERRORS as exc:
            logger.warning(
                "retrieval_unavailable",
                extra={"document_id": document_id, "error": str(exc)},
            )
            return RetrievalOutcome(results=[], status=RETRIEVAL_UNAVAILABLE)
        logger.info(
            "retrieval_complete",
            extra={
                "document_id": document_id,
                "candidates": len(candidates),
                "results": len(results),
                "query_length": len(query),
            },
        )
        return RetrievalOutcome(results=results, status=RETRIEVAL_OK)

    async def answer_query(
        self,
        document_id: str,
        query: str,
        history: Sequence[ChatMessage],
        analysis: dict[str, Any] | None = None,
    ) -> QueryAnswer:
        """Retrieve, assemble context and start streaming an answer.

        Empty queries are rejected before any embedding or generation call. When
        retrieval is unavailable the context falls back to the analysis alone.
        """
        cleaned = require_query(query)
        outcome = await self.retrieve(document_id, cleaned)
        context = assemble_context(analysis, outcome.results, self.context_max_chars)
        request = AnswerRequest(
            system_prompt=build_system_prompt(context, self.system_prompt),
            history=list(history),
            context=context,
        )
        return QueryAnswer(
            fragments=self.generator.stream(request),
            citations=context.citations,
            was_truncated=context.was_truncated,
            retrieval_status=outcome.status,
        )
