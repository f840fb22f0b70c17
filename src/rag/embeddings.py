from __future__ import annotations

"""Embedding providers, batching adapter and configuration validation."""

import hashlib
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence

from src.rag.types import ChunkEmbedding, DocumentChunk

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)

DEFAULT_BATCH_SIZE = 100


class EmbeddingError(RuntimeError):
    """Raised when embeddings fail or are invalid."""
    pass


class EmbeddingConfigError(RuntimeError):
    """Raised when embedding configuration is invalid."""
    pass


class EmbeddingProvider(Protocol):
    """Protocol for embedding providers."""
    model: str
    dimension: int

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float] | None]:
        """Return one vector per input text, or None where the provider omitted it."""
        raise NotImplementedError


def validate_vector(vector: list[float], dimension: int) -> list[float]:
    """Validate and normalize embedding vectors."""
    if len(vector) != dimension:
        raise EmbeddingError(
            f"Embedding dimension mismatch: expected {dimension}, got {len(vector)}"
        )
    cleaned: list[float] = []
    for value in vector:
        if not isinstance(value, (int, float)):
            raise EmbeddingError("Embedding contains a non-numeric value")
        if not math.isfinite(value):
            raise EmbeddingError("Embedding contains a non-finite value")
        cleaned.append(float(value))
    return cleaned


@dataclass
class HashEmbedder:
    """Deterministic hash-based embedder for testing or offline use."""
    dimension: int = 256

    @property
    def model(self) -> str:
        return f"hash-{self.dimension}"

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float] | None]:
        """Embed each text with token hashing."""
        return [self.embed(text) for text in texts]

    def embed(self, text: str) -> list[float]:
        """Embed text using token hashing and L2 normalization."""
        tokens = _TOKEN_RE.findall(text.lower())
        if not tokens:
            return validate_vector([0.0] * self.dimension, self.dimension)
        vector = [0.0] * self.dimension
        for token in tokens:
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            idx = int.from_bytes(digest[:4], "big") % self.dimension
            vector[idx] += 1.0
        return validate_vector(self._l2_normalize(vector), self.dimension)

    def _l2_normalize(self, vector: list[float]) -> list[float]:
        """Normalize vector magnitude to 1.0."""
        norm = math.sqrt(sum(value * value for value in vector))
        if norm == 0.0:
            return vector
        return [value / norm for value in vector]


def resolve_openai_dimension(model: str) -> int | None:
    """Return expected dimension for OpenAI embedding model."""
    mapping = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    }
    return mapping.get(model)


@dataclass(frozen=True)
class EmbeddingConfigReport:
    """Validation report for embedding configuration."""
    provider: str
    model: str | None
    configured_dimension: int
    expected_dimension: int | None
    ok: bool
    status: str
    detail: str | None = None
    action: str | None = None


def build_embedding_config_report(
    provider: str, model: str | None, dimension: int
) -> EmbeddingConfigReport:
    """Build a validation report for embedding settings."""
    normalized = provider.lower().strip()

    if normalized in {"", "hash"}:
        if dimension <= 0:
            return EmbeddingConfigReport(
                provider="hash",
                model=None,
                configured_dimension=dimension,
                expected_dimension=None,
                ok=False,
                status="error",
                detail="EMBEDDING_DIMENSION must be greater than zero for hash embeddings.",
                action="Set EMBEDDING_DIMENSION to a positive integer.",
            )
        return EmbeddingConfigReport(
            provider="hash",
            model=f"hash-{dimension}",
            configured_dimension=dimension,
            expected_dimension=dimension,
            ok=True,
            status="ok",
        )

    if normalized == "openai":
        if not model:
            return EmbeddingConfigReport(
                provider="openai",
                model=None,
                configured_dimension=dimension,
                expected_dimension=None,
                ok=False,
                status="error",
                detail="OPENAI_EMBEDDING_MODEL is required for OpenAI embeddings.",
                action="Set OPENAI_EMBEDDING_MODEL in .env.",
            )
        expected = resolve_openai_dimension(model)
        if dimension <= 0 and expected is None:
            return EmbeddingConfigReport(
                provider="openai",
                model=model,
                configured_dimension=dimension,
                expected_dimension=None,
                ok=False,
                status="error",
                detail="EMBEDDING_DIMENSION must be set for the configured OpenAI model.",
                action="Set EMBEDDING_DIMENSION based on the OpenAI model documentation.",
            )
        if dimension > 0 and expected is not None and dimension != expected:
            return EmbeddingConfigReport(
                provider="openai",
                model=model,
                configured_dimension=dimension,
                expected_dimension=expected,
                ok=False,
                status="error",
                detail="EMBEDDING_DIMENSION does not match the OpenAI model dimension.",
                action=f"Set EMBEDDING_DIMENSION to {expected}.",
            )
        if expected is None:
            return EmbeddingConfigReport(
                provider="openai",
                model=model,
                configured_dimension=dimension,
                expected_dimension=None,
                ok=True,
                status="warning",
                detail="Model dimension cannot be auto-validated. Confirm EMBEDDING_DIMENSION manually.",
            )
        return EmbeddingConfigReport(
            provider="openai",
            model=model,
            configured_dimension=dimension,
            expected_dimension=expected,
            ok=True,
            status="ok",
        )

    return EmbeddingConfigReport(
        provider=normalized,
        model=model,
        configured_dimension=dimension,
        expected_dimension=None,
        ok=False,
        status="error",
        detail="Unsupported embedding provider.",
        action="Set EMBEDDING_PROVIDER to hash or openai.",
    )


@dataclass
class OpenAIEmbedder:
    """Embedding provider using the OpenAI embeddings API."""
    api_key: str
    model: str
    dimension: int = 0
    base_url: str | None = None
    timeout: float = 30.0
    client: Any = field(default=None, repr=False)

    def __post_init__(self) -> None:
        """Validate OpenAI configuration and create a client."""
        if not self.model:
            raise EmbeddingConfigError("OPENAI_EMBEDDING_MODEL is required for OpenAIEmbedder")
        resolved = resolve_openai_dimension(self.model)
        if self.dimension <= 0:
            if resolved is None:
                raise EmbeddingConfigError(
                    "EMBEDDING_DIMENSION must be set for OpenAI embeddings when model is unknown"
                )
            self.dimension = resolved
        elif resolved is not None and self.dimension != resolved:
            raise EmbeddingConfigError(
                f"EMBEDDING_DIMENSION should be {resolved} for model {self.model}"
            )
        if self.client is not None:
            return
        if not self.api_key:
            raise EmbeddingConfigError("OPENAI_API_KEY is required for OpenAIEmbedder")
        try:
            from openai import AsyncOpenAI
        except ImportError as exc:
            raise EmbeddingError("openai package is required for OpenAIEmbedder") from exc
        self.client = AsyncOpenAI(
            api_key=self.api_key,
            base_url=self.base_url or None,
            timeout=self.timeout,
        )

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float] | None]:
        """Embed a batch of texts with one API call."""
        if not texts:
            return []
        try:
            response = await self.client.embeddings.create(model=self.model, input=list(texts))
        except Exception as exc:
            raise EmbeddingError(f"OpenAI embeddings request failed: {type(exc).__name__}") from exc
        vectors: list[list[float] | None] = [None] * len(texts)
        for position, item in enumerate(response.data or []):
            index = getattr(item, "index", position)
            embedding = getattr(item, "embedding", None)
            if embedding is None or not 0 <= index < len(texts):
                continue
            vectors[index] = validate_vector(list(embedding), self.dimension)
        return vectors


@dataclass
class Embedder:
    """Batching adapter between chunk text and an embedding provider."""
    provider: EmbeddingProvider
    batch_size: int = DEFAULT_BATCH_SIZE

    @property
    def model(self) -> str:
        return self.provider.model

    @property
    def dimension(self) -> int:
        return self.provider.dimension

    async def embed_texts(self, texts: Sequence[str]) -> list[list[float] | None]:
        """Embed texts in sequential batches, preserving input order."""
        if self.batch_size <= 0:
            raise EmbeddingConfigError("Embedding batch size must be greater than zero")
        vectors: list[list[float] | None] = []
        for offset in range(0, len(texts), self.batch_size):
            batch = list(texts[offset : offset + self.batch_size])
            result = await self.provider.embed_batch(batch)
            if len(result) != len(batch):
                raise EmbeddingError(
                    f"Embedding provider returned {len(result)} vectors for {len(batch)} inputs"
                )
            for position, vector in enumerate(result):
                if vector is None:
                    logger.warning(
                        "embedding_missing",
                        extra={"batch_offset": offset, "position": position, "model": self.model},
                    )
            vectors.extend(result)
        return vectors

    async def embed_chunks(self, chunks: Sequence[DocumentChunk]) -> list[ChunkEmbedding]:
        """Embed chunk texts, skipping chunks the provider returned no vector for."""
        vectors = await self.embed_texts([chunk.text for chunk in chunks])
        return [
            ChunkEmbedding(chunk=chunk, embedding=vector, model=self.model)
            for chunk, vector in zip(chunks, vectors)
            if vector is not None
        ]

    async def embed_query(self, text: str) -> list[float]:
        """Embed a single query with the same model used for chunks."""
        vectors = await self.embed_texts([text])
        if not vectors or vectors[0] is None:
            raise EmbeddingError("Embedding provider returned no vector for the query")
        return vectors[0]
