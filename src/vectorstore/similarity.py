from __future__ import annotations

"""Linear cosine-similarity search over chunk embeddings."""

import math
from typing import Iterable, Sequence

from src.rag.types import ChunkEmbedding, RetrievalResult

DEFAULT_TOP_K = 5
DEFAULT_MIN_SIMILARITY = 0.5


class DimensionMismatchError(ValueError):
    """Raised when vectors of different lengths are compared."""
    pass


class EmbeddingModelMismatchError(ValueError):
    """Raised when stored vectors come from a different embedding model than the query."""
    pass


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Compute cosine similarity between two equal-length vectors."""
    if len(a) != len(b):
        raise DimensionMismatchError(
            f"Cannot compare vectors of dimension {len(a)} and {len(b)}"
        )
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    # Clamp rounding error so self-similarity never exceeds 1.0.
    return max(-1.0, min(1.0, dot / (norm_a * norm_b)))


def ensure_same_model(candidates: Iterable[ChunkEmbedding], model: str) -> None:
    """Reject candidates embedded with a model other than ``model``."""
    for candidate in candidates:
        if candidate.model != model:
            raise EmbeddingModelMismatchError(
                f"Chunk {candidate.chunk.chunk_index} of {candidate.chunk.document_id} "
                f"was embedded with {candidate.model}, query uses {model}"
            )


def find_relevant(
    query_vector: Sequence[float],
    candidates: Iterable[ChunkEmbedding],
    top_k: int = DEFAULT_TOP_K,
    min_similarity: float = DEFAULT_MIN_SIMILARITY,
) -> list[RetrievalResult]:
    """Rank every candidate against the query and keep the top matches.

    Scores are sorted descending with a stable sort, so equal scores keep the
    order in which candidates were supplied.
    """
    if top_k <= 0:
        return []
    scored = [
        RetrievalResult(
            chunk=candidate.chunk,
            score=cosine_similarity(query_vector, candidate.embedding),
        )
        for candidate in candidates
    ]
    scored.sort(key=lambda item: item.score, reverse=True)
    return [result for result in scored if result.score >= min_similarity][:top_k]
