from __future__ import annotations

"""Sentence-aware overlapping chunking of extracted document text."""

import logging
import math
import re

from src.rag.types import DocumentChunk

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 1000
DEFAULT_CHUNK_OVERLAP = 200
MAX_ITERATIONS = 1_000_000
MAX_CHUNKS = 1_000_000

# How far before the tentative end the sentence search starts, how far past it
# the search may look, and the earliest cut it will accept.
_SEARCH_BACK = 100
_SEARCH_AHEAD = 50
_MIN_CUT_BACK = 200

_SENTENCE_END_RE = re.compile(r"[.!?]\s+")


class ChunkingError(RuntimeError):
    """Raised when chunking configuration is invalid or a safety cap is hit."""
    pass


def estimate_page(offset: int, total_length: int, page_count: int) -> int:
    """Estimate a 1-based page number by linear interpolation over the text."""
    if total_length <= 0 or page_count <= 0:
        return 1
    page = math.floor(offset / total_length * page_count) + 1
    return min(max(page, 1), page_count)


def _find_sentence_cut(text: str, start: int, end: int, chunk_size: int) -> int:
    """Return the cut point after the last sentence terminator near the tentative end."""
    length = len(text)
    window_start = max(start + chunk_size - _SEARCH_BACK, start)
    window_end = min(end + _SEARCH_AHEAD, length)
    last_match = None
    for match in _SENTENCE_END_RE.finditer(text, window_start, window_end):
        last_match = match
    if last_match is None:
        return end
    position = last_match.start()
    if position >= start + chunk_size - _MIN_CUT_BACK:
        return position + 1
    return end


def chunk_document(
    document_id: str,
    text: str,
    page_count: int | None = None,
    *,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
    max_iterations: int = MAX_ITERATIONS,
    max_chunks: int = MAX_CHUNKS,
) -> list[DocumentChunk]:
    """Split document text into overlapping chunks with stable offsets.

    Each cut is moved to just after a sentence terminator when one is found near
    the tentative end. The next start keeps ``chunk_overlap`` characters of the
    previous chunk but always lands at least half a chunk (and at least one
    character) further on, capped at the cut, so the loop always terminates.
    """
    if chunk_size <= 0:
        raise ChunkingError("chunk_size must be greater than zero")
    if chunk_overlap < 0:
        raise ChunkingError("chunk_overlap must not be negative")
    length = len(text)
    if length == 0:
        return []

    chunks: list[DocumentChunk] = []
    start = 0
    index = 0
    iterations = 0
    while start < length:
        iterations += 1
        if iterations > max_iterations:
            raise ChunkingError(f"Chunking exceeded {max_iterations} iterations")
        end = min(start + chunk_size, length)
        if end < length:
            end = _find_sentence_cut(text, start, end, chunk_size)
        end = max(end, start + 1)

        piece = text[start:end].strip()
        if piece:
            if len(chunks) >= max_chunks:
                raise ChunkingError(f"Chunking exceeded {max_chunks} chunks")
            page_start = page_end = None
            if page_count:
                page_start = estimate_page(start, length, page_count)
                page_end = estimate_page(end, length, page_count)
            chunks.append(
                DocumentChunk(
                    document_id=document_id,
                    chunk_index=index,
                    text=piece,
                    char_start=start,
                    char_end=end,
                    page_start=page_start,
                    page_end=page_end,
                )
            )

        # Never past end, so consecutive chunks leave no gap.
        start = min(max(end - chunk_overlap, start + chunk_size // 2, start + 1), end)
        index += 1

    logger.debug(
        "chunking_complete",
        extra={
            "document_id": document_id,
            "text_length": length,
            "chunks": len(chunks),
            "iterations": iterations,
        },
    )
    return chunks
