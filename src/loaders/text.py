from __future__ import annotations

"""Plain text loader for indexing."""

import hashlib
import math

from src.rag.types import ExtractedText

CHARS_PER_PAGE = 2000


def hash_text(text: str) -> str:
    """SHA-256 of the extracted text, used for deduplication."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def estimate_page_count(text: str) -> int:
    """Approximate page count for formats without pages."""
    return math.ceil(len(text) / CHARS_PER_PAGE)


def load_text_bytes(data: bytes) -> ExtractedText:
    """Decode plain text bytes into an ExtractedText result."""
    text = data.decode("utf-8", errors="ignore")
    return ExtractedText(
        text=text,
        page_count=estimate_page_count(text),
        text_hash=hash_text(text),
    )
