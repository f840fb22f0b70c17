from __future__ import annotations

"""Dispatch uploaded document bytes to the matching text extractor."""

from pathlib import PurePath

from src.loaders.pdf import extract_pdf
from src.loaders.text import load_text_bytes
from src.rag.types import ExtractedText


class UnsupportedDocumentError(ValueError):
    """Raised for document types that cannot be extracted."""
    pass


def extract_document_text(
    data: bytes,
    file_name: str,
    content_type: str | None = None,
) -> ExtractedText:
    """Extract text from a PDF or plain text upload."""
    suffix = PurePath(file_name).suffix.lower()
    mime = (content_type or "").lower()
    if "pdf" in mime or suffix == ".pdf":
        return extract_pdf(data)
    if mime.startswith("text/") or suffix == ".txt":
        return load_text_bytes(data)
    raise UnsupportedDocumentError(
        f"Unsupported file type: {content_type or suffix or 'unknown'}. "
        "Only PDF and TXT documents are supported."
    )
