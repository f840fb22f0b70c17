from __future__ import annotations

"""PDF text extraction and cleanup."""

import re

from src.loaders.text import hash_text
from src.rag.types import ExtractedText


class PDFLoaderError(RuntimeError):
    """Raised when PDF loading fails."""
    pass


_HYPHEN_BREAK_RE = re.compile(r"(\w)-\n(\w)")
_SPACE_RUN_RE = re.compile(r"[ \t\f\v]+")


def _clean_pdf_text(text: str) -> str:
    """Join hyphenated line breaks and collapse runs of spaces, keeping line structure."""
    if not text:
        return ""
    cleaned = text.replace("\r\n", "\n")
    cleaned = _HYPHEN_BREAK_RE.sub(r"\1\2", cleaned)
    cleaned = _SPACE_RUN_RE.sub(" ", cleaned)
    return cleaned.strip()


def is_likely_scanned_pdf(text: str, file_size_bytes: int | None) -> bool:
    """Return True when extracted text is under 1% of the file size."""
    if not file_size_bytes:
        return False
    return len(text.encode("utf-8")) < file_size_bytes * 0.01


def load_pdf_bytes(data: bytes) -> tuple[str, int]:
    """Extract text and page count from PDF bytes."""
    try:
        import fitz
    except ImportError as exc:
        raise PDFLoaderError("PyMuPDF is required to load PDF files") from exc

    try:
        reader = fitz.open(stream=data, filetype="pdf")
    except Exception as exc:
        raise PDFLoaderError(f"Unable to open PDF: {exc}") from exc
    try:
        text_parts = [page.get_text() or "" for page in reader]
        page_count = reader.page_count
    finally:
        reader.close()
    if page_count == 0:
        raise PDFLoaderError("PDF has no pages")
    return _clean_pdf_text("\n".join(text_parts)), page_count


def extract_pdf(data: bytes) -> ExtractedText:
    """Extract a PDF into an ExtractedText result."""
    text, page_count = load_pdf_bytes(data)
    return ExtractedText(
        text=text,
        page_count=page_count,
        text_hash=hash_text(text),
        likely_scanned=is_likely_scanned_pdf(text, len(data)),
    )
