from __future__ import annotations


DEFAULT_REFUSAL = "I don't know based on the provided document."


class InputValidationError(ValueError):
    """Raised when a query or document text is empty."""
    pass


def require_query(query: str | None) -> str:
    cleaned = (query or "").strip()
    if not cleaned:
        raise InputValidationError("Query text must not be empty")
    return cleaned


def require_text(text: str | None) -> str:
    if not text or not text.strip():
        raise InputValidationError("Document text must not be empty")
    return text
