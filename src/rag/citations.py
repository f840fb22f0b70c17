from __future__ import annotations

"""Citation helpers for attaching page sources to answers."""

from typing import Sequence

from src.rag.types import RetrievalResult


def page_label(page_start: int | None, page_end: int | None) -> str | None:
    """Return "Page N" or "Page N-M" for a chunk's page estimate."""
    if page_start is None:
        return None
    if page_end is not None and page_end != page_start:
        return f"Page {page_start}-{page_end}"
    return f"Page {page_start}"


def build_page_citations(results: Sequence[RetrievalResult]) -> list[str]:
    """Build de-duplicated page citations in retrieval order."""
    citations: list[str] = []
    for result in results:
        label = page_label(result.chunk.page_start, result.chunk.page_end)
        if label and label not in citations:
            citations.append(label)
    return citations


def append_citation_footer(answer: str, citations: list[str]) -> str:
    """Append page citations to the answer."""
    if not citations:
        return answer
    return f"{answer}\n\nSources: {', '.join(citations)}"
