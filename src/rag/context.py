from __future__ import annotations

"""Assemble document analysis and retrieved excerpts into a bounded context block."""

import logging
from typing import Any, Sequence

from src.rag.citations import build_page_citations
from src.rag.types import AssembledContext, DocumentChunk, RetrievalResult

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_MAX_CHARS = 100_000
TRUNCATION_NOTICE = (
    "\n\n[Note: the document context was truncated because it exceeded the "
    "maximum length. Some content may be missing.]"
)
SHORT_TRUNCATION_NOTICE = "\n[truncated]"
# Boundary cuts further back than this are discarded in favour of a hard cut.
_BOUNDARY_WINDOW = 1000


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [text for text in (_as_text(item) for item in value) if text]


def _format_deadlines(value: Any) -> list[str]:
    if not isinstance(value, (list, tuple)):
        return []
    lines: list[str] = []
    for item in value:
        if not isinstance(item, dict):
            continue
        date = _as_text(item.get("date"))
        event = _as_text(item.get("event") or item.get("description"))
        if not (date or event):
            continue
        if date and event:
            lines.append(f"- {date}: {event}")
        else:
            lines.append(f"- {date or event}")
    return lines


def _format_parties(value: Any) -> list[str]:
    if not isinstance(value, dict):
        return []
    lines: list[str] = []
    plaintiff = _as_text(value.get("plaintiff"))
    defendant = _as_text(value.get("defendant"))
    if plaintiff:
        lines.append(f"Plaintiff: {plaintiff}")
    if defendant:
        lines.append(f"Defendant: {defendant}")
    others = _string_list(value.get("others"))
    if others:
        lines.append(f"Others: {', '.join(others)}")
    return lines


def build_analysis_context(analysis: Any) -> str:
    """Render the structured analysis of a document as labelled sections.

    Sections appear in a fixed order (summary, critical dates, parties, key points)
    and each is omitted when its field is missing or empty. Anything that is not a
    mapping renders as an empty string.
    """
    if not isinstance(analysis, dict):
        return ""
    sections: list[str] = []

    summary = _as_text(analysis.get("summary"))
    if summary:
        sections.append(f"Document summary:\n{summary}")

    deadlines = _format_deadlines(analysis.get("deadlines"))
    if deadlines:
        sections.append("Critical dates:\n" + "\n".join(deadlines))

    parties = _format_parties(analysis.get("parties"))
    if parties:
        sections.append("Parties:\n" + "\n".join(parties))

    key_points = _string_list(analysis.get("keyPoints", analysis.get("key_points")))
    if key_points:
        sections.append("Key points:\n" + "\n".join(f"- {point}" for point in key_points))

    return "\n\n".join(sections)


def format_page_range(chunk: DocumentChunk) -> str:
    """Return the page annotation for a chunk, or an empty string."""
    if chunk.page_start is None:
        return ""
    if chunk.page_end is not None and chunk.page_end != chunk.page_start:
        return f"(pages {chunk.page_start}-{chunk.page_end})"
    return f"(page {chunk.page_start})"


def format_excerpts(results: Sequence[RetrievalResult]) -> str:
    """Render retrieved chunks as numbered excerpts."""
    if not results:
        return ""
    blocks = ["Relevant excerpts from the document:"]
    for idx, result in enumerate(results, start=1):
        page_range = format_page_range(result.chunk)
        label = f"[Excerpt {idx} {page_range}]" if page_range else f"[Excerpt {idx}]"
        blocks.append(f"{label}:\n{result.chunk.text}")
    return "\n\n".join(blocks)


def truncate_context(
    text: str, max_chars: int = DEFAULT_CONTEXT_MAX_CHARS
) -> tuple[str, bool]:
    """Bound text to max_chars, cutting at a sentence or line boundary.

    The truncation notice is counted against the budget, so a truncated result
    already fits and truncating it again is a no-op. Budgets too small for the
    full notice get the short one.
    """
    if len(text) <= max_chars:
        return text, False
    notice = TRUNCATION_NOTICE
    if max_chars < len(notice):
        notice = SHORT_TRUNCATION_NOTICE
    if max_chars < len(notice):
        raise ValueError(f"max_chars must be at least {len(notice)}")
    budget = max_chars - len(notice)
    prefix = text[:budget]
    boundary = max(prefix.rfind("."), prefix.rfind("\n"))
    if boundary >= 0 and boundary >= budget - _BOUNDARY_WINDOW:
        # Keep the period itself; drop a trailing newline.
        cut = boundary + 1 if prefix[boundary] == "." else boundary
        prefix = prefix[:cut]
    logger.info(
        "context_truncated",
        extra={
            "original_chars": len(text),
            "kept_chars": len(prefix),
            "max_chars": max_chars,
        },
    )
    return prefix + notice, True


def assemble_context(
    analysis: Any,
    results: Sequence[RetrievalResult],
    max_chars: int = DEFAULT_CONTEXT_MAX_CHARS,
) -> AssembledContext:
    """Combine analysis metadata and excerpts into a bounded AssembledContext."""
    parts = [
        part
        for part in (build_analysis_context(analysis), format_excerpts(results))
        if part
    ]
    text, was_truncated = truncate_context("\n\n".join(parts), max_chars)
    return AssembledContext(
        text=text,
        was_truncated=was_truncated,
        citations=build_page_citations(results),
        sources=list(results),
    )
