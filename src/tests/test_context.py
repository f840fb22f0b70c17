from __future__ import annotations

import pytest

from src.rag.citations import append_citation_footer, build_page_citations
from src.rag.context import (
    SHORT_TRUNCATION_NOTICE,
    TRUNCATION_NOTICE,
    assemble_context,
    build_analysis_context,
    format_excerpts,
    format_page_range,
    truncate_context,
)
from src.rag.types import DocumentChunk, RetrievalResult

ANALYSIS = {
    "summary": "Residential lease between Acme Properties and Jane Doe.",
    "deadlines": [
        {"date": "2024-05-01", "event": "First rent payment due"},
        {"date": "2024-06-15", "description": "Inspection"},
    ],
    "parties": {"plaintiff": "Acme Properties", "others": ["City Housing Office"]},
    "legalCategory": "lease",
    "keyPoints": ["Deposit is two months rent", "No pets allowed"],
}


def _result(index: int, text: str, page_start=None, page_end=None, score=0.8) -> RetrievalResult:
    chunk = DocumentChunk(
        document_id="lease",
        chunk_index=index,
        text=text,
        char_start=0,
        char_end=len(text),
        page_start=page_start,
        page_end=page_end,
    )
    return RetrievalResult(chunk=chunk, score=score)


def test_analysis_sections_render_in_order() -> None:
    text = build_analysis_context(ANALYSIS)

    assert text.index("Document summary:") < text.index("Critical dates:")
    assert text.index("Critical dates:") < text.index("Parties:")
    assert text.index("Parties:") < text.index("Key points:")
    assert "- 2024-05-01: First rent payment due" in text
    assert "- 2024-06-15: Inspection" in text
    assert "Plaintiff: Acme Properties" in text
    assert "Others: City Housing Office" in text
    assert "Defendant" not in text
    assert "- No pets allowed" in text


def test_missing_sections_are_omitted() -> None:
    text = build_analysis_context({"summary": "Short summary."})

    assert text == "Document summary:\nShort summary."


def test_empty_parties_section_is_omitted() -> None:
    text = build_analysis_context({"summary": "S.", "parties": {"others": []}})

    assert "Parties:" not in text


def test_malformed_analysis_renders_nothing() -> None:
    assert build_analysis_context(None) == ""
    assert build_analysis_context("not a mapping") == ""
    assert build_analysis_context({"deadlines": "soon", "keyPoints": 3}) == ""


def test_page_range_annotations() -> None:
    assert format_page_range(_result(0, "a", 2, 3).chunk) == "(pages 2-3)"
    assert format_page_range(_result(0, "a", 4, 4).chunk) == "(page 4)"
    assert format_page_range(_result(0, "a", 5, None).chunk) == "(page 5)"
    assert format_page_range(_result(0, "a").chunk) == ""


def test_excerpts_are_numbered() -> None:
    text = format_excerpts([_result(0, "First clause.", 1, 2), _result(3, "Second clause.")])

    assert text.startswith("Relevant excerpts from the document:")
    assert "[Excerpt 1 (pages 1-2)]:\nFirst clause." in text
    assert "[Excerpt 2]:\nSecond clause." in text
    assert format_excerpts([]) == ""


def test_page_citations_are_deduplicated() -> None:
    results = [_result(0, "a", 2, 3), _result(1, "b", 5, 5), _result(2, "c", 2, 3), _result(3, "d")]

    citations = build_page_citations(results)

    assert citations == ["Page 2-3", "Page 5"]
    assert append_citation_footer("Answer.", citations) == "Answer.\n\nSources: Page 2-3, Page 5"
    assert append_citation_footer("Answer.", []) == "Answer."


def test_text_within_budget_is_unchanged() -> None:
    assert truncate_context("Short text.", 100) == ("Short text.", False)


def test_truncation_cuts_at_sentence_boundary() -> None:
    text = ("The lessee accepts all terms. " * 5000)[:150_000]

    truncated, was_truncated = truncate_context(text, 100_000)

    assert was_truncated
    assert len(truncated) <= 100_000
    assert truncated.endswith(TRUNCATION_NOTICE)
    kept = truncated[: -len(TRUNCATION_NOTICE)]
    assert kept.endswith(".")
    assert text.startswith(kept)


def test_truncation_without_boundary_cuts_hard() -> None:
    text = "x" * 150_000

    truncated, was_truncated = truncate_context(text, 100_000)

    assert was_truncated
    assert len(truncated) == 100_000


def test_truncation_is_idempotent() -> None:
    text = ("Line of evidence\n" * 9000)[:150_000]

    once, first_flag = truncate_context(text, 100_000)
    twice, second_flag = truncate_context(once, 100_000)

    assert first_flag is True
    assert second_flag is False
    assert twice == once


def test_small_budget_uses_short_notice() -> None:
    once, first_flag = truncate_context("x" * 500, 50)
    twice, second_flag = truncate_context(once, 50)

    assert first_flag is True
    assert len(once) == 50
    assert once.endswith(SHORT_TRUNCATION_NOTICE)
    assert second_flag is False
    assert twice == once


def test_budget_below_short_notice_rejected() -> None:
    with pytest.raises(ValueError):
        truncate_context("x" * 500, 5)


def test_assemble_context_combines_analysis_and_excerpts() -> None:
    results = [_result(2, "Rent is due monthly.", 3, 3)]

    context = assemble_context(ANALYSIS, results, max_chars=100_000)

    assert context.text.index("Document summary:") < context.text.index(
        "Relevant excerpts from the document:"
    )
    assert "[Excerpt 1 (page 3)]:\nRent is due monthly." in context.text
    assert context.citations == ["Page 3"]
    assert context.sources == results
    assert context.was_truncated is False


def test_assemble_context_without_inputs_is_empty() -> None:
    context = assemble_context(None, [])

    assert context.text == ""
    assert context.citations == []
