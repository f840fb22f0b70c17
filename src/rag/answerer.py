from __future__ import annotations

"""Offline extractive answerer and the answer generator factory."""

from dataclasses import dataclass
from typing import AsyncIterator

from src.rag.citations import append_citation_footer
from src.rag.guardrails import DEFAULT_REFUSAL
from src.rag.llm import AnswerGenerator, AnswerRequest, build_llm_generator


@dataclass
class ExtractiveAnswerer:
    """Return a short extract from the highest scoring chunk."""
    max_chars: int = 480

    def generate(self, request: AnswerRequest) -> str:
        """Generate an extractive answer from the assembled context."""
        sources = request.context.sources
        if sources:
            best = max(sources, key=lambda result: result.score)
            snippet = self._truncate(best.chunk.text.strip())
            if snippet:
                return append_citation_footer(
                    f"Based on the document: {snippet}", request.context.citations
                )
        text = request.context.text.strip()
        if not text:
            return DEFAULT_REFUSAL
        return f"Based on the document analysis: {self._truncate(text)}"

    async def stream(self, request: AnswerRequest) -> AsyncIterator[str]:
        """Yield the extractive answer word by word."""
        words = self.generate(request).split(" ")
        for idx, word in enumerate(words):
            yield word if idx == len(words) - 1 else f"{word} "

    def _truncate(self, text: str) -> str:
        """Trim text to the max character budget without cutting words."""
        if len(text) <= self.max_chars:
            return text
        return text[: self.max_chars].rsplit(" ", 1)[0] + "..."


def build_answer_generator(
    mode: str,
    provider: str,
    *,
    api_key_openai: str | None,
    openai_base_url: str,
    openai_model: str | None,
    ollama_base_url: str,
    ollama_model: str,
    temperature: float,
    max_tokens: int,
    timeout: float,
) -> AnswerGenerator:
    """Return the extractive answerer or an LLM generator for the configured mode."""
    if mode.strip().lower() != "llm":
        return ExtractiveAnswerer()
    return build_llm_generator(
        provider,
        api_key_openai=api_key_openai,
        openai_base_url=openai_base_url,
        openai_model=openai_model,
        ollama_base_url=ollama_base_url,
        ollama_model=ollama_model,
        temperature=temperature,
        max_tokens=max_tokens,
        timeout=timeout,
    )
