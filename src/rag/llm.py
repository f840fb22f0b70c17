from __future__ import annotations

"""Streaming LLM answer generators."""

from dataclasses import dataclass, field
import json
import logging
from typing import AsyncIterator, Protocol

import httpx

from src.rag.messages import ChatMessage
from src.rag.types import AssembledContext


class LLMError(RuntimeError):
    """Raised when LLM requests fail or responses are invalid."""
    pass


logger = logging.getLogger(__name__)


_SYSTEM_PROMPT = (
    "You are a legal assistant helping a user understand one of their legal documents. "
    "Answer only from the document context below. "
    "If the context does not contain the answer, say so plainly instead of guessing. "
    "Cite page numbers when the excerpts provide them. "
    "Explain legal terms in plain language and keep the answer concise. "
    "You do not give legal advice; suggest consulting a lawyer for decisions."
)

_TRUNCATION_NOTE = (
    "Note: the document context was shortened to fit. "
    "If the answer may be in the missing part, tell the user."
)


def base_system_prompt() -> str:
    """Return the default system prompt for answer generation."""
    return _SYSTEM_PROMPT


def build_system_prompt(context: AssembledContext, base_prompt: str | None = None) -> str:
    """Embed the assembled context into the system instruction."""
    prompt = base_prompt or _SYSTEM_PROMPT
    body = context.text.strip() or "No document context is available."
    sections = [prompt, f"Document context:\n---\n{body}\n---"]
    if context.was_truncated:
        sections.append(_TRUNCATION_NOTE)
    return "\n\n".join(sections)


@dataclass(frozen=True)
class AnswerRequest:
    """Input to an answer generator: system instruction, history and context."""
    system_prompt: str
    history: list[ChatMessage] = field(default_factory=list)
    context: AssembledContext = field(
        default_factory=lambda: AssembledContext(text="", was_truncated=False)
    )


class AnswerGenerator(Protocol):
    """Produces a stream of answer text fragments."""

    def stream(self, request: AnswerRequest) -> AsyncIterator[str]:
        raise NotImplementedError


def _build_messages(request: AnswerRequest) -> list[dict[str, str]]:
    """Prepend the system instruction to the unmodified history."""
    messages = [{"role": "system", "content": request.system_prompt}]
    messages.extend(message.to_wire() for message in request.history)
    return messages


def _parse_sse_line(line: str) -> str | None:
    """Return the content delta of one SSE line, "" for no content, None at end."""
    if not line.startswith("data:"):
        return ""
    data = line[len("data:"):].strip()
    if not data:
        return ""
    if data == "[DONE]":
        return None
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as exc:
        raise LLMError("Invalid OpenAI stream chunk") from exc
    choices = payload.get("choices") or []
    if not choices:
        return ""
    delta = choices[0].get("delta") or {}
    content = delta.get("content")
    return content if isinstance(content, str) else ""


@dataclass(frozen=True)
class OpenAIGenerator:
    """Answer generator backed by streamed OpenAI chat completions."""
    api_key: str
    base_url: str
    model: str
    temperature: float
    max_tokens: int
    timeout: float
    client: httpx.AsyncClient | None = None

    async def stream(self, request: AnswerRequest) -> AsyncIterator[str]:
        """Stream answer fragments from the chat completions endpoint."""
        payload = {
            "model": self.model,
            "messages": _build_messages(request),
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "stream": True,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        client = self.client or httpx.AsyncClient(timeout=self.timeout)
        owns_client = self.client is None
        try:
            async with client.stream(
                "POST",
                f"{self.base_url}/chat/completions",
                json=payload,
                headers=headers,
            ) as response:
                response.raise_for_status()
                async for line in response.aiter_lines():
                    fragment = _parse_sse_line(line)
                    if fragment is None:
                        break
                    if fragment:
                        yield fragment
        except httpx.HTTPError as exc:
            logger.warning(
                "llm_stream_failed",
                extra={"provider": "openai", "model": self.model, "error": str(exc)},
            )
            raise LLMError(str(exc)) from exc
        finally:
            if owns_client:
                await client.aclose()


@dataclass(frozen=True)
class OllamaGenerator:
    """Answer generator backed by the streamed Ollama chat API."""
    base_url: str
    model: str
    temperature: float
    max_tokens: int
    timeout: float
    client: httpx.AsyncClient | None = None

    async def stream(self, request: AnswerRequest) -> AsyncIterator[str]:
        """Stream answer fragments from newline-delimited JSON responses."""
        payload = {
            "model": self.model,
            "messages": _build_messages(request),
            "stream": True,
            "options": {
                "temperature": self.temperature,
                "num_predict": self.max_tokens,
            },
        }
        client = self.client or httpx.AsyncClient(timeout=self.timeout)
        owns_client = self.client is None
        try:
            async with client.stream(
                "POST", f"{self.base_url}/api/chat", json=payload
            ) as response:
                response.raise_for_status()
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError as exc:
                        raise LLMError("Invalid Ollama stream chunk") from exc
                    if data.get("error"):
                        raise LLMError(str(data["error"]))
                    message = data.get("message") or {}
                    content = message.get("content")
                    if isinstance(content, str) and content:
                        yield content
                    if data.get("done"):
                        break
        except httpx.HTTPError as exc:
            logger.warning(
                "llm_stream_failed",
                extra={"provider": "ollama", "model": self.model, "error": str(exc)},
            )
            raise LLMError(str(exc)) from exc
        finally:
            if owns_client:
                await client.aclose()


def build_llm_generator(
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
) -> OpenAIGenerator | OllamaGenerator:
    """Factory for streaming LLM generators based on provider."""
    normalized = provider.strip().lower()
    if normalized == "openai":
        if not api_key_openai:
            raise LLMError("OPENAI_API_KEY is required for OpenAI provider")
        if not openai_model:
            raise LLMError("OPENAI_CHAT_MODEL is required for OpenAI provider")
        return OpenAIGenerator(
            api_key=api_key_openai,
            base_url=openai_base_url.rstrip("/"),
            model=openai_model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )
    if normalized == "ollama":
        return OllamaGenerator(
            base_url=ollama_base_url.rstrip("/"),
            model=ollama_model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )
    raise LLMError(f"Unsupported LLM provider: {provider}")
