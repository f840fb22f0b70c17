from __future__ import annotations

from functools import lru_cache

from src.app.settings import settings
from src.metadata.store import DocumentStore, InMemoryDocumentStore, SQLDocumentStore
from src.rag.answerer import build_answer_generator
from src.rag.embeddings import (
    Embedder,
    EmbeddingConfigError,
    EmbeddingConfigReport,
    EmbeddingProvider,
    HashEmbedder,
    OpenAIEmbedder,
    build_embedding_config_report,
)
from src.rag.llm import AnswerGenerator
from src.rag.pipeline import DocumentQAPipeline
from src.vectorstore.inmemory import ChunkStore, InMemoryChunkStore
from src.vectorstore.sql import SQLChunkStore

DEFAULT_HASH_DIMENSION = 256


@lru_cache
def get_pipeline() -> DocumentQAPipeline:
    return DocumentQAPipeline(
        embedder=Embedder(
            provider=build_embedder(),
            batch_size=settings.embedding_batch_size,
        ),
        chunk_store=build_chunk_store(),
        generator=build_generator(),
        chunk_size=settings.chunk_size,
        chunk_overlap=settings.chunk_overlap,
        top_k=settings.top_k,
        min_similarity=settings.min_similarity,
        context_max_chars=settings.context_max_chars,
        max_candidates=settings.max_candidate_chunks,
    )


@lru_cache
def get_document_store() -> DocumentStore:
    if not settings.store_uri:
        return InMemoryDocumentStore()
    return SQLDocumentStore(settings.store_uri)


def reset_pipeline_cache() -> None:
    get_pipeline.cache_clear()
    get_document_store.cache_clear()


def _embedding_model() -> str | None:
    if settings.embedding_provider.lower().strip() == "openai":
        return settings.openai_embedding_model
    return None


def _embedding_dimension() -> int:
    if settings.embedding_provider.lower().strip() in {"", "hash"}:
        return settings.embedding_dimension or DEFAULT_HASH_DIMENSION
    return settings.embedding_dimension


def get_embedding_config_report() -> EmbeddingConfigReport:
    return build_embedding_config_report(
        settings.embedding_provider, _embedding_model(), _embedding_dimension()
    )


def build_embedder() -> EmbeddingProvider:
    provider = settings.embedding_provider.lower().strip()
    if provider in {"", "hash"}:
        return HashEmbedder(dimension=_embedding_dimension())
    if provider == "openai":
        return OpenAIEmbedder(
            api_key=settings.openai_api_key or "",
            model=settings.openai_embedding_model or "",
            dimension=settings.embedding_dimension,
            base_url=settings.openai_base_url,
            timeout=settings.openai_timeout,
        )
    raise EmbeddingConfigError(f"Unsupported embedding provider: {provider}")


def build_chunk_store() -> ChunkStore:
    if not settings.store_uri:
        return InMemoryChunkStore(text_retention=settings.chunk_text_retention)
    return SQLChunkStore(settings.store_uri, text_retention=settings.chunk_text_retention)


def build_generator() -> AnswerGenerator:
    provider = settings.llm_provider.lower().strip()
    if provider == "ollama":
        temperature = settings.ollama_temperature
        max_tokens = settings.ollama_max_tokens
        timeout = settings.ollama_timeout
    else:
        temperature = settings.openai_temperature
        max_tokens = settings.openai_max_tokens
        timeout = settings.openai_timeout
    return build_answer_generator(
        settings.answerer_mode,
        provider,
        api_key_openai=settings.openai_api_key,
        openai_base_url=settings.openai_base_url,
        openai_model=settings.openai_chat_model,
        ollama_base_url=settings.ollama_base_url,
        ollama_model=settings.ollama_model,
        temperature=temperature,
        max_tokens=max_tokens,
        timeout=timeout,
    )
