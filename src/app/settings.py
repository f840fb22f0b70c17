from __future__ import annotations

import json
import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


@dataclass(frozen=True)
class Settings:
    chunk_size: int = int(os.getenv("RAG_CHUNK_SIZE", "1000"))
    chunk_overlap: int = int(os.getenv("RAG_CHUNK_OVERLAP", "200"))
    embedding_batch_size: int = int(os.getenv("RAG_EMBEDDING_BATCH_SIZE", "100"))
    top_k: int = int(os.getenv("RAG_TOP_K", "5"))
    min_similarity: float = float(os.getenv("RAG_MIN_SIMILARITY", "0.5"))
    context_max_chars: int = int(os.getenv("RAG_CONTEXT_MAX_CHARS", "100000"))
    max_candidate_chunks: int = int(os.getenv("RAG_MAX_CANDIDATE_CHUNKS", "1000"))
    min_index_chars: int = int(os.getenv("RAG_MIN_INDEX_CHARS", "100"))
    chunk_text_retention: str = os.getenv("RAG_CHUNK_TEXT_RETENTION", "full")
    store_uri_raw: str = os.getenv("RAG_STORE_URI", "")
    embedding_provider: str = os.getenv("EMBEDDING_PROVIDER", "hash")
    embedding_dimension: int = int(os.getenv("EMBEDDING_DIMENSION", "0"))
    openai_api_key: str | None = os.getenv("OPENAI_API_KEY")
    openai_base_url: str = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
    openai_embedding_model: str | None = os.getenv(
        "OPENAI_EMBEDDING_MODEL", "text-embedding-3-small"
    )
    openai_chat_model: str | None = os.getenv("OPENAI_CHAT_MODEL")
    openai_temperature: float = float(os.getenv("OPENAI_TEMPERATURE", "0.2"))
    openai_max_tokens: int = int(os.getenv("OPENAI_MAX_TOKENS", "1024"))
    openai_timeout: float = float(os.getenv("OPENAI_TIMEOUT", "60"))
    answerer_mode_raw: str = os.getenv("RAG_ANSWERER", "extractive")
    llm_provider: str = os.getenv("RAG_LLM_PROVIDER", "openai")
    ollama_base_url: str = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
    ollama_model: str = os.getenv("OLLAMA_MODEL", "llama3.1")
    ollama_temperature: float = float(os.getenv("OLLAMA_TEMPERATURE", "0.1"))
    ollama_max_tokens: int = int(os.getenv("OLLAMA_MAX_TOKENS", "1024"))
    ollama_timeout: float = float(os.getenv("OLLAMA_TIMEOUT", "60"))
    api_key_map_raw: str = os.getenv("RAG_API_KEY_MAP", "")
    allow_anonymous_raw: str = os.getenv("RAG_ALLOW_ANONYMOUS", "true")
    default_org_id: str = os.getenv("RAG_DEFAULT_ORG_ID", "default")
    log_level: str = os.getenv("RAG_LOG_LEVEL", "INFO")
    metrics_enabled: bool = _env_bool("RAG_METRICS_ENABLED", "true")
    max_upload_bytes: int = int(os.getenv("RAG_MAX_UPLOAD_BYTES", "26214400"))

    @property
    def store_uri(self) -> str | None:
        return os.getenv("RAG_STORE_URI", self.store_uri_raw) or None

    @property
    def answerer_mode(self) -> str:
        return os.getenv("RAG_ANSWERER", self.answerer_mode_raw)

    @property
    def allow_anonymous(self) -> bool:
        return _env_bool("RAG_ALLOW_ANONYMOUS", self.allow_anonymous_raw)

    @property
    def api_key_map(self) -> dict[str, str]:
        """Map of API key to organisation id, from a JSON object.

        Values may be plain org id strings or objects with an ``org_id`` field.
        """
        raw = os.getenv("RAG_API_KEY_MAP", self.api_key_map_raw).strip()
        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            return {}
        if not isinstance(data, dict):
            return {}
        result: dict[str, str] = {}
        for key, value in data.items():
            if not isinstance(key, str):
                continue
            if isinstance(value, str) and value.strip():
                result[key] = value.strip()
            elif isinstance(value, dict) and isinstance(value.get("org_id"), str):
                result[key] = value["org_id"]
        return result


settings = Settings()
