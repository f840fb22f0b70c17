from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


class PartedMessagePart(BaseModel):
    type: str | None = None
    text: str | None = None


class ChatMessageIn(BaseModel):
    role: Literal["user", "assistant", "system"] = "user"
    content: str | list[PartedMessagePart] | None = None
    parts: list[PartedMessagePart] | None = None


class ChatRequest(BaseModel):
    document_id: str = Field(min_length=1)
    messages: list[ChatMessageIn] = Field(default_factory=list)


class DocumentCreateRequest(BaseModel):
    document_id: str | None = Field(default=None, min_length=1, max_length=64)
    file_name: str = Field(min_length=1, max_length=255)
    text: str
    page_count: int | None = Field(default=None, ge=1)
    analysis: dict[str, Any] | None = None


class DocumentResponse(BaseModel):
    document_id: str
    org_id: str
    file_name: str
    analysis: dict[str, Any] | None = None
    page_count: int | None = None
    extraction_status: str
    extraction_error: str | None = None
    text_hash: str | None = None
    chunk_count: int
    index_status: str
    index_error: str | None = None
    created_at: datetime


class DocumentCreateResponse(BaseModel):
    document: DocumentResponse
    chunks_created: int
    warning: str | None = None


class DeleteDocumentResponse(BaseModel):
    document_id: str
    chunks_deleted: int


class StatsResponse(BaseModel):
    backend: str
    document_count: int
    chunk_count: int
    embedding_model: str
    embedding_dimension: int


class EmbeddingHealthResponse(BaseModel):
    provider: str
    model: str | None
    configured_dimension: int
    expected_dimension: int | None = None
    ok: bool
    status: str
    detail: str | None = None
    action: str | None = None
