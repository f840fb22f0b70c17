from __future__ import annotations

"""FastAPI application entrypoint for the legal document Q&A service."""

import json
import logging
import uuid
from typing import Any

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse, StreamingResponse

from src.app.dependencies import (
    get_document_store,
    get_embedding_config_report,
    get_pipeline,
)
from src.app.metrics import (
    metrics_middleware,
    metrics_response,
    record_indexing,
    record_retrieval,
)
from src.app.schemas import (
    ChatRequest,
    DeleteDocumentResponse,
    DocumentCreateRequest,
    DocumentCreateResponse,
    DocumentResponse,
    EmbeddingHealthResponse,
    StatsResponse,
)
from src.app.security import AuthContext, require_api_key
from src.app.settings import settings
from src.loaders.extract import UnsupportedDocumentError, extract_document_text
from src.loaders.pdf import PDFLoaderError
from src.loaders.text import hash_text
from src.metadata.store import DocumentRecord, DocumentStoreError
from src.rag.embeddings import EmbeddingConfigError
from src.rag.guardrails import InputValidationError
from src.rag.llm import LLMError
from src.rag.messages import latest_user_query, parse_message
from src.rag.pipeline import DocumentQAPipeline, IndexingError
from src.vectorstore.sql import ChunkStoreError

logger = logging.getLogger(__name__)

app = FastAPI(title="Legal Document RAG", version="0.1.0")

STATUS_PENDING = "PENDING"
STATUS_COMPLETED = "COMPLETED"
STATUS_FAILED = "FAILED"
STATUS_SKIPPED = "SKIPPED"


def _configure_logging() -> None:
    """Configure root logging using environment settings."""
    level_name = settings.log_level.strip().upper()
    level = getattr(logging, level_name, logging.INFO)
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
    logger.setLevel(level)


_configure_logging()


def _safe_error_message(exc: Exception) -> str:
    """Return a safe error type name for logs and responses."""
    return type(exc).__name__


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", str(uuid.uuid4()))


def _pipeline() -> DocumentQAPipeline:
    """Return the cached pipeline, mapping misconfiguration to 503."""
    try:
        return get_pipeline()
    except (EmbeddingConfigError, LLMError) as exc:
        logger.error("pipeline_unavailable", extra={"detail": str(exc)})
        raise HTTPException(status_code=503, detail=str(exc)) from exc


def _to_response(record: DocumentRecord) -> DocumentResponse:
    return DocumentResponse(**record.__dict__)


def _parse_analysis(raw: str | None) -> dict[str, Any] | None:
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise HTTPException(status_code=400, detail="analysis must be a JSON object") from exc
    if not isinstance(data, dict):
        raise HTTPException(status_code=400, detail="analysis must be a JSON object")
    return data


async def _read_upload_bytes(upload: UploadFile, max_bytes: int | None) -> bytes:
    """Stream upload bytes with a hard size limit."""
    if not max_bytes or max_bytes <= 0:
        return await upload.read()
    buffer = bytearray()
    while True:
        chunk = await upload.read(65536)
        if not chunk:
            break
        buffer.extend(chunk)
        if len(buffer) > max_bytes:
            raise HTTPException(
                status_code=400,
                detail=f"File exceeds maximum size of {max_bytes} bytes",
            )
    return bytes(buffer)


def _create_record(record: DocumentRecord) -> DocumentRecord:
    try:
        return get_document_store().create(record)
    except DocumentStoreError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


async def _index_record(
    record: DocumentRecord, text: str, request_id: str
) -> tuple[DocumentRecord, int, str | None]:
    """Index a saved document, recording the outcome on its record.

    Indexing failures never fail the request; chat falls back to the analysis.
    """
    store = get_document_store()
    if len(text.strip()) <= settings.min_index_chars:
        store.update_index(record.document_id, 0, STATUS_SKIPPED)
        logger.info(
            "document_index_skipped",
            extra={"request_id": request_id, "document_id": record.document_id},
        )
        return (
            store.get(record.document_id, record.org_id) or record,
            0,
            "Document text is too short to index; chat will use the analysis only.",
        )
    try:
        pipeline = get_pipeline()
        created = await pipeline.index_document(record.document_id, text, record.page_count)
    except (IndexingError, InputValidationError, EmbeddingConfigError, LLMError) as exc:
        store.update_index(record.document_id, 0, STATUS_FAILED, str(exc))
        record_indexing(0, failed=True)
        logger.error(
            "document_index_failed",
            extra={
                "request_id": request_id,
                "document_id": record.document_id,
                "detail": _safe_error_message(exc),
            },
        )
        return (
            store.get(record.document_id, record.org_id) or record,
            0,
            "Document saved but indexing failed; chat will use the analysis only.",
        )
    store.update_index(record.document_id, created, STATUS_COMPLETED)
    record_indexing(created)
    return store.get(record.document_id, record.org_id) or record, created, None


def _duplicate_warning(org_id: str, text_hash: str) -> str | None:
    existing = get_document_store().find_by_hash(org_id, text_hash)
    if existing is None:
        return None
    return f"Same text as document {existing.document_id}."


def _join_warnings(*warnings: str | None) -> str | None:
    present = [warning for warning in warnings if warning]
    return " ".join(present) if present else None


@app.exception_handler(DocumentStoreError)
@app.exception_handler(ChunkStoreError)
async def storage_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Report storage outages as 503 instead of an unhandled error."""
    logger.error(
        "storage_unavailable",
        extra={"request_id": _request_id(request), "detail": _safe_error_message(exc)},
    )
    return JSONResponse(status_code=503, content={"detail": "Storage is unavailable"})


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Attach or create a request ID for traceability."""
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.middleware("http")
async def record_metrics(request: Request, call_next):
    """Capture request metrics before returning the response."""
    return await metrics_middleware(request, call_next)


@app.get("/metrics")
async def metrics():
    """Expose Prometheus-style metrics."""
    return metrics_response()


@app.get("/health")
async def health() -> dict[str, str]:
    """Simple health check for uptime monitoring."""
    return {"status": "ok"}


@app.get("/stats", response_model=StatsResponse)
async def stats(auth: AuthContext = Depends(require_api_key)) -> StatsResponse:
    """Return chunk store stats."""
    pipeline = _pipeline()
    return StatsResponse(
        **pipeline.chunk_store.stats(),
        embedding_model=pipeline.embedder.model,
        embedding_dimension=pipeline.embedder.dimension,
    )


@app.get("/stats/embedding", response_model=EmbeddingHealthResponse)
async def embedding_health(
    auth: AuthContext = Depends(require_api_key),
) -> EmbeddingHealthResponse:
    """Return embedding configuration health checks."""
    report = get_embedding_config_report()
    return EmbeddingHealthResponse(**report.__dict__)


@app.post("/documents", response_model=DocumentCreateResponse, status_code=201)
async def create_document(
    request: DocumentCreateRequest,
    http_request: Request,
    auth: AuthContext = Depends(require_api_key),
) -> DocumentCreateResponse:
    """Register a document from already extracted text and index it."""
    request_id = _request_id(http_request)
    text_hash = hash_text(request.text)
    duplicate = _duplicate_warning(auth.org_id, text_hash)
    record = _create_record(
        DocumentRecord(
            document_id=request.document_id or uuid.uuid4().hex,
            org_id=auth.org_id,
            file_name=request.file_name,
            analysis=request.analysis,
            page_count=request.page_count,
            extraction_status=STATUS_COMPLETED,
            text_hash=text_hash,
        )
    )
    record, created, warning = await _index_record(record, request.text, request_id)
    logger.info(
        "document_created",
        extra={
            "request_id": request_id,
            "document_id": record.document_id,
            "org_id": auth.org_id,
            "chunks_created": created,
        },
    )
    return DocumentCreateResponse(
        document=_to_response(record),
        chunks_created=created,
        warning=_join_warnings(duplicate, warning),
    )


@app.post("/documents/files", response_model=DocumentCreateResponse, status_code=201)
async def upload_document(
    http_request: Request,
    file: UploadFile = File(...),
    analysis: str | None = Form(default=None),
    auth: AuthContext = Depends(require_api_key),
) -> DocumentCreateResponse:
    """Upload a PDF or text file, extract its text and index it."""
    request_id = _request_id(http_request)
    parsed_analysis = _parse_analysis(analysis)
    file_name = file.filename or "document"
    data = await _read_upload_bytes(file, settings.max_upload_bytes)
    if not data:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    document_id = uuid.uuid4().hex
    try:
        extracted = extract_document_text(data, file_name, file.content_type)
    except UnsupportedDocumentError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except PDFLoaderError as exc:
        logger.error(
            "document_extraction_failed",
            extra={
                "request_id": request_id,
                "document_id": document_id,
                "detail": _safe_error_message(exc),
            },
        )
        record = _create_record(
            DocumentRecord(
                document_id=document_id,
                org_id=auth.org_id,
                file_name=file_name,
                analysis=parsed_analysis,
                extraction_status=STATUS_FAILED,
                extraction_error=str(exc),
                index_status=STATUS_SKIPPED,
            )
        )
        return DocumentCreateResponse(
            document=_to_response(record),
            chunks_created=0,
            warning="Text extraction failed; chat will use the analysis only.",
        )
    scanned = None
    if extracted.likely_scanned:
        scanned = "The document looks scanned; text without OCR may be incomplete."
    duplicate = _duplicate_warning(auth.org_id, extracted.text_hash)
    record = _create_record(
        DocumentRecord(
            document_id=document_id,
            org_id=auth.org_id,
            file_name=file_name,
            analysis=parsed_analysis,
            page_count=extracted.page_count or None,
            extraction_status=STATUS_COMPLETED,
            text_hash=extracted.text_hash,
        )
    )
    record, created, warning = await _index_record(record, extracted.text, request_id)
    logger.info(
        "document_uploaded",
        extra={
            "request_id": request_id,
            "document_id": record.document_id,
            "org_id": auth.org_id,
            "page_count": record.page_count,
            "chunks_created": created,
        },
    )
    return DocumentCreateResponse(
        document=_to_response(record),
        chunks_created=created,
        warning=_join_warnings(scanned, duplicate, warning),
    )


@app.get("/documents/{document_id}", response_model=DocumentResponse)
async def get_document(
    document_id: str,
    auth: AuthContext = Depends(require_api_key),
) -> DocumentResponse:
    record = get_document_store().get(document_id, auth.org_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Document not found")
    return _to_response(record)


@app.delete("/documents/{document_id}", response_model=DeleteDocumentResponse)
async def delete_document(
    document_id: str,
    http_request: Request,
    auth: AuthContext = Depends(require_api_key),
) -> DeleteDocumentResponse:
    """Delete a document record together with its chunks."""
    store = get_document_store()
    if store.get(document_id, auth.org_id) is None:
        raise HTTPException(status_code=404, detail="Document not found")
    chunks_deleted = _pipeline().delete_document(document_id)
    store.delete(document_id, auth.org_id)
    logger.info(
        "document_deleted",
        extra={
            "request_id": _request_id(http_request),
            "document_id": document_id,
            "chunks_deleted": chunks_deleted,
        },
    )
    return DeleteDocumentResponse(document_id=document_id, chunks_deleted=chunks_deleted)


@app.post("/chat")
async def chat(
    request: ChatRequest,
    http_request: Request,
    auth: AuthContext = Depends(require_api_key),
) -> StreamingResponse:
    """Stream an answer to the latest user message about one document."""
    request_id = _request_id(http_request)
    record = get_document_store().get(request.document_id, auth.org_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Document not found")
    history = [
        parse_message(message.model_dump(exclude_none=True))
        for message in request.messages
    ]
    query = latest_user_query(history)
    pipeline = _pipeline()
    try:
        answer = await pipeline.answer_query(
            record.document_id, query, history, record.analysis
        )
    except InputValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    record_retrieval(answer.retrieval_status)
    fragments = answer.fragments
    try:
        first = await fragments.__anext__()
    except StopAsyncIteration:
        first = ""
    except LLMError as exc:
        logger.error(
            "chat_generation_failed",
            extra={"request_id": request_id, "detail": _safe_error_message(exc)},
        )
        raise HTTPException(status_code=502, detail="Answer generation failed") from exc

    async def _stream():
        try:
            if first:
                yield first
            async for fragment in fragments:
                yield fragment
        except LLMError as exc:
            logger.error(
                "chat_stream_interrupted",
                extra={"request_id": request_id, "detail": _safe_error_message(exc)},
            )
        finally:
            await fragments.aclose()

    logger.info(
        "chat_started",
        extra={
            "request_id": request_id,
            "document_id": record.document_id,
            "retrieval_status": answer.retrieval_status,
            "context_truncated": answer.was_truncated,
            "citations": len(answer.citations),
        },
    )
    headers = {
        "X-Retrieval-Status": answer.retrieval_status,
        "X-Context-Truncated": "true" if answer.was_truncated else "false",
        "X-Citations": ", ".join(answer.citations),
    }
    return StreamingResponse(
        _stream(), media_type="text/plain; charset=utf-8", headers=headers
    )
