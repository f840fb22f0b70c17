from __future__ import annotations

import time

from fastapi import Request
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.responses import Response

from src.app.settings import settings

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)
INDEXED_CHUNKS = Counter(
    "rag_indexed_chunks_total",
    "Chunks embedded and stored for documents",
)
INDEX_FAILURES = Counter(
    "rag_index_failures_total",
    "Documents whose indexing failed",
)
RETRIEVAL_OUTCOMES = Counter(
    "rag_retrieval_outcomes_total",
    "Chat retrievals by outcome",
    ["status"],
)


def record_indexing(chunks_created: int, failed: bool = False) -> None:
    if not settings.metrics_enabled:
        return
    if failed:
        INDEX_FAILURES.inc()
        return
    INDEXED_CHUNKS.inc(chunks_created)


def record_retrieval(status: str) -> None:
    if settings.metrics_enabled:
        RETRIEVAL_OUTCOMES.labels(status).inc()


async def metrics_middleware(request: Request, call_next):
    if not settings.metrics_enabled:
        return await call_next(request)
    path = request.url.path
    if path == "/metrics":
        return await call_next(request)
    # Label by route template so per-document paths share a series.
    label = path
    start = time.monotonic()
    status = 500
    try:
        response = await call_next(request)
        status = response.status_code
        route = request.scope.get("route")
        label = getattr(route, "path", path)
        return response
    finally:
        duration = time.monotonic() - start
        REQUEST_COUNT.labels(request.method, label, str(status)).inc()
        REQUEST_LATENCY.labels(request.method, label).observe(duration)


def metrics_response() -> Response:
    if not settings.metrics_enabled:
        return Response(status_code=404)
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
