from __future__ import annotations

import json

import httpx
import pytest

from src.app.dependencies import reset_pipeline_cache
from src.app.main import app

pytestmark = pytest.mark.anyio

TEXT = "The contractor shall deliver the goods within thirty days of the purchase order date. " * 3


def get_client() -> httpx.AsyncClient:
    reset_pipeline_cache()
    transport = httpx.ASGITransport(app=app)
    return httpx.AsyncClient(transport=transport, base_url="http://test")


async def test_documents_are_scoped_to_org(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(
        "RAG_API_KEY_MAP",
        json.dumps({"key-a": "org-a", "key-b": {"org_id": "org-b"}}),
    )
    async with get_client() as client:
        created = await client.post(
            "/documents",
            json={"file_name": "contract.txt", "text": TEXT},
            headers={"X-API-Key": "key-a"},
        )
        document_id = created.json()["document"]["document_id"]
        own = await client.get(
            f"/documents/{document_id}", headers={"Authorization": "Bearer key-a"}
        )
        other = await client.get(f"/documents/{document_id}", headers={"X-API-Key": "key-b"})
        chat = await client.post(
            "/chat",
            json={
                "document_id": document_id,
                "messages": [{"role": "user", "content": "When are goods delivered?"}],
            },
            headers={"X-API-Key": "key-b"},
        )

    assert created.status_code == 201
    assert created.json()["document"]["org_id"] == "org-a"
    assert own.status_code == 200
    assert other.status_code == 404
    assert chat.status_code == 404


async def test_unknown_key_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RAG_API_KEY_MAP", json.dumps({"key-a": "org-a"}))
    async with get_client() as client:
        response = await client.get("/stats", headers={"X-API-Key": "nope"})

    assert response.status_code == 401


async def test_anonymous_access_can_be_disabled(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RAG_ALLOW_ANONYMOUS", "false")
    async with get_client() as client:
        response = await client.get("/stats")
        health = await client.get("/health")

    assert response.status_code == 401
    assert health.status_code == 200
