"""Integration tests for the document and upload-progress endpoints."""

import json
import uuid
from pathlib import Path

import httpx
import pytest

from paperlens.api.routes import documents as documents_routes
from paperlens.docs.embedder import get_embedder
from paperlens.extraction import pipeline
from paperlens.extraction import progress as progress_module
from paperlens.extraction.progress import ProgressHub
from paperlens.main import app
from tests.fakes import FailingEmbedder

PDF_BYTES = b"%PDF-1.7\n fake body"
PDF_TEXT = "\n\n".join(
    f"Section {i} explains how tidal energy turbines convert ocean currents into power."
    for i in range(80)
) + "\f"


@pytest.fixture
def scheduled(monkeypatch: pytest.MonkeyPatch) -> list[uuid.UUID]:
    """Capture post-ingest scheduling instead of running background work."""
    ids: list[uuid.UUID] = []
    monkeypatch.setattr(documents_routes, "schedule_post_ingest", ids.append)
    return ids


@pytest.fixture(autouse=True)
def fake_pdf_text(monkeypatch: pytest.MonkeyPatch) -> None:
    async def extract(path: Path, upload_id: str) -> str:
        return PDF_TEXT

    monkeypatch.setattr(pipeline, "extract_pdf_text", extract)


async def _upload(client: httpx.AsyncClient, upload_id: str = "upload-1") -> dict:
    response = await client.post(
        "/documents/upload",
        files={"file": ("tidal.pdf", PDF_BYTES, "application/pdf")},
        data={"upload_id": upload_id},
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
async def test_upload_creates_document(
    api_client: httpx.AsyncClient, hub: ProgressHub, scheduled: list[uuid.UUID]
) -> None:
    """Test that POST /documents/upload returns the stored document and schedules follow-up work."""
    data = await _upload(api_client)

    assert data["title"] == "tidal.pdf"
    assert data["file_type"] == "pdf"
    assert data["complexity"] == "simple"
    assert "tidal energy turbines" in data["content"]
    assert data["metadata"]["doi"] is None
    assert scheduled == [uuid.UUID(data["document_id"])]


@pytest.mark.asyncio
async def test_upload_rejects_mismatched_file(
    api_client: httpx.AsyncClient, hub: ProgressHub, scheduled: list[uuid.UUID]
) -> None:
    """Test that a signature mismatch is a 400 with the reason."""
    response = await api_client.post(
        "/documents/upload",
        files={"file": ("fake.pdf", b"MZ\x90\x00 executable", "application/pdf")},
    )

    assert response.status_code == 400
    assert "does not match" in response.json()["detail"]
    assert scheduled == []


@pytest.mark.asyncio
async def test_progress_stream_replays_upload(
    api_client: httpx.AsyncClient, hub: ProgressHub, scheduled: list[uuid.UUID]
) -> None:
    """Test that GET /uploads/{id}/events streams the upload's ordered progress."""
    await _upload(api_client, upload_id="tracked")

    response = await api_client.get("/uploads/tracked/events")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    progress = [
        json.loads(line[len("data: ") :])
        for line in response.text.splitlines()
        if line.startswith("data: ") and '"step"' in line
    ]
    assert [event["step"] for event in progress][0] == "received"
    assert progress[-1]["step"] == "complete"
    assert [event["sequence"] for event in progress] == list(range(len(progress)))
    assert response.text.rstrip().endswith('data: {"upload_id": "tracked"}')


@pytest.mark.asyncio
async def test_progress_stream_hidden_from_other_users(
    api_client: httpx.AsyncClient, scheduled: list[uuid.UUID], monkeypatch: pytest.MonkeyPatch
) -> None:
    """Test that another user's progress stream for the same upload id stays empty."""
    monkeypatch.setattr(progress_module, "_progress_hub", ProgressHub(idle_timeout_s=0.2))
    await _upload(api_client, upload_id="private")

    foreign = await api_client.get(
        "/uploads/private/events", headers={"Authorization": f"Bearer {uuid.uuid4()}"}
    )

    assert foreign.status_code == 200
    assert '"step"' not in foreign.text
    assert "tidal.pdf" not in foreign.text
    assert foreign.text.rstrip().endswith('data: {"upload_id": "private"}')


@pytest.mark.asyncio
async def test_reused_upload_id_streams_latest_attempt(
    api_client: httpx.AsyncClient, hub: ProgressHub, scheduled: list[uuid.UUID]
) -> None:
    """Test that a second upload under the same id does not replay the first."""
    first = await _upload(api_client, upload_id="again")
    second = await _upload(api_client, upload_id="again")

    response = await api_client.get("/uploads/again/events")

    details = [
        json.loads(line[len("data: ") :])["detail"]
        for line in response.text.splitlines()
        if line.startswith("data: ") and '"step"' in line
    ]
    assert details[-1] == f"Document {second['document_id']} ready"
    assert f"Document {first['document_id']} ready" not in details
    assert len(details) == 7


@pytest.mark.asyncio
async def test_list_get_and_ownership(
    api_client: httpx.AsyncClient, hub: ProgressHub, scheduled: list[uuid.UUID]
) -> None:
    """Test listing and fetching, and that other users get 404."""
    created = await _upload(api_client)
    document_id = created["document_id"]

    listed = await api_client.get("/documents")
    fetched = await api_client.get(f"/documents/{document_id}")
    foreign = await api_client.get(
        f"/documents/{document_id}", headers={"Authorization": f"Bearer {uuid.uuid4()}"}
    )

    assert [d["document_id"] for d in listed.json()["documents"]] == [document_id]
    assert fetched.json()["content"] == created["content"]
    assert foreign.status_code == 404


@pytest.mark.asyncio
async def test_delete_document(
    api_client: httpx.AsyncClient, hub: ProgressHub, scheduled: list[uuid.UUID]
) -> None:
    """Test that DELETE returns 204 once and 404 afterwards."""
    document_id = (await _upload(api_client))["document_id"]

    first = await api_client.delete(f"/documents/{document_id}")
    second = await api_client.delete(f"/documents/{document_id}")

    assert first.status_code == 204
    assert second.status_code == 404
    assert (await api_client.get(f"/documents/{document_id}")).status_code == 404


@pytest.mark.asyncio
async def test_reindex_and_search(
    api_client: httpx.AsyncClient, hub: ProgressHub, scheduled: list[uuid.UUID]
) -> None:
    """Test that a reindexed document can be searched."""
    document_id = (await _upload(api_client))["document_id"]

    empty = await api_client.get(f"/documents/{document_id}/search", params={"query": "turbines"})
    reindex = await api_client.post(f"/documents/{document_id}/reindex")
    search = await api_client.get(
        f"/documents/{document_id}/search", params={"query": "ocean currents", "limit": 2}
    )

    assert empty.json()["matches"] == []
    assert reindex.status_code == 200
    assert reindex.json()["chunk_count"] >= 1
    matches = search.json()["matches"]
    assert 1 <= len(matches) <= 2
    assert all(m["document_id"] == document_id for m in matches)


@pytest.mark.asyncio
async def test_reindex_failure_is_503(
    api_client: httpx.AsyncClient, hub: ProgressHub, scheduled: list[uuid.UUID]
) -> None:
    """Test that an embedding outage reports search as unavailable."""
    document_id = (await _upload(api_client))["document_id"]
    app.dependency_overrides[get_embedder] = lambda: FailingEmbedder()

    response = await api_client.post(f"/documents/{document_id}/reindex")

    assert response.status_code == 503
    assert response.json()["detail"] == "search unavailable"
    assert (await api_client.get(f"/documents/{document_id}")).status_code == 200


@pytest.mark.asyncio
async def test_invalid_bearer_is_401(api_client: httpx.AsyncClient) -> None:
    """Test that a malformed token is rejected."""
    response = await api_client.get("/documents", headers={"Authorization": "Bearer nope"})

    assert response.status_code == 401
