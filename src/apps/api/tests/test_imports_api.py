"""Tests for the import HTTP endpoints."""
import pytest
from fastapi.testclient import TestClient

from fakes import FakeDirectory, FakeImporter, FakeSource, FakeStager, make_profiles
from list_sync_api.dependencies import get_orchestrator
from list_sync_api.main import app
from list_sync_core.jobs import MemoryProgressStore
from list_sync_core.sync import (
    ChunkProcessor,
    DestinationResolver,
    Dispatcher,
    InlineDispatcher,
    PollPolicy,
    SyncOrchestrator,
)

BODY = {
    "sourceType": "segments",
    "sourceId": "seg-1",
    "fieldMappings": {"mobile": "phone_number", "first_name": "first_name"},
}


class ParkedDispatcher(Dispatcher):
    def __init__(self):
        self.dispatched = []

    def dispatch(self, job_id, chunk_id, run):
        self.dispatched.append((job_id, chunk_id))


def _build(source=None, dispatcher=None):
    store = MemoryProgressStore()
    source = source or FakeSource(make_profiles(120))
    processor = ChunkProcessor(
        store,
        source,
        FakeStager(),
        FakeImporter(),
        DestinationResolver(store, FakeDirectory()),
        poll_policy=PollPolicy(max_attempts=3, delay_seconds=0),
        sleep=lambda _: None,
    )
    return SyncOrchestrator(
        store, source, processor, dispatcher or InlineDispatcher(), chunk_size=50
    )


@pytest.fixture
def client_for():
    def make(orchestrator):
        app.dependency_overrides[get_orchestrator] = lambda: orchestrator
        return TestClient(app)

    yield make
    app.dependency_overrides.clear()


def test_health(client_for):
    resp = client_for(_build()).get("/api/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_create_and_get_import(client_for):
    client = client_for(_build())
    resp = client.post("/api/imports", json=BODY)
    assert resp.status_code == 200
    created = resp.json()
    assert created["status"] == "complete"
    assert (created["totalChunks"], created["totalProfiles"]) == (3, 120)

    progress = client.get(f"/api/imports/{created['importId']}").json()
    assert progress["status"] == "complete"
    assert progress["progress"]["overallPercent"] == 100
    assert progress["progress"]["profiles"]["success"] == 120
    assert [c["index"] for c in progress["chunks"]] == [0, 1, 2]
    assert progress["destinationId"] == "list-new"

    listed = client.get("/api/imports").json()["imports"]
    assert [j["id"] for j in listed] == [created["importId"]]


def test_create_rejects_invalid_input(client_for):
    client = client_for(_build())
    resp = client.post("/api/imports", json={**BODY, "fieldMappings": {}})
    assert resp.status_code == 400
    assert resp.json()["errorKind"] == "validation"
    assert client.get("/api/imports").json()["imports"] == []


def test_create_rejects_unknown_source_type(client_for):
    resp = client_for(_build()).post("/api/imports", json={**BODY, "sourceType": "flows"})
    assert resp.status_code == 422


def test_unknown_import_is_404(client_for):
    client = client_for(_build())
    assert client.get("/api/imports/nope").status_code == 404
    assert client.post("/api/imports/nope/continue").status_code == 404
    assert client.post("/api/imports/nope/chunks/0/retry").status_code == 404


def test_continue_and_retry_conflict(client_for):
    dispatcher = ParkedDispatcher()
    client = client_for(_build(dispatcher=dispatcher))
    import_id = client.post("/api/imports", json=BODY).json()["importId"]
    assert len(dispatcher.dispatched) == 1

    resp = client.post(f"/api/imports/{import_id}/continue")
    assert resp.status_code == 200
    assert resp.json()["claimedChunkId"] is None

    resp = client.post(f"/api/imports/{import_id}/chunks/0/retry")
    assert resp.status_code == 409
    assert resp.json()["errorKind"] == "conflict"


def test_retry_failed_chunk(client_for):
    source = FakeSource(make_profiles(120), fail_offsets=(50,))
    client = client_for(_build(source=source))
    import_id = client.post("/api/imports", json=BODY).json()["importId"]

    progress = client.get(f"/api/imports/{import_id}").json()
    assert progress["status"] == "completed_with_errors"
    failed = progress["chunks"][1]
    assert failed["status"] == "failed"
    assert failed["errorMessage"]
    assert failed["suggestion"]

    source.fail_offsets.clear()
    resp = client.post(f"/api/imports/{import_id}/chunks/1/retry")
    assert resp.status_code == 200
    assert resp.json()["chunk"]["status"] == "completed"
    assert client.get(f"/api/imports/{import_id}").json()["status"] == "complete"


def test_source_lookup_failure_is_502(client_for):
    class BrokenSource(FakeSource):
        def source_name(self, source_type, source_id):
            from list_sync_core.util import SourceError

            raise SourceError("Klaviyo API error 401: Invalid API key")

    resp = client_for(_build(source=BrokenSource([]))).post("/api/imports", json=BODY)
    assert resp.status_code == 502
    assert resp.json()["errorKind"] == "source"
    assert "Invalid API key" in resp.json()["detail"]
