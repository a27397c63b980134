from __future__ import annotations

from datetime import datetime

from fastapi import FastAPI
from fastapi.testclient import TestClient

from media_intake.entries.entries_api import router
from media_intake.entries.entries_schemas import EntryListResponse, EntryStatusResponse, EntryView
from media_intake.entries.entry_models import (
    Dispatched,
    Entry,
    EntryState,
    Failed,
    PublishManual,
    Published,
    StorageOrigin,
    StoredContent,
)
from media_intake.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from tests.helpers.intake_fakes import entry_metadata

STORED = StoredContent(content_id="QmA", origin=StorageOrigin.PRIMARY)


def _entry(stage=None) -> Entry:
    return Entry(
        id="e1",
        owner="alice",
        permlink="abcd1234",
        metadata=entry_metadata(),
        stage=stage or Dispatched(storage=STORED, job_id="job-1"),
        created_at=datetime(2026, 10, 19, 12, 0),
    )


class StubStatusService:
    def __init__(self) -> None:
        self.list_calls: list[dict] = []
        self.published: list[tuple[str, bool]] = []
        self.failures: list[tuple[str, str]] = []

    def status(self, entry_id: str) -> EntryStatusResponse:
        if entry_id != "e1":
            raise NotFoundError(f"Entry '{entry_id}' not found")
        return EntryStatusResponse(video=EntryView.from_domain(_entry()))

    def list_for_owner(self, owner: str, *, state=None, limit=20, offset=0) -> EntryListResponse:
        self.list_calls.append({"owner": owner, "state": state, "limit": limit, "offset": offset})
        if not owner:
            raise ValidationError("Owner parameter is required", field="owner")
        return EntryListResponse(
            videos=[EntryView.from_domain(_entry())], total=1, limit=limit, offset=offset
        )

    def record_publication(self, entry_id: str, *, manual: bool = False) -> Entry:
        self.published.append((entry_id, manual))
        if entry_id == "done":
            raise InvalidTransitionError("entry 'done' cannot be published from state 'published'")
        stage = PublishManual if manual else Published
        return _entry(stage(storage=STORED, job_id="job-1"))

    def record_failure(self, entry_id: str, reason: str) -> Entry:
        self.failures.append((entry_id, reason))
        if entry_id == "done":
            raise InvalidTransitionError("entry 'done' is already terminal ('published')")
        return _entry(Failed(reason=reason, failed_from=EntryState.DISPATCHED, storage=STORED, job_id="job-1"))


def build_client(service: StubStatusService) -> TestClient:
    app = FastAPI()
    app.state.status_service = service
    app.include_router(router)
    return TestClient(app)


def test_status_endpoint() -> None:
    response = build_client(StubStatusService()).get("/api/upload/video/e1/status")

    assert response.status_code == 200
    body = response.json()
    assert body["video"]["status"] == "dispatched"
    assert body["video"]["job_id"] == "job-1"
    assert body["job"] is None


def test_status_unknown_entry() -> None:
    response = build_client(StubStatusService()).get("/api/upload/video/zzz/status")

    assert response.status_code == 404


def test_list_passes_filters() -> None:
    service = StubStatusService()

    response = build_client(service).get(
        "/api/upload/videos", params={"owner": "alice", "status": "dispatched", "limit": 5}
    )

    assert response.status_code == 200
    assert response.json()["total"] == 1
    assert service.list_calls == [{"owner": "alice", "state": "dispatched", "limit": 5, "offset": 0}]


def test_list_without_owner() -> None:
    response = build_client(StubStatusService()).get("/api/upload/videos")

    assert response.status_code == 400
    assert response.json()["detail"]["field"] == "owner"


def test_publication_hook() -> None:
    service = StubStatusService()
    client = build_client(service)

    plain = client.post("/api/upload/video/e1/published")
    manual = client.post("/api/upload/video/e1/published", json={"manual": True})

    assert plain.json()["status"] == "published"
    assert manual.json()["status"] == "publish_manual"
    assert service.published == [("e1", False), ("e1", True)]


def test_publication_hook_rejects_invalid_state() -> None:
    response = build_client(StubStatusService()).post("/api/upload/video/done/published")

    assert response.status_code == 409
    assert response.json()["detail"]["failure_reason"] == "invalid_state"


def test_failure_hook() -> None:
    service = StubStatusService()

    response = build_client(service).post("/api/upload/video/e1/failed", json={"reason": "encoder_rejected"})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "failed"
    assert body["failure_reason"] == "encoder_rejected"
    assert service.failures == [("e1", "encoder_rejected")]


def test_failure_hook_requires_reason() -> None:
    service = StubStatusService()

    response = build_client(service).post("/api/upload/video/e1/failed", json={"reason": ""})

    assert response.status_code == 422
    assert service.failures == []


def test_failure_hook_on_terminal_entry() -> None:
    response = build_client(StubStatusService()).post(
        "/api/upload/video/done/failed", json={"reason": "encoder_rejected"}
    )

    assert response.status_code == 409
