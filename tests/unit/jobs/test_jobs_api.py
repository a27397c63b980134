from __future__ import annotations

from datetime import datetime

from fastapi import FastAPI
from fastapi.testclient import TestClient

from media_intake.exceptions import JobStateError, NotFoundError
from media_intake.jobs.job_models import JobInput, JobStatus, ProcessingJob
from media_intake.jobs.jobs_api import router


def _job(status: JobStatus = JobStatus.QUEUED, retry_count: int = 0) -> ProcessingJob:
    return ProcessingJob(
        id="job-1",
        owner="alice",
        permlink="abcd1234",
        status=status,
        input=JobInput(uri="https://primary.gw/ipfs/QmA", size_bytes=5_000_000),
        storage_key="alice/abcd1234/video",
        retry_count=retry_count,
        created_at=datetime(2026, 10, 19, 12, 0),
    )


class StubDispatcher:
    def get(self, job_id: str) -> ProcessingJob:
        if job_id != "job-1":
            raise NotFoundError(f"Job '{job_id}' not found")
        return _job()

    def retry(self, job_id: str) -> ProcessingJob:
        return _job(JobStatus.QUEUED, retry_count=1)

    def cancel(self, job_id: str) -> ProcessingJob:
        raise JobStateError(f"Job {job_id} is already complete")


def build_client() -> TestClient:
    app = FastAPI()
    app.state.job_dispatcher = StubDispatcher()
    app.include_router(router)
    return TestClient(app)


def test_get_job() -> None:
    response = build_client().get("/api/upload/jobs/job-1")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "queued"
    assert body["storage_key"] == "alice/abcd1234/video"
    assert body["input_size"] == 5_000_000


def test_get_missing_job() -> None:
    response = build_client().get("/api/upload/jobs/nope")

    assert response.status_code == 404
    assert response.json()["detail"]["failure_reason"] == "not_found"


def test_retry_job() -> None:
    response = build_client().post("/api/upload/jobs/job-1/retry")

    assert response.status_code == 200
    assert response.json()["retry_count"] == 1


def test_cancel_finished_job_conflicts() -> None:
    response = build_client().post("/api/upload/jobs/job-1/cancel")

    assert response.status_code == 409
    assert response.json()["detail"] == {
        "status": "error",
        "failure_reason": "invalid_state",
        "details": "Job job-1 is already complete",
    }
