"""HTTP routes for processing job maintenance."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ..api_errors import ERROR_RESPONSES, raise_http_error
from ..entries.entries_schemas import JobView
from ..exceptions import AppError
from .job_dispatcher import JobDispatcher

router = APIRouter(prefix="/api/upload/jobs", tags=["jobs"])


def get_job_dispatcher(request: Request) -> JobDispatcher:
    try:
        return request.app.state.job_dispatcher  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover
        raise RuntimeError("JobDispatcher is not configured") from exc


@router.get("/{job_id}", response_model=JobView, responses=ERROR_RESPONSES)
def get_job(job_id: str, dispatcher: JobDispatcher = Depends(get_job_dispatcher)) -> JobView:
    try:
        return JobView.from_domain(dispatcher.get(job_id))
    except AppError as exc:
        raise_http_error(exc, event="jobs.get.failed", job_id=job_id)


@router.post("/{job_id}/retry", response_model=JobView, responses=ERROR_RESPONSES)
def retry_job(job_id: str, dispatcher: JobDispatcher = Depends(get_job_dispatcher)) -> JobView:
    """Requeue a failed job that still has retries left."""
    try:
        return JobView.from_domain(dispatcher.retry(job_id))
    except AppError as exc:
        raise_http_error(exc, event="jobs.retry.failed", job_id=job_id)


@router.post("/{job_id}/cancel", response_model=JobView, responses=ERROR_RESPONSES)
def cancel_job(job_id: str, dispatcher: JobDispatcher = Depends(get_job_dispatcher)) -> JobView:
    try:
        return JobView.from_domain(dispatcher.cancel(job_id))
    except AppError as exc:
        raise_http_error(exc, event="jobs.cancel.failed", job_id=job_id)
