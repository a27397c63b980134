"""HTTP routes for entry status and publication."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from ..api_errors import ERROR_RESPONSES, raise_http_error
from ..exceptions import AppError
from .entries_schemas import (
    EntryListResponse,
    EntryStatusResponse,
    EntryView,
    FailureRequest,
    PublicationRequest,
)
from .status_service import StatusService

router = APIRouter(prefix="/api/upload", tags=["entries"])


def get_status_service(request: Request) -> StatusService:
    try:
        return request.app.state.status_service  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover
        raise RuntimeError("StatusService is not configured") from exc


@router.get("/video/{entry_id}/status", response_model=EntryStatusResponse, responses=ERROR_RESPONSES)
def entry_status(
    entry_id: str,
    service: StatusService = Depends(get_status_service),
) -> EntryStatusResponse:
    try:
        return service.status(entry_id)
    except AppError as exc:
        raise_http_error(exc, event="entries.status.failed", entry_id=entry_id)


@router.get("/videos", response_model=EntryListResponse, responses=ERROR_RESPONSES)
def list_entries(
    owner: str = Query(""),
    status_filter: str | None = Query(None, alias="status"),
    limit: int = Query(20),
    offset: int = Query(0),
    service: StatusService = Depends(get_status_service),
) -> EntryListResponse:
    """List an owner's entries, newest first."""
    try:
        return service.list_for_owner(owner, state=status_filter, limit=limit, offset=offset)
    except AppError as exc:
        raise_http_error(exc, event="entries.list.failed", owner=owner)


@router.post("/video/{entry_id}/published", response_model=EntryView, responses=ERROR_RESPONSES)
def entry_published(
    entry_id: str,
    payload: PublicationRequest | None = None,
    service: StatusService = Depends(get_status_service),
) -> EntryView:
    manual = payload.manual if payload is not None else False
    try:
        entry = service.record_publication(entry_id, manual=manual)
    except AppError as exc:
        raise_http_error(exc, event="entries.publish.failed", entry_id=entry_id)
    return EntryView.from_domain(entry)


@router.post("/video/{entry_id}/failed", response_model=EntryView, responses=ERROR_RESPONSES)
def entry_failed(
    entry_id: str,
    payload: FailureRequest,
    service: StatusService = Depends(get_status_service),
) -> EntryView:
    try:
        entry = service.record_failure(entry_id, payload.reason)
    except AppError as exc:
        raise_http_error(exc, event="entries.fail.failed", entry_id=entry_id)
    return EntryView.from_domain(entry)
