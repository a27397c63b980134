"""HTTP routes for upload intake."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, File, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError as PydanticValidationError

from ..api_errors import ERROR_RESPONSES, raise_http_error
from ..exceptions import AppError, ValidationError
from .intake_schemas import (
    CompletionResponse,
    FinalizeRequest,
    InitRequest,
    PrepareRequest,
    ThumbnailResponse,
    TransferTargetResponse,
    TusHookRequest,
)
from .intake_service import IntakeService
from .thumbnails import ThumbnailImage, ThumbnailService, decode_data_uri

router = APIRouter(prefix="/api/upload", tags=["upload"])
logger = logging.getLogger(__name__)


def get_intake_service(request: Request) -> IntakeService:
    """Fetch intake service from application state."""
    try:
        return request.app.state.intake_service  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover
        raise RuntimeError("IntakeService is not configured") from exc


def get_thumbnail_service(request: Request) -> ThumbnailService:
    try:
        return request.app.state.thumbnail_service  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover
        raise RuntimeError("ThumbnailService is not configured") from exc


async def _read_upload(upload: UploadFile, limit: int) -> ThumbnailImage:
    data = await upload.read(limit + 1)
    return ThumbnailImage(
        data=data,
        filename=upload.filename or "thumbnail",
        content_type=upload.content_type or "application/octet-stream",
    )


async def _prepare_payload(request: Request) -> tuple[PrepareRequest, UploadFile | None]:
    """Accept the prepare body as JSON or as a multipart form with a ``thumbnail`` file."""
    upload = None
    try:
        if request.headers.get("content-type", "").startswith("multipart/form-data"):
            form = await request.form()
            body: dict[str, Any] = {
                key: value
                for key, value in form.items()
                if key not in ("thumbnail", "tags") and isinstance(value, str)
            }
            tags = [tag for tag in form.getlist("tags") if isinstance(tag, str)]
            if tags:
                body["tags"] = tags
            thumbnail = form.get("thumbnail")
            if thumbnail is not None and not isinstance(thumbnail, str):
                upload = thumbnail
        else:
            body = await request.json()
    except ValueError as exc:
        raise RequestValidationError(
            [{"type": "json_invalid", "loc": ("body",), "msg": "Invalid request body", "input": None}]
        ) from exc
    try:
        return PrepareRequest.model_validate(body), upload
    except PydanticValidationError as exc:
        raise RequestValidationError(exc.errors(include_url=False, include_context=False)) from exc


@router.post("/prepare", response_model=TransferTargetResponse, responses=ERROR_RESPONSES)
async def prepare_upload(
    request: Request,
    service: IntakeService = Depends(get_intake_service),
    thumbnails: ThumbnailService = Depends(get_thumbnail_service),
) -> TransferTargetResponse:
    """Metadata-first: create the entry and return transfer metadata."""
    payload, upload = await _prepare_payload(request)
    try:
        image = None
        if upload is not None:
            image = await _read_upload(upload, thumbnails.max_bytes)
        elif payload.thumbnail_base64:
            image = decode_data_uri(payload.thumbnail_base64)
        target = await service.prepare(
            payload.owner, payload.declared(), payload.to_domain(), thumbnail=image
        )
    except AppError as exc:
        raise_http_error(exc, event="intake.prepare.failed", owner=payload.owner)
    return TransferTargetResponse.from_target(target)


@router.post("/init", response_model=TransferTargetResponse, responses=ERROR_RESPONSES)
def init_upload(
    payload: InitRequest,
    service: IntakeService = Depends(get_intake_service),
) -> TransferTargetResponse:
    """Upload-first: open a pending transfer."""
    try:
        target = service.begin_upload_first(
            payload.owner, payload.size, payload.duration, payload.original_filename
        )
    except AppError as exc:
        raise_http_error(exc, event="intake.init.failed", owner=payload.owner)
    return TransferTargetResponse.from_target(target)


@router.post("/finalize", response_model=CompletionResponse, responses=ERROR_RESPONSES)
async def finalize_upload(
    payload: FinalizeRequest,
    service: IntakeService = Depends(get_intake_service),
) -> CompletionResponse:
    try:
        result = await service.finalize(payload.upload_id, payload.to_domain())
    except Exception as exc:
        raise_http_error(exc, event="intake.finalize.failed")
    return CompletionResponse.from_result(result)


@router.post("/tus-callback", response_model=CompletionResponse, responses=ERROR_RESPONSES)
async def transfer_completed(
    payload: TusHookRequest,
    service: IntakeService = Depends(get_intake_service),
) -> CompletionResponse:
    """Post-finish hook of the transfer server."""
    notification = payload.to_notification()
    logger.info(
        "intake.notification.received",
        extra={"transfer_id": notification.transfer_id, "path": str(notification.local_file)},
    )
    try:
        result = await service.handle_notification(notification)
    except Exception as exc:
        raise_http_error(exc, event="intake.notification.failed", transfer_id=notification.transfer_id)
    return CompletionResponse.from_result(result)


@router.post("/thumbnail/{entry_id}", response_model=ThumbnailResponse, responses=ERROR_RESPONSES)
async def upload_thumbnail(
    entry_id: str,
    thumbnail: UploadFile | None = File(None),
    thumbnails: ThumbnailService = Depends(get_thumbnail_service),
) -> ThumbnailResponse:
    """Pin a thumbnail for an existing entry."""
    try:
        if thumbnail is None:
            raise ValidationError("No thumbnail file provided", field="thumbnail")
        image = await _read_upload(thumbnail, thumbnails.max_bytes)
        entry = await thumbnails.attach(entry_id, image)
    except AppError as exc:
        raise_http_error(exc, event="intake.thumbnail.failed", entry_id=entry_id)
    return ThumbnailResponse.from_entry(entry)
