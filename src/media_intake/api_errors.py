"""Mapping of domain errors onto the HTTP error contract."""

from __future__ import annotations

import logging
from typing import NoReturn

from fastapi import HTTPException, status
from pydantic import BaseModel

from .exceptions import (
    AlreadyFinalizedError,
    AppError,
    InvalidTransitionError,
    JobAlreadyExistsError,
    JobStateError,
    NotFoundError,
    StorageUploadFailedError,
    UploadNotReadyError,
    ValidationError,
)
from .intake.intake_models import FailureReason

logger = logging.getLogger(__name__)


class ErrorSchema(BaseModel):
    status: str
    failure_reason: str
    details: str | None = None


ERROR_RESPONSES = {
    400: {"model": ErrorSchema},
    404: {"model": ErrorSchema},
    409: {"model": ErrorSchema},
}

_ERROR_MAP: tuple[tuple[type[AppError], int, FailureReason], ...] = (
    (ValidationError, status.HTTP_400_BAD_REQUEST, FailureReason.INVALID_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND, FailureReason.NOT_FOUND),
    (UploadNotReadyError, status.HTTP_409_CONFLICT, FailureReason.UPLOAD_NOT_READY),
    (AlreadyFinalizedError, status.HTTP_409_CONFLICT, FailureReason.ALREADY_FINALIZED),
    (InvalidTransitionError, status.HTTP_409_CONFLICT, FailureReason.INVALID_STATE),
    (JobAlreadyExistsError, status.HTTP_409_CONFLICT, FailureReason.JOB_CONFLICT),
    (JobStateError, status.HTTP_409_CONFLICT, FailureReason.INVALID_STATE),
    (StorageUploadFailedError, status.HTTP_502_BAD_GATEWAY, FailureReason.STORAGE_UPLOAD_FAILED),
)


def raise_http_error(exc: Exception, *, event: str, **context: object) -> NoReturn:
    """Translate an error into the ``{"status": "error", ...}`` contract."""
    for error_type, status_code, reason in _ERROR_MAP:
        if isinstance(exc, error_type):
            detail: dict[str, object] = {
                "status": "error",
                "failure_reason": reason.value,
                "details": str(exc),
            }
            if isinstance(exc, ValidationError) and exc.field:
                detail["field"] = exc.field
            logger.warning(event, extra={**context, "failure_reason": reason.value})
            raise HTTPException(status_code=status_code, detail=detail) from exc
    logger.exception(event, extra={**context, "failure_reason": FailureReason.INTERNAL_ERROR.value})
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"status": "error", "failure_reason": FailureReason.INTERNAL_ERROR.value},
    ) from exc
