"""Domain level exceptions and helpers for repository layers."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

from sqlalchemy import exc as sa_exc

__all__ = [
    "AppError",
    "ValidationError",
    "NotFoundError",
    "UploadNotReadyError",
    "AlreadyFinalizedError",
    "InvalidTransitionError",
    "JobAlreadyExistsError",
    "JobStateError",
    "StorageNodeError",
    "StorageUploadFailedError",
    "RepositoryError",
    "IntegrityConstraintViolation",
    "DatabaseOperationError",
    "handle_sqlalchemy_errors",
]


class AppError(Exception):
    """Base class for application specific errors."""


class ValidationError(AppError):
    """Raised when intake input violates bounds or format rules."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class NotFoundError(AppError):
    """Raised when an entry, transfer, job or local file could not be located."""


class UploadNotReadyError(AppError):
    """Raised when finalizing a transfer whose bytes have not arrived yet."""


class AlreadyFinalizedError(AppError):
    """Raised when a pending transfer was already turned into an entry."""


class InvalidTransitionError(AppError):
    """Raised when an entry state change would move backwards."""


class JobAlreadyExistsError(AppError):
    """Raised when an active job already exists for an (owner, permlink) key."""


class JobStateError(AppError):
    """Raised when a retry or cancel is not allowed in the job's status."""


class StorageNodeError(AppError):
    """Raised when a single content-addressed node rejects a request."""


class StorageUploadFailedError(AppError):
    """Raised when both the primary and the fallback node failed an upload."""

    def __init__(self, primary_reason: str, fallback_reason: str) -> None:
        super().__init__(
            f"Both uploads failed. Primary: {primary_reason}, Fallback: {fallback_reason}"
        )
        self.primary_reason = primary_reason
        self.fallback_reason = fallback_reason


class RepositoryError(AppError):
    """Base class for persistence layer failures."""


class IntegrityConstraintViolation(RepositoryError):
    """Raised when a database constraint is violated."""


class DatabaseOperationError(RepositoryError):
    """Raised for unexpected database errors."""


@dataclass(slots=True)
class _EntityContext:
    """Internal helper describing the entity for error messages."""

    entity: str | None = None

    def format(self, message: str) -> str:
        if self.entity:
            return f"{self.entity}: {message}"
        return message


def _translate_sqlalchemy_error(exc: Exception, *, context: _EntityContext) -> RepositoryError:
    if isinstance(exc, sa_exc.IntegrityError):
        return IntegrityConstraintViolation(context.format("integrity constraint violated"))
    if isinstance(exc, sa_exc.DBAPIError):
        return DatabaseOperationError(context.format("database operation failed"))
    return RepositoryError(context.format(str(exc)))


@contextmanager
def handle_sqlalchemy_errors(*, entity: str | None = None) -> Iterator[None]:
    """Translate SQLAlchemy errors into domain specific ones."""

    context = _EntityContext(entity)
    try:
        yield
    except (sa_exc.IntegrityError, sa_exc.DBAPIError) as exc:
        raise _translate_sqlalchemy_error(exc, context=context) from exc
