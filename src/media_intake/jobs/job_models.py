"""Data structures for processing jobs consumed by the encoder queue."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum


class JobStatus(StrEnum):
    """Lifecycle statuses shared with the encoder workers."""

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


@dataclass(frozen=True, slots=True)
class JobInput:
    """Where the encoder fetches the source bytes from."""

    uri: str
    size_bytes: int


@dataclass(slots=True)
class JobProgress:
    download_pct: float = 0.0
    pct: float = 0.0


@dataclass(slots=True)
class ProcessingJob:
    id: str
    owner: str
    permlink: str
    status: JobStatus
    input: JobInput
    storage_key: str
    progress: JobProgress = field(default_factory=JobProgress)
    retry_count: int = 0
    max_retries: int = 3
    error_message: str | None = None
    assigned_to: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    completed_at: datetime | None = None

    def can_retry(self) -> bool:
        return self.status is JobStatus.FAILED and self.retry_count < self.max_retries


@dataclass(slots=True)
class JobStats:
    total: int
    by_status: dict[str, int]
    avg_duration_ms: int
