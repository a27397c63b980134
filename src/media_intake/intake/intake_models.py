"""Data structures for the intake pipeline."""

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path


class FailureReason(StrEnum):
    """Failure reasons enumerated in intake error contracts."""

    INVALID_REQUEST = "invalid_request"
    NOT_FOUND = "not_found"
    UPLOAD_NOT_READY = "upload_not_ready"
    ALREADY_FINALIZED = "already_finalized"
    INVALID_STATE = "invalid_state"
    STORAGE_UPLOAD_FAILED = "storage_upload_failed"
    JOB_CONFLICT = "job_conflict"
    INTERNAL_ERROR = "internal_error"


class CompletionOutcome(StrEnum):
    DISPATCHED = "dispatched"
    ATTACHED_EXISTING = "attached_existing"
    DUPLICATE_SUPPRESSED = "duplicate_suppressed"
    TRANSFER_RECORDED = "transfer_recorded"


@dataclass(slots=True)
class DeclaredUpload:
    """Values announced by the client before the bytes arrive."""

    size_bytes: int
    duration_seconds: float
    original_filename: str


@dataclass(slots=True)
class UserMetadata:
    """Descriptive fields supplied by the uploader."""

    title: str
    description: str
    tags: list[str] = field(default_factory=list)
    thumbnail: str | None = None
    community: str | None = None
    hive: str | None = None
    language: str = "en"
    category: str = "general"
    decline_rewards: bool = False
    reward_powerup: bool = False
    vote_percent: float = 1.0
    beneficiaries: str | None = None


@dataclass(slots=True)
class TransferTarget:
    """Where to send the bytes and what to put in the transfer metadata."""

    endpoint: str
    metadata: dict[str, str]
    entry_id: str | None = None
    owner: str | None = None
    permlink: str | None = None
    transfer_token: str | None = None


@dataclass(slots=True)
class CompletionNotification:
    """Parsed post-finish hook body from the transfer server."""

    transfer_id: str
    local_file: Path
    metadata: dict[str, str]


@dataclass(slots=True)
class CompletionResult:
    outcome: CompletionOutcome
    entry_id: str | None = None
    job_id: str | None = None
    content_id: str | None = None
    origin: str | None = None
    gateway_url: str | None = None

    @property
    def existing(self) -> bool:
        return self.outcome in (
            CompletionOutcome.DUPLICATE_SUPPRESSED,
            CompletionOutcome.ATTACHED_EXISTING,
        )
