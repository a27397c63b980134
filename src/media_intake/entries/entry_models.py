"""Entry lifecycle as a tagged variant.

Each stage is a frozen dataclass holding only the fields that are valid for
it: a ``Created`` entry has no storage identifier at all, and a job reference
only ever appears next to the ``StoredContent`` it was dispatched for.
Transitions are plain functions returning a new :class:`Entry`; they raise
:class:`InvalidTransitionError` instead of moving backwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import StrEnum
from pathlib import Path
from typing import Union

from ..exceptions import InvalidTransitionError


class EntryState(StrEnum):
    CREATED = "created"
    STORAGE_PENDING = "storage_pending"
    DISPATCHED = "dispatched"
    PUBLISHED = "published"
    PUBLISH_MANUAL = "publish_manual"
    FAILED = "failed"


TERMINAL_STATES = frozenset(
    {EntryState.PUBLISHED, EntryState.PUBLISH_MANUAL, EntryState.FAILED}
)


class StorageOrigin(StrEnum):
    PRIMARY = "primary"
    FALLBACK = "fallback"


@dataclass(frozen=True, slots=True)
class StoredContent:
    content_id: str
    origin: StorageOrigin

    @property
    def uri(self) -> str:
        return f"ipfs://{self.content_id}"


@dataclass(frozen=True, slots=True)
class Created:
    local_file: Path | None = None

    state = EntryState.CREATED


@dataclass(frozen=True, slots=True)
class StoragePending:
    local_file: Path

    state = EntryState.STORAGE_PENDING


@dataclass(frozen=True, slots=True)
class Dispatched:
    storage: StoredContent
    job_id: str

    state = EntryState.DISPATCHED


@dataclass(frozen=True, slots=True)
class Published:
    storage: StoredContent
    job_id: str
    eviction_eligible: bool = False

    state = EntryState.PUBLISHED

    def __post_init__(self) -> None:
        if self.eviction_eligible and self.storage.origin is not StorageOrigin.FALLBACK:
            raise InvalidTransitionError("only fallback content can be eviction-eligible")


@dataclass(frozen=True, slots=True)
class PublishManual:
    storage: StoredContent
    job_id: str

    state = EntryState.PUBLISH_MANUAL


@dataclass(frozen=True, slots=True)
class Failed:
    reason: str
    failed_from: EntryState
    storage: StoredContent | None = None
    job_id: str | None = None

    state = EntryState.FAILED


EntryStage = Union[Created, StoragePending, Dispatched, Published, PublishManual, Failed]


@dataclass(slots=True)
class EntryMetadata:
    """User supplied and declared attributes of a media asset."""

    title: str
    description: str
    size_bytes: int
    duration_seconds: float
    original_filename: str
    tags: list[str] = field(default_factory=list)
    thumbnail: str = ""
    community: str | None = None
    hive: str | None = None
    language: str = "en"
    category: str = "general"
    decline_rewards: bool = False
    reward_powerup: bool = False
    vote_percent: float = 1.0
    beneficiaries: str = "[]"


@dataclass(frozen=True, slots=True)
class Entry:
    id: str
    owner: str
    permlink: str
    metadata: EntryMetadata
    stage: EntryStage
    created_at: datetime

    @property
    def state(self) -> EntryState:
        return self.stage.state

    @property
    def storage(self) -> StoredContent | None:
        return getattr(self.stage, "storage", None)

    @property
    def job_id(self) -> str | None:
        return getattr(self.stage, "job_id", None)

    @property
    def local_file(self) -> Path | None:
        return getattr(self.stage, "local_file", None)

    @property
    def is_processed(self) -> bool:
        """Storage identifier and job reference are both recorded."""
        return self.storage is not None and self.job_id is not None

    @property
    def eviction_eligible(self) -> bool:
        return isinstance(self.stage, Published) and self.stage.eviction_eligible


def begin_storage(entry: Entry, local_file: Path) -> Entry:
    """Record the received local file and move to ``storage_pending``."""
    if isinstance(entry.stage, (Created, StoragePending)):
        return replace(entry, stage=StoragePending(local_file=local_file))
    raise InvalidTransitionError(
        f"entry '{entry.id}' cannot start storage from state '{entry.state}'"
    )


def commit_dispatch(entry: Entry, storage: StoredContent, job_id: str) -> Entry:
    """Attach storage + job and move to ``dispatched``."""
    if entry.job_id is not None:
        raise InvalidTransitionError(f"entry '{entry.id}' already references job '{entry.job_id}'")
    if isinstance(entry.stage, (Created, StoragePending)):
        return replace(entry, stage=Dispatched(storage=storage, job_id=job_id))
    raise InvalidTransitionError(
        f"entry '{entry.id}' cannot be dispatched from state '{entry.state}'"
    )


def publish(entry: Entry, *, manual: bool = False) -> Entry:
    if not isinstance(entry.stage, Dispatched):
        raise InvalidTransitionError(
            f"entry '{entry.id}' cannot be published from state '{entry.state}'"
        )
    stage = entry.stage
    if manual:
        return replace(entry, stage=PublishManual(storage=stage.storage, job_id=stage.job_id))
    return replace(entry, stage=Published(storage=stage.storage, job_id=stage.job_id))


def fail(entry: Entry, reason: str) -> Entry:
    if entry.state in TERMINAL_STATES:
        raise InvalidTransitionError(f"entry '{entry.id}' is already terminal ('{entry.state}')")
    return replace(
        entry,
        stage=Failed(
            reason=reason,
            failed_from=entry.state,
            storage=entry.storage,
            job_id=entry.job_id,
        ),
    )


def mark_evicted(entry: Entry) -> Entry:
    """Flip ``eviction_eligible`` for published fallback content."""
    stage = entry.stage
    if not isinstance(stage, Published):
        raise InvalidTransitionError(f"entry '{entry.id}' is not published")
    if stage.eviction_eligible:
        return entry
    return replace(entry, stage=replace(stage, eviction_eligible=True))
