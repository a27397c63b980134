"""Pydantic schemas for entry status responses."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from ..jobs.job_models import ProcessingJob
from .entry_models import Entry, StorageOrigin


class EntryView(BaseModel):
    id: str
    owner: str
    permlink: str
    title: str
    description: str
    tags: list[str]
    thumbnail: str
    size: int
    duration: float
    original_filename: str
    language: str
    category: str
    community: str | None = None
    hive: str | None = None
    status: str
    content_uri: str | None = None
    storage_origin: str | None = None
    fallback_mode: bool = False
    job_id: str | None = None
    failure_reason: str | None = None
    eviction_eligible: bool = False
    created_at: datetime

    @classmethod
    def from_domain(cls, entry: Entry) -> "EntryView":
        storage = entry.storage
        meta = entry.metadata
        return cls(
            id=entry.id,
            owner=entry.owner,
            permlink=entry.permlink,
            title=meta.title,
            description=meta.description,
            tags=list(meta.tags),
            thumbnail=meta.thumbnail,
            size=meta.size_bytes,
            duration=meta.duration_seconds,
            original_filename=meta.original_filename,
            language=meta.language,
            category=meta.category,
            community=meta.community,
            hive=meta.hive,
            status=entry.state.value,
            content_uri=storage.uri if storage else None,
            storage_origin=storage.origin.value if storage else None,
            fallback_mode=storage is not None and storage.origin is StorageOrigin.FALLBACK,
            job_id=entry.job_id,
            failure_reason=getattr(entry.stage, "reason", None),
            eviction_eligible=entry.eviction_eligible,
            created_at=entry.created_at,
        )


class JobView(BaseModel):
    id: str
    status: str
    owner: str
    permlink: str
    input_uri: str
    input_size: int
    storage_key: str
    download_pct: float = 0.0
    pct: float = 0.0
    retry_count: int = 0
    max_retries: int = 3
    error_message: str | None = None
    assigned_to: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_domain(cls, job: ProcessingJob) -> "JobView":
        return cls(
            id=job.id,
            status=job.status.value,
            owner=job.owner,
            permlink=job.permlink,
            input_uri=job.input.uri,
            input_size=job.input.size_bytes,
            storage_key=job.storage_key,
            download_pct=job.progress.download_pct,
            pct=job.progress.pct,
            retry_count=job.retry_count,
            max_retries=job.max_retries,
            error_message=job.error_message,
            assigned_to=job.assigned_to,
            created_at=job.created_at,
            updated_at=job.updated_at,
            completed_at=job.completed_at,
        )


class EntryStatusResponse(BaseModel):
    success: bool = True
    video: EntryView
    job: JobView | None = None


class EntryListResponse(BaseModel):
    success: bool = True
    videos: list[EntryView] = Field(default_factory=list)
    total: int
    limit: int
    offset: int


class PublicationRequest(BaseModel):
    manual: bool = False


class FailureRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=255)
