"""SQLAlchemy ORM models."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, Float, Index, Integer, String, Text, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ..utils.clock import utcnow

ACTIVE_JOB_STATUSES = ("queued", "running")
_ACTIVE_JOB_PREDICATE = "status IN ('queued', 'running')"


class Base(DeclarativeBase):
    """Base declarative class."""


class EntryModel(Base):
    __tablename__ = "entry"
    __table_args__ = (
        Index("ix_entry_owner_created", "owner", "created_at"),
        Index("ix_entry_eviction", "origin", "state", "eviction_eligible"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    owner: Mapped[str] = mapped_column(String(50), nullable=False)
    permlink: Mapped[str] = mapped_column(String(8), nullable=False, unique=True)

    title: Mapped[str] = mapped_column(String(250), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    tags: Mapped[str] = mapped_column(Text, nullable=False, default="")
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)
    duration_seconds: Mapped[float] = mapped_column(Float, nullable=False)
    original_filename: Mapped[str] = mapped_column(String(255), nullable=False)
    thumbnail: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    community: Mapped[str | None] = mapped_column(String(50))
    hive: Mapped[str | None] = mapped_column(String(32))
    language: Mapped[str] = mapped_column(String(5), nullable=False, default="en")
    category: Mapped[str] = mapped_column(String(32), nullable=False, default="general")
    decline_rewards: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reward_powerup: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    vote_percent: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    beneficiaries: Mapped[str] = mapped_column(Text, nullable=False, default="[]")

    state: Mapped[str] = mapped_column(String(32), nullable=False, default="created", index=True)
    failure_reason: Mapped[str | None] = mapped_column(String(255))
    failed_from: Mapped[str | None] = mapped_column(String(32))
    content_id: Mapped[str | None] = mapped_column(String(128))
    origin: Mapped[str | None] = mapped_column(String(16))
    local_file: Mapped[str | None] = mapped_column(String(1024))
    job_id: Mapped[str | None] = mapped_column(String(64), index=True)
    eviction_eligible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class PendingTransferModel(Base):
    __tablename__ = "pending_transfer"
    __table_args__ = (
        Index("ix_pending_transfer_owner_created", "owner", "created_at"),
        Index("ix_pending_transfer_state", "transfer_complete", "finalized"),
    )

    transfer_token: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner: Mapped[str] = mapped_column(String(50), nullable=False)
    original_filename: Mapped[str] = mapped_column(String(255), nullable=False)
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)
    duration_seconds: Mapped[float] = mapped_column(Float, nullable=False)
    transfer_complete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    local_file: Mapped[str | None] = mapped_column(String(1024))
    finalized: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    entry_id: Mapped[str | None] = mapped_column(String(32), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)


class ProcessingJobModel(Base):
    __tablename__ = "processing_job"
    __table_args__ = (
        Index(
            "uq_processing_job_active_key",
            "owner",
            "permlink",
            unique=True,
            sqlite_where=text(_ACTIVE_JOB_PREDICATE),
            postgresql_where=text(_ACTIVE_JOB_PREDICATE),
        ),
        Index("ix_processing_job_key", "owner", "permlink"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner: Mapped[str] = mapped_column(String(50), nullable=False)
    permlink: Mapped[str] = mapped_column(String(8), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="queued", index=True)
    input_uri: Mapped[str] = mapped_column(String(1024), nullable=False)
    input_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    storage_key: Mapped[str] = mapped_column(String(128), nullable=False)
    download_pct: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    pct: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_retries: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    error_message: Mapped[str | None] = mapped_column(Text)
    assigned_to: Mapped[str | None] = mapped_column(String(128))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime)
