"""Persistence layer for processing_job records."""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from ..db.db_models import ACTIVE_JOB_STATUSES, ProcessingJobModel
from ..exceptions import (
    IntegrityConstraintViolation,
    JobAlreadyExistsError,
    NotFoundError,
    handle_sqlalchemy_errors,
)
from ..jobs.job_models import JobInput, JobProgress, JobStatus, ProcessingJob
from ..utils.clock import utcnow


class JobRepository:
    """Insert and mutate processing_job rows."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def insert(
        self,
        *,
        owner: str,
        permlink: str,
        job_input: JobInput,
        max_retries: int,
    ) -> ProcessingJob:
        """Insert a queued job; the active-key index rejects a second one."""
        now = utcnow()
        model = ProcessingJobModel(
            id=str(uuid.uuid4()),
            owner=owner,
            permlink=permlink,
            status=JobStatus.QUEUED.value,
            input_uri=job_input.uri,
            input_size=job_input.size_bytes,
            storage_key=f"{owner}/{permlink}/video",
            download_pct=0.0,
            pct=0.0,
            retry_count=0,
            max_retries=max_retries,
            created_at=now,
            updated_at=now,
        )
        try:
            with self._session_factory() as session:
                with handle_sqlalchemy_errors(entity="processing_job"):
                    session.add(model)
                    session.commit()
        except IntegrityConstraintViolation as exc:
            raise JobAlreadyExistsError(
                f"An active job already exists for {owner}/{permlink}"
            ) from exc
        return self._to_domain(model)

    def get(self, job_id: str) -> ProcessingJob:
        with self._session_factory() as session:
            model = session.get(ProcessingJobModel, job_id)
            if model is None:
                raise NotFoundError(f"Job '{job_id}' not found")
            return self._to_domain(model)

    def find_by_key(self, owner: str, permlink: str) -> ProcessingJob | None:
        """Newest job for the key, preferring queued/running ones."""
        active_first = case((ProcessingJobModel.status.in_(ACTIVE_JOB_STATUSES), 0), else_=1)
        with self._session_factory() as session:
            model = session.scalars(
                select(ProcessingJobModel)
                .where(
                    ProcessingJobModel.owner == owner,
                    ProcessingJobModel.permlink == permlink,
                )
                .order_by(active_first, ProcessingJobModel.created_at.desc())
                .limit(1)
            ).first()
            return self._to_domain(model) if model is not None else None

    def count_by_key(self, owner: str, permlink: str) -> int:
        with self._session_factory() as session:
            total = session.scalar(
                select(func.count())
                .select_from(ProcessingJobModel)
                .where(
                    ProcessingJobModel.owner == owner,
                    ProcessingJobModel.permlink == permlink,
                )
            )
            return int(total or 0)

    def save_status(
        self,
        job_id: str,
        *,
        status: JobStatus,
        reset_assignment: bool = False,
        increment_retry: bool = False,
    ) -> ProcessingJob:
        with self._session_factory() as session:
            model = session.get(ProcessingJobModel, job_id)
            if model is None:
                raise NotFoundError(f"Job '{job_id}' not found")
            key = f"{model.owner}/{model.permlink}"
            now = utcnow()
            model.status = status.value
            model.updated_at = now
            if status.is_terminal:
                model.completed_at = now
            if reset_assignment:
                model.assigned_to = None
                model.completed_at = None
                model.error_message = None
                model.download_pct = 0.0
                model.pct = 0.0
            if increment_retry:
                model.retry_count += 1
            try:
                with handle_sqlalchemy_errors(entity="processing_job"):
                    session.commit()
            except IntegrityConstraintViolation as exc:
                raise JobAlreadyExistsError(
                    f"Another active job exists for {key}"
                ) from exc
            return self._to_domain(model)

    def status_counts(self) -> list[tuple[str, int, float | None]]:
        """Rows of (status, count, average duration in seconds)."""
        duration = func.avg(
            (func.julianday(ProcessingJobModel.completed_at) - func.julianday(ProcessingJobModel.created_at))
            * 86_400.0
        )
        with self._session_factory() as session:
            if session.get_bind().dialect.name != "sqlite":
                duration = func.avg(
                    func.extract(
                        "epoch", ProcessingJobModel.completed_at - ProcessingJobModel.created_at
                    )
                )
            rows = session.execute(
                select(ProcessingJobModel.status, func.count(), duration).group_by(
                    ProcessingJobModel.status
                )
            ).all()
            return [(row[0], int(row[1]), row[2]) for row in rows]

    def list_stale(self, updated_before: datetime) -> list[ProcessingJob]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(ProcessingJobModel).where(
                    ProcessingJobModel.status == JobStatus.RUNNING.value,
                    ProcessingJobModel.updated_at < updated_before,
                )
            ).all()
            return [self._to_domain(row) for row in rows]

    @staticmethod
    def _to_domain(model: ProcessingJobModel) -> ProcessingJob:
        return ProcessingJob(
            id=model.id,
            owner=model.owner,
            permlink=model.permlink,
            status=JobStatus(model.status),
            input=JobInput(uri=model.input_uri, size_bytes=model.input_size),
            storage_key=model.storage_key,
            progress=JobProgress(download_pct=model.download_pct, pct=model.pct),
            retry_count=model.retry_count,
            max_retries=model.max_retries,
            error_message=model.error_message,
            assigned_to=model.assigned_to,
            created_at=model.created_at,
            updated_at=model.updated_at,
            completed_at=model.completed_at,
        )
