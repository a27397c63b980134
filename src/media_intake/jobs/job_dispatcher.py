"""Creates and manages processing jobs for the external encoder queue."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from ..exceptions import JobAlreadyExistsError, JobStateError, NotFoundError
from ..repositories.job_repository import JobRepository
from ..utils.clock import utcnow
from .job_models import JobInput, JobStats, JobStatus, ProcessingJob

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class JobDispatcher:
    """Job creation keyed by (owner, permlink).

    ``create`` is a plain insert. Uniqueness among queued/running jobs is
    enforced by a partial unique index, so a racing second insert surfaces as
    :class:`JobAlreadyExistsError`; ``create_or_get`` turns that into
    "attach the job that won".
    """

    job_repo: JobRepository
    max_retries: int = 3
    log: logging.Logger = field(default_factory=lambda: logger)

    def find_existing(self, owner: str, permlink: str) -> ProcessingJob | None:
        return self.job_repo.find_by_key(owner, permlink)

    def create(self, owner: str, permlink: str, job_input: JobInput) -> ProcessingJob:
        job = self.job_repo.insert(
            owner=owner,
            permlink=permlink,
            job_input=job_input,
            max_retries=self.max_retries,
        )
        self.log.info(
            "jobs.created",
            extra={
                "job_id": job.id,
                "owner": owner,
                "permlink": permlink,
                "input_uri": job_input.uri,
                "input_size": job_input.size_bytes,
            },
        )
        return job

    def create_or_get(
        self, owner: str, permlink: str, job_input: JobInput
    ) -> tuple[ProcessingJob, bool]:
        """Return ``(job, created)``; ``created`` is False when another writer won."""
        try:
            return self.create(owner, permlink, job_input), True
        except JobAlreadyExistsError:
            existing = self.job_repo.find_by_key(owner, permlink)
            if existing is None:
                raise
            self.log.warning(
                "jobs.create.race_lost",
                extra={"owner": owner, "permlink": permlink, "job_id": existing.id},
            )
            return existing, False

    def get(self, job_id: str) -> ProcessingJob:
        return self.job_repo.get(job_id)

    def retry(self, job_id: str) -> ProcessingJob:
        job = self.job_repo.get(job_id)
        if job.status is not JobStatus.FAILED:
            raise JobStateError(f"Job {job_id} is not in failed status")
        if not job.can_retry():
            raise JobStateError(f"Job {job_id} has exceeded maximum retries")
        updated = self.job_repo.save_status(
            job_id,
            status=JobStatus.QUEUED,
            reset_assignment=True,
            increment_retry=True,
        )
        self.log.info(
            "jobs.retried",
            extra={"job_id": job_id, "attempt": updated.retry_count},
        )
        return updated

    def cancel(self, job_id: str) -> ProcessingJob:
        job = self.job_repo.get(job_id)
        if job.status.is_terminal:
            raise JobStateError(f"Job {job_id} is already complete")
        updated = self.job_repo.save_status(job_id, status=JobStatus.CANCELLED)
        self.log.info("jobs.cancelled", extra={"job_id": job_id})
        return updated

    def stats(self) -> JobStats:
        by_status: dict[str, int] = {}
        total = 0
        weighted_seconds = 0.0
        finished = 0
        for status, count, avg_seconds in self.job_repo.status_counts():
            by_status[status] = count
            total += count
            if avg_seconds is not None and status in (
                JobStatus.COMPLETED.value,
                JobStatus.FAILED.value,
            ):
                weighted_seconds += float(avg_seconds) * count
                finished += count
        avg_ms = round(weighted_seconds / finished * 1000) if finished else 0
        return JobStats(total=total, by_status=by_status, avg_duration_ms=avg_ms)

    def find_stale(self, stale_minutes: int = 30, *, now: datetime | None = None) -> list[ProcessingJob]:
        reference = (now or utcnow()) - timedelta(minutes=stale_minutes)
        return self.job_repo.list_stale(reference)

    def lookup(self, job_id: str | None) -> ProcessingJob | None:
        """Fetch a referenced job, tolerating references the queue has since dropped."""
        if job_id is None:
            return None
        try:
            return self.job_repo.get(job_id)
        except NotFoundError:
            self.log.warning("jobs.reference.missing", extra={"job_id": job_id})
            return None
