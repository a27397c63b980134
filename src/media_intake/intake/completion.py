"""Turns a fully received upload into stored content plus one dispatched job."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import structlog

from ..entries.entry_models import Entry
from ..exceptions import NotFoundError, StorageUploadFailedError
from ..jobs.job_dispatcher import JobDispatcher
from ..jobs.job_models import JobInput
from ..repositories.entry_repository import EntryRepository
from ..storage.storage_engine import StorageUploadEngine
from ..utils.files import discard_file
from ..utils.locks import KeyedLocks
from .intake_models import CompletionOutcome, CompletionResult

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class CompletionProcessor:
    """Store the bytes, make sure exactly one job exists, record both.

    Safe to invoke more than once for the same entry: an entry that already
    carries a content id and a job reference is short-circuited, the job is
    looked up before it is created, the active-job index rejects a second
    insert and the final entry update only applies to rows without a job.
    """

    entry_repo: EntryRepository
    storage_engine: StorageUploadEngine
    dispatcher: JobDispatcher
    locks: KeyedLocks = field(default_factory=KeyedLocks)

    async def process(self, entry_id: str, local_file: Path) -> CompletionResult:
        async with self.locks.hold(entry_id):
            return await self._process(entry_id, Path(local_file))

    async def _process(self, entry_id: str, local_file: Path) -> CompletionResult:
        entry = self.entry_repo.get(entry_id)
        if entry.is_processed:
            logger.info(
                "completion.duplicate_suppressed",
                entry_id=entry_id,
                job_id=entry.job_id,
                stage="short_circuit",
            )
            discard_file(local_file)
            return self._result(entry, CompletionOutcome.DUPLICATE_SUPPRESSED)

        if not local_file.is_file():
            logger.warning("completion.file_missing", entry_id=entry_id, path=str(local_file))
            raise NotFoundError(f"Uploaded file not found: {local_file}")

        entry = self.entry_repo.begin_storage(entry_id, local_file)
        logger.info("completion.storage.started", entry_id=entry_id, path=str(local_file))

        try:
            stored = await self.storage_engine.upload(local_file)
        except StorageUploadFailedError as exc:
            logger.error(
                "completion.storage.failed",
                entry_id=entry_id,
                primary_reason=exc.primary_reason,
                fallback_reason=exc.fallback_reason,
            )
            raise

        job_input = JobInput(
            uri=stored.gateway_url,
            size_bytes=entry.metadata.size_bytes or stored.size_bytes,
        )
        outcome = CompletionOutcome.DISPATCHED
        job = self.dispatcher.find_existing(entry.owner, entry.permlink)
        if job is not None:
            outcome = CompletionOutcome.ATTACHED_EXISTING
            logger.info("completion.job.attached", entry_id=entry_id, job_id=job.id)
        else:
            job, created = self.dispatcher.create_or_get(entry.owner, entry.permlink, job_input)
            if not created:
                outcome = CompletionOutcome.ATTACHED_EXISTING

        committed = self.entry_repo.commit_dispatch(entry_id, stored.stored, job.id)
        if committed.job_id != job.id:
            logger.warning(
                "completion.duplicate_suppressed",
                entry_id=entry_id,
                job_id=committed.job_id,
                discarded_job_id=job.id,
                stage="commit",
            )
            outcome = CompletionOutcome.DUPLICATE_SUPPRESSED

        discard_file(local_file)
        logger.info(
            "completion.dispatched",
            entry_id=entry_id,
            job_id=committed.job_id,
            content_id=committed.storage.content_id if committed.storage else None,
            origin=stored.origin.value,
            outcome=outcome.value,
        )
        return self._result(committed, outcome)

    def _result(self, entry: Entry, outcome: CompletionOutcome) -> CompletionResult:
        storage = entry.storage
        return CompletionResult(
            outcome=outcome,
            entry_id=entry.id,
            job_id=entry.job_id,
            content_id=storage.content_id if storage else None,
            origin=storage.origin.value if storage else None,
            gateway_url=(
                self.storage_engine.gateway_url(storage.content_id, storage.origin)
                if storage
                else None
            ),
        )

