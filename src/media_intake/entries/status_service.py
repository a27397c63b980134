"""Read-side queries over entries and their jobs."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..exceptions import ValidationError
from ..jobs.job_dispatcher import JobDispatcher
from ..repositories.entry_repository import EntryRepository
from .entry_models import Entry, EntryState
from .entries_schemas import EntryListResponse, EntryStatusResponse, EntryView, JobView

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


@dataclass(slots=True)
class StatusService:
    entry_repo: EntryRepository
    dispatcher: JobDispatcher

    def status(self, entry_id: str) -> EntryStatusResponse:
        entry = self.entry_repo.get(entry_id)
        job = self.dispatcher.lookup(entry.job_id)
        return EntryStatusResponse(
            video=EntryView.from_domain(entry),
            job=JobView.from_domain(job) if job is not None else None,
        )

    def list_for_owner(
        self,
        owner: str,
        *,
        state: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> EntryListResponse:
        if not owner:
            raise ValidationError("Owner parameter is required", field="owner")
        try:
            state_filter = EntryState(state) if state else None
        except ValueError as exc:
            raise ValidationError(f"Unknown status '{state}'", field="status") from exc
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        offset = max(0, offset)
        entries, total = self.entry_repo.list_by_owner(
            owner, state=state_filter, limit=limit, offset=offset
        )
        return EntryListResponse(
            videos=[EntryView.from_domain(entry) for entry in entries],
            total=total,
            limit=limit,
            offset=offset,
        )

    def record_publication(self, entry_id: str, *, manual: bool = False) -> Entry:
        """Called by the external publisher once the entry went out (or needs a human)."""
        entry = self.entry_repo.record_publication(entry_id, manual=manual)
        logger.info(
            "entries.published",
            extra={"entry_id": entry_id, "state": entry.state.value, "job_id": entry.job_id},
        )
        return entry

    def record_failure(self, entry_id: str, reason: str) -> Entry:
        """Called when processing gave up on a non-terminal entry."""
        entry = self.entry_repo.mark_failed(entry_id, reason)
        logger.warning(
            "entries.failed",
            extra={"entry_id": entry_id, "reason": reason, "failed_from": entry.stage.failed_from.value},
        )
        return entry
