"""Retention sweep for content parked on the fallback storage node."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any

import structlog

from ..exceptions import StorageNodeError
from ..repositories.entry_repository import EntryRepository
from ..repositories.transfer_repository import PendingTransferRepository
from ..storage.storage_engine import StorageUploadEngine
from ..utils.clock import utcnow
from ..utils.files import discard_file

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class EvictionDetail:
    entry: str
    action: str
    content_id: str | None = None
    size: int | None = None
    error: str | None = None


@dataclass(slots=True)
class EvictionReport:
    selected: int = 0
    succeeded: int = 0
    failed: int = 0
    bytes_reclaimed: int = 0
    details: list[EvictionDetail] = field(default_factory=list)
    started_at: datetime | None = None
    retention_days: int = 7

    def as_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["started_at"] = self.started_at.isoformat() if self.started_at else None
        return payload


@dataclass(slots=True)
class EvictionService:
    """Unpin published fallback content once the retention window has passed.

    Each candidate is handled on its own: a failed unpin is recorded in the
    report and the sweep moves on. The eligibility flag is only flipped
    after the node confirmed the unpin, and only from false to true.
    """

    entry_repo: EntryRepository
    transfer_repo: PendingTransferRepository
    storage_engine: StorageUploadEngine
    retention_days: int = 7
    enabled: bool = True
    last_run: EvictionReport | None = None

    def cutoff(self, now: datetime) -> datetime:
        return now - timedelta(days=self.retention_days)

    async def run_once(self, now: datetime | None = None) -> EvictionReport:
        current = now or utcnow()
        candidates = self.entry_repo.list_eviction_candidates(self.cutoff(current))
        report = EvictionReport(
            selected=len(candidates),
            started_at=current,
            retention_days=self.retention_days,
        )
        logger.info(
            "eviction.sweep.started",
            candidates=len(candidates),
            retention_days=self.retention_days,
        )

        for entry in candidates:
            key = f"{entry.owner}/{entry.permlink}"
            content = entry.storage
            if content is None:
                report.failed += 1
                report.details.append(EvictionDetail(entry=key, action="error", error="no content id"))
                continue
            try:
                await self.storage_engine.unpin_fallback(content.content_id)
            except StorageNodeError as exc:
                report.failed += 1
                report.details.append(
                    EvictionDetail(entry=key, action="error", content_id=content.content_id, error=str(exc))
                )
                logger.warning(
                    "eviction.item.failed",
                    entry_id=entry.id,
                    content_id=content.content_id,
                    error=str(exc),
                )
                continue

            if self.entry_repo.mark_eviction_eligible(entry.id):
                report.succeeded += 1
                report.bytes_reclaimed += entry.metadata.size_bytes
                report.details.append(
                    EvictionDetail(
                        entry=key,
                        action="cleaned",
                        content_id=content.content_id,
                        size=entry.metadata.size_bytes,
                    )
                )
                logger.info("eviction.item.unpinned", entry_id=entry.id, content_id=content.content_id)
            else:
                report.details.append(
                    EvictionDetail(entry=key, action="skipped", content_id=content.content_id)
                )

        self.last_run = report
        logger.info(
            "eviction.sweep.finished",
            selected=report.selected,
            succeeded=report.succeeded,
            failed=report.failed,
            bytes_reclaimed=report.bytes_reclaimed,
        )
        return report

    def purge_expired_transfers(self, now: datetime | None = None) -> int:
        """Drop upload-first sessions that expired before being finalized."""
        current = now or utcnow()
        removed = 0
        for transfer in self.transfer_repo.list_expired_unfinalized(current):
            discard_file(transfer.local_file)
            if self.transfer_repo.discard(transfer.transfer_token):
                removed += 1
        if removed:
            logger.info("eviction.transfers.purged", count=removed)
        return removed

    def stats(self, now: datetime | None = None) -> dict[str, Any]:
        current = now or utcnow()
        totals = self.entry_repo.eviction_totals()
        eligible = len(self.entry_repo.list_eviction_candidates(self.cutoff(current)))
        return {
            **totals,
            "eligible_for_eviction": eligible,
            "evicted_gb": round(totals["evicted_bytes"] / (1024**3), 2),
            "retention_days": self.retention_days,
            "scheduler_enabled": self.enabled,
            "last_run": self.last_run.as_dict() if self.last_run else None,
        }
