"""Prometheus metrics exporter without external dependencies."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Mapping

from ..jobs.job_dispatcher import JobDispatcher
from ..repositories.entry_repository import EntryRepository


@dataclass(slots=True)
class MetricsSnapshot:
    entry_totals: Mapping[str, int]
    jobs_by_status: Mapping[str, int]
    jobs_total: int
    job_avg_duration_ms: int
    uptime_seconds: float


class MetricsExporter:
    """Collects entry and job counters and renders them as Prometheus text."""

    def __init__(
        self,
        entry_repo: EntryRepository,
        dispatcher: JobDispatcher,
        started_at: float | None = None,
    ) -> None:
        self._entry_repo = entry_repo
        self._dispatcher = dispatcher
        self._started_at = started_at if started_at is not None else time.monotonic()

    def collect(self) -> str:
        job_stats = self._dispatcher.stats()
        snapshot = MetricsSnapshot(
            entry_totals=self._entry_repo.eviction_totals(),
            jobs_by_status=job_stats.by_status,
            jobs_total=job_stats.total,
            job_avg_duration_ms=job_stats.avg_duration_ms,
            uptime_seconds=max(0.0, time.monotonic() - self._started_at),
        )
        return format_prometheus(snapshot)


def format_prometheus(snapshot: MetricsSnapshot) -> str:
    """Render metrics snapshot into Prometheus text format."""
    totals = snapshot.entry_totals
    lines: list[str] = []

    lines.append("# HELP upload_videos_total Total number of entries by lifecycle bucket.")
    lines.append("# TYPE upload_videos_total counter")
    lines.append(f'upload_videos_total{{status="total"}} {totals.get("total", 0)}')
    lines.append(f'upload_videos_total{{status="published"}} {totals.get("published", 0)}')
    lines.append(f'upload_videos_total{{status="cleaned"}} {totals.get("evicted", 0)}')
    lines.append(f'upload_videos_total{{status="fallback"}} {totals.get("fallback_uploads", 0)}')

    lines.append("# HELP upload_jobs_total Processing jobs per status.")
    lines.append("# TYPE upload_jobs_total counter")
    for status, count in sorted(snapshot.jobs_by_status.items()):
        lines.append(f'upload_jobs_total{{status="{status}"}} {count}')
    lines.append(f'upload_jobs_total{{status="all"}} {snapshot.jobs_total}')

    lines.append("# HELP upload_job_duration_avg_ms Average duration of finished jobs.")
    lines.append("# TYPE upload_job_duration_avg_ms gauge")
    lines.append(f"upload_job_duration_avg_ms {snapshot.job_avg_duration_ms}")

    lines.append("# HELP upload_storage_bytes Declared bytes of stored entries.")
    lines.append("# TYPE upload_storage_bytes gauge")
    lines.append(f'upload_storage_bytes{{type="total"}} {totals.get("total_size", 0)}')
    lines.append(f'upload_storage_bytes{{type="fallback"}} {totals.get("fallback_size", 0)}')
    lines.append(f'upload_storage_bytes{{type="cleaned"}} {totals.get("evicted_bytes", 0)}')

    lines.append("# HELP upload_service_uptime_seconds Service uptime in seconds.")
    lines.append("# TYPE upload_service_uptime_seconds counter")
    lines.append(f"upload_service_uptime_seconds {snapshot.uptime_seconds:.3f}")

    return "\n".join(lines) + "\n"
