"""Lifecycle helpers wiring background tasks for FastAPI startup."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable

from .eviction.eviction_service import EvictionReport, EvictionService
from .utils.clock import utcnow

logger = logging.getLogger(__name__)


def next_run_at(now: datetime, run_hour_utc: int) -> datetime:
    """Next occurrence of ``run_hour_utc``:00 strictly after ``now`` (naive UTC)."""
    candidate = now.replace(hour=run_hour_utc % 24, minute=0, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


async def eviction_once(
    *,
    eviction_service: EvictionService,
    now: datetime | None = None,
) -> tuple[EvictionReport, int]:
    """Run one retention sweep plus the expired transfer purge."""

    current = now or utcnow()
    report = await eviction_service.run_once(current)
    purged = eviction_service.purge_expired_transfers(current)
    return report, purged


async def run_eviction_scheduler(
    *,
    eviction_service: EvictionService,
    shutdown_event: asyncio.Event,
    run_hour_utc: int = 2,
    clock: Callable[[], datetime] | None = None,
) -> None:
    """Run the sweep once a day at ``run_hour_utc`` until ``shutdown_event`` is set."""

    tick = clock or utcnow
    try:
        while not shutdown_event.is_set():
            now = tick()
            scheduled = next_run_at(now, run_hour_utc)
            delay = max(0.0, (scheduled - now).total_seconds())
            logger.info("Next eviction sweep scheduled at %s", scheduled.isoformat())
            try:
                await asyncio.wait_for(shutdown_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
            else:
                break
            try:
                report, purged = await eviction_once(eviction_service=eviction_service, now=tick())
            except Exception:  # pragma: no cover
                logger.exception("Eviction sweep failed")
            else:
                logger.info(
                    "Eviction sweep unpinned %s of %s items, purged %s expired transfers",
                    report.succeeded,
                    report.selected,
                    purged,
                )
    except asyncio.CancelledError:  # pragma: no cover - shutdown path
        raise


__all__ = [
    "eviction_once",
    "next_run_at",
    "run_eviction_scheduler",
]
