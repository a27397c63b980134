"""Cron entry point for the fallback-node retention sweep."""

from __future__ import annotations

import argparse
import asyncio
import sys
from dataclasses import dataclass
from datetime import datetime

from media_intake.config import load_config
from media_intake.eviction.eviction_service import EvictionService
from media_intake.lifecycle import eviction_once
from media_intake.logging import configure_logging
from media_intake.repositories.entry_repository import EntryRepository
from media_intake.repositories.transfer_repository import PendingTransferRepository
from media_intake.storage.storage_engine import StorageUploadEngine
from media_intake.utils.clock import utcnow


@dataclass(slots=True)
class SweepSummary:
    selected: int
    unpinned: int
    failed: int
    bytes_reclaimed: int
    transfers_purged: int
    dry_run: bool


def perform_sweep(*, dry_run: bool, reference_time: datetime | None = None) -> SweepSummary:
    """Run (or preview) one sweep and return summary counters."""
    config = load_config()
    entry_repo = EntryRepository(config.session_factory)
    transfer_repo = PendingTransferRepository(config.session_factory)
    service = EvictionService(
        entry_repo=entry_repo,
        transfer_repo=transfer_repo,
        storage_engine=StorageUploadEngine(config.storage),
        retention_days=config.eviction.retention_days,
    )
    now = reference_time or utcnow()

    if dry_run:
        candidates = entry_repo.list_eviction_candidates(service.cutoff(now))
        expired = transfer_repo.list_expired_unfinalized(now)
        return SweepSummary(
            selected=len(candidates),
            unpinned=0,
            failed=0,
            bytes_reclaimed=sum(entry.metadata.size_bytes for entry in candidates),
            transfers_purged=len(expired),
            dry_run=True,
        )

    report, purged = asyncio.run(eviction_once(eviction_service=service, now=now))
    return SweepSummary(
        selected=report.selected,
        unpinned=report.succeeded,
        failed=report.failed,
        bytes_reclaimed=report.bytes_reclaimed,
        transfers_purged=purged,
        dry_run=False,
    )


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Unpin expired fallback content.")
    parser.add_argument("--dry-run", action="store_true", help="Only report candidates without unpinning.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or [])
    configure_logging()
    try:
        summary = perform_sweep(dry_run=args.dry_run)
    except Exception as exc:
        print(f"eviction failed: {exc}", file=sys.stderr)
        return 2

    if summary.dry_run:
        print(
            f"eviction dry-run, candidates={summary.selected}, bytes={summary.bytes_reclaimed}, "
            f"expired_transfers={summary.transfers_purged}",
            file=sys.stdout,
        )
    else:
        print(
            f"eviction done, unpinned={summary.unpinned}/{summary.selected}, failed={summary.failed}, "
            f"bytes_reclaimed={summary.bytes_reclaimed}, transfers_purged={summary.transfers_purged}",
            file=sys.stdout,
        )
    return 0 if summary.failed == 0 else 1


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
