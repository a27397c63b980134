from datetime import datetime, timedelta
import importlib.util
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from media_intake.db.db_init import init_db
from media_intake.repositories.entry_repository import EntryRepository
from tests.helpers.intake_fakes import FakeStorageEngine, published_entry

PROJECT_ROOT = Path(__file__).resolve().parents[3]
MODULE_PATH = PROJECT_ROOT / "scripts" / "run_eviction.py"
MODULE_SPEC = importlib.util.spec_from_file_location("run_eviction_module", MODULE_PATH)
run_eviction = importlib.util.module_from_spec(MODULE_SPEC)
assert MODULE_SPEC and MODULE_SPEC.loader
sys.modules["run_eviction_module"] = run_eviction
MODULE_SPEC.loader.exec_module(run_eviction)

NOW = datetime(2026, 10, 19, 2, 0)


@pytest.fixture
def seeded_db(tmp_path, monkeypatch) -> EntryRepository:
    url = f"sqlite:///{tmp_path / 'intake.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path / "uploads"))
    engine = create_engine(url, future=True)
    init_db(engine)
    repo = EntryRepository(sessionmaker(bind=engine, expire_on_commit=False))
    published_entry(repo, created_at=NOW - timedelta(days=30), size_bytes=7_000)
    published_entry(repo, created_at=NOW - timedelta(days=1))
    return repo


def test_dry_run_reports_candidates_only(seeded_db, monkeypatch) -> None:
    storage = FakeStorageEngine()
    monkeypatch.setattr(run_eviction, "StorageUploadEngine", lambda config: storage)

    summary = run_eviction.perform_sweep(dry_run=True, reference_time=NOW)

    assert summary.dry_run is True
    assert summary.selected == 1
    assert summary.bytes_reclaimed == 7_000
    assert storage.unpinned == []


def test_sweep_unpins_and_flags(seeded_db, monkeypatch) -> None:
    storage = FakeStorageEngine()
    monkeypatch.setattr(run_eviction, "StorageUploadEngine", lambda config: storage)

    summary = run_eviction.perform_sweep(dry_run=False, reference_time=NOW)

    assert summary.unpinned == 1
    assert summary.failed == 0
    assert len(storage.unpinned) == 1
    assert seeded_db.eviction_totals()["evicted"] == 1


def test_main_returns_error_code_on_failure(monkeypatch, capsys) -> None:
    def boom(*, dry_run: bool):
        raise RuntimeError("db unavailable")

    monkeypatch.setattr(run_eviction, "perform_sweep", boom)

    assert run_eviction.main(["--dry-run"]) == 2
    assert "db unavailable" in capsys.readouterr().err


def test_main_reports_partial_failure(monkeypatch, capsys) -> None:
    summary = run_eviction.SweepSummary(
        selected=2, unpinned=1, failed=1, bytes_reclaimed=10, transfers_purged=0, dry_run=False
    )
    monkeypatch.setattr(run_eviction, "perform_sweep", lambda *, dry_run: summary)

    assert run_eviction.main([]) == 1
    assert "unpinned=1/2" in capsys.readouterr().out
