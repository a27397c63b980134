from __future__ import annotations

from pathlib import Path
from typing import Callable, Iterator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from media_intake.config import IntakeLimits
from media_intake.db.db_init import init_db
from media_intake.eviction.eviction_service import EvictionService
from media_intake.intake.completion import CompletionProcessor
from media_intake.intake.finalizer import Finalizer
from media_intake.intake.intake_service import IntakeService
from media_intake.intake.thumbnails import ThumbnailService
from media_intake.intake.validation import IntakeValidator
from media_intake.jobs.job_dispatcher import JobDispatcher
from media_intake.repositories.entry_repository import EntryRepository
from media_intake.repositories.job_repository import JobRepository
from media_intake.repositories.transfer_repository import PendingTransferRepository
from tests.helpers.intake_fakes import TRANSFER_ENDPOINT, FakeStorageEngine


@pytest.fixture
def session_factory() -> Iterator[sessionmaker[Session]]:
    engine = create_engine("sqlite:///:memory:", future=True)
    init_db(engine)
    yield sessionmaker(bind=engine, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def entry_repo(session_factory) -> EntryRepository:
    return EntryRepository(session_factory)


@pytest.fixture
def transfer_repo(session_factory) -> PendingTransferRepository:
    return PendingTransferRepository(session_factory)


@pytest.fixture
def job_repo(session_factory) -> JobRepository:
    return JobRepository(session_factory)


@pytest.fixture
def dispatcher(job_repo) -> JobDispatcher:
    return JobDispatcher(job_repo, max_retries=3)


@pytest.fixture
def validator() -> IntakeValidator:
    return IntakeValidator(IntakeLimits())


@pytest.fixture
def storage() -> FakeStorageEngine:
    return FakeStorageEngine()


@pytest.fixture
def completion(entry_repo, storage, dispatcher) -> CompletionProcessor:
    return CompletionProcessor(entry_repo=entry_repo, storage_engine=storage, dispatcher=dispatcher)


@pytest.fixture
def finalizer(transfer_repo, entry_repo, validator, completion) -> Finalizer:
    return Finalizer(
        transfer_repo=transfer_repo,
        entry_repo=entry_repo,
        validator=validator,
        completion=completion,
    )


@pytest.fixture
def thumbnails(storage, entry_repo) -> ThumbnailService:
    return ThumbnailService(storage_engine=storage, entry_repo=entry_repo)


@pytest.fixture
def intake_service(
    entry_repo, transfer_repo, validator, completion, finalizer, thumbnails
) -> IntakeService:
    return IntakeService(
        entry_repo=entry_repo,
        transfer_repo=transfer_repo,
        validator=validator,
        completion=completion,
        finalizer=finalizer,
        thumbnails=thumbnails,
        transfer_endpoint=TRANSFER_ENDPOINT,
    )


@pytest.fixture
def eviction_service(entry_repo, transfer_repo, storage) -> EvictionService:
    return EvictionService(
        entry_repo=entry_repo,
        transfer_repo=transfer_repo,
        storage_engine=storage,
        retention_days=7,
    )


@pytest.fixture
def make_upload(tmp_path: Path) -> Callable[..., Path]:
    """Write a fake received file into the upload dir and return its path."""

    def _make(name: str = "upload.bin", size: int = 2048) -> Path:
        path = tmp_path / name
        path.write_bytes(b"\0" * size)
        return path

    return _make
