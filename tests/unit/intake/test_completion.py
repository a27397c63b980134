from __future__ import annotations

import asyncio

import pytest

from media_intake.entries.entry_models import EntryState, StorageOrigin
from media_intake.exceptions import NotFoundError, StorageUploadFailedError
from media_intake.intake.completion import CompletionProcessor
from media_intake.intake.intake_models import CompletionOutcome
from media_intake.jobs.job_models import JobInput
from media_intake.utils.locks import KeyedLocks
from tests.helpers.intake_fakes import FakeStorageEngine, entry_metadata


@pytest.fixture
def entry(entry_repo):
    return entry_repo.create(owner="alice", metadata=entry_metadata())


@pytest.mark.asyncio
async def test_process_stores_and_dispatches(completion, entry, entry_repo, dispatcher, storage, make_upload):
    upload = make_upload()

    result = await completion.process(entry.id, upload)

    assert result.outcome is CompletionOutcome.DISPATCHED
    assert result.existing is False
    assert result.origin == "primary"
    assert result.gateway_url == f"https://primary.gw/ipfs/{result.content_id}"

    stored = entry_repo.get(entry.id)
    assert stored.state is EntryState.DISPATCHED
    assert stored.job_id == result.job_id
    assert stored.storage.content_id == result.content_id

    job = dispatcher.get(result.job_id)
    assert job.input.uri == result.gateway_url
    assert job.input.size_bytes == 5_000_000
    assert job.storage_key == f"alice/{entry.permlink}/video"
    assert not upload.exists()
    assert storage.uploads == [upload]


@pytest.mark.asyncio
async def test_repeat_notification_is_suppressed(completion, entry, storage, dispatcher, make_upload):
    first = await completion.process(entry.id, make_upload("first.bin"))
    duplicate = make_upload("second.bin")

    second = await completion.process(entry.id, duplicate)

    assert second.outcome is CompletionOutcome.DUPLICATE_SUPPRESSED
    assert second.existing is True
    assert second.job_id == first.job_id
    assert not duplicate.exists()
    assert len(storage.uploads) == 1
    assert dispatcher.job_repo.count_by_key("alice", entry.permlink) == 1


@pytest.mark.asyncio
async def test_missing_file_leaves_entry_untouched(completion, entry, entry_repo, tmp_path):
    with pytest.raises(NotFoundError):
        await completion.process(entry.id, tmp_path / "never-arrived.bin")

    assert entry_repo.get(entry.id).state is EntryState.CREATED


@pytest.mark.asyncio
async def test_storage_failure_keeps_file_and_creates_no_job(
    entry_repo, dispatcher, entry, make_upload
):
    processor = CompletionProcessor(
        entry_repo=entry_repo,
        storage_engine=FakeStorageEngine(fail_uploads=True),
        dispatcher=dispatcher,
    )
    upload = make_upload()

    with pytest.raises(StorageUploadFailedError):
        await processor.process(entry.id, upload)

    stored = entry_repo.get(entry.id)
    assert stored.state is EntryState.STORAGE_PENDING
    assert stored.storage is None
    assert stored.job_id is None
    assert upload.exists()
    assert dispatcher.find_existing("alice", entry.permlink) is None


@pytest.mark.asyncio
async def test_retry_after_storage_failure(entry_repo, dispatcher, entry, make_upload):
    engine = FakeStorageEngine(fail_uploads=True)
    processor = CompletionProcessor(entry_repo=entry_repo, storage_engine=engine, dispatcher=dispatcher)
    upload = make_upload()
    with pytest.raises(StorageUploadFailedError):
        await processor.process(entry.id, upload)

    engine.fail_uploads = False
    result = await processor.process(entry.id, upload)

    assert result.outcome is CompletionOutcome.DISPATCHED
    assert entry_repo.get(entry.id).state is EntryState.DISPATCHED


@pytest.mark.asyncio
async def test_existing_job_is_attached(completion, entry, dispatcher, make_upload):
    job = dispatcher.create(
        "alice", entry.permlink, JobInput(uri="https://primary.gw/ipfs/QmOld", size_bytes=1)
    )

    result = await completion.process(entry.id, make_upload())

    assert result.outcome is CompletionOutcome.ATTACHED_EXISTING
    assert result.job_id == job.id
    assert dispatcher.job_repo.count_by_key("alice", entry.permlink) == 1


@pytest.mark.asyncio
async def test_fallback_origin_is_recorded(entry_repo, dispatcher, entry, make_upload):
    processor = CompletionProcessor(
        entry_repo=entry_repo,
        storage_engine=FakeStorageEngine(origin=StorageOrigin.FALLBACK),
        dispatcher=dispatcher,
    )

    result = await processor.process(entry.id, make_upload())

    assert result.origin == "fallback"
    assert result.gateway_url.startswith("https://fallback.gw/ipfs/")
    assert entry_repo.get(entry.id).storage.origin is StorageOrigin.FALLBACK


@pytest.mark.asyncio
async def test_concurrent_completions_in_one_process(completion, entry, dispatcher, storage, make_upload):
    results = await asyncio.gather(
        completion.process(entry.id, make_upload("a.bin")),
        completion.process(entry.id, make_upload("b.bin")),
    )

    outcomes = sorted(result.outcome.value for result in results)
    assert outcomes == ["dispatched", "duplicate_suppressed"]
    assert len(storage.uploads) == 1
    assert dispatcher.job_repo.count_by_key("alice", entry.permlink) == 1


@pytest.mark.asyncio
async def test_concurrent_completions_without_shared_lock(entry_repo, dispatcher, storage, entry, make_upload):
    first = CompletionProcessor(
        entry_repo=entry_repo, storage_engine=storage, dispatcher=dispatcher, locks=KeyedLocks()
    )
    second = CompletionProcessor(
        entry_repo=entry_repo, storage_engine=storage, dispatcher=dispatcher, locks=KeyedLocks()
    )

    results = await asyncio.gather(
        first.process(entry.id, make_upload("a.bin")),
        second.process(entry.id, make_upload("b.bin")),
    )

    assert results[0].job_id == results[1].job_id
    assert dispatcher.job_repo.count_by_key("alice", entry.permlink) == 1
    assert entry_repo.get(entry.id).job_id == results[0].job_id
