"""End-to-end intake runs against SQLite with a fake storage engine."""

from __future__ import annotations

import pytest

from media_intake.entries.entry_models import EntryState
from media_intake.exceptions import AlreadyFinalizedError
from media_intake.intake.intake_models import CompletionNotification, CompletionOutcome
from tests.helpers.intake_fakes import declared_upload, user_metadata


@pytest.mark.asyncio
async def test_upload_first_flow_dispatches_once(
    intake_service, entry_repo, dispatcher, storage, make_upload
) -> None:
    target = intake_service.begin_upload_first("alice", 5_000_000, 12.0, "clip.mp4")
    received = make_upload("tus-abc")

    recorded = await intake_service.handle_notification(
        CompletionNotification(
            transfer_id="tus-abc",
            local_file=received,
            metadata={"upload_id": target.transfer_token},
        )
    )
    assert recorded.outcome is CompletionOutcome.TRANSFER_RECORDED

    result = await intake_service.finalize(
        target.transfer_token, user_metadata(title="T", description="D", tags=[])
    )

    entry = entry_repo.get(result.entry_id)
    assert entry.state is EntryState.DISPATCHED
    assert entry.storage is not None
    assert entry.job_id == result.job_id
    assert dispatcher.job_repo.count_by_key("alice", entry.permlink) == 1
    assert dispatcher.get(entry.job_id).input.size_bytes == 5_000_000
    assert not received.exists()

    with pytest.raises(AlreadyFinalizedError):
        await intake_service.finalize(target.transfer_token, user_metadata(title="T", description="D"))
    assert entry_repo.list_by_owner("alice")[1] == 1
    assert len(storage.uploads) == 1


@pytest.mark.asyncio
async def test_metadata_first_duplicate_notification(
    intake_service, entry_repo, dispatcher, storage, make_upload
) -> None:
    target = intake_service.begin_metadata_first("alice", declared_upload(), user_metadata())
    first_file = make_upload("first.bin")
    second_file = make_upload("second.bin")

    first = await intake_service.handle_notification(
        CompletionNotification(transfer_id="t1", local_file=first_file, metadata=target.metadata)
    )
    second = await intake_service.handle_notification(
        CompletionNotification(transfer_id="t1", local_file=second_file, metadata=target.metadata)
    )

    assert first.outcome is CompletionOutcome.DISPATCHED
    assert second.outcome is CompletionOutcome.DUPLICATE_SUPPRESSED
    assert second.job_id == first.job_id
    assert not second_file.exists()
    assert len(storage.uploads) == 1
    assert dispatcher.job_repo.count_by_key("alice", target.permlink) == 1
    entry = entry_repo.get(target.entry_id)
    assert entry.state is EntryState.DISPATCHED
    assert entry.job_id == first.job_id
