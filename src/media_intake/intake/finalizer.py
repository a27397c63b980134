"""Turns a completed upload-first transfer into an entry."""

from __future__ import annotations

import uuid
from dataclasses import dataclass

import structlog

from ..entries.entry_models import EntryState
from ..exceptions import AlreadyFinalizedError, NotFoundError, UploadNotReadyError
from ..repositories.entry_repository import EntryRepository
from ..repositories.transfer_repository import PendingTransfer, PendingTransferRepository
from ..utils.clock import utcnow
from .completion import CompletionProcessor
from .intake_models import CompletionOutcome, CompletionResult, DeclaredUpload, UserMetadata
from .validation import IntakeValidator

logger = structlog.get_logger(__name__)

RESUMABLE_STATES = frozenset({EntryState.CREATED, EntryState.STORAGE_PENDING})


@dataclass(slots=True)
class Finalizer:
    transfer_repo: PendingTransferRepository
    entry_repo: EntryRepository
    validator: IntakeValidator
    completion: CompletionProcessor
    default_thumbnail: str = ""

    async def finalize(self, transfer_token: str, metadata: UserMetadata) -> CompletionResult:
        """Create the entry for a received transfer and run completion on it.

        Nothing is written when the transfer is unknown, expired, still
        receiving bytes or already finalized. The transfer is claimed with a
        conditional ``mark_finalized`` before the entry is inserted, so of two
        racing calls only the winner creates an entry.

        A finalized transfer whose entry never got past storage is resumed
        instead of rejected; the metadata of the repeated call is ignored.
        """
        try:
            transfer = self.transfer_repo.get(transfer_token)
        except NotFoundError:
            logger.warning("finalize.rejected", reason="not_found")
            raise
        if transfer.finalized:
            return await self.resume(transfer)
        if transfer.is_expired(utcnow()):
            logger.warning("finalize.rejected", reason="expired", owner=transfer.owner)
            raise NotFoundError("Upload session not found or expired")
        if not transfer.transfer_complete or transfer.local_file is None:
            logger.info("finalize.rejected", reason="upload_not_ready", owner=transfer.owner)
            raise UploadNotReadyError("Upload not yet completed. Please wait for upload to finish.")

        declared = DeclaredUpload(
            size_bytes=transfer.size_bytes,
            duration_seconds=transfer.duration_seconds,
            original_filename=transfer.original_filename,
        )
        entry_metadata = self.validator.build_metadata(
            declared, metadata, default_thumbnail=self.default_thumbnail
        )

        entry_id = uuid.uuid4().hex
        try:
            self.transfer_repo.mark_finalized(transfer_token, entry_id)
        except AlreadyFinalizedError:
            logger.warning("finalize.race_lost", owner=transfer.owner)
            raise
        entry = self.entry_repo.create(
            owner=transfer.owner,
            metadata=entry_metadata,
            local_file=transfer.local_file,
            entry_id=entry_id,
        )
        logger.info(
            "finalize.entry_created",
            entry_id=entry.id,
            owner=entry.owner,
            permlink=entry.permlink,
        )
        return await self.completion.process(entry.id, transfer.local_file)

    async def resume(self, transfer: PendingTransfer) -> CompletionResult:
        """Re-run completion for a finalized transfer whose storage step failed.

        Raises :class:`AlreadyFinalizedError` when there is nothing left to do:
        the entry is processed, terminal, not written yet, or another caller
        finished it while this one waited for the entry lock.
        """
        if transfer.entry_id is None or transfer.local_file is None:
            raise AlreadyFinalizedError("Upload already finalized")
        try:
            entry = self.entry_repo.get(transfer.entry_id)
        except NotFoundError:
            logger.warning("finalize.rejected", reason="entry_pending", entry_id=transfer.entry_id)
            raise AlreadyFinalizedError("Upload already finalized") from None
        if entry.is_processed or entry.state not in RESUMABLE_STATES:
            logger.warning(
                "finalize.rejected",
                reason="already_finalized",
                entry_id=entry.id,
                state=entry.state.value,
            )
            raise AlreadyFinalizedError("Upload already finalized")

        logger.info("finalize.resumed", entry_id=entry.id, state=entry.state.value)
        result = await self.completion.process(entry.id, transfer.local_file)
        if result.outcome is CompletionOutcome.DUPLICATE_SUPPRESSED:
            raise AlreadyFinalizedError("Upload already finalized")
        return result
