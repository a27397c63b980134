"""Intake coordination for the metadata-first and upload-first flows."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from pathlib import Path

from ..exceptions import AlreadyFinalizedError, NotFoundError, ValidationError
from ..repositories.entry_repository import EntryRepository
from ..repositories.transfer_repository import PendingTransferRepository
from ..utils.files import discard_file
from .completion import CompletionProcessor
from .finalizer import Finalizer
from .intake_models import (
    CompletionNotification,
    CompletionOutcome,
    CompletionResult,
    DeclaredUpload,
    TransferTarget,
    UserMetadata,
)
from .thumbnails import ThumbnailImage, ThumbnailService
from .validation import IntakeValidator

logger = logging.getLogger(__name__)

ENTRY_KEYS = frozenset({"video_id", "owner", "permlink"})


@dataclass(slots=True)
class IntakeService:
    """Front door for both intake flows and the transfer-completion hook."""

    entry_repo: EntryRepository
    transfer_repo: PendingTransferRepository
    validator: IntakeValidator
    completion: CompletionProcessor
    finalizer: Finalizer
    thumbnails: ThumbnailService
    transfer_endpoint: str
    pending_ttl_seconds: int = 3600
    default_thumbnail: str = ""

    def begin_metadata_first(
        self,
        owner: str,
        declared: DeclaredUpload,
        metadata: UserMetadata,
        *,
        transfer_endpoint: str | None = None,
    ) -> TransferTarget:
        """Create the entry up front and return where to send the bytes."""
        self.validator.validate_owner(owner)
        entry_metadata = self.validator.build_metadata(
            declared, metadata, default_thumbnail=self.default_thumbnail
        )
        entry = self.entry_repo.create(owner=owner, metadata=entry_metadata)
        logger.info(
            "intake.metadata_first.prepared",
            extra={"entry_id": entry.id, "owner": owner, "permlink": entry.permlink},
        )
        return TransferTarget(
            endpoint=transfer_endpoint or self.transfer_endpoint,
            metadata={"video_id": entry.id, "owner": owner, "permlink": entry.permlink},
            entry_id=entry.id,
            owner=owner,
            permlink=entry.permlink,
        )

    async def prepare(
        self,
        owner: str,
        declared: DeclaredUpload,
        metadata: UserMetadata,
        *,
        thumbnail: ThumbnailImage | None = None,
        transfer_endpoint: str | None = None,
    ) -> TransferTarget:
        """Metadata-first with an optional thumbnail image.

        The metadata is validated before the image is pinned, so a rejected
        request leaves nothing behind on the storage nodes.
        """
        if thumbnail is not None:
            self.validator.validate_owner(owner)
            self.validator.build_metadata(declared, metadata)
            metadata = replace(metadata, thumbnail=await self.thumbnails.store(thumbnail))
        return self.begin_metadata_first(
            owner, declared, metadata, transfer_endpoint=transfer_endpoint
        )

    def begin_upload_first(
        self,
        owner: str,
        declared_size: int,
        declared_duration: float,
        original_filename: str,
        *,
        transfer_endpoint: str | None = None,
        now: datetime | None = None,
    ) -> TransferTarget:
        """Open a pending transfer; the entry is created on finalize."""
        self.validator.validate_owner(owner)
        declared = self.validator.validate_declared(
            DeclaredUpload(
                size_bytes=declared_size,
                duration_seconds=declared_duration,
                original_filename=original_filename,
            )
        )
        transfer = self.transfer_repo.create(
            owner=owner,
            original_filename=declared.original_filename,
            size_bytes=declared.size_bytes,
            duration_seconds=declared.duration_seconds,
            ttl=timedelta(seconds=self.pending_ttl_seconds),
            now=now,
        )
        logger.info(
            "intake.upload_first.initialized",
            extra={"owner": owner, "expires_at": transfer.expires_at.isoformat()},
        )
        return TransferTarget(
            endpoint=transfer_endpoint or self.transfer_endpoint,
            metadata={"upload_id": transfer.transfer_token},
            owner=owner,
            transfer_token=transfer.transfer_token,
        )

    async def record_transfer_complete(self, transfer_token: str, local_file: Path) -> CompletionResult:
        """Note that the bytes of an upload-first transfer have arrived.

        A redelivery for a finalized transfer whose entry is still waiting on
        storage re-runs completion with the recorded file.
        """
        transfer = self.transfer_repo.get(transfer_token)
        if not transfer.finalized:
            try:
                self.transfer_repo.mark_transfer_complete(transfer_token, local_file)
            except AlreadyFinalizedError:
                transfer = self.transfer_repo.get(transfer_token)
            else:
                logger.info(
                    "intake.transfer.complete",
                    extra={"owner": transfer.owner, "path": str(local_file)},
                )
                return CompletionResult(outcome=CompletionOutcome.TRANSFER_RECORDED)

        if transfer.local_file is not None and Path(local_file) == transfer.local_file:
            try:
                return await self.finalizer.resume(transfer)
            except AlreadyFinalizedError:
                logger.debug(
                    "intake.transfer.nothing_to_resume",
                    extra={"entry_id": transfer.entry_id},
                )

        logger.info(
            "intake.transfer.duplicate",
            extra={"entry_id": transfer.entry_id, "path": str(local_file)},
        )
        # an unprocessed entry still owns the file recorded on the transfer
        if transfer.local_file is None or Path(local_file) != transfer.local_file:
            discard_file(Path(local_file))
        elif transfer.entry_id is not None and self._entry_processed(transfer.entry_id):
            discard_file(Path(local_file))
        return CompletionResult(
            outcome=CompletionOutcome.DUPLICATE_SUPPRESSED,
            entry_id=transfer.entry_id,
        )

    async def finalize(self, transfer_token: str, metadata: UserMetadata) -> CompletionResult:
        return await self.finalizer.finalize(transfer_token, metadata)

    async def handle_notification(self, notification: CompletionNotification) -> CompletionResult:
        """Route a completion notification by the shape of its metadata."""
        meta = notification.metadata
        if meta.get("upload_id"):
            return await self.record_transfer_complete(meta["upload_id"], notification.local_file)
        if not ENTRY_KEYS.issubset(key for key, value in meta.items() if value):
            logger.warning(
                "intake.notification.rejected",
                extra={"transfer_id": notification.transfer_id, "keys": sorted(meta)},
            )
            raise ValidationError("Missing required metadata", field="MetaData")

        entry = self.entry_repo.get(meta["video_id"])
        if entry.owner != meta["owner"] or entry.permlink != meta["permlink"]:
            logger.warning(
                "intake.notification.mismatch",
                extra={"entry_id": entry.id, "transfer_id": notification.transfer_id},
            )
            raise ValidationError("Notification metadata does not match the entry", field="MetaData")
        return await self.completion.process(entry.id, notification.local_file)

    def _entry_processed(self, entry_id: str) -> bool:
        try:
            return self.entry_repo.get(entry_id).is_processed
        except NotFoundError:
            return False
