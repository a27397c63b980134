"""Persistence layer for pending upload-first transfers."""

from __future__ import annotations

import secrets
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from ..db.db_models import PendingTransferModel
from ..exceptions import AlreadyFinalizedError, NotFoundError
from ..utils.clock import utcnow


@dataclass(slots=True)
class PendingTransfer:
    transfer_token: str
    owner: str
    original_filename: str
    size_bytes: int
    duration_seconds: float
    transfer_complete: bool
    local_file: Path | None
    finalized: bool
    entry_id: str | None
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now


class PendingTransferRepository:
    """Manage pending_transfer records; finalized rows are never updated again."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def create(
        self,
        *,
        owner: str,
        original_filename: str,
        size_bytes: int,
        duration_seconds: float,
        ttl: timedelta,
        now: datetime | None = None,
    ) -> PendingTransfer:
        created_at = now or utcnow()
        model = PendingTransferModel(
            transfer_token=secrets.token_hex(16),
            owner=owner,
            original_filename=original_filename,
            size_bytes=size_bytes,
            duration_seconds=duration_seconds,
            transfer_complete=False,
            finalized=False,
            created_at=created_at,
            expires_at=created_at + ttl,
        )
        with self._session_factory() as session:
            session.add(model)
            session.commit()
            return self._to_domain(model)

    def get(self, transfer_token: str) -> PendingTransfer:
        with self._session_factory() as session:
            model = session.get(PendingTransferModel, transfer_token)
            if model is None:
                raise NotFoundError(f"Pending transfer '{transfer_token}' not found")
            return self._to_domain(model)

    def mark_transfer_complete(self, transfer_token: str, local_file: Path) -> PendingTransfer:
        with self._session_factory() as session:
            model = session.get(PendingTransferModel, transfer_token)
            if model is None:
                raise NotFoundError(f"Pending transfer '{transfer_token}' not found")
            if model.finalized:
                raise AlreadyFinalizedError(f"Pending transfer '{transfer_token}' is finalized")
            model.transfer_complete = True
            model.local_file = str(local_file)
            session.commit()
            return self._to_domain(model)

    def mark_finalized(self, transfer_token: str, entry_id: str) -> None:
        """Link the entry and freeze the record.

        The UPDATE is conditional on ``finalized = false`` so only one of two
        racing finalize calls can succeed.
        """
        with self._session_factory() as session:
            result = session.execute(
                update(PendingTransferModel)
                .where(
                    PendingTransferModel.transfer_token == transfer_token,
                    PendingTransferModel.transfer_complete.is_(True),
                    PendingTransferModel.finalized.is_(False),
                )
                .values(finalized=True, entry_id=entry_id)
                .execution_options(synchronize_session=False)
            )
            updated = result.rowcount
            session.commit()
        if updated != 1:
            raise AlreadyFinalizedError(f"Pending transfer '{transfer_token}' is finalized")

    def list_expired_unfinalized(self, reference_time: datetime) -> list[PendingTransfer]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(PendingTransferModel).where(
                    PendingTransferModel.finalized.is_(False),
                    PendingTransferModel.expires_at <= reference_time,
                )
            ).all()
            return [self._to_domain(row) for row in rows]

    def discard(self, transfer_token: str) -> bool:
        """Delete an expired, never-finalized record."""
        with self._session_factory() as session:
            result = session.execute(
                delete(PendingTransferModel).where(
                    PendingTransferModel.transfer_token == transfer_token,
                    PendingTransferModel.finalized.is_(False),
                )
            )
            removed = result.rowcount
            session.commit()
            return removed == 1

    @staticmethod
    def _to_domain(model: PendingTransferModel) -> PendingTransfer:
        return PendingTransfer(
            transfer_token=model.transfer_token,
            owner=model.owner,
            original_filename=model.original_filename,
            size_bytes=model.size_bytes,
            duration_seconds=model.duration_seconds,
            transfer_complete=model.transfer_complete,
            local_file=Path(model.local_file) if model.local_file else None,
            finalized=model.finalized,
            entry_id=model.entry_id,
            created_at=model.created_at,
            expires_at=model.expires_at,
        )
