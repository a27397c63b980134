"""Persistence layer for entry records."""

from __future__ import annotations

import json
import secrets
import string
import uuid
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from ..db.db_models import EntryModel
from ..entries.entry_models import (
    Created,
    Dispatched,
    Entry,
    EntryMetadata,
    EntryStage,
    EntryState,
    Failed,
    Published,
    PublishManual,
    StorageOrigin,
    StoragePending,
    StoredContent,
    begin_storage,
    commit_dispatch,
    fail,
    mark_evicted,
    publish,
)
from ..exceptions import (
    IntegrityConstraintViolation,
    InvalidTransitionError,
    NotFoundError,
    handle_sqlalchemy_errors,
)
from ..utils.clock import utcnow

PERMLINK_ALPHABET = string.ascii_lowercase + string.digits
PERMLINK_LENGTH = 8
_PERMLINK_ATTEMPTS = 5


def generate_permlink() -> str:
    return "".join(secrets.choice(PERMLINK_ALPHABET) for _ in range(PERMLINK_LENGTH))


class EntryRepository:
    """Manage entry records and map them onto lifecycle stages."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        permlink_factory: Callable[[], str] = generate_permlink,
    ) -> None:
        self._session_factory = session_factory
        self._permlink_factory = permlink_factory

    def create(
        self,
        *,
        owner: str,
        metadata: EntryMetadata,
        local_file: Path | None = None,
        created_at: datetime | None = None,
        entry_id: str | None = None,
    ) -> Entry:
        """Insert a new ``created`` entry, regenerating the permlink on collision.

        ``entry_id`` lets a caller that already published the id (a claimed
        transfer) insert the row under it.
        """
        entry_id = entry_id or uuid.uuid4().hex
        last_error: IntegrityConstraintViolation | None = None
        for _ in range(_PERMLINK_ATTEMPTS):
            model = EntryModel(
                id=entry_id,
                owner=owner,
                permlink=self._permlink_factory(),
                state=EntryState.CREATED.value,
                local_file=str(local_file) if local_file else None,
                created_at=created_at or utcnow(),
                updated_at=utcnow(),
                **_metadata_columns(metadata),
            )
            try:
                with self._session_factory() as session:
                    with handle_sqlalchemy_errors(entity="entry"):
                        session.add(model)
                        session.commit()
            except IntegrityConstraintViolation as exc:
                last_error = exc
                continue
            return self._to_domain(model)
        raise IntegrityConstraintViolation("entry: could not allocate a unique permlink") from last_error

    def get(self, entry_id: str) -> Entry:
        with self._session_factory() as session:
            model = session.get(EntryModel, entry_id)
            if model is None:
                raise NotFoundError(f"Entry '{entry_id}' not found")
            return self._to_domain(model)

    def list_by_owner(
        self,
        owner: str,
        *,
        state: EntryState | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Entry], int]:
        """Return a page of the owner's entries (newest first) and the total count."""
        conditions = [EntryModel.owner == owner]
        if state is not None:
            conditions.append(EntryModel.state == state.value)
        with self._session_factory() as session:
            rows = session.scalars(
                select(EntryModel)
                .where(*conditions)
                .order_by(EntryModel.created_at.desc())
                .limit(limit)
                .offset(offset)
            ).all()
            total = session.scalar(select(func.count()).select_from(EntryModel).where(*conditions))
            return [self._to_domain(row) for row in rows], int(total or 0)

    def begin_storage(self, entry_id: str, local_file: Path) -> Entry:
        with self._session_factory() as session:
            model = self._load(session, entry_id)
            entry = begin_storage(self._to_domain(model), local_file)
            self._apply_stage(model, entry.stage)
            session.commit()
            return entry

    def commit_dispatch(self, entry_id: str, storage: StoredContent, job_id: str) -> Entry:
        """Persist storage + job atomically unless another writer got there first.

        The transition is checked against the loaded entry, then written with an
        UPDATE that only matches rows still without a job reference, so
        concurrent completions cannot overwrite each other. Returns the stored
        entry in both cases; callers compare ``job_id`` to tell which write won.
        """
        current = self.get(entry_id)
        if current.is_processed:
            return current
        target = commit_dispatch(current, storage, job_id)
        pending = (EntryState.CREATED.value, EntryState.STORAGE_PENDING.value)
        with self._session_factory() as session:
            with handle_sqlalchemy_errors(entity="entry"):
                result = session.execute(
                    update(EntryModel)
                    .where(
                        EntryModel.id == entry_id,
                        EntryModel.job_id.is_(None),
                        EntryModel.state.in_(pending),
                    )
                    .values(
                        state=target.state.value,
                        content_id=storage.content_id,
                        origin=storage.origin.value,
                        job_id=target.job_id,
                        local_file=None,
                        updated_at=utcnow(),
                    )
                    .execution_options(synchronize_session=False)
                )
                updated = result.rowcount
                session.commit()
        entry = self.get(entry_id)
        if updated == 0 and not entry.is_processed:
            raise InvalidTransitionError(
                f"entry '{entry_id}' cannot be dispatched from state '{entry.state}'"
            )
        return entry

    def record_publication(self, entry_id: str, *, manual: bool = False) -> Entry:
        with self._session_factory() as session:
            model = self._load(session, entry_id)
            entry = publish(self._to_domain(model), manual=manual)
            self._apply_stage(model, entry.stage)
            session.commit()
            return entry

    def set_thumbnail(self, entry_id: str, thumbnail: str) -> Entry:
        with self._session_factory() as session:
            model = self._load(session, entry_id)
            model.thumbnail = thumbnail
            model.updated_at = utcnow()
            session.commit()
            return self._to_domain(model)

    def mark_failed(self, entry_id: str, reason: str) -> Entry:
        with self._session_factory() as session:
            model = self._load(session, entry_id)
            entry = fail(self._to_domain(model), reason)
            self._apply_stage(model, entry.stage)
            session.commit()
            return entry

    def list_eviction_candidates(self, cutoff: datetime) -> list[Entry]:
        """Published fallback entries created before ``cutoff`` and not yet evicted."""
        with self._session_factory() as session:
            rows = session.scalars(
                select(EntryModel)
                .where(
                    EntryModel.origin == StorageOrigin.FALLBACK.value,
                    EntryModel.state == EntryState.PUBLISHED.value,
                    EntryModel.created_at < cutoff,
                    EntryModel.eviction_eligible.is_(False),
                )
                .order_by(EntryModel.created_at)
            ).all()
            return [self._to_domain(row) for row in rows]

    def mark_eviction_eligible(self, entry_id: str) -> bool:
        """Flip the flag false->true; returns False when nothing changed.

        Entries that are not published fallback content raise
        :class:`InvalidTransitionError`.
        """
        current = self.get(entry_id)
        if mark_evicted(current) is current:
            return False
        with self._session_factory() as session:
            result = session.execute(
                update(EntryModel)
                .where(
                    EntryModel.id == entry_id,
                    EntryModel.eviction_eligible.is_(False),
                    EntryModel.origin == StorageOrigin.FALLBACK.value,
                    EntryModel.state == EntryState.PUBLISHED.value,
                )
                .values(eviction_eligible=True, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            updated = result.rowcount
            session.commit()
            return updated == 1

    def eviction_totals(self) -> dict[str, int]:
        fallback = EntryModel.origin == StorageOrigin.FALLBACK.value
        published = EntryModel.state == EntryState.PUBLISHED.value
        evicted = EntryModel.eviction_eligible.is_(True)
        with self._session_factory() as session:
            row = session.execute(
                select(
                    func.count(),
                    func.coalesce(func.sum(EntryModel.size_bytes), 0),
                    func.count().filter(fallback),
                    func.coalesce(func.sum(EntryModel.size_bytes).filter(fallback), 0),
                    func.count().filter(published),
                    func.count().filter(evicted),
                    func.coalesce(func.sum(EntryModel.size_bytes).filter(evicted), 0),
                )
            ).one()
        return {
            "total": int(row[0]),
            "total_size": int(row[1]),
            "fallback_uploads": int(row[2]),
            "fallback_size": int(row[3]),
            "published": int(row[4]),
            "evicted": int(row[5]),
            "evicted_bytes": int(row[6]),
        }

    @staticmethod
    def _load(session: Session, entry_id: str) -> EntryModel:
        model = session.get(EntryModel, entry_id)
        if model is None:
            raise NotFoundError(f"Entry '{entry_id}' not found")
        return model

    @staticmethod
    def _apply_stage(model: EntryModel, stage: EntryStage) -> None:
        storage: StoredContent | None = getattr(stage, "storage", None)
        local_file: Path | None = getattr(stage, "local_file", None)
        model.state = stage.state.value
        model.content_id = storage.content_id if storage else None
        model.origin = storage.origin.value if storage else None
        model.job_id = getattr(stage, "job_id", None)
        model.local_file = str(local_file) if local_file else None
        model.eviction_eligible = isinstance(stage, Published) and stage.eviction_eligible
        if isinstance(stage, Failed):
            model.failure_reason = stage.reason
            model.failed_from = stage.failed_from.value
        model.updated_at = utcnow()

    @staticmethod
    def _to_domain(model: EntryModel) -> Entry:
        return Entry(
            id=model.id,
            owner=model.owner,
            permlink=model.permlink,
            metadata=EntryMetadata(
                title=model.title,
                description=model.description,
                size_bytes=model.size_bytes,
                duration_seconds=model.duration_seconds,
                original_filename=model.original_filename,
                tags=[tag for tag in (model.tags or "").split(",") if tag],
                thumbnail=model.thumbnail or "",
                community=model.community,
                hive=model.hive,
                language=model.language,
                category=model.category,
                decline_rewards=model.decline_rewards,
                reward_powerup=model.reward_powerup,
                vote_percent=model.vote_percent,
                beneficiaries=model.beneficiaries,
            ),
            stage=_stage_from_row(model),
            created_at=model.created_at,
        )


def _stage_from_row(model: EntryModel) -> EntryStage:
    state = EntryState(model.state)
    storage = (
        StoredContent(content_id=model.content_id, origin=StorageOrigin(model.origin))
        if model.content_id and model.origin
        else None
    )
    local_file = Path(model.local_file) if model.local_file else None

    if state is EntryState.CREATED:
        return Created(local_file=local_file)
    if state is EntryState.STORAGE_PENDING:
        if local_file is None:
            raise InvalidTransitionError(f"entry '{model.id}' is storage_pending without a local file")
        return StoragePending(local_file=local_file)
    if state is EntryState.FAILED:
        return Failed(
            reason=model.failure_reason or "unknown",
            failed_from=EntryState(model.failed_from or EntryState.CREATED.value),
            storage=storage,
            job_id=model.job_id if storage else None,
        )
    if storage is None or model.job_id is None:
        raise InvalidTransitionError(f"entry '{model.id}' in state '{state}' lacks storage or job")
    if state is EntryState.DISPATCHED:
        return Dispatched(storage=storage, job_id=model.job_id)
    if state is EntryState.PUBLISHED:
        return Published(
            storage=storage,
            job_id=model.job_id,
            eviction_eligible=model.eviction_eligible,
        )
    return PublishManual(storage=storage, job_id=model.job_id)


def _metadata_columns(metadata: EntryMetadata) -> dict[str, Any]:
    return {
        "title": metadata.title,
        "description": metadata.description,
        "tags": ",".join(metadata.tags),
        "size_bytes": metadata.size_bytes,
        "duration_seconds": metadata.duration_seconds,
        "original_filename": metadata.original_filename,
        "thumbnail": metadata.thumbnail,
        "community": metadata.community,
        "hive": metadata.hive,
        "language": metadata.language,
        "category": metadata.category,
        "decline_rewards": metadata.decline_rewards,
        "reward_powerup": metadata.reward_powerup,
        "vote_percent": metadata.vote_percent,
        "beneficiaries": metadata.beneficiaries or json.dumps([]),
    }
