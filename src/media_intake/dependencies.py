"""Dependency wiring helpers."""

from fastapi import FastAPI

from .config import AppConfig
from .entries.entries_api import router as entries_router
from .entries.status_service import StatusService
from .eviction.eviction_api import router as eviction_router
from .eviction.eviction_service import EvictionService
from .intake.completion import CompletionProcessor
from .intake.finalizer import Finalizer
from .intake.intake_api import router as intake_router
from .intake.intake_service import IntakeService
from .intake.thumbnails import ThumbnailService
from .intake.validation import IntakeValidator
from .jobs.job_dispatcher import JobDispatcher
from .jobs.jobs_api import router as jobs_router
from .repositories.entry_repository import EntryRepository
from .repositories.job_repository import JobRepository
from .repositories.transfer_repository import PendingTransferRepository
from .stats.metrics_api import router as metrics_router
from .stats.metrics_exporter import MetricsExporter
from .stats.stats_api import router as stats_router
from .stats.stats_service import StatsService
from .storage.storage_engine import StorageUploadEngine
from .system.health_service import HealthService
from .system.system_api import router as system_router


def include_routers(app: FastAPI, config: AppConfig) -> None:
    """Mount module routers and attach services."""
    entry_repo = EntryRepository(config.session_factory)
    transfer_repo = PendingTransferRepository(config.session_factory)
    job_repo = JobRepository(config.session_factory)

    validator = IntakeValidator(config.intake_limits)
    storage_engine = StorageUploadEngine(config.storage)
    dispatcher = JobDispatcher(job_repo, max_retries=config.job_max_retries)
    completion = CompletionProcessor(
        entry_repo=entry_repo,
        storage_engine=storage_engine,
        dispatcher=dispatcher,
    )
    finalizer = Finalizer(
        transfer_repo=transfer_repo,
        entry_repo=entry_repo,
        validator=validator,
        completion=completion,
        default_thumbnail=config.default_thumbnail,
    )
    thumbnail_service = ThumbnailService(storage_engine=storage_engine, entry_repo=entry_repo)
    intake_service = IntakeService(
        entry_repo=entry_repo,
        transfer_repo=transfer_repo,
        validator=validator,
        completion=completion,
        finalizer=finalizer,
        thumbnails=thumbnail_service,
        transfer_endpoint=config.transfer_endpoint,
        pending_ttl_seconds=config.pending_transfer_ttl_seconds,
        default_thumbnail=config.default_thumbnail,
    )
    eviction_service = EvictionService(
        entry_repo=entry_repo,
        transfer_repo=transfer_repo,
        storage_engine=storage_engine,
        retention_days=config.eviction.retention_days,
        enabled=config.eviction.enabled,
    )

    app.state.config = config
    app.state.entry_repo = entry_repo
    app.state.storage_engine = storage_engine
    app.state.job_dispatcher = dispatcher
    app.state.intake_service = intake_service
    app.state.thumbnail_service = thumbnail_service
    app.state.status_service = StatusService(entry_repo=entry_repo, dispatcher=dispatcher)
    app.state.eviction_service = eviction_service
    app.state.stats_service = StatsService(
        eviction_service=eviction_service,
        dispatcher=dispatcher,
        storage_engine=storage_engine,
    )
    app.state.metrics_exporter = MetricsExporter(entry_repo=entry_repo, dispatcher=dispatcher)
    app.state.health_service = HealthService(
        session_factory=config.session_factory,
        storage_engine=storage_engine,
        eviction_service=eviction_service,
        upload_dir=config.upload_dir,
    )

    app.include_router(intake_router)
    app.include_router(entries_router)
    app.include_router(jobs_router)
    app.include_router(eviction_router)
    app.include_router(stats_router)
    app.include_router(metrics_router)
    app.include_router(system_router)
