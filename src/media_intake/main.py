"""FastAPI application entry point."""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .config import AppConfig, load_config
from .dependencies import include_routers
from .lifecycle import run_eviction_scheduler
from .logging import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    config: AppConfig = app.state.config
    shutdown_event = asyncio.Event()
    task: asyncio.Task[None] | None = None
    if config.eviction.enabled:
        task = asyncio.create_task(
            run_eviction_scheduler(
                eviction_service=app.state.eviction_service,
                shutdown_event=shutdown_event,
                run_hour_utc=config.eviction.run_hour_utc,
            )
        )
        logger.info("Eviction scheduler started (daily at %02d:00 UTC)", config.eviction.run_hour_utc)
    try:
        yield
    finally:
        shutdown_event.set()
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            logger.info("Eviction scheduler stopped")


def create_app(config: AppConfig | None = None) -> FastAPI:
    """Build FastAPI instance with configured dependencies."""
    configure_logging()
    cfg = config or load_config()
    app = FastAPI(title="media-intake", lifespan=lifespan)
    include_routers(app, cfg)
    return app
