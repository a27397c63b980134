"""Composite health checks."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..eviction.eviction_service import EvictionService
from ..stats.stats_service import storage_health_payload
from ..storage.storage_engine import StorageUploadEngine
from ..utils.clock import utcnow

logger = logging.getLogger(__name__)

TEMP_FILE_WARNING_THRESHOLD = 1000


@dataclass(slots=True)
class HealthService:
    session_factory: Callable[[], Session]
    storage_engine: StorageUploadEngine
    eviction_service: EvictionService
    upload_dir: Path
    started_at: float = field(default_factory=time.monotonic)

    async def check(self) -> dict[str, Any]:
        """Return the health payload; ``service`` is healthy, degraded or unhealthy."""
        payload: dict[str, Any] = {
            "timestamp": utcnow().isoformat(),
            "uptime": round(time.monotonic() - self.started_at, 3),
            "service": "healthy",
        }

        try:
            with self.session_factory() as session:
                session.execute(text("SELECT 1"))
            payload["database"] = "healthy"
        except SQLAlchemyError as exc:
            logger.error("health.database.failed", extra={"error": str(exc)})
            payload["database"] = "unhealthy"
            payload["database_error"] = str(exc)
            payload["service"] = "unhealthy"

        storage = await self.storage_engine.health()
        payload["storage_nodes"] = storage_health_payload(storage)
        if storage.status != "healthy" and payload["service"] == "healthy":
            payload["service"] = "degraded"

        payload["cleanup_service"] = {
            "enabled": self.eviction_service.enabled,
            "retention_days": self.eviction_service.retention_days,
        }

        temp_files = self._count_temp_files()
        if temp_files is None:
            payload["temp_storage"] = {"status": "unknown"}
        else:
            temp_status = "healthy" if temp_files < TEMP_FILE_WARNING_THRESHOLD else "warning"
            payload["temp_storage"] = {"temp_files": temp_files, "status": temp_status}
            if temp_status == "warning" and payload["service"] == "healthy":
                payload["service"] = "degraded"
        return payload

    def _count_temp_files(self) -> int | None:
        try:
            return sum(1 for item in self.upload_dir.iterdir() if item.is_file())
        except OSError:
            return None
