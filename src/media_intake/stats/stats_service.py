"""Aggregated service statistics."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from ..eviction.eviction_service import EvictionService
from ..jobs.job_dispatcher import JobDispatcher
from ..storage.storage_engine import StorageUploadEngine
from ..storage.storage_models import StorageHealth
from ..utils.clock import utcnow


@dataclass(slots=True)
class StatsService:
    eviction_service: EvictionService
    dispatcher: JobDispatcher
    storage_engine: StorageUploadEngine

    async def overview(self) -> dict[str, Any]:
        storage = await self.storage_engine.health()
        return {
            "cleanup": self.eviction_service.stats(),
            "jobs": asdict(self.dispatcher.stats()),
            "storage": storage_health_payload(storage),
            "timestamp": utcnow().isoformat(),
        }


def storage_health_payload(health: StorageHealth) -> dict[str, Any]:
    return {
        "status": health.status,
        "primary": {
            "endpoint": health.primary.endpoint,
            "healthy": health.primary.healthy,
            "error": health.primary.error,
        },
        "fallback": {
            "endpoint": health.fallback.endpoint,
            "healthy": health.fallback.healthy,
            "error": health.fallback.error,
        },
        "gateways": {
            "primary": health.primary_gateway,
            "fallback": health.fallback_gateway,
        },
    }
