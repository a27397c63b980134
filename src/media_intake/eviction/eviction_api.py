"""On-demand trigger for the retention sweep."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request

from ..api_errors import raise_http_error
from .eviction_service import EvictionService

router = APIRouter(prefix="/api/upload", tags=["eviction"])
logger = logging.getLogger(__name__)


def get_eviction_service(request: Request) -> EvictionService:
    try:
        return request.app.state.eviction_service  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover
        raise RuntimeError("EvictionService is not configured") from exc


@router.post("/cleanup")
async def trigger_cleanup(
    service: EvictionService = Depends(get_eviction_service),
) -> dict[str, Any]:
    """Run one eviction sweep immediately."""
    logger.info("eviction.manual_trigger")
    try:
        report = await service.run_once()
        purged = service.purge_expired_transfers()
    except Exception as exc:  # pragma: no cover
        raise_http_error(exc, event="eviction.manual_trigger.failed")
    return {
        "success": True,
        "message": "Cleanup completed",
        "result": report.as_dict(),
        "expired_transfers_purged": purged,
    }
