"""Routes for statistics exposure."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request

from .stats_service import StatsService

router = APIRouter(prefix="/api/upload", tags=["stats"])


def get_stats_service(request: Request) -> StatsService:
    try:
        return request.app.state.stats_service  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover
        raise RuntimeError("StatsService is not configured") from exc


@router.get("/stats")
async def stats_overview(service: StatsService = Depends(get_stats_service)) -> dict[str, Any]:
    """Eviction totals, job counts and storage node health."""
    return {"success": True, "data": await service.overview()}
