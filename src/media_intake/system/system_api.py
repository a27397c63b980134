"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from .health_service import HealthService

router = APIRouter(tags=["system"])


def get_health_service(request: Request) -> HealthService:
    try:
        return request.app.state.health_service  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover
        raise RuntimeError("HealthService is not configured") from exc


async def _health_response(service: HealthService) -> JSONResponse:
    payload = await service.check()
    status_code = 503 if payload["service"] == "unhealthy" else 200
    return JSONResponse(payload, status_code=status_code)


@router.get("/health")
async def health(service: HealthService = Depends(get_health_service)) -> JSONResponse:
    return await _health_response(service)


@router.get("/api/upload/health")
async def upload_health(service: HealthService = Depends(get_health_service)) -> JSONResponse:
    """Degraded storage still answers 200; only a dead database yields 503."""
    return await _health_response(service)
