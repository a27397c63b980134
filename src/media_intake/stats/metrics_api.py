"""Prometheus scrape endpoint."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from .metrics_exporter import MetricsExporter

PROMETHEUS_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"

router = APIRouter(tags=["metrics"])


def get_metrics_exporter(request: Request) -> MetricsExporter:
    exporter = getattr(request.app.state, "metrics_exporter", None)
    if exporter is None:
        raise RuntimeError("MetricsExporter is not configured")
    return exporter


@router.get("/metrics", response_class=PlainTextResponse)
def scrape_metrics(exporter: MetricsExporter = Depends(get_metrics_exporter)) -> PlainTextResponse:
    """Entry, job and storage counters in text exposition format."""
    return PlainTextResponse(exporter.collect(), media_type=PROMETHEUS_CONTENT_TYPE)


@router.get("/api/upload/metrics", response_class=PlainTextResponse, include_in_schema=False)
def scrape_upload_metrics(
    exporter: MetricsExporter = Depends(get_metrics_exporter),
) -> PlainTextResponse:
    return PlainTextResponse(exporter.collect(), media_type=PROMETHEUS_CONTENT_TYPE)
