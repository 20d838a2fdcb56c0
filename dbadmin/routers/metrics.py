"""Prometheus metrics endpoint router.

Exposes /metrics endpoint for Prometheus scraping.
"""

import duckdb
from fastapi import APIRouter
from fastapi.responses import PlainTextResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from dbadmin.config import settings
from dbadmin.metrics import set_service_info

router = APIRouter(tags=["metrics"])


@router.get(
    "/metrics",
    response_class=PlainTextResponse,
    summary="Prometheus metrics endpoint",
    description="Returns metrics in Prometheus text format for scraping.",
)
async def get_metrics():
    """Expose Prometheus metrics in the text exposition format."""
    set_service_info(version=settings.api_version, duckdb_version=duckdb.__version__)

    return PlainTextResponse(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )
