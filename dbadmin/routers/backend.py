"""Service health endpoint."""

import duckdb
import structlog
from fastapi import APIRouter
from pathlib import Path

from dbadmin.config import settings
from dbadmin.models.responses import ErrorResponse, HealthResponse

logger = structlog.get_logger()
router = APIRouter(tags=["backend"])


def _check_path_accessible(path: Path) -> bool:
    """Check if a path exists and is accessible."""
    try:
        return path.exists() and path.is_dir()
    except (OSError, PermissionError):
        return False


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"model": ErrorResponse}},
    summary="Health check",
    description="Check if the service is healthy and storage is accessible.",
)
async def health_check() -> HealthResponse:
    path_status = {}
    all_healthy = True

    for name, path in settings.storage_paths.items():
        is_accessible = _check_path_accessible(path)
        path_status[name] = is_accessible
        if not is_accessible:
            all_healthy = False

    logger.info("health_check", healthy=all_healthy, storage=path_status)

    return HealthResponse(
        status="healthy" if all_healthy else "degraded",
        version=settings.api_version,
        duckdb_version=duckdb.__version__,
        storage=path_status,
    )
