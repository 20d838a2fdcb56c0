"""FastAPI dependencies.

The administration façade is built lazily from settings on first use and
shared by all requests. Tests replace it through
``app.dependency_overrides[get_database_admin]``.
"""

import threading

import structlog
from fastapi import HTTPException, status

from dbadmin.config import settings
from dbadmin.duckdb_collaborator import DuckDBCollaborator
from dbadmin.metadata import MetadataDB
from dbadmin.service import WorkspaceDatabaseAdmin

logger = structlog.get_logger(__name__)

_admin: WorkspaceDatabaseAdmin | None = None
_admin_lock = threading.Lock()


def build_database_admin() -> WorkspaceDatabaseAdmin:
    """Wire the DuckDB collaborator and the metadata audit trail."""
    metadata = MetadataDB(settings.metadata_db_path)
    collaborator = DuckDBCollaborator(
        workspaces_dir=settings.workspaces_dir,
        metadata=metadata,
        query_timeout_seconds=settings.query_timeout_seconds,
    )
    logger.info(
        "database_admin_initialized",
        workspaces_dir=str(settings.workspaces_dir),
        metadata_db=str(settings.metadata_db_path),
    )
    return WorkspaceDatabaseAdmin(collaborator, audit_sink=metadata)


def get_database_admin() -> WorkspaceDatabaseAdmin:
    global _admin
    if _admin is None:
        with _admin_lock:
            if _admin is None:
                _admin = build_database_admin()
    return _admin


def require_confirmation(confirm: bool, action: str, resource: str) -> None:
    """
    Irreversible operations must be confirmed explicitly by the caller.

    Raises:
        HTTPException 400 if ``confirm`` is not set
    """
    if not confirm:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "confirmation_required",
                "message": f"{action} {resource} is irreversible; repeat the request with confirm=true",
                "details": {"action": action, "resource": resource},
            },
        )
