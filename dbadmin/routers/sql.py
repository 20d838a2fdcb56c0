"""SQL console endpoints: ad-hoc statements, query history and database stats."""

from fastapi import APIRouter, Depends

from dbadmin.dependencies import get_database_admin
from dbadmin.models.entities import DatabaseStats
from dbadmin.models.responses import (
    ErrorResponse,
    ExecuteSQLRequest,
    QueryHistoryResponse,
    SQLResponse,
)
from dbadmin.service import WorkspaceDatabaseAdmin
from dbadmin.values import to_json_safe

router = APIRouter(prefix="/workspaces/{workspace_id}/database", tags=["sql"])


@router.post(
    "/sql",
    response_model=SQLResponse,
    responses={
        400: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
        504: {"model": ErrorResponse},
    },
    summary="Execute SQL",
    description="""
    Execute SQL against the workspace database.

    Account and server level statements (GRANT, CREATE USER, ATTACH, COPY...)
    are refused. Results are capped at `SQL_MAX_ROWS` rows.
    """,
)
async def execute_sql(
    workspace_id: str,
    request: ExecuteSQLRequest,
    admin: WorkspaceDatabaseAdmin = Depends(get_database_admin),
) -> SQLResponse:
    result = admin.execute_sql(workspace_id, request.statement)
    return SQLResponse(
        columns=result.columns,
        rows=[to_json_safe(row) for row in result.rows],
        row_count=len(result.rows),
        affected_rows=result.affected_rows,
        duration_ms=result.duration_ms,
        truncated=result.truncated,
    )


@router.get(
    "/sql/history",
    response_model=QueryHistoryResponse,
    summary="Query history",
    description="Statements executed through the console, newest first.",
)
async def query_history(
    workspace_id: str,
    admin: WorkspaceDatabaseAdmin = Depends(get_database_admin),
) -> QueryHistoryResponse:
    items = admin.query_history(workspace_id)
    return QueryHistoryResponse(items=items, total=len(items))


@router.get(
    "/stats",
    response_model=DatabaseStats,
    summary="Database statistics",
)
async def database_stats(
    workspace_id: str,
    admin: WorkspaceDatabaseAdmin = Depends(get_database_admin),
) -> DatabaseStats:
    return admin.database_stats(workspace_id)
