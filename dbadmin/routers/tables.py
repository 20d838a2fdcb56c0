"""Table endpoints: catalog, row browsing, row mutations and DDL."""

from fastapi import APIRouter, Depends, Query, status

from dbadmin.dependencies import get_database_admin, require_confirmation
from dbadmin.models.entities import (
    AlterTableRequest,
    QueryRowsRequest,
    RowSet,
    Schema,
    SchemaGraph,
    TableDefinition,
)
from dbadmin.models.responses import (
    AlterTableResponse,
    DeleteRowsRequest,
    ErrorResponse,
    InsertRowRequest,
    MutationResponse,
    TableListResponse,
    UpdateRowRequest,
)
from dbadmin.service import WorkspaceDatabaseAdmin
from dbadmin.values import to_json_safe

router = APIRouter(prefix="/workspaces/{workspace_id}/database", tags=["tables"])


# ============================================
# Catalog
# ============================================


@router.get(
    "/tables",
    response_model=TableListResponse,
    summary="List tables",
    description="List tables of the workspace database with estimated row counts.",
)
async def list_tables(
    workspace_id: str,
    admin: WorkspaceDatabaseAdmin = Depends(get_database_admin),
) -> TableListResponse:
    tables = admin.list_tables(workspace_id)
    return TableListResponse(tables=tables, total=len(tables))


@router.get(
    "/tables/{table_name}/schema",
    response_model=Schema,
    responses={404: {"model": ErrorResponse}},
    summary="Get table schema",
    description="Fetch a fresh snapshot of the table's columns and primary key.",
)
async def get_table_schema(
    workspace_id: str,
    table_name: str,
    admin: WorkspaceDatabaseAdmin = Depends(get_database_admin),
) -> Schema:
    return admin.get_schema(workspace_id, table_name)


@router.get(
    "/schema-graph",
    response_model=SchemaGraph,
    summary="Get schema graph",
    description="Tables with their columns and one edge per foreign key column pair.",
)
async def get_schema_graph(
    workspace_id: str,
    admin: WorkspaceDatabaseAdmin = Depends(get_database_admin),
) -> SchemaGraph:
    return admin.schema_graph(workspace_id)


# ============================================
# DDL
# ============================================


@router.post(
    "/tables",
    response_model=Schema,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Create table",
)
async def create_table(
    workspace_id: str,
    definition: TableDefinition,
    admin: WorkspaceDatabaseAdmin = Depends(get_database_admin),
) -> Schema:
    return admin.create_table(workspace_id, definition)


@router.patch(
    "/tables/{table_name}",
    response_model=AlterTableResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
    summary="Alter table",
    description="""
    Add, alter and drop columns, and optionally rename the table.

    Steps run in order (add, alter, drop, rename) and are not transactional:
    if one fails, earlier steps stay applied and the response is a
    `partial_failure` error listing them. Dropping columns requires
    `confirm=true`.
    """,
)
async def alter_table(
    workspace_id: str,
    table_name: str,
    request: AlterTableRequest,
    confirm: bool = Query(default=False, description="Confirm dropping columns"),
    admin: WorkspaceDatabaseAdmin = Depends(get_database_admin),
) -> AlterTableResponse:
    if request.drop_columns:
        require_confirmation(confirm, "Dropping columns from", table_name)
    result = admin.alter_table(workspace_id, table_name, request)
    schema = admin.get_schema(workspace_id, request.rename_to or table_name)
    return AlterTableResponse(result=result, table_schema=schema)


@router.delete(
    "/tables/{table_name}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Drop table",
    description="Drop a table and all its rows. Irreversible; requires `confirm=true`.",
)
async def drop_table(
    workspace_id: str,
    table_name: str,
    confirm: bool = Query(default=False, description="Confirm the drop"),
    admin: WorkspaceDatabaseAdmin = Depends(get_database_admin),
) -> None:
    require_confirmation(confirm, "Dropping table", table_name)
    admin.drop_table(workspace_id, table_name)


# ============================================
# Rows
# ============================================


@router.post(
    "/tables/{table_name}/rows/query",
    response_model=RowSet,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Query rows",
    description="Paged, filtered and sorted rows. `total_count` counts all matching rows.",
)
async def query_rows(
    workspace_id: str,
    table_name: str,
    request: QueryRowsRequest,
    admin: WorkspaceDatabaseAdmin = Depends(get_database_admin),
) -> RowSet:
    rowset = admin.query_rows(workspace_id, table_name, request)
    return rowset.model_copy(update={"rows": [to_json_safe(row) for row in rowset.rows]})


@router.post(
    "/tables/{table_name}/rows",
    response_model=MutationResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Insert row",
)
async def insert_row(
    workspace_id: str,
    table_name: str,
    request: InsertRowRequest,
    admin: WorkspaceDatabaseAdmin = Depends(get_database_admin),
) -> MutationResponse:
    result = admin.insert_row(workspace_id, table_name, request.values)
    return MutationResponse(affected_rows=result.affected_rows)


@router.patch(
    "/tables/{table_name}/rows",
    response_model=MutationResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
    summary="Update row",
    description="Update the single row addressed by the primary key values in `values`.",
)
async def update_row(
    workspace_id: str,
    table_name: str,
    request: UpdateRowRequest,
    admin: WorkspaceDatabaseAdmin = Depends(get_database_admin),
) -> MutationResponse:
    result = admin.update_row(workspace_id, table_name, request.values)
    return MutationResponse(affected_rows=result.affected_rows)


@router.post(
    "/tables/{table_name}/rows/delete",
    response_model=MutationResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
    summary="Delete rows",
    description="Delete rows by primary key values.",
)
async def delete_rows(
    workspace_id: str,
    table_name: str,
    request: DeleteRowsRequest,
    admin: WorkspaceDatabaseAdmin = Depends(get_database_admin),
) -> MutationResponse:
    result = admin.delete_rows(workspace_id, table_name, request.ids)
    return MutationResponse(affected_rows=result.affected_rows)
