"""Pydantic models for API requests and responses."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from dbadmin.models.entities import (
    AlterTableResult,
    DatabaseRole,
    QueryHistoryItem,
    RoleType,
    Routine,
    Schema,
    Table,
)


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] | None = Field(None, description="Additional error details")


class HealthResponse(BaseModel):
    status: str = Field(..., description="Service health status")
    version: str = Field(..., description="API version")
    duckdb_version: str = Field(..., description="DuckDB library version")
    storage: dict[str, bool] = Field(default_factory=dict, description="Storage path availability")


# ============================================
# Tables and rows
# ============================================


class TableListResponse(BaseModel):
    tables: list[Table]
    total: int


class InsertRowRequest(BaseModel):
    """Row to insert. Omitted columns take their defaults; null is sent as NULL."""

    values: dict[str, Any] = Field(..., description="Column name -> value")


class UpdateRowRequest(BaseModel):
    """Primary key values addressing the row, plus the columns to change."""

    values: dict[str, Any] = Field(..., description="Column name -> value, including every key column")


class DeleteRowsRequest(BaseModel):
    ids: list[Any] = Field(
        ...,
        min_length=1,
        description="Key values; for composite keys each id is a list in key order or an object",
    )


class MutationResponse(BaseModel):
    affected_rows: int


class AlterTableResponse(BaseModel):
    result: AlterTableResult
    table_schema: Schema = Field(..., description="Schema re-fetched after the change")


# ============================================
# Routines
# ============================================


class RoutineListResponse(BaseModel):
    routines: list[Routine]
    total: int


class CreateRoutineRequest(BaseModel):
    definition: str = Field(..., min_length=1, description="Full CREATE statement for the routine")


# ============================================
# Database roles
# ============================================


class RoleListResponse(BaseModel):
    roles: list[DatabaseRole]
    total: int


class CreateRoleRequest(BaseModel):
    role_type: RoleType = Field(..., description="Permission tier: read, write or admin")
    expires_at: datetime | None = Field(None, description="Optional expiry time")


class RoleCredentialsResponse(BaseModel):
    """Role with its secret. Returned by create and rotate only."""

    role: DatabaseRole
    db_username: str
    secret: str = Field(..., description="Shown once; it cannot be retrieved again")


class RevokeRoleRequest(BaseModel):
    reason: str = Field(..., description="Why the role is revoked")
    confirm: bool = Field(False, description="Must be true; revocation is permanent")


# ============================================
# SQL console
# ============================================


class ExecuteSQLRequest(BaseModel):
    statement: str = Field(..., description="SQL to execute")


class SQLResponse(BaseModel):
    columns: list[str]
    rows: list[dict[str, Any]]
    row_count: int
    affected_rows: int | None = None
    duration_ms: int
    truncated: bool


class QueryHistoryResponse(BaseModel):
    items: list[QueryHistoryItem]
    total: int
