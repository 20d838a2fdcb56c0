"""Domain models of the administration layer.

Schema snapshots, row queries, DDL definitions, routines and database roles.
All of them are scoped to one workspace database and are never persisted by
the core.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator


# ============================================
# Catalog models
# ============================================


class Table(BaseModel):
    """A table as listed by the catalog."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Table name")
    estimated_row_count: int = Field(0, description="Engine estimate of the row count")
    column_count: int = Field(0, description="Number of columns")


class Column(BaseModel):
    """A single column of a Schema snapshot."""

    model_config = ConfigDict(frozen=True)

    name: str
    data_type: str = Field(..., description="Declared SQL type as reported by the engine")
    nullable: bool = True
    default_value: str | None = Field(None, description="Default expression, if any")
    is_primary_key_member: bool = False
    ordinal_position: int = 0


class Schema(BaseModel):
    """Point-in-time description of a table's columns and primary key."""

    model_config = ConfigDict(frozen=True)

    table: str
    columns: list[Column]
    primary_key: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_primary_key(self) -> "Schema":
        by_name = {c.name: c for c in self.columns}
        for name in self.primary_key:
            column = by_name.get(name)
            if column is None:
                raise ValueError(f"Primary key column '{name}' is not a column of '{self.table}'")
            if not column.is_primary_key_member:
                raise ValueError(f"Column '{name}' is in the primary key but not flagged as a member")
        return self

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    def column(self, name: str) -> Column | None:
        for column in self.columns:
            if column.name == name:
                return column
        return None

    @property
    def has_primary_key(self) -> bool:
        return bool(self.primary_key)


class ForeignKey(BaseModel):
    """A foreign key constraint; column lists are in key order."""

    model_config = ConfigDict(frozen=True)

    constraint_name: str
    table: str
    columns: list[str]
    referenced_table: str
    referenced_columns: list[str]


class SchemaGraphNode(BaseModel):
    """A table in the schema graph."""

    id: str
    name: str
    columns: list[Column]


class SchemaGraphEdge(BaseModel):
    """One referencing column pair of a foreign key."""

    id: str
    source: str = Field(..., description="Referencing table")
    target: str = Field(..., description="Referenced table")
    source_column: str
    target_column: str
    constraint_name: str


class SchemaGraph(BaseModel):
    """Tables of a workspace and the foreign keys between them."""

    nodes: list[SchemaGraphNode] = Field(default_factory=list)
    edges: list[SchemaGraphEdge] = Field(default_factory=list)


# ============================================
# Query models
# ============================================


class FilterOperator(str, Enum):
    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    LIKE = "like"
    IN = "in"
    IS_NULL = "is_null"
    IS_NOT_NULL = "is_not_null"


# SQL spellings accepted from callers that think in SQL
OPERATOR_ALIASES = {
    "=": FilterOperator.EQ,
    "==": FilterOperator.EQ,
    "!=": FilterOperator.NEQ,
    "<>": FilterOperator.NEQ,
    ">": FilterOperator.GT,
    ">=": FilterOperator.GTE,
    "<": FilterOperator.LT,
    "<=": FilterOperator.LTE,
    "is null": FilterOperator.IS_NULL,
    "is not null": FilterOperator.IS_NOT_NULL,
}


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class QueryFilter(BaseModel):
    """Single row-selection predicate. A list of filters is AND-combined."""

    column: str = Field(..., description="Column to filter on")
    operator: FilterOperator = Field(..., description="Comparison operator")
    value: Any = Field(None, description="Operand; a list for 'in', ignored for null checks")

    @field_validator("operator", mode="before")
    @classmethod
    def normalize_operator(cls, v: Any) -> Any:
        if isinstance(v, str):
            key = " ".join(v.strip().lower().split())
            if key in OPERATOR_ALIASES:
                return OPERATOR_ALIASES[key]
            return key.replace(" ", "_")
        return v


class QueryRowsRequest(BaseModel):
    """Paged, filtered, optionally sorted row query."""

    page: int = Field(1, ge=1, description="1-indexed page number")
    page_size: int = Field(50, ge=1, le=1000, description="Rows per page")
    order_by: str | None = Field(None, description="Column to sort by")
    order_dir: SortDirection = Field(SortDirection.ASC, description="Sort direction")
    filters: list[QueryFilter] = Field(default_factory=list)


class RowSet(BaseModel):
    """One page of rows plus the filtered total."""

    columns: list[str]
    rows: list[dict[str, Any]]
    total_count: int
    page: int
    page_size: int

    @computed_field
    @property
    def page_count(self) -> int:
        if self.total_count == 0:
            return 0
        return (self.total_count + self.page_size - 1) // self.page_size


class MutationResult(BaseModel):
    affected_rows: int


# ============================================
# DDL models
# ============================================


class ColumnDefinition(BaseModel):
    """Column definition for table creation or column addition."""

    name: str = Field(..., description="Column name")
    type: str = Field(..., description="SQL data type (e.g. INTEGER, VARCHAR, DECIMAL(10,2))")
    nullable: bool = Field(True, description="Whether the column accepts NULL")
    default: str | None = Field(None, description="Default value expression")
    unique: bool = Field(False, description="Add a UNIQUE constraint")


class TableDefinition(BaseModel):
    name: str = Field(..., description="Table name")
    columns: list[ColumnDefinition] = Field(..., min_length=1)
    primary_key: list[str] = Field(default_factory=list)


class AlterColumnDefinition(BaseModel):
    """Changes to one existing column. Omitted fields are left as they are."""

    name: str = Field(..., description="Current column name")
    new_name: str | None = Field(None, description="Rename the column")
    new_type: str | None = Field(None, description="Change the data type")
    nullable: bool | None = Field(None, description="Set or drop NOT NULL")
    default: str | None = Field(None, description="New default expression; empty string drops it")


class AlterTableRequest(BaseModel):
    add_columns: list[ColumnDefinition] = Field(default_factory=list)
    alter_columns: list[AlterColumnDefinition] = Field(default_factory=list)
    drop_columns: list[str] = Field(default_factory=list)
    rename_to: str | None = Field(None, description="New table name")

    @property
    def is_empty(self) -> bool:
        return not (self.add_columns or self.alter_columns or self.drop_columns or self.rename_to)


class AlterTableResult(BaseModel):
    """Outcome of a best-effort schema change batch."""

    table: str
    applied: list[str] = Field(default_factory=list)
    failed_step: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.failed_step is None


# ============================================
# Routines
# ============================================


class RoutineKind(str, Enum):
    FUNCTION = "FUNCTION"
    PROCEDURE = "PROCEDURE"


class Routine(BaseModel):
    name: str
    kind: RoutineKind
    definer: str | None = None
    created_at: datetime | None = None
    modified_at: datetime | None = None
    return_type: str | None = None
    body: str | None = Field(None, description="Definition text, fetched on demand")
    comment: str | None = None


# ============================================
# Database roles
# ============================================


class RoleType(str, Enum):
    READ = "read"
    WRITE = "write"
    ADMIN = "admin"


class RoleStatus(str, Enum):
    ACTIVE = "active"
    ROTATED = "rotated"
    REVOKED = "revoked"
    EXPIRED = "expired"


TERMINAL_ROLE_STATUSES = frozenset({RoleStatus.REVOKED, RoleStatus.EXPIRED})


class Privilege(str, Enum):
    SELECT = "SELECT"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    CREATE = "CREATE"
    ALTER = "ALTER"
    DROP = "DROP"


_READ = frozenset({Privilege.SELECT})
_WRITE = _READ | {Privilege.INSERT, Privilege.UPDATE, Privilege.DELETE}
_ADMIN = _WRITE | {Privilege.CREATE, Privilege.ALTER, Privilege.DROP}

ROLE_PRIVILEGES: dict[RoleType, frozenset[Privilege]] = {
    RoleType.READ: _READ,
    RoleType.WRITE: _WRITE,
    RoleType.ADMIN: _ADMIN,
}


class DatabaseRole(BaseModel):
    """A scoped database credential. Carries no secret material."""

    model_config = ConfigDict(frozen=True)

    id: str
    workspace_id: str
    db_username: str
    role_type: RoleType
    status: RoleStatus
    created_at: datetime
    expires_at: datetime | None = None
    last_rotated_at: datetime | None = None
    revoked_at: datetime | None = None
    revoked_reason: str | None = None


class IssuedCredential(BaseModel):
    """Role plus its plaintext secret. Returned once by create and rotate."""

    model_config = ConfigDict(frozen=True)

    role: DatabaseRole
    plaintext_secret: str


# ============================================
# SQL console
# ============================================


class SQLResult(BaseModel):
    columns: list[str] = Field(default_factory=list)
    rows: list[dict[str, Any]] = Field(default_factory=list)
    affected_rows: int | None = None
    duration_ms: int = 0
    truncated: bool = False


class QueryHistoryItem(BaseModel):
    statement: str
    executed_at: datetime
    duration_ms: int
    row_count: int = 0
    success: bool = True
    error: str | None = None


class DatabaseStats(BaseModel):
    workspace_id: str
    table_count: int
    total_rows: int
    routine_count: int
    active_role_count: int
