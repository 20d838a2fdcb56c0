"""Contract between the administration core and a SQL execution engine.

The core never talks to a database directly. Everything goes through an
object satisfying SQLCollaborator; the DuckDB-backed implementation lives in
``dbadmin.duckdb_collaborator``.

Collaborators raise the exceptions from ``dbadmin.errors``: NotFound for
missing objects, AlreadyExists on name collisions, Timeout when the engine
gave up, and CollaboratorError (engine message verbatim) for everything else.
"""

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel

from dbadmin.dialects import SQLDialect
from dbadmin.filters import RowQuery
from dbadmin.models.entities import (
    AlterTableRequest,
    AlterTableResult,
    DatabaseRole,
    ForeignKey,
    RoleStatus,
    RoleType,
    Schema,
    SQLResult,
    Table,
    TableDefinition,
)
from dbadmin.values import TypedRecord, TypedValue


class RowPage(BaseModel):
    columns: list[str]
    rows: list[dict[str, Any]]
    total_count: int


@runtime_checkable
class SQLCollaborator(Protocol):
    dialect: SQLDialect

    def execute_sql(
        self,
        workspace_id: str,
        statement: str,
        params: list[Any] | None = None,
        max_rows: int | None = None,
    ) -> SQLResult: ...

    # Tables and rows

    def list_tables(self, workspace_id: str) -> list[Table]: ...

    def get_table_schema(self, workspace_id: str, table: str) -> Schema: ...

    def list_foreign_keys(self, workspace_id: str) -> list[ForeignKey]: ...

    def query_rows(self, workspace_id: str, table: str, query: RowQuery) -> RowPage: ...

    def insert_row(self, workspace_id: str, table: str, values: TypedRecord) -> int: ...

    def update_row(
        self, workspace_id: str, table: str, key: TypedRecord, changes: TypedRecord
    ) -> int:
        """Apply ``changes`` to the row addressed by ``key``.

        Must raise AmbiguousTarget, leaving the table untouched, if more than
        one row matches. Returns the number of rows updated (0 or 1).
        """
        ...

    def delete_rows(
        self,
        workspace_id: str,
        table: str,
        key_columns: list[str],
        keys: list[tuple[TypedValue, ...]],
    ) -> int: ...

    # DDL

    def create_table(self, workspace_id: str, definition: TableDefinition) -> None: ...

    def alter_table(
        self, workspace_id: str, table: str, request: AlterTableRequest
    ) -> AlterTableResult:
        """Apply add, alter, drop and rename steps in order, stopping at the first failure.

        Raises the step's error directly when nothing was applied; otherwise
        returns a result whose ``failed_step`` names the step that broke.
        """
        ...

    def drop_table(self, workspace_id: str, table: str) -> None: ...

    # Credentials

    def list_roles(self, workspace_id: str) -> list[DatabaseRole]: ...

    def get_role(self, workspace_id: str, role_id: str) -> DatabaseRole | None: ...

    def create_role(
        self,
        workspace_id: str,
        role_type: RoleType,
        db_username: str,
        secret: str,
        expires_at: datetime | None = None,
    ) -> DatabaseRole: ...

    def rotate_role(self, workspace_id: str, role_id: str, secret: str) -> DatabaseRole:
        """Store a new secret for an active role.

        The status check and the update must be atomic: raises NotFound, and
        stores nothing, if the role is not active when the update runs.
        """
        ...

    def revoke_role(
        self,
        workspace_id: str,
        role_id: str,
        reason: str,
        status: RoleStatus = RoleStatus.REVOKED,
    ) -> DatabaseRole:
        """Move an active role to a terminal status.

        Raises AlreadyRevoked if the role is not active when the update runs.
        """
        ...
