"""Administration façade: one entry point per operation, wired around one collaborator.

Every mutating operation is tracked through ``track_operation`` so it shows up
in the structured log, the audit trail and the operation metrics. Reads are
logged and measured but not written to the audit trail.
"""

from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any

from dbadmin.audit import AuditSink, track_operation
from dbadmin.browser import RowBrowser
from dbadmin.catalog import SchemaCatalog
from dbadmin.collaborator import SQLCollaborator
from dbadmin.console import SQLConsole
from dbadmin.credentials import CredentialLifecycleManager
from dbadmin.ddl import SchemaMutationEngine
from dbadmin.models.entities import (
    AlterTableRequest,
    AlterTableResult,
    DatabaseRole,
    DatabaseStats,
    IssuedCredential,
    MutationResult,
    QueryHistoryItem,
    QueryRowsRequest,
    RoleStatus,
    RoleType,
    Routine,
    RoutineKind,
    RowSet,
    Schema,
    SchemaGraph,
    SQLResult,
    Table,
    TableDefinition,
)
from dbadmin.mutations import RowMutationEngine
from dbadmin.routines import RoutineManager


class WorkspaceDatabaseAdmin:
    """
    Workspace database administration layer.

    Args:
        collaborator: SQL engine the operations run against
        audit_sink: Receives one audit entry per mutating operation
    """

    def __init__(self, collaborator: SQLCollaborator, audit_sink: AuditSink | None = None) -> None:
        self.collaborator = collaborator
        self.audit_sink = audit_sink
        self.catalog = SchemaCatalog(collaborator)
        self.browser = RowBrowser(self.catalog, collaborator)
        self.mutations = RowMutationEngine(self.catalog, collaborator)
        self.ddl = SchemaMutationEngine(self.catalog, collaborator)
        self.routines = RoutineManager(collaborator)
        self.credentials = CredentialLifecycleManager(collaborator)
        self.console = SQLConsole(collaborator, self.catalog)

    # ============================================
    # Catalog
    # ============================================

    def list_tables(self, workspace_id: str) -> list[Table]:
        with track_operation(None, "list_tables", workspace_id):
            return self.catalog.list_tables(workspace_id)

    def get_schema(self, workspace_id: str, table: str) -> Schema:
        with track_operation(None, "get_schema", workspace_id, "table", table):
            return self.catalog.get_schema(workspace_id, table)

    def schema_graph(self, workspace_id: str) -> SchemaGraph:
        with track_operation(None, "schema_graph", workspace_id):
            return self.catalog.schema_graph(workspace_id)

    # ============================================
    # Rows
    # ============================================

    def query_rows(self, workspace_id: str, table: str, request: QueryRowsRequest) -> RowSet:
        with track_operation(
            None, "query_rows", workspace_id, "table", table,
            page=request.page, page_size=request.page_size, filter_count=len(request.filters),
        ):
            return self.browser.query_rows(workspace_id, table, request)

    def insert_row(self, workspace_id: str, table: str, record: Mapping[str, Any]) -> MutationResult:
        with track_operation(
            self.audit_sink, "insert_row", workspace_id, "table", table, columns=sorted(record)
        ) as audit:
            result = self.mutations.insert_row(workspace_id, table, record)
            audit["affected_rows"] = result.affected_rows
            return result

    def update_row(self, workspace_id: str, table: str, record: Mapping[str, Any]) -> MutationResult:
        with track_operation(
            self.audit_sink, "update_row", workspace_id, "table", table, columns=sorted(record)
        ) as audit:
            result = self.mutations.update_row(workspace_id, table, record)
            audit["affected_rows"] = result.affected_rows
            return result

    def delete_rows(self, workspace_id: str, table: str, ids: Sequence[Any]) -> MutationResult:
        with track_operation(
            self.audit_sink, "delete_rows", workspace_id, "table", table, id_count=len(ids)
        ) as audit:
            result = self.mutations.delete_rows(workspace_id, table, ids)
            audit["affected_rows"] = result.affected_rows
            return result

    # ============================================
    # DDL
    # ============================================

    def create_table(self, workspace_id: str, definition: TableDefinition) -> Schema:
        with track_operation(
            self.audit_sink, "create_table", workspace_id, "table", definition.name,
            columns=[c.name for c in definition.columns], primary_key=definition.primary_key,
        ):
            return self.ddl.create_table(workspace_id, definition)

    def alter_table(
        self, workspace_id: str, table: str, request: AlterTableRequest
    ) -> AlterTableResult:
        with track_operation(
            self.audit_sink, "alter_table", workspace_id, "table", table,
            add_columns=[c.name for c in request.add_columns],
            alter_columns=[c.name for c in request.alter_columns],
            drop_columns=request.drop_columns,
            rename_to=request.rename_to,
        ) as audit:
            result = self.ddl.alter_table(workspace_id, table, request)
            audit["applied"] = result.applied
            return result

    def drop_table(self, workspace_id: str, table: str) -> None:
        with track_operation(self.audit_sink, "drop_table", workspace_id, "table", table):
            self.ddl.drop_table(workspace_id, table)

    # ============================================
    # Routines
    # ============================================

    def list_routines(self, workspace_id: str) -> list[Routine]:
        with track_operation(None, "list_routines", workspace_id):
            return self.routines.list_routines(workspace_id)

    def get_routine(self, workspace_id: str, name: str, kind: RoutineKind) -> Routine:
        with track_operation(None, "get_routine", workspace_id, "routine", name, kind=kind.value):
            return self.routines.get_routine(workspace_id, name, kind)

    def get_routine_body(self, workspace_id: str, name: str, kind: RoutineKind) -> str:
        with track_operation(None, "get_routine_body", workspace_id, "routine", name, kind=kind.value):
            return self.routines.get_routine_body(workspace_id, name, kind)

    def create_routine(self, workspace_id: str, definition: str) -> None:
        with track_operation(
            self.audit_sink, "create_routine", workspace_id, "routine",
            definition_preview=definition.strip()[:100],
        ):
            self.routines.create_routine(workspace_id, definition)

    def drop_routine(self, workspace_id: str, name: str, kind: RoutineKind) -> None:
        with track_operation(
            self.audit_sink, "drop_routine", workspace_id, "routine", name, kind=kind.value
        ):
            self.routines.drop_routine(workspace_id, name, kind)

    # ============================================
    # Database roles
    # ============================================

    def list_roles(self, workspace_id: str) -> list[DatabaseRole]:
        with track_operation(None, "list_roles", workspace_id):
            return self.credentials.list_roles(workspace_id)

    def create_role(
        self, workspace_id: str, role_type: RoleType, expires_at: datetime | None = None
    ) -> IssuedCredential:
        with track_operation(
            self.audit_sink, "create_role", workspace_id, "database_role",
            role_type=role_type.value,
        ) as audit:
            issued = self.credentials.create_role(workspace_id, role_type, expires_at)
            audit["role_id"] = issued.role.id
            audit["db_username"] = issued.role.db_username
            return issued

    def rotate_role(self, workspace_id: str, role_id: str) -> IssuedCredential:
        with track_operation(self.audit_sink, "rotate_role", workspace_id, "database_role", role_id):
            return self.credentials.rotate_role(workspace_id, role_id)

    def revoke_role(self, workspace_id: str, role_id: str, reason: str) -> DatabaseRole:
        with track_operation(
            self.audit_sink, "revoke_role", workspace_id, "database_role", role_id,
            reason=(reason or "").strip(),
        ):
            return self.credentials.revoke_role(workspace_id, role_id, reason)

    # ============================================
    # SQL console
    # ============================================

    def execute_sql(self, workspace_id: str, statement: str) -> SQLResult:
        with track_operation(
            self.audit_sink, "execute_sql", workspace_id, "sql",
            statement_preview=(statement or "").strip()[:100],
        ) as audit:
            result = self.console.execute_sql(workspace_id, statement)
            audit["row_count"] = len(result.rows)
            return result

    def query_history(self, workspace_id: str) -> list[QueryHistoryItem]:
        return self.console.query_history(workspace_id)

    def database_stats(self, workspace_id: str) -> DatabaseStats:
        with track_operation(None, "database_stats", workspace_id):
            tables = self.catalog.list_tables(workspace_id)
            routines = self.routines.list_routines(workspace_id)
            roles = self.credentials.list_roles(workspace_id)
            return DatabaseStats(
                workspace_id=workspace_id,
                table_count=len(tables),
                total_rows=sum(t.estimated_row_count for t in tables),
                routine_count=len(routines),
                active_role_count=sum(1 for r in roles if r.status == RoleStatus.ACTIVE),
            )
