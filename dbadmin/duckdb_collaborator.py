"""DuckDB-backed SQL collaborator.

Storage layout
==============
- Workspace = file (e.g., /data/workspaces/ws_123.duckdb)
- Tables live in the ``main`` schema of the workspace file
- Role records and the audit trail live in the shared metadata.duckdb

A connection is opened per call and closed afterwards. Every call runs under a
watchdog timer that interrupts the connection after ``query_timeout_seconds``.
"""

import hashlib
import re
import secrets
import threading
import time
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator

import duckdb
import structlog

from dbadmin import metrics
from dbadmin.collaborator import RowPage
from dbadmin.config import settings
from dbadmin.dialects import DuckDBDialect
from dbadmin.errors import (
    AlreadyExists,
    AlreadyRevoked,
    AmbiguousTarget,
    CollaboratorError,
    DatabaseAdminError,
    InvalidCredentials,
    InvalidRequest,
    NotFound,
    PermissionDenied,
    Timeout,
)
from dbadmin.filters import BoundFilter, RowQuery
from dbadmin.metadata import MetadataDB
from dbadmin.models.entities import (
    ROLE_PRIVILEGES,
    AlterTableRequest,
    AlterTableResult,
    Column,
    ColumnDefinition,
    DatabaseRole,
    FilterOperator,
    ForeignKey,
    Privilege,
    RoleStatus,
    RoleType,
    Schema,
    SQLResult,
    Table,
    TableDefinition,
)
from dbadmin.sqltext import leading_keyword, normalize_sql
from dbadmin.values import TypedRecord, TypedValue

logger = structlog.get_logger()

WORKSPACE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")

_COMPARISONS = {
    FilterOperator.EQ: "=",
    FilterOperator.NEQ: "<>",
    FilterOperator.GT: ">",
    FilterOperator.GTE: ">=",
    FilterOperator.LT: "<",
    FilterOperator.LTE: "<=",
    FilterOperator.LIKE: "LIKE",
}

# Leading keyword -> privilege needed to run the statement
_STATEMENT_PRIVILEGES = {
    "SELECT": Privilege.SELECT,
    "WITH": Privilege.SELECT,
    "VALUES": Privilege.SELECT,
    "FROM": Privilege.SELECT,
    "SHOW": Privilege.SELECT,
    "DESCRIBE": Privilege.SELECT,
    "SUMMARIZE": Privilege.SELECT,
    "EXPLAIN": Privilege.SELECT,
    "INSERT": Privilege.INSERT,
    "UPDATE": Privilege.UPDATE,
    "DELETE": Privilege.DELETE,
    "TRUNCATE": Privilege.DELETE,
    "CREATE": Privilege.CREATE,
    "ALTER": Privilege.ALTER,
    "DROP": Privilege.DROP,
}

_DML_IN_CTE = re.compile(r"\b(INSERT|UPDATE|DELETE)\b")


def hash_secret(secret: str) -> str:
    """Hash a role secret using SHA256."""
    return hashlib.sha256(secret.encode()).hexdigest()


def verify_secret_hash(secret: str, stored_hash: str) -> bool:
    """Verify a secret against its stored hash (constant-time)."""
    return secrets.compare_digest(hash_secret(secret), stored_hash)


def classify_statement(statement: str) -> Privilege | None:
    """
    Return the privilege a single SQL statement requires.

    Returns None for statements no role template covers (ATTACH, COPY, SET...).

    Raises:
        PermissionDenied: if the text holds more than one statement
    """
    text = normalize_sql(statement).strip().rstrip(";").strip()
    if not text:
        return None
    if ";" in text:
        raise PermissionDenied("Only a single statement can be executed per call")
    keyword = leading_keyword(text)
    privilege = _STATEMENT_PRIVILEGES.get(keyword)
    if keyword == "WITH":
        match = _DML_IN_CTE.search(text)
        if match:
            privilege = Privilege(match.group(1).upper())
    return privilege


class DuckDBCollaborator:
    """
    SQL collaborator over per-workspace DuckDB files.

    Args:
        workspaces_dir: Directory holding ``{workspace_id}.duckdb`` files
        metadata: Metadata database for role records
        query_timeout_seconds: Interrupt calls running longer than this
    """

    dialect = DuckDBDialect()

    def __init__(
        self,
        workspaces_dir: Path | None = None,
        metadata: MetadataDB | None = None,
        query_timeout_seconds: float | None = None,
    ) -> None:
        self._workspaces_dir = Path(workspaces_dir or settings.workspaces_dir)
        self._metadata = metadata or MetadataDB(settings.metadata_db_path)
        self._timeout = query_timeout_seconds or settings.query_timeout_seconds
        self._workspaces_dir.mkdir(parents=True, exist_ok=True)
        self._metadata.initialize()

    @property
    def metadata(self) -> MetadataDB:
        return self._metadata

    # ========================================
    # Connection handling
    # ========================================

    def get_workspace_path(self, workspace_id: str) -> Path:
        if not WORKSPACE_ID_PATTERN.match(workspace_id):
            raise InvalidRequest(
                f"Invalid workspace id: {workspace_id!r}",
                {"workspace_id": workspace_id},
            )
        return self._workspaces_dir / f"{workspace_id}.duckdb"

    def quote(self, identifier: str) -> str:
        return self.dialect.quote_identifier(identifier)

    def _translate(self, exc: duckdb.Error, timed_out: bool) -> DatabaseAdminError:
        message = str(exc)
        if timed_out or isinstance(exc, duckdb.InterruptException):
            return Timeout(
                f"Query exceeded {self._timeout}s and was interrupted",
                {"timeout_seconds": self._timeout},
            )
        if isinstance(exc, duckdb.CatalogException):
            lowered = message.lower()
            if "does not exist" in lowered:
                return NotFound(message)
            if "already exists" in lowered:
                return AlreadyExists(message)
        return CollaboratorError(message, {"engine_error": type(exc).__name__})

    @contextmanager
    def session(
        self, workspace_id: str, operation: str
    ) -> Generator[duckdb.DuckDBPyConnection, None, None]:
        """
        Open a guarded connection to a workspace database.

        Engine exceptions raised inside the block are translated into the
        administration error taxonomy.
        """
        path = self.get_workspace_path(workspace_id)
        start_time = time.perf_counter()
        fired = threading.Event()
        conn = None
        timer = None
        status = "success"

        try:
            conn = duckdb.connect(
                str(path),
                config={
                    "threads": settings.duckdb_threads,
                    "memory_limit": settings.duckdb_memory_limit,
                },
            )

            def _interrupt() -> None:
                fired.set()
                conn.interrupt()

            timer = threading.Timer(self._timeout, _interrupt)
            timer.daemon = True
            timer.start()
            yield conn
        except duckdb.Error as e:
            translated = self._translate(e, fired.is_set())
            status = "timeout" if isinstance(translated, Timeout) else "error"
            logger.warning(
                "collaborator_call_failed",
                workspace_id=workspace_id,
                operation=operation,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise translated from e
        except DatabaseAdminError:
            status = "error"
            raise
        finally:
            if timer is not None:
                timer.cancel()
            if conn is not None:
                conn.close()
            duration = time.perf_counter() - start_time
            metrics.COLLABORATOR_CALLS.labels(operation=operation, status=status).inc()
            metrics.COLLABORATOR_DURATION.labels(operation=operation).observe(duration)

    @staticmethod
    def _rows_as_dicts(cursor: duckdb.DuckDBPyConnection, rows: list[tuple]) -> tuple[list[str], list[dict[str, Any]]]:
        columns = [d[0] for d in cursor.description] if cursor.description else []
        return columns, [dict(zip(columns, row)) for row in rows]

    # ========================================
    # Generic SQL
    # ========================================

    def execute_sql(
        self,
        workspace_id: str,
        statement: str,
        params: list[Any] | None = None,
        max_rows: int | None = None,
    ) -> SQLResult:
        """
        Execute SQL text against a workspace database.

        With ``max_rows`` the result is cut after that many rows and flagged
        ``truncated``. DML statements report ``affected_rows``.
        """
        start_time = time.perf_counter()
        with self.session(workspace_id, "execute_sql") as conn:
            if params:
                conn.execute(statement, params)
            else:
                conn.execute(statement)

            if conn.description is None:
                rows: list[tuple] = []
                truncated = False
            elif max_rows is not None:
                rows = conn.fetchmany(max_rows + 1)
                truncated = len(rows) > max_rows
                rows = rows[:max_rows]
            else:
                rows = conn.fetchall()
                truncated = False
            columns, records = self._rows_as_dicts(conn, rows)

        affected_rows = None
        if leading_keyword(statement) in ("INSERT", "UPDATE", "DELETE") and columns == ["Count"] and records:
            affected_rows = int(records[0]["Count"])

        return SQLResult(
            columns=columns,
            rows=records,
            affected_rows=affected_rows,
            duration_ms=int((time.perf_counter() - start_time) * 1000),
            truncated=truncated,
        )

    # ========================================
    # Introspection
    # ========================================

    def list_tables(self, workspace_id: str) -> list[Table]:
        with self.session(workspace_id, "list_tables") as conn:
            rows = conn.execute(
                """
                SELECT table_name, estimated_size, column_count
                FROM duckdb_tables()
                WHERE schema_name = 'main'
                  AND database_name = current_database()
                  AND NOT temporary
                ORDER BY table_name
                """
            ).fetchall()
        return [
            Table(name=r[0], estimated_row_count=r[1] or 0, column_count=r[2] or 0)
            for r in rows
        ]

    def _fetch_schema(self, conn: duckdb.DuckDBPyConnection, table: str) -> Schema:
        exists = conn.execute(
            """
            SELECT 1 FROM duckdb_tables()
            WHERE schema_name = 'main'
              AND database_name = current_database()
              AND table_name = ?
            """,
            [table],
        ).fetchone()
        if not exists:
            raise NotFound(f"Table {table} not found", {"table": table})

        pk_row = conn.execute(
            """
            SELECT constraint_column_names
            FROM duckdb_constraints()
            WHERE schema_name = 'main'
              AND database_name = current_database()
              AND table_name = ?
              AND constraint_type = 'PRIMARY KEY'
            """,
            [table],
        ).fetchone()
        primary_key = list(pk_row[0]) if pk_row and pk_row[0] else []

        column_rows = conn.execute(
            """
            SELECT column_name, data_type, is_nullable, column_default, ordinal_position
            FROM information_schema.columns
            WHERE table_schema = 'main'
              AND table_catalog = current_database()
              AND table_name = ?
            ORDER BY ordinal_position
            """,
            [table],
        ).fetchall()

        columns = [
            Column(
                name=r[0],
                data_type=r[1],
                nullable=r[2] == "YES",
                default_value=r[3],
                is_primary_key_member=r[0] in primary_key,
                ordinal_position=r[4],
            )
            for r in column_rows
        ]
        return Schema(table=table, columns=columns, primary_key=primary_key)

    def get_table_schema(self, workspace_id: str, table: str) -> Schema:
        with self.session(workspace_id, "get_table_schema") as conn:
            return self._fetch_schema(conn, table)

    def list_foreign_keys(self, workspace_id: str) -> list[ForeignKey]:
        """Foreign keys declared on tables of the ``main`` schema."""
        with self.session(workspace_id, "list_foreign_keys") as conn:
            rows = conn.execute(
                """
                SELECT constraint_name, table_name, constraint_column_names,
                       referenced_table, referenced_column_names
                FROM duckdb_constraints()
                WHERE schema_name = 'main'
                  AND database_name = current_database()
                  AND constraint_type = 'FOREIGN KEY'
                  AND referenced_table IS NOT NULL
                ORDER BY table_name, constraint_index
                """
            ).fetchall()
        return [
            ForeignKey(
                constraint_name=r[0] or f"{r[1]}_{'_'.join(r[2])}_fkey",
                table=r[1],
                columns=list(r[2]),
                referenced_table=r[3],
                referenced_columns=list(r[4]),
            )
            for r in rows
        ]

    # ========================================
    # Row operations
    # ========================================

    def _where_clause(self, filters: list[BoundFilter]) -> tuple[str, list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []
        for flt in filters:
            column = self.quote(flt.column)
            if flt.operator == FilterOperator.IS_NULL:
                clauses.append(f"{column} IS NULL")
            elif flt.operator == FilterOperator.IS_NOT_NULL:
                clauses.append(f"{column} IS NOT NULL")
            elif flt.operator == FilterOperator.IN:
                placeholders = ", ".join("?" for _ in flt.values)
                clauses.append(f"{column} IN ({placeholders})")
                params.extend(v.value for v in flt.values)
            else:
                clauses.append(f"{column} {_COMPARISONS[flt.operator]} ?")
                params.append(flt.value.value)
        if not clauses:
            return "", params
        return " WHERE " + " AND ".join(clauses), params

    def query_rows(self, workspace_id: str, table: str, query: RowQuery) -> RowPage:
        """
        Fetch one page of rows plus the filtered total.

        The physical ``rowid`` is the last sort key so pages never overlap.
        """
        table_sql = self.quote(table)
        where_sql, params = self._where_clause(query.filters)
        order_keys = [f"{self.quote(k.column)} {k.direction.value.upper()}" for k in query.order_by]
        order_keys.append("rowid")

        with self.session(workspace_id, "query_rows") as conn:
            total_count = conn.execute(
                f"SELECT COUNT(*) FROM {table_sql}{where_sql}", params
            ).fetchone()[0]
            conn.execute(
                f"SELECT * FROM {table_sql}{where_sql} "
                f"ORDER BY {', '.join(order_keys)} LIMIT ? OFFSET ?",
                params + [query.limit, query.offset],
            )
            columns, rows = self._rows_as_dicts(conn, conn.fetchall())

        return RowPage(columns=columns, rows=rows, total_count=total_count)

    def insert_row(self, workspace_id: str, table: str, values: TypedRecord) -> int:
        table_sql = self.quote(table)
        with self.session(workspace_id, "insert_row") as conn:
            if values:
                columns = ", ".join(self.quote(name) for name in values)
                placeholders = ", ".join("?" for _ in values)
                result = conn.execute(
                    f"INSERT INTO {table_sql} ({columns}) VALUES ({placeholders})",
                    [v.value for v in values.values()],
                ).fetchone()
            else:
                result = conn.execute(f"INSERT INTO {table_sql} DEFAULT VALUES").fetchone()
        return int(result[0]) if result else 0

    def update_row(
        self, workspace_id: str, table: str, key: TypedRecord, changes: TypedRecord
    ) -> int:
        """Update the addressed row inside a transaction; more than one match rolls back."""
        set_sql = ", ".join(f"{self.quote(name)} = ?" for name in changes)
        where_sql = " AND ".join(f"{self.quote(name)} = ?" for name in key)
        params = [v.value for v in changes.values()] + [v.value for v in key.values()]

        with self.session(workspace_id, "update_row") as conn:
            conn.execute("BEGIN TRANSACTION")
            result = conn.execute(
                f"UPDATE {self.quote(table)} SET {set_sql} WHERE {where_sql}", params
            ).fetchone()
            affected = int(result[0]) if result else 0
            if affected > 1:
                conn.execute("ROLLBACK")
                raise AmbiguousTarget(
                    f"Update on {table} matched {affected} rows; nothing was applied",
                    {"table": table, "matched_rows": affected},
                )
            conn.execute("COMMIT")
        return affected

    def delete_rows(
        self,
        workspace_id: str,
        table: str,
        key_columns: list[str],
        keys: list[tuple[TypedValue, ...]],
    ) -> int:
        if not keys:
            return 0
        if len(key_columns) == 1:
            placeholders = ", ".join("?" for _ in keys)
            where_sql = f"{self.quote(key_columns[0])} IN ({placeholders})"
            params = [k[0].value for k in keys]
        else:
            tuple_sql = "(" + " AND ".join(f"{self.quote(c)} = ?" for c in key_columns) + ")"
            where_sql = " OR ".join(tuple_sql for _ in keys)
            params = [v.value for k in keys for v in k]

        with self.session(workspace_id, "delete_rows") as conn:
            result = conn.execute(
                f"DELETE FROM {self.quote(table)} WHERE {where_sql}", params
            ).fetchone()
        return int(result[0]) if result else 0

    # ========================================
    # DDL
    # ========================================

    def _column_sql(self, column: ColumnDefinition, inline_constraints: bool = True) -> str:
        col_def = f"{self.quote(column.name)} {column.type}"
        if inline_constraints and not column.nullable:
            col_def += " NOT NULL"
        if column.default is not None:
            col_def += f" DEFAULT {column.default}"
        if inline_constraints and column.unique:
            col_def += " UNIQUE"
        return col_def

    def create_table(self, workspace_id: str, definition: TableDefinition) -> None:
        parts = [self._column_sql(c) for c in definition.columns]
        if definition.primary_key:
            pk_cols = ", ".join(self.quote(c) for c in definition.primary_key)
            parts.append(f"PRIMARY KEY ({pk_cols})")
        create_sql = f"CREATE TABLE {self.quote(definition.name)} ({', '.join(parts)})"

        with self.session(workspace_id, "create_table") as conn:
            conn.execute(create_sql)

        logger.info(
            "table_created",
            workspace_id=workspace_id,
            table_name=definition.name,
            column_count=len(definition.columns),
            primary_key=definition.primary_key,
        )

    def _alter_steps(self, table: str, request: AlterTableRequest) -> list[tuple[str, list[str]]]:
        """Expand an alter request into labelled steps of one or more statements."""
        table_sql = self.quote(table)
        steps: list[tuple[str, list[str]]] = []

        for column in request.add_columns:
            statements = [
                f"ALTER TABLE {table_sql} ADD COLUMN {self._column_sql(column, inline_constraints=False)}"
            ]
            if not column.nullable:
                statements.append(
                    f"ALTER TABLE {table_sql} ALTER COLUMN {self.quote(column.name)} SET NOT NULL"
                )
            if column.unique:
                index_name = self.quote(f"{table}_{column.name}_key")
                statements.append(
                    f"CREATE UNIQUE INDEX {index_name} ON {table_sql} ({self.quote(column.name)})"
                )
            steps.append((f"add_column:{column.name}", statements))

        for alter in request.alter_columns:
            column_sql = self.quote(alter.name)
            if alter.new_type is not None:
                steps.append((
                    f"alter_column:{alter.name}:type",
                    [f"ALTER TABLE {table_sql} ALTER COLUMN {column_sql} SET DATA TYPE {alter.new_type}"],
                ))
            if alter.nullable is not None:
                action = "DROP NOT NULL" if alter.nullable else "SET NOT NULL"
                steps.append((
                    f"alter_column:{alter.name}:nullable",
                    [f"ALTER TABLE {table_sql} ALTER COLUMN {column_sql} {action}"],
                ))
            if alter.default is not None:
                action = f"SET DEFAULT {alter.default}" if alter.default != "" else "DROP DEFAULT"
                steps.append((
                    f"alter_column:{alter.name}:default",
                    [f"ALTER TABLE {table_sql} ALTER COLUMN {column_sql} {action}"],
                ))
            if alter.new_name is not None and alter.new_name != alter.name:
                steps.append((
                    f"alter_column:{alter.name}:rename",
                    [f"ALTER TABLE {table_sql} RENAME COLUMN {column_sql} TO {self.quote(alter.new_name)}"],
                ))

        for name in request.drop_columns:
            steps.append((
                f"drop_column:{name}",
                [f"ALTER TABLE {table_sql} DROP COLUMN {self.quote(name)}"],
            ))

        if request.rename_to and request.rename_to != table:
            steps.append((
                f"rename_table:{request.rename_to}",
                [f"ALTER TABLE {table_sql} RENAME TO {self.quote(request.rename_to)}"],
            ))
        return steps

    def alter_table(
        self, workspace_id: str, table: str, request: AlterTableRequest
    ) -> AlterTableResult:
        """
        Apply an alter request step by step, each step committed on its own.

        DuckDB auto-commits every ALTER, so a failure midway leaves the earlier
        steps in place.
        """
        result = AlterTableResult(table=table)

        for label, statements in self._alter_steps(table, request):
            try:
                with self.session(workspace_id, "alter_table") as conn:
                    for statement in statements:
                        conn.execute(statement)
            except DatabaseAdminError as e:
                if not result.applied:
                    raise
                result.failed_step = label
                result.error = e.message
                logger.warning(
                    "alter_table_step_failed",
                    workspace_id=workspace_id,
                    table_name=table,
                    step=label,
                    applied=result.applied,
                    error=e.message,
                )
                return result
            result.applied.append(label)

        return result

    def drop_table(self, workspace_id: str, table: str) -> None:
        with self.session(workspace_id, "drop_table") as conn:
            conn.execute(f"DROP TABLE {self.quote(table)}")
        logger.info("table_dropped", workspace_id=workspace_id, table_name=table)

    # ========================================
    # Roles
    # ========================================

    @staticmethod
    def _to_role(record: dict[str, Any]) -> DatabaseRole:
        return DatabaseRole(
            id=record["id"],
            workspace_id=record["workspace_id"],
            db_username=record["db_username"],
            role_type=RoleType(record["role_type"]),
            status=RoleStatus(record["status"]),
            created_at=record["created_at"],
            expires_at=record["expires_at"],
            last_rotated_at=record["last_rotated_at"],
            revoked_at=record["revoked_at"],
            revoked_reason=record["revoked_reason"],
        )

    def _require_role(self, workspace_id: str, role_id: str) -> dict[str, Any]:
        record = self._metadata.get_role(role_id)
        if record is None or record["workspace_id"] != workspace_id:
            raise NotFound(
                f"Role {role_id} not found",
                {"workspace_id": workspace_id, "role_id": role_id},
            )
        return record

    def list_roles(self, workspace_id: str) -> list[DatabaseRole]:
        return [self._to_role(r) for r in self._metadata.list_roles(workspace_id)]

    def get_role(self, workspace_id: str, role_id: str) -> DatabaseRole | None:
        record = self._metadata.get_role(role_id)
        if record is None or record["workspace_id"] != workspace_id:
            return None
        return self._to_role(record)

    def create_role(
        self,
        workspace_id: str,
        role_type: RoleType,
        db_username: str,
        secret: str,
        expires_at: datetime | None = None,
    ) -> DatabaseRole:
        self.get_workspace_path(workspace_id)
        if self._metadata.get_role_by_username(db_username) is not None:
            raise AlreadyExists(
                f"Database user {db_username} already exists",
                {"db_username": db_username},
            )
        record = self._metadata.insert_role(
            role_id=f"role_{uuid.uuid4().hex[:16]}",
            workspace_id=workspace_id,
            db_username=db_username,
            role_type=role_type.value,
            secret_hash=hash_secret(secret),
            created_at=datetime.now(timezone.utc),
            expires_at=expires_at,
        )
        return self._to_role(record)

    def rotate_role(self, workspace_id: str, role_id: str, secret: str) -> DatabaseRole:
        record = self._require_role(workspace_id, role_id)
        if record["status"] != RoleStatus.ACTIVE.value:
            raise NotFound(
                f"Role {role_id} is not active",
                {"role_id": role_id, "status": record["status"]},
            )
        changed = self._metadata.update_role_secret(
            role_id, hash_secret(secret), datetime.now(timezone.utc)
        )
        if not changed:
            # Revoked or expired between the status read and the update
            current = self._require_role(workspace_id, role_id)
            raise NotFound(
                f"Role {role_id} is not active",
                {"role_id": role_id, "status": current["status"]},
            )
        return self._to_role(self._require_role(workspace_id, role_id))

    def revoke_role(
        self,
        workspace_id: str,
        role_id: str,
        reason: str,
        status: RoleStatus = RoleStatus.REVOKED,
    ) -> DatabaseRole:
        """
        Move an active role to ``status``.

        Raises:
            NotFound: role missing or foreign
            AlreadyRevoked: the role is no longer active
        """
        self._require_role(workspace_id, role_id)
        changed = self._metadata.set_role_status(
            role_id, status.value, datetime.now(timezone.utc), reason
        )
        if not changed:
            current = self._require_role(workspace_id, role_id)
            raise AlreadyRevoked(
                f"Role {role_id} is already {current['status']}",
                {"role_id": role_id, "status": current["status"]},
            )
        return self._to_role(self._require_role(workspace_id, role_id))

    # ========================================
    # Role-scoped execution
    # ========================================

    def authenticate(self, db_username: str, secret: str) -> DatabaseRole:
        """
        Check a role's username and secret.

        Raises:
            InvalidCredentials: unknown user, wrong secret, or role not active
        """
        record = self._metadata.get_role_by_username(db_username)
        if record is None or not verify_secret_hash(secret, record["secret_hash"]):
            raise InvalidCredentials("Invalid database credentials")
        if record["status"] != RoleStatus.ACTIVE.value:
            raise InvalidCredentials(f"Database role is {record['status']}")
        expires_at = record["expires_at"]
        if expires_at is not None and expires_at <= datetime.now(timezone.utc):
            raise InvalidCredentials("Database role has expired")
        return self._to_role(record)

    def execute_as(
        self, workspace_id: str, db_username: str, secret: str, statement: str
    ) -> SQLResult:
        """
        Execute one statement with the privileges of a database role.

        Raises:
            InvalidCredentials: if authentication fails
            PermissionDenied: if the role's template does not cover the statement
        """
        role = self.authenticate(db_username, secret)
        if role.workspace_id != workspace_id:
            raise PermissionDenied(
                f"Role {db_username} has no access to workspace {workspace_id}"
            )
        required = classify_statement(statement)
        if required is None or required not in ROLE_PRIVILEGES[role.role_type]:
            logger.warning(
                "role_permission_denied",
                workspace_id=workspace_id,
                db_username=db_username,
                role_type=role.role_type.value,
                required=required.value if required else None,
            )
            raise PermissionDenied(
                f"Role {db_username} ({role.role_type.value}) may not run this statement",
                {"required_privilege": required.value if required else None},
            )
        return self.execute_sql(workspace_id, statement, max_rows=settings.sql_max_rows)
