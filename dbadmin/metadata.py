"""Metadata database: role records and the operations audit trail.

Stored in a single DuckDB file next to the workspace databases. Role rows
hold only a SHA-256 hash of each secret.
"""

import json
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator

import duckdb
import structlog

from dbadmin import metrics

logger = structlog.get_logger()


METADATA_SCHEMA = """
CREATE SEQUENCE IF NOT EXISTS operations_log_seq;

CREATE TABLE IF NOT EXISTS database_roles (
    id VARCHAR PRIMARY KEY,
    workspace_id VARCHAR NOT NULL,
    db_username VARCHAR NOT NULL,
    role_type VARCHAR NOT NULL,
    status VARCHAR NOT NULL,
    secret_hash VARCHAR NOT NULL,
    created_at TIMESTAMP NOT NULL,
    expires_at TIMESTAMP,
    last_rotated_at TIMESTAMP,
    revoked_at TIMESTAMP,
    revoked_reason VARCHAR
);

CREATE TABLE IF NOT EXISTS operations_log (
    id BIGINT DEFAULT nextval('operations_log_seq') PRIMARY KEY,
    timestamp TIMESTAMPTZ DEFAULT now(),
    request_id VARCHAR,
    workspace_id VARCHAR,
    operation VARCHAR NOT NULL,
    resource_type VARCHAR,
    resource_id VARCHAR,
    details JSON,
    duration_ms INTEGER,
    status VARCHAR NOT NULL,
    error_message VARCHAR
);
"""

ROLE_COLUMNS = (
    "id, workspace_id, db_username, role_type, status, secret_hash, created_at, "
    "expires_at, last_rotated_at, revoked_at, revoked_reason"
)


def to_db_timestamp(value: datetime | None) -> datetime | None:
    """Store timestamps as naive UTC."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def from_db_timestamp(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc)


class MetadataDB:
    """
    Connection management for the metadata.duckdb file.

    Every call opens and closes its own connection, so a single instance can be
    shared across request threads.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)

    @property
    def db_path(self) -> Path:
        return self._db_path

    def initialize(self) -> None:
        """Create the metadata schema if it does not exist yet."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = duckdb.connect(str(self._db_path))
        try:
            conn.execute(METADATA_SCHEMA)
            conn.commit()
            logger.info("metadata_db_schema_created", path=str(self._db_path))
        finally:
            conn.close()

    @contextmanager
    def connection(self) -> Generator[duckdb.DuckDBPyConnection, None, None]:
        """
        Get a connection to the metadata database.

        Usage:
            with metadata_db.connection() as conn:
                conn.execute("SELECT * FROM database_roles")
        """
        conn = duckdb.connect(str(self._db_path))
        try:
            yield conn
        finally:
            conn.close()

    def execute(self, query: str, params: list | None = None) -> list[tuple]:
        """Execute a read query and return results."""
        start_time = time.time()
        try:
            with self.connection() as conn:
                if params:
                    return conn.execute(query, params).fetchall()
                return conn.execute(query).fetchall()
        finally:
            duration = time.time() - start_time
            metrics.METADATA_QUERIES_TOTAL.labels(operation="read").inc()
            metrics.METADATA_QUERY_DURATION.labels(operation="read").observe(duration)

    def execute_one(self, query: str, params: list | None = None) -> tuple | None:
        """Execute a query and return single result."""
        results = self.execute(query, params)
        return results[0] if results else None

    def execute_write(self, query: str, params: list | None = None) -> None:
        """Execute a write query (INSERT, UPDATE, DELETE)."""
        start_time = time.time()
        try:
            with self.connection() as conn:
                if params:
                    conn.execute(query, params)
                else:
                    conn.execute(query)
                conn.commit()
        finally:
            duration = time.time() - start_time
            metrics.METADATA_QUERIES_TOTAL.labels(operation="write").inc()
            metrics.METADATA_QUERY_DURATION.labels(operation="write").observe(duration)

    def execute_update(self, query: str, params: list | None = None) -> int:
        """Execute an UPDATE ... RETURNING statement and return the number of rows it changed."""
        start_time = time.time()
        try:
            with self.connection() as conn:
                changed = conn.execute(query, params or []).fetchall()
                conn.commit()
                return len(changed)
        finally:
            duration = time.time() - start_time
            metrics.METADATA_QUERIES_TOTAL.labels(operation="write").inc()
            metrics.METADATA_QUERY_DURATION.labels(operation="write").observe(duration)

    # ========================================
    # Database roles
    # ========================================

    @staticmethod
    def _role_row_to_dict(row: tuple) -> dict[str, Any]:
        return {
            "id": row[0],
            "workspace_id": row[1],
            "db_username": row[2],
            "role_type": row[3],
            "status": row[4],
            "secret_hash": row[5],
            "created_at": from_db_timestamp(row[6]),
            "expires_at": from_db_timestamp(row[7]),
            "last_rotated_at": from_db_timestamp(row[8]),
            "revoked_at": from_db_timestamp(row[9]),
            "revoked_reason": row[10],
        }

    def insert_role(
        self,
        role_id: str,
        workspace_id: str,
        db_username: str,
        role_type: str,
        secret_hash: str,
        created_at: datetime,
        expires_at: datetime | None = None,
    ) -> dict[str, Any]:
        self.execute_write(
            f"""
            INSERT INTO database_roles ({ROLE_COLUMNS})
            VALUES (?, ?, ?, ?, 'active', ?, ?, ?, NULL, NULL, NULL)
            """,
            [
                role_id,
                workspace_id,
                db_username,
                role_type,
                secret_hash,
                to_db_timestamp(created_at),
                to_db_timestamp(expires_at),
            ],
        )
        return self.get_role(role_id)

    def get_role(self, role_id: str) -> dict[str, Any] | None:
        row = self.execute_one(
            f"SELECT {ROLE_COLUMNS} FROM database_roles WHERE id = ?", [role_id]
        )
        return self._role_row_to_dict(row) if row else None

    def get_role_by_username(self, db_username: str) -> dict[str, Any] | None:
        row = self.execute_one(
            f"SELECT {ROLE_COLUMNS} FROM database_roles WHERE db_username = ?",
            [db_username],
        )
        return self._role_row_to_dict(row) if row else None

    def list_roles(self, workspace_id: str) -> list[dict[str, Any]]:
        rows = self.execute(
            f"""
            SELECT {ROLE_COLUMNS} FROM database_roles
            WHERE workspace_id = ?
            ORDER BY created_at DESC, id DESC
            """,
            [workspace_id],
        )
        return [self._role_row_to_dict(row) for row in rows]

    def update_role_secret(self, role_id: str, secret_hash: str, rotated_at: datetime) -> int:
        """
        Replace the secret hash of an active role in a single statement.

        Returns 0 when the role is no longer active.
        """
        return self.execute_update(
            """
            UPDATE database_roles
            SET secret_hash = ?, last_rotated_at = ?
            WHERE id = ? AND status = 'active'
            RETURNING id
            """,
            [secret_hash, to_db_timestamp(rotated_at), role_id],
        )

    def set_role_status(
        self,
        role_id: str,
        status: str,
        changed_at: datetime,
        reason: str | None = None,
    ) -> int:
        """Move an active role to a terminal status. Returns 0 when it was not active."""
        return self.execute_update(
            """
            UPDATE database_roles
            SET status = ?, revoked_at = ?, revoked_reason = ?
            WHERE id = ? AND status = 'active'
            RETURNING id
            """,
            [status, to_db_timestamp(changed_at), reason, role_id],
        )

    # ========================================
    # Operations logging
    # ========================================

    def log_operation(
        self,
        operation: str,
        status: str,
        workspace_id: str | None = None,
        request_id: str | None = None,
        resource_type: str | None = None,
        resource_id: str | None = None,
        details: dict | None = None,
        duration_ms: int | None = None,
        error_message: str | None = None,
    ) -> None:
        """Log an operation to the audit trail."""
        self.execute_write(
            """
            INSERT INTO operations_log
            (request_id, workspace_id, operation, resource_type, resource_id,
             details, duration_ms, status, error_message)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                request_id,
                workspace_id,
                operation,
                resource_type,
                resource_id,
                json.dumps(details, default=str) if details is not None else None,
                duration_ms,
                status,
                error_message,
            ],
        )

    def list_operations(
        self, workspace_id: str | None = None, limit: int = 100
    ) -> list[dict[str, Any]]:
        """Recent audit entries, newest first."""
        query = """
            SELECT operation, status, workspace_id, resource_type, resource_id,
                   details, duration_ms, error_message, request_id
            FROM operations_log
        """
        params: list[Any] = []
        if workspace_id is not None:
            query += " WHERE workspace_id = ?"
            params.append(workspace_id)
        query += " ORDER BY id DESC LIMIT ?"
        params.append(limit)
        rows = self.execute(query, params)
        return [
            {
                "operation": r[0],
                "status": r[1],
                "workspace_id": r[2],
                "resource_type": r[3],
                "resource_id": r[4],
                "details": json.loads(r[5]) if r[5] else None,
                "duration_ms": r[6],
                "error_message": r[7],
                "request_id": r[8],
            }
            for r in rows
        ]
