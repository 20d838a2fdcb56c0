"""Ad-hoc SQL console with a per-workspace query history."""

import re
from collections import deque
from datetime import datetime, timezone

import structlog

from dbadmin.catalog import SchemaCatalog
from dbadmin.collaborator import SQLCollaborator
from dbadmin.config import settings
from dbadmin.errors import DatabaseAdminError, ForbiddenStatement, InvalidRequest
from dbadmin.models.entities import QueryHistoryItem, SQLResult
from dbadmin.sqltext import normalize_sql

logger = structlog.get_logger()

FORBIDDEN_STATEMENTS = [
    "DROP DATABASE",
    "DROP SCHEMA",
    "GRANT",
    "REVOKE",
    "CREATE USER",
    "ALTER USER",
    "DROP USER",
    "FLUSH PRIVILEGES",
    # DuckDB escape hatches out of the workspace file
    "ATTACH",
    "DETACH",
    "INSTALL",
    "LOAD",
    "COPY",
    "EXPORT DATABASE",
    "IMPORT DATABASE",
]

_FORBIDDEN = [
    (keyword, re.compile(r"\b" + r"\s+".join(keyword.split()) + r"\b"))
    for keyword in FORBIDDEN_STATEMENTS
]
_STRUCTURAL = re.compile(r"\b(CREATE|ALTER|DROP|RENAME|TRUNCATE)\b")


def check_statement(statement: str) -> str:
    """
    Reject empty text and statements the console never runs.

    Returns the normalized text used for the checks.
    """
    if not statement or not statement.strip():
        raise InvalidRequest("SQL statement is empty")
    normalized = normalize_sql(statement)
    for keyword, pattern in _FORBIDDEN:
        if pattern.search(normalized):
            raise ForbiddenStatement(
                f"Statement contains forbidden keyword: {keyword}",
                {"keyword": keyword},
            )
    return normalized


class SQLConsole:
    def __init__(
        self,
        collaborator: SQLCollaborator,
        catalog: SchemaCatalog,
        history_limit: int | None = None,
        max_rows: int | None = None,
    ) -> None:
        self._collaborator = collaborator
        self._catalog = catalog
        self._history_limit = history_limit or settings.query_history_limit
        self._max_rows = max_rows or settings.sql_max_rows
        self._history: dict[str, deque[QueryHistoryItem]] = {}

    def _record(self, workspace_id: str, item: QueryHistoryItem) -> None:
        history = self._history.get(workspace_id)
        if history is None:
            history = self._history[workspace_id] = deque(maxlen=self._history_limit)
        history.appendleft(item)

    def execute_sql(self, workspace_id: str, statement: str) -> SQLResult:
        """
        Run operator-supplied SQL.

        Results are capped at ``sql_max_rows``. Structural statements drop the
        workspace's cached schemas, including when they fail midway.
        """
        normalized = check_statement(statement)
        structural = bool(_STRUCTURAL.search(normalized))
        executed_at = datetime.now(timezone.utc)

        try:
            result = self._collaborator.execute_sql(workspace_id, statement, max_rows=self._max_rows)
        except DatabaseAdminError as e:
            self._record(
                workspace_id,
                QueryHistoryItem(
                    statement=statement,
                    executed_at=executed_at,
                    duration_ms=int((datetime.now(timezone.utc) - executed_at).total_seconds() * 1000),
                    success=False,
                    error=e.message,
                ),
            )
            if structural:
                self._catalog.invalidate(workspace_id)
            raise

        self._record(
            workspace_id,
            QueryHistoryItem(
                statement=statement,
                executed_at=executed_at,
                duration_ms=result.duration_ms,
                row_count=len(result.rows),
            ),
        )
        if structural:
            self._catalog.invalidate(workspace_id)
            logger.info("sql_console_structural_change", workspace_id=workspace_id)
        return result

    def query_history(self, workspace_id: str) -> list[QueryHistoryItem]:
        """Executed statements, newest first."""
        return list(self._history.get(workspace_id, ()))
