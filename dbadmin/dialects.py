"""SQL dialects for routine catalog access and identifier quoting.

The routine manager drives the engine only through ``execute_sql``; the
engine-specific catalog queries live here.
"""

import re
from typing import Any

from dbadmin.models.entities import Routine, RoutineKind
from dbadmin.sqltext import normalize_sql


class SQLDialect:
    """Engine-specific SQL fragments used by the administration layer."""

    name = "generic"
    routine_definition_pattern: re.Pattern | None = None
    allows_compound_body = False

    def quote_identifier(self, identifier: str) -> str:
        return '"' + identifier.replace('"', '""') + '"'

    def list_routines_sql(self) -> str:
        raise NotImplementedError

    def routine_from_row(self, row: dict[str, Any]) -> Routine:
        raise NotImplementedError

    def routine_definition_sql(self, name: str, kind: RoutineKind) -> tuple[str, list[Any]]:
        raise NotImplementedError

    def definition_from_rows(self, rows: list[dict[str, Any]]) -> str | None:
        raise NotImplementedError

    def drop_routine_sql(self, name: str, kind: RoutineKind) -> str:
        raise NotImplementedError

    def is_routine_definition(self, statement: str) -> bool:
        """
        True when the text is a single CREATE statement for a routine.

        Dialects whose routine bodies hold several statements (BEGIN ... END)
        set ``allows_compound_body`` so inner semicolons are accepted.
        """
        if self.routine_definition_pattern is None:
            return False
        normalized = normalize_sql(statement).strip().rstrip(";").strip()
        if not self.allows_compound_body and ";" in normalized:
            return False
        return bool(self.routine_definition_pattern.match(normalized))


class DuckDBDialect(SQLDialect):
    """
    DuckDB has no stored procedures. Scalar macros are surfaced as FUNCTION and
    table macros as PROCEDURE; both are read from ``duckdb_functions()``.
    """

    name = "duckdb"
    routine_definition_pattern = re.compile(
        r"CREATE\s+(OR\s+REPLACE\s+)?(TEMP(ORARY)?\s+)?(MACRO|FUNCTION)\b"
    )

    _FUNCTION_TYPES = {
        RoutineKind.FUNCTION: "macro",
        RoutineKind.PROCEDURE: "table_macro",
    }

    def list_routines_sql(self) -> str:
        return """
            SELECT DISTINCT function_name, function_type, return_type, description
            FROM duckdb_functions()
            WHERE NOT internal
              AND schema_name = 'main'
              AND function_type IN ('macro', 'table_macro')
            ORDER BY function_name
        """

    def routine_from_row(self, row: dict[str, Any]) -> Routine:
        kind = RoutineKind.PROCEDURE if row["function_type"] == "table_macro" else RoutineKind.FUNCTION
        return Routine(
            name=row["function_name"],
            kind=kind,
            return_type=row.get("return_type"),
            comment=row.get("description"),
        )

    def routine_definition_sql(self, name: str, kind: RoutineKind) -> tuple[str, list[Any]]:
        return (
            """
            SELECT function_name, function_type, parameters, macro_definition
            FROM duckdb_functions()
            WHERE NOT internal
              AND schema_name = 'main'
              AND function_name = ?
              AND function_type = ?
            """,
            [name, self._FUNCTION_TYPES[kind]],
        )

    def definition_from_rows(self, rows: list[dict[str, Any]]) -> str | None:
        if not rows:
            return None
        statements = []
        for row in rows:
            params = ", ".join(row.get("parameters") or [])
            name = self.quote_identifier(row["function_name"])
            table = "TABLE " if row["function_type"] == "table_macro" else ""
            statements.append(
                f"CREATE MACRO {name}({params}) AS {table}{row['macro_definition']}"
            )
        return ";\n".join(statements)

    def drop_routine_sql(self, name: str, kind: RoutineKind) -> str:
        table = "TABLE " if kind == RoutineKind.PROCEDURE else ""
        return f"DROP MACRO {table}{self.quote_identifier(name)}"


class MySQLDialect(SQLDialect):
    """MySQL/MariaDB routines from INFORMATION_SCHEMA.ROUTINES."""

    name = "mysql"
    routine_definition_pattern = re.compile(
        r"CREATE\s+(DEFINER\s*=\s*\S+\s+)?(FUNCTION|PROCEDURE)\b"
    )
    allows_compound_body = True

    def quote_identifier(self, identifier: str) -> str:
        return "`" + identifier.replace("`", "``") + "`"

    def list_routines_sql(self) -> str:
        return """
            SELECT ROUTINE_NAME, ROUTINE_TYPE, DEFINER, CREATED, LAST_ALTERED,
                   DTD_IDENTIFIER, ROUTINE_COMMENT
            FROM INFORMATION_SCHEMA.ROUTINES
            WHERE ROUTINE_SCHEMA = DATABASE()
            ORDER BY ROUTINE_NAME
        """

    def routine_from_row(self, row: dict[str, Any]) -> Routine:
        return Routine(
            name=row["ROUTINE_NAME"],
            kind=RoutineKind(str(row["ROUTINE_TYPE"]).upper()),
            definer=row.get("DEFINER"),
            created_at=row.get("CREATED"),
            modified_at=row.get("LAST_ALTERED"),
            return_type=row.get("DTD_IDENTIFIER") or None,
            comment=row.get("ROUTINE_COMMENT") or None,
        )

    def routine_definition_sql(self, name: str, kind: RoutineKind) -> tuple[str, list[Any]]:
        return f"SHOW CREATE {kind.value} {self.quote_identifier(name)}", []

    def definition_from_rows(self, rows: list[dict[str, Any]]) -> str | None:
        if not rows:
            return None
        row = rows[0]
        for key in ("Create Function", "Create Procedure"):
            if row.get(key):
                return row[key]
        return None

    def drop_routine_sql(self, name: str, kind: RoutineKind) -> str:
        return f"DROP {kind.value} {self.quote_identifier(name)}"
