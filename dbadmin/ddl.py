"""Schema mutation (DDL) engine.

Requests are validated against a fresh Schema before any statement runs.
Alter batches are applied step by step without a surrounding transaction: a
failure midway leaves earlier steps in place and is reported as
PartialFailure. The catalog entry is dropped whenever a step may have run.
"""

import re

import structlog

from dbadmin.catalog import SchemaCatalog
from dbadmin.collaborator import SQLCollaborator
from dbadmin.errors import (
    AlreadyExists,
    CollaboratorError,
    DatabaseAdminError,
    InvalidRequest,
    NotFound,
    PartialFailure,
)
from dbadmin.models.entities import (
    AlterTableRequest,
    AlterTableResult,
    ColumnDefinition,
    Schema,
    TableDefinition,
)

logger = structlog.get_logger()

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,127}$")
TYPE_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_ ]*(\(\s*\d+\s*(,\s*\d+\s*)?\))?(\[\d*\])*$")
DANGEROUS_PATTERNS = [";", "--", "/*", "*/", "drop ", "truncate ", "alter "]


def validate_identifier(name: str, kind: str) -> None:
    if not IDENTIFIER_PATTERN.match(name or ""):
        raise InvalidRequest(
            f"Invalid {kind} name {name!r}: use letters, digits and underscores",
            {kind: name},
        )


def validate_type(type_name: str, column: str) -> None:
    if not TYPE_PATTERN.match(type_name.strip()):
        raise InvalidRequest(
            f"Invalid data type {type_name!r} for column '{column}'",
            {"column": column, "type": type_name},
        )


def validate_default(expression: str, column: str) -> None:
    """Basic SQL injection prevention for default value expressions."""
    lowered = expression.lower()
    for pattern in DANGEROUS_PATTERNS:
        if pattern in lowered:
            raise InvalidRequest(
                f"Invalid default for column '{column}': contains '{pattern.strip()}'",
                {"column": column, "default": expression},
            )
    if expression.count("'") % 2:
        raise InvalidRequest(
            f"Invalid default for column '{column}': unbalanced quotes",
            {"column": column, "default": expression},
        )


def validate_column_definition(column: ColumnDefinition) -> None:
    validate_identifier(column.name, "column")
    validate_type(column.type, column.name)
    if column.default is not None:
        validate_default(column.default, column.name)


def validate_table_definition(definition: TableDefinition) -> None:
    validate_identifier(definition.name, "table")
    seen: set[str] = set()
    for column in definition.columns:
        validate_column_definition(column)
        if column.name.lower() in seen:
            raise InvalidRequest(
                f"Duplicate column name '{column.name}'",
                {"table": definition.name, "column": column.name},
            )
        seen.add(column.name.lower())

    names = {c.name for c in definition.columns}
    unknown = [c for c in definition.primary_key if c not in names]
    if unknown:
        raise InvalidRequest(
            f"Primary key references unknown column(s): {', '.join(unknown)}",
            {"table": definition.name, "unknown_columns": unknown},
        )
    if len(set(definition.primary_key)) != len(definition.primary_key):
        raise InvalidRequest("Primary key lists a column twice", {"table": definition.name})


def validate_alter_request(schema: Schema, request: AlterTableRequest) -> None:
    """
    Check an alter request against the current Schema.

    Raises:
        InvalidRequest: empty request, bad names or types, dropping key columns
        NotFound: altering or dropping a column that does not exist
        AlreadyExists: adding or renaming onto an existing column name
    """
    table = schema.table
    if request.is_empty:
        raise InvalidRequest("Alter request contains no changes", {"table": table})

    existing = {c.name.lower() for c in schema.columns}
    added: set[str] = set()
    for column in request.add_columns:
        validate_column_definition(column)
        key = column.name.lower()
        if key in existing:
            raise AlreadyExists(
                f"Column '{column.name}' already exists in table {table}",
                {"table": table, "column": column.name},
            )
        if key in added:
            raise InvalidRequest(
                f"Column '{column.name}' is added twice",
                {"table": table, "column": column.name},
            )
        added.add(key)

    for alter in request.alter_columns:
        if schema.column(alter.name) is None:
            raise NotFound(
                f"Column '{alter.name}' not found in table {table}",
                {"table": table, "column": alter.name},
            )
        if (
            alter.new_name is None
            and alter.new_type is None
            and alter.nullable is None
            and alter.default is None
        ):
            raise InvalidRequest(
                f"No changes given for column '{alter.name}'",
                {"table": table, "column": alter.name},
            )
        if alter.new_name is not None and alter.new_name != alter.name:
            validate_identifier(alter.new_name, "column")
            if alter.new_name.lower() in existing | added:
                raise AlreadyExists(
                    f"Column '{alter.new_name}' already exists in table {table}",
                    {"table": table, "column": alter.new_name},
                )
        if alter.new_type is not None:
            validate_type(alter.new_type, alter.name)
        if alter.default:
            validate_default(alter.default, alter.name)

    if len(set(request.drop_columns)) != len(request.drop_columns):
        raise InvalidRequest("A column is listed twice in drop_columns", {"table": table})
    for name in request.drop_columns:
        column = schema.column(name)
        if column is None:
            raise NotFound(
                f"Column '{name}' not found in table {table}",
                {"table": table, "column": name},
            )
        if column.is_primary_key_member:
            raise InvalidRequest(
                f"Cannot drop column '{name}': it is part of the primary key",
                {"table": table, "column": name, "primary_key": schema.primary_key},
            )
    if len(schema.columns) + len(request.add_columns) - len(request.drop_columns) < 1:
        raise InvalidRequest(
            "Cannot drop every column of a table; drop the table instead",
            {"table": table},
        )

    if request.rename_to is not None:
        validate_identifier(request.rename_to, "table")


class SchemaMutationEngine:
    def __init__(self, catalog: SchemaCatalog, collaborator: SQLCollaborator) -> None:
        self._catalog = catalog
        self._collaborator = collaborator

    def create_table(self, workspace_id: str, definition: TableDefinition) -> Schema:
        """
        Create a table and return its fresh Schema.

        Raises:
            AlreadyExists: a table with that name exists
            InvalidRequest: invalid names, types, defaults or primary key
        """
        validate_table_definition(definition)
        self._collaborator.create_table(workspace_id, definition)
        self._catalog.invalidate(workspace_id, definition.name)
        return self._catalog.get_schema(workspace_id, definition.name)

    def alter_table(
        self, workspace_id: str, table: str, request: AlterTableRequest
    ) -> AlterTableResult:
        """
        Apply add, alter, drop and rename steps in that order.

        Callers must re-fetch the Schema afterwards whatever the outcome.

        Raises:
            PartialFailure: some steps were applied before one failed
            CollaboratorError: the first step failed, nothing was applied
        """
        schema = self._catalog.get_schema(workspace_id, table)
        validate_alter_request(schema, request)

        if request.rename_to and request.rename_to != table:
            taken = {t.name.lower() for t in self._catalog.list_tables(workspace_id)}
            if request.rename_to.lower() in taken:
                raise AlreadyExists(
                    f"Table {request.rename_to} already exists",
                    {"table": request.rename_to},
                )

        try:
            result = self._collaborator.alter_table(workspace_id, table, request)
        except DatabaseAdminError:
            self._catalog.invalidate(workspace_id, table)
            raise

        self._catalog.invalidate(workspace_id, table)
        if request.rename_to:
            self._catalog.invalidate(workspace_id, request.rename_to)

        if result.failed_step is not None:
            if not result.applied:
                raise CollaboratorError(
                    result.error or f"Step {result.failed_step} failed",
                    {"table": table, "failed_step": result.failed_step},
                )
            logger.warning(
                "alter_table_partial_failure",
                workspace_id=workspace_id,
                table_name=table,
                applied=result.applied,
                failed_step=result.failed_step,
            )
            raise PartialFailure(
                f"Alter of {table} stopped at {result.failed_step}: {result.error}",
                applied=result.applied,
                failed_step=result.failed_step,
                details={"table": table, "engine_error": result.error},
            )
        return result

    def drop_table(self, workspace_id: str, table: str) -> None:
        """Drop a table. Irreversible; confirmation happens before this call."""
        try:
            self._collaborator.drop_table(workspace_id, table)
        finally:
            self._catalog.invalidate(workspace_id, table)
