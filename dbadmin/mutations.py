"""Row mutation engine: insert, update and delete addressed by primary key.

Callers re-query after a mutation; results never carry patched rows because
defaults, triggers and generated columns may change what was sent.
"""

from collections.abc import Mapping, Sequence
from typing import Any

import structlog

from dbadmin.catalog import SchemaCatalog
from dbadmin.collaborator import SQLCollaborator
from dbadmin.errors import InvalidRequest, NoPrimaryKey, NotFound
from dbadmin.models.entities import MutationResult, Schema
from dbadmin.values import (
    TypedRecord,
    TypedValue,
    ValueCoercionError,
    bind_record,
    coerce_value,
    value_type_of,
)

logger = structlog.get_logger()


def _require_primary_key(schema: Schema) -> list[str]:
    if not schema.primary_key:
        raise NoPrimaryKey(
            f"Table {schema.table} has no primary key; rows cannot be addressed",
            {"table": schema.table},
        )
    return schema.primary_key


def split_update_record(record: Mapping[str, Any], schema: Schema) -> tuple[TypedRecord, TypedRecord]:
    """Bind an update record and split it into (key, changes)."""
    primary_key = _require_primary_key(schema)
    missing = [c for c in primary_key if c not in record]
    if missing:
        raise InvalidRequest(
            f"Update must include every primary key column; missing: {', '.join(missing)}",
            {"table": schema.table, "missing_key_columns": missing, "primary_key": primary_key},
        )
    null_keys = [c for c in primary_key if record[c] is None]
    if null_keys:
        raise InvalidRequest(
            f"Primary key values cannot be null: {', '.join(null_keys)}",
            {"table": schema.table, "null_key_columns": null_keys},
        )
    if len(record) == len(primary_key):
        raise InvalidRequest(
            "Update must change at least one non-key column",
            {"table": schema.table},
        )

    bound = bind_record(record, schema)
    key = {c: bound[c] for c in primary_key}
    changes = {c: v for c, v in bound.items() if c not in key}
    return key, changes


def bind_keys(ids: Sequence[Any], schema: Schema) -> list[tuple[TypedValue, ...]]:
    """
    Turn caller-supplied ids into typed key tuples in primary key order.

    Single-column keys take scalar ids. Composite keys take one sequence (in
    key order) or one mapping (by column name) per row.
    """
    primary_key = _require_primary_key(schema)
    key_types = [value_type_of(schema.column(c).data_type) for c in primary_key]

    def _coerce(raw: Any, position: int) -> TypedValue:
        if raw is None:
            raise InvalidRequest(
                f"Primary key value for '{primary_key[position]}' cannot be null",
                {"table": schema.table},
            )
        try:
            return coerce_value(raw, key_types[position])
        except ValueCoercionError as e:
            raise InvalidRequest(
                f"Invalid key value for column '{primary_key[position]}': {e}",
                {"table": schema.table, "column": primary_key[position]},
            ) from None

    keys = []
    for raw_id in ids:
        if isinstance(raw_id, Mapping):
            missing = [c for c in primary_key if c not in raw_id]
            if missing:
                raise InvalidRequest(
                    f"Key is missing column(s): {', '.join(missing)}",
                    {"table": schema.table, "primary_key": primary_key},
                )
            parts = [raw_id[c] for c in primary_key]
        elif len(primary_key) == 1:
            parts = [raw_id]
        elif isinstance(raw_id, Sequence) and not isinstance(raw_id, (str, bytes)):
            parts = list(raw_id)
        else:
            raise InvalidRequest(
                f"Table {schema.table} has a composite primary key; each id must list "
                f"values for {', '.join(primary_key)}",
                {"table": schema.table, "primary_key": primary_key},
            )
        if len(parts) != len(primary_key):
            raise InvalidRequest(
                f"Expected {len(primary_key)} key values, got {len(parts)}",
                {"table": schema.table, "primary_key": primary_key},
            )
        keys.append(tuple(_coerce(raw, i) for i, raw in enumerate(parts)))
    return keys


class RowMutationEngine:
    def __init__(self, catalog: SchemaCatalog, collaborator: SQLCollaborator) -> None:
        self._catalog = catalog
        self._collaborator = collaborator

    def _forget_on_missing(self, workspace_id: str, table: str, exc: NotFound) -> None:
        self._catalog.invalidate(workspace_id, table)
        logger.info(
            "mutation_table_vanished",
            workspace_id=workspace_id,
            table_name=table,
            error=exc.message,
        )

    def insert_row(self, workspace_id: str, table: str, record: Mapping[str, Any]) -> MutationResult:
        """
        Insert one row.

        Omitted columns are not sent, so engine defaults apply; an explicit
        None is sent as NULL.
        """
        if not record:
            raise InvalidRequest("Insert record must contain at least one column", {"table": table})

        _, values = self._catalog.bind(workspace_id, table, lambda s: bind_record(record, s))
        try:
            affected = self._collaborator.insert_row(workspace_id, table, values)
        except NotFound as e:
            self._forget_on_missing(workspace_id, table, e)
            raise
        return MutationResult(affected_rows=affected)

    def update_row(self, workspace_id: str, table: str, record: Mapping[str, Any]) -> MutationResult:
        """
        Update the single row addressed by the record's primary key values.

        Raises:
            NoPrimaryKey: table has no primary key
            InvalidRequest: key columns missing or nothing to change
            NotFound: no row has that key
            AmbiguousTarget: more than one row matched; nothing was applied
        """
        _, (key, changes) = self._catalog.bind(
            workspace_id, table, lambda s: split_update_record(record, s)
        )
        try:
            affected = self._collaborator.update_row(workspace_id, table, key, changes)
        except NotFound as e:
            self._forget_on_missing(workspace_id, table, e)
            raise

        if affected == 0:
            raise NotFound(
                f"No row in {table} matches the given primary key",
                {"table": table, "key": {c: str(v.value) for c, v in key.items()}},
            )
        return MutationResult(affected_rows=affected)

    def delete_rows(self, workspace_id: str, table: str, ids: Sequence[Any]) -> MutationResult:
        """Delete rows by primary key. Returns how many rows were removed."""
        if not ids:
            raise InvalidRequest("At least one id is required", {"table": table})

        schema, keys = self._catalog.bind(workspace_id, table, lambda s: bind_keys(ids, s))
        try:
            affected = self._collaborator.delete_rows(
                workspace_id, table, list(schema.primary_key), keys
            )
        except NotFound as e:
            self._forget_on_missing(workspace_id, table, e)
            raise
        return MutationResult(affected_rows=affected)
