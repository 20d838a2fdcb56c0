"""Schema catalog: short-lived Schema snapshots per workspace.

The catalog is a cache, never a source of truth. Entries are replaced or
dropped, never patched; DDL drops them and the next read fetches a fresh
snapshot from the engine.
"""

from typing import Callable, TypeVar

import structlog

from dbadmin import metrics
from dbadmin.collaborator import SQLCollaborator
from dbadmin.errors import InvalidFilter, InvalidRequest, NoPrimaryKey
from dbadmin.models.entities import Schema, SchemaGraph, SchemaGraphEdge, SchemaGraphNode, Table

logger = structlog.get_logger()

T = TypeVar("T")


class _WorkspaceEntry:
    __slots__ = ("schemas", "version")

    def __init__(self) -> None:
        self.schemas: dict[str, Schema] = {}
        self.version = 0


class SchemaCatalog:
    def __init__(self, collaborator: SQLCollaborator) -> None:
        self._collaborator = collaborator
        self._workspaces: dict[str, _WorkspaceEntry] = {}

    def _entry(self, workspace_id: str) -> _WorkspaceEntry:
        entry = self._workspaces.get(workspace_id)
        if entry is None:
            entry = self._workspaces[workspace_id] = _WorkspaceEntry()
        return entry

    def list_tables(self, workspace_id: str) -> list[Table]:
        """List tables straight from the engine. An empty list is a valid answer."""
        return self._collaborator.list_tables(workspace_id)

    def get_schema(self, workspace_id: str, table: str) -> Schema:
        """
        Fetch a fresh Schema snapshot and remember it.

        Raises:
            NotFound: if the table does not exist at call time
        """
        metrics.CATALOG_CACHE_MISSES.inc()
        schema = self._collaborator.get_table_schema(workspace_id, table)
        self._entry(workspace_id).schemas[table] = schema
        return schema

    def snapshot(self, workspace_id: str, table: str) -> Schema:
        """Return the cached snapshot, fetching it when absent."""
        schema = self._entry(workspace_id).schemas.get(table)
        if schema is not None:
            metrics.CATALOG_CACHE_HITS.inc()
            return schema
        return self.get_schema(workspace_id, table)

    def bind(
        self, workspace_id: str, table: str, binder: Callable[[Schema], T]
    ) -> tuple[Schema, T]:
        """
        Validate a request against the table's snapshot.

        A cached snapshot may predate another operator's DDL, so a validation
        failure against a cached snapshot is retried once against a fresh one.
        """
        cached = self.is_cached(workspace_id, table)
        schema = self.snapshot(workspace_id, table)
        try:
            return schema, binder(schema)
        except (InvalidFilter, InvalidRequest, NoPrimaryKey):
            if not cached:
                raise
        schema = self.get_schema(workspace_id, table)
        return schema, binder(schema)

    def is_cached(self, workspace_id: str, table: str) -> bool:
        entry = self._workspaces.get(workspace_id)
        return entry is not None and table in entry.schemas

    def version(self, workspace_id: str) -> int:
        """Monotonic counter bumped on every invalidation of the workspace."""
        return self._entry(workspace_id).version

    def invalidate(self, workspace_id: str, table: str | None = None) -> None:
        """Drop one table's snapshot, or every snapshot of the workspace."""
        entry = self._entry(workspace_id)
        if table is None:
            entry.schemas = {}
            metrics.CATALOG_INVALIDATIONS.labels(scope="workspace").inc()
        else:
            entry.schemas.pop(table, None)
            metrics.CATALOG_INVALIDATIONS.labels(scope="table").inc()
        entry.version += 1
        logger.debug(
            "catalog_invalidated",
            workspace_id=workspace_id,
            table_name=table,
            version=entry.version,
        )

    def schema_graph(self, workspace_id: str) -> SchemaGraph:
        """
        Tables with their columns plus one edge per foreign key column pair.

        Every table's snapshot is refreshed on the way.
        """
        nodes = []
        for table in self.list_tables(workspace_id):
            schema = self.get_schema(workspace_id, table.name)
            nodes.append(SchemaGraphNode(id=table.name, name=table.name, columns=schema.columns))

        edges: list[SchemaGraphEdge] = []
        seen: set[tuple[str, str, str, str]] = set()
        for fk in self._collaborator.list_foreign_keys(workspace_id):
            for source_column, target_column in zip(fk.columns, fk.referenced_columns):
                key = (fk.table, source_column, fk.referenced_table, target_column)
                if key in seen:
                    continue
                seen.add(key)
                edges.append(
                    SchemaGraphEdge(
                        id=f"{fk.table}_{source_column}_{fk.referenced_table}",
                        source=fk.table,
                        target=fk.referenced_table,
                        source_column=source_column,
                        target_column=target_column,
                        constraint_name=fk.constraint_name,
                    )
                )
        return SchemaGraph(nodes=nodes, edges=edges)

    def clear(self) -> None:
        for entry in self._workspaces.values():
            entry.schemas = {}
            entry.version += 1
