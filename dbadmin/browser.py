"""Row browser: paged, filtered, sorted reads over arbitrary tables."""

import structlog

from dbadmin.catalog import SchemaCatalog
from dbadmin.collaborator import SQLCollaborator
from dbadmin.config import settings
from dbadmin.errors import NotFound
from dbadmin.filters import OrderKey, RowQuery, validate_filters, validate_order
from dbadmin.models.entities import QueryRowsRequest, RowSet, Schema, SortDirection

logger = structlog.get_logger()


class RowBrowser:
    def __init__(
        self,
        catalog: SchemaCatalog,
        collaborator: SQLCollaborator,
        max_page_size: int | None = None,
    ) -> None:
        self._catalog = catalog
        self._collaborator = collaborator
        self._max_page_size = max_page_size or settings.max_page_size

    @staticmethod
    def _order_keys(schema: Schema, order_by: str | None, direction: SortDirection) -> list[OrderKey]:
        keys = []
        if order_by is not None:
            keys.append(OrderKey(column=order_by, direction=direction))
        # Primary key columns break ties so page boundaries are deterministic
        for column in schema.primary_key:
            if column != order_by:
                keys.append(OrderKey(column=column))
        return keys

    def query_rows(self, workspace_id: str, table: str, request: QueryRowsRequest) -> RowSet:
        """
        Return one page of rows matching the request's filters.

        ``total_count`` counts every matching row, not just the page.

        Raises:
            NotFound: table vanished (the catalog entry is dropped first)
            InvalidFilter: unknown column, bad operator or incompatible value
        """
        page_size = min(request.page_size, self._max_page_size)

        schema, (filters, order_by) = self._catalog.bind(
            workspace_id,
            table,
            lambda s: (validate_filters(request.filters, s), validate_order(request.order_by, s)),
        )

        query = RowQuery(
            filters=filters,
            order_by=self._order_keys(schema, order_by, request.order_dir),
            limit=page_size,
            offset=(request.page - 1) * page_size,
        )

        try:
            page = self._collaborator.query_rows(workspace_id, table, query)
        except NotFound:
            self._catalog.invalidate(workspace_id, table)
            logger.info("query_rows_table_vanished", workspace_id=workspace_id, table_name=table)
            raise

        return RowSet(
            columns=page.columns or schema.column_names,
            rows=page.rows,
            total_count=page.total_count,
            page=request.page,
            page_size=page_size,
        )
