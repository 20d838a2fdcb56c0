"""Tests for the schema catalog and table introspection."""

import pytest

from dbadmin.errors import InvalidFilter, NotFound


class TestListTables:
    def test_empty_workspace(self, admin, workspace_id):
        """An empty workspace lists no tables."""
        assert admin.list_tables(workspace_id) == []

    def test_lists_created_tables(self, admin, workspace_id, orders_table, notes_table):
        tables = admin.list_tables(workspace_id)
        assert [t.name for t in tables] == ["notes", "orders"]
        orders = next(t for t in tables if t.name == "orders")
        assert orders.column_count == 5


class TestGetSchema:
    def test_columns_in_ordinal_order(self, admin, workspace_id, orders_table):
        schema = admin.get_schema(workspace_id, orders_table)
        assert schema.column_names == ["id", "customer", "amount", "paid", "note"]
        assert schema.primary_key == ["id"]
        assert schema.column("id").is_primary_key_member
        assert not schema.column("id").nullable
        assert schema.column("amount").data_type == "DECIMAL(10,2)"

    def test_table_without_primary_key(self, admin, workspace_id, notes_table):
        schema = admin.get_schema(workspace_id, notes_table)
        assert schema.primary_key == []
        assert not schema.has_primary_key

    def test_missing_table(self, admin, workspace_id):
        with pytest.raises(NotFound):
            admin.get_schema(workspace_id, "ghost")


class TestCatalogCache:
    """Tests for snapshot caching and invalidation."""

    def test_snapshot_is_cached(self, admin, workspace_id, orders_table):
        catalog = admin.catalog
        catalog.invalidate(workspace_id)
        assert not catalog.is_cached(workspace_id, orders_table)

        first = catalog.snapshot(workspace_id, orders_table)
        assert catalog.is_cached(workspace_id, orders_table)
        assert catalog.snapshot(workspace_id, orders_table) is first

    def test_invalidate_bumps_version(self, admin, workspace_id, orders_table):
        catalog = admin.catalog
        before = catalog.version(workspace_id)
        catalog.invalidate(workspace_id, orders_table)
        assert catalog.version(workspace_id) == before + 1
        assert not catalog.is_cached(workspace_id, orders_table)

    def test_bind_retries_with_fresh_schema(self, admin, workspace_id, notes_table):
        """A column added behind the catalog's back is found after one refresh."""
        catalog = admin.catalog
        catalog.snapshot(workspace_id, notes_table)
        admin.collaborator.execute_sql(workspace_id, "ALTER TABLE notes ADD COLUMN extra INTEGER")

        def binder(schema):
            if schema.column("extra") is None:
                raise InvalidFilter("unknown column extra")
            return "bound"

        schema, result = catalog.bind(workspace_id, notes_table, binder)
        assert result == "bound"
        assert "extra" in schema.column_names

    def test_ddl_through_console_invalidates_workspace(self, admin, workspace_id, notes_table):
        catalog = admin.catalog
        catalog.snapshot(workspace_id, notes_table)
        admin.execute_sql(workspace_id, "ALTER TABLE notes ADD COLUMN extra INTEGER")
        assert not catalog.is_cached(workspace_id, notes_table)


class TestSchemaGraph:
    @pytest.fixture
    def linked_tables(self, admin, workspace_id):
        admin.execute_sql(workspace_id, "CREATE TABLE customers (id INTEGER PRIMARY KEY, name VARCHAR)")
        admin.execute_sql(
            workspace_id,
            "CREATE TABLE invoices (id INTEGER PRIMARY KEY, customer_id INTEGER REFERENCES customers(id))",
        )

    def test_empty_workspace(self, admin, workspace_id):
        graph = admin.schema_graph(workspace_id)
        assert graph.nodes == []
        assert graph.edges == []

    def test_nodes_carry_columns(self, admin, workspace_id, linked_tables):
        graph = admin.schema_graph(workspace_id)
        assert [n.id for n in graph.nodes] == ["customers", "invoices"]
        invoices = graph.nodes[1]
        assert invoices.name == "invoices"
        assert [c.name for c in invoices.columns] == ["id", "customer_id"]

    def test_foreign_key_becomes_edge(self, admin, workspace_id, linked_tables):
        edges = admin.schema_graph(workspace_id).edges
        assert len(edges) == 1
        edge = edges[0]
        assert edge.id == "invoices_customer_id_customers"
        assert (edge.source, edge.target) == ("invoices", "customers")
        assert (edge.source_column, edge.target_column) == ("customer_id", "id")
        assert edge.constraint_name

    def test_composite_key_yields_edge_per_column(self, admin, workspace_id):
        admin.execute_sql(
            workspace_id, "CREATE TABLE regions (country VARCHAR, code VARCHAR, PRIMARY KEY (country, code))"
        )
        admin.execute_sql(
            workspace_id,
            "CREATE TABLE stores (id INTEGER, country VARCHAR, code VARCHAR, "
            "FOREIGN KEY (country, code) REFERENCES regions (country, code))",
        )
        edges = admin.schema_graph(workspace_id).edges
        assert [(e.source_column, e.target_column) for e in edges] == [
            ("country", "country"),
            ("code", "code"),
        ]
        assert {e.target for e in edges} == {"regions"}
        assert len({e.constraint_name for e in edges}) == 1

    def test_tables_without_keys_have_no_edges(self, admin, workspace_id, orders_table, notes_table):
        graph = admin.schema_graph(workspace_id)
        assert {n.name for n in graph.nodes} == {"orders", "notes"}
        assert graph.edges == []
