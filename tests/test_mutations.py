"""Tests for row insert, update and delete."""

from decimal import Decimal

import pytest

from dbadmin.errors import AmbiguousTarget, CollaboratorError, InvalidRequest, NoPrimaryKey, NotFound
from dbadmin.models.entities import (
    Column,
    ColumnDefinition,
    QueryFilter,
    QueryRowsRequest,
    Schema,
    TableDefinition,
)
from dbadmin.mutations import bind_keys
from dbadmin.values import bind_record


def _rows(admin, workspace_id, table):
    return admin.query_rows(workspace_id, table, QueryRowsRequest(page_size=100)).rows


class TestInsertRow:
    def test_insert_applies_defaults(self, admin, workspace_id, orders_table):
        result = admin.insert_row(workspace_id, orders_table, {"id": 1, "customer": "alice"})
        assert result.affected_rows == 1

        rows = _rows(admin, workspace_id, orders_table)
        assert rows[0]["paid"] is False
        assert rows[0]["amount"] is None

    def test_explicit_null_overrides_default(self, admin, workspace_id, orders_table):
        admin.insert_row(workspace_id, orders_table, {"id": 1, "paid": None})
        assert _rows(admin, workspace_id, orders_table)[0]["paid"] is None

    def test_empty_record(self, admin, workspace_id, orders_table):
        with pytest.raises(InvalidRequest):
            admin.insert_row(workspace_id, orders_table, {})

    def test_unknown_column(self, admin, workspace_id, orders_table):
        with pytest.raises(InvalidRequest):
            admin.insert_row(workspace_id, orders_table, {"id": 1, "colour": "red"})

    def test_duplicate_key_is_engine_error(self, admin, workspace_id, orders_table):
        admin.insert_row(workspace_id, orders_table, {"id": 1})
        with pytest.raises(CollaboratorError):
            admin.insert_row(workspace_id, orders_table, {"id": 1})

    def test_missing_table(self, admin, workspace_id):
        with pytest.raises(NotFound):
            admin.insert_row(workspace_id, "ghost", {"id": 1})


class TestUpdateRow:
    def test_update_by_primary_key(self, admin, workspace_id, orders_table):
        admin.insert_row(workspace_id, orders_table, {"id": 1, "customer": "alice", "amount": "5.00"})
        admin.insert_row(workspace_id, orders_table, {"id": 2, "customer": "bob", "amount": "6.00"})

        result = admin.update_row(workspace_id, orders_table, {"id": 2, "amount": "7.25", "note": "fixed"})
        assert result.affected_rows == 1

        rows = {r["id"]: r for r in _rows(admin, workspace_id, orders_table)}
        assert rows[2]["amount"] == Decimal("7.25")
        assert rows[2]["note"] == "fixed"
        assert rows[1]["amount"] == Decimal("5.00")

    def test_set_column_to_null(self, admin, workspace_id, orders_table):
        admin.insert_row(workspace_id, orders_table, {"id": 1, "customer": "alice"})
        admin.update_row(workspace_id, orders_table, {"id": 1, "customer": None})
        assert _rows(admin, workspace_id, orders_table)[0]["customer"] is None

    def test_no_matching_row(self, admin, workspace_id, orders_table):
        with pytest.raises(NotFound):
            admin.update_row(workspace_id, orders_table, {"id": 99, "customer": "x"})

    def test_missing_key_column(self, admin, workspace_id, orders_table):
        with pytest.raises(InvalidRequest) as exc:
            admin.update_row(workspace_id, orders_table, {"customer": "x"})
        assert exc.value.details["missing_key_columns"] == ["id"]

    def test_key_only_record(self, admin, workspace_id, orders_table):
        with pytest.raises(InvalidRequest):
            admin.update_row(workspace_id, orders_table, {"id": 1})

    def test_table_without_primary_key(self, admin, workspace_id, notes_table):
        with pytest.raises(NoPrimaryKey):
            admin.update_row(workspace_id, notes_table, {"id": 1, "body": "x"})

    def test_more_than_one_match_rolls_back(self, collaborator, admin, workspace_id, notes_table):
        """The collaborator refuses an update that would touch several rows."""
        collaborator.execute_sql(workspace_id, "INSERT INTO notes VALUES (1, 'a'), (1, 'b')")
        schema = admin.get_schema(workspace_id, notes_table)
        key = bind_record({"id": 1}, schema)
        changes = bind_record({"body": "c"}, schema)
        with pytest.raises(AmbiguousTarget):
            collaborator.update_row(workspace_id, notes_table, key, changes)

        bodies = sorted(r["body"] for r in _rows(admin, workspace_id, notes_table))
        assert bodies == ["a", "b"]


class TestDeleteRows:
    def test_delete_by_ids(self, admin, workspace_id, orders_table):
        for i in range(1, 5):
            admin.insert_row(workspace_id, orders_table, {"id": i})

        result = admin.delete_rows(workspace_id, orders_table, [1, "3", 42])
        assert result.affected_rows == 2
        assert [r["id"] for r in _rows(admin, workspace_id, orders_table)] == [2, 4]

    def test_empty_ids(self, admin, workspace_id, orders_table):
        with pytest.raises(InvalidRequest):
            admin.delete_rows(workspace_id, orders_table, [])

    def test_table_without_primary_key(self, admin, workspace_id, notes_table):
        with pytest.raises(NoPrimaryKey):
            admin.delete_rows(workspace_id, notes_table, [1])

    def test_composite_key(self, admin, workspace_id):
        admin.create_table(
            workspace_id,
            TableDefinition(
                name="line_items",
                columns=[
                    ColumnDefinition(name="order_id", type="INTEGER", nullable=False),
                    ColumnDefinition(name="line", type="INTEGER", nullable=False),
                    ColumnDefinition(name="sku", type="VARCHAR"),
                ],
                primary_key=["order_id", "line"],
            ),
        )
        for order_id, line in [(1, 1), (1, 2), (2, 1)]:
            admin.insert_row(workspace_id, "line_items", {"order_id": order_id, "line": line, "sku": "x"})

        result = admin.delete_rows(workspace_id, "line_items", [[1, 2], {"order_id": 2, "line": 1}])
        assert result.affected_rows == 2

        remaining = admin.query_rows(
            workspace_id,
            "line_items",
            QueryRowsRequest(filters=[QueryFilter(column="order_id", operator="eq", value=1)]),
        )
        assert [(r["order_id"], r["line"]) for r in remaining.rows] == [(1, 1)]


class TestBindKeys:
    def test_composite_key_needs_sequence_or_mapping(self):
        schema = Schema(
            table="t",
            columns=[
                Column(name="a", data_type="INTEGER", is_primary_key_member=True),
                Column(name="b", data_type="INTEGER", is_primary_key_member=True),
            ],
            primary_key=["a", "b"],
        )
        with pytest.raises(InvalidRequest):
            bind_keys([1], schema)
        with pytest.raises(InvalidRequest):
            bind_keys([[1]], schema)
        with pytest.raises(InvalidRequest):
            bind_keys([[1, None]], schema)
        assert [tuple(v.value for v in k) for k in bind_keys([["1", 2]], schema)] == [(1, 2)]
