"""Tests for table DDL: create, alter, drop."""

import pytest

from dbadmin.ddl import validate_default, validate_identifier, validate_type
from dbadmin.errors import (
    AlreadyExists,
    CollaboratorError,
    InvalidRequest,
    NotFound,
    PartialFailure,
)
from dbadmin.models.entities import (
    AlterColumnDefinition,
    AlterTableRequest,
    ColumnDefinition,
    TableDefinition,
)


class TestValidators:
    @pytest.mark.parametrize("name", ["orders", "_tmp", "Line_Items2"])
    def test_valid_identifiers(self, name):
        validate_identifier(name, "table")

    @pytest.mark.parametrize("name", ["", "2fast", "drop table", 'x"y', "a-b"])
    def test_invalid_identifiers(self, name):
        with pytest.raises(InvalidRequest):
            validate_identifier(name, "table")

    @pytest.mark.parametrize("type_name", ["INTEGER", "DECIMAL(10, 2)", "VARCHAR(255)", "INTEGER[]", "DOUBLE PRECISION"])
    def test_valid_types(self, type_name):
        validate_type(type_name, "c")

    @pytest.mark.parametrize("type_name", ["INTEGER; DROP TABLE x", "VARCHAR)", ""])
    def test_invalid_types(self, type_name):
        with pytest.raises(InvalidRequest):
            validate_type(type_name, "c")

    @pytest.mark.parametrize("expression", ["1; DROP TABLE x", "'a' -- b", "'unbalanced"])
    def test_dangerous_defaults(self, expression):
        with pytest.raises(InvalidRequest):
            validate_default(expression, "c")


class TestCreateTable:
    def test_create_returns_fresh_schema(self, admin, workspace_id):
        schema = admin.create_table(
            workspace_id,
            TableDefinition(
                name="products",
                columns=[
                    ColumnDefinition(name="sku", type="VARCHAR", nullable=False),
                    ColumnDefinition(name="price", type="DECIMAL(10,2)", default="0"),
                    ColumnDefinition(name="ean", type="VARCHAR", unique=True),
                ],
                primary_key=["sku"],
            ),
        )
        assert schema.table == "products"
        assert schema.primary_key == ["sku"]
        assert schema.column_names == ["sku", "price", "ean"]
        assert schema.column("price").default_value is not None

    def test_duplicate_table(self, admin, workspace_id, orders_table):
        with pytest.raises(AlreadyExists):
            admin.create_table(
                workspace_id,
                TableDefinition(name="orders", columns=[ColumnDefinition(name="id", type="INTEGER")]),
            )

    def test_primary_key_must_reference_columns(self, admin, workspace_id):
        with pytest.raises(InvalidRequest):
            admin.create_table(
                workspace_id,
                TableDefinition(
                    name="broken",
                    columns=[ColumnDefinition(name="id", type="INTEGER")],
                    primary_key=["missing"],
                ),
            )

    def test_duplicate_column_names(self, admin, workspace_id):
        with pytest.raises(InvalidRequest):
            admin.create_table(
                workspace_id,
                TableDefinition(
                    name="broken",
                    columns=[
                        ColumnDefinition(name="id", type="INTEGER"),
                        ColumnDefinition(name="ID", type="INTEGER"),
                    ],
                ),
            )


class TestAlterTable:
    """Tests for best-effort alter batches."""

    def test_add_column_with_not_null_and_default(self, admin, workspace_id, notes_table):
        result = admin.alter_table(
            workspace_id,
            notes_table,
            AlterTableRequest(
                add_columns=[
                    ColumnDefinition(name="status", type="VARCHAR", nullable=False, default="'new'"),
                ]
            ),
        )
        assert result.ok
        assert result.applied == ["add_column:status"]

        schema = admin.get_schema(workspace_id, notes_table)
        assert not schema.column("status").nullable

    def test_alter_rename_drop_and_rename_table(self, admin, workspace_id):
        admin.create_table(
            workspace_id,
            TableDefinition(
                name="scratch",
                columns=[
                    ColumnDefinition(name="a", type="INTEGER"),
                    ColumnDefinition(name="b", type="VARCHAR"),
                    ColumnDefinition(name="c", type="VARCHAR"),
                ],
            ),
        )
        result = admin.alter_table(
            workspace_id,
            "scratch",
            AlterTableRequest(
                alter_columns=[
                    AlterColumnDefinition(name="a", new_type="BIGINT"),
                    AlterColumnDefinition(name="b", new_name="label"),
                ],
                drop_columns=["c"],
                rename_to="scratch_v2",
            ),
        )
        assert result.applied == [
            "alter_column:a:type",
            "alter_column:b:rename",
            "drop_column:c",
            "rename_table:scratch_v2",
        ]

        schema = admin.get_schema(workspace_id, "scratch_v2")
        assert schema.column_names == ["a", "label"]
        assert schema.column("a").data_type == "BIGINT"
        with pytest.raises(NotFound):
            admin.get_schema(workspace_id, "scratch")

    def test_partial_failure_reports_applied_steps(self, admin, workspace_id, notes_table):
        admin.insert_row(workspace_id, notes_table, {"id": 1, "body": None})

        with pytest.raises(PartialFailure) as exc:
            admin.alter_table(
                workspace_id,
                notes_table,
                AlterTableRequest(
                    add_columns=[ColumnDefinition(name="a", type="INTEGER")],
                    alter_columns=[AlterColumnDefinition(name="body", nullable=False)],
                ),
            )
        assert exc.value.applied == ["add_column:a"]
        assert exc.value.failed_step == "alter_column:body:nullable"

        # The applied step stays in place and the next read sees it
        assert "a" in admin.get_schema(workspace_id, notes_table).column_names

    def test_first_step_failure_is_plain_engine_error(self, admin, workspace_id, notes_table):
        admin.insert_row(workspace_id, notes_table, {"id": 1, "body": None})

        with pytest.raises(CollaboratorError) as exc:
            admin.alter_table(
                workspace_id,
                notes_table,
                AlterTableRequest(alter_columns=[AlterColumnDefinition(name="body", nullable=False)]),
            )
        assert not isinstance(exc.value, PartialFailure)

    def test_empty_request(self, admin, workspace_id, notes_table):
        with pytest.raises(InvalidRequest):
            admin.alter_table(workspace_id, notes_table, AlterTableRequest())

    def test_add_existing_column(self, admin, workspace_id, notes_table):
        with pytest.raises(AlreadyExists):
            admin.alter_table(
                workspace_id,
                notes_table,
                AlterTableRequest(add_columns=[ColumnDefinition(name="body", type="VARCHAR")]),
            )

    def test_drop_unknown_column(self, admin, workspace_id, notes_table):
        with pytest.raises(NotFound):
            admin.alter_table(workspace_id, notes_table, AlterTableRequest(drop_columns=["ghost"]))

    def test_drop_primary_key_column(self, admin, workspace_id, orders_table):
        with pytest.raises(InvalidRequest):
            admin.alter_table(workspace_id, orders_table, AlterTableRequest(drop_columns=["id"]))

    def test_drop_every_column(self, admin, workspace_id, notes_table):
        with pytest.raises(InvalidRequest):
            admin.alter_table(workspace_id, notes_table, AlterTableRequest(drop_columns=["id", "body"]))

    def test_rename_onto_existing_table(self, admin, workspace_id, notes_table, orders_table):
        with pytest.raises(AlreadyExists):
            admin.alter_table(workspace_id, notes_table, AlterTableRequest(rename_to="orders"))

    def test_missing_table(self, admin, workspace_id):
        with pytest.raises(NotFound):
            admin.alter_table(workspace_id, "ghost", AlterTableRequest(drop_columns=["a"]))


class TestDropTable:
    def test_drop_table(self, admin, workspace_id, notes_table):
        admin.drop_table(workspace_id, notes_table)
        assert admin.list_tables(workspace_id) == []
        assert not admin.catalog.is_cached(workspace_id, notes_table)

    def test_drop_missing_table(self, admin, workspace_id):
        with pytest.raises(NotFound):
            admin.drop_table(workspace_id, "ghost")
