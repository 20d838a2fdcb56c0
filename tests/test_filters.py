"""Tests for query filter validation."""

from decimal import Decimal

import pytest

from dbadmin.errors import InvalidFilter
from dbadmin.filters import bind_filter, validate_filters, validate_order
from dbadmin.models.entities import Column, FilterOperator, QueryFilter, Schema


@pytest.fixture
def schema():
    return Schema(
        table="orders",
        columns=[
            Column(name="id", data_type="INTEGER", nullable=False, is_primary_key_member=True, ordinal_position=1),
            Column(name="customer", data_type="VARCHAR", ordinal_position=2),
            Column(name="amount", data_type="DECIMAL(10,2)", ordinal_position=3),
            Column(name="paid", data_type="BOOLEAN", ordinal_position=4),
            Column(name="tags", data_type="VARCHAR[]", ordinal_position=5),
        ],
        primary_key=["id"],
    )


class TestOperatorAliases:
    """SQL spellings are accepted for operators."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("=", FilterOperator.EQ),
            ("<>", FilterOperator.NEQ),
            (">=", FilterOperator.GTE),
            ("IS NULL", FilterOperator.IS_NULL),
            ("is  not null", FilterOperator.IS_NOT_NULL),
            ("LIKE", FilterOperator.LIKE),
        ],
    )
    def test_alias(self, raw, expected):
        assert QueryFilter(column="id", operator=raw, value=1).operator == expected


class TestBindFilter:
    """Tests for bind_filter."""

    def test_eq_coerces_operand(self, schema):
        bound = bind_filter(QueryFilter(column="amount", operator="gt", value="9.5"), schema)
        assert bound.value.value == Decimal("9.5")

    def test_unknown_column(self, schema):
        with pytest.raises(InvalidFilter) as exc:
            bind_filter(QueryFilter(column="nope", operator="eq", value=1), schema)
        assert "available_columns" in exc.value.details

    def test_incompatible_value(self, schema):
        with pytest.raises(InvalidFilter):
            bind_filter(QueryFilter(column="id", operator="eq", value="abc"), schema)

    def test_null_check_ignores_value(self, schema):
        bound = bind_filter(QueryFilter(column="customer", operator="is_null", value="ignored"), schema)
        assert bound.value is None

    def test_null_operand_rejected(self, schema):
        with pytest.raises(InvalidFilter):
            bind_filter(QueryFilter(column="customer", operator="eq", value=None), schema)

    def test_like_requires_text_column(self, schema):
        with pytest.raises(InvalidFilter):
            bind_filter(QueryFilter(column="id", operator="like", value="1%"), schema)

    def test_like_on_text(self, schema):
        bound = bind_filter(QueryFilter(column="customer", operator="like", value="A%"), schema)
        assert bound.value.value == "A%"

    def test_ordering_on_boolean_rejected(self, schema):
        with pytest.raises(InvalidFilter):
            bind_filter(QueryFilter(column="paid", operator="gt", value=True), schema)

    def test_in_requires_non_empty_list(self, schema):
        with pytest.raises(InvalidFilter):
            bind_filter(QueryFilter(column="id", operator="in", value=[]), schema)

    def test_in_binds_each_value(self, schema):
        bound = bind_filter(QueryFilter(column="id", operator="in", value=["1", 2]), schema)
        assert [v.value for v in bound.values] == [1, 2]

    def test_opaque_column_only_supports_null_checks(self, schema):
        with pytest.raises(InvalidFilter):
            bind_filter(QueryFilter(column="tags", operator="eq", value="x"), schema)
        assert bind_filter(QueryFilter(column="tags", operator="is_not_null"), schema).column == "tags"


class TestValidateHelpers:
    def test_validate_filters_stops_at_first_invalid(self, schema):
        filters = [
            QueryFilter(column="id", operator="gt", value=1),
            QueryFilter(column="missing", operator="eq", value=1),
        ]
        with pytest.raises(InvalidFilter) as exc:
            validate_filters(filters, schema)
        assert exc.value.details["column"] == "missing"

    def test_validate_order_unknown_column(self, schema):
        with pytest.raises(InvalidFilter):
            validate_order("nope", schema)

    def test_validate_order_none(self, schema):
        assert validate_order(None, schema) is None
