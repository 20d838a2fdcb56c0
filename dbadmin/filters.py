"""Query filter validation.

Structured filters are checked against the live Schema before they reach the
SQL layer: the column must exist, the operator must make sense for the column's
value family and the operand must coerce to that family. The collaborator only
ever receives BoundFilters, whose operands are TypedValues.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from dbadmin.errors import InvalidFilter
from dbadmin.models.entities import FilterOperator, QueryFilter, Schema, SortDirection
from dbadmin.values import TypedValue, ValueCoercionError, ValueType, coerce_value, value_type_of

NULL_CHECKS = frozenset({FilterOperator.IS_NULL, FilterOperator.IS_NOT_NULL})
ORDERING = frozenset({FilterOperator.GT, FilterOperator.GTE, FilterOperator.LT, FilterOperator.LTE})

# Families without a meaningful total order
_UNORDERED = frozenset({ValueType.BOOLEAN, ValueType.BINARY, ValueType.OPAQUE})


class BoundFilter(BaseModel):
    """A filter validated against a Schema, ready for SQL rendering."""

    model_config = ConfigDict(frozen=True)

    column: str
    operator: FilterOperator
    value: TypedValue | None = None
    values: list[TypedValue] = Field(default_factory=list)


class OrderKey(BaseModel):
    model_config = ConfigDict(frozen=True)

    column: str
    direction: SortDirection = SortDirection.ASC


class RowQuery(BaseModel):
    """Fully validated row query handed to the collaborator."""

    filters: list[BoundFilter] = Field(default_factory=list)
    order_by: list[OrderKey] = Field(default_factory=list)
    limit: int
    offset: int = 0


def _invalid(message: str, flt: QueryFilter, schema: Schema, **extra: Any) -> InvalidFilter:
    details = {"table": schema.table, "column": flt.column, "operator": flt.operator.value}
    details.update(extra)
    return InvalidFilter(message, details)


def _coerce_operand(flt: QueryFilter, raw: Any, vtype: ValueType, schema: Schema) -> TypedValue:
    if raw is None:
        raise _invalid(
            f"Operator '{flt.operator.value}' needs a value; use is_null/is_not_null for NULL",
            flt,
            schema,
        )
    try:
        return coerce_value(raw, vtype)
    except ValueCoercionError as e:
        raise _invalid(
            f"Value for column '{flt.column}' is not compatible with its type: {e}",
            flt,
            schema,
            value_type=vtype.value,
        ) from None


def bind_filter(flt: QueryFilter, schema: Schema) -> BoundFilter:
    """Validate one filter against a Schema."""
    column = schema.column(flt.column)
    if column is None:
        raise _invalid(
            f"Unknown column '{flt.column}' in table '{schema.table}'",
            flt,
            schema,
            available_columns=schema.column_names,
        )

    op = flt.operator
    if op in NULL_CHECKS:
        return BoundFilter(column=column.name, operator=op)

    vtype = value_type_of(column.data_type)
    if vtype == ValueType.OPAQUE:
        raise _invalid(
            f"Column '{column.name}' ({column.data_type}) only supports null checks",
            flt,
            schema,
        )
    if op == FilterOperator.LIKE:
        if vtype != ValueType.TEXT:
            raise _invalid(
                f"Operator 'like' requires a text column, '{column.name}' is {column.data_type}",
                flt,
                schema,
            )
        if not isinstance(flt.value, str):
            raise _invalid("Operator 'like' requires a string pattern", flt, schema)
    if op in ORDERING and vtype in _UNORDERED:
        raise _invalid(
            f"Operator '{op.value}' is not supported on {column.data_type} column '{column.name}'",
            flt,
            schema,
        )

    if op == FilterOperator.IN:
        if not isinstance(flt.value, (list, tuple)) or not flt.value:
            raise _invalid("Operator 'in' requires a non-empty list of values", flt, schema)
        values = [_coerce_operand(flt, raw, vtype, schema) for raw in flt.value]
        return BoundFilter(column=column.name, operator=op, values=values)

    return BoundFilter(
        column=column.name,
        operator=op,
        value=_coerce_operand(flt, flt.value, vtype, schema),
    )


def validate_filters(filters: list[QueryFilter], schema: Schema) -> list[BoundFilter]:
    """
    Validate a list of AND-combined filters against a Schema.

    Raises:
        InvalidFilter: on the first filter that fails validation
    """
    return [bind_filter(flt, schema) for flt in filters]


def validate_order(order_by: str | None, schema: Schema) -> str | None:
    if order_by is None:
        return None
    if schema.column(order_by) is None:
        raise InvalidFilter(
            f"Cannot sort by unknown column '{order_by}' in table '{schema.table}'",
            {"table": schema.table, "order_by": order_by, "available_columns": schema.column_names},
        )
    return order_by
