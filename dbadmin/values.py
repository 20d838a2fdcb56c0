"""Typed cell values.

Rows arrive from callers as loosely typed JSON mappings. Before anything is
sent to the engine, each value is checked against the declared column type and
wrapped in a TypedValue tagged with the column's value family.
"""

import re
import uuid
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict

from dbadmin.errors import InvalidRequest
from dbadmin.models.entities import Schema


class ValueType(str, Enum):
    INTEGER = "integer"
    DECIMAL = "decimal"
    FLOAT = "float"
    BOOLEAN = "boolean"
    TEXT = "text"
    DATE = "date"
    TIMESTAMP = "timestamp"
    TIME = "time"
    BINARY = "binary"
    OPAQUE = "opaque"


_TYPE_FAMILIES: dict[str, ValueType] = {}
for _names, _family in (
    (
        "TINYINT SMALLINT MEDIUMINT INTEGER INT BIGINT HUGEINT UTINYINT USMALLINT "
        "UINTEGER UBIGINT UHUGEINT INT1 INT2 INT4 INT8 SHORT LONG SIGNED SERIAL BIGSERIAL",
        ValueType.INTEGER,
    ),
    ("DECIMAL NUMERIC DEC", ValueType.DECIMAL),
    ("FLOAT DOUBLE REAL FLOAT4 FLOAT8", ValueType.FLOAT),
    ("BOOLEAN BOOL LOGICAL", ValueType.BOOLEAN),
    (
        "VARCHAR CHAR CHARACTER BPCHAR TEXT STRING NVARCHAR NCHAR TINYTEXT MEDIUMTEXT LONGTEXT "
        "UUID ENUM JSON SET",
        ValueType.TEXT,
    ),
    ("DATE", ValueType.DATE),
    (
        "TIMESTAMP DATETIME TIMESTAMPTZ TIMESTAMP_S TIMESTAMP_MS TIMESTAMP_NS TIMESTAMP_US",
        ValueType.TIMESTAMP,
    ),
    ("TIME TIMETZ", ValueType.TIME),
    ("BLOB BYTEA BINARY VARBINARY TINYBLOB MEDIUMBLOB LONGBLOB", ValueType.BINARY),
):
    for _name in _names.split():
        _TYPE_FAMILIES[_name] = _family

_NESTED_TYPE = re.compile(r"(\[\d*\]$)|^(STRUCT|MAP|UNION|LIST|ARRAY)\b")

_TRUE_STRINGS = {"true", "t", "yes", "y", "1"}
_FALSE_STRINGS = {"false", "f", "no", "n", "0"}


def value_type_of(data_type: str) -> ValueType:
    """Map a declared SQL type (e.g. ``DECIMAL(10,2)``, ``INTEGER[]``) to its value family."""
    normalized = data_type.strip().upper()
    if _NESTED_TYPE.search(normalized):
        return ValueType.OPAQUE
    base = re.split(r"[\s(]", normalized, maxsplit=1)[0]
    return _TYPE_FAMILIES.get(base, ValueType.OPAQUE)


class TypedValue(BaseModel):
    """A cell value tagged with its value family. ``value`` is None for SQL NULL."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    type: ValueType
    value: Any = None

    @property
    def is_null(self) -> bool:
        return self.value is None


TypedRecord = dict[str, TypedValue]


class ValueCoercionError(ValueError):
    """Value cannot be represented in the target value family."""


def _reject(value: Any, vtype: ValueType) -> ValueCoercionError:
    return ValueCoercionError(f"{value!r} is not a valid {vtype.value} value")


def _coerce_integer(value: Any) -> int:
    if isinstance(value, bool):
        raise _reject(value, ValueType.INTEGER)
    if isinstance(value, int):
        return value
    if isinstance(value, (float, Decimal)):
        if value != value or value in (float("inf"), float("-inf")) or value != int(value):
            raise _reject(value, ValueType.INTEGER)
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            raise _reject(value, ValueType.INTEGER) from None
    raise _reject(value, ValueType.INTEGER)


def _coerce_decimal(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise _reject(value, ValueType.DECIMAL)
    if isinstance(value, (int, float, Decimal, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise _reject(value, ValueType.DECIMAL) from None
        if not result.is_finite():
            raise _reject(value, ValueType.DECIMAL)
        return result
    raise _reject(value, ValueType.DECIMAL)


def _coerce_float(value: Any) -> float:
    if isinstance(value, bool):
        raise _reject(value, ValueType.FLOAT)
    if isinstance(value, (int, float, Decimal)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            raise _reject(value, ValueType.FLOAT) from None
    raise _reject(value, ValueType.FLOAT)


def _coerce_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise _reject(value, ValueType.BOOLEAN)


def _coerce_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, uuid.UUID):
        return str(value)
    raise _reject(value, ValueType.TEXT)


def _coerce_date(value: Any) -> date:
    if isinstance(value, datetime):
        raise _reject(value, ValueType.DATE)
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            raise _reject(value, ValueType.DATE) from None
    raise _reject(value, ValueType.DATE)


def _coerce_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time())
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError:
            raise _reject(value, ValueType.TIMESTAMP) from None
    raise _reject(value, ValueType.TIMESTAMP)


def _coerce_time(value: Any) -> time:
    if isinstance(value, time):
        return value
    if isinstance(value, str):
        try:
            return time.fromisoformat(value.strip())
        except ValueError:
            raise _reject(value, ValueType.TIME) from None
    raise _reject(value, ValueType.TIME)


def _coerce_binary(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        return value.encode("utf-8")
    raise _reject(value, ValueType.BINARY)


_COERCERS = {
    ValueType.INTEGER: _coerce_integer,
    ValueType.DECIMAL: _coerce_decimal,
    ValueType.FLOAT: _coerce_float,
    ValueType.BOOLEAN: _coerce_boolean,
    ValueType.TEXT: _coerce_text,
    ValueType.DATE: _coerce_date,
    ValueType.TIMESTAMP: _coerce_timestamp,
    ValueType.TIME: _coerce_time,
    ValueType.BINARY: _coerce_binary,
}


def coerce_value(value: Any, vtype: ValueType) -> TypedValue:
    """
    Validate a raw value against a value family.

    None passes through as NULL for every family; nullability is the engine's
    concern. Opaque values (arrays, structs, intervals) are passed as given.

    Raises:
        ValueCoercionError: if the value cannot be represented
    """
    if value is None:
        return TypedValue(type=vtype, value=None)
    coercer = _COERCERS.get(vtype)
    if coercer is None:
        return TypedValue(type=vtype, value=value)
    return TypedValue(type=vtype, value=coercer(value))


def bind_record(record: Mapping[str, Any], schema: Schema) -> TypedRecord:
    """
    Validate a raw column->value mapping against a Schema.

    Only the columns present in ``record`` are bound, so omission and an
    explicit None stay distinguishable.

    Raises:
        InvalidRequest: on unknown columns or values of the wrong type
    """
    unknown = [name for name in record if schema.column(name) is None]
    if unknown:
        raise InvalidRequest(
            f"Unknown column(s) for table '{schema.table}': {', '.join(unknown)}",
            {"table": schema.table, "unknown_columns": unknown},
        )

    bound: TypedRecord = {}
    for name, raw in record.items():
        column = schema.column(name)
        try:
            bound[name] = coerce_value(raw, value_type_of(column.data_type))
        except ValueCoercionError as e:
            raise InvalidRequest(
                f"Invalid value for column '{name}' ({column.data_type}): {e}",
                {"table": schema.table, "column": name, "data_type": column.data_type},
            ) from None
    return bound


def to_json_safe(value: Any) -> Any:
    """Convert engine values into JSON-friendly primitives for API responses."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, list):
        return [to_json_safe(v) for v in value]
    if isinstance(value, dict):
        return {str(k): to_json_safe(v) for k, v in value.items()}
    return value
