"""
Value Reader: Typed Wire Values back to Native Values

Accessors check the declared type before touching the payload and raise
ValueConstructionError on a mismatch. `to_python` converts any value tree
recursively.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Iterator, Optional
from uuid import UUID

from ydbcore.core.errors import ValueConstructionError
from ydbcore.value.builder import EPOCH, EPOCH_DATE
from ydbcore.value.types import (
    DecimalType,
    ListType,
    OptionalType,
    PrimitiveType,
    PrimitiveTypeId,
    StructType,
    TupleType,
    YdbType,
)
from ydbcore.value.wire import WireValue, YdbValue


def _expect(value: YdbValue, type_id: PrimitiveTypeId) -> WireValue:
    if value.type != PrimitiveType(type_id):
        raise ValueConstructionError.type_mismatch(type_id.display_name, value.type)
    return value.value


def get_bool(value: YdbValue) -> bool:
    return bool(_expect(value, PrimitiveTypeId.BOOL).bool_value)


def get_int8(value: YdbValue) -> int:
    return _expect(value, PrimitiveTypeId.INT8).int32_value


def get_uint8(value: YdbValue) -> int:
    return _expect(value, PrimitiveTypeId.UINT8).uint32_value


def get_int16(value: YdbValue) -> int:
    return _expect(value, PrimitiveTypeId.INT16).int32_value


def get_uint16(value: YdbValue) -> int:
    return _expect(value, PrimitiveTypeId.UINT16).uint32_value


def get_int32(value: YdbValue) -> int:
    return _expect(value, PrimitiveTypeId.INT32).int32_value


def get_uint32(value: YdbValue) -> int:
    return _expect(value, PrimitiveTypeId.UINT32).uint32_value


def get_int64(value: YdbValue) -> int:
    return _expect(value, PrimitiveTypeId.INT64).int64_value


def get_uint64(value: YdbValue) -> int:
    return _expect(value, PrimitiveTypeId.UINT64).uint64_value


def get_float(value: YdbValue) -> float:
    return _expect(value, PrimitiveTypeId.FLOAT).float_value


def get_double(value: YdbValue) -> float:
    return _expect(value, PrimitiveTypeId.DOUBLE).double_value


def get_string(value: YdbValue) -> bytes:
    return _expect(value, PrimitiveTypeId.STRING).bytes_value


def get_utf8(value: YdbValue) -> str:
    return _expect(value, PrimitiveTypeId.UTF8).text_value


def get_yson(value: YdbValue) -> bytes:
    return _expect(value, PrimitiveTypeId.YSON).bytes_value


def get_json(value: YdbValue) -> str:
    return _expect(value, PrimitiveTypeId.JSON).text_value


def get_json_document(value: YdbValue) -> str:
    return _expect(value, PrimitiveTypeId.JSON_DOCUMENT).text_value


def get_uuid(value: YdbValue) -> UUID:
    payload = _expect(value, PrimitiveTypeId.UUID)
    return UUID(bytes_le=struct.pack("<QQ", payload.low_128, payload.high_128))


def get_date(value: YdbValue) -> date:
    return EPOCH_DATE + timedelta(days=_expect(value, PrimitiveTypeId.DATE).uint32_value)


def get_datetime(value: YdbValue) -> datetime:
    """Timezone-aware UTC datetime."""
    return EPOCH + timedelta(seconds=_expect(value, PrimitiveTypeId.DATETIME).uint32_value)


def get_timestamp(value: YdbValue) -> datetime:
    """Timezone-aware UTC datetime."""
    return EPOCH + timedelta(microseconds=_expect(value, PrimitiveTypeId.TIMESTAMP).uint64_value)


def get_interval(value: YdbValue) -> timedelta:
    return timedelta(microseconds=_expect(value, PrimitiveTypeId.INTERVAL).int64_value)


def unpack_int128(low: int, high: int) -> int:
    n = (high << 64) | low
    if n >= 1 << 127:
        n -= 1 << 128
    return n


def get_decimal(value: YdbValue) -> Decimal:
    if not isinstance(value.type, DecimalType):
        raise ValueConstructionError.type_mismatch("Decimal", value.type)
    n = unpack_int128(value.value.low_128 or 0, value.value.high_128 or 0)
    digits = tuple(int(c) for c in str(abs(n)))
    # built from the tuple so no context rounding applies
    return Decimal((1 if n < 0 else 0, digits, -value.type.scale))


def get_optional(value: YdbValue) -> Optional[YdbValue]:
    """
    Unwrap one Optional level.

    Returns None for null, otherwise the inner value, removing the
    nested_value indirection when the inner type is itself optional.
    """
    if not isinstance(value.type, OptionalType):
        raise ValueConstructionError.type_mismatch("Optional", value.type)
    payload = value.value
    if payload.null_flag_value:
        return None
    item_type = value.type.item
    if isinstance(item_type, OptionalType):
        if payload.nested_value is None:
            raise ValueConstructionError.type_mismatch("nested value payload", payload.kind.name)
        return YdbValue(type=item_type, value=payload.nested_value)
    return YdbValue(type=item_type, value=payload)


def get_list(value: YdbValue) -> list[YdbValue]:
    if not isinstance(value.type, ListType):
        raise ValueConstructionError.type_mismatch("List", value.type)
    item_type = value.type.item
    return [YdbValue(type=item_type, value=item) for item in value.value.items]


def get_tuple(value: YdbValue) -> tuple[YdbValue, ...]:
    if not isinstance(value.type, TupleType):
        raise ValueConstructionError.type_mismatch("Tuple", value.type)
    elements = value.type.elements
    if len(elements) != len(value.value.items):
        raise ValueConstructionError.type_mismatch(
            f"{len(elements)} tuple items", len(value.value.items)
        )
    return tuple(YdbValue(type=t, value=v) for t, v in zip(elements, value.value.items))


def get_struct(value: YdbValue) -> dict[str, YdbValue]:
    """Members in declaration order."""
    if not isinstance(value.type, StructType):
        raise ValueConstructionError.type_mismatch("Struct", value.type)
    members = value.type.members
    if len(members) != len(value.value.items):
        raise ValueConstructionError.type_mismatch(
            f"{len(members)} struct members", len(value.value.items)
        )
    return {
        m.name: YdbValue(type=m.type, value=v)
        for m, v in zip(members, value.value.items)
    }


_PRIMITIVE_READERS = {
    PrimitiveTypeId.BOOL: get_bool,
    PrimitiveTypeId.INT8: get_int8,
    PrimitiveTypeId.UINT8: get_uint8,
    PrimitiveTypeId.INT16: get_int16,
    PrimitiveTypeId.UINT16: get_uint16,
    PrimitiveTypeId.INT32: get_int32,
    PrimitiveTypeId.UINT32: get_uint32,
    PrimitiveTypeId.INT64: get_int64,
    PrimitiveTypeId.UINT64: get_uint64,
    PrimitiveTypeId.FLOAT: get_float,
    PrimitiveTypeId.DOUBLE: get_double,
    PrimitiveTypeId.DATE: get_date,
    PrimitiveTypeId.DATETIME: get_datetime,
    PrimitiveTypeId.TIMESTAMP: get_timestamp,
    PrimitiveTypeId.INTERVAL: get_interval,
    PrimitiveTypeId.STRING: get_string,
    PrimitiveTypeId.UTF8: get_utf8,
    PrimitiveTypeId.YSON: get_yson,
    PrimitiveTypeId.JSON: get_json,
    PrimitiveTypeId.UUID: get_uuid,
    PrimitiveTypeId.JSON_DOCUMENT: get_json_document,
}


def to_python(value: YdbValue) -> Any:
    """Recursively convert to native Python values."""
    match value.type:
        case PrimitiveType(type_id=type_id):
            return _PRIMITIVE_READERS[type_id](value)
        case DecimalType():
            return get_decimal(value)
        case OptionalType():
            inner = get_optional(value)
            return None if inner is None else to_python(inner)
        case ListType():
            return [to_python(v) for v in get_list(value)]
        case TupleType():
            return tuple(to_python(v) for v in get_tuple(value))
        case StructType():
            return {name: to_python(v) for name, v in get_struct(value).items()}
    raise ValueConstructionError.unsupported_type(value.type, "to_python")


# =============================================================================
# RESULT SETS
# =============================================================================
@dataclass(frozen=True, slots=True)
class Column:
    name: str
    type: YdbType


@dataclass(frozen=True, slots=True)
class ResultSet:
    """
    Rows of one result set returned by a query.

    Each row is a WireValue whose items line up with `columns`.
    """

    columns: tuple[Column, ...]
    rows: tuple[WireValue, ...] = ()
    truncated: bool = False

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(c.name for c in self.columns)

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[dict[str, YdbValue]]:
        for row in self.rows:
            yield self.row(row)

    def row(self, row: WireValue) -> dict[str, YdbValue]:
        if len(row.items) != len(self.columns):
            raise ValueConstructionError.type_mismatch(
                f"{len(self.columns)} row cells", len(row.items)
            )
        return {
            c.name: YdbValue(type=c.type, value=cell)
            for c, cell in zip(self.columns, row.items)
        }

    def to_python(self) -> list[dict[str, Any]]:
        return [{name: to_python(v) for name, v in r.items()} for r in self]
