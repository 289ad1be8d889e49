"""
Value module: typed value system and its wire representation.

- Type descriptors (primitive, Decimal, Optional, List, Tuple, Struct)
- make_* factories validating native input
- get_* readers and recursive to_python conversion
- Binary frame codec with LZ4 compression
"""

from ydbcore.value.types import (
    DecimalType,
    ListType,
    OptionalType,
    PrimitiveType,
    PrimitiveTypeId,
    StructMember,
    StructType,
    TupleType,
    YdbType,
)
from ydbcore.value.wire import PayloadKind, WireValue, YdbValue
from ydbcore.value.builder import (
    make_bool,
    make_int8,
    make_uint8,
    make_int16,
    make_uint16,
    make_int32,
    make_uint32,
    make_int64,
    make_uint64,
    make_float,
    make_double,
    make_string,
    make_utf8,
    make_yson,
    make_json,
    make_json_document,
    make_uuid,
    make_date,
    make_datetime,
    make_timestamp,
    make_interval,
    make_decimal,
    make_decimal_with_precision,
    make_optional,
    make_empty_optional,
    make_optional_bool,
    make_optional_int8,
    make_optional_uint8,
    make_optional_int16,
    make_optional_uint16,
    make_optional_int32,
    make_optional_uint32,
    make_optional_int64,
    make_optional_uint64,
    make_optional_float,
    make_optional_double,
    make_optional_date,
    make_optional_datetime,
    make_optional_timestamp,
    make_optional_interval,
    make_optional_string,
    make_optional_utf8,
    make_optional_yson,
    make_optional_json,
    make_optional_json_document,
    make_optional_uuid,
    make_optional_decimal,
    make_list,
    make_empty_list,
    make_tuple,
    make_struct,
)
from ydbcore.value.reader import (
    Column,
    ResultSet,
    get_decimal,
    get_list,
    get_optional,
    get_struct,
    get_tuple,
    to_python,
)
from ydbcore.value.codec import decode_value, encode_value

__all__ = [
    "DecimalType",
    "ListType",
    "OptionalType",
    "PrimitiveType",
    "PrimitiveTypeId",
    "StructMember",
    "StructType",
    "TupleType",
    "YdbType",
    "PayloadKind",
    "WireValue",
    "YdbValue",
    "make_bool",
    "make_int8",
    "make_uint8",
    "make_int16",
    "make_uint16",
    "make_int32",
    "make_uint32",
    "make_int64",
    "make_uint64",
    "make_float",
    "make_double",
    "make_string",
    "make_utf8",
    "make_yson",
    "make_json",
    "make_json_document",
    "make_uuid",
    "make_date",
    "make_datetime",
    "make_timestamp",
    "make_interval",
    "make_decimal",
    "make_decimal_with_precision",
    "make_optional",
    "make_empty_optional",
    "make_optional_bool",
    "make_optional_int8",
    "make_optional_uint8",
    "make_optional_int16",
    "make_optional_uint16",
    "make_optional_int32",
    "make_optional_uint32",
    "make_optional_int64",
    "make_optional_uint64",
    "make_optional_float",
    "make_optional_double",
    "make_optional_date",
    "make_optional_datetime",
    "make_optional_timestamp",
    "make_optional_interval",
    "make_optional_string",
    "make_optional_utf8",
    "make_optional_yson",
    "make_optional_json",
    "make_optional_json_document",
    "make_optional_uuid",
    "make_optional_decimal",
    "make_list",
    "make_empty_list",
    "make_tuple",
    "make_struct",
    "Column",
    "ResultSet",
    "get_decimal",
    "get_list",
    "get_optional",
    "get_struct",
    "get_tuple",
    "to_python",
    "decode_value",
    "encode_value",
]
