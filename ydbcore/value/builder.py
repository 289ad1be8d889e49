"""
Value Builder: Native Values to Typed Wire Values

Pure, stateless factories. Every factory validates its input and raises
ValueConstructionError at the call site; nothing is truncated or coerced
silently.

Encoding rules:
    Date       days since epoch (uint32)
    Datetime   seconds since epoch (uint32)
    Timestamp  microseconds since epoch (uint64)
    Interval   signed microseconds (int64)
    Uuid       little-endian field layout split into two 64-bit words
    Decimal    128-bit two's complement of value * 10**scale

Naive datetimes are interpreted as UTC. Sub-unit precision is truncated.

Usage:
    params = {
        "$id": make_uint64(42),
        "$price": make_decimal(Decimal("19.99")),
        "$tags": make_list([make_utf8("a"), make_utf8("b")]),
        "$note": make_optional_utf8(None),
    }
"""

from __future__ import annotations

import struct
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence, TypeVar, Union
from uuid import UUID

from ydbcore.core import constants as C
from ydbcore.core.errors import ValueConstructionError
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
from ydbcore.value.wire import WireValue, YdbValue

T = TypeVar("T")

# =============================================================================
# RANGES
# =============================================================================
INT8_MIN, INT8_MAX = -(1 << 7), (1 << 7) - 1
INT16_MIN, INT16_MAX = -(1 << 15), (1 << 15) - 1
INT32_MIN, INT32_MAX = -(1 << 31), (1 << 31) - 1
INT64_MIN, INT64_MAX = -(1 << 63), (1 << 63) - 1
UINT8_MAX = (1 << 8) - 1
UINT16_MAX = (1 << 16) - 1
UINT32_MAX = (1 << 32) - 1
UINT64_MAX = (1 << 64) - 1

MASK64 = UINT64_MAX

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
EPOCH_DATE = date(1970, 1, 1)
ONE_DAY = timedelta(days=1)
ONE_SECOND = timedelta(seconds=1)
ONE_MICROSECOND = timedelta(microseconds=1)


def _primitive(type_id: PrimitiveTypeId, payload: WireValue) -> YdbValue:
    return YdbValue(type=PrimitiveType(type_id), value=payload)


def _check_int(kind: str, value: Any, low: int, high: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueConstructionError.type_mismatch(f"int for {kind}", type(value).__name__)
    if not low <= value <= high:
        raise ValueConstructionError.out_of_range(kind, value)
    return value


# =============================================================================
# SCALARS
# =============================================================================
def make_bool(value: bool) -> YdbValue:
    if not isinstance(value, bool):
        raise ValueConstructionError.type_mismatch("bool", type(value).__name__)
    return _primitive(PrimitiveTypeId.BOOL, WireValue(bool_value=value))


def make_int8(value: int) -> YdbValue:
    value = _check_int("Int8", value, INT8_MIN, INT8_MAX)
    return _primitive(PrimitiveTypeId.INT8, WireValue(int32_value=value))


def make_uint8(value: int) -> YdbValue:
    value = _check_int("Uint8", value, 0, UINT8_MAX)
    return _primitive(PrimitiveTypeId.UINT8, WireValue(uint32_value=value))


def make_int16(value: int) -> YdbValue:
    value = _check_int("Int16", value, INT16_MIN, INT16_MAX)
    return _primitive(PrimitiveTypeId.INT16, WireValue(int32_value=value))


def make_uint16(value: int) -> YdbValue:
    value = _check_int("Uint16", value, 0, UINT16_MAX)
    return _primitive(PrimitiveTypeId.UINT16, WireValue(uint32_value=value))


def make_int32(value: int) -> YdbValue:
    value = _check_int("Int32", value, INT32_MIN, INT32_MAX)
    return _primitive(PrimitiveTypeId.INT32, WireValue(int32_value=value))


def make_uint32(value: int) -> YdbValue:
    value = _check_int("Uint32", value, 0, UINT32_MAX)
    return _primitive(PrimitiveTypeId.UINT32, WireValue(uint32_value=value))


def make_int64(value: int) -> YdbValue:
    value = _check_int("Int64", value, INT64_MIN, INT64_MAX)
    return _primitive(PrimitiveTypeId.INT64, WireValue(int64_value=value))


def make_uint64(value: int) -> YdbValue:
    value = _check_int("Uint64", value, 0, UINT64_MAX)
    return _primitive(PrimitiveTypeId.UINT64, WireValue(uint64_value=value))


def make_float(value: float) -> YdbValue:
    """32-bit float; the stored payload is the value rounded to single precision."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueConstructionError.type_mismatch("float", type(value).__name__)
    try:
        single = struct.unpack(">f", struct.pack(">f", value))[0]
    except OverflowError:
        raise ValueConstructionError.out_of_range("Float", value) from None
    return _primitive(PrimitiveTypeId.FLOAT, WireValue(float_value=single))


def make_double(value: float) -> YdbValue:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueConstructionError.type_mismatch("float", type(value).__name__)
    try:
        double = float(value)
    except OverflowError:
        raise ValueConstructionError.out_of_range("Double", value) from None
    return _primitive(PrimitiveTypeId.DOUBLE, WireValue(double_value=double))


def _check_bytes(value: Any) -> bytes:
    if not isinstance(value, (bytes, bytearray, memoryview)):
        raise ValueConstructionError.type_mismatch("bytes", type(value).__name__)
    return bytes(value)


def _check_text(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueConstructionError.type_mismatch("str", type(value).__name__)
    return value


def make_string(value: bytes) -> YdbValue:
    return _primitive(PrimitiveTypeId.STRING, WireValue(bytes_value=_check_bytes(value)))


def make_utf8(value: str) -> YdbValue:
    return _primitive(PrimitiveTypeId.UTF8, WireValue(text_value=_check_text(value)))


def make_yson(value: bytes) -> YdbValue:
    return _primitive(PrimitiveTypeId.YSON, WireValue(bytes_value=_check_bytes(value)))


def make_json(value: str) -> YdbValue:
    return _primitive(PrimitiveTypeId.JSON, WireValue(text_value=_check_text(value)))


def make_json_document(value: str) -> YdbValue:
    return _primitive(PrimitiveTypeId.JSON_DOCUMENT, WireValue(text_value=_check_text(value)))


def make_uuid(value: UUID) -> YdbValue:
    if not isinstance(value, UUID):
        raise ValueConstructionError.type_mismatch("UUID", type(value).__name__)
    low, high = struct.unpack("<QQ", value.bytes_le)
    return _primitive(PrimitiveTypeId.UUID, WireValue(low_128=low, high_128=high))


# =============================================================================
# DATE AND TIME
# =============================================================================
def _since_epoch(value: datetime) -> timedelta:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value - EPOCH


def make_date(value: Union[date, datetime]) -> YdbValue:
    if isinstance(value, datetime):
        days = _since_epoch(value) // ONE_DAY
    elif isinstance(value, date):
        days = (value - EPOCH_DATE).days
    else:
        raise ValueConstructionError.type_mismatch("date", type(value).__name__)
    if not 0 <= days <= UINT32_MAX:
        raise ValueConstructionError.out_of_range("Date", value)
    return _primitive(PrimitiveTypeId.DATE, WireValue(uint32_value=days))


def make_datetime(value: datetime) -> YdbValue:
    if not isinstance(value, datetime):
        raise ValueConstructionError.type_mismatch("datetime", type(value).__name__)
    seconds = _since_epoch(value) // ONE_SECOND
    if not 0 <= seconds <= UINT32_MAX:
        raise ValueConstructionError.out_of_range("Datetime", value)
    return _primitive(PrimitiveTypeId.DATETIME, WireValue(uint32_value=seconds))


def make_timestamp(value: datetime) -> YdbValue:
    if not isinstance(value, datetime):
        raise ValueConstructionError.type_mismatch("datetime", type(value).__name__)
    micros = _since_epoch(value) // ONE_MICROSECOND
    if not 0 <= micros <= UINT64_MAX:
        raise ValueConstructionError.out_of_range("Timestamp", value)
    return _primitive(PrimitiveTypeId.TIMESTAMP, WireValue(uint64_value=micros))


def make_interval(value: timedelta) -> YdbValue:
    if not isinstance(value, timedelta):
        raise ValueConstructionError.type_mismatch("timedelta", type(value).__name__)
    micros = value // ONE_MICROSECOND
    if not INT64_MIN <= micros <= INT64_MAX:
        raise ValueConstructionError.out_of_range("Interval", value)
    return _primitive(PrimitiveTypeId.INTERVAL, WireValue(int64_value=micros))


# =============================================================================
# DECIMAL
# =============================================================================
def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValueConstructionError.type_mismatch("decimal", "bool")
    elif isinstance(value, float):
        # repr gives the shortest literal that round-trips the float
        result = Decimal(repr(value))
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(value)
        except InvalidOperation:
            raise ValueConstructionError.type_mismatch("decimal literal", value) from None
    else:
        raise ValueConstructionError.type_mismatch("decimal", type(value).__name__)
    if not result.is_finite():
        raise ValueConstructionError.out_of_range("Decimal", value)
    return result


def _decompose(value: Decimal) -> tuple[bool, int, int]:
    """Split into (negative, coefficient, scale) with scale >= 0."""
    sign, digits, exponent = value.as_tuple()
    coefficient = 0
    for digit in digits:
        coefficient = coefficient * 10 + digit
    if exponent > 0:
        coefficient *= 10 ** exponent
        exponent = 0
    return bool(sign), coefficient, -exponent


def _digit_count(n: int) -> int:
    return len(str(n)) if n else 0


def validate_decimal_type(precision: int, scale: int) -> DecimalType:
    if not 1 <= precision <= C.DECIMAL_MAX_PRECISION:
        raise ValueConstructionError.out_of_range("Decimal precision", precision)
    if not 0 <= scale <= precision:
        raise ValueConstructionError.out_of_range(f"Decimal scale (precision {precision})", scale)
    return DecimalType(precision=precision, scale=scale)


def pack_int128(value: int) -> tuple[int, int]:
    """Split a signed integer into (low, high) two's-complement words."""
    magnitude = abs(value)
    low = magnitude & MASK64
    high = (magnitude >> 64) & MASK64
    if value < 0:
        low = ~low & MASK64
        high = ~high & MASK64
        low += 1
        if low > MASK64:
            low = 0
            high = (high + 1) & MASK64
    return low, high


def make_decimal_with_precision(
    value: Union[Decimal, int, float, str],
    precision: Optional[int] = None,
    scale: Optional[int] = None,
) -> YdbValue:
    """
    Decimal with explicit or derived (precision, scale).

    Missing scale defaults to the value's own scale; missing precision to
    the smallest one holding the value's integer digits at that scale.

    Raises:
        ValueConstructionError: If the value has more integer digits than
            precision - scale allows, or more significant fractional
            digits than scale.
    """
    number = _to_decimal(value)
    negative, coefficient, value_scale = _decompose(number)
    value_precision = _digit_count(coefficient)

    if scale is None:
        scale = value_scale
    if precision is None:
        precision = max(max(value_precision - value_scale, 0) + scale, 1)
    decimal_type = validate_decimal_type(precision, scale)

    if value_precision - value_scale > precision - scale:
        raise ValueConstructionError.decimal_overflow(value_precision, value_scale, precision, scale)

    if value_scale > scale:
        factor = 10 ** (value_scale - scale)
        if coefficient % factor:
            raise ValueConstructionError.decimal_overflow(value_precision, value_scale, precision, scale)
        unscaled = coefficient // factor
    else:
        # pad fraction with trailing zeros up to the target scale
        unscaled = coefficient * 10 ** (scale - value_scale)

    low, high = pack_int128(-unscaled if negative else unscaled)
    return YdbValue(type=decimal_type, value=WireValue(low_128=low, high_128=high))


def make_decimal(value: Union[Decimal, int, float, str]) -> YdbValue:
    """Decimal(22, 9)."""
    return make_decimal_with_precision(
        value,
        precision=C.DECIMAL_DEFAULT_PRECISION,
        scale=C.DECIMAL_DEFAULT_SCALE,
    )


# =============================================================================
# OPTIONAL
# =============================================================================
def make_optional(value: YdbValue) -> YdbValue:
    """
    Wrap a value into Optional.

    A non-optional payload is kept as is; wrapping an already optional
    value adds one nested_value level so that null at each depth stays
    distinguishable.
    """
    if isinstance(value.type, OptionalType):
        payload = WireValue(nested_value=value.value)
    else:
        payload = value.value
    return YdbValue(type=OptionalType(item=value.type), value=payload)


def make_empty_optional(type_: Union[PrimitiveTypeId, PrimitiveType, DecimalType]) -> YdbValue:
    """Null of Optional<type_>; only primitive and Decimal item types are supported."""
    if isinstance(type_, PrimitiveTypeId):
        item: YdbType = PrimitiveType(type_)
    elif isinstance(type_, (PrimitiveType, DecimalType)):
        item = type_
    else:
        raise ValueConstructionError.unsupported_type(type_, "make_empty_optional")
    return YdbValue(type=OptionalType(item=item), value=WireValue(null_flag_value=True))


def _optional_of(
    value: Optional[T],
    type_: Union[PrimitiveTypeId, DecimalType],
    factory: Callable[[T], YdbValue],
) -> YdbValue:
    if value is None:
        return make_empty_optional(type_)
    return make_optional(factory(value))


def make_optional_bool(value: Optional[bool] = None) -> YdbValue:
    return _optional_of(value, PrimitiveTypeId.BOOL, make_bool)


def make_optional_int8(value: Optional[int] = None) -> YdbValue:
    return _optional_of(value, PrimitiveTypeId.INT8, make_int8)


def make_optional_uint8(value: Optional[int] = None) -> YdbValue:
    return _optional_of(value, PrimitiveTypeId.UINT8, make_uint8)


def make_optional_int16(value: Optional[int] = None) -> YdbValue:
    return _optional_of(value, PrimitiveTypeId.INT16, make_int16)


def make_optional_uint16(value: Optional[int] = None) -> YdbValue:
    return _optional_of(value, PrimitiveTypeId.UINT16, make_uint16)


def make_optional_int32(value: Optional[int] = None) -> YdbValue:
    return _optional_of(value, PrimitiveTypeId.INT32, make_int32)


def make_optional_uint32(value: Optional[int] = None) -> YdbValue:
    return _optional_of(value, PrimitiveTypeId.UINT32, make_uint32)


def make_optional_int64(value: Optional[int] = None) -> YdbValue:
    return _optional_of(value, PrimitiveTypeId.INT64, make_int64)


def make_optional_uint64(value: Optional[int] = None) -> YdbValue:
    return _optional_of(value, PrimitiveTypeId.UINT64, make_uint64)


def make_optional_float(value: Optional[float] = None) -> YdbValue:
    return _optional_of(value, PrimitiveTypeId.FLOAT, make_float)


def make_optional_double(value: Optional[float] = None) -> YdbValue:
    return _optional_of(value, PrimitiveTypeId.DOUBLE, make_double)


def make_optional_date(value: Optional[date] = None) -> YdbValue:
    return _optional_of(value, PrimitiveTypeId.DATE, make_date)


def make_optional_datetime(value: Optional[datetime] = None) -> YdbValue:
    return _optional_of(value, PrimitiveTypeId.DATETIME, make_datetime)


def make_optional_timestamp(value: Optional[datetime] = None) -> YdbValue:
    return _optional_of(value, PrimitiveTypeId.TIMESTAMP, make_timestamp)


def make_optional_interval(value: Optional[timedelta] = None) -> YdbValue:
    return _optional_of(value, PrimitiveTypeId.INTERVAL, make_interval)


def make_optional_string(value: Optional[bytes] = None) -> YdbValue:
    return _optional_of(value, PrimitiveTypeId.STRING, make_string)


def make_optional_utf8(value: Optional[str] = None) -> YdbValue:
    return _optional_of(value, PrimitiveTypeId.UTF8, make_utf8)


def make_optional_yson(value: Optional[bytes] = None) -> YdbValue:
    return _optional_of(value, PrimitiveTypeId.YSON, make_yson)


def make_optional_json(value: Optional[str] = None) -> YdbValue:
    return _optional_of(value, PrimitiveTypeId.JSON, make_json)


def make_optional_json_document(value: Optional[str] = None) -> YdbValue:
    return _optional_of(value, PrimitiveTypeId.JSON_DOCUMENT, make_json_document)


def make_optional_uuid(value: Optional[UUID] = None) -> YdbValue:
    return _optional_of(value, PrimitiveTypeId.UUID, make_uuid)


def make_optional_decimal(value: Optional[Union[Decimal, int, float, str]] = None) -> YdbValue:
    default_type = DecimalType(
        precision=C.DECIMAL_DEFAULT_PRECISION,
        scale=C.DECIMAL_DEFAULT_SCALE,
    )
    return _optional_of(value, default_type, make_decimal)


# =============================================================================
# COMPOSITES
# =============================================================================
def make_list(values: Sequence[YdbValue]) -> YdbValue:
    """
    Homogeneous list; the item type is taken from the first element.

    Raises:
        ValueConstructionError: On an empty sequence (use make_empty_list)
            or when an item's type differs from the first item's.
    """
    if not values:
        raise ValueConstructionError.empty_list()
    item_type = values[0].type
    for index, item in enumerate(values):
        if item.type != item_type:
            raise ValueConstructionError.item_type_mismatch(index, item_type, item.type)
    return YdbValue(
        type=ListType(item=item_type),
        value=WireValue(items=tuple(v.value for v in values)),
    )


def make_empty_list(item_type: Union[PrimitiveTypeId, YdbType]) -> YdbValue:
    if isinstance(item_type, PrimitiveTypeId):
        item_type = PrimitiveType(item_type)
    return YdbValue(type=ListType(item=item_type), value=WireValue())


def make_tuple(values: Sequence[YdbValue]) -> YdbValue:
    return YdbValue(
        type=TupleType(elements=tuple(v.type for v in values)),
        value=WireValue(items=tuple(v.value for v in values)),
    )


def make_struct(
    members: Union[Mapping[str, YdbValue], Iterable[tuple[str, YdbValue]]],
) -> YdbValue:
    """
    Struct with members in the given order.

    Accepts a mapping (insertion order) or an iterable of (name, value)
    pairs.
    """
    pairs = list(members.items()) if isinstance(members, Mapping) else list(members)
    seen: set[str] = set()
    for name, _ in pairs:
        if name in seen:
            raise ValueConstructionError.duplicate_member(name)
        seen.add(name)
    return YdbValue(
        type=StructType(members=tuple(StructMember(name=n, type=v.type) for n, v in pairs)),
        value=WireValue(items=tuple(v.value for _, v in pairs)),
    )
