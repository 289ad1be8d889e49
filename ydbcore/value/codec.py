"""
Binary Value Codec

Serializes a YdbValue (type tree plus payload) into a self-describing
frame for caching or shipping parameter sets between processes.

Frame layout:
    magic (4) "YDBV" | version (1) | flags (1) | body length (4) | body

Flags bit 0 marks an LZ4-compressed body; bodies larger than the
compression threshold are compressed. All integers are big-endian.
"""

from __future__ import annotations

import struct
from enum import IntEnum

import lz4.frame

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
from ydbcore.value.wire import PayloadKind, WireValue, YdbValue

MAGIC = b"YDBV"
HEADER = struct.Struct(">4sBBI")
FLAG_COMPRESSED = 0x01


class TypeTag(IntEnum):
    PRIMITIVE = 0x01
    DECIMAL = 0x02
    OPTIONAL = 0x03
    LIST = 0x04
    TUPLE = 0x05
    STRUCT = 0x06


# Payload tags
_PAYLOAD_TAGS: dict[PayloadKind, int] = {
    PayloadKind.EMPTY: 0x00,
    PayloadKind.BOOL: 0x01,
    PayloadKind.INT32: 0x02,
    PayloadKind.UINT32: 0x03,
    PayloadKind.INT64: 0x04,
    PayloadKind.UINT64: 0x05,
    PayloadKind.FLOAT: 0x06,
    PayloadKind.DOUBLE: 0x07,
    PayloadKind.BYTES: 0x08,
    PayloadKind.TEXT: 0x09,
    PayloadKind.NULL_FLAG: 0x0A,
    PayloadKind.NESTED: 0x0B,
    PayloadKind.INT128: 0x0C,
    PayloadKind.ITEMS: 0x0D,
}
_PAYLOAD_KINDS = {tag: kind for kind, tag in _PAYLOAD_TAGS.items()}


# =============================================================================
# ENCODING
# =============================================================================
def _write_str(out: bytearray, text: str) -> None:
    raw = text.encode("utf-8")
    out += struct.pack(">I", len(raw))
    out += raw


def _write_type(out: bytearray, type_: YdbType) -> None:
    match type_:
        case PrimitiveType(type_id=type_id):
            out += struct.pack(">BH", TypeTag.PRIMITIVE, type_id)
        case DecimalType(precision=precision, scale=scale):
            out += struct.pack(">BBB", TypeTag.DECIMAL, precision, scale)
        case OptionalType(item=item):
            out.append(TypeTag.OPTIONAL)
            _write_type(out, item)
        case ListType(item=item):
            out.append(TypeTag.LIST)
            _write_type(out, item)
        case TupleType(elements=elements):
            out += struct.pack(">BI", TypeTag.TUPLE, len(elements))
            for element in elements:
                _write_type(out, element)
        case StructType(members=members):
            out += struct.pack(">BI", TypeTag.STRUCT, len(members))
            for member in members:
                _write_str(out, member.name)
                _write_type(out, member.type)
        case _:
            raise ValueConstructionError.unsupported_type(type_, "encode_value")


def _write_payload(out: bytearray, value: WireValue) -> None:
    kind = value.kind
    out.append(_PAYLOAD_TAGS[kind])
    match kind:
        case PayloadKind.BOOL:
            out.append(1 if value.bool_value else 0)
        case PayloadKind.INT32:
            out += struct.pack(">i", value.int32_value)
        case PayloadKind.UINT32:
            out += struct.pack(">I", value.uint32_value)
        case PayloadKind.INT64:
            out += struct.pack(">q", value.int64_value)
        case PayloadKind.UINT64:
            out += struct.pack(">Q", value.uint64_value)
        case PayloadKind.FLOAT:
            out += struct.pack(">f", value.float_value)
        case PayloadKind.DOUBLE:
            out += struct.pack(">d", value.double_value)
        case PayloadKind.BYTES:
            out += struct.pack(">I", len(value.bytes_value))
            out += value.bytes_value
        case PayloadKind.TEXT:
            _write_str(out, value.text_value)
        case PayloadKind.NESTED:
            _write_payload(out, value.nested_value)
        case PayloadKind.INT128:
            out += struct.pack(">QQ", value.low_128, value.high_128 or 0)
        case PayloadKind.ITEMS:
            out += struct.pack(">I", len(value.items))
            for item in value.items:
                _write_payload(out, item)


def encode_value(value: YdbValue, compress: bool = True) -> bytes:
    """
    Serialize a value into a frame.

    Args:
        value: Value to serialize
        compress: Allow LZ4 compression above the size threshold
    """
    body = bytearray()
    _write_type(body, value.type)
    _write_payload(body, value.value)

    flags = 0
    data = bytes(body)
    if compress and len(data) >= C.CODEC_COMPRESS_THRESHOLD_BYTES:
        data = lz4.frame.compress(data)
        flags |= FLAG_COMPRESSED

    return HEADER.pack(MAGIC, C.CODEC_VERSION, flags, len(data)) + data


# =============================================================================
# DECODING
# =============================================================================
class _Cursor:
    __slots__ = ("_data", "_pos")

    def __init__(self, data: bytes) -> None:
        self._data = data
        self._pos = 0

    def unpack(self, fmt: str) -> tuple:
        size = struct.calcsize(fmt)
        if self._pos + size > len(self._data):
            raise ValueConstructionError.malformed_frame("unexpected end of body")
        result = struct.unpack_from(fmt, self._data, self._pos)
        self._pos += size
        return result

    def read(self, size: int) -> bytes:
        if self._pos + size > len(self._data):
            raise ValueConstructionError.malformed_frame("unexpected end of body")
        chunk = self._data[self._pos:self._pos + size]
        self._pos += size
        return chunk

    def read_str(self) -> str:
        (length,) = self.unpack(">I")
        try:
            return self.read(length).decode("utf-8")
        except UnicodeDecodeError as e:
            raise ValueConstructionError.malformed_frame(f"invalid utf-8: {e}") from e

    @property
    def exhausted(self) -> bool:
        return self._pos == len(self._data)


def _read_type(cursor: _Cursor) -> YdbType:
    (tag,) = cursor.unpack(">B")
    match tag:
        case TypeTag.PRIMITIVE:
            (raw_id,) = cursor.unpack(">H")
            try:
                return PrimitiveType(PrimitiveTypeId(raw_id))
            except ValueError:
                raise ValueConstructionError.malformed_frame(f"unknown primitive type {raw_id:#x}") from None
        case TypeTag.DECIMAL:
            precision, scale = cursor.unpack(">BB")
            return DecimalType(precision=precision, scale=scale)
        case TypeTag.OPTIONAL:
            return OptionalType(item=_read_type(cursor))
        case TypeTag.LIST:
            return ListType(item=_read_type(cursor))
        case TypeTag.TUPLE:
            (count,) = cursor.unpack(">I")
            return TupleType(elements=tuple(_read_type(cursor) for _ in range(count)))
        case TypeTag.STRUCT:
            (count,) = cursor.unpack(">I")
            members = []
            for _ in range(count):
                name = cursor.read_str()
                members.append(StructMember(name=name, type=_read_type(cursor)))
            return StructType(members=tuple(members))
    raise ValueConstructionError.malformed_frame(f"unknown type tag {tag:#x}")


def _read_payload(cursor: _Cursor) -> WireValue:
    (tag,) = cursor.unpack(">B")
    kind = _PAYLOAD_KINDS.get(tag)
    match kind:
        case PayloadKind.EMPTY:
            return WireValue()
        case PayloadKind.BOOL:
            return WireValue(bool_value=cursor.unpack(">B")[0] != 0)
        case PayloadKind.INT32:
            return WireValue(int32_value=cursor.unpack(">i")[0])
        case PayloadKind.UINT32:
            return WireValue(uint32_value=cursor.unpack(">I")[0])
        case PayloadKind.INT64:
            return WireValue(int64_value=cursor.unpack(">q")[0])
        case PayloadKind.UINT64:
            return WireValue(uint64_value=cursor.unpack(">Q")[0])
        case PayloadKind.FLOAT:
            return WireValue(float_value=cursor.unpack(">f")[0])
        case PayloadKind.DOUBLE:
            return WireValue(double_value=cursor.unpack(">d")[0])
        case PayloadKind.BYTES:
            (length,) = cursor.unpack(">I")
            return WireValue(bytes_value=cursor.read(length))
        case PayloadKind.TEXT:
            return WireValue(text_value=cursor.read_str())
        case PayloadKind.NULL_FLAG:
            return WireValue(null_flag_value=True)
        case PayloadKind.NESTED:
            return WireValue(nested_value=_read_payload(cursor))
        case PayloadKind.INT128:
            low, high = cursor.unpack(">QQ")
            return WireValue(low_128=low, high_128=high)
        case PayloadKind.ITEMS:
            (count,) = cursor.unpack(">I")
            return WireValue(items=tuple(_read_payload(cursor) for _ in range(count)))
    raise ValueConstructionError.malformed_frame(f"unknown payload tag {tag:#x}")


def decode_value(frame: bytes) -> YdbValue:
    """
    Deserialize a frame produced by encode_value.

    Raises:
        ValueConstructionError: If the frame is truncated, has a foreign
            magic or version, or its body does not parse.
    """
    if len(frame) < HEADER.size:
        raise ValueConstructionError.malformed_frame("frame shorter than header")
    magic, version, flags, length = HEADER.unpack_from(frame, 0)
    if magic != MAGIC:
        raise ValueConstructionError.malformed_frame(f"bad magic {magic!r}")
    if version != C.CODEC_VERSION:
        raise ValueConstructionError.malformed_frame(f"unsupported version {version}")

    data = frame[HEADER.size:]
    if len(data) != length:
        raise ValueConstructionError.malformed_frame(
            f"body length {len(data)} does not match header {length}"
        )
    if flags & FLAG_COMPRESSED:
        try:
            data = lz4.frame.decompress(data)
        except RuntimeError as e:
            raise ValueConstructionError.malformed_frame(f"lz4: {e}") from e

    cursor = _Cursor(data)
    type_ = _read_type(cursor)
    payload = _read_payload(cursor)
    if not cursor.exhausted:
        raise ValueConstructionError.malformed_frame("trailing bytes after value")
    return YdbValue(type=type_, value=payload)
