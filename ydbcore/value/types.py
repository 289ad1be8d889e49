"""
Type Descriptors for the Typed Value System

A value's type is a recursive tree:

    Primitive(kind) | Decimal(precision, scale) | Optional(T)
    | List(T) | Tuple(T1..Tn) | Struct({name: T})

All descriptors are frozen dataclasses, so structural equality is plain
`==` and descriptors can be shared freely between values.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Union


class PrimitiveTypeId(IntEnum):
    """Primitive kinds with their wire identifiers."""

    BOOL = 0x0006
    INT8 = 0x0007
    UINT8 = 0x0005
    INT16 = 0x0008
    UINT16 = 0x0009
    INT32 = 0x0001
    UINT32 = 0x0002
    INT64 = 0x0003
    UINT64 = 0x0004
    FLOAT = 0x0021
    DOUBLE = 0x0020
    DATE = 0x0030
    DATETIME = 0x0031
    TIMESTAMP = 0x0032
    INTERVAL = 0x0033
    STRING = 0x1001
    UTF8 = 0x1200
    YSON = 0x1201
    JSON = 0x1202
    UUID = 0x1203
    JSON_DOCUMENT = 0x1204

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES: dict[PrimitiveTypeId, str] = {
    PrimitiveTypeId.BOOL: "Bool",
    PrimitiveTypeId.INT8: "Int8",
    PrimitiveTypeId.UINT8: "Uint8",
    PrimitiveTypeId.INT16: "Int16",
    PrimitiveTypeId.UINT16: "Uint16",
    PrimitiveTypeId.INT32: "Int32",
    PrimitiveTypeId.UINT32: "Uint32",
    PrimitiveTypeId.INT64: "Int64",
    PrimitiveTypeId.UINT64: "Uint64",
    PrimitiveTypeId.FLOAT: "Float",
    PrimitiveTypeId.DOUBLE: "Double",
    PrimitiveTypeId.DATE: "Date",
    PrimitiveTypeId.DATETIME: "Datetime",
    PrimitiveTypeId.TIMESTAMP: "Timestamp",
    PrimitiveTypeId.INTERVAL: "Interval",
    PrimitiveTypeId.STRING: "String",
    PrimitiveTypeId.UTF8: "Utf8",
    PrimitiveTypeId.YSON: "Yson",
    PrimitiveTypeId.JSON: "Json",
    PrimitiveTypeId.UUID: "Uuid",
    PrimitiveTypeId.JSON_DOCUMENT: "JsonDocument",
}


@dataclass(frozen=True, slots=True)
class PrimitiveType:
    type_id: PrimitiveTypeId

    def __str__(self) -> str:
        return self.type_id.display_name


@dataclass(frozen=True, slots=True)
class DecimalType:
    precision: int
    scale: int

    def __str__(self) -> str:
        return f"Decimal({self.precision},{self.scale})"


@dataclass(frozen=True, slots=True)
class OptionalType:
    item: YdbType

    def __str__(self) -> str:
        return f"Optional<{self.item}>"


@dataclass(frozen=True, slots=True)
class ListType:
    item: YdbType

    def __str__(self) -> str:
        return f"List<{self.item}>"


@dataclass(frozen=True, slots=True)
class TupleType:
    elements: tuple[YdbType, ...]

    def __str__(self) -> str:
        return f"Tuple<{','.join(str(e) for e in self.elements)}>"


@dataclass(frozen=True, slots=True)
class StructMember:
    name: str
    type: YdbType


@dataclass(frozen=True, slots=True)
class StructType:
    """Member order is part of the type."""

    members: tuple[StructMember, ...]

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(m.name for m in self.members)

    def __str__(self) -> str:
        inner = ",".join(f"'{m.name}':{m.type}" for m in self.members)
        return f"Struct<{inner}>"


YdbType = Union[PrimitiveType, DecimalType, OptionalType, ListType, TupleType, StructType]
