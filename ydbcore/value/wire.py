"""
Wire Value Representation

WireValue mirrors the service's value message: at most one scalar field,
the null flag, a nested value, the 128-bit word pair, or the items list
is populated. YdbValue pairs a payload with its type descriptor.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional

from ydbcore.value.types import YdbType


class PayloadKind(Enum):
    EMPTY = auto()
    BOOL = auto()
    INT32 = auto()
    UINT32 = auto()
    INT64 = auto()
    UINT64 = auto()
    FLOAT = auto()
    DOUBLE = auto()
    BYTES = auto()
    TEXT = auto()
    NULL_FLAG = auto()
    NESTED = auto()
    INT128 = auto()
    ITEMS = auto()


@dataclass(frozen=True, slots=True)
class WireValue:
    bool_value: Optional[bool] = None
    int32_value: Optional[int] = None
    uint32_value: Optional[int] = None
    int64_value: Optional[int] = None
    uint64_value: Optional[int] = None
    float_value: Optional[float] = None
    double_value: Optional[float] = None
    bytes_value: Optional[bytes] = None
    text_value: Optional[str] = None
    null_flag_value: bool = False
    nested_value: Optional[WireValue] = None
    low_128: Optional[int] = None
    high_128: Optional[int] = None
    items: tuple[WireValue, ...] = ()

    @property
    def kind(self) -> PayloadKind:
        """Which field carries the payload."""
        if self.bool_value is not None:
            return PayloadKind.BOOL
        if self.int32_value is not None:
            return PayloadKind.INT32
        if self.uint32_value is not None:
            return PayloadKind.UINT32
        if self.int64_value is not None:
            return PayloadKind.INT64
        if self.uint64_value is not None:
            return PayloadKind.UINT64
        if self.float_value is not None:
            return PayloadKind.FLOAT
        if self.double_value is not None:
            return PayloadKind.DOUBLE
        if self.bytes_value is not None:
            return PayloadKind.BYTES
        if self.text_value is not None:
            return PayloadKind.TEXT
        if self.null_flag_value:
            return PayloadKind.NULL_FLAG
        if self.nested_value is not None:
            return PayloadKind.NESTED
        if self.low_128 is not None:
            return PayloadKind.INT128
        if self.items:
            return PayloadKind.ITEMS
        return PayloadKind.EMPTY


@dataclass(frozen=True, slots=True)
class YdbValue:
    """
    Immutable (type, payload) pair.

    Build instances through the make_* factories in ydbcore.value.builder,
    which guarantee the payload shape matches the type.
    """

    type: YdbType
    value: WireValue

    def __str__(self) -> str:
        return f"YdbValue({self.type})"
