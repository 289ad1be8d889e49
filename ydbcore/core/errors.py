"""
Error Hierarchy for the Driver Core

Taxonomy:
- TransportError: connectivity/deadline problems at the RPC boundary;
  retried by the session pool up to policy limits
- StatusUnsuccessfulError: the remote side returned a well-formed
  non-success Status; never retried automatically
- ValueConstructionError: malformed value construction; raised at the
  call site, never reaches the wire
- InvariantViolationError: internal misuse (illegal state transition,
  double release); a programming defect that surfaces loudly
- SessionPoolError: acquisition timeout or disposed pool
- ReliabilityError: retry budget exhausted

Each error type includes:
- Unique error code for programmatic handling
- Human-readable message for logging
- Optional cause chain for root cause analysis
- Timestamp for correlation with logs

Usage:
    try:
        await tx.query(text, params, consume)
    except StatusUnsuccessfulError as e:
        match e.status.code:
            case StatusCode.ABORTED:
                ...
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from ydbcore.core.status import Status, StatusCode
from ydbcore.core.types import Timestamp


# =============================================================================
# ERROR CODE ENUMERATION
# =============================================================================
class ErrorCode(Enum):
    """
    Unique error codes for programmatic error handling.

    Codes are grouped by subsystem:
    - 1xxx: Transport errors
    - 2xxx: Remote status errors
    - 3xxx: Value construction errors
    - 4xxx: Session and pool errors
    - 5xxx: Transaction errors
    - 6xxx: Reliability errors
    - 9xxx: Internal errors
    """

    TRANSPORT_UNAVAILABLE = 1001
    TRANSPORT_DEADLINE_EXCEEDED = 1002

    STATUS_UNSUCCESSFUL = 2001

    VALUE_OUT_OF_RANGE = 3001
    VALUE_DECIMAL_OVERFLOW = 3002
    VALUE_EMPTY_LIST = 3003
    VALUE_ITEM_TYPE_MISMATCH = 3004
    VALUE_UNSUPPORTED_TYPE = 3005
    VALUE_TYPE_MISMATCH = 3006
    VALUE_MALFORMED_FRAME = 3007
    VALUE_DUPLICATE_MEMBER = 3008

    POOL_ACQUIRE_TIMEOUT = 4001
    POOL_CLOSED = 4002

    TX_ILLEGAL_TRANSITION = 5001

    RELIABILITY_RETRY_EXHAUSTED = 6001

    INTERNAL_CONFIGURATION_ERROR = 9002


# =============================================================================
# BASE ERROR CLASS
# =============================================================================
@dataclass
class YdbCoreError(Exception):
    """
    Base class for all driver core errors.

    Provides common infrastructure for error handling:
    - Unique error ID for log correlation
    - Error code for programmatic handling
    - Timestamp for correlation
    - Cause chain for root cause analysis
    """

    code: ErrorCode
    message: str
    error_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: Timestamp = field(default_factory=Timestamp.now)
    cause: Optional[BaseException] = None
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)
        if self.cause is not None:
            self.__cause__ = self.cause

    def with_context(self, **kwargs: Any) -> YdbCoreError:
        """Add context to error (returns new instance of the same type)."""
        return dataclasses.replace(self, context={**self.context, **kwargs})

    def to_dict(self) -> dict[str, Any]:
        """Serialize error to dictionary for structured logging."""
        return {
            "error_id": self.error_id,
            "code": self.code.name,
            "code_value": self.code.value,
            "message": self.message,
            "timestamp_nanos": self.timestamp.nanos,
            "context": self.context,
        }

    def __str__(self) -> str:
        return f"[{self.code.name}] {self.message} (id={self.error_id[:8]})"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"code={self.code.name}, "
            f"message={self.message!r}, "
            f"error_id={self.error_id!r})"
        )


# =============================================================================
# TRANSPORT ERRORS
# =============================================================================
@dataclass
class TransportError(YdbCoreError):
    """
    Failure at the RPC boundary raised by the Driver collaborator.

    Carries a client transport Status that is reported to the caller once
    the pool's retry budget is exhausted.
    """

    status: Status = field(
        default_factory=lambda: Status.from_code(StatusCode.CLIENT_TRANSPORT_UNKNOWN)
    )

    @classmethod
    def unavailable(
        cls,
        endpoint: str,
        cause: Optional[BaseException] = None,
    ) -> TransportError:
        """Endpoint could not be reached."""
        message = f"Transport unavailable at {endpoint}"
        return cls(
            code=ErrorCode.TRANSPORT_UNAVAILABLE,
            message=message,
            cause=cause,
            context={"endpoint": endpoint},
            status=Status.from_code(StatusCode.CLIENT_TRANSPORT_UNAVAILABLE, message),
        )

    @classmethod
    def deadline_exceeded(
        cls,
        method: str,
        timeout_s: float,
        cause: Optional[BaseException] = None,
    ) -> TransportError:
        """Call did not complete within its own timeout."""
        message = f"Call {method} exceeded deadline of {timeout_s}s"
        return cls(
            code=ErrorCode.TRANSPORT_DEADLINE_EXCEEDED,
            message=message,
            cause=cause,
            context={"method": method, "timeout_s": timeout_s},
            status=Status.from_code(StatusCode.CLIENT_TRANSPORT_TIMEOUT, message),
        )


# =============================================================================
# REMOTE STATUS ERRORS
# =============================================================================
@dataclass
class StatusUnsuccessfulError(YdbCoreError):
    """
    Remote side answered with a non-success Status.

    Raised by Status.ensure_success() and by result streams when a chunk
    reports failure; callers inside do_tx may raise it to abort the body.
    """

    status: Status = field(default_factory=Status.success)

    @classmethod
    def from_status(cls, status: Status) -> StatusUnsuccessfulError:
        return cls(
            code=ErrorCode.STATUS_UNSUCCESSFUL,
            message=str(status),
            context={"status_code": status.code.name},
            status=status,
        )


# =============================================================================
# VALUE CONSTRUCTION ERRORS
# =============================================================================
@dataclass
class ValueConstructionError(YdbCoreError, ValueError):
    """
    Malformed typed value construction.

    Also a ValueError so generic argument checks keep working.
    """

    @classmethod
    def out_of_range(cls, kind: str, value: Any) -> ValueConstructionError:
        return cls(
            code=ErrorCode.VALUE_OUT_OF_RANGE,
            message=f"Value {value!r} is out of range for {kind}",
            context={"kind": kind, "value": str(value)[:100]},
        )

    @classmethod
    def decimal_overflow(
        cls,
        value_precision: int,
        value_scale: int,
        precision: int,
        scale: int,
    ) -> ValueConstructionError:
        return cls(
            code=ErrorCode.VALUE_DECIMAL_OVERFLOW,
            message=(
                f"Decimal with precision ({value_precision}, {value_scale}) "
                f"can't fit into ({precision}, {scale})"
            ),
            context={
                "value_precision": value_precision,
                "value_scale": value_scale,
                "precision": precision,
                "scale": scale,
            },
        )

    @classmethod
    def empty_list(cls) -> ValueConstructionError:
        return cls(
            code=ErrorCode.VALUE_EMPTY_LIST,
            message="Cannot infer item type of an empty list, use make_empty_list",
        )

    @classmethod
    def item_type_mismatch(
        cls,
        index: int,
        expected: Any,
        actual: Any,
    ) -> ValueConstructionError:
        return cls(
            code=ErrorCode.VALUE_ITEM_TYPE_MISMATCH,
            message=f"List item {index} has type {actual}, expected {expected}",
            context={"index": index, "expected": str(expected), "actual": str(actual)},
        )

    @classmethod
    def unsupported_type(cls, type_: Any, operation: str) -> ValueConstructionError:
        return cls(
            code=ErrorCode.VALUE_UNSUPPORTED_TYPE,
            message=f"Type {type_} is not supported by {operation}",
            context={"type": str(type_), "operation": operation},
        )

    @classmethod
    def type_mismatch(cls, expected: str, actual: Any) -> ValueConstructionError:
        return cls(
            code=ErrorCode.VALUE_TYPE_MISMATCH,
            message=f"Expected {expected}, got {actual}",
            context={"expected": expected, "actual": str(actual)},
        )

    @classmethod
    def malformed_frame(cls, reason: str) -> ValueConstructionError:
        return cls(
            code=ErrorCode.VALUE_MALFORMED_FRAME,
            message=f"Malformed value frame: {reason}",
            context={"reason": reason},
        )

    @classmethod
    def duplicate_member(cls, name: str) -> ValueConstructionError:
        return cls(
            code=ErrorCode.VALUE_DUPLICATE_MEMBER,
            message=f"Struct member '{name}' is defined more than once",
            context={"name": name},
        )


# =============================================================================
# SESSION POOL ERRORS
# =============================================================================
@dataclass
class SessionPoolError(YdbCoreError):
    """Session could not be obtained from the pool."""

    status: Status = field(
        default_factory=lambda: Status.from_code(StatusCode.CLIENT_SESSION_POOL_CLOSED)
    )

    @classmethod
    def acquire_timeout(cls, timeout_s: float, max_sessions: int) -> SessionPoolError:
        message = f"No session available within {timeout_s}s (max_sessions={max_sessions})"
        return cls(
            code=ErrorCode.POOL_ACQUIRE_TIMEOUT,
            message=message,
            context={"timeout_s": timeout_s, "max_sessions": max_sessions},
            status=Status.from_code(StatusCode.CLIENT_SESSION_POOL_TIMEOUT, message),
        )

    @classmethod
    def closed(cls) -> SessionPoolError:
        message = "Session pool is closed"
        return cls(
            code=ErrorCode.POOL_CLOSED,
            message=message,
            status=Status.from_code(StatusCode.CLIENT_SESSION_POOL_CLOSED, message),
        )


# =============================================================================
# INVARIANT VIOLATIONS
# =============================================================================
@dataclass
class InvariantViolationError(YdbCoreError):
    """Programming defect; never converted into a Status."""

    @classmethod
    def illegal_transition(
        cls,
        entity: str,
        entity_id: str,
        state: str,
        trigger: str,
    ) -> InvariantViolationError:
        return cls(
            code=ErrorCode.TX_ILLEGAL_TRANSITION,
            message=f"{entity} {entity_id}: no transition from {state} on '{trigger}'",
            context={"entity": entity, "entity_id": entity_id, "state": state, "trigger": trigger},
        )


# =============================================================================
# RELIABILITY ERRORS
# =============================================================================
@dataclass
class ReliabilityError(YdbCoreError):
    """Retry budget exhausted; carries the last transport status."""

    status: Status = field(
        default_factory=lambda: Status.from_code(StatusCode.CLIENT_TRANSPORT_UNKNOWN)
    )

    @classmethod
    def retry_exhausted(
        cls,
        attempts: int,
        last_error: TransportError,
    ) -> ReliabilityError:
        return cls(
            code=ErrorCode.RELIABILITY_RETRY_EXHAUSTED,
            message=f"Retry exhausted after {attempts} attempts: {last_error.message}",
            cause=last_error,
            context={"attempts": attempts, "last_error": last_error.message},
            status=last_error.status,
        )


@dataclass
class ConfigurationError(YdbCoreError):
    """Invalid configuration detected at startup."""

    @classmethod
    def invalid(cls, reason: str) -> ConfigurationError:
        return cls(
            code=ErrorCode.INTERNAL_CONFIGURATION_ERROR,
            message=f"Configuration error: {reason}",
            context={"reason": reason},
        )
