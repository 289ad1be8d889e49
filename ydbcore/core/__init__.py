"""
Core module: Type definitions, status plumbing, error hierarchy, configuration.

This module provides the foundational abstractions for the driver core:
- Result/Either monads for fallible internal steps
- Status codes and issues attached to every remote outcome
- Exhaustive error hierarchy with pattern matching support
- Configuration management with validation
"""

from ydbcore.core.types import (
    Result,
    Ok,
    Err,
    Timestamp,
)
from ydbcore.core.status import (
    Issue,
    IssueSeverity,
    Status,
    StatusCode,
)
from ydbcore.core.errors import (
    ErrorCode,
    YdbCoreError,
    TransportError,
    StatusUnsuccessfulError,
    ValueConstructionError,
    SessionPoolError,
    InvariantViolationError,
    ReliabilityError,
    ConfigurationError,
)
from ydbcore.core.config import (
    DriverCoreConfig,
    ObservabilityConfig,
    QueryClientConfig,
    ReliabilityConfig,
    SessionPoolConfig,
    TxRpcKind,
)

__all__ = [
    "Result",
    "Ok",
    "Err",
    "Timestamp",
    "Issue",
    "IssueSeverity",
    "Status",
    "StatusCode",
    "ErrorCode",
    "YdbCoreError",
    "TransportError",
    "StatusUnsuccessfulError",
    "ValueConstructionError",
    "SessionPoolError",
    "InvariantViolationError",
    "ReliabilityError",
    "ConfigurationError",
    "DriverCoreConfig",
    "ObservabilityConfig",
    "QueryClientConfig",
    "ReliabilityConfig",
    "SessionPoolConfig",
    "TxRpcKind",
]
