"""
ydbcore: Client-Side Driver Core for a YDB-Style Database

Manages server-side sessions, drives transactions over the query service
and marshals the typed value system to and from its wire form:

- Session Pool: bounded session reuse with transport-failure retry
- Transaction Controller: begin → execute → commit/rollback
- Query Client: the orchestrating entry points (query, non_query, do_tx)
- Value Marshalling: make_* factories, readers and a binary codec

The RPC transport is consumed through the Driver protocol, never
implemented here.

License: MIT
"""

__version__ = "0.1.0"

# =============================================================================
# PUBLIC API EXPORTS
# =============================================================================
from ydbcore.core import (
    DriverCoreConfig,
    Err,
    InvariantViolationError,
    Issue,
    Ok,
    QueryClientConfig,
    Result,
    SessionPoolConfig,
    SessionPoolError,
    Status,
    StatusCode,
    StatusUnsuccessfulError,
    TransportError,
    TxRpcKind,
    ValueConstructionError,
    YdbCoreError,
)
from ydbcore.query import (
    ExecuteQueryStream,
    OnlineReadOnly,
    QueryClient,
    QueryResponse,
    SerializableReadWrite,
    SnapshotReadOnly,
    StaleReadOnly,
    Tx,
)
from ydbcore.reliability import BackoffSettings, RetrySettings
from ydbcore.session import Session, SessionExecutor, SessionPool, SessionState
from ydbcore.transport import Driver, RpcMethod, UnaryResponse

__all__ = [
    "__version__",
    # Result monad
    "Result",
    "Ok",
    "Err",
    # Status and errors
    "Issue",
    "Status",
    "StatusCode",
    "YdbCoreError",
    "TransportError",
    "StatusUnsuccessfulError",
    "ValueConstructionError",
    "SessionPoolError",
    "InvariantViolationError",
    # Config
    "DriverCoreConfig",
    "QueryClientConfig",
    "SessionPoolConfig",
    "TxRpcKind",
    # Retry
    "BackoffSettings",
    "RetrySettings",
    # Transport contract
    "Driver",
    "RpcMethod",
    "UnaryResponse",
    # Sessions
    "Session",
    "SessionState",
    "SessionPool",
    "SessionExecutor",
    # Query
    "QueryClient",
    "QueryResponse",
    "Tx",
    "ExecuteQueryStream",
    "SerializableReadWrite",
    "OnlineReadOnly",
    "StaleReadOnly",
    "SnapshotReadOnly",
]
