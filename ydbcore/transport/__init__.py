"""
Transport module: the consumed Driver contract, its message shapes and
per-call settings.
"""

from ydbcore.transport.driver import (
    Driver,
    RequestSettings,
    RpcMethod,
    UnaryResponse,
    next_chunk,
    unary_call,
)
from ydbcore.transport.messages import (
    ExecMode,
    StatsMode,
    Syntax,
    TransactionControl,
    TransactionSettings,
    TxModeKind,
)
from ydbcore.transport.settings import (
    AttachSessionSettings,
    BeginTransactionSettings,
    CommitTransactionSettings,
    CreateSessionSettings,
    DeleteSessionSettings,
    ExecuteQuerySettings,
    OperationRequestSettings,
    RollbackTransactionSettings,
)

__all__ = [
    "Driver",
    "RequestSettings",
    "RpcMethod",
    "UnaryResponse",
    "next_chunk",
    "unary_call",
    "ExecMode",
    "StatsMode",
    "Syntax",
    "TransactionControl",
    "TransactionSettings",
    "TxModeKind",
    "AttachSessionSettings",
    "BeginTransactionSettings",
    "CommitTransactionSettings",
    "CreateSessionSettings",
    "DeleteSessionSettings",
    "ExecuteQuerySettings",
    "OperationRequestSettings",
    "RollbackTransactionSettings",
]
