"""
Query module: transaction controller, result streams and the client
that orchestrates them over pooled sessions.
"""

from ydbcore.query.client import QueryClient, QueryResponse, TxBody
from ydbcore.query.stream import ExecuteQueryStream
from ydbcore.query.tx import (
    OnlineReadOnly,
    SerializableReadWrite,
    SnapshotReadOnly,
    StaleReadOnly,
    StreamConsumer,
    Tx,
    TxMode,
    TxState,
    drain_stream,
    read_result_sets,
)
from ydbcore.query.tx_rpc import (
    QueryServiceTransactionRpc,
    TableServiceTransactionRpc,
    TransactionRpc,
    create_transaction_rpc,
)

__all__ = [
    "QueryClient",
    "QueryResponse",
    "TxBody",
    "ExecuteQueryStream",
    "OnlineReadOnly",
    "SerializableReadWrite",
    "SnapshotReadOnly",
    "StaleReadOnly",
    "StreamConsumer",
    "Tx",
    "TxMode",
    "TxState",
    "drain_stream",
    "read_result_sets",
    "QueryServiceTransactionRpc",
    "TableServiceTransactionRpc",
    "TransactionRpc",
    "create_transaction_rpc",
]
