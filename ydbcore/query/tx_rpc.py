"""
Transaction RPC Capability

Begin/commit/rollback are issued through one interface with two
implementations, chosen once from QueryClientConfig.tx_rpc:

    QueryServiceTransactionRpc  → query service calls
    TableServiceTransactionRpc  → legacy table service calls, whose status
                                  arrives inside an operation envelope

Callers see the same contract either way. TransportError is not caught
here; it propagates to the session pool's retry loop.
"""

from __future__ import annotations

import logging
from abc import abstractmethod
from typing import Optional, Protocol, runtime_checkable

from ydbcore.core.config import TxRpcKind
from ydbcore.core.errors import ConfigurationError
from ydbcore.core.status import Status
from ydbcore.core.types import Err, Ok, Result
from ydbcore.transport.driver import Driver, RequestSettings, RpcMethod, unary_call
from ydbcore.transport.messages import (
    BeginTransactionRequest,
    CommitTransactionRequest,
    RollbackTransactionRequest,
    TableBeginTransactionRequest,
    TableCommitTransactionRequest,
    TableRollbackTransactionRequest,
    TransactionSettings,
)
from ydbcore.transport.settings import (
    BeginTransactionSettings,
    CommitTransactionSettings,
    OperationRequestSettings,
    RollbackTransactionSettings,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class TransactionRpc(Protocol):
    """Remote transaction control bound to a session id."""

    @abstractmethod
    async def begin(
        self,
        session_id: str,
        tx_settings: TransactionSettings,
        settings: Optional[RequestSettings] = None,
    ) -> Result[str, Status]:
        """Returns Ok(tx_id) or Err(status)."""
        ...

    @abstractmethod
    async def commit(
        self,
        session_id: str,
        tx_id: str,
        settings: Optional[RequestSettings] = None,
    ) -> Status:
        ...

    @abstractmethod
    async def rollback(
        self,
        session_id: str,
        tx_id: str,
        settings: Optional[RequestSettings] = None,
    ) -> Status:
        ...


class QueryServiceTransactionRpc:
    """Transaction control through the query service."""

    __slots__ = ("_driver",)

    def __init__(self, driver: Driver) -> None:
        self._driver = driver

    async def begin(
        self,
        session_id: str,
        tx_settings: TransactionSettings,
        settings: Optional[RequestSettings] = None,
    ) -> Result[str, Status]:
        response = await unary_call(
            self._driver,
            RpcMethod.BEGIN_TRANSACTION,
            BeginTransactionRequest(session_id=session_id, tx_settings=tx_settings),
            settings or BeginTransactionSettings(),
        )
        status = response.data.status
        if not status.is_success:
            return Err(status)
        return Ok(response.data.tx_id)

    async def commit(
        self,
        session_id: str,
        tx_id: str,
        settings: Optional[RequestSettings] = None,
    ) -> Status:
        response = await unary_call(
            self._driver,
            RpcMethod.COMMIT_TRANSACTION,
            CommitTransactionRequest(session_id=session_id, tx_id=tx_id),
            settings or CommitTransactionSettings(),
        )
        return response.data.status

    async def rollback(
        self,
        session_id: str,
        tx_id: str,
        settings: Optional[RequestSettings] = None,
    ) -> Status:
        response = await unary_call(
            self._driver,
            RpcMethod.ROLLBACK_TRANSACTION,
            RollbackTransactionRequest(session_id=session_id, tx_id=tx_id),
            settings or RollbackTransactionSettings(),
        )
        return response.data.status


class TableServiceTransactionRpc:
    """
    Transaction control through the legacy table service.

    Used where the server does not yet expose query service transaction
    calls. Each request carries operation params and each response wraps
    its status (and begin's tx id) in an Operation.
    """

    __slots__ = ("_driver",)

    def __init__(self, driver: Driver) -> None:
        self._driver = driver

    @staticmethod
    def _operation_settings(settings: Optional[RequestSettings]) -> OperationRequestSettings:
        if isinstance(settings, OperationRequestSettings):
            return settings
        if settings is None:
            return OperationRequestSettings()
        return OperationRequestSettings(
            transport_timeout_s=settings.transport_timeout_s,
            trace_id=settings.trace_id,
            headers=settings.headers,
        )

    async def begin(
        self,
        session_id: str,
        tx_settings: TransactionSettings,
        settings: Optional[RequestSettings] = None,
    ) -> Result[str, Status]:
        op_settings = self._operation_settings(settings)
        response = await unary_call(
            self._driver,
            RpcMethod.TABLE_BEGIN_TRANSACTION,
            TableBeginTransactionRequest(
                session_id=session_id,
                tx_settings=tx_settings,
                operation_params=op_settings.operation_params(),
            ),
            op_settings,
        )
        operation = response.data.operation
        status = operation.status
        if not status.is_success:
            return Err(status)
        return Ok(operation.result.tx_id)

    async def commit(
        self,
        session_id: str,
        tx_id: str,
        settings: Optional[RequestSettings] = None,
    ) -> Status:
        op_settings = self._operation_settings(settings)
        response = await unary_call(
            self._driver,
            RpcMethod.TABLE_COMMIT_TRANSACTION,
            TableCommitTransactionRequest(
                session_id=session_id,
                tx_id=tx_id,
                operation_params=op_settings.operation_params(),
            ),
            op_settings,
        )
        return response.data.operation.status

    async def rollback(
        self,
        session_id: str,
        tx_id: str,
        settings: Optional[RequestSettings] = None,
    ) -> Status:
        op_settings = self._operation_settings(settings)
        response = await unary_call(
            self._driver,
            RpcMethod.TABLE_ROLLBACK_TRANSACTION,
            TableRollbackTransactionRequest(
                session_id=session_id,
                tx_id=tx_id,
                operation_params=op_settings.operation_params(),
            ),
            op_settings,
        )
        return response.data.operation.status


def create_transaction_rpc(kind: TxRpcKind, driver: Driver) -> TransactionRpc:
    """
    Raises:
        ConfigurationError: If the kind is not recognized
    """
    match kind:
        case TxRpcKind.QUERY_SERVICE:
            return QueryServiceTransactionRpc(driver)
        case TxRpcKind.TABLE_SERVICE:
            logger.info("Using table service transaction calls")
            return TableServiceTransactionRpc(driver)
        case _:
            raise ConfigurationError.invalid(f"unknown transaction rpc kind: {kind!r}")
