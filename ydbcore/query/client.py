"""
Query Client: Session → Transaction → Stream → Commit/Rollback

Entry points:
    query(text, parameters, func, ...)   → QueryResponse[T]
    non_query(text, parameters, ...)     → QueryResponse[None]
    do_tx(func, ...)                     → QueryResponse[T]

Each call borrows one session through a SessionExecutor, begins a Tx,
runs the caller's work, then commits on success or rolls back on any
failure. The session is returned or discarded on every exit path, and
any stream the work opened is drained or aborted before that.

Outcome rules:
    - success                       → SUCCESS status with the value
    - failure, rollback succeeded   → the original failure status
    - failure, rollback failed      → the rollback status; original in `cause`
    - commit failed                 → the commit status (no rollback issued)
    - transport failure             → retried by the pool; once exhausted,
                                      the last transport status

Every call returns exactly one QueryResponse and never raises for
remote failures.

Usage:
    async with QueryClient(driver) as client:
        response = await client.do_tx(transfer)
        response.ensure_success()
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Mapping, Optional, TypeVar

from ydbcore.core.config import DriverCoreConfig, QueryClientConfig
from ydbcore.core.errors import (
    ConfigurationError,
    InvariantViolationError,
    StatusUnsuccessfulError,
    TransportError,
)
from ydbcore.core.status import Status, StatusCode
from ydbcore.core.types import Err, Ok, Result
from ydbcore.observability.logging import log_context
from ydbcore.observability.metrics import DriverMetrics, MetricsCollector
from ydbcore.query.tx import StreamConsumer, Tx, TxMode, drain_stream, read_result_sets
from ydbcore.query.tx_rpc import TransactionRpc, create_transaction_rpc
from ydbcore.reliability.retry import RetrySettings
from ydbcore.session.pool import SessionExecutor, SessionPool
from ydbcore.session.session import BreakCause, Session
from ydbcore.transport.driver import Driver
from ydbcore.transport.settings import ExecuteQuerySettings
from ydbcore.value.wire import YdbValue

logger = logging.getLogger(__name__)

T = TypeVar("T")

TxBody = Callable[[Tx], Awaitable[T]]


@dataclass(frozen=True)
class QueryResponse(Generic[T]):
    """
    Single outcome of a client call.

    `cause` is set only when a rollback failure replaced the original
    failure; it holds that original status.
    """

    status: Status
    result: Optional[T] = None
    cause: Optional[Status] = None

    @classmethod
    def success(cls, result: Optional[T] = None) -> QueryResponse[T]:
        return cls(status=Status.success(), result=result)

    @classmethod
    def failure(cls, status: Status, cause: Optional[Status] = None) -> QueryResponse[T]:
        return cls(status=status, cause=cause)

    @property
    def is_success(self) -> bool:
        return self.status.is_success

    def ensure_success(self) -> Optional[T]:
        """
        Raises:
            StatusUnsuccessfulError: If the call failed
        """
        if not self.is_success:
            error = StatusUnsuccessfulError.from_status(self.status)
            if self.cause is not None:
                error = error.with_context(cause_status=self.cause.to_dict())
            raise error
        return self.result

    def to_result(self) -> Result[Optional[T], Status]:
        if self.is_success:
            return Ok(self.result)
        return Err(self.status)


class QueryClient:
    """
    Orchestrates transactional work over a session pool.

    The pool is created from config unless one is given; a given pool is
    used through the SessionExecutor protocol only and is not closed by
    this client.
    """

    __slots__ = (
        "_driver",
        "_config",
        "_metrics",
        "_pool",
        "_owns_pool",
        "_tx_rpc",
        "_retry_settings",
        "_metrics_exposed",
    )

    def __init__(
        self,
        driver: Driver,
        config: Optional[QueryClientConfig] = None,
        pool: Optional[SessionExecutor] = None,
        metrics: Optional[DriverMetrics] = None,
    ) -> None:
        self._driver = driver
        self._config = config or QueryClientConfig()
        self._metrics = metrics or DriverMetrics()
        self._metrics_exposed = True
        self._retry_settings = RetrySettings.from_config(self._config.reliability)
        self._tx_rpc: TransactionRpc = create_transaction_rpc(self._config.tx_rpc, driver)
        self._owns_pool = pool is None
        self._pool: SessionExecutor = pool or SessionPool(
            driver,
            self._config.pool,
            self._retry_settings,
            self._metrics,
        )

    @classmethod
    def from_config(cls, driver: Driver, config: DriverCoreConfig) -> QueryClient:
        """
        Raises:
            ConfigurationError: If the configuration is invalid
        """
        match config.validate():
            case Err(reason):
                raise ConfigurationError.invalid(reason)
            case Ok(_):
                pass
        client = cls(driver, config.query_client, metrics=DriverMetrics(MetricsCollector()))
        client._metrics_exposed = config.observability.metrics_enabled
        return client

    @property
    def pool(self) -> SessionExecutor:
        return self._pool

    @property
    def collector(self) -> Optional[MetricsCollector]:
        """Metrics registry, or None when metrics are disabled."""
        return self._metrics.collector if self._metrics_exposed else None

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------
    async def query(
        self,
        text: str,
        parameters: Optional[Mapping[str, YdbValue]] = None,
        func: Optional[StreamConsumer[T]] = None,
        tx_mode: Optional[TxMode] = None,
        settings: Optional[ExecuteQuerySettings] = None,
        retry_settings: Optional[RetrySettings] = None,
    ) -> QueryResponse[T]:
        """
        Run one query in its own transaction.

        `func` receives the result stream; without it the response carries
        a list of all result sets.
        """
        consumer = func or read_result_sets

        async def body(tx: Tx) -> T:
            return await tx.query(text, parameters, consumer, settings)

        return await self._run("query", body, tx_mode, retry_settings)

    async def non_query(
        self,
        text: str,
        parameters: Optional[Mapping[str, YdbValue]] = None,
        tx_mode: Optional[TxMode] = None,
        settings: Optional[ExecuteQuerySettings] = None,
        retry_settings: Optional[RetrySettings] = None,
    ) -> QueryResponse[None]:
        return await self.query(text, parameters, drain_stream, tx_mode, settings, retry_settings)

    async def do_tx(
        self,
        func: TxBody[T],
        tx_mode: Optional[TxMode] = None,
        retry_settings: Optional[RetrySettings] = None,
    ) -> QueryResponse[T]:
        """
        Run `func(tx)` inside one transaction.

        The body may issue any number of tx.query / tx.non_query calls; it
        must not commit or roll back itself. Raising StatusUnsuccessfulError
        (or any other exception) aborts the transaction.
        """
        return await self._run("do_tx", func, tx_mode, retry_settings)

    # -------------------------------------------------------------------------
    # Orchestration
    # -------------------------------------------------------------------------
    async def _run(
        self,
        operation: str,
        body: TxBody[T],
        tx_mode: Optional[TxMode],
        retry_settings: Optional[RetrySettings],
    ) -> QueryResponse[T]:
        async def action(session: Session) -> QueryResponse[T]:
            with log_context(session_id=session.id):
                return await self._run_on_session(session, body, tx_mode)

        with self._metrics.query_latency.time(operation=operation):
            result = await self._pool.exec_on_session(action, retry_settings)

        match result:
            case Ok(response):
                return response
            case Err(status):
                logger.warning("%s failed before completing: %s", operation, status)
                return QueryResponse.failure(status)

    async def _run_on_session(
        self,
        session: Session,
        body: TxBody[T],
        tx_mode: Optional[TxMode],
    ) -> QueryResponse[T]:
        try:
            return await self._run_tx(session, body, tx_mode)
        except asyncio.CancelledError:
            # begin, body, commit or rollback may be in flight server-side
            session.mark_broken("operation cancelled inside transaction", BreakCause.CANCELLED)
            raise

    async def _run_tx(
        self,
        session: Session,
        body: TxBody[T],
        tx_mode: Optional[TxMode],
    ) -> QueryResponse[T]:
        tx = Tx(session, self._driver, self._tx_rpc, tx_mode, self._config.transport_timeout_s)

        begun = await tx.begin()
        if not begun.is_success:
            self._metrics.tx_outcomes.inc(outcome="begin_failed")
            return QueryResponse.failure(begun)

        with log_context(tx_id=tx.tx_id):
            try:
                value = await body(tx)
            except TransportError:
                await self._rollback_best_effort(tx)
                raise
            except InvariantViolationError:
                raise
            except StatusUnsuccessfulError as e:
                return await self._rollback(tx, e.status)
            except Exception as e:
                status = Status.from_code(
                    StatusCode.INTERNAL_ERROR,
                    f"Failed to execute lambda on tx {tx.tx_id}: {e}",
                )
                logger.warning("Transaction body raised %s", type(e).__name__, exc_info=True)
                return await self._rollback(tx, status)

            committed = await tx.commit()
            if not committed.is_success:
                self._metrics.tx_outcomes.inc(outcome="commit_failed")
                logger.warning("Commit of tx %s failed: %s", tx.tx_id, committed)
                return QueryResponse.failure(committed)

        self._metrics.tx_outcomes.inc(outcome="committed")
        return QueryResponse.success(value)

    async def _rollback(self, tx: Tx, failure: Status) -> QueryResponse[T]:
        """Roll back once after `failure`; a failed rollback takes over the response."""
        logger.info("Rolling back tx %s after: %s", tx.tx_id, failure)
        rolled_back = await tx.rollback()
        if not rolled_back.is_success:
            self._metrics.tx_outcomes.inc(outcome="rollback_failed")
            logger.error("Transaction %s rollback not successful %s", tx.tx_id, rolled_back)
            return QueryResponse.failure(rolled_back, cause=failure)
        self._metrics.tx_outcomes.inc(outcome="rolled_back")
        return QueryResponse.failure(failure)

    async def _rollback_best_effort(self, tx: Tx) -> None:
        # session is about to be discarded; a second transport failure is expected
        try:
            status = await tx.rollback()
        except TransportError as e:
            logger.debug("Rollback of tx %s after transport failure failed: %s", tx.tx_id, e.message)
            return
        logger.debug("Rollback of tx %s after transport failure: %s", tx.tx_id, status.code.name)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------
    async def close(self) -> None:
        if self._owns_pool:
            await self._pool.close()

    async def __aenter__(self) -> QueryClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
