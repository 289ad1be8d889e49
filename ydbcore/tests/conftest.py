"""
Shared fixtures: a scripted in-memory Driver.

FakeDriver answers every remote method with a success response by
default. Tests replace individual handlers to inject failure statuses,
transport errors or delays, and inspect `calls` afterwards.
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
from typing import Any, AsyncIterator, Callable, Iterable

import pytest

from ydbcore.core.config import QueryClientConfig, ReliabilityConfig, SessionPoolConfig
from ydbcore.core.errors import TransportError
from ydbcore.core.status import Issue, StatusCode
from ydbcore.reliability.retry import BackoffSettings, RetrySettings
from ydbcore.transport.driver import RequestSettings, RpcMethod, UnaryResponse
from ydbcore.transport.messages import (
    BeginTransactionResponse,
    CommitTransactionResponse,
    CreateSessionResponse,
    DeleteSessionResponse,
    ExecuteQueryResponsePart,
    Operation,
    RollbackTransactionResponse,
    SessionStateMessage,
    TableBeginTransactionResult,
    TableOperationResponse,
)
from ydbcore.value.reader import Column, ResultSet
from ydbcore.value.types import PrimitiveType, PrimitiveTypeId
from ydbcore.value.wire import WireValue

ENDPOINT = "fake-node-1:2136"


class ScriptedStream:
    """
    Async iterator over scripted items.

    Exception instances in the script are raised when reached. With
    `hang=True` the stream blocks after the script instead of ending.
    """

    def __init__(self, items: Iterable[Any] = (), hang: bool = False) -> None:
        self._items = list(items)
        self._hang = hang
        self.closed = False
        self.pulled = 0

    def __aiter__(self) -> ScriptedStream:
        return self

    async def __anext__(self) -> Any:
        if self.closed:
            raise StopAsyncIteration
        if self._items:
            item = self._items.pop(0)
            self.pulled += 1
            if isinstance(item, BaseException):
                raise item
            return item
        if self._hang:
            await asyncio.Event().wait()
        raise StopAsyncIteration

    @property
    def remaining(self) -> int:
        return len(self._items)

    async def aclose(self) -> None:
        self.closed = True


class FakeDriver:
    """In-memory Driver with per-method scripted handlers."""

    def __init__(self) -> None:
        self.calls: list[tuple[RpcMethod, Any, RequestSettings]] = []
        self.streams: list[ScriptedStream] = []
        self._session_ids = itertools.count(1)
        self._tx_ids = itertools.count(1)
        self._unary: dict[RpcMethod, Callable[[Any], Any]] = {
            RpcMethod.CREATE_SESSION: self.new_session,
            RpcMethod.DELETE_SESSION: lambda request: DeleteSessionResponse(),
            RpcMethod.BEGIN_TRANSACTION: lambda request: BeginTransactionResponse(
                tx_id=f"tx-{next(self._tx_ids)}"
            ),
            RpcMethod.COMMIT_TRANSACTION: lambda request: CommitTransactionResponse(),
            RpcMethod.ROLLBACK_TRANSACTION: lambda request: RollbackTransactionResponse(),
            RpcMethod.TABLE_BEGIN_TRANSACTION: lambda request: TableOperationResponse(
                operation=Operation(result=TableBeginTransactionResult(tx_id=f"tx-{next(self._tx_ids)}"))
            ),
            RpcMethod.TABLE_COMMIT_TRANSACTION: lambda request: TableOperationResponse(),
            RpcMethod.TABLE_ROLLBACK_TRANSACTION: lambda request: TableOperationResponse(),
        }
        self._stream: dict[RpcMethod, Callable[[Any], ScriptedStream]] = {
            RpcMethod.ATTACH_SESSION: lambda request: ScriptedStream([SessionStateMessage()], hang=True),
            RpcMethod.EXECUTE_QUERY: lambda request: ScriptedStream([ExecuteQueryResponsePart()]),
        }

    def new_session(self, request: Any = None) -> CreateSessionResponse:
        return CreateSessionResponse(session_id=f"session-{next(self._session_ids)}", node_id=1)

    # -------------------------------------------------------------------------
    # Scripting
    # -------------------------------------------------------------------------
    def on_unary(self, method: RpcMethod, handler: Callable[[Any], Any]) -> None:
        """Handler returns the response data (or an awaitable of it) or raises."""
        self._unary[method] = handler

    def on_stream(self, method: RpcMethod, handler: Callable[[Any], ScriptedStream]) -> None:
        self._stream[method] = handler

    def script_query(self, *parts: Any) -> None:
        """Every ExecuteQuery returns the given parts."""
        self.on_stream(RpcMethod.EXECUTE_QUERY, lambda request: ScriptedStream(parts))

    def fail_unary(self, method: RpcMethod, code: StatusCode, message: str = "") -> None:
        issues = (Issue(message=message),) if message else ()
        responses = {
            RpcMethod.CREATE_SESSION: CreateSessionResponse,
            RpcMethod.BEGIN_TRANSACTION: BeginTransactionResponse,
            RpcMethod.COMMIT_TRANSACTION: CommitTransactionResponse,
            RpcMethod.ROLLBACK_TRANSACTION: RollbackTransactionResponse,
            RpcMethod.DELETE_SESSION: DeleteSessionResponse,
        }
        response_type = responses[method]
        self.on_unary(method, lambda request: response_type(status_code=code, issues=issues))

    def count(self, method: RpcMethod) -> int:
        return sum(1 for m, _, _ in self.calls if m == method)

    def requests(self, method: RpcMethod) -> list[Any]:
        return [r for m, r, _ in self.calls if m == method]

    # -------------------------------------------------------------------------
    # Driver protocol
    # -------------------------------------------------------------------------
    async def unary_call(
        self,
        method: RpcMethod,
        request: Any,
        settings: RequestSettings,
    ) -> UnaryResponse[Any]:
        self.calls.append((method, request, settings))
        data = self._unary[method](request)
        if inspect.isawaitable(data):
            data = await data
        return UnaryResponse(data=data, used_endpoint=ENDPOINT)

    def stream_call(
        self,
        method: RpcMethod,
        request: Any,
        settings: RequestSettings,
    ) -> AsyncIterator[Any]:
        self.calls.append((method, request, settings))
        stream = self._stream[method](request)
        self.streams.append(stream)
        return stream


def transport_failure(endpoint: str = ENDPOINT) -> TransportError:
    return TransportError.unavailable(endpoint)


def raise_transport(request: Any) -> Any:
    raise transport_failure()


def result_part(*values: int) -> ExecuteQueryResponsePart:
    """One response part carrying a single INT32 column `n`."""
    rows = tuple(WireValue(items=(WireValue(int32_value=v),)) for v in values)
    columns = (Column("n", PrimitiveType(PrimitiveTypeId.INT32)),)
    return ExecuteQueryResponsePart(result_set=ResultSet(columns=columns, rows=rows))


def failed_part(code: StatusCode = StatusCode.ABORTED, message: str = "locks invalidated") -> ExecuteQueryResponsePart:
    return ExecuteQueryResponsePart(status_code=code, issues=(Issue(message=message),))


def fast_retry(max_retries: int = 3) -> RetrySettings:
    return RetrySettings(
        max_retries=max_retries,
        backoff=BackoffSettings(base_delay_ms=1, max_delay_ms=2, jitter_ratio=0.0),
    )


def pool_config(max_sessions: int = 4, acquire_timeout_s: float = 1.0, attach: bool = False) -> SessionPoolConfig:
    return SessionPoolConfig(
        max_sessions=max_sessions,
        acquire_timeout_s=acquire_timeout_s,
        attach_enabled=attach,
    )


def client_config(max_sessions: int = 4, max_retries: int = 3, **kwargs: Any) -> QueryClientConfig:
    return QueryClientConfig(
        pool=pool_config(max_sessions=max_sessions),
        reliability=ReliabilityConfig(max_retries=max_retries, retry_base_ms=1, retry_max_ms=2, jitter_ratio=0.0),
        **kwargs,
    )


def assert_ok(result: Any, message: str = "Expected Ok result") -> Any:
    if result.is_err():
        raise AssertionError(f"{message}: {result.error}")
    return result.unwrap()


def assert_err(result: Any, message: str = "Expected Err result") -> Any:
    if result.is_ok():
        raise AssertionError(f"{message}: Got Ok({result.unwrap()})")
    return result.error


@pytest.fixture
def driver() -> FakeDriver:
    return FakeDriver()
