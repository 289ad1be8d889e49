"""
Transport Contract: the Driver Collaborator

The driver performs unary and server-streaming RPCs, selects endpoints and
raises TransportError on connectivity problems. This core consumes that
contract; it never implements a network transport.

Per-call deadlines are enforced on this side as well, so a driver that
hangs is still observed as a transport failure:

    response = await unary_call(driver, RpcMethod.CREATE_SESSION, request, settings)
"""

from __future__ import annotations

import asyncio
import logging
from abc import abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Generic, Optional, Protocol, TypeVar, runtime_checkable

from ydbcore.core import constants as C
from ydbcore.core.errors import TransportError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RpcMethod(Enum):
    """Remote methods driven by this core."""

    CREATE_SESSION = "/Ydb.Query.V1.QueryService/CreateSession"
    DELETE_SESSION = "/Ydb.Query.V1.QueryService/DeleteSession"
    ATTACH_SESSION = "/Ydb.Query.V1.QueryService/AttachSession"
    BEGIN_TRANSACTION = "/Ydb.Query.V1.QueryService/BeginTransaction"
    COMMIT_TRANSACTION = "/Ydb.Query.V1.QueryService/CommitTransaction"
    ROLLBACK_TRANSACTION = "/Ydb.Query.V1.QueryService/RollbackTransaction"
    EXECUTE_QUERY = "/Ydb.Query.V1.QueryService/ExecuteQuery"

    # Legacy table service transaction calls
    TABLE_BEGIN_TRANSACTION = "/Ydb.Table.V1.TableService/BeginTransaction"
    TABLE_COMMIT_TRANSACTION = "/Ydb.Table.V1.TableService/CommitTransaction"
    TABLE_ROLLBACK_TRANSACTION = "/Ydb.Table.V1.TableService/RollbackTransaction"

    @property
    def is_streaming(self) -> bool:
        return self in (RpcMethod.ATTACH_SESSION, RpcMethod.EXECUTE_QUERY)


@dataclass(frozen=True)
class RequestSettings:
    """Settings common to every remote call."""

    transport_timeout_s: float = C.TRANSPORT_TIMEOUT_S
    trace_id: Optional[str] = None
    headers: tuple[tuple[str, str], ...] = ()


@dataclass(frozen=True, slots=True)
class UnaryResponse(Generic[T]):
    data: T
    used_endpoint: str = ""


@runtime_checkable
class Driver(Protocol):
    """
    RPC transport consumed by the driver core.

    Implementations raise TransportError (carrying a client transport
    Status) for connectivity and deadline failures; well-formed responses
    carry their own status.
    """

    @abstractmethod
    async def unary_call(
        self,
        method: RpcMethod,
        request: Any,
        settings: RequestSettings,
    ) -> UnaryResponse[Any]:
        ...

    @abstractmethod
    def stream_call(
        self,
        method: RpcMethod,
        request: Any,
        settings: RequestSettings,
    ) -> AsyncIterator[Any]:
        """Lazy sequence of response chunks; each pull is a suspension point."""
        ...


async def unary_call(
    driver: Driver,
    method: RpcMethod,
    request: Any,
    settings: RequestSettings,
) -> UnaryResponse[Any]:
    """
    Issue a unary call bounded by the call's own transport timeout.

    Raises:
        TransportError: On driver failure or when the deadline elapses
    """
    try:
        return await asyncio.wait_for(
            driver.unary_call(method, request, settings),
            timeout=settings.transport_timeout_s,
        )
    except asyncio.TimeoutError as e:
        logger.debug("Call %s timed out after %ss", method.name, settings.transport_timeout_s)
        raise TransportError.deadline_exceeded(method.name, settings.transport_timeout_s, cause=e) from e


async def next_chunk(
    iterator: AsyncIterator[T],
    method: RpcMethod,
    timeout_s: float,
) -> T:
    """
    Pull one chunk from a streaming call.

    Raises:
        StopAsyncIteration: When the stream completes
        TransportError: On driver failure or when the pull times out
    """
    try:
        return await asyncio.wait_for(iterator.__anext__(), timeout=timeout_s)
    except asyncio.TimeoutError as e:
        logger.debug("Stream %s chunk timed out after %ss", method.name, timeout_s)
        raise TransportError.deadline_exceeded(method.name, timeout_s, cause=e) from e
