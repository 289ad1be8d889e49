"""
Execute Query Result Stream

Lazy, finite, forward-only sequence of response parts from one
ExecuteQuery call. Not restartable; each pull is a suspension point
bounded by the call's transport timeout.

A part with a non-success status ends the stream: the underlying call is
closed and StatusUnsuccessfulError is raised from the pull that saw it.

Usage:
    async for part in stream:
        if part.result_set is not None:
            rows.extend(part.result_set.to_python())

Whoever opens a stream must drain() or aclose() it before the session
goes back to the pool; QueryClient does this for its callers.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, Optional

from ydbcore.core.errors import StatusUnsuccessfulError, TransportError
from ydbcore.core.status import Status
from ydbcore.session.session import Session
from ydbcore.transport.driver import RpcMethod, next_chunk
from ydbcore.transport.messages import ExecuteQueryResponsePart
from ydbcore.value.reader import ResultSet

logger = logging.getLogger(__name__)


class ExecuteQueryStream:
    __slots__ = ("_iterator", "_session", "_timeout_s", "_done", "_parts_read", "_failure")

    def __init__(
        self,
        iterator: AsyncIterator[ExecuteQueryResponsePart],
        session: Session,
        timeout_s: float,
    ) -> None:
        self._iterator = iterator
        self._session = session
        self._timeout_s = timeout_s
        self._done = False
        self._parts_read = 0
        self._failure: Optional[Status] = None

    @property
    def is_done(self) -> bool:
        return self._done

    @property
    def parts_read(self) -> int:
        return self._parts_read

    @property
    def failure(self) -> Optional[Status]:
        """Status of the part that ended the stream, if it failed."""
        return self._failure

    def __aiter__(self) -> ExecuteQueryStream:
        return self

    async def __anext__(self) -> ExecuteQueryResponsePart:
        """
        Raises:
            StopAsyncIteration: When the stream is exhausted or closed
            StatusUnsuccessfulError: On a non-success part
            TransportError: On transport failure or pull timeout
        """
        if self._done:
            raise StopAsyncIteration

        try:
            part = await next_chunk(self._iterator, RpcMethod.EXECUTE_QUERY, self._timeout_s)
        except StopAsyncIteration:
            self._done = True
            raise
        except TransportError:
            await self.aclose()
            raise

        status = part.status
        self._session.observe(status)
        if not status.is_success:
            self._failure = status
            await self.aclose()
            logger.debug("Result stream on session %s failed: %s", self._session.id, status)
            raise StatusUnsuccessfulError.from_status(status)

        self._parts_read += 1
        return part

    async def result_sets(self) -> AsyncIterator[ResultSet]:
        """Yield only the parts that carry a result set."""
        async for part in self:
            if part.result_set is not None:
                yield part.result_set

    async def read_all(self) -> list[ResultSet]:
        return [rs async for rs in self.result_sets()]

    async def drain(self) -> int:
        """
        Consume whatever is left, checking every part.

        Returns:
            Number of parts consumed by this call
        """
        consumed = 0
        async for _ in self:
            consumed += 1
        return consumed

    async def aclose(self) -> None:
        """Abort the underlying call. Safe to call more than once."""
        if self._done:
            return
        self._done = True
        aclose = getattr(self._iterator, "aclose", None)
        if aclose is not None:
            await aclose()
