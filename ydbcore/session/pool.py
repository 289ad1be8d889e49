"""
Session Pool: Bounded Session Reuse with Retry

Runs caller actions against exactly one exclusively-held session:

    result = await pool.exec_on_session(action, retry_settings)
    match result:
        case Ok(value):
            ...
        case Err(status):
            ...

Acquisition order:
    1. Reuse an idle session
    2. Create one when fewer than max_sessions are live
    3. Otherwise wait (FIFO) for a release, bounded by acquire_timeout_s

Releasing hands the session straight to the oldest waiter, so a released
session never sits idle while someone is queued. Broken sessions are
discarded with a best-effort DeleteSession and their slot is reserved for
the next waiter, so a caller arriving later cannot take it first.

Only TransportError from the action (or from CreateSession) is retried;
unsuccessful statuses come back inside the action's own result.

Concurrency:
    Single event loop. Every check-and-update of pool bookkeeping runs
    without an intervening await, so no lock is needed.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import abstractmethod
from collections import deque
from typing import Awaitable, Callable, Optional, Protocol, TypeVar, Union, runtime_checkable

from ydbcore.core.config import SessionPoolConfig
from ydbcore.core.errors import ReliabilityError, SessionPoolError, TransportError
from ydbcore.core.status import Status, StatusCode
from ydbcore.core.types import Err, Ok, Result
from ydbcore.observability.metrics import DriverMetrics
from ydbcore.reliability.retry import RetrySettings, RetryStats
from ydbcore.session.session import BreakCause, Session
from ydbcore.transport.driver import Driver, RpcMethod, next_chunk, unary_call
from ydbcore.transport.messages import (
    AttachSessionRequest,
    CreateSessionRequest,
    DeleteSessionRequest,
)
from ydbcore.transport.settings import (
    AttachSessionSettings,
    CreateSessionSettings,
    DeleteSessionSettings,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

SessionAction = Callable[[Session], Awaitable[T]]


class _SlotReservation:
    """Handed to a waiter in place of a session: a live slot is already counted for it."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "<reserved slot>"


_RESERVED_SLOT = _SlotReservation()

Handoff = Union[Session, _SlotReservation, None]


# =============================================================================
# CAPABILITY INTERFACE
# =============================================================================
@runtime_checkable
class SessionExecutor(Protocol):
    """Anything that can run an action on a pooled session."""

    @abstractmethod
    async def exec_on_session(
        self,
        action: SessionAction[T],
        retry_settings: Optional[RetrySettings] = None,
    ) -> Result[T, Status]:
        """
        Run `action` on one session.

        Returns:
            Ok(value) with whatever the action returned
            Err(status) if no session could be obtained or a transport
            failure persisted past the retry budget
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        ...


# =============================================================================
# SESSION POOL
# =============================================================================
class SessionPool:
    """
    Bounded pool of server-side sessions.

    Invariants:
        - live sessions (idle + in use + being created) <= max_sessions
        - a session is either idle in the pool or held by one caller
    """

    __slots__ = (
        "_driver",
        "_config",
        "_retry_settings",
        "_metrics",
        "_idle",
        "_in_use",
        "_live",
        "_waiters",
        "_closed",
        "_background",
    )

    def __init__(
        self,
        driver: Driver,
        config: Optional[SessionPoolConfig] = None,
        retry_settings: Optional[RetrySettings] = None,
        metrics: Optional[DriverMetrics] = None,
    ) -> None:
        self._driver = driver
        self._config = config or SessionPoolConfig()
        self._retry_settings = retry_settings or RetrySettings.default()
        self._metrics = metrics or DriverMetrics()
        self._idle: deque[Session] = deque()
        self._in_use: set[Session] = set()
        self._live = 0
        self._waiters: deque[asyncio.Future[Handoff]] = deque()
        self._closed = False
        self._background: set[asyncio.Task[None]] = set()

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------
    @property
    def max_sessions(self) -> int:
        return self._config.max_sessions

    @property
    def live_count(self) -> int:
        return self._live

    @property
    def idle_count(self) -> int:
        return len(self._idle)

    @property
    def in_use_count(self) -> int:
        return len(self._in_use)

    @property
    def waiter_count(self) -> int:
        return sum(1 for f in self._waiters if not f.done())

    @property
    def is_closed(self) -> bool:
        return self._closed

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------
    async def exec_on_session(
        self,
        action: SessionAction[T],
        retry_settings: Optional[RetrySettings] = None,
    ) -> Result[T, Status]:
        settings = retry_settings or self._retry_settings
        stats = RetryStats()
        last_error: Optional[TransportError] = None

        for attempt in range(settings.max_attempts):
            if attempt > 0:
                self._metrics.retries.inc()
                delay_s = settings.backoff.delay_s(attempt - 1)
                stats.total_delay_ms += delay_s * 1000
                logger.debug("Retrying in %.3fs (attempt %d)", delay_s, attempt + 1)
                await asyncio.sleep(delay_s)

            stats.total_attempts += 1
            try:
                acquired = await self._acquire()
            except TransportError as e:
                stats.failed_attempts += 1
                stats.last_error = e.message
                last_error = e
                logger.warning("Session creation failed: %s", e.message)
                continue

            match acquired:
                case Err(status):
                    return Err(status)
                case Ok(session):
                    pass

            try:
                return Ok(await action(session))
            except TransportError as e:
                session.mark_broken(f"transport failure: {e.message}", BreakCause.TRANSPORT)
                stats.failed_attempts += 1
                stats.last_error = e.message
                last_error = e
                logger.warning(
                    "Transport failure on session %s (attempt %d/%d): %s",
                    session.id, attempt + 1, settings.max_attempts, e.message,
                )
            finally:
                self._release(session)

        error = ReliabilityError.retry_exhausted(stats.total_attempts, last_error)
        logger.warning("%s", error.message, extra={"error_id": error.error_id})
        return Err(error.status)

    # -------------------------------------------------------------------------
    # Acquire / release
    # -------------------------------------------------------------------------
    async def _acquire(self) -> Result[Session, Status]:
        """
        Raises:
            TransportError: If CreateSession failed at the transport level
        """
        deadline = time.monotonic() + self._config.acquire_timeout_s

        while True:
            if self._closed:
                return Err(SessionPoolError.closed().status)

            while self._idle:
                session = self._idle.popleft()
                if session.is_broken:
                    self._discard(session)
                    continue
                session.acquire()
                self._checkout(session)
                return Ok(session)

            if self._live < self._config.max_sessions:
                return await self._acquire_new()

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return self._acquire_timed_out()

            self._metrics.acquire_waits.inc()
            waiter: asyncio.Future[Handoff] = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)
            try:
                handed = await asyncio.wait_for(waiter, timeout=remaining)
            except asyncio.TimeoutError:
                # a release may have raced with the deadline
                handed = self._take_handoff(waiter)
                if handed is None:
                    return self._acquire_timed_out()
            except asyncio.CancelledError:
                handed = self._take_handoff(waiter)
                if isinstance(handed, Session):
                    self._release(handed)
                elif handed is _RESERVED_SLOT:
                    self._live -= 1
                    self._wake_one()
                raise
            finally:
                if waiter in self._waiters:
                    self._waiters.remove(waiter)

            if isinstance(handed, Session):
                return Ok(handed)
            if handed is _RESERVED_SLOT:
                if self._closed:
                    self._live -= 1
                    return Err(SessionPoolError.closed().status)
                return await self._acquire_new(reserved=True)
            # woken without a session: pool closed

    async def _acquire_new(self, reserved: bool = False) -> Result[Session, Status]:
        if not reserved:
            self._live += 1
        try:
            created = await self._create_session()
        except BaseException:
            self._live -= 1
            self._wake_one()
            raise

        match created:
            case Err(status):
                self._live -= 1
                self._wake_one()
                return Err(status)
            case Ok(session):
                if self._closed:
                    self._live -= 1
                    self._schedule_delete(session)
                    return Err(SessionPoolError.closed().status)
                session.acquire()
                self._checkout(session)
                return Ok(session)

    def _acquire_timed_out(self) -> Err[Status]:
        self._metrics.acquire_timeouts.inc()
        error = SessionPoolError.acquire_timeout(
            self._config.acquire_timeout_s,
            self._config.max_sessions,
        )
        logger.warning("%s", error.message)
        return Err(error.status)

    @staticmethod
    def _take_handoff(waiter: asyncio.Future[Handoff]) -> Handoff:
        if waiter.done() and not waiter.cancelled():
            return waiter.result()
        return None

    def _checkout(self, session: Session) -> None:
        self._in_use.add(session)
        self._metrics.sessions_in_use.set(len(self._in_use))

    def _release(self, session: Session) -> None:
        self._in_use.discard(session)
        self._metrics.sessions_in_use.set(len(self._in_use))

        if self._closed or session.is_broken:
            self._discard(session)
            return

        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                # stays IN_USE; ownership moves to the waiter
                waiter.set_result(session)
                self._checkout(session)
                return

        session.release()
        self._idle.append(session)

    def _wake_one(self) -> None:
        """Pass a freed slot to the oldest waiter, counting it as live right away."""
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                self._live += 1
                waiter.set_result(_RESERVED_SLOT)
                return

    def _discard(self, session: Session) -> None:
        self._live -= 1
        if session.is_broken:
            cause = session.break_cause or BreakCause.CALLER
            self._metrics.sessions_broken.inc(reason=cause.value)
        self._schedule_delete(session)
        self._wake_one()

    # -------------------------------------------------------------------------
    # Remote session lifecycle
    # -------------------------------------------------------------------------
    async def _create_session(self) -> Result[Session, Status]:
        """
        Raises:
            TransportError: On transport failure of CreateSession or of the
                first attach message
        """
        settings = CreateSessionSettings(transport_timeout_s=self._config.create_timeout_s)
        response = await unary_call(self._driver, RpcMethod.CREATE_SESSION, CreateSessionRequest(), settings)
        status = response.data.status
        if not status.is_success:
            logger.warning("CreateSession failed: %s", status)
            return Err(status)

        session = Session(
            session_id=response.data.session_id,
            node_id=response.data.node_id,
            endpoint=response.used_endpoint,
        )
        self._metrics.sessions_created.inc()

        if self._config.attach_enabled:
            attached = await self._attach(session)
            if attached.is_err():
                self._schedule_delete(session)
                return attached

        logger.debug("Session %s created on node %s", session.id, session.node_id)
        return Ok(session)

    async def _attach(self, session: Session) -> Result[Session, Status]:
        settings = AttachSessionSettings(transport_timeout_s=self._config.attach_timeout_s)
        stream = self._driver.stream_call(
            RpcMethod.ATTACH_SESSION,
            AttachSessionRequest(session_id=session.id),
            settings,
        )
        try:
            first = await next_chunk(stream, RpcMethod.ATTACH_SESSION, self._config.create_timeout_s)
        except StopAsyncIteration:
            status = Status.from_code(
                StatusCode.CLIENT_TRANSPORT_UNAVAILABLE,
                f"Attach stream for session {session.id} closed before first message",
            )
            logger.warning("%s", status.message)
            await _aclose(stream)
            return Err(status)
        except BaseException:
            await _aclose(stream)
            self._schedule_delete(session)
            raise

        status = first.status
        if not status.is_success:
            logger.warning("AttachSession %s failed: %s", session.id, status)
            await _aclose(stream)
            return Err(status)

        session.start_attach_watch(stream)
        return Ok(session)

    def _schedule_delete(self, session: Session) -> None:
        task = asyncio.create_task(self._delete_session(session), name=f"ydbcore-delete-{session.id}")
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _delete_session(self, session: Session) -> None:
        """Best-effort DeleteSession; failures are logged, never raised."""
        session.close()
        self._metrics.sessions_deleted.inc()
        settings = DeleteSessionSettings(transport_timeout_s=self._config.delete_timeout_s)
        try:
            response = await unary_call(
                self._driver,
                RpcMethod.DELETE_SESSION,
                DeleteSessionRequest(session_id=session.id),
                settings,
            )
        except Exception as e:
            logger.warning("DeleteSession %s failed: %s", session.id, e)
            return
        status = response.data.status
        if not status.is_success:
            logger.warning("DeleteSession %s returned %s", session.id, status)
        else:
            logger.debug("Session %s deleted", session.id)

    # -------------------------------------------------------------------------
    # Shutdown
    # -------------------------------------------------------------------------
    async def close(self) -> None:
        """
        Dispose the pool.

        Idle sessions are deleted now, in-use ones when their holder
        releases them. Waiters and later callers get a closed-pool status.
        """
        if self._closed:
            return
        self._closed = True
        logger.info(
            "Closing session pool (idle=%d, in_use=%d)",
            len(self._idle), len(self._in_use),
        )

        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)

        while self._idle:
            self._discard(self._idle.popleft())

        await self.wait_background()

    async def wait_background(self) -> None:
        """Wait for scheduled session deletions to finish."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def __aenter__(self) -> SessionPool:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()


async def _aclose(stream: object) -> None:
    aclose = getattr(stream, "aclose", None)
    if aclose is not None:
        await aclose()
