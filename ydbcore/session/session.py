"""
Session: One Server-Allocated Execution Context

States:
    IDLE    → Parked in the pool, ready for checkout
    IN_USE  → Exclusively held by one caller
    BROKEN  → Unusable (transport failure, invalidating status, lost attach
              stream); discarded on release
    CLOSED  → Deleted; final state

Transitions:
    IDLE   → IN_USE : ACQUIRE
    IN_USE → IDLE   : RELEASE
    IDLE   → BROKEN : BREAK
    IN_USE → BROKEN : BREAK
    any    → CLOSED : CLOSE

A session has no transaction logic of its own; it only tracks identity,
state and the keep-alive attach stream.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import AsyncIterator, Optional

from ydbcore.core.errors import InvariantViolationError, TransportError
from ydbcore.core.status import Status
from ydbcore.core.types import Err, Ok, Result, Timestamp
from ydbcore.transport.messages import SessionStateMessage

logger = logging.getLogger(__name__)


# =============================================================================
# SESSION STATE ENUMERATION
# =============================================================================
class SessionState(Enum):
    IDLE = auto()
    IN_USE = auto()
    BROKEN = auto()
    CLOSED = auto()

    @property
    def is_terminal(self) -> bool:
        return self == SessionState.CLOSED

    @property
    def is_usable(self) -> bool:
        return self in (SessionState.IDLE, SessionState.IN_USE)


class BreakCause(Enum):
    """Bounded category of why a session broke; used as a metric label."""

    CALLER = "caller"
    STATUS = "status"
    TRANSPORT = "transport"
    ATTACH = "attach"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class SessionTransition:
    from_state: SessionState
    to_state: SessionState
    trigger: str


VALID_TRANSITIONS: frozenset[SessionTransition] = frozenset({
    SessionTransition(SessionState.IDLE, SessionState.IN_USE, "ACQUIRE"),
    SessionTransition(SessionState.IN_USE, SessionState.IDLE, "RELEASE"),
    SessionTransition(SessionState.IDLE, SessionState.BROKEN, "BREAK"),
    SessionTransition(SessionState.IN_USE, SessionState.BROKEN, "BREAK"),
    SessionTransition(SessionState.IDLE, SessionState.CLOSED, "CLOSE"),
    SessionTransition(SessionState.IN_USE, SessionState.CLOSED, "CLOSE"),
    SessionTransition(SessionState.BROKEN, SessionState.CLOSED, "CLOSE"),
})


# =============================================================================
# SESSION
# =============================================================================
class Session:
    """
    Server-side session bound to one node and endpoint.

    Owned by the session pool; while IN_USE it is owned by exactly one
    caller. Identity accessors are read-only.
    """

    __slots__ = (
        "_id",
        "_node_id",
        "_endpoint",
        "_state",
        "_created_at",
        "_last_used",
        "_break_reason",
        "_break_cause",
        "_attach_task",
    )

    def __init__(self, session_id: str, node_id: int = 0, endpoint: str = "") -> None:
        self._id = session_id
        self._node_id = node_id
        self._endpoint = endpoint
        self._state = SessionState.IDLE
        self._created_at = Timestamp.now()
        self._last_used = self._created_at
        self._break_reason: Optional[str] = None
        self._break_cause: Optional[BreakCause] = None
        self._attach_task: Optional[asyncio.Task[None]] = None

    @property
    def id(self) -> str:
        return self._id

    @property
    def node_id(self) -> int:
        return self._node_id

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_broken(self) -> bool:
        return self._state == SessionState.BROKEN

    @property
    def break_reason(self) -> Optional[str]:
        return self._break_reason

    @property
    def break_cause(self) -> Optional[BreakCause]:
        return self._break_cause

    @property
    def created_at(self) -> Timestamp:
        return self._created_at

    @property
    def last_used(self) -> Timestamp:
        return self._last_used

    # -------------------------------------------------------------------------
    # State machine
    # -------------------------------------------------------------------------
    def _transition(self, trigger: str) -> Result[SessionTransition, str]:
        for t in VALID_TRANSITIONS:
            if t.from_state == self._state and t.trigger == trigger:
                self._state = t.to_state
                return Ok(t)
        return Err(f"No valid transition from {self._state.name} with trigger '{trigger}'")

    def _require(self, trigger: str) -> None:
        if self._transition(trigger).is_err():
            raise InvariantViolationError.illegal_transition(
                "Session", self._id, self._state.name, trigger,
            )

    def acquire(self) -> None:
        """
        Raises:
            InvariantViolationError: If the session is not IDLE
        """
        self._require("ACQUIRE")
        self._last_used = Timestamp.now()

    def release(self) -> None:
        """
        Raises:
            InvariantViolationError: If the session is not IN_USE
        """
        self._require("RELEASE")
        self._last_used = Timestamp.now()

    def mark_broken(self, reason: str, cause: BreakCause = BreakCause.CALLER) -> None:
        """
        Idempotent; a closed session stays closed.

        `reason` is free text for logs, `cause` its fixed category.
        """
        if not self._state.is_usable:
            return
        self._require("BREAK")
        self._break_reason = reason
        self._break_cause = cause
        logger.debug("Session %s marked broken: %s", self._id, reason)

    def observe(self, status: Status) -> None:
        """Mark the session broken when a response status invalidates it."""
        if status.code.invalidates_session or status.code.is_transport:
            self.mark_broken(f"status {status.code.name}", BreakCause.STATUS)

    def close(self) -> None:
        if self._state.is_terminal:
            return
        self._require("CLOSE")
        if self._attach_task is not None and not self._attach_task.done():
            self._attach_task.cancel()

    # -------------------------------------------------------------------------
    # Attach stream
    # -------------------------------------------------------------------------
    def start_attach_watch(self, stream: AsyncIterator[SessionStateMessage]) -> asyncio.Task[None]:
        """
        Watch the remainder of an attach stream in the background.

        The first message has already been checked by the caller. Any
        later failure message, transport error or stream end breaks the
        session.
        """
        self._attach_task = asyncio.create_task(
            self._watch_attach(stream),
            name=f"ydbcore-attach-{self._id}",
        )
        return self._attach_task

    async def _watch_attach(self, stream: AsyncIterator[SessionStateMessage]) -> None:
        try:
            async for message in stream:
                status = message.status
                if not status.is_success:
                    self.mark_broken(f"attach stream reported {status.code.name}", BreakCause.ATTACH)
                    return
            self.mark_broken("attach stream closed", BreakCause.ATTACH)
        except TransportError as e:
            self.mark_broken(f"attach stream failed: {e.message}", BreakCause.ATTACH)
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

    def __repr__(self) -> str:
        return (
            f"Session(id={self._id!r}, node_id={self._node_id}, "
            f"endpoint={self._endpoint!r}, state={self._state.name})"
        )
