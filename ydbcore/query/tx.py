"""
Transaction Controller

States:
    UNBOUND      → Created, no server transaction yet
    BEGUN        → Server tx id bound; queries may run
    COMMITTED    → Commit succeeded (terminal)
    ROLLED_BACK  → Rollback succeeded (terminal)
    FAILED       → A terminal call failed or was interrupted (terminal)

Transitions:
    UNBOUND → BEGUN       : BEGIN
    BEGUN   → COMMITTED   : COMMIT
    BEGUN   → ROLLED_BACK : ROLLBACK
    BEGUN   → FAILED      : FAIL

Exactly one terminal call (commit or rollback) is issued per begun Tx.
Issuing a second one raises InvariantViolationError before anything
reaches the wire.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Awaitable, Callable, Mapping, Optional, TypeVar, Union

from ydbcore.core import constants as C
from ydbcore.core.errors import InvariantViolationError
from ydbcore.core.status import Status
from ydbcore.core.types import Err, Ok, Result
from ydbcore.query.stream import ExecuteQueryStream
from ydbcore.query.tx_rpc import TransactionRpc
from ydbcore.session.session import Session
from ydbcore.transport.driver import Driver, RequestSettings, RpcMethod
from ydbcore.transport.messages import (
    ExecuteQueryRequest,
    TransactionControl,
    TransactionSettings,
    TxModeKind,
)
from ydbcore.transport.settings import (
    BeginTransactionSettings,
    CommitTransactionSettings,
    ExecuteQuerySettings,
    RollbackTransactionSettings,
)
from ydbcore.value.reader import ResultSet
from ydbcore.value.wire import YdbValue

logger = logging.getLogger(__name__)

T = TypeVar("T")

StreamConsumer = Callable[[ExecuteQueryStream], Awaitable[T]]


# =============================================================================
# TRANSACTION MODES
# =============================================================================
@dataclass(frozen=True, slots=True)
class SerializableReadWrite:
    kind: TxModeKind = TxModeKind.SERIALIZABLE_READ_WRITE

    def to_settings(self) -> TransactionSettings:
        return TransactionSettings(mode=self.kind)


@dataclass(frozen=True, slots=True)
class OnlineReadOnly:
    allow_inconsistent_reads: bool = False
    kind: TxModeKind = TxModeKind.ONLINE_READ_ONLY

    def with_allow_inconsistent_reads(self) -> OnlineReadOnly:
        return OnlineReadOnly(allow_inconsistent_reads=True)

    def to_settings(self) -> TransactionSettings:
        return TransactionSettings(
            mode=self.kind,
            allow_inconsistent_reads=self.allow_inconsistent_reads,
        )


@dataclass(frozen=True, slots=True)
class StaleReadOnly:
    kind: TxModeKind = TxModeKind.STALE_READ_ONLY

    def to_settings(self) -> TransactionSettings:
        return TransactionSettings(mode=self.kind)


@dataclass(frozen=True, slots=True)
class SnapshotReadOnly:
    kind: TxModeKind = TxModeKind.SNAPSHOT_READ_ONLY

    def to_settings(self) -> TransactionSettings:
        return TransactionSettings(mode=self.kind)


TxMode = Union[SerializableReadWrite, OnlineReadOnly, StaleReadOnly, SnapshotReadOnly]


# =============================================================================
# STATE MACHINE
# =============================================================================
class TxState(Enum):
    UNBOUND = auto()
    BEGUN = auto()
    COMMITTED = auto()
    ROLLED_BACK = auto()
    FAILED = auto()

    @property
    def is_terminal(self) -> bool:
        return self in (TxState.COMMITTED, TxState.ROLLED_BACK, TxState.FAILED)


@dataclass(frozen=True, slots=True)
class TxTransition:
    from_state: TxState
    to_state: TxState
    trigger: str


VALID_TRANSITIONS: frozenset[TxTransition] = frozenset({
    TxTransition(TxState.UNBOUND, TxState.BEGUN, "BEGIN"),
    TxTransition(TxState.BEGUN, TxState.COMMITTED, "COMMIT"),
    TxTransition(TxState.BEGUN, TxState.ROLLED_BACK, "ROLLBACK"),
    TxTransition(TxState.BEGUN, TxState.FAILED, "FAIL"),
})


# =============================================================================
# TRANSACTION
# =============================================================================
class Tx:
    """
    One logical transaction on one session.

    Operations are strictly sequential. Identity accessors are read-only
    and empty until begin() succeeds.
    """

    __slots__ = (
        "_session",
        "_driver",
        "_rpc",
        "_mode",
        "_transport_timeout_s",
        "_tx_id",
        "_session_id",
        "_state",
        "_terminal_issued",
    )

    def __init__(
        self,
        session: Session,
        driver: Driver,
        rpc: TransactionRpc,
        mode: Optional[TxMode] = None,
        transport_timeout_s: float = C.TRANSPORT_TIMEOUT_S,
    ) -> None:
        self._session = session
        self._driver = driver
        self._rpc = rpc
        self._mode = mode or SerializableReadWrite()
        self._transport_timeout_s = transport_timeout_s
        self._tx_id: Optional[str] = None
        self._session_id: Optional[str] = None
        self._state = TxState.UNBOUND
        self._terminal_issued = False

    @property
    def tx_id(self) -> Optional[str]:
        return self._tx_id

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    @property
    def mode(self) -> TxMode:
        return self._mode

    @property
    def state(self) -> TxState:
        return self._state

    def _transition(self, trigger: str) -> Result[TxTransition, str]:
        for t in VALID_TRANSITIONS:
            if t.from_state == self._state and t.trigger == trigger:
                self._state = t.to_state
                return Ok(t)
        return Err(f"No valid transition from {self._state.name} with trigger '{trigger}'")

    def _illegal(self, trigger: str) -> InvariantViolationError:
        return InvariantViolationError.illegal_transition(
            "Tx", self._tx_id or "<unbound>", self._state.name, trigger,
        )

    # -------------------------------------------------------------------------
    # Begin
    # -------------------------------------------------------------------------
    async def begin(self, settings: Optional[RequestSettings] = None) -> Status:
        """
        Start the server transaction.

        On failure the Tx stays UNBOUND and the failure status is returned.

        Raises:
            InvariantViolationError: If the Tx was already begun
            TransportError: On transport failure
        """
        if self._state != TxState.UNBOUND:
            raise self._illegal("BEGIN")

        settings = settings or BeginTransactionSettings(transport_timeout_s=self._transport_timeout_s)
        result = await self._rpc.begin(self._session.id, self._mode.to_settings(), settings)
        match result:
            case Ok(tx_id):
                self._tx_id = tx_id
                self._session_id = self._session.id
                self._transition("BEGIN")
                logger.debug("Tx %s begun on session %s", tx_id, self._session.id)
                return Status.success()
            case Err(status):
                self._session.observe(status)
                logger.debug("Begin on session %s failed: %s", self._session.id, status)
                return status

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------
    def execute(
        self,
        text: str,
        parameters: Optional[Mapping[str, YdbValue]] = None,
        settings: Optional[ExecuteQuerySettings] = None,
    ) -> ExecuteQueryStream:
        """
        Open one streaming ExecuteQuery bound to this transaction.

        The caller owns the returned stream and must drain or close it.

        Raises:
            InvariantViolationError: If the Tx is not BEGUN
        """
        if self._state != TxState.BEGUN or self._terminal_issued:
            raise self._illegal("EXECUTE")

        settings = settings or ExecuteQuerySettings(transport_timeout_s=self._transport_timeout_s)
        request = ExecuteQueryRequest(
            session_id=self._session.id,
            query_text=text,
            tx_control=TransactionControl(tx_id=self._tx_id),
            parameters=dict(parameters or {}),
            exec_mode=settings.exec_mode,
            syntax=settings.syntax,
            stats_mode=settings.stats_mode,
        )
        iterator = self._driver.stream_call(RpcMethod.EXECUTE_QUERY, request, settings)
        return ExecuteQueryStream(iterator, self._session, settings.transport_timeout_s)

    async def query(
        self,
        text: str,
        parameters: Optional[Mapping[str, YdbValue]] = None,
        func: Optional[StreamConsumer[T]] = None,
        settings: Optional[ExecuteQuerySettings] = None,
    ) -> T:
        """
        Run one query and hand its stream to `func`.

        Whatever `func` leaves unread is drained afterwards; if `func`
        raises, the call is aborted instead. Without `func` all result sets
        are collected into a list.

        Raises:
            StatusUnsuccessfulError: If any part reports failure
            TransportError: On transport failure
        """
        consumer = func or read_result_sets
        stream = self.execute(text, parameters, settings)
        try:
            value = await consumer(stream)
            await stream.drain()
        except BaseException:
            await stream.aclose()
            raise
        return value

    async def non_query(
        self,
        text: str,
        parameters: Optional[Mapping[str, YdbValue]] = None,
        settings: Optional[ExecuteQuerySettings] = None,
    ) -> None:
        await self.query(text, parameters, drain_stream, settings)

    # -------------------------------------------------------------------------
    # Terminal calls
    # -------------------------------------------------------------------------
    async def commit(self, settings: Optional[RequestSettings] = None) -> Status:
        """
        Raises:
            InvariantViolationError: If a terminal call was already issued
            TransportError: On transport failure (the Tx becomes FAILED)
        """
        settings = settings or CommitTransactionSettings(transport_timeout_s=self._transport_timeout_s)
        return await self._finish("COMMIT", self._rpc.commit, settings)

    async def rollback(self, settings: Optional[RequestSettings] = None) -> Status:
        """
        Raises:
            InvariantViolationError: If a terminal call was already issued
            TransportError: On transport failure (the Tx becomes FAILED)
        """
        settings = settings or RollbackTransactionSettings(transport_timeout_s=self._transport_timeout_s)
        return await self._finish("ROLLBACK", self._rpc.rollback, settings)

    async def _finish(
        self,
        trigger: str,
        call: Callable[[str, str, Optional[RequestSettings]], Awaitable[Status]],
        settings: Optional[RequestSettings],
    ) -> Status:
        if self._state != TxState.BEGUN or self._terminal_issued or self._tx_id is None:
            raise self._illegal(trigger)
        self._terminal_issued = True

        try:
            status = await call(self._session.id, self._tx_id, settings)
        except BaseException:
            self._transition("FAIL")
            raise

        self._session.observe(status)
        self._transition(trigger if status.is_success else "FAIL")
        logger.debug("Tx %s %s: %s", self._tx_id, trigger.lower(), status.code.name)
        return status

    def __repr__(self) -> str:
        return (
            f"Tx(tx_id={self._tx_id!r}, session_id={self._session_id!r}, "
            f"mode={type(self._mode).__name__}, state={self._state.name})"
        )


async def read_result_sets(stream: ExecuteQueryStream) -> list[ResultSet]:
    return await stream.read_all()


async def drain_stream(stream: ExecuteQueryStream) -> None:
    await stream.drain()
