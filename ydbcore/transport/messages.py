"""
Request and Response Messages

Plain dataclass renditions of the query service (and legacy table service)
messages exchanged with the Driver. Every response carries its own status
code and issues; `status` folds them into a Status.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Mapping, Optional

from ydbcore.core.status import Issue, Status, StatusCode
from ydbcore.value.reader import ResultSet
from ydbcore.value.wire import YdbValue


# =============================================================================
# ENUMERATIONS
# =============================================================================
class ExecMode(IntEnum):
    UNSPECIFIED = 0
    PARSE = 10
    VALIDATE = 20
    EXPLAIN = 30
    EXECUTE = 50


class Syntax(IntEnum):
    UNSPECIFIED = 0
    YQL_V1 = 1
    PG = 2


class StatsMode(IntEnum):
    UNSPECIFIED = 0
    NONE = 10
    BASIC = 20
    FULL = 30
    PROFILE = 40


class TxModeKind(Enum):
    SERIALIZABLE_READ_WRITE = "serializable_read_write"
    ONLINE_READ_ONLY = "online_read_only"
    STALE_READ_ONLY = "stale_read_only"
    SNAPSHOT_READ_ONLY = "snapshot_read_only"


# =============================================================================
# TRANSACTION CONTROL
# =============================================================================
@dataclass(frozen=True, slots=True)
class TransactionSettings:
    mode: TxModeKind
    allow_inconsistent_reads: bool = False


@dataclass(frozen=True, slots=True)
class TransactionControl:
    """Either an existing tx id or settings to begin a new one."""

    tx_id: Optional[str] = None
    begin_tx: Optional[TransactionSettings] = None
    commit_tx: bool = False


# =============================================================================
# RESPONSE BASE
# =============================================================================
@dataclass(frozen=True)
class StatusResponse:
    status_code: int = StatusCode.SUCCESS
    issues: tuple[Issue, ...] = ()

    @property
    def status(self) -> Status:
        return Status.from_wire(self.status_code, self.issues)


# =============================================================================
# QUERY SERVICE
# =============================================================================
@dataclass(frozen=True)
class CreateSessionRequest:
    pass


@dataclass(frozen=True)
class CreateSessionResponse(StatusResponse):
    session_id: str = ""
    node_id: int = 0


@dataclass(frozen=True)
class DeleteSessionRequest:
    session_id: str


@dataclass(frozen=True)
class DeleteSessionResponse(StatusResponse):
    pass


@dataclass(frozen=True)
class AttachSessionRequest:
    session_id: str


@dataclass(frozen=True)
class SessionStateMessage(StatusResponse):
    """One message of the attach stream."""


@dataclass(frozen=True)
class BeginTransactionRequest:
    session_id: str
    tx_settings: TransactionSettings


@dataclass(frozen=True)
class BeginTransactionResponse(StatusResponse):
    tx_id: str = ""


@dataclass(frozen=True)
class CommitTransactionRequest:
    session_id: str
    tx_id: str


@dataclass(frozen=True)
class CommitTransactionResponse(StatusResponse):
    pass


@dataclass(frozen=True)
class RollbackTransactionRequest:
    session_id: str
    tx_id: str


@dataclass(frozen=True)
class RollbackTransactionResponse(StatusResponse):
    pass


@dataclass(frozen=True)
class ExecuteQueryRequest:
    session_id: str
    query_text: str
    tx_control: Optional[TransactionControl] = None
    parameters: Mapping[str, YdbValue] = field(default_factory=dict)
    exec_mode: ExecMode = ExecMode.EXECUTE
    syntax: Syntax = Syntax.YQL_V1
    stats_mode: StatsMode = StatsMode.UNSPECIFIED


@dataclass(frozen=True)
class ExecuteQueryResponsePart(StatusResponse):
    result_set_index: int = 0
    result_set: Optional[ResultSet] = None
    tx_id: Optional[str] = None


# =============================================================================
# LEGACY TABLE SERVICE
# =============================================================================
@dataclass(frozen=True)
class OperationParams:
    operation_timeout_s: Optional[float] = None
    cancel_after_s: Optional[float] = None


@dataclass(frozen=True)
class Operation:
    """Operation envelope wrapping a table service outcome."""

    id: str = ""
    ready: bool = True
    status_code: int = StatusCode.SUCCESS
    issues: tuple[Issue, ...] = ()
    result: Any = None

    @property
    def status(self) -> Status:
        return Status.from_wire(self.status_code, self.issues)


@dataclass(frozen=True)
class TableBeginTransactionRequest:
    session_id: str
    tx_settings: TransactionSettings
    operation_params: OperationParams = field(default_factory=OperationParams)


@dataclass(frozen=True)
class TableBeginTransactionResult:
    tx_id: str


@dataclass(frozen=True)
class TableCommitTransactionRequest:
    session_id: str
    tx_id: str
    operation_params: OperationParams = field(default_factory=OperationParams)


@dataclass(frozen=True)
class TableRollbackTransactionRequest:
    session_id: str
    tx_id: str
    operation_params: OperationParams = field(default_factory=OperationParams)


@dataclass(frozen=True)
class TableOperationResponse:
    operation: Operation = field(default_factory=Operation)
