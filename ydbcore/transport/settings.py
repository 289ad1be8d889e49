"""
Per-Call Request Settings

Immutable settings for each remote method. All of them share the
transport timeout of RequestSettings; a few add method-specific knobs.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ydbcore.core import constants as C
from ydbcore.transport.driver import RequestSettings
from ydbcore.transport.messages import ExecMode, OperationParams, StatsMode, Syntax


@dataclass(frozen=True)
class CreateSessionSettings(RequestSettings):
    transport_timeout_s: float = C.SESSION_CREATE_TIMEOUT_S


@dataclass(frozen=True)
class DeleteSessionSettings(RequestSettings):
    transport_timeout_s: float = C.SESSION_DELETE_TIMEOUT_S


@dataclass(frozen=True)
class AttachSessionSettings(RequestSettings):
    """Timeout for each pull on the attach stream, which lives as long as the session."""

    transport_timeout_s: float = C.SESSION_ATTACH_TIMEOUT_S


@dataclass(frozen=True)
class BeginTransactionSettings(RequestSettings):
    pass


@dataclass(frozen=True)
class CommitTransactionSettings(RequestSettings):
    pass


@dataclass(frozen=True)
class RollbackTransactionSettings(RequestSettings):
    pass


@dataclass(frozen=True)
class ExecuteQuerySettings(RequestSettings):
    exec_mode: ExecMode = ExecMode.EXECUTE
    syntax: Syntax = Syntax.YQL_V1
    stats_mode: StatsMode = StatsMode.UNSPECIFIED


@dataclass(frozen=True)
class OperationRequestSettings(RequestSettings):
    """Settings for legacy calls wrapped in an operation envelope."""

    operation_timeout_s: Optional[float] = C.OPERATION_TIMEOUT_S
    cancel_after_s: Optional[float] = None

    def operation_params(self) -> OperationParams:
        return OperationParams(
            operation_timeout_s=self.operation_timeout_s,
            cancel_after_s=self.cancel_after_s,
        )
