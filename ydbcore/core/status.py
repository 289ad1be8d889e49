"""
Operation Status: Result Code plus Diagnostic Issues

Every remote outcome (success or failure) carries a Status. Server codes
mirror the service's StatusIds; client codes (6xxxxx) are produced locally
for transport failures, deadlines and session pool conditions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Iterable, Optional


class StatusCode(IntEnum):
    """Status codes of remote and client-side outcomes."""

    UNSPECIFIED = 0

    # Server codes
    SUCCESS = 400000
    BAD_REQUEST = 400010
    UNAUTHORIZED = 400020
    INTERNAL_ERROR = 400030
    ABORTED = 400040
    UNAVAILABLE = 400050
    OVERLOADED = 400060
    SCHEME_ERROR = 400070
    GENERIC_ERROR = 400080
    TIMEOUT = 400090
    BAD_SESSION = 400100
    PRECONDITION_FAILED = 400120
    ALREADY_EXISTS = 400130
    NOT_FOUND = 400140
    SESSION_EXPIRED = 400150
    CANCELLED = 400160
    UNDETERMINED = 400170
    UNSUPPORTED = 400180
    SESSION_BUSY = 400190
    EXTERNAL_ERROR = 400200

    # Client transport codes
    CLIENT_TRANSPORT_UNKNOWN = 600400
    CLIENT_TRANSPORT_UNAVAILABLE = 600500
    CLIENT_TRANSPORT_TIMEOUT = 600600
    CLIENT_TRANSPORT_RESOURCE_EXHAUSTED = 600700
    CLIENT_TRANSPORT_UNIMPLEMENTED = 600800

    # Client session pool codes
    CLIENT_SESSION_POOL_TIMEOUT = 601000
    CLIENT_SESSION_POOL_CLOSED = 601010

    @property
    def is_transport(self) -> bool:
        return 600400 <= self.value < 601000

    @property
    def invalidates_session(self) -> bool:
        """Server-side session can no longer be used after this code."""
        return self in _SESSION_INVALIDATING


_SESSION_INVALIDATING = frozenset({
    StatusCode.BAD_SESSION,
    StatusCode.SESSION_EXPIRED,
    StatusCode.SESSION_BUSY,
})


class IssueSeverity(Enum):
    FATAL = 0
    ERROR = 1
    WARNING = 2
    INFO = 3


@dataclass(frozen=True, slots=True)
class Issue:
    """
    Single diagnostic message attached to a Status.

    Issues may nest (e.g. a query error with per-position details).
    """

    message: str
    issue_code: int = 0
    severity: IssueSeverity = IssueSeverity.ERROR
    issues: tuple[Issue, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "message": self.message,
            "issue_code": self.issue_code,
            "severity": self.severity.name,
        }
        if self.issues:
            data["issues"] = [i.to_dict() for i in self.issues]
        return data

    def __str__(self) -> str:
        text = f"{self.severity.name}: {self.message}"
        if self.issue_code:
            text += f" (code {self.issue_code})"
        return text


@dataclass(frozen=True, slots=True)
class Status:
    """
    Result code plus ordered diagnostic issues.

    Usage:
        status = Status.from_code(StatusCode.ABORTED, "Transaction locks invalidated")
        if not status.is_success:
            log.warning(str(status))
    """

    code: StatusCode
    issues: tuple[Issue, ...] = ()

    @classmethod
    def success(cls) -> Status:
        return _SUCCESS

    @classmethod
    def from_code(cls, code: StatusCode, message: Optional[str] = None) -> Status:
        issues = (Issue(message=message),) if message else ()
        return cls(code=code, issues=issues)

    @classmethod
    def from_wire(cls, code: int, issues: Optional[Iterable[Issue]] = None) -> Status:
        """
        Build a Status from a response envelope.

        Codes unknown to this client map to UNSPECIFIED with the raw value
        kept in an issue, so that nothing reported by the server is lost.
        """
        collected = tuple(issues or ())
        try:
            status_code = StatusCode(code)
        except ValueError:
            status_code = StatusCode.UNSPECIFIED
            collected = (Issue(message=f"Unknown status code {code}"),) + collected
        return cls(code=status_code, issues=collected)

    @property
    def is_success(self) -> bool:
        return self.code == StatusCode.SUCCESS

    @property
    def message(self) -> str:
        """First issue message, or the code name when there are none."""
        if self.issues:
            return self.issues[0].message
        return self.code.name

    def ensure_success(self) -> None:
        """
        Raises:
            StatusUnsuccessfulError: If the status is not SUCCESS
        """
        if not self.is_success:
            from ydbcore.core.errors import StatusUnsuccessfulError

            raise StatusUnsuccessfulError.from_status(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.name,
            "code_value": self.code.value,
            "issues": [i.to_dict() for i in self.issues],
        }

    def __str__(self) -> str:
        if not self.issues:
            return f"Status: {self.code.name}"
        details = ", ".join(str(i) for i in self.issues)
        return f"Status: {self.code.name}, Issues: [{details}]"


_SUCCESS = Status(code=StatusCode.SUCCESS)
