"""
Session module: session lifecycle and the bounded session pool.
"""

from ydbcore.session.pool import SessionAction, SessionExecutor, SessionPool
from ydbcore.session.session import (
    VALID_TRANSITIONS,
    BreakCause,
    Session,
    SessionState,
    SessionTransition,
)

__all__ = [
    "SessionAction",
    "SessionExecutor",
    "SessionPool",
    "VALID_TRANSITIONS",
    "BreakCause",
    "Session",
    "SessionState",
    "SessionTransition",
]
