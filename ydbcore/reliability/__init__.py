"""
Reliability module: retry budget and backoff for transport failures.
"""

from ydbcore.reliability.retry import (
    BackoffSettings,
    RetrySettings,
    RetryStats,
    calculate_backoff,
)

__all__ = [
    "BackoffSettings",
    "RetrySettings",
    "RetryStats",
    "calculate_backoff",
]
