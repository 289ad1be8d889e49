"""
Retry Policy: Exponential Backoff with Jitter

Implements the session pool's retry strategy for transport failures:
- Exponential backoff: base × 2^n, capped
- Partial jitter: a configurable share of the delay is randomized
- Only transport failures are retried; unsuccessful statuses never are

Each remote call carries its own timeout; the retry budget bounds the
number of attempts, not their duration.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Optional

from ydbcore.core import constants as C
from ydbcore.core.config import ReliabilityConfig
from ydbcore.core.errors import ConfigurationError


@dataclass(frozen=True)
class BackoffSettings:
    """Backoff curve for consecutive attempts."""

    base_delay_ms: int = C.RETRY_BASE_MS
    max_delay_ms: int = C.RETRY_MAX_MS
    exponential_base: float = 2.0
    jitter_ratio: float = C.RETRY_JITTER_RATIO

    def delay_s(self, attempt: int) -> float:
        """Delay before retry number `attempt` (zero-based), in seconds."""
        return calculate_backoff(
            attempt=attempt,
            base_delay_ms=self.base_delay_ms,
            max_delay_ms=self.max_delay_ms,
            exponential_base=self.exponential_base,
            jitter_ratio=self.jitter_ratio,
        ) / 1000


@dataclass(frozen=True)
class RetrySettings:
    """
    Immutable per-call retry configuration.

    Non-idempotent actions are attempted once: a transport failure may
    hide a request the server already applied.
    """

    max_retries: int = C.RETRY_MAX_RETRIES
    backoff: BackoffSettings = BackoffSettings()
    idempotent: bool = True

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ConfigurationError.invalid(f"max_retries must be >= 0, got {self.max_retries}")

    @classmethod
    def default(cls) -> RetrySettings:
        return cls()

    @classmethod
    def no_retry(cls) -> RetrySettings:
        """No retries (for non-idempotent operations)."""
        return cls(max_retries=0, idempotent=False)

    @classmethod
    def from_config(cls, config: ReliabilityConfig) -> RetrySettings:
        return cls(
            max_retries=config.max_retries,
            backoff=BackoffSettings(
                base_delay_ms=config.retry_base_ms,
                max_delay_ms=config.retry_max_ms,
                jitter_ratio=config.jitter_ratio,
            ),
        )

    @property
    def max_attempts(self) -> int:
        if not self.idempotent:
            return 1
        return self.max_retries + 1


@dataclass
class RetryStats:
    """Retry attempt statistics."""
    total_attempts: int = 0
    failed_attempts: int = 0
    total_delay_ms: float = 0.0
    last_error: Optional[str] = None


def calculate_backoff(
    attempt: int,
    base_delay_ms: int,
    max_delay_ms: int,
    exponential_base: float,
    jitter_ratio: float,
) -> float:
    """
    Calculate backoff delay in milliseconds.

    delay = min(cap, base * b^attempt); the last `jitter_ratio` share of
    it is replaced by random(0, share).
    """
    delay = min(max_delay_ms, base_delay_ms * (exponential_base ** attempt))

    if jitter_ratio > 0:
        jittered = delay * jitter_ratio
        delay = delay - jittered + random.uniform(0, jittered)

    return delay
