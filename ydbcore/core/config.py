"""
Configuration Management for the Driver Core

Provides validated configuration with sensible defaults.
Supports environment variable overrides.

Design:
- Immutable after validation
- Fail-fast on invalid configuration
- Type-safe with dataclasses
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum

from ydbcore.core.types import Result, Ok, Err
from ydbcore.core import constants as C


class TxRpcKind(Enum):
    """Which remote service carries begin/commit/rollback."""

    QUERY_SERVICE = "query"
    TABLE_SERVICE = "table"


@dataclass(frozen=True)
class SessionPoolConfig:
    """Session pool sizing and per-call timeouts."""

    max_sessions: int = C.POOL_MAX_SESSIONS
    acquire_timeout_s: float = C.POOL_ACQUIRE_TIMEOUT_S
    create_timeout_s: float = C.SESSION_CREATE_TIMEOUT_S
    delete_timeout_s: float = C.SESSION_DELETE_TIMEOUT_S
    attach_timeout_s: float = C.SESSION_ATTACH_TIMEOUT_S
    attach_enabled: bool = True


@dataclass(frozen=True)
class ReliabilityConfig:
    """Default retry budget for transport failures."""

    max_retries: int = C.RETRY_MAX_RETRIES
    retry_base_ms: int = C.RETRY_BASE_MS
    retry_max_ms: int = C.RETRY_MAX_MS
    jitter_ratio: float = C.RETRY_JITTER_RATIO


@dataclass(frozen=True)
class QueryClientConfig:
    """Query client configuration."""

    pool: SessionPoolConfig = field(default_factory=SessionPoolConfig)
    reliability: ReliabilityConfig = field(default_factory=ReliabilityConfig)
    tx_rpc: TxRpcKind = TxRpcKind.QUERY_SERVICE
    transport_timeout_s: float = C.TRANSPORT_TIMEOUT_S


@dataclass(frozen=True)
class ObservabilityConfig:
    """Observability and telemetry configuration."""

    metrics_enabled: bool = True
    log_level: str = "INFO"
    log_json: bool = False


@dataclass(frozen=True)
class DriverCoreConfig:
    """Root configuration for the driver core."""

    query_client: QueryClientConfig = field(default_factory=QueryClientConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> Result[DriverCoreConfig, str]:
        """
        Load configuration from environment variables.

        Environment variables are prefixed with YDBCORE_.
        Example: YDBCORE_POOL_MAX_SESSIONS, YDBCORE_TX_RPC
        """
        try:
            pool = SessionPoolConfig(
                max_sessions=int(os.getenv("YDBCORE_POOL_MAX_SESSIONS", str(C.POOL_MAX_SESSIONS))),
                acquire_timeout_s=float(
                    os.getenv("YDBCORE_POOL_ACQUIRE_TIMEOUT_S", str(C.POOL_ACQUIRE_TIMEOUT_S))
                ),
                create_timeout_s=float(
                    os.getenv("YDBCORE_SESSION_CREATE_TIMEOUT_S", str(C.SESSION_CREATE_TIMEOUT_S))
                ),
                delete_timeout_s=float(
                    os.getenv("YDBCORE_SESSION_DELETE_TIMEOUT_S", str(C.SESSION_DELETE_TIMEOUT_S))
                ),
                attach_timeout_s=float(
                    os.getenv("YDBCORE_SESSION_ATTACH_TIMEOUT_S", str(C.SESSION_ATTACH_TIMEOUT_S))
                ),
                attach_enabled=os.getenv("YDBCORE_POOL_ATTACH", "true").lower() == "true",
            )

            reliability = ReliabilityConfig(
                max_retries=int(os.getenv("YDBCORE_RETRY_MAX_RETRIES", str(C.RETRY_MAX_RETRIES))),
                retry_base_ms=int(os.getenv("YDBCORE_RETRY_BASE_MS", str(C.RETRY_BASE_MS))),
                retry_max_ms=int(os.getenv("YDBCORE_RETRY_MAX_MS", str(C.RETRY_MAX_MS))),
                jitter_ratio=float(os.getenv("YDBCORE_RETRY_JITTER_RATIO", str(C.RETRY_JITTER_RATIO))),
            )

            query_client = QueryClientConfig(
                pool=pool,
                reliability=reliability,
                tx_rpc=TxRpcKind(os.getenv("YDBCORE_TX_RPC", TxRpcKind.QUERY_SERVICE.value)),
                transport_timeout_s=float(
                    os.getenv("YDBCORE_TRANSPORT_TIMEOUT_S", str(C.TRANSPORT_TIMEOUT_S))
                ),
            )

            observability = ObservabilityConfig(
                metrics_enabled=os.getenv("YDBCORE_METRICS", "true").lower() == "true",
                log_level=os.getenv("YDBCORE_LOG_LEVEL", "INFO"),
                log_json=os.getenv("YDBCORE_LOG_JSON", "false").lower() == "true",
            )

            return Ok(cls(query_client=query_client, observability=observability))
        except (ValueError, TypeError) as e:
            return Err(f"Configuration error: {e}")

    def validate(self) -> Result[None, str]:
        """Validate configuration invariants."""
        pool = self.query_client.pool
        if pool.max_sessions < 1:
            return Err("Pool max_sessions must be >= 1")
        if pool.acquire_timeout_s <= 0:
            return Err("Pool acquire_timeout_s must be positive")
        reliability = self.query_client.reliability
        if reliability.max_retries < 0:
            return Err("Retry max_retries cannot be negative")
        if reliability.retry_base_ms > reliability.retry_max_ms:
            return Err("Retry base delay cannot exceed max delay")
        if not 0.0 <= reliability.jitter_ratio <= 1.0:
            return Err("Retry jitter_ratio must be within [0, 1]")
        return Ok(None)
