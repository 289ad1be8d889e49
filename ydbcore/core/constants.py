"""
System-Wide Constants for the Driver Core

All magic numbers and configuration defaults centralized here.
"""

from typing import Final

# =============================================================================
# SIZE AND TIME UNITS
# =============================================================================
KB: Final[int] = 1024

SECOND_MS: Final[int] = 1000
DAY_S: Final[int] = 24 * 60 * 60

# =============================================================================
# SESSION POOL
# =============================================================================
POOL_MAX_SESSIONS: Final[int] = 100
POOL_ACQUIRE_TIMEOUT_S: Final[float] = 10.0
SESSION_CREATE_TIMEOUT_S: Final[float] = 5.0
SESSION_DELETE_TIMEOUT_S: Final[float] = 5.0
# Attach stream lives as long as the session does
SESSION_ATTACH_TIMEOUT_S: Final[float] = float(DAY_S)

# =============================================================================
# REMOTE CALLS
# =============================================================================
TRANSPORT_TIMEOUT_S: Final[float] = 60.0
OPERATION_TIMEOUT_S: Final[float] = 30.0

# =============================================================================
# RETRY
# =============================================================================
RETRY_MAX_RETRIES: Final[int] = 10
RETRY_BASE_MS: Final[int] = 5
RETRY_MAX_MS: Final[int] = 5 * SECOND_MS
RETRY_JITTER_RATIO: Final[float] = 0.5

# =============================================================================
# VALUE MARSHALLING
# =============================================================================
DECIMAL_DEFAULT_PRECISION: Final[int] = 22
DECIMAL_DEFAULT_SCALE: Final[int] = 9
DECIMAL_MAX_PRECISION: Final[int] = 35

CODEC_VERSION: Final[int] = 1
CODEC_COMPRESS_THRESHOLD_BYTES: Final[int] = 4 * KB
