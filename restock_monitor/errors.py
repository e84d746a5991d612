"""Error hierarchy and failure classification for the restock monitor.

All monitor-specific errors extend MonitorError. Check failures are not
raised across the retry loop; they are reported as a :class:`FailureKind`
so the coordinator can decide between failover and escalation.
"""

from __future__ import annotations

from enum import Enum


class FailureKind(str, Enum):
    """Why a single product check did not succeed."""

    TIMEOUT = "timeout"
    NAVIGATION = "navigation"
    SESSION_UNAVAILABLE = "session_unavailable"
    BLOCKED = "blocked"
    SHUTDOWN = "shutdown"
    POOL_EXHAUSTED = "pool_exhausted"


# ---------------------------------------------------------------------------
# Error hierarchy
# ---------------------------------------------------------------------------


class MonitorError(Exception):
    """Base error for all restock-monitor errors."""

    message: str = "Restock monitor error"

    def __init__(self, message: str | None = None, **kwargs: object) -> None:
        self.message = message or self.__class__.message
        self.details = kwargs
        super().__init__(self.message)


class ConfigurationError(MonitorError):
    """Missing or malformed configuration (files, columns, settings)."""

    message = "Invalid configuration"


class SessionUnavailableError(MonitorError):
    """Proxy session was retired after repeated failures."""

    message = "Proxy session is unavailable due to repeated failures"


class ShutdownInProgressError(MonitorError):
    """Operation refused because shutdown has begun."""

    message = "Shutdown in progress"


class PoolExhaustedError(MonitorError):
    """No live proxy sessions remain in the pool."""

    message = "No proxies available in the pool"


class PoolShutdownError(MonitorError):
    """Proxy pool has been shut down."""

    message = "Proxy pool has been shut down"
