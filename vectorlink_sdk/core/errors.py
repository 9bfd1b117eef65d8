# vectorlink_sdk/core/errors.py
# SPDX-License-Identifier: Apache-2.0

"""
Normalized error taxonomy for vectorlink.

Every failure that leaves the client is one of the typed errors below. Each
class carries an explicit :class:`ErrorKind` tag, so resilience code (retry,
circuit breaker, batch accounting) decides what to do by matching the tag
against explicit kind sets rather than by walking exception hierarchies.

Attributes shared by all errors
-------------------------------
message:
    Human readable description.
code:
    Machine readable code in UPPER_SNAKE_CASE (used on the wire).
retry_after:
    Suggested delay in seconds before retrying, when the backend said so.
details:
    Shallow, JSON-safe mapping of extra context.
original_error:
    The backend/library exception this error was translated from, if any.

Exceptions raised by third-party code (builtin ``ConnectionError``,
``asyncio.TimeoutError``...) are classified by :func:`classify` without being
wrapped, so callers still see them unchanged.
"""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, List, Mapping, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, enum.Enum):
    """Tag describing what class of failure an error represents."""

    CONNECTION = "connection"
    TIMEOUT = "timeout"
    POOL_TIMEOUT = "pool_timeout"
    AUTHENTICATION = "authentication"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    RATE_LIMIT = "rate_limit"
    CIRCUIT_OPEN = "circuit_open"
    SERVER = "server"
    CONFIGURATION = "configuration"
    UNSUPPORTED = "unsupported"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


#: Kinds re-attempted by the retry policy.
RETRYABLE_KINDS = frozenset(
    {ErrorKind.CONNECTION, ErrorKind.TIMEOUT, ErrorKind.SERVER, ErrorKind.RATE_LIMIT}
)

#: Kinds counted as failures by circuit breakers.
BREAKER_MONITORED_KINDS = frozenset(
    {ErrorKind.CONNECTION, ErrorKind.TIMEOUT, ErrorKind.SERVER}
)


# =============================================================================
# Error classes
# =============================================================================

class VectorClientError(Exception):
    """
    Base exception for all vectorlink errors.

    Subclasses set a default ``code`` and a class-level ``kind``.
    """

    kind: ErrorKind = ErrorKind.UNKNOWN
    default_code: str = "VECTOR_CLIENT_ERROR"

    def __init__(
        self,
        message: str = "",
        *,
        code: Optional[str] = None,
        retry_after: Optional[float] = None,
        details: Optional[Mapping[str, Any]] = None,
        original_error: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.retry_after = retry_after
        # Shallow copy keeps the mapping JSON-safe and detached from the caller
        self.details = dict(details or {})
        self.original_error = original_error

    @property
    def retry_after_ms(self) -> Optional[int]:
        if self.retry_after is None:
            return None
        return int(round(self.retry_after * 1000))

    def asdict(self) -> Dict[str, Any]:
        """Convert error to dictionary for serialization and logging."""
        return {
            "message": self.message,
            "code": self.code,
            "kind": self.kind.value,
            "retry_after_ms": self.retry_after_ms,
            "details": {k: self.details[k] for k in sorted(self.details)},
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class BackendConnectionError(VectorClientError):
    """The backend could not be reached or dropped the connection."""
    kind = ErrorKind.CONNECTION
    default_code = "CONNECTION_ERROR"


class BackendTimeoutError(VectorClientError):
    """The backend did not answer within the request timeout."""
    kind = ErrorKind.TIMEOUT
    default_code = "TIMEOUT"


class PoolTimeoutError(VectorClientError):
    """No pooled connection became available within the pool timeout."""
    kind = ErrorKind.POOL_TIMEOUT
    default_code = "POOL_TIMEOUT"


class AuthenticationError(VectorClientError):
    kind = ErrorKind.AUTHENTICATION
    default_code = "AUTHENTICATION_ERROR"


class ValidationError(VectorClientError):
    """Request rejected before (or by) the backend because it is malformed."""

    kind = ErrorKind.VALIDATION
    default_code = "VALIDATION_ERROR"

    def __init__(self, message: str = "", *, errors: Optional[List[str]] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.errors = list(errors or [])
        if self.errors:
            self.details.setdefault("errors", list(self.errors))


class NotFoundError(VectorClientError):
    kind = ErrorKind.NOT_FOUND
    default_code = "NOT_FOUND"


class RateLimitError(VectorClientError):
    """Admission denied; ``retry_after`` says how long until a permit frees up."""
    kind = ErrorKind.RATE_LIMIT
    default_code = "RATE_LIMITED"


class CircuitBreakerOpenError(VectorClientError):
    """A circuit breaker rejected the call without reaching the backend."""

    kind = ErrorKind.CIRCUIT_OPEN
    default_code = "CIRCUIT_OPEN"

    def __init__(
        self,
        message: str = "",
        *,
        circuit_name: str = "default",
        failure_count: int = 0,
        opened_at: Optional[float] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message or f"circuit '{circuit_name}' is open", **kwargs)
        self.circuit_name = circuit_name
        self.failure_count = failure_count
        self.opened_at = opened_at
        self.details.setdefault("circuit", circuit_name)
        self.details.setdefault("failures", failure_count)


class ServerError(VectorClientError):
    kind = ErrorKind.SERVER
    default_code = "SERVER_ERROR"

    def __init__(self, message: str = "", *, status_code: Optional[int] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.status_code = status_code
        if status_code is not None:
            self.details.setdefault("status_code", status_code)


class ConfigurationError(VectorClientError):
    kind = ErrorKind.CONFIGURATION
    default_code = "CONFIGURATION_ERROR"


class UnsupportedOperationError(VectorClientError):
    kind = ErrorKind.UNSUPPORTED
    default_code = "NOT_SUPPORTED"


class BatchCancelledError(VectorClientError):
    """Recorded for batch items whose chunk was never dispatched."""
    kind = ErrorKind.CANCELLED
    default_code = "CANCELLED"


# =============================================================================
# Classification
# =============================================================================

def classify(exc: BaseException) -> ErrorKind:
    """
    Return the :class:`ErrorKind` tag for any exception.

    SDK errors carry their tag; a few builtin failures map onto the
    transport kinds; everything else is UNKNOWN (never retried, never
    counted by breakers).
    """
    if isinstance(exc, VectorClientError):
        return exc.kind
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return ErrorKind.TIMEOUT
    if isinstance(exc, ConnectionError):
        return ErrorKind.CONNECTION
    return ErrorKind.UNKNOWN


def retry_after_of(exc: BaseException) -> Optional[float]:
    """Explicit retry-after hint (seconds) carried by ``exc``, if any."""
    value = getattr(exc, "retry_after", None)
    if value is None:
        return None
    try:
        value = float(value)
    except (TypeError, ValueError):
        return None
    return value if value >= 0 else None


def error_code(exc: BaseException) -> str:
    """Wire/metrics code for ``exc``."""
    if isinstance(exc, VectorClientError):
        return exc.code
    kind = classify(exc)
    if kind is ErrorKind.UNKNOWN:
        return "UNAVAILABLE"
    return kind.value.upper()


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """
    Result of one attempted call: either a value or a classified error.

    Retry and breaker logic branch on ``kind`` instead of rescuing
    exception classes.
    """

    value: Optional[T] = None
    error: Optional[BaseException] = None
    kind: Optional[ErrorKind] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    async def capture(cls, fn: Callable[[], Awaitable[T]]) -> "Outcome[T]":
        try:
            value = await fn()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            return cls(error=exc, kind=classify(exc))
        return cls(value=value)

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


__all__ = [
    "ErrorKind",
    "RETRYABLE_KINDS",
    "BREAKER_MONITORED_KINDS",
    "VectorClientError",
    "BackendConnectionError",
    "BackendTimeoutError",
    "PoolTimeoutError",
    "AuthenticationError",
    "ValidationError",
    "NotFoundError",
    "RateLimitError",
    "CircuitBreakerOpenError",
    "ServerError",
    "ConfigurationError",
    "UnsupportedOperationError",
    "BatchCancelledError",
    "classify",
    "retry_after_of",
    "error_code",
    "Outcome",
]
