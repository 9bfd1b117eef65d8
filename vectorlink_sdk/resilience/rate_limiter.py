# vectorlink_sdk/resilience/rate_limiter.py
# SPDX-License-Identifier: Apache-2.0

"""
Token-bucket rate limiter.

The bucket holds up to ``burst_size`` tokens and refills continuously at
``requests_per_second``. Refill is computed lazily from elapsed time on each
acquire attempt, so no background task is needed. Token accounting happens in
one ``threading.Lock`` critical section per bucket; waiting happens outside it.

Two admission modes:

- blocking (default): ``await acquire()`` sleeps until a token is available,
  giving up with :class:`RateLimitError` after ``timeout`` seconds;
- non-blocking: ``await acquire(blocking=False)`` raises
  :class:`RateLimitError` immediately, its ``retry_after`` set to the seconds
  until the next token.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

from vectorlink_sdk.core.errors import ConfigurationError, RateLimitError

LOG = logging.getLogger(__name__)


class TokenBucketLimiter:
    def __init__(
        self,
        requests_per_second: float,
        burst_size: Optional[int] = None,
        *,
        blocking: bool = True,
        timeout: Optional[float] = 30.0,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if requests_per_second is None or requests_per_second <= 0:
            raise ConfigurationError("requests_per_second must be positive")
        if burst_size is None:
            burst_size = max(1, int(requests_per_second * 2))
        if burst_size < 1:
            raise ConfigurationError("burst_size must be >= 1")
        if timeout is not None and timeout < 0:
            raise ConfigurationError("timeout must be non-negative")

        self.name = name
        self.requests_per_second = float(requests_per_second)
        self.burst_size = int(burst_size)
        self.blocking = blocking
        self.timeout = timeout
        self._clock = clock
        self._lock = threading.Lock()
        self._tokens = float(self.burst_size)
        self._last_refill = clock()
        self._granted = 0
        self._rejected = 0
        self._waited = 0.0

    @classmethod
    def from_config(cls, config: Any, *, name: str = "default") -> Optional["TokenBucketLimiter"]:
        """Limiter described by a ClientConfig, or None when rate limiting is off."""
        if config.requests_per_second is None:
            return None
        return cls(
            config.requests_per_second,
            config.effective_burst_size,
            blocking=config.rate_limit_blocking,
            timeout=config.rate_limit_timeout,
            name=name,
        )

    # ------------------------------------------------------------------ #
    # Critical section
    # ------------------------------------------------------------------ #

    def _refill_locked(self) -> None:
        now = self._clock()
        elapsed = now - self._last_refill
        if elapsed > 0:
            self._tokens = min(float(self.burst_size), self._tokens + elapsed * self.requests_per_second)
            self._last_refill = now

    def _wait_time_locked(self) -> float:
        if self._tokens >= 1.0:
            return 0.0
        return (1.0 - self._tokens) / self.requests_per_second

    def _take(self) -> float:
        """Consume a token if possible; otherwise return seconds until one exists."""
        with self._lock:
            self._refill_locked()
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                self._granted += 1
                return 0.0
            return self._wait_time_locked()

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def try_acquire(self) -> bool:
        """Take a token if one is available right now."""
        granted = self._take() == 0.0
        if not granted:
            with self._lock:
                self._rejected += 1
        return granted

    async def acquire(self, *, blocking: Optional[bool] = None, timeout: Optional[float] = None) -> None:
        """
        Obtain one token.

        Raises:
            RateLimitError: non-blocking and the bucket is empty, or blocking
                and no token became available within the timeout.
        """
        blocking = self.blocking if blocking is None else blocking
        timeout = self.timeout if timeout is None else timeout

        wait = self._take()
        if wait == 0.0:
            return
        if not blocking:
            with self._lock:
                self._rejected += 1
            raise RateLimitError(
                f"rate limit exceeded for '{self.name}'",
                retry_after=wait,
                details={"limiter": self.name, "requests_per_second": self.requests_per_second},
            )

        started = self._clock()
        deadline = None if timeout is None else started + timeout
        while wait > 0.0:
            if deadline is not None:
                remaining = deadline - self._clock()
                if remaining <= 0 or wait > remaining:
                    with self._lock:
                        self._rejected += 1
                    raise RateLimitError(
                        f"timed out after {timeout}s waiting for rate limiter '{self.name}'",
                        retry_after=wait,
                        details={"limiter": self.name, "timeout": timeout},
                    )
            await asyncio.sleep(wait)
            wait = self._take()

        with self._lock:
            self._waited += self._clock() - started

    def time_until_token(self) -> float:
        with self._lock:
            self._refill_locked()
            return self._wait_time_locked()

    @property
    def available_tokens(self) -> float:
        with self._lock:
            self._refill_locked()
            return self._tokens

    def reset(self) -> None:
        """Refill the bucket and clear counters."""
        with self._lock:
            self._tokens = float(self.burst_size)
            self._last_refill = self._clock()
            self._granted = 0
            self._rejected = 0
            self._waited = 0.0

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            self._refill_locked()
            return {
                "name": self.name,
                "requests_per_second": self.requests_per_second,
                "burst_size": self.burst_size,
                "available_tokens": self._tokens,
                "granted": self._granted,
                "rejected": self._rejected,
                "total_wait_seconds": self._waited,
            }

    def __repr__(self) -> str:
        return (
            f"TokenBucketLimiter(name={self.name!r}, rps={self.requests_per_second}, "
            f"burst={self.burst_size})"
        )


class RateLimiterRegistry:
    """Per-scope limiters owned by one client (or shared by passing the registry)."""

    def __init__(self, **defaults: Any) -> None:
        self._defaults = defaults
        self._limiters: Dict[str, TokenBucketLimiter] = {}
        self._lock = threading.Lock()

    def configure(self, scope: str, requests_per_second: float, **options: Any) -> TokenBucketLimiter:
        limiter = TokenBucketLimiter(requests_per_second, name=scope, **{**self._defaults, **options})
        with self._lock:
            self._limiters[scope] = limiter
        return limiter

    def get(self, scope: str) -> Optional[TokenBucketLimiter]:
        with self._lock:
            return self._limiters.get(scope)

    def stats(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            limiters = dict(self._limiters)
        return {scope: limiter.stats() for scope, limiter in limiters.items()}

    def reset_all(self) -> None:
        with self._lock:
            limiters = list(self._limiters.values())
        for limiter in limiters:
            limiter.reset()


__all__ = ["TokenBucketLimiter", "RateLimiterRegistry"]
