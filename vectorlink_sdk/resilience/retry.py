# vectorlink_sdk/resilience/retry.py
# SPDX-License-Identifier: Apache-2.0
"""
Async retry with exponential backoff.

Each attempt's outcome is captured as an :class:`Outcome` and its
:class:`ErrorKind` tag is matched against the policy's retryable set:

- connection failures, timeouts, server errors and rate limits are
  re-attempted (by default);
- every other kind propagates on the first attempt;
- once the attempt budget is spent, the last error is re-raised unchanged.

An explicit ``retry_after`` hint on the error (rate-limit responses carry
one) takes precedence over the computed backoff.

Usage:
    policy = RetryPolicy(max_attempts=5, base_delay=0.2, max_delay=5.0)
    result = await retry_async(lambda: adapter.query("docs", vector=v), policy=policy)

Jitter can be switched off for deterministic tests.
"""
from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, FrozenSet, Optional

from vectorlink_sdk.core.errors import (
    RETRYABLE_KINDS,
    ConfigurationError,
    ErrorKind,
    Outcome,
    retry_after_of,
)

LOG = logging.getLogger(__name__)

__all__ = [
    "RetryPolicy",
    "RetryStats",
    "retry_async",
]


@dataclass(frozen=True)
class RetryStats:
    """
    Statistics about one retried call.

    Attributes:
        attempts: Number of attempts made (including the successful one)
        total_delay: Seconds spent sleeping between attempts
        last_error: Last error seen before success or final failure
    """
    attempts: int
    total_delay: float
    last_error: Optional[BaseException] = None


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry configuration with exponential backoff.

    Attributes:
        max_attempts:    Total tries including the first attempt.
        base_delay:      Initial backoff in seconds.
        max_delay:       Cap on computed backoff in seconds.
        multiplier:      Exponential growth factor per attempt.
        jitter:          Randomize sleep in [0, backoff].
        retryable_kinds: Error kinds that earn another attempt.
    """

    max_attempts: int = 3
    base_delay: float = 0.2
    max_delay: float = 30.0
    multiplier: float = 2.0
    jitter: bool = True
    retryable_kinds: FrozenSet[ErrorKind] = field(default=RETRYABLE_KINDS)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ConfigurationError("max_attempts must be >= 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ConfigurationError("backoff delays must be non-negative")
        if self.multiplier < 1.0:
            raise ConfigurationError("multiplier must be >= 1.0")
        if self.base_delay > self.max_delay:
            raise ConfigurationError("base_delay cannot exceed max_delay")
        object.__setattr__(self, "retryable_kinds", frozenset(self.retryable_kinds))

    @classmethod
    def from_config(cls, config: Any) -> "RetryPolicy":
        """Build a policy from a ClientConfig (``max_retries`` counts re-attempts)."""
        max_delay = max(config.retry_delay, config.max_retry_delay)
        return cls(
            max_attempts=config.max_retries + 1,
            base_delay=config.retry_delay,
            max_delay=max_delay,
        )

    def is_retryable(self, kind: Optional[ErrorKind]) -> bool:
        return kind is not None and kind in self.retryable_kinds

    def backoff(self, attempt_index: int) -> float:
        """Exponential backoff (seconds) before retry number ``attempt_index + 1``."""
        raw = self.base_delay * (self.multiplier ** attempt_index)
        return min(raw, self.max_delay)

    def delay_for(self, attempt_index: int, error: Optional[BaseException] = None) -> float:
        hint = retry_after_of(error) if error is not None else None
        if hint is not None:
            return hint
        backoff = self.backoff(attempt_index)
        return random.random() * backoff if self.jitter else backoff


async def retry_async(
    fn: Callable[[], Awaitable[Any]],
    *,
    policy: RetryPolicy = RetryPolicy(),
    on_backoff: Optional[Callable[[int, float, BaseException], None]] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    return_stats: bool = False,
) -> Any:
    """
    Execute ``fn`` with retries on retryable error kinds.

    Args:
        fn:           Zero-arg coroutine factory invoked once per attempt.
        policy:       RetryPolicy controlling the budget and backoff.
        on_backoff:   Optional callback (attempt_no, sleep_seconds, error)
                      called before each sleep.
        sleep:        Awaitable sleep function (injectable for tests).
        return_stats: If True, returns (result, RetryStats).

    Raises:
        The last error, unchanged, when it is not retryable or the budget
        is exhausted.
    """
    total_delay = 0.0
    last_error: Optional[BaseException] = None

    for attempt in range(1, policy.max_attempts + 1):
        outcome = await Outcome.capture(fn)
        if outcome.ok:
            if return_stats:
                return outcome.value, RetryStats(attempt, total_delay, last_error)
            return outcome.value

        last_error = outcome.error
        if not policy.is_retryable(outcome.kind) or attempt >= policy.max_attempts:
            if attempt > 1:
                LOG.warning(
                    "giving up after %d attempt(s): %s (%s)",
                    attempt, type(last_error).__name__, outcome.kind.value if outcome.kind else "-",
                )
            outcome.unwrap()

        delay = policy.delay_for(attempt - 1, last_error)
        total_delay += delay
        LOG.warning(
            "attempt %d/%d failed with %s; retrying in %.3fs",
            attempt, policy.max_attempts, outcome.kind.value, delay,
        )
        if on_backoff is not None:
            try:
                on_backoff(attempt, delay, last_error)
            except Exception:  # noqa: BLE001
                # hooks must not break the retry loop
                LOG.debug("on_backoff callback raised", exc_info=True)
        await sleep(delay)

    raise AssertionError("unreachable")  # pragma: no cover
