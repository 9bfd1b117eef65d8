# SPDX-License-Identifier: Apache-2.0
"""
Resilience: retry policy, retryable kinds, backoff, retry-after precedence.
"""

import pytest

from vectorlink_sdk.core.errors import (
    BackendConnectionError,
    BackendTimeoutError,
    ConfigurationError,
    ErrorKind,
    NotFoundError,
    RateLimitError,
    ServerError,
    ValidationError,
)
from vectorlink_sdk.resilience.retry import RetryPolicy, retry_async

pytestmark = pytest.mark.asyncio


class _Flaky:
    def __init__(self, errors, result="ok"):
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


class _Sleeps:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


async def test_retry_succeeds_after_transient_failures():
    fn = _Flaky([BackendConnectionError("reset"), ServerError("503", status_code=503)])
    sleep = _Sleeps()
    result, stats = await retry_async(
        fn, policy=RetryPolicy(max_attempts=3, jitter=False), sleep=sleep, return_stats=True
    )
    assert result == "ok"
    assert fn.calls == 3
    assert stats.attempts == 3
    assert len(sleep.delays) == 2


async def test_retry_non_retryable_kind_propagates_on_first_attempt():
    err = ValidationError("bad vector")
    fn = _Flaky([err])
    sleep = _Sleeps()
    with pytest.raises(ValidationError) as exc_info:
        await retry_async(fn, policy=RetryPolicy(max_attempts=5), sleep=sleep)
    assert exc_info.value is err
    assert fn.calls == 1
    assert sleep.delays == []


async def test_retry_not_found_is_not_retried():
    fn = _Flaky([NotFoundError("missing")])
    with pytest.raises(NotFoundError):
        await retry_async(fn, policy=RetryPolicy(max_attempts=4), sleep=_Sleeps())
    assert fn.calls == 1


async def test_retry_exhausted_reraises_last_error_unchanged():
    errors = [BackendTimeoutError("t1"), BackendTimeoutError("t2"), BackendTimeoutError("t3")]
    last = errors[-1]
    fn = _Flaky(errors)
    with pytest.raises(BackendTimeoutError) as exc_info:
        await retry_async(fn, policy=RetryPolicy(max_attempts=3, jitter=False), sleep=_Sleeps())
    assert exc_info.value is last
    assert fn.calls == 3


async def test_retry_after_hint_takes_precedence_over_backoff():
    fn = _Flaky([RateLimitError("slow down", retry_after=1.75)])
    sleep = _Sleeps()
    await retry_async(
        fn, policy=RetryPolicy(max_attempts=2, base_delay=0.01, max_delay=0.02, jitter=False), sleep=sleep
    )
    assert sleep.delays == [1.75]


async def test_retry_exponential_backoff_without_jitter():
    fn = _Flaky([ServerError("a"), ServerError("b"), ServerError("c")])
    sleep = _Sleeps()
    await retry_async(
        fn,
        policy=RetryPolicy(max_attempts=4, base_delay=0.1, max_delay=0.3, multiplier=2.0, jitter=False),
        sleep=sleep,
    )
    assert sleep.delays == pytest.approx([0.1, 0.2, 0.3])


async def test_retry_jitter_stays_within_backoff():
    policy = RetryPolicy(base_delay=0.5, max_delay=10.0, jitter=True)
    for attempt in range(5):
        delay = policy.delay_for(attempt)
        assert 0.0 <= delay <= policy.backoff(attempt)


async def test_retry_builtin_connection_error_is_retryable():
    fn = _Flaky([ConnectionResetError("peer reset")])
    assert await retry_async(fn, policy=RetryPolicy(max_attempts=2), sleep=_Sleeps()) == "ok"
    assert fn.calls == 2


async def test_retry_custom_retryable_kinds():
    policy = RetryPolicy(max_attempts=3, retryable_kinds={ErrorKind.NOT_FOUND}, jitter=False)
    fn = _Flaky([NotFoundError("eventually consistent")])
    assert await retry_async(fn, policy=policy, sleep=_Sleeps()) == "ok"

    fn = _Flaky([ServerError("boom")])
    with pytest.raises(ServerError):
        await retry_async(fn, policy=policy, sleep=_Sleeps())
    assert fn.calls == 1


async def test_retry_on_backoff_callback_errors_are_ignored():
    seen = []

    def on_backoff(attempt, delay, error):
        seen.append((attempt, type(error).__name__))
        raise RuntimeError("hook failure")

    fn = _Flaky([ServerError("x")])
    assert await retry_async(fn, policy=RetryPolicy(jitter=False), on_backoff=on_backoff, sleep=_Sleeps()) == "ok"
    assert seen == [(1, "ServerError")]


async def test_retry_policy_validation():
    with pytest.raises(ConfigurationError):
        RetryPolicy(max_attempts=0)
    with pytest.raises(ConfigurationError):
        RetryPolicy(base_delay=5.0, max_delay=1.0)
    with pytest.raises(ConfigurationError):
        RetryPolicy(multiplier=0.5)
