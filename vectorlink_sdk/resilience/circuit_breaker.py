# vectorlink_sdk/resilience/circuit_breaker.py
# SPDX-License-Identifier: Apache-2.0

"""
Circuit breaker for backend calls.

State machine
-------------
    CLOSED    --(failure_threshold consecutive failures)-->  OPEN
    OPEN      --(recovery_timeout elapsed)------------------> HALF_OPEN
    HALF_OPEN --(probe succeeds)----------------------------> CLOSED
    HALF_OPEN --(probe fails)-------------------------------> OPEN

While OPEN every call raises :class:`CircuitBreakerOpenError` without invoking
the wrapped function. In HALF_OPEN exactly one probe is admitted; other calls
arriving while the probe is in flight are rejected the same way.

Only failures whose :class:`ErrorKind` is in ``monitored_kinds`` (connection,
timeout, server by default) count. Any other outcome, including validation
or not-found errors, proves the backend answered and is treated as a
success for state purposes before the error propagates.

Each admitted call carries an :class:`Admission` stamped with the breaker
generation, which advances on every trip or reset. Outcomes from calls
admitted in an earlier generation only update counters, so a slow call that
started while CLOSED cannot close a circuit that has since opened. Only the
HALF_OPEN probe closes the circuit. A cancelled probe gives its slot back.

All state lives behind one ``threading.Lock`` per breaker; the wrapped
call itself runs outside the lock. Breakers are plain objects owned by a
client (through :class:`CircuitBreakerRegistry`); sharing one across clients
means passing the same instance.
"""

from __future__ import annotations

import enum
import inspect
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Optional

from vectorlink_sdk.core.errors import (
    BREAKER_MONITORED_KINDS,
    CircuitBreakerOpenError,
    ConfigurationError,
    ErrorKind,
    Outcome,
    classify,
)

LOG = logging.getLogger(__name__)


@dataclass(frozen=True)
class Admission:
    """Ticket for one admitted call; ``probe`` marks the HALF_OPEN probe."""

    generation: int
    probe: bool = False


class CircuitState(str, enum.Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Per-resource failure tracker and fail-fast gate.

    Args:
        name: Resource name, reported in errors and stats
        failure_threshold: Consecutive monitored failures that open the circuit
        recovery_timeout: Seconds to stay OPEN before admitting a probe
        monitored_kinds: Error kinds that count as failures
        clock: Monotonic time source (injectable for tests)
    """

    def __init__(
        self,
        name: str = "default",
        *,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        monitored_kinds: FrozenSet[ErrorKind] = BREAKER_MONITORED_KINDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if failure_threshold < 1:
            raise ConfigurationError("failure_threshold must be >= 1")
        if recovery_timeout <= 0:
            raise ConfigurationError("recovery_timeout must be positive")
        self.name = name
        self.failure_threshold = int(failure_threshold)
        self.recovery_timeout = float(recovery_timeout)
        self.monitored_kinds = frozenset(monitored_kinds)
        self._clock = clock
        self._lock = threading.Lock()

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_at: Optional[float] = None
        self._opened_at: Optional[float] = None
        self._probe_in_flight = False
        self._rejected_count = 0
        # Bumped on every trip/reset; admissions from older generations are stale.
        self._generation = 0

    # ------------------------------------------------------------------ #
    # State inspection
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._current_state()

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failure_count

    def _current_state(self) -> CircuitState:
        # Caller holds the lock. OPEN reads as HALF_OPEN once the timeout passed.
        if (
            self._state is CircuitState.OPEN
            and self._opened_at is not None
            and self._clock() - self._opened_at >= self.recovery_timeout
        ):
            self._state = CircuitState.HALF_OPEN
            self._probe_in_flight = False
            LOG.info("circuit '%s' half-open, admitting one probe", self.name)
        return self._state

    def _open_error(self) -> CircuitBreakerOpenError:
        retry_after = None
        if self._opened_at is not None:
            retry_after = max(0.0, self.recovery_timeout - (self._clock() - self._opened_at))
        return CircuitBreakerOpenError(
            circuit_name=self.name,
            failure_count=self._failure_count,
            opened_at=self._opened_at,
            retry_after=retry_after,
        )

    # ------------------------------------------------------------------ #
    # Gate + outcome recording
    # ------------------------------------------------------------------ #

    def allow(self) -> bool:
        """
        Admit or reject one call. A True result in HALF_OPEN claims the probe
        slot; the caller must report the outcome with record_success/failure.
        """
        return self.admit() is not None

    def admit(self) -> Optional[Admission]:
        """
        Like :meth:`allow`, but returns an :class:`Admission` ticket to hand
        back to record_success/record_failure/release, or None when rejected.
        """
        with self._lock:
            state = self._current_state()
            if state is CircuitState.CLOSED:
                return Admission(self._generation, probe=False)
            if state is CircuitState.HALF_OPEN and not self._probe_in_flight:
                self._probe_in_flight = True
                return Admission(self._generation, probe=True)
            self._rejected_count += 1
            return None

    def _is_stale(self, admission: Optional[Admission]) -> bool:
        # Caller holds the lock. Calls admitted before the last trip or reset
        # only update counters.
        return admission is not None and admission.generation != self._generation

    def record_success(self, admission: Optional[Admission] = None) -> None:
        with self._lock:
            self._success_count += 1
            if self._is_stale(admission):
                return
            state = self._current_state()
            if state is CircuitState.CLOSED:
                self._failure_count = 0
            elif state is CircuitState.HALF_OPEN and (admission is None or admission.probe):
                LOG.info("circuit '%s' closed after successful probe", self.name)
                self._state = CircuitState.CLOSED
                self._failure_count = 0
                self._opened_at = None
                self._probe_in_flight = False

    def record_failure(
        self,
        error: Optional[BaseException] = None,
        admission: Optional[Admission] = None,
    ) -> None:
        """Count a failure; errors outside ``monitored_kinds`` count as success."""
        if error is not None and classify(error) not in self.monitored_kinds:
            self.record_success(admission)
            return
        with self._lock:
            now = self._clock()
            self._last_failure_at = now
            if self._is_stale(admission):
                return
            state = self._current_state()
            if state is CircuitState.OPEN:
                return
            self._failure_count += 1
            if state is CircuitState.HALF_OPEN:
                self._trip_locked(now)
                LOG.warning("circuit '%s' probe failed, re-opened", self.name)
            elif self._failure_count >= self.failure_threshold:
                self._trip_locked(now)
                LOG.error(
                    "circuit '%s' opened after %d consecutive failures",
                    self.name, self._failure_count,
                )

    def release(self, admission: Admission) -> None:
        """Give back an admission whose call ended without an outcome (cancelled)."""
        with self._lock:
            if admission.probe and not self._is_stale(admission):
                self._probe_in_flight = False

    def _trip_locked(self, now: float) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = now
        self._probe_in_flight = False
        self._generation += 1

    # ------------------------------------------------------------------ #
    # Call wrapper
    # ------------------------------------------------------------------ #

    async def call(
        self,
        fn: Callable[[], Awaitable[Any]],
        *,
        fallback: Optional[Callable[[CircuitBreakerOpenError], Any]] = None,
    ) -> Any:
        """
        Run ``fn`` through the breaker.

        Raises CircuitBreakerOpenError (or returns ``fallback(error)``) without
        invoking ``fn`` when the circuit rejects the call.
        """
        admission = self.admit()
        if admission is None:
            with self._lock:
                error = self._open_error()
            if fallback is None:
                raise error
            result = fallback(error)
            if inspect.isawaitable(result):
                result = await result
            return result

        try:
            outcome = await Outcome.capture(fn)
        except BaseException:
            self.release(admission)
            raise
        if outcome.ok:
            self.record_success(admission)
        else:
            self.record_failure(outcome.error, admission)
        return outcome.unwrap()

    # ------------------------------------------------------------------ #
    # Manual control
    # ------------------------------------------------------------------ #

    def reset(self) -> None:
        """Force CLOSED and clear counters."""
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._opened_at = None
            self._last_failure_at = None
            self._probe_in_flight = False
            self._generation += 1
        LOG.info("circuit '%s' reset", self.name)

    def trip(self) -> None:
        """Force OPEN, starting a fresh recovery timeout."""
        with self._lock:
            self._trip_locked(self._clock())
        LOG.warning("circuit '%s' tripped manually", self.name)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            state = self._current_state()
            return {
                "name": self.name,
                "state": state.value,
                "failure_count": self._failure_count,
                "success_count": self._success_count,
                "rejected_count": self._rejected_count,
                "failure_threshold": self.failure_threshold,
                "recovery_timeout": self.recovery_timeout,
                "last_failure_at": self._last_failure_at,
                "opened_at": self._opened_at,
            }

    def __repr__(self) -> str:
        return f"CircuitBreaker(name={self.name!r}, state={self.state.value})"


class CircuitBreakerRegistry:
    """
    Named breakers owned by one client.

    ``get(name)`` creates a breaker with the registry defaults on first use;
    ``register`` installs one with custom settings or an existing instance.
    """

    def __init__(self, **defaults: Any) -> None:
        self._defaults = defaults
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: Any) -> "CircuitBreakerRegistry":
        return cls(
            failure_threshold=config.failure_threshold,
            recovery_timeout=config.recovery_timeout,
        )

    def get(self, name: str) -> CircuitBreaker:
        with self._lock:
            breaker = self._breakers.get(name)
            if breaker is None:
                breaker = CircuitBreaker(name, **self._defaults)
                self._breakers[name] = breaker
            return breaker

    def register(self, name: str, breaker: Optional[CircuitBreaker] = None, **options: Any) -> CircuitBreaker:
        if breaker is None:
            breaker = CircuitBreaker(name, **{**self._defaults, **options})
        with self._lock:
            self._breakers[name] = breaker
        return breaker

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._breakers

    def all(self) -> Dict[str, CircuitBreaker]:
        with self._lock:
            return dict(self._breakers)

    def stats(self) -> Dict[str, Dict[str, Any]]:
        return {name: breaker.stats() for name, breaker in self.all().items()}

    def reset_all(self) -> None:
        for breaker in self.all().values():
            breaker.reset()


__all__ = ["Admission", "CircuitState", "CircuitBreaker", "CircuitBreakerRegistry"]
