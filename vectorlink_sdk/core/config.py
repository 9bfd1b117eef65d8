# vectorlink_sdk/core/config.py
# SPDX-License-Identifier: Apache-2.0

"""
Client configuration.

:class:`ClientConfig` is an immutable, validated bag of the knobs the
dispatch and resilience layer consumes. Loading configuration from files or
secret stores is the caller's business; two small loaders are provided for
the common cases:

    config = ClientConfig.from_env()                 # VECTORLINK_* variables
    config = ClientConfig.from_mapping(settings)     # any mapping, extra keys ignored

Invalid values raise :class:`ConfigurationError` at construction time so a
misconfigured client never gets as far as the first backend call.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from vectorlink_sdk.core.errors import ConfigurationError

LOG = logging.getLogger(__name__)

ENV_PREFIX = "VECTORLINK_"

_MODES = ("thin", "standalone")
_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class ClientConfig:
    """
    Settings for one client instance.

    Attributes:
        mode: "thin" (only explicit middleware) or "standalone" (default stack)
        timeout: Seconds one backend call may take before BackendTimeoutError
        pool_size: Connection pool capacity
        pool_timeout: Seconds to wait for a pooled connection
        max_retries: Re-attempts after the first try (0 disables retrying)
        retry_delay: Base backoff delay in seconds
        max_retry_delay: Cap on any single backoff delay
        requests_per_second: Token refill rate; None disables rate limiting
        burst_size: Bucket capacity; defaults to 2x requests_per_second
        rate_limit_blocking: Wait for tokens instead of failing fast
        rate_limit_timeout: Upper bound on a blocking acquire
        failure_threshold: Consecutive failures that open a circuit
        recovery_timeout: Seconds an open circuit waits before probing
        batch_size: Default chunk size for the batch executor
        concurrency: Default worker count for the batch executor
    """

    mode: str = "thin"
    timeout: float = 30.0
    pool_size: int = 5
    pool_timeout: float = 5.0
    max_retries: int = 3
    retry_delay: float = 1.0
    max_retry_delay: float = 30.0
    requests_per_second: Optional[float] = None
    burst_size: Optional[int] = None
    rate_limit_blocking: bool = True
    rate_limit_timeout: float = 30.0
    failure_threshold: int = 5
    recovery_timeout: float = 30.0
    batch_size: int = 100
    concurrency: int = 4

    def __post_init__(self) -> None:
        errors = []
        mode = (self.mode or "thin").strip().lower()
        if mode not in _MODES:
            errors.append(f"mode must be one of {_MODES}, got {self.mode!r}")
        else:
            object.__setattr__(self, "mode", mode)

        for name in ("pool_size", "failure_threshold", "batch_size", "concurrency"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                errors.append(f"{name} must be a positive integer")
        if isinstance(self.max_retries, bool) or not isinstance(self.max_retries, int) or self.max_retries < 0:
            errors.append("max_retries must be a non-negative integer")

        for name in ("timeout", "pool_timeout", "rate_limit_timeout", "recovery_timeout"):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or value <= 0:
                errors.append(f"{name} must be a positive number")

        for name in ("retry_delay", "max_retry_delay"):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or value < 0:
                errors.append(f"{name} must be a non-negative number")

        if self.requests_per_second is not None and (
            not isinstance(self.requests_per_second, (int, float)) or self.requests_per_second <= 0
        ):
            errors.append("requests_per_second must be positive when set")
        if self.burst_size is not None and (
            isinstance(self.burst_size, bool) or not isinstance(self.burst_size, int) or self.burst_size < 1
        ):
            errors.append("burst_size must be a positive integer when set")

        if errors:
            raise ConfigurationError(
                "invalid client configuration: " + "; ".join(errors),
                details={"errors": errors},
            )

    # ------------------------------------------------------------------ #
    # Loaders
    # ------------------------------------------------------------------ #

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "ClientConfig":
        """Build a config from a mapping; unknown keys are ignored."""
        known = {f.name for f in dataclasses.fields(cls)}
        kwargs = {k: v for k, v in mapping.items() if k in known}
        ignored = sorted(set(mapping) - known)
        if ignored:
            LOG.debug("ClientConfig.from_mapping ignoring unknown keys: %s", ignored)
        return cls(**kwargs)

    @classmethod
    def from_env(
        cls,
        prefix: str = ENV_PREFIX,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "ClientConfig":
        """
        Build a config from environment variables.

        ``VECTORLINK_POOL_SIZE=10`` sets ``pool_size``; values are coerced to
        the field's type. Unset variables keep their defaults.
        """
        env = os.environ if environ is None else environ
        kwargs: Dict[str, Any] = {}
        for f in dataclasses.fields(cls):
            raw = env.get(prefix + f.name.upper())
            if raw is None or raw == "":
                continue
            kwargs[f.name] = _coerce(f.name, raw, f.default)
        return cls(**kwargs)

    def with_overrides(self, **changes: Any) -> "ClientConfig":
        return dataclasses.replace(self, **changes)

    def asdict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)

    @property
    def effective_burst_size(self) -> Optional[int]:
        if self.requests_per_second is None:
            return None
        if self.burst_size is not None:
            return self.burst_size
        return max(1, int(self.requests_per_second * 2))


def _coerce(name: str, raw: str, default: Any) -> Any:
    text = raw.strip()
    try:
        if isinstance(default, bool):
            lowered = text.lower()
            if lowered in _TRUE:
                return True
            if lowered in _FALSE:
                return False
            raise ValueError(text)
        if isinstance(default, int):
            return int(text)
        if isinstance(default, float):
            return float(text)
        if name == "burst_size":
            return int(text)
        if name == "requests_per_second":
            return float(text)
    except ValueError:
        raise ConfigurationError(
            f"environment value for {name} is not valid: {raw!r}",
            details={"field": name},
        ) from None
    return text


__all__ = ["ClientConfig", "ENV_PREFIX"]
