# vectorlink_sdk/middleware/__init__.py
# SPDX-License-Identifier: Apache-2.0

"""
Middleware pipeline - public API.

Units are plain objects with ``before``/``after``/``on_error`` hooks (or a
custom ``call``), composed in order by :class:`MiddlewareStack`.
"""

from vectorlink_sdk.middleware.base import Middleware, NextCall
from vectorlink_sdk.middleware.cache import CacheMiddleware, InMemoryTTLCache
from vectorlink_sdk.middleware.cost_tracker import DEFAULT_PRICING, CostTrackerMiddleware
from vectorlink_sdk.middleware.dry_run import DryRunMiddleware
from vectorlink_sdk.middleware.instrumentation import InstrumentationMiddleware
from vectorlink_sdk.middleware.pii_redaction import PIIRedactionMiddleware
from vectorlink_sdk.middleware.request_id import RequestIdMiddleware
from vectorlink_sdk.middleware.request_logging import LoggingMiddleware
from vectorlink_sdk.middleware.resilience import (
    CircuitBreakerMiddleware,
    RateLimitMiddleware,
    RetryMiddleware,
)
from vectorlink_sdk.middleware.stack import MiddlewareStack, PipelineBuilder

__all__ = [
    "Middleware",
    "NextCall",
    "MiddlewareStack",
    "PipelineBuilder",
    "RequestIdMiddleware",
    "LoggingMiddleware",
    "InstrumentationMiddleware",
    "DryRunMiddleware",
    "CacheMiddleware",
    "InMemoryTTLCache",
    "PIIRedactionMiddleware",
    "CostTrackerMiddleware",
    "DEFAULT_PRICING",
    "RetryMiddleware",
    "CircuitBreakerMiddleware",
    "RateLimitMiddleware",
]
