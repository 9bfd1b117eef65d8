# vectorlink_sdk/__init__.py
# SPDX-License-Identifier: Apache-2.0

"""
vectorlink - backend-agnostic vector data-access client.

Public API re-exported for clean imports:

    from vectorlink_sdk import VectorClient, InMemoryBackendAdapter, ClientConfig
"""

from vectorlink_sdk.batch import BatchExecutor, BatchProgress, BatchResult, ItemError
from vectorlink_sdk.client import SyncVectorClient, VectorClient
from vectorlink_sdk.core.config import ClientConfig
from vectorlink_sdk.core.errors import (
    AuthenticationError,
    BackendConnectionError,
    BackendTimeoutError,
    BatchCancelledError,
    CircuitBreakerOpenError,
    ConfigurationError,
    ErrorKind,
    NotFoundError,
    PoolTimeoutError,
    RateLimitError,
    ServerError,
    UnsupportedOperationError,
    ValidationError,
    VectorClientError,
)
from vectorlink_sdk.core.metrics import MetricsSink, NoopMetrics
from vectorlink_sdk.core.operations import OperationKind, OperationRequest, OperationResponse
from vectorlink_sdk.middleware import (
    CacheMiddleware,
    CircuitBreakerMiddleware,
    CostTrackerMiddleware,
    DryRunMiddleware,
    InMemoryTTLCache,
    InstrumentationMiddleware,
    LoggingMiddleware,
    Middleware,
    MiddlewareStack,
    PIIRedactionMiddleware,
    PipelineBuilder,
    RateLimitMiddleware,
    RequestIdMiddleware,
    RetryMiddleware,
)
from vectorlink_sdk.resilience import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitState,
    ConnectionPool,
    RateLimiterRegistry,
    RetryPolicy,
    TokenBucketLimiter,
    retry_async,
)
from vectorlink_sdk.streaming import fetch_stream, query_stream
from vectorlink_sdk.vector import (
    BackendAdapter,
    BaseBackendAdapter,
    InMemoryBackendAdapter,
    Match,
    QueryResult,
    Vector,
)
from vectorlink_sdk.wire import WireVectorHandler

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # client
    "VectorClient",
    "SyncVectorClient",
    "ClientConfig",
    "WireVectorHandler",
    # batch
    "BatchExecutor",
    "BatchResult",
    "BatchProgress",
    "ItemError",
    # envelope
    "OperationKind",
    "OperationRequest",
    "OperationResponse",
    # errors
    "ErrorKind",
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
    # metrics
    "MetricsSink",
    "NoopMetrics",
    # middleware
    "Middleware",
    "MiddlewareStack",
    "PipelineBuilder",
    "RequestIdMiddleware",
    "LoggingMiddleware",
    "InstrumentationMiddleware",
    "DryRunMiddleware",
    "PIIRedactionMiddleware",
    "CostTrackerMiddleware",
    "CacheMiddleware",
    "InMemoryTTLCache",
    "RetryMiddleware",
    "CircuitBreakerMiddleware",
    "RateLimitMiddleware",
    # streaming
    "query_stream",
    "fetch_stream",
    # resilience
    "RetryPolicy",
    "retry_async",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitState",
    "TokenBucketLimiter",
    "RateLimiterRegistry",
    "ConnectionPool",
    # vector
    "Vector",
    "Match",
    "QueryResult",
    "BackendAdapter",
    "BaseBackendAdapter",
    "InMemoryBackendAdapter",
]
