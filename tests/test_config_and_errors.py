# SPDX-License-Identifier: Apache-2.0
"""
Client configuration loaders and the error taxonomy.
"""

import asyncio

import pytest

from vectorlink_sdk.core.config import ClientConfig
from vectorlink_sdk.core.errors import (
    BREAKER_MONITORED_KINDS,
    RETRYABLE_KINDS,
    BackendConnectionError,
    CircuitBreakerOpenError,
    ConfigurationError,
    ErrorKind,
    NotFoundError,
    RateLimitError,
    ServerError,
    UnsupportedOperationError,
    ValidationError,
    VectorClientError,
    classify,
    error_code,
    retry_after_of,
)
from vectorlink_sdk.core.operations import OperationKind, OperationRequest


# --------------------------------------------------------------------------- #
# ClientConfig
# --------------------------------------------------------------------------- #

def test_config_defaults():
    config = ClientConfig()
    assert config.mode == "thin"
    assert config.max_retries == 3
    assert config.requests_per_second is None
    assert config.effective_burst_size is None
    assert config.batch_size == 100
    assert config.concurrency == 4


def test_config_collects_every_validation_error():
    with pytest.raises(ConfigurationError) as exc_info:
        ClientConfig(mode="fat", pool_size=0, max_retries=-1, timeout=0, requests_per_second=-5)
    errors = exc_info.value.details["errors"]
    assert len(errors) == 5
    assert exc_info.value.code == "CONFIGURATION_ERROR"


def test_config_zero_retries_is_valid():
    assert ClientConfig(max_retries=0).max_retries == 0


def test_config_mode_is_normalized():
    assert ClientConfig(mode=" Standalone ").mode == "standalone"


def test_config_burst_defaults_to_twice_rate():
    assert ClientConfig(requests_per_second=25).effective_burst_size == 50
    assert ClientConfig(requests_per_second=0.2).effective_burst_size == 1
    assert ClientConfig(requests_per_second=25, burst_size=3).effective_burst_size == 3


def test_config_from_mapping_ignores_unknown_keys():
    config = ClientConfig.from_mapping({"pool_size": 9, "api_key": "secret", "mode": "standalone"})
    assert config.pool_size == 9
    assert config.mode == "standalone"


def test_config_from_env_coerces_types():
    environ = {
        "VECTORLINK_MODE": "standalone",
        "VECTORLINK_POOL_SIZE": "12",
        "VECTORLINK_TIMEOUT": "2.5",
        "VECTORLINK_REQUESTS_PER_SECOND": "40",
        "VECTORLINK_BURST_SIZE": "8",
        "VECTORLINK_RATE_LIMIT_BLOCKING": "off",
        "VECTORLINK_MAX_RETRIES": "",
        "UNRELATED": "1",
    }
    config = ClientConfig.from_env(environ=environ)
    assert config.mode == "standalone"
    assert config.pool_size == 12
    assert config.timeout == 2.5
    assert config.requests_per_second == 40.0
    assert config.burst_size == 8
    assert config.rate_limit_blocking is False
    assert config.max_retries == 3


def test_config_from_env_custom_prefix_and_bad_value():
    assert ClientConfig.from_env("APP_", environ={"APP_CONCURRENCY": "16"}).concurrency == 16
    with pytest.raises(ConfigurationError) as exc_info:
        ClientConfig.from_env(environ={"VECTORLINK_POOL_SIZE": "many"})
    assert exc_info.value.details["field"] == "pool_size"


def test_config_overrides_are_validated():
    config = ClientConfig()
    assert config.with_overrides(pool_size=2).pool_size == 2
    assert config.pool_size == 5
    with pytest.raises(ConfigurationError):
        config.with_overrides(batch_size=0)
    assert config.asdict()["recovery_timeout"] == 30.0


# --------------------------------------------------------------------------- #
# Errors
# --------------------------------------------------------------------------- #

def test_error_kinds_and_codes():
    assert classify(BackendConnectionError("x")) is ErrorKind.CONNECTION
    assert classify(asyncio.TimeoutError()) is ErrorKind.TIMEOUT
    assert classify(ConnectionRefusedError()) is ErrorKind.CONNECTION
    assert classify(KeyError("x")) is ErrorKind.UNKNOWN
    assert error_code(NotFoundError("x")) == "NOT_FOUND"
    assert error_code(KeyError("x")) == "UNAVAILABLE"
    assert error_code(TimeoutError()) == "TIMEOUT"


def test_retryable_and_monitored_sets():
    assert ErrorKind.RATE_LIMIT in RETRYABLE_KINDS
    assert ErrorKind.VALIDATION not in RETRYABLE_KINDS
    assert ErrorKind.CIRCUIT_OPEN not in RETRYABLE_KINDS
    assert BREAKER_MONITORED_KINDS == {ErrorKind.CONNECTION, ErrorKind.TIMEOUT, ErrorKind.SERVER}


def test_error_asdict_and_retry_after():
    err = RateLimitError("slow", retry_after=1.5, details={"b": 2, "a": 1})
    assert err.asdict() == {
        "message": "slow",
        "code": "RATE_LIMITED",
        "kind": "rate_limit",
        "retry_after_ms": 1500,
        "details": {"a": 1, "b": 2},
    }
    assert retry_after_of(err) == 1.5
    assert retry_after_of(ValueError()) is None


def test_error_specializations():
    v = ValidationError("bad", errors=["dimension mismatch"])
    assert v.details["errors"] == ["dimension mismatch"]
    s = ServerError("oops", status_code=502)
    assert s.details["status_code"] == 502
    c = CircuitBreakerOpenError(circuit_name="memory:docs", failure_count=5)
    assert "memory:docs" in str(c)
    custom = VectorClientError("x", code="CUSTOM")
    assert custom.code == "CUSTOM"
    assert custom.kind is ErrorKind.UNKNOWN


# --------------------------------------------------------------------------- #
# Operations
# --------------------------------------------------------------------------- #

def test_operation_kind_classification():
    assert OperationKind.UPSERT.is_mutating
    assert OperationKind.DELETE_INDEX.is_mutating
    assert OperationKind.QUERY.is_read
    assert not OperationKind.LIST_INDEXES.targets_index
    assert OperationKind.parse("stats") is OperationKind.STATS
    with pytest.raises(UnsupportedOperationError):
        OperationKind.parse("truncate")


def test_request_adapter_kwargs():
    request = OperationRequest(kind=OperationKind.FETCH, index="docs", payload={"ids": ["a"], "namespace": "n"})
    assert request.adapter_kwargs() == {"ids": ["a"], "namespace": "n", "index": "docs"}
    assert request.namespace == "n"
    listing = OperationRequest(kind=OperationKind.LIST_INDEXES)
    assert listing.adapter_kwargs() == {}
