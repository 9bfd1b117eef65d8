# SPDX-License-Identifier: Apache-2.0
"""
Shared fixtures for the vectorlink test suite.

The default backend is the scripted in-memory adapter from tests/mock. Set
VECTORLINK_TEST_LATENCY (seconds) to add per-call latency, which makes the
concurrency tests more aggressive.
"""

from __future__ import annotations

import os

import pytest

from tests.mock.mock_backend_adapter import CollectingMetrics, FakeClock, ScriptedAdapter
from vectorlink_sdk.client import VectorClient
from vectorlink_sdk.vector.memory_adapter import InMemoryBackendAdapter

LATENCY_ENV = "VECTORLINK_TEST_LATENCY"


def _latency() -> float:
    try:
        return float(os.getenv(LATENCY_ENV, "0") or 0)
    except ValueError:
        return 0.0


@pytest.fixture
def adapter() -> ScriptedAdapter:
    """Fresh scripted backend per test."""
    return ScriptedAdapter(latency=_latency())


@pytest.fixture
def memory_adapter() -> InMemoryBackendAdapter:
    return InMemoryBackendAdapter()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def metrics() -> CollectingMetrics:
    return CollectingMetrics()


@pytest.fixture
def client(adapter: ScriptedAdapter) -> VectorClient:
    """Thin client: no implicit middleware."""
    return VectorClient(adapter)
