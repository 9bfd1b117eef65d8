# vectorlink_sdk/vector/__init__.py
# SPDX-License-Identifier: Apache-2.0

"""
Vector types and backend adapters - public API.
"""

from vectorlink_sdk.vector.adapter_base import SUPPORTED_METRICS, BackendAdapter, BaseBackendAdapter
from vectorlink_sdk.vector.memory_adapter import InMemoryBackendAdapter, filter_matches
from vectorlink_sdk.vector.types import Match, QueryResult, Vector

__all__ = [
    "Vector",
    "Match",
    "QueryResult",
    "BackendAdapter",
    "BaseBackendAdapter",
    "InMemoryBackendAdapter",
    "SUPPORTED_METRICS",
    "filter_matches",
]
