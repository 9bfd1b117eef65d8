# SPDX-License-Identifier: Apache-2.0
"""
Wire handler: canonical envelopes validated against JSON Schema.
"""

import json

import pytest
from jsonschema import Draft202012Validator

from tests.mock.mock_backend_adapter import make_vectors
from vectorlink_sdk.client import VectorClient
from vectorlink_sdk.core.config import ClientConfig
from vectorlink_sdk.core.errors import BackendConnectionError, RateLimitError
from vectorlink_sdk.middleware.dry_run import DryRunMiddleware
from vectorlink_sdk.wire import WireVectorHandler, error_to_wire

pytestmark = pytest.mark.asyncio

SUCCESS_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["ok", "code", "ms", "result", "meta"],
    "properties": {
        "ok": {"const": True},
        "code": {"const": "OK"},
        "ms": {"type": "number", "minimum": 0},
        "meta": {"type": "object", "propertyNames": {"not": {"pattern": "^_"}}},
    },
}

ERROR_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["ok", "code", "error", "message", "retry_after_ms", "details", "ms"],
    "properties": {
        "ok": {"const": False},
        "code": {"type": "string", "pattern": "^[A-Z_]+$"},
        "error": {"type": "string"},
        "message": {"type": "string"},
        "retry_after_ms": {"type": ["integer", "null"], "minimum": 0},
        "details": {"type": ["object", "null"]},
        "ms": {"type": "number", "minimum": 0},
    },
}


def assert_success(envelope):
    Draft202012Validator(SUCCESS_SCHEMA).validate(envelope)
    json.dumps(envelope)


def assert_error(envelope, code):
    Draft202012Validator(ERROR_SCHEMA).validate(envelope)
    json.dumps(envelope)
    assert envelope["code"] == code


async def test_wire_upsert_and_query(client):
    handler = WireVectorHandler(client)
    up = await handler.handle(
        {"op": "vector.upsert", "ctx": {"request_id": "wire-1"}, "args": {"index": "docs", "vectors": make_vectors(3)}}
    )
    assert_success(up)
    assert up["result"] == {"upserted_count": 3}

    q = await handler.handle(
        {"op": "vector.query", "args": {"index": "docs", "vector": [1.0, 0.5, 0.5], "top_k": 2}}
    )
    assert_success(q)
    assert len(q["result"]["matches"]) == 2
    assert {"id", "score", "metadata"} <= set(q["result"]["matches"][0])


async def test_wire_fetch_serializes_vectors(client):
    handler = WireVectorHandler(client)
    await client.upsert("docs", make_vectors(2))
    res = await handler.handle({"op": "vector.fetch", "args": {"index": "docs", "ids": ["v0"]}})
    assert_success(res)
    assert res["result"]["v0"]["values"] == [1.0, 0.5, 0.5]


async def test_wire_propagates_request_id_in_standalone_mode(adapter, metrics):
    client = VectorClient(adapter, config=ClientConfig(mode="standalone"), metrics=metrics)
    res = await WireVectorHandler(client).handle(
        {"op": "vector.list_indexes", "ctx": {"request_id": "upstream-7"}, "args": {}}
    )
    assert_success(res)
    assert res["meta"]["request_id"] == "upstream-7"
    assert "_logging_started_at" not in res["meta"]


async def test_wire_dry_run_meta(adapter):
    client = VectorClient(adapter, middleware=[DryRunMiddleware()])
    res = await WireVectorHandler(client).handle(
        {"op": "vector.delete", "args": {"index": "docs", "ids": ["a", "b"]}}
    )
    assert_success(res)
    assert res["meta"]["dry_run"] is True
    assert res["meta"]["plan"]["id_count"] == 2


async def test_wire_ping_and_health(client):
    handler = WireVectorHandler(client)
    ping = await handler.handle({"op": "vector.ping"})
    assert_success(ping)
    assert ping["result"]["healthy"] is True
    health = await handler.handle({"op": "vector.health"})
    assert_success(health)
    assert health["result"]["backend"] == "scripted"


async def test_wire_unknown_op(client):
    res = await WireVectorHandler(client).handle({"op": "vector.reindex", "args": {}})
    assert_error(res, "NOT_SUPPORTED")


async def test_wire_missing_op(client):
    res = await WireVectorHandler(client).handle({"args": {}})
    assert_error(res, "VALIDATION_ERROR")


async def test_wire_unexpected_argument_is_validation_error(client):
    res = await WireVectorHandler(client).handle(
        {"op": "vector.query", "args": {"index": "docs", "vector": [1.0], "k": 5}}
    )
    assert_error(res, "VALIDATION_ERROR")


async def test_wire_missing_required_argument_is_validation_error(client):
    res = await WireVectorHandler(client).handle({"op": "vector.query", "args": {"index": "docs"}})
    assert_error(res, "VALIDATION_ERROR")
    assert res["details"]["operation"] == "query"


async def test_wire_type_error_inside_backend_is_not_validation(client, adapter, caplog):
    await adapter.upsert("docs", make_vectors(2))
    adapter.fail_next("query", TypeError("unsupported operand"))
    res = await WireVectorHandler(client).handle(
        {"op": "vector.query", "args": {"index": "docs", "vector": [1.0, 0.5, 0.5]}}
    )
    assert_error(res, "UNAVAILABLE")
    assert res["error"] == "TypeError"
    assert "unexpected error handling vector.query" in caplog.text


async def test_wire_backend_error_envelope(client, adapter):
    adapter.fail_next("describe_index", BackendConnectionError("refused"))
    res = await WireVectorHandler(client).handle({"op": "vector.describe_index", "args": {"index": "docs"}})
    assert_error(res, "CONNECTION_ERROR")
    assert res["error"] == "BackendConnectionError"


async def test_wire_validation_from_adapter(client):
    res = await WireVectorHandler(client).handle({"op": "vector.delete", "args": {"index": "docs"}})
    assert_error(res, "VALIDATION_ERROR")


async def test_error_to_wire_carries_retry_after():
    env = error_to_wire(RateLimitError("slow down", retry_after=0.25), 1.0)
    assert_error(env, "RATE_LIMITED")
    assert env["retry_after_ms"] == 250


async def test_error_to_wire_for_foreign_exceptions():
    env = error_to_wire(RuntimeError("boom"), 0.5)
    assert_error(env, "UNAVAILABLE")
    assert env["details"] is None
