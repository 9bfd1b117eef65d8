# SPDX-License-Identifier: Apache-2.0
"""
vectorlink test suite.

Covers the middleware pipeline, the resilience primitives (retry, circuit
breaker, rate limiter, connection pool), the batch executor, the reference
backend and the client/wire surfaces.
"""
