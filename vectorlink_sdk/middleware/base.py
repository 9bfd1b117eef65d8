# vectorlink_sdk/middleware/base.py
# SPDX-License-Identifier: Apache-2.0

"""
Middleware unit interface.

A unit is an object with three optional hooks and one async ``call``:

    before(request)               runs on the way in
    after(request, response)      runs on the way out, after a success
    on_error(request, error)      runs on the way out, after a failure

The default ``call`` runs ``before``, awaits the rest of the chain, then runs
``after``. If anything inward raises, ``on_error`` runs exactly once and the
error is re-raised unchanged. Units that need to suspend, re-invoke or skip the
rest of the chain (retry, dry-run, rate limiting) override ``call``.
"""

from __future__ import annotations

from typing import Awaitable, Callable

from vectorlink_sdk.core.operations import OperationRequest, OperationResponse

#: The rest of the chain as seen by one unit.
NextCall = Callable[[OperationRequest], Awaitable[OperationResponse]]


class Middleware:
    """Base class for pipeline units; subclasses override the hooks they need."""

    def before(self, request: OperationRequest) -> None:
        return None

    def after(self, request: OperationRequest, response: OperationResponse) -> None:
        return None

    def on_error(self, request: OperationRequest, error: BaseException) -> None:
        return None

    async def call(self, request: OperationRequest, call_next: NextCall) -> OperationResponse:
        self.before(request)
        try:
            response = await call_next(request)
        except Exception as exc:
            self.on_error(request, exc)
            raise
        self.after(request, response)
        return response

    @property
    def name(self) -> str:
        return type(self).__name__

    def __repr__(self) -> str:
        return f"<{self.name}>"


__all__ = ["Middleware", "NextCall"]
