# vectorlink_sdk/middleware/request_id.py
# SPDX-License-Identifier: Apache-2.0

"""
Request id assignment.

Every request gets ``metadata["request_id"]`` (``"<prefix>_<16 hex chars>"``
by default) unless the caller already supplied one, which is kept so ids
propagate from upstream services. The id is copied onto the response and
attached to errors.
"""

from __future__ import annotations

import logging
import secrets
from typing import Callable, Optional

from vectorlink_sdk.core.error_context import attach_context
from vectorlink_sdk.core.operations import OperationRequest, OperationResponse
from vectorlink_sdk.middleware.base import Middleware

LOG = logging.getLogger(__name__)


class RequestIdMiddleware(Middleware):
    def __init__(
        self,
        prefix: str = "vl",
        *,
        generator: Optional[Callable[[], str]] = None,
        on_assign: Optional[Callable[[str, OperationRequest], None]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.prefix = prefix
        self._generator = generator
        self._on_assign = on_assign
        self._log = logger or LOG

    def generate(self) -> str:
        if self._generator is not None:
            return self._generator()
        return f"{self.prefix}_{secrets.token_hex(8)}"

    def before(self, request: OperationRequest) -> None:
        request_id = request.metadata.get("request_id")
        if not request_id:
            request_id = self.generate()
            request.metadata["request_id"] = request_id
        self._log.debug("[%s] %s starting (index=%s)", request_id, request.kind.value, request.index)
        if self._on_assign is not None:
            self._on_assign(request_id, request)

    def after(self, request: OperationRequest, response: OperationResponse) -> None:
        request_id = request.metadata.get("request_id")
        response.metadata["request_id"] = request_id
        self._log.debug("[%s] %s completed", request_id, request.kind.value)

    def on_error(self, request: OperationRequest, error: BaseException) -> None:
        request_id = request.metadata.get("request_id")
        attach_context(error, "request_id", request_id=request_id)
        self._log.debug("[%s] %s failed: %s", request_id, request.kind.value, type(error).__name__)


__all__ = ["RequestIdMiddleware"]
