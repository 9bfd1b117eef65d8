# vectorlink_sdk/middleware/request_logging.py
# SPDX-License-Identifier: Apache-2.0

"""Operation logging with per-call timing."""

from __future__ import annotations

import logging
import time
from typing import Optional

from vectorlink_sdk.core.errors import classify
from vectorlink_sdk.core.operations import OperationRequest, OperationResponse
from vectorlink_sdk.middleware.base import Middleware

LOG = logging.getLogger(__name__)

_STARTED_KEY = "_logging_started_at"


class LoggingMiddleware(Middleware):
    """
    Logs start, completion and failure of every operation.

    The start time is kept in the request's metadata, never on the unit, so
    one instance can serve concurrent calls. ``duration_ms`` is added to the
    response metadata.
    """

    def __init__(self, logger: Optional[logging.Logger] = None, level: int = logging.INFO) -> None:
        self._log = logger or LOG
        self.level = level

    def before(self, request: OperationRequest) -> None:
        request.metadata[_STARTED_KEY] = time.monotonic()
        self._log.log(
            self.level,
            "vector.%s starting index=%s backend=%s request_id=%s",
            request.kind.value, request.index, request.backend, request.metadata.get("request_id"),
        )

    def after(self, request: OperationRequest, response: OperationResponse) -> None:
        duration_ms = self._elapsed_ms(request)
        response.metadata.setdefault("duration_ms", duration_ms)
        self._log.log(
            self.level,
            "vector.%s completed in %.1fms index=%s request_id=%s",
            request.kind.value, duration_ms, request.index, request.metadata.get("request_id"),
        )

    def on_error(self, request: OperationRequest, error: BaseException) -> None:
        self._log.error(
            "vector.%s failed after %.1fms: %s [%s] index=%s request_id=%s",
            request.kind.value,
            self._elapsed_ms(request),
            type(error).__name__,
            classify(error).value,
            request.index,
            request.metadata.get("request_id"),
        )

    @staticmethod
    def _elapsed_ms(request: OperationRequest) -> float:
        started = request.metadata.pop(_STARTED_KEY, None)
        if started is None:
            return 0.0
        return round((time.monotonic() - started) * 1000.0, 3)


__all__ = ["LoggingMiddleware"]
