# vectorlink_sdk/middleware/pii_redaction.py
# SPDX-License-Identifier: Apache-2.0

"""
Redact personal data from vector metadata before it is written.

String values in the metadata of upserted vectors (and of update calls) are
scanned; every match of a configured pattern is replaced with
``[REDACTED_<TYPE>]``. Vectors are rebuilt rather than mutated, since
:class:`Vector` is frozen and caller-owned dicts must stay untouched.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Mapping, Optional, Pattern

from vectorlink_sdk.core.operations import OperationKind, OperationRequest
from vectorlink_sdk.middleware.base import Middleware
from vectorlink_sdk.vector.types import Vector

LOG = logging.getLogger(__name__)

DEFAULT_PATTERNS: Dict[str, Pattern[str]] = {
    "email": re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
    "credit_card": re.compile(r"\b(?:\d{4}[- ]?){3}\d{4}\b"),
    "ssn": re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),
    "phone": re.compile(r"(?<!\w)(?:\+?1[-. ]?)?\(?\d{3}\)?[-. ]?\d{3}[-. ]?\d{4}\b"),
}


class PIIRedactionMiddleware(Middleware):
    def __init__(self, patterns: Optional[Mapping[str, Pattern[str]]] = None) -> None:
        # Order matters: longer numeric patterns (cards, SSNs) run before phone numbers.
        self.patterns: Dict[str, Pattern[str]] = dict(patterns or DEFAULT_PATTERNS)

    def redact_text(self, text: str) -> str:
        for name, pattern in self.patterns.items():
            text = pattern.sub(f"[REDACTED_{name.upper()}]", text)
        return text

    def redact_metadata(self, metadata: Mapping[str, Any]) -> Dict[str, Any]:
        return {k: self._redact_value(v) for k, v in metadata.items()}

    def _redact_value(self, value: Any) -> Any:
        if isinstance(value, str):
            return self.redact_text(value)
        if isinstance(value, Mapping):
            return self.redact_metadata(value)
        if isinstance(value, list):
            return [self._redact_value(v) for v in value]
        return value

    def before(self, request: OperationRequest) -> None:
        payload = request.payload
        if request.kind is OperationKind.UPSERT and payload.get("vectors"):
            payload["vectors"] = [self._redact_vector(v) for v in payload["vectors"]]
        elif request.kind is OperationKind.UPDATE and payload.get("metadata"):
            payload["metadata"] = self.redact_metadata(payload["metadata"])

    def _redact_vector(self, vector: Any) -> Any:
        if isinstance(vector, Vector):
            if not vector.metadata:
                return vector
            return Vector(vector.id, vector.values, self.redact_metadata(vector.metadata))
        if isinstance(vector, Mapping) and vector.get("metadata"):
            redacted = dict(vector)
            redacted["metadata"] = self.redact_metadata(vector["metadata"])
            return redacted
        return vector


__all__ = ["PIIRedactionMiddleware", "DEFAULT_PATTERNS"]
