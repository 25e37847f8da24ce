# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Transient entities used while gating a request.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field

from .enums import GateState, LogCategory, LogLevel, RequestKind


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LogEntry(BaseModel):
    """Structured diagnostic record."""

    model_config = ConfigDict(use_enum_values=False)

    timestamp: datetime = Field(default_factory=utc_now)
    level: LogLevel
    category: LogCategory
    message: str
    fields: Dict[str, Any] = Field(default_factory=dict)

    def as_record(self) -> Dict[str, Any]:
        """Flatten into a single mapping for structured log sinks."""
        record = {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.value,
            "category": self.category.value,
            "message": self.message,
        }
        record.update(self.fields)
        return record


class CacheEntry(BaseModel):
    """Memoized origin decision; decision is None for a cached no-match."""

    model_config = ConfigDict(frozen=True)

    key: str
    decision: Optional[str] = None
    inserted_at: float


class RequestContext(BaseModel):
    """Per-request view of the headers the gate cares about."""

    model_config = ConfigDict(frozen=True)

    method: str
    path: str
    url: str
    origin: Optional[str] = None
    requested_method: Optional[str] = None
    requested_headers: Optional[str] = None

    @property
    def is_preflight(self) -> bool:
        return self.method.upper() == "OPTIONS"

    @classmethod
    def from_request(cls, request) -> "RequestContext":
        """
        Build a context from any object implementing the GateRequest protocol.

        Args:
            request: Host request adapter

        Returns:
            Request context
        """
        return cls(
            method=request.method,
            path=request.path,
            url=request.url,
            origin=request.header("Origin") or None,
            requested_method=request.header("Access-Control-Request-Method") or None,
            requested_headers=request.header("Access-Control-Request-Headers") or None,
        )

    def log_fields(self) -> Dict[str, Any]:
        return {"path": self.path, "method": self.method, "origin": self.origin}


class GateOutcome(BaseModel):
    """What the request gate decided for one request."""

    model_config = ConfigDict(frozen=True)

    kind: Optional[RequestKind] = None
    state: GateState
    status: Optional[int] = None
    proceed: bool
    reason: str = ""
    recovered: bool = False
