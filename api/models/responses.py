# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Response bodies emitted by the request gate and the timeout guard.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class ErrorBody(BaseModel):
    """Base JSON error body; optional fields are omitted when unset."""

    model_config = ConfigDict(populate_by_name=True)

    error: str
    message: str

    def to_body(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ForbiddenOriginBody(ErrorBody):
    """403 body for a disallowed origin."""

    error: str = "Forbidden"
    message: str = "Origin not allowed"
    origin: Optional[str] = None
    reason: Optional[str] = None


class PreflightErrorBody(ErrorBody):
    """400 body for a preflight asking for a method or headers outside the policy."""

    error: str = "Invalid preflight request"
    allowed_methods: Optional[List[str]] = Field(None, alias="allowedMethods")
    requested_headers: Optional[str] = Field(None, alias="requestedHeaders")


class GatewayTimeoutBody(ErrorBody):
    """504 body for a request that outlived its deadline."""

    error: str = "Gateway Timeout"
    elapsed_time: int = Field(..., alias="elapsedTime", description="Milliseconds")
