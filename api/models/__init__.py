# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Models package - Pydantic schemas for the CORS request gate.
"""

# Enumerations
from .enums import (
    LogLevel,
    LogCategory,
    PreflightStage,
    PreflightFailure,
    ConfigUpdateStatus,
    CacheAction,
    RequestKind,
    GateState
)

# Policy
from .policy import (
    PolicySnapshot,
    ValidationIssue,
    UpdateResult,
    OriginDecision
)

# Core entities
from .entities import (
    LogEntry,
    CacheEntry,
    RequestContext,
    GateOutcome
)

# Response models
from .responses import (
    ErrorBody,
    ForbiddenOriginBody,
    PreflightErrorBody,
    GatewayTimeoutBody
)

__all__ = [
    # Enums
    "LogLevel",
    "LogCategory",
    "PreflightStage",
    "PreflightFailure",
    "ConfigUpdateStatus",
    "CacheAction",
    "RequestKind",
    "GateState",

    # Policy
    "PolicySnapshot",
    "ValidationIssue",
    "UpdateResult",
    "OriginDecision",

    # Entities
    "LogEntry",
    "CacheEntry",
    "RequestContext",
    "GateOutcome",

    # Responses
    "ErrorBody",
    "ForbiddenOriginBody",
    "PreflightErrorBody",
    "GatewayTimeoutBody",
]
