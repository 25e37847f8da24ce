# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
CORS policy models.

A ``PolicySnapshot`` is immutable once built: list fields are stored as
tuples and the model is frozen, so a published snapshot can be shared by
concurrent requests without copying. Field names are snake_case with the
camelCase aliases used in configuration payloads and validation reports.
"""

from typing import Annotated, Any, Dict, List, Optional, Tuple
from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictInt,
    StrictStr,
    field_validator,
)


def _check_origin(origin: str) -> str:
    if not origin.strip():
        raise ValueError("Origin must be a non-empty string")
    if not (origin.startswith("http://") or origin.startswith("https://")):
        raise ValueError("Origin must start with http:// or https://")
    return origin


OriginStr = Annotated[StrictStr, AfterValidator(_check_origin)]


class PolicySnapshot(BaseModel):
    """One validated CORS policy."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        extra="forbid",
    )

    allowed_origins: Tuple[OriginStr, ...] = Field(
        ..., alias="allowedOrigins", description="Exact origins (scheme+host+port)"
    )
    allowed_methods: Tuple[StrictStr, ...] = Field(
        ..., alias="allowedMethods", description="HTTP methods allowed cross-origin"
    )
    allowed_headers: Tuple[StrictStr, ...] = Field(
        ..., alias="allowedHeaders", description="Request headers allowed cross-origin"
    )
    allow_credentials: StrictBool = Field(..., alias="allowCredentials")
    max_age: StrictInt = Field(
        ..., alias="maxAge", ge=0, description="Preflight cache lifetime in seconds"
    )
    development_mode: StrictBool = Field(..., alias="developmentMode")
    debug_mode: StrictBool = Field(..., alias="debugMode")

    @field_validator("allowed_origins")
    @classmethod
    def validate_origins_not_empty(cls, v):
        if not v:
            raise ValueError("allowedOrigins cannot be empty")
        return v

    @field_validator("allowed_methods")
    @classmethod
    def validate_methods_not_empty(cls, v):
        if not v:
            raise ValueError("allowedMethods cannot be empty")
        return v

    @field_validator("allowed_headers")
    @classmethod
    def validate_headers_not_empty(cls, v):
        if not v:
            raise ValueError("allowedHeaders cannot be empty")
        return v

    def to_public_dict(self) -> Dict[str, Any]:
        """Serialize with camelCase keys and JSON-friendly lists."""
        return self.model_dump(by_alias=True, mode="json")

    def summary(self) -> Dict[str, Any]:
        """Counts and flags suitable for log records."""
        return {
            "originsCount": len(self.allowed_origins),
            "methodsCount": len(self.allowed_methods),
            "headersCount": len(self.allowed_headers),
            "allowCredentials": self.allow_credentials,
            "maxAge": self.max_age,
            "developmentMode": self.development_mode,
            "debugMode": self.debug_mode,
        }


FIELD_ALIASES: Dict[str, str] = {
    name: info.alias or name for name, info in PolicySnapshot.model_fields.items()
}
ALIAS_FIELDS: Dict[str, str] = {alias: name for name, alias in FIELD_ALIASES.items()}


def field_name(key: str) -> str:
    """Map a camelCase alias or a field name to the field name."""
    return ALIAS_FIELDS.get(key, key)


class ValidationIssue(BaseModel):
    """A single reason a candidate policy was rejected."""

    field: str = Field(..., description="camelCase field path, e.g. allowedOrigins[0]")
    message: str
    value: Any = None


class UpdateResult(BaseModel):
    """Outcome of ConfigStore.update."""

    success: bool
    errors: List[ValidationIssue] = Field(default_factory=list)
    snapshot: PolicySnapshot


class OriginDecision(BaseModel):
    """Outcome of an origin check."""

    model_config = ConfigDict(frozen=True)

    allowed: bool
    matched_origin: Optional[str] = None
    reason: str
