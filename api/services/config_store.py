# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
CORS configuration store.

Loads the policy from environment variables with per-field fallbacks,
validates candidates with the ``PolicySnapshot`` model, and publishes
runtime updates by swapping the whole snapshot reference. Readers never
take the lock: they read whichever snapshot is currently published.
"""

import os
import logging
import threading
from typing import Any, Callable, Dict, List, Mapping, Optional

from opentelemetry import trace
from pydantic import ValidationError

from models.enums import ConfigUpdateStatus
from models.policy import (
    FIELD_ALIASES,
    PolicySnapshot,
    UpdateResult,
    ValidationIssue,
    field_name,
)

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

DEFAULT_ALLOWED_ORIGINS = (
    "https://vipmobile.vercel.app",
    "https://port-0-vipmobile-mh7msgrz3167a0bf.sel3.cloudtype.app",
    "https://vipmobile-backend.cloudtype.app",
    "http://localhost:3000",
    "http://localhost:3001",
)

DEFAULT_ALLOWED_METHODS = ("GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH")

DEFAULT_ALLOWED_HEADERS = (
    "Content-Type",
    "Authorization",
    "X-Requested-With",
    "Accept",
    "Origin",
    "Access-Control-Request-Method",
    "Access-Control-Request-Headers",
    "X-API-Key",
    "X-User-Id",
    "X-User-Role",
    "X-User-Name",
    "X-Mode",
    "Cache-Control",
    "Pragma",
    "Expires",
)

DEFAULT_MAX_AGE = 86400  # 24 hours

DEFAULT_POLICY = PolicySnapshot(
    allowed_origins=DEFAULT_ALLOWED_ORIGINS,
    allowed_methods=DEFAULT_ALLOWED_METHODS,
    allowed_headers=DEFAULT_ALLOWED_HEADERS,
    allow_credentials=True,
    max_age=DEFAULT_MAX_AGE,
    development_mode=False,
    debug_mode=False
)

TRUTHY = {"true", "1", "yes"}
DEVELOPMENT_ENVIRONMENTS = {"development", "dev"}


def _first_set(environ: Mapping[str, str], *keys: str) -> Optional[str]:
    for key in keys:
        value = environ.get(key)
        if value is not None and value.strip():
            return value
    return None


def _split_list(raw: str) -> List[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


def parse_allowed_origins(environ: Mapping[str, str]) -> List[str]:
    """Origins from ALLOWED_ORIGINS/CORS_ORIGIN, de-duplicated ignoring case."""
    raw = _first_set(environ, "ALLOWED_ORIGINS", "CORS_ORIGIN")
    if raw is None:
        logger.info("ALLOWED_ORIGINS not set, using default origins")
        return list(DEFAULT_ALLOWED_ORIGINS)

    origins = []
    seen = set()
    for origin in _split_list(raw):
        key = origin.lower()
        if key not in seen:
            seen.add(key)
            origins.append(origin)

    logger.info("Loaded CORS origins from environment", extra={"extra_fields": {"origins": origins}})
    return origins


def parse_allow_credentials(environ: Mapping[str, str]) -> bool:
    raw = environ.get("CORS_CREDENTIALS")
    if raw is None:
        return DEFAULT_POLICY.allow_credentials
    return raw.strip().lower() in TRUTHY


def parse_allowed_methods(environ: Mapping[str, str]) -> List[str]:
    raw = _first_set(environ, "ALLOWED_METHODS", "CORS_METHODS")
    if raw is None:
        return list(DEFAULT_ALLOWED_METHODS)
    return [method.upper() for method in _split_list(raw)]


def parse_allowed_headers(environ: Mapping[str, str]) -> List[str]:
    raw = _first_set(environ, "ALLOWED_HEADERS", "CORS_HEADERS")
    if raw is None:
        return list(DEFAULT_ALLOWED_HEADERS)
    return _split_list(raw)


def parse_max_age(environ: Mapping[str, str]) -> int:
    raw = environ.get("CORS_MAX_AGE")
    if not raw:
        return DEFAULT_MAX_AGE

    try:
        max_age = int(raw.strip())
    except ValueError:
        max_age = -1

    if max_age < 0:
        logger.warning(f"Invalid CORS_MAX_AGE value {raw!r}, using default {DEFAULT_MAX_AGE}")
        return DEFAULT_MAX_AGE
    return max_age


def parse_development_mode(environ: Mapping[str, str]) -> bool:
    value = environ.get("NODE_ENV")
    return bool(value) and value.strip().lower() in DEVELOPMENT_ENVIRONMENTS


def parse_debug_mode(environ: Mapping[str, str]) -> bool:
    raw = environ.get("CORS_DEBUG") or environ.get("DEBUG")
    if not raw:
        return DEFAULT_POLICY.debug_mode
    return raw.strip().lower() in TRUTHY | {"cors"}


def _format_location(loc) -> str:
    """Render a pydantic error location as ``allowedOrigins[0]``."""
    if not loc:
        return "policy"

    head = str(loc[0])
    path = FIELD_ALIASES.get(head, head)
    for part in loc[1:]:
        path += f"[{part}]" if isinstance(part, int) else f".{part}"
    return path


def format_validation_errors(error: ValidationError) -> List[ValidationIssue]:
    """Convert a pydantic ValidationError into ValidationIssue records."""
    issues = []
    for item in error.errors():
        message = item["msg"]
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        issues.append(ValidationIssue(
            field=_format_location(item["loc"]),
            message=message,
            value=item.get("input")
        ))
    return issues


def normalize_candidate(candidate: Mapping[str, Any]) -> Dict[str, Any]:
    """Key a candidate mapping by field name, accepting camelCase aliases."""
    return {field_name(str(key)): value for key, value in candidate.items()}


class ConfigStore:
    """Holds the active CORS policy snapshot."""

    def __init__(self, environ: Optional[Mapping[str, str]] = None, diagnostics=None):
        """
        Initialize the store. Nothing is loaded until the first ``get``.

        Args:
            environ: Environment mapping; os.environ is read at load time
                when omitted
            diagnostics: Optional DiagnosticLog for CONFIG_UPDATE events
        """
        self._environ = environ
        self._diagnostics = diagnostics
        self._active: Optional[PolicySnapshot] = None
        self._lock = threading.Lock()
        self._subscribers: List[Callable[[PolicySnapshot], None]] = []

    @property
    def environ(self) -> Mapping[str, str]:
        return os.environ if self._environ is None else self._environ

    @staticmethod
    def defaults() -> PolicySnapshot:
        return DEFAULT_POLICY.model_copy(deep=True)

    def subscribe(self, callback: Callable[[PolicySnapshot], None]) -> None:
        """Register a callback invoked with the new snapshot after each successful update."""
        self._subscribers.append(callback)

    def load(self) -> PolicySnapshot:
        """
        Build a policy from the environment.

        Returns:
            The loaded policy, or the default policy if the environment
            produces an invalid one
        """
        env = self.environ
        candidate = {
            "allowed_origins": parse_allowed_origins(env),
            "allowed_methods": parse_allowed_methods(env),
            "allowed_headers": parse_allowed_headers(env),
            "allow_credentials": parse_allow_credentials(env),
            "max_age": parse_max_age(env),
            "development_mode": parse_development_mode(env),
            "debug_mode": parse_debug_mode(env),
        }

        try:
            policy = PolicySnapshot.model_validate(candidate)
        except ValidationError as e:
            logger.error(
                "CORS configuration invalid, falling back to defaults",
                extra={"extra_fields": {
                    "errors": [issue.model_dump() for issue in format_validation_errors(e)]
                }}
            )
            return self.defaults()

        logger.info("CORS configuration loaded", extra={"extra_fields": policy.summary()})
        return policy

    def _ensure_active(self) -> PolicySnapshot:
        active = self._active
        if active is None:
            with self._lock:
                if self._active is None:
                    self._active = self.load()
                active = self._active
        return active

    def get(self) -> PolicySnapshot:
        """Return an independent copy of the active policy, loading it on first use."""
        return self._ensure_active().model_copy(deep=True)

    def validate(self, candidate: Any) -> List[ValidationIssue]:
        """
        Check a candidate policy without publishing it.

        Args:
            candidate: PolicySnapshot or mapping keyed by field names or aliases

        Returns:
            Validation issues; empty if the candidate is valid
        """
        if isinstance(candidate, PolicySnapshot):
            candidate = candidate.model_dump()
        if not isinstance(candidate, Mapping):
            return [ValidationIssue(
                field="policy",
                message="Policy must be a mapping",
                value=candidate
            )]

        try:
            PolicySnapshot.model_validate(normalize_candidate(candidate))
        except ValidationError as e:
            return format_validation_errors(e)
        return []

    def update(self, partial: Mapping[str, Any]) -> UpdateResult:
        """
        Merge ``partial`` over the active policy and publish it if valid.

        Args:
            partial: Fields to override, keyed by field names or aliases

        Returns:
            Update result; the active policy is untouched on failure
        """
        with tracer.start_as_current_span("cors.config_update") as span:
            if not isinstance(partial, Mapping):
                issues = [ValidationIssue(field="policy", message="Update must be a mapping", value=partial)]
                return self._reject(self.get(), issues, {}, span)

            requested = normalize_candidate(partial)
            span.set_attribute("cors.updated_fields", sorted(FIELD_ALIASES.get(k, k) for k in requested))

            with self._lock:
                current = self._active if self._active is not None else self.load()
                self._active = current
                merged = current.model_dump()
                merged.update(requested)

                issues = self.validate(merged)
                if issues:
                    return self._reject(current.model_copy(deep=True), issues, partial, span)

                snapshot = PolicySnapshot.model_validate(merged)
                self._active = snapshot

            span.set_attribute("cors.update_result", "success")
            self._notify(snapshot)
            if self._diagnostics is not None:
                self._diagnostics.config_update(ConfigUpdateStatus.SUCCESS, {
                    "updatedFields": [FIELD_ALIASES.get(k, k) for k in requested],
                    "newConfig": snapshot.summary()
                })
            return UpdateResult(success=True, errors=[], snapshot=snapshot.model_copy(deep=True))

    def _reject(self, current: PolicySnapshot, issues: List[ValidationIssue], partial, span) -> UpdateResult:
        span.set_attribute("cors.update_result", "rejected")
        if self._diagnostics is not None:
            self._diagnostics.config_update(ConfigUpdateStatus.FAILURE, {
                "errors": [issue.model_dump() for issue in issues],
                "attemptedFields": [str(key) for key in partial] if isinstance(partial, Mapping) else []
            })
        return UpdateResult(success=False, errors=issues, snapshot=current)

    def _notify(self, snapshot: PolicySnapshot) -> None:
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception as e:
                logger.error(f"CORS configuration subscriber failed: {str(e)}", exc_info=True)

    def reset(self) -> None:
        """Forget the active policy; the next ``get`` reloads from the environment."""
        with self._lock:
            self._active = None
        logger.info("CORS configuration reset")
