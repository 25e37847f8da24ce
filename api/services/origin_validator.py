# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Origin, method and header checks against a policy snapshot.
"""

import threading
from typing import List, Optional, Tuple

from models.policy import OriginDecision, PolicySnapshot
from services.origin_cache import MISSING, OriginCache

REASON_NO_ORIGIN = "no origin header"
REASON_MATCHED = "origin matched allowed list"
REASON_DEVELOPMENT = "development mode bypass"
REASON_NOT_ALLOWED = "origin not in allowed list"


def parse_header_list(raw: Optional[str]) -> List[str]:
    """Split a comma-separated header list into trimmed, lower-cased names."""
    if not raw:
        return []
    return [name.strip().lower() for name in raw.split(",") if name.strip()]


class OriginValidator:
    """Case-insensitive origin matching backed by an OriginCache."""

    def __init__(self, cache: Optional[OriginCache] = None):
        self.cache = cache if cache is not None else OriginCache()
        self._lock = threading.Lock()
        self._cached_for: Optional[Tuple[str, ...]] = None

    def match(self, origin: str, policy: PolicySnapshot) -> Optional[str]:
        """
        Find the first allowed origin equal to ``origin`` ignoring case.

        Args:
            origin: Request origin
            policy: Policy to match against

        Returns:
            The policy's own spelling of the matched origin, or None
        """
        key = origin.lower()
        with self._lock:
            # Cached decisions are only valid for the origin list they were computed from.
            if self._cached_for != policy.allowed_origins:
                if self._cached_for is not None:
                    self.cache.clear()
                self._cached_for = policy.allowed_origins

            cached = self.cache.lookup(key)
            if cached is not MISSING:
                return cached

            matched = next(
                (allowed for allowed in policy.allowed_origins if allowed.lower() == key),
                None
            )
            self.cache.store(key, matched)
            return matched

    def validate(self, origin: Optional[str], policy: PolicySnapshot) -> OriginDecision:
        """
        Decide whether a request origin may proceed under ``policy``.

        Args:
            origin: Value of the Origin header, if any
            policy: Active policy snapshot

        Returns:
            Origin decision with the reason
        """
        if not origin:
            return OriginDecision(allowed=True, reason=REASON_NO_ORIGIN)

        matched = self.match(origin, policy)
        if matched is not None:
            return OriginDecision(allowed=True, matched_origin=matched, reason=REASON_MATCHED)

        if policy.development_mode:
            return OriginDecision(allowed=True, reason=REASON_DEVELOPMENT)

        return OriginDecision(allowed=False, reason=REASON_NOT_ALLOWED)

    @staticmethod
    def is_method_allowed(method: Optional[str], policy: PolicySnapshot) -> bool:
        """Check a preflight's requested method; a missing method passes."""
        if not method:
            return True
        requested = method.strip().upper()
        return any(allowed.upper() == requested for allowed in policy.allowed_methods)

    @staticmethod
    def are_headers_allowed(headers: Optional[str], policy: PolicySnapshot) -> bool:
        """Check a preflight's requested headers; a missing list passes."""
        requested = parse_header_list(headers)
        if not requested:
            return True
        allowed = {name.lower() for name in policy.allowed_headers}
        return all(name in allowed for name in requested)
