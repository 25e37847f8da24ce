# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Enumeration types for the CORS request gate.
"""

import logging
from enum import Enum
from typing import Optional


class LogLevel(str, Enum):
    """Diagnostic log levels, ordered from least to most verbose."""
    ERROR = "ERROR"
    WARN = "WARN"
    INFO = "INFO"
    DEBUG = "DEBUG"

    @property
    def priority(self) -> int:
        return _LEVEL_PRIORITY[self]

    @property
    def stdlib_level(self) -> int:
        """Matching level for the standard logging module."""
        return _STDLIB_LEVELS[self]

    @classmethod
    def parse(cls, value: Optional[str], default: "LogLevel" = None) -> "LogLevel":
        """
        Parse a level name, accepting WARNING as an alias of WARN.

        Args:
            value: Raw level name (case-insensitive)
            default: Level returned when value is missing or unknown

        Returns:
            Parsed log level
        """
        fallback = default or cls.INFO
        if not value:
            return fallback

        name = value.strip().upper()
        if name == "WARNING":
            name = "WARN"

        try:
            return cls(name)
        except ValueError:
            return fallback


_LEVEL_PRIORITY = {
    LogLevel.ERROR: 0,
    LogLevel.WARN: 1,
    LogLevel.INFO: 2,
    LogLevel.DEBUG: 3,
}

_STDLIB_LEVELS = {
    LogLevel.ERROR: logging.ERROR,
    LogLevel.WARN: logging.WARNING,
    LogLevel.INFO: logging.INFO,
    LogLevel.DEBUG: logging.DEBUG,
}


class LogCategory(str, Enum):
    """Diagnostic log categories."""
    VALIDATION_FAILURE = "VALIDATION_FAILURE"
    VALIDATION_SUCCESS = "VALIDATION_SUCCESS"
    PREFLIGHT = "PREFLIGHT"
    MISSING_HEADERS = "MISSING_HEADERS"
    MIDDLEWARE_ERROR = "MIDDLEWARE_ERROR"
    CONFIG_UPDATE = "CONFIG_UPDATE"
    CACHE = "CACHE"


class PreflightStage(str, Enum):
    """Stages reported for an OPTIONS preflight."""
    REQUEST = "REQUEST"
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


class PreflightFailure(str, Enum):
    """Which preflight check rejected the request."""
    ORIGIN_VALIDATION = "ORIGIN_VALIDATION"
    METHOD_VALIDATION = "METHOD_VALIDATION"
    HEADERS_VALIDATION = "HEADERS_VALIDATION"


class ConfigUpdateStatus(str, Enum):
    """Result of a runtime configuration update."""
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


class CacheAction(str, Enum):
    """Origin cache events."""
    HIT = "HIT"
    MISS = "MISS"
    EXPIRED = "EXPIRED"
    SET = "SET"
    EVICT = "EVICT"
    CLEAR = "CLEAR"


class RequestKind(str, Enum):
    """How the gate classified a request."""
    SIMPLE = "SIMPLE"
    PREFLIGHT = "PREFLIGHT"


class GateState(str, Enum):
    """Terminal states of the request gate."""
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
