# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Structured diagnostic logging for CORS decisions.

Every component reports through a ``DiagnosticLog`` instead of calling a
logger directly. Each helper builds a ``LogEntry`` with a fixed category and
level and hands it to ``emit``, which drops entries more verbose than the
configured minimum level before they reach the sink. The default sink writes
to the standard ``logging`` module with the record fields under
``extra_fields``; tests and alternative transports pass their own sink.
"""

import os
import logging
import traceback
from typing import Any, Callable, Dict, Mapping, Optional

from models.entities import LogEntry
from models.enums import (
    CacheAction,
    ConfigUpdateStatus,
    LogCategory,
    LogLevel,
    PreflightStage,
)

logger = logging.getLogger(__name__)

REQUIRED_RESPONSE_HEADERS = (
    "Access-Control-Allow-Origin",
    "Access-Control-Allow-Methods",
    "Access-Control-Allow-Headers",
)

PREFLIGHT_MESSAGES = {
    PreflightStage.REQUEST: "OPTIONS preflight request received",
    PreflightStage.SUCCESS: "Preflight request validated",
    PreflightStage.FAILURE: "Preflight request rejected",
}

LogSink = Callable[[LogEntry], None]


def log_to_logging(entry: LogEntry) -> None:
    """Default sink: forward the entry to the module logger."""
    logger.log(
        entry.level.stdlib_level,
        "[CORS:%s] %s",
        entry.category.value,
        entry.message,
        extra={"extra_fields": entry.as_record()}
    )


class DiagnosticLog:
    """Category-tagged, level-filtered CORS log emitter."""

    def __init__(
        self,
        min_level: Optional[LogLevel] = None,
        sink: Optional[LogSink] = None,
        environ: Optional[Mapping[str, str]] = None
    ):
        """
        Initialize the diagnostic log.

        Args:
            min_level: Most verbose level that is still emitted; read from
                CORS_LOG_LEVEL when omitted
            sink: Callable receiving each emitted entry
            environ: Environment mapping used to resolve the default level
        """
        if min_level is None:
            env = os.environ if environ is None else environ
            min_level = LogLevel.parse(env.get("CORS_LOG_LEVEL"), LogLevel.INFO)
        self._min_level = LogLevel.parse(min_level)
        self._sink = sink or log_to_logging

    @property
    def min_level(self) -> LogLevel:
        return self._min_level

    def set_level(self, level) -> None:
        self._min_level = LogLevel.parse(level, self._min_level)

    def should_log(self, level: LogLevel) -> bool:
        return level.priority <= self._min_level.priority

    def emit(self, entry: LogEntry) -> bool:
        """
        Hand an entry to the sink unless it is filtered out.

        Returns:
            True if the entry was emitted
        """
        if not self.should_log(entry.level):
            return False
        self._sink(entry)
        return True

    def _log(
        self,
        level: LogLevel,
        category: LogCategory,
        message: str,
        fields: Optional[Dict[str, Any]] = None
    ) -> bool:
        if not self.should_log(level):
            return False
        return self.emit(LogEntry(
            level=level,
            category=category,
            message=message,
            fields=dict(fields or {})
        ))

    def validation_failure(self, origin: Optional[str], reason: str, **context) -> bool:
        fields = {"origin": origin, "reason": reason}
        fields.update(context)
        return self._log(LogLevel.WARN, LogCategory.VALIDATION_FAILURE, "Origin validation failed", fields)

    def validation_success(self, origin: str, matched_origin: Optional[str], reason: str) -> bool:
        return self._log(
            LogLevel.DEBUG,
            LogCategory.VALIDATION_SUCCESS,
            "Origin validation passed",
            {"origin": origin, "matchedOrigin": matched_origin, "reason": reason}
        )

    def preflight(self, kind: PreflightStage, data: Optional[Dict[str, Any]] = None) -> bool:
        kind = PreflightStage(kind)
        level = LogLevel.WARN if kind == PreflightStage.FAILURE else LogLevel.INFO
        fields = {"stage": kind.value}
        fields.update(data or {})
        return self._log(level, LogCategory.PREFLIGHT, PREFLIGHT_MESSAGES[kind], fields)

    def missing_headers(self, response, context: Optional[Dict[str, Any]] = None) -> bool:
        """
        Check an outgoing response for the mandatory CORS headers.

        Args:
            response: Object implementing the GateResponse protocol
            context: Extra fields for the log entry (path, method, ...)

        Returns:
            True if at least one mandatory header is missing
        """
        missing = [name for name in REQUIRED_RESPONSE_HEADERS if not response.get_header(name)]
        if not missing:
            return False

        fields = {"missingHeaders": missing}
        fields.update(context or {})
        self._log(LogLevel.WARN, LogCategory.MISSING_HEADERS, "CORS headers missing from response", fields)
        return True

    def middleware_error(self, error: BaseException, context: Optional[Dict[str, Any]] = None) -> bool:
        fields = {
            "error": str(error),
            "errorType": error.__class__.__name__,
            "stack": "".join(traceback.format_exception(type(error), error, error.__traceback__)),
        }
        fields.update(context or {})
        return self._log(LogLevel.ERROR, LogCategory.MIDDLEWARE_ERROR, "CORS middleware error", fields)

    def timeout(self, data: Dict[str, Any]) -> bool:
        fields = {"kind": "TIMEOUT"}
        fields.update(data)
        return self._log(LogLevel.ERROR, LogCategory.MIDDLEWARE_ERROR, "Request timeout", fields)

    def config_update(self, kind: ConfigUpdateStatus, data: Optional[Dict[str, Any]] = None) -> bool:
        kind = ConfigUpdateStatus(kind)
        if kind == ConfigUpdateStatus.SUCCESS:
            return self._log(LogLevel.INFO, LogCategory.CONFIG_UPDATE, "Configuration updated", data)
        return self._log(LogLevel.WARN, LogCategory.CONFIG_UPDATE, "Configuration update rejected", data)

    def cache(self, action: CacheAction, data: Optional[Dict[str, Any]] = None) -> bool:
        action = CacheAction(action)
        fields = {"action": action.value}
        fields.update(data or {})
        return self._log(LogLevel.DEBUG, LogCategory.CACHE, f"Cache {action.value}", fields)
