# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Services package - Policy storage, origin matching and diagnostics.
"""

from .config_store import ConfigStore, DEFAULT_POLICY
from .diagnostics import DiagnosticLog, log_to_logging
from .origin_cache import OriginCache, MISSING
from .origin_validator import OriginValidator, parse_header_list

__all__ = [
    "ConfigStore",
    "DEFAULT_POLICY",
    "DiagnosticLog",
    "log_to_logging",
    "OriginCache",
    "MISSING",
    "OriginValidator",
    "parse_header_list"
]
