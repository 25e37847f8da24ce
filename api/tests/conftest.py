# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Pytest configuration and fixtures.
"""

import os
import pytest
from typing import Any, Callable, Dict, List, Optional

from werkzeug.test import EnvironBuilder

from middleware.cors import RequestGate
from middleware.exchange import HttpRequestAdapter, PendingResponse
from models.enums import LogLevel
from services.config_store import ConfigStore
from services.diagnostics import DiagnosticLog
from services.origin_cache import OriginCache
from services.origin_validator import OriginValidator

CORS_ENV_KEYS = (
    'ALLOWED_ORIGINS', 'CORS_ORIGIN', 'CORS_CREDENTIALS', 'ALLOWED_METHODS',
    'CORS_METHODS', 'ALLOWED_HEADERS', 'CORS_HEADERS', 'CORS_MAX_AGE',
    'NODE_ENV', 'CORS_DEBUG', 'DEBUG', 'CORS_LOG_LEVEL', 'REQUEST_TIMEOUT_MS'
)

# Set test environment
for key in CORS_ENV_KEYS:
    os.environ.pop(key, None)
os.environ['ENVIRONMENT'] = 'test'
os.environ['OTEL_ENABLED'] = 'false'


class FakeTimer:
    """Timer double that only fires when the test says so."""

    instances: List["FakeTimer"] = []

    def __init__(self, interval: float, function: Callable[[], None]):
        self.interval = interval
        self.function = function
        self.started = False
        self.cancelled = False
        FakeTimer.instances.append(self)

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.function()


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def test_environ() -> Dict[str, str]:
    """Environment for a production-like policy with one allowed origin."""
    return {
        'ALLOWED_ORIGINS': 'https://app.example.com',
        'ALLOWED_METHODS': 'GET,POST,PUT,DELETE,OPTIONS',
        'ENVIRONMENT': 'production'
    }


@pytest.fixture
def log_entries() -> List[Any]:
    """Entries captured by the diagnostics fixture."""
    return []


@pytest.fixture
def diagnostics(log_entries):
    """DiagnosticLog at DEBUG level writing into log_entries."""
    return DiagnosticLog(min_level=LogLevel.DEBUG, sink=log_entries.append)


@pytest.fixture
def store(test_environ, diagnostics):
    """ConfigStore reading from test_environ."""
    return ConfigStore(environ=test_environ, diagnostics=diagnostics)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def cache(diagnostics, fake_clock):
    """Small OriginCache on a fake clock."""
    return OriginCache(capacity=3, ttl=60, clock=fake_clock, diagnostics=diagnostics)


@pytest.fixture
def validator(cache):
    return OriginValidator(cache)


@pytest.fixture
def gate(store, validator, diagnostics):
    return RequestGate(store, validator, diagnostics)


@pytest.fixture
def make_request():
    """Factory for GateRequest adapters over real Werkzeug requests."""

    def _make(method: str = 'GET', path: str = '/api/items', origin: Optional[str] = None,
              headers: Optional[Dict[str, str]] = None, query: Optional[str] = None):
        request_headers = dict(headers or {})
        if origin is not None:
            request_headers['Origin'] = origin
        builder = EnvironBuilder(method=method, path=path, headers=request_headers, query_string=query)
        try:
            return HttpRequestAdapter.from_environ(builder.get_environ())
        finally:
            builder.close()

    return _make


@pytest.fixture
def pending_response():
    return PendingResponse()


@pytest.fixture
def fake_timers():
    """Reset and expose FakeTimer instances created during a test."""
    FakeTimer.instances = []
    yield FakeTimer.instances
    FakeTimer.instances = []


@pytest.fixture
def fake_timer_class(fake_timers):
    """Timer factory for TimeoutGuard; instances land in fake_timers."""
    return FakeTimer
