# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for request deadline enforcement.
"""

import threading
import pytest
from unittest.mock import Mock
from flask import Flask, jsonify

from middleware.cors import configure_cors
from middleware.exchange import PendingResponse, WSGIResponse
from middleware.timeout import (
    DEFAULT_DEADLINE_MS,
    TimeoutGuard,
    TimeoutMiddleware,
    configure_timeout,
    format_minutes,
)
from models.enums import LogCategory, LogLevel
from services.diagnostics import DiagnosticLog


@pytest.fixture
def guard_clock(fake_clock):
    return fake_clock


@pytest.fixture
def guard(gate, diagnostics, guard_clock, fake_timer_class):
    return TimeoutGuard(gate, diagnostics, timer_factory=fake_timer_class, clock=guard_clock)


class TestFormatMinutes:
    """Test deadline rendering."""

    @pytest.mark.parametrize("deadline_ms,expected", [
        (300000, "5"),
        (60000, "1"),
        (90000, "1.5"),
        (30000, "0.5"),
    ])
    def test_format(self, deadline_ms, expected):
        assert format_minutes(deadline_ms) == expected


class TestTimeoutGuard:
    """Test the deadline timer."""

    def test_continuation_invoked_immediately(self, guard, make_request, fake_timers):
        continuation = Mock()

        timer = guard.apply(make_request(), PendingResponse(), continuation)

        continuation.assert_called_once()
        assert timer is fake_timers[0]
        assert timer.started is True
        assert timer.interval == DEFAULT_DEADLINE_MS / 1000.0

    def test_deadline_sends_gateway_timeout(self, guard, guard_clock, make_request, log_entries):
        response = PendingResponse()
        timer = guard.apply(make_request(path='/api/slow'), response, Mock(), deadline_ms=300000)

        guard_clock.advance(300.5)
        timer.fire()

        assert response.status == 504
        assert response.headers_sent is True
        assert response.body == {
            "error": "Gateway Timeout",
            "message": "Request exceeded 5 minute timeout",
            "elapsedTime": 300500
        }
        assert response.get_header("Access-Control-Allow-Origin") == "https://app.example.com"
        assert response.get_header("Access-Control-Allow-Credentials") == "true"

        timeouts = [entry for entry in log_entries if entry.fields.get("kind") == "TIMEOUT"]
        assert timeouts[0].category == LogCategory.MIDDLEWARE_ERROR
        assert timeouts[0].fields["url"] == "/api/slow"
        assert timeouts[0].fields["elapsedMs"] == 300500

    def test_deadline_after_response_sent_is_noop(self, guard, make_request):
        response = PendingResponse()
        response.set_status(200)
        response.send_json({"ok": True})
        timer = guard.apply(make_request(), response, Mock())

        timer.fire()

        assert response.status == 200
        assert response.body == {"ok": True}

    def test_cancelled_timer_never_fires(self, guard, make_request):
        response = PendingResponse()
        timer = guard.apply(make_request(), response, Mock())

        timer.cancel()
        timer.fire()

        assert response.headers_sent is False

    def test_failing_continuation_cancels_timer(self, guard, make_request, fake_timers):
        with pytest.raises(RuntimeError):
            guard.apply(make_request(), PendingResponse(), Mock(side_effect=RuntimeError("boom")))

        assert fake_timers[0].cancelled is True

    def test_expire_reports_whether_it_responded(self, guard, make_request):
        request = make_request()
        response = PendingResponse()

        assert guard.expire(request, response, 0.0, 1000) is True
        assert guard.expire(request, response, 0.0, 1000) is False


class TestWSGIResponse:
    """Test the downstream/timeout race primitive."""

    def test_first_writer_wins(self):
        response = WSGIResponse()

        assert response.complete("200 OK", [], [b"ok"]) is True
        assert response.send_json({"error": "late"}) is False
        assert response.body is None
        assert response.wait(0) is True

    def test_timeout_wins(self):
        response = WSGIResponse()
        response.send_json({"error": "Gateway Timeout"})

        assert response.complete("200 OK", [], [b"ok"]) is False
        assert response.downstream is None


class TestTimeoutMiddleware:
    """Test the WSGI deadline wrapper."""

    def build_app(self, deadline_ms):
        app = Flask(__name__)
        self.release = threading.Event()
        self.entries = []
        diagnostics = DiagnosticLog(min_level=LogLevel.DEBUG, sink=self.entries.append)
        cors = configure_cors(
            app,
            environ={'ALLOWED_ORIGINS': 'https://app.example.com', 'ENVIRONMENT': 'production'},
            diagnostics=diagnostics
        )

        @app.route('/api/fast')
        def fast():
            return jsonify({"fast": True})

        @app.route('/api/slow')
        def slow():
            self.release.wait(5)
            return jsonify({"slow": True})

        @app.route('/api/broken')
        def broken():
            raise RuntimeError("view failed")

        self.middleware = configure_timeout(app, cors.gate, deadline_ms=deadline_ms)
        return app

    def teardown_method(self):
        self.release.set()
        self.middleware.shutdown(wait=True)

    def test_fast_request_passes_through(self):
        app = self.build_app(deadline_ms=5000)

        response = app.test_client().get('/api/fast', headers={'Origin': 'https://app.example.com'})

        assert response.status_code == 200
        assert response.get_json() == {"fast": True}
        assert response.headers['Access-Control-Allow-Origin'] == 'https://app.example.com'

    def test_slow_request_gets_gateway_timeout(self):
        app = self.build_app(deadline_ms=100)

        response = app.test_client().get('/api/slow', headers={'Origin': 'https://app.example.com'})

        assert response.status_code == 504
        body = response.get_json()
        assert body["error"] == "Gateway Timeout"
        assert body["message"] == "Request exceeded 0.00166667 minute timeout"
        assert body["elapsedTime"] >= 100
        assert response.headers['Access-Control-Allow-Origin'] == 'https://app.example.com'
        assert any(entry.fields.get("kind") == "TIMEOUT" for entry in self.entries)

    def test_rejected_origin_not_delayed(self):
        app = self.build_app(deadline_ms=5000)

        response = app.test_client().get('/api/fast', headers={'Origin': 'https://evil.com'})

        assert response.status_code == 403

    def test_downstream_error_becomes_server_error(self):
        app = self.build_app(deadline_ms=5000)
        app.config['PROPAGATE_EXCEPTIONS'] = False

        response = app.test_client().get('/api/broken')

        assert response.status_code == 500

    def test_installed_as_extension(self):
        app = self.build_app(deadline_ms=5000)

        assert app.extensions["timeout"] is self.middleware
        assert isinstance(app.wsgi_app, TimeoutMiddleware)
