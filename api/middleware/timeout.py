# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request deadline enforcement.

``TimeoutGuard`` arms a timer per request; if it fires before the response
has been sent, the client gets a 504 that still carries the baseline CORS
headers. ``TimeoutMiddleware`` applies the guard around a WSGI application
by running the application in a worker thread and returning whichever of
the application's response or the 504 is sent first.
"""

import time
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Optional

from flask import Flask
from opentelemetry import trace

from models.responses import GatewayTimeoutBody
from middleware.exchange import GateRequest, GateResponse, HttpRequestAdapter, WSGIResponse

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

DEFAULT_DEADLINE_MS = 300000  # 5 minutes


def _daemon_timer(interval: float, function: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(interval, function)
    timer.daemon = True
    return timer


def format_minutes(deadline_ms: int) -> str:
    """Render a deadline in minutes without a trailing .0."""
    return f"{deadline_ms / 60000:g}"


class TimeoutGuard:
    """Arms a per-request deadline that answers 504 when it expires."""

    def __init__(
        self,
        gate,
        diagnostics,
        timer_factory: Callable[[float, Callable[[], None]], Any] = _daemon_timer,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize the guard.

        Args:
            gate: RequestGate providing the baseline CORS header primitive
            diagnostics: DiagnosticLog receiving the timeout record
            timer_factory: Builds a startable, cancellable timer from
                (seconds, callback); threading.Timer by default
            clock: Monotonic time source in seconds
        """
        self.gate = gate
        self.diagnostics = diagnostics
        self._timer_factory = timer_factory
        self._clock = clock

    def apply(
        self,
        request: GateRequest,
        response: GateResponse,
        continuation: Callable[[], Any],
        deadline_ms: int = DEFAULT_DEADLINE_MS
    ):
        """
        Arm the deadline, then invoke the continuation right away.

        Args:
            request: Inbound request
            response: Outbound response shared with the downstream handler
            continuation: Next stage of processing
            deadline_ms: Deadline in milliseconds

        Returns:
            The armed timer; cancelling it disarms the deadline
        """
        started = self._clock()

        def on_deadline():
            self.expire(request, response, started, deadline_ms)

        timer = self._timer_factory(deadline_ms / 1000.0, on_deadline)
        timer.start()

        try:
            continuation()
        except Exception:
            timer.cancel()
            raise
        return timer

    def expire(self, request: GateRequest, response: GateResponse, started: float, deadline_ms: int) -> bool:
        """
        Deadline handler.

        Returns:
            True if the 504 was sent, False if the response had already gone out
        """
        elapsed_ms = int((self._clock() - started) * 1000)

        with tracer.start_as_current_span("cors.request_timeout") as span:
            span.set_attributes({
                "http.method": request.method,
                "http.url": request.url,
                "timeout.deadline_ms": deadline_ms,
                "timeout.elapsed_ms": elapsed_ms
            })

            self.gate.apply_baseline_headers(response)
            self.diagnostics.timeout({
                "url": request.url,
                "method": request.method,
                "elapsedMs": elapsed_ms,
                "deadlineMs": deadline_ms
            })

            if response.headers_sent:
                span.set_attribute("timeout.responded", False)
                return False

            body = GatewayTimeoutBody(
                message=f"Request exceeded {format_minutes(deadline_ms)} minute timeout",
                elapsed_time=elapsed_ms
            )
            response.set_status(504)
            sent = response.send_json(body.to_body())
            span.set_attribute("timeout.responded", sent)
            return sent


class TimeoutMiddleware:
    """WSGI wrapper enforcing a TimeoutGuard deadline on every request."""

    def __init__(
        self,
        wsgi_app,
        guard: TimeoutGuard,
        deadline_ms: int = DEFAULT_DEADLINE_MS,
        max_workers: Optional[int] = None
    ):
        self.wsgi_app = wsgi_app
        self.guard = guard
        self.deadline_ms = deadline_ms
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="request")

    def __call__(self, environ: Dict[str, Any], start_response):
        request = HttpRequestAdapter.from_environ(environ)
        response = WSGIResponse()

        def continuation():
            self._executor.submit(self._run_downstream, environ, response)

        timer = self.guard.apply(request, response, continuation, self.deadline_ms)
        response.wait()
        timer.cancel()

        if response.failure is not None:
            raise response.failure

        if response.downstream is not None:
            status, headers, chunks = response.downstream
            start_response(status, headers)
            return chunks

        return response.to_response()(environ, start_response)

    def _run_downstream(self, environ: Dict[str, Any], response: WSGIResponse) -> None:
        if response.headers_sent:
            # Timed out while queued.
            return

        captured = {"status": None, "headers": [], "written": []}

        def start_response(status, headers, exc_info=None):
            captured["status"] = status
            captured["headers"] = list(headers)
            return captured["written"].append

        try:
            app_iter = self.wsgi_app(environ, start_response)
            try:
                chunks = list(app_iter)
            finally:
                close = getattr(app_iter, "close", None)
                if close is not None:
                    close()
        except Exception as e:
            if not response.fail(e):
                logger.error(f"Request failed after timeout response was sent: {str(e)}")
            return

        if not response.complete(captured["status"], captured["headers"], captured["written"] + chunks):
            logger.warning(
                "Discarded response completed after timeout",
                extra={"extra_fields": {
                    "path": environ.get("PATH_INFO"),
                    "method": environ.get("REQUEST_METHOD"),
                    "status": captured["status"]
                }}
            )

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


def configure_timeout(app: Flask, gate, deadline_ms: int = DEFAULT_DEADLINE_MS, diagnostics=None) -> TimeoutMiddleware:
    """
    Wrap a Flask application's WSGI callable with a request deadline.

    Args:
        app: Flask application
        gate: RequestGate whose baseline headers decorate 504 responses
        deadline_ms: Deadline in milliseconds
        diagnostics: DiagnosticLog; the gate's when omitted

    Returns:
        Installed TimeoutMiddleware
    """
    guard = TimeoutGuard(gate, diagnostics if diagnostics is not None else gate.diagnostics)
    middleware = TimeoutMiddleware(app.wsgi_app, guard, deadline_ms)
    app.wsgi_app = middleware
    app.extensions["timeout"] = middleware
    return middleware
