# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
CORS (Cross-Origin Resource Sharing) request gate.

``RequestGate`` decides, per request, whether the origin (and for OPTIONS
preflights the requested method and headers) is allowed by the active
policy, writes the CORS headers or a 403/400 rejection, and tells the
caller whether processing may continue. ``CORSMiddleware`` plugs the gate
into a Flask application.
"""

from flask import Flask, g, request
from typing import Any, Callable, Dict, Mapping, Optional
from opentelemetry import trace
import logging

from models.entities import GateOutcome, RequestContext
from models.enums import GateState, PreflightFailure, PreflightStage, RequestKind
from models.policy import PolicySnapshot, UpdateResult
from models.responses import ForbiddenOriginBody, PreflightErrorBody
from middleware.exchange import GateRequest, GateResponse, HttpRequestAdapter, PendingResponse
from services.config_store import ConfigStore
from services.diagnostics import DiagnosticLog
from services.origin_cache import OriginCache
from services.origin_validator import OriginValidator

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


def _accepted(kind: RequestKind, reason: str, status: Optional[int] = None, proceed: bool = True) -> GateOutcome:
    return GateOutcome(kind=kind, state=GateState.ACCEPTED, status=status, proceed=proceed, reason=reason)


def _rejected(kind: RequestKind, status: int, reason: str) -> GateOutcome:
    return GateOutcome(kind=kind, state=GateState.REJECTED, status=status, proceed=False, reason=reason)


class RequestGate:
    """Origin/method/header gate for simple and preflight requests."""

    def __init__(
        self,
        store: ConfigStore,
        validator: OriginValidator,
        diagnostics: DiagnosticLog
    ):
        self.store = store
        self.validator = validator
        self.diagnostics = diagnostics

    def handle(
        self,
        request: GateRequest,
        response: GateResponse,
        continuation: Callable[[], Any]
    ) -> GateOutcome:
        """
        Gate one request.

        Args:
            request: Inbound request
            response: Outbound response
            continuation: Hands control to the next stage; invoked only
                when the outcome says to proceed

        Returns:
            Gate outcome
        """
        with tracer.start_as_current_span("cors.request_gate") as span:
            try:
                outcome = self.process(request, response, self.store.get())
            except Exception as e:
                outcome = self.recover(e, request, response)

            span.set_attributes({
                "cors.kind": outcome.kind.value if outcome.kind else "UNKNOWN",
                "cors.state": outcome.state.value,
                "cors.proceed": outcome.proceed,
                "cors.recovered": outcome.recovered
            })

        if outcome.proceed:
            continuation()
        return outcome

    def process(self, request: GateRequest, response: GateResponse, policy: PolicySnapshot) -> GateOutcome:
        """Primary path; may raise, in which case ``handle`` falls back to ``recover``."""
        context = RequestContext.from_request(request)
        if context.is_preflight:
            return self._handle_preflight(context, response, policy)
        return self._handle_simple(context, response, policy)

    def _handle_simple(self, context: RequestContext, response: GateResponse, policy: PolicySnapshot) -> GateOutcome:
        decision = self.validator.validate(context.origin, policy)

        if not decision.allowed:
            self.diagnostics.validation_failure(
                context.origin,
                decision.reason,
                path=context.path,
                method=context.method
            )
            self._forbid(response, context, decision.reason)
            return _rejected(RequestKind.SIMPLE, 403, decision.reason)

        if policy.debug_mode and context.origin:
            self.diagnostics.validation_success(context.origin, decision.matched_origin, decision.reason)

        self.apply_allow_headers(context, response, policy)
        return _accepted(RequestKind.SIMPLE, decision.reason)

    def _handle_preflight(self, context: RequestContext, response: GateResponse, policy: PolicySnapshot) -> GateOutcome:
        self.diagnostics.preflight(PreflightStage.REQUEST, {
            "method": context.method,
            "url": context.url,
            "origin": context.origin,
            "requestedMethod": context.requested_method,
            "requestedHeaders": context.requested_headers
        })

        decision = self.validator.validate(context.origin, policy)
        if not decision.allowed:
            self.diagnostics.preflight(PreflightStage.FAILURE, {
                "origin": context.origin,
                "reason": decision.reason,
                "type": PreflightFailure.ORIGIN_VALIDATION.value
            })
            self._forbid(response, context, decision.reason)
            return _rejected(RequestKind.PREFLIGHT, 403, decision.reason)

        if not self.validator.is_method_allowed(context.requested_method, policy):
            self.diagnostics.preflight(PreflightStage.FAILURE, {
                "method": context.requested_method,
                "origin": context.origin,
                "type": PreflightFailure.METHOD_VALIDATION.value,
                "allowedMethods": list(policy.allowed_methods)
            })
            body = PreflightErrorBody(
                message=f"Method {context.requested_method} is not allowed",
                allowed_methods=list(policy.allowed_methods)
            )
            response.set_status(400)
            response.send_json(body.to_body())
            return _rejected(RequestKind.PREFLIGHT, 400, "method not allowed")

        if not self.validator.are_headers_allowed(context.requested_headers, policy):
            self.diagnostics.preflight(PreflightStage.FAILURE, {
                "headers": context.requested_headers,
                "origin": context.origin,
                "type": PreflightFailure.HEADERS_VALIDATION.value
            })
            body = PreflightErrorBody(
                message="One or more requested headers are not allowed",
                requested_headers=context.requested_headers
            )
            response.set_status(400)
            response.send_json(body.to_body())
            return _rejected(RequestKind.PREFLIGHT, 400, "headers not allowed")

        self.apply_allow_headers(context, response, policy)
        self.diagnostics.preflight(PreflightStage.SUCCESS, {
            "origin": context.origin,
            "requestedMethod": context.requested_method,
            "requestedHeaders": context.requested_headers
        })

        response.set_status(200)
        response.end()
        return _accepted(RequestKind.PREFLIGHT, decision.reason, status=200, proceed=False)

    def _forbid(self, response: GateResponse, context: RequestContext, reason: str) -> None:
        response.set_status(403)
        response.send_json(ForbiddenOriginBody(origin=context.origin, reason=reason).to_body())

    def apply_allow_headers(self, context: RequestContext, response: GateResponse, policy: PolicySnapshot) -> None:
        """Write the full header set for an accepted request."""
        response.set_header("Access-Control-Allow-Origin", context.origin or policy.allowed_origins[0])
        response.set_header("Access-Control-Allow-Methods", ", ".join(policy.allowed_methods))
        response.set_header("Access-Control-Allow-Headers", ", ".join(policy.allowed_headers))
        response.set_header("Access-Control-Allow-Credentials", "true" if policy.allow_credentials else "false")
        response.set_header("Access-Control-Max-Age", str(policy.max_age))

        if policy.debug_mode:
            self.diagnostics.missing_headers(response, context.log_fields())

    def apply_baseline_headers(self, response: GateResponse, policy: Optional[PolicySnapshot] = None) -> bool:
        """
        Write the minimal CORS header set used by the error fallback and timeouts.

        Never raises.

        Args:
            response: Outbound response
            policy: Policy to use; the active policy when omitted

        Returns:
            True if the headers were written
        """
        try:
            policy = policy or self.store.get()
            response.set_header("Access-Control-Allow-Origin", policy.allowed_origins[0])
            response.set_header("Access-Control-Allow-Methods", ", ".join(policy.allowed_methods))
            response.set_header("Access-Control-Allow-Headers", ", ".join(policy.allowed_headers))
            response.set_header("Access-Control-Allow-Credentials", "true" if policy.allow_credentials else "false")
            return True
        except Exception as e:
            logger.error(f"Fallback CORS headers failed: {str(e)}", exc_info=True)
            return False

    def recover(self, error: Exception, request: GateRequest, response: GateResponse) -> GateOutcome:
        """
        Handle an unexpected fault in ``process``: log it, write the baseline
        headers and let the request continue. Never raises.
        """
        context = {
            "path": getattr(request, "path", None),
            "method": getattr(request, "method", None)
        }
        try:
            context["origin"] = request.header("Origin")
        except Exception:
            context["origin"] = None

        try:
            self.diagnostics.middleware_error(error, context)
        except Exception as log_error:
            logger.error(f"CORS middleware error: {str(error)} (diagnostics failed: {str(log_error)})")

        headers_set = self.apply_baseline_headers(response)
        if headers_set:
            logger.info("Fallback CORS headers applied")

        return GateOutcome(
            kind=None,
            state=GateState.ACCEPTED,
            proceed=True,
            reason=str(error),
            recovered=True
        )


class CORSMiddleware:
    """CORS middleware for Flask applications."""

    def __init__(
        self,
        app: Flask,
        store: Optional[ConfigStore] = None,
        cache: Optional[OriginCache] = None,
        diagnostics: Optional[DiagnosticLog] = None,
        environ: Optional[Mapping[str, str]] = None
    ):
        """
        Initialize CORS middleware.

        Args:
            app: Flask application
            store: Policy store; built from the environment when omitted
            cache: Origin decision cache
            diagnostics: Diagnostic log shared by all components
            environ: Environment mapping for the default store and log
        """
        self.app = app
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticLog(environ=environ)
        self.store = store if store is not None else ConfigStore(environ=environ, diagnostics=self.diagnostics)
        self.cache = cache if cache is not None else OriginCache(diagnostics=self.diagnostics)
        self.validator = OriginValidator(self.cache)
        self.gate = RequestGate(self.store, self.validator, self.diagnostics)

        self.store.subscribe(lambda snapshot: self.cache.clear())
        app.extensions["cors"] = self

        self.register_cors_handlers()

    def get_configuration(self) -> PolicySnapshot:
        return self.store.get()

    def update_configuration(self, partial: Mapping[str, Any]) -> UpdateResult:
        return self.store.update(partial)

    def cache_stats(self) -> Dict[str, Any]:
        return self.cache.stats()

    def register_cors_handlers(self):
        """Register CORS handlers with Flask application."""

        @self.app.before_request
        def gate_request():
            """Run the gate; a terminal outcome short-circuits the request."""
            pending = PendingResponse()
            proceed = []

            self.gate.handle(HttpRequestAdapter(request), pending, lambda: proceed.append(True))

            if proceed:
                g.cors_response = pending
                return None
            return pending.to_response(self.app.response_class)

        @self.app.after_request
        def add_cors_headers_to_response(response):
            """Copy the headers decided in before_request onto the view's response."""
            pending = g.pop("cors_response", None)
            if pending is not None:
                pending.copy_headers_to(response)
            return response


def configure_cors(app: Flask, **kwargs) -> CORSMiddleware:
    """
    Configure CORS for Flask application.

    Args:
        app: Flask application
        **kwargs: CORSMiddleware options

    Returns:
        Configured CORSMiddleware instance
    """
    return CORSMiddleware(app, **kwargs)
