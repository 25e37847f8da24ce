"""
OpenTelemetry Configuration

Sets up distributed tracing and structured logging for the CORS gate.
Tracing is optional; when disabled the module-level tracers used across the
code base stay no-op.
"""

import os
import json
import logging
from typing import Mapping, Optional

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

SERVICE_NAME = 'cors-gate'

logger = logging.getLogger(__name__)

_tracer_provider_installed = False


class StructuredFormatter(logging.Formatter):
    """Render log records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            payload["trace_id"] = format(span_context.trace_id, "032x")

        extra_fields = getattr(record, "extra_fields", None)
        if isinstance(extra_fields, dict):
            payload.update(extra_fields)

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


def is_tracing_enabled(environ: Optional[Mapping[str, str]] = None) -> bool:
    env = os.environ if environ is None else environ
    return env.get('OTEL_ENABLED', 'true').lower() == 'true'


def setup_observability(environ: Optional[Mapping[str, str]] = None) -> bool:
    """
    Initialize OpenTelemetry instrumentation based on environment configuration.

    Returns:
        True if a tracer provider was installed by this call
    """
    global _tracer_provider_installed

    env = os.environ if environ is None else environ
    environment = env.get('ENVIRONMENT', 'development')
    service_version = env.get('SERVICE_VERSION', '1.0.0')

    setup_structured_logging(environment, env.get('LOG_LEVEL'))

    if not is_tracing_enabled(env) or _tracer_provider_installed:
        return False

    # Environment-specific sampling
    if environment == 'production':
        sampler = TraceIdRatioBased(0.1)  # 10% sampling in production
    elif environment == 'staging':
        sampler = TraceIdRatioBased(0.5)  # 50% sampling in staging
    else:
        sampler = TraceIdRatioBased(1.0)  # 100% sampling in development

    resource = Resource.create({
        "service.name": SERVICE_NAME,
        "service.version": service_version,
        "deployment.environment": environment
    })

    tracer_provider = TracerProvider(sampler=sampler, resource=resource)

    otlp_endpoint = env.get('OTEL_EXPORTER_OTLP_ENDPOINT')
    if otlp_endpoint:
        headers = None
        if env.get('OTEL_API_KEY'):
            headers = {"Authorization": f"Bearer {env['OTEL_API_KEY']}"}
        tracer_provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint, headers=headers), max_export_batch_size=512)
        )
    elif environment == 'development':
        tracer_provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(tracer_provider)
    _tracer_provider_installed = True
    logger.info(f"Tracing enabled for {SERVICE_NAME} ({environment})")
    return True


def setup_structured_logging(environment: str, level: Optional[str] = None):
    """Configure structured JSON logging with trace correlation."""
    log_level = {
        'production': logging.WARNING,
        'staging': logging.INFO,
        'development': logging.DEBUG
    }.get(environment, logging.INFO)

    if level:
        log_level = logging.getLevelName(level.upper())
        if not isinstance(log_level, int):
            log_level = logging.INFO

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())

    root = logging.getLogger()
    if not any(isinstance(h.formatter, StructuredFormatter) for h in root.handlers):
        root.addHandler(handler)
    root.setLevel(log_level)

    if environment == 'production':
        # Production: Reduce noise, focus on errors and decisions
        logging.getLogger('werkzeug').setLevel(logging.WARNING)
        logging.getLogger('urllib3').setLevel(logging.WARNING)
