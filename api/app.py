"""
CORS Gate API - Flask Application Entry Point

This module builds the Flask application with OpenAPI 3.0 support and wires
the request deadline and CORS gate in front of every route:

    TimeoutMiddleware (WSGI) -> CORSMiddleware (before/after_request) -> views
"""

import os
from datetime import datetime, timezone
from typing import Mapping, Optional

from flask import jsonify
from flask_openapi3 import OpenAPI, Info, Tag

from observability.config import setup_observability, is_tracing_enabled
from observability.middleware import add_observability_middleware
from middleware.cors import configure_cors
from middleware.timeout import DEFAULT_DEADLINE_MS, configure_timeout
from services.config_store import ConfigStore
from services.diagnostics import DiagnosticLog

SERVICE_NAME = "cors-gate"
SERVICE_VERSION = "1.0.0"

info = Info(
    title="CORS Gate API",
    version=SERVICE_VERSION,
    description="Cross-origin request gate with request deadlines"
)

health_tag = Tag(name="Health", description="System health and status")
cors_tag = Tag(name="CORS", description="Active CORS policy and cache state")


def _parse_deadline(environ: Mapping[str, str]) -> int:
    raw = environ.get('REQUEST_TIMEOUT_MS')
    if not raw:
        return DEFAULT_DEADLINE_MS
    try:
        value = int(raw)
    except ValueError:
        return DEFAULT_DEADLINE_MS
    return value if value > 0 else DEFAULT_DEADLINE_MS


def create_app(environ: Optional[Mapping[str, str]] = None, deadline_ms: Optional[int] = None) -> OpenAPI:
    """
    Create the Flask application.

    Args:
        environ: Configuration mapping; os.environ when omitted
        deadline_ms: Request deadline override in milliseconds

    Returns:
        Configured application
    """
    env = os.environ if environ is None else environ

    setup_observability(env)

    app = OpenAPI(__name__, info=info, tags=[health_tag, cors_tag])
    app.config['ENVIRONMENT'] = env.get('ENVIRONMENT', 'development')
    app.config['SERVICE_NAME'] = SERVICE_NAME

    add_observability_middleware(app, instrument=is_tracing_enabled(env))

    diagnostics = DiagnosticLog(environ=env)
    cors = configure_cors(
        app,
        store=ConfigStore(environ=env, diagnostics=diagnostics),
        diagnostics=diagnostics
    )
    configure_timeout(app, cors.gate, deadline_ms=deadline_ms or _parse_deadline(env))

    @app.get('/api/healthz', tags=[health_tag])
    def health_check():
        """Liveness probe"""
        return jsonify({
            "status": "healthy",
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "environment": app.config['ENVIRONMENT'],
            "timestamp": datetime.now(timezone.utc).isoformat()
        })

    @app.get('/api/cors/status', tags=[cors_tag])
    def cors_status():
        """Active CORS policy summary and origin cache statistics"""
        policy = cors.get_configuration()
        return jsonify({
            "policy": policy.to_public_dict(),
            "summary": policy.summary(),
            "cache": cors.cache_stats(),
            "logLevel": cors.diagnostics.min_level.value
        })

    return app


if __name__ == '__main__':
    # Development server
    application = create_app()
    application.run(
        host='0.0.0.0',
        port=int(os.getenv('PORT', 5000)),
        debug=application.config['ENVIRONMENT'] == 'development'
    )
