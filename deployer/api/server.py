"""
Monitoring API — Flask app exposing deployer health.

Blueprint: monitoring_bp
Prefix: /api/1
Routes:
    /api/1/monitoring/status
    /api/1/monitoring/version
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from flask import Blueprint, Flask, current_app, jsonify, request

from .. import __version__
from ..observability.health import HealthChecker, HealthStatus

logger = logging.getLogger(__name__)

API_PREFIX = "/api/1"

monitoring_bp = Blueprint("monitoring", __name__)


@monitoring_bp.route("/monitoring/status")
def monitoring_status():
    """Liveness, uptime and component checks. 503 when unhealthy."""
    checker: HealthChecker = current_app.config["HEALTH_CHECKER"]
    health = checker.check()
    code = 503 if health.status == HealthStatus.UNHEALTHY else 200
    return jsonify(health.to_dict()), code


@monitoring_bp.route("/monitoring/version")
def monitoring_version():
    return jsonify({"name": "site-deployer", "version": __version__})


def create_app(checker: Optional[HealthChecker] = None) -> Flask:
    """Create the Flask application."""
    app = Flask(__name__)
    app.config["HEALTH_CHECKER"] = checker or HealthChecker()

    app.register_blueprint(monitoring_bp, url_prefix=API_PREFIX)   # /api/1/monitoring/*

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"success": False, "error": "Not found"}), 404

    @app.errorhandler(500)
    def internal_server_error(e):
        logger.error(f"Unhandled 500 on {request.method} {request.path}: {e}")
        return jsonify({"success": False, "error": f"Internal server error: {e}"}), 500

    @app.before_request
    def log_request_start():
        request.environ["deployer.start_time"] = time.time()

    @app.after_request
    def log_request_end(response):
        start = request.environ.get("deployer.start_time")
        duration_ms = int((time.time() - start) * 1000) if start else 0
        logger.debug(f"{request.method} {request.path} → {response.status_code} ({duration_ms}ms)")
        return response

    return app
