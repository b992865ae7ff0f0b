"""
Health check blueprint.

Endpoints:
    GET /api/v1/health        — basic status
    GET /api/v1/health/ready  — simple 200 for load balancers
    GET /api/v1/health/live   — detailed system health (DB, object store config, Redis)
"""

import logging
import time

import redis as redis_lib
from flask import Blueprint, current_app, jsonify

from casetrack.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("", methods=["GET"])
def health():
    return jsonify({"status": "ok", "app": "CaseTrack"}), 200


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe — always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Detailed liveness check with dependency status."""
    checks = {}
    overall = True

    # ── Database ─────────────────────────────────────────────────────
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except Exception as exc:
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check — database failed: %s", exc)

    # ── Object store (configuration only, no network call) ───────────
    bucket = current_app.config.get("S3_BUCKET")
    checks["object_store"] = (
        {"status": "configured", "bucket": bucket} if bucket else {"status": "not_configured"}
    )
    if not bucket:
        overall = False

    # ── Redis (rate-limiter store) ───────────────────────────────────
    redis_url = current_app.config.get("REDIS_URL", "")
    if redis_url.startswith(("redis://", "rediss://")):
        try:
            t0 = time.perf_counter()
            r = redis_lib.from_url(redis_url, socket_timeout=2)
            r.ping()
            redis_ms = (time.perf_counter() - t0) * 1000
            checks["redis"] = {"status": "ok", "latency_ms": round(redis_ms, 1)}
        except redis_lib.RedisError as exc:
            # Rate limiting degrades, the API keeps serving
            checks["redis"] = {"status": "error", "detail": str(exc)}
            logger.warning("Health check — redis failed: %s", exc)
    else:
        checks["redis"] = {"status": "skipped", "detail": "no REDIS_URL configured"}

    checks["app"] = {
        "name": "CaseTrack",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
