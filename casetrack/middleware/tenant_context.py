"""
Tenant Context Middleware — Enforces tenant isolation on API requests.

Every /api/v1/ request (health probes excepted) must carry a trusted
tenant, resolved in this order:
  1. X-Tenant-ID header (set by the upstream session/auth layer)
  2. Flask signed session["tenant_id"]

Tenant ids in request bodies or query strings are ignored.

The caller's user id is resolved the same way (X-User-ID header, then
session["user_id"]) and is optional; endpoints that need it check g.user_id.

On success the hook sets g.tenant_id, g.tenant and g.user_id.

Chain order:
  timing.py  →  tenant_context.py  →  route handler
"""

import logging

from flask import g, request, session

from casetrack.models import db
from casetrack.models.tenant import Tenant
from casetrack.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# Paths that skip tenant context (unauthenticated paths only)
TENANT_SKIP_PREFIXES = (
    "/api/v1/health",
    "/static/",
)


def _int_or_none(value):
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def init_tenant_context(app):
    """Register tenant context middleware as a before_request hook."""

    @app.before_request
    def _tenant_context():
        g.tenant = None
        g.tenant_id = None
        g.user_id = None

        # Only process API requests
        if not request.path.startswith("/api/v1/"):
            return None

        for prefix in TENANT_SKIP_PREFIXES:
            if request.path.startswith(prefix):
                return None

        raw_tenant = request.headers.get("X-Tenant-ID") or session.get("tenant_id")
        tenant_id = _int_or_none(raw_tenant)
        if tenant_id is None or tenant_id <= 0:
            logger.info("Rejected %s %s: no tenant context", request.method, request.path)
            return api_error(E.UNAUTHORIZED, "Tenant context is required")

        tenant = db.session.get(Tenant, tenant_id)
        if tenant is None or not tenant.is_active:
            logger.warning("Rejected %s %s: tenant_id %s unknown or inactive",
                           request.method, request.path, tenant_id)
            return api_error(E.UNAUTHORIZED, "Tenant context is required")

        g.tenant = tenant
        g.tenant_id = tenant.id
        g.user_id = _int_or_none(request.headers.get("X-User-ID") or session.get("user_id"))
        return None

    logger.info("Tenant context middleware installed")
