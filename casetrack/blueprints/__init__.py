"""
CaseTrack
Blueprint registry and shared blueprint helpers.
"""

import logging

from flask import g, request
from werkzeug.exceptions import HTTPException

from casetrack.core.exceptions import (
    ConflictError,
    NotFoundError,
    StorageError,
    UnauthorizedError,
    ValidationError,
)
from casetrack.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def current_tenant_id() -> int:
    """Tenant resolved by the tenant-context middleware for this request."""
    tenant_id = getattr(g, "tenant_id", None)
    if tenant_id is None:
        raise UnauthorizedError()
    return tenant_id


def current_user_id() -> int | None:
    return getattr(g, "user_id", None)


def register_error_handlers(bp):
    """Map the platform exception hierarchy to JSON responses on *bp*."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, f"{error.resource} not found")

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_RULE, str(error), details=error.details)

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(E.CONFLICT_DUPLICATE, str(error))

    @bp.errorhandler(UnauthorizedError)
    def _handle_unauthorized(error: UnauthorizedError):
        return api_error(E.UNAUTHORIZED, str(error))

    @bp.errorhandler(StorageError)
    def _handle_storage(error: StorageError):
        logger.error("Storage failure in %s: %s (cause=%r)", request.endpoint, error, error.cause)
        return api_error(E.STORAGE, "File storage is unavailable, please try again")

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return error
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")

    return bp
