"""
Platform-wide exception hierarchy.

Services raise these types; blueprints register handlers against them
once and get consistent HTTP status codes everywhere.

Usage:
    from casetrack.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Action", resource_id=42)
    raise ValidationError("Designado não encontrado", details={"assignee": "Fulano"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Security note: Used for BOTH genuinely missing records AND cross-tenant
    access attempts. A 403 would confirm the resource exists; a 404 does not.
    The "mine" status update also answers with this error when the action is
    not assigned to the caller.

    Args:
        resource: Human-readable model/entity name (e.g. "Action", "Client").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
        tenant_id: Optional — the scope that was enforced. For debug logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        tenant_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.tenant_id = tenant_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if tenant_id is not None:
            msg += f" (tenant={tenant_id})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Distinct from HTTP 400 (malformed input, caught in blueprint) — this
    exception signals that the data was well-formed but violated a business
    rule (unknown assignee, filing an unapproved action, illegal state).

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would duplicate a unique value.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class UnauthorizedError(Exception):
    """Raised when no trusted tenant context is available.

    Storage addressing never falls back to a default tenant, so a missing
    tenant is a hard failure. Maps to HTTP 401.
    """

    def __init__(self, message: str = "Tenant context is required") -> None:
        super().__init__(message)


class StorageError(Exception):
    """Raised when the object store rejects or fails an operation.

    The HTTP layer answers with a generic message (502); the wrapped cause
    and the object key are only written to the logs.

    Args:
        operation: "upload" | "list" | "delete" | "presign".
        key: Object key or prefix involved.
        cause: Original exception from the storage client.
    """

    def __init__(self, operation: str, key: str | None = None, cause: Exception | None = None) -> None:
        self.operation = operation
        self.key = key
        self.cause = cause
        msg = f"Storage {operation} failed"
        if key:
            msg += f" for {key}"
        super().__init__(msg)
