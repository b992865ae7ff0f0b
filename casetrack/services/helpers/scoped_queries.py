"""
Tenant-scoped query helpers.

Every get-by-id in the service MUST use these helpers instead of
Model.query.get(pk) or db.session.get(Model, pk). Direct .get() calls
bypass tenant isolation.

Usage:
    action = get_scoped(Action, action_id, tenant_id=tenant_id)

    # When None is an acceptable outcome (optional FK lookups)
    user = get_scoped_or_none(User, user_id, tenant_id=tenant_id)
"""

import logging

from sqlalchemy import select

from casetrack.core.exceptions import NotFoundError
from casetrack.models import db

logger = logging.getLogger(__name__)


def get_scoped(model, pk: int, *, tenant_id: int | None = None):
    """Fetch a single entity by PK with mandatory tenant filter.

    Cross-tenant access is indistinguishable from a missing record: both
    raise NotFoundError → HTTP 404.

    Args:
        model: SQLAlchemy model class with ``id`` and ``tenant_id`` columns.
        pk: Primary key value to look up.
        tenant_id: Scope by tenant_id column.

    Returns:
        The model instance if found within the given scope.

    Raises:
        ValueError: If no tenant scope is provided or the model has no
                    tenant_id column (which would be an unscoped lookup).
        NotFoundError: If the entity does not exist OR belongs to a different
                       tenant. The two cases are intentionally indistinguishable.
    """
    if tenant_id is None:
        raise ValueError(
            f"{model.__name__} id={pk} requires a tenant_id scope. "
            "Unscoped lookups are forbidden — they bypass tenant isolation."
        )
    if not hasattr(model, "tenant_id"):
        raise ValueError(
            f"{model.__name__} has no tenant_id column. "
            "Refusing to perform an unscoped lookup."
        )

    stmt = select(model).where(model.id == pk, model.tenant_id == tenant_id)
    result = db.session.execute(stmt).scalar_one_or_none()

    if result is None:
        logger.debug("get_scoped: %s id=%s not found in tenant %s", model.__name__, pk, tenant_id)
        raise NotFoundError(resource=model.__name__, resource_id=pk)

    return result


def get_scoped_or_none(model, pk: int, *, tenant_id: int | None = None):
    """Same as get_scoped but returns None instead of raising NotFoundError.

    Still enforces the scope requirement (raises ValueError), because
    silent unscoped lookups are never acceptable regardless of return style.
    """
    try:
        return get_scoped(model, pk, tenant_id=tenant_id)
    except NotFoundError:
        return None
