"""
Action Files Service

Upload, list and delete the files attached to one action.

Rules:
  - The storage prefix is derived from (tenant, client, title) on every
    call; it is never read from the request.
  - Uploaded names are ``<CAT>_<safe-filename>``; an existing name gets a
    ``-1``, ``-2``… suffix before the extension.
  - Listing classifies files by name prefix and returns short-lived
    signed URLs, never credentials.
  - Only Filing-channel (``ACAO_``) files may be deleted, by exact key,
    and only when they exist under the derived prefix.
"""

import logging
import posixpath

from casetrack.core.exceptions import NotFoundError, ValidationError
from casetrack.models import db
from casetrack.models.action import Action
from casetrack.models.audit import write_audit
from casetrack.services.helpers.scoped_queries import get_scoped
from casetrack.services.storage_addressing import (
    CATEGORY_TOKENS,
    OTHER_CATEGORY,
    classify,
    is_bare_filename,
    is_deletable,
    prefix_for_action,
    stored_filename,
)
from casetrack.services.storage_service import get_object_store

logger = logging.getLogger(__name__)


def _unique_name(name: str, taken: set[str]) -> str:
    if name not in taken:
        return name
    stem, ext = posixpath.splitext(name)
    n = 1
    while f"{stem}-{n}{ext}" in taken:
        n += 1
    return f"{stem}-{n}{ext}"


def upload_file(tenant_id: int, action_id: int, stream, filename: str, category,
                content_type: str | None = None, *, actor_id: int | None = None) -> dict:
    """Store one file for an action and return ``{name, key, category, url}``."""
    action = get_scoped(Action, action_id, tenant_id=tenant_id)
    return _upload(action, stream, filename, category, content_type, actor_id=actor_id)


def upload_files(action: Action, files: list[tuple], *, actor_id: int | None = None) -> list[dict]:
    """Upload ``(category, stream, filename, content_type)`` tuples for a freshly created action."""
    return [
        _upload(action, stream, filename, category, content_type, actor_id=actor_id)
        for category, stream, filename, content_type in files
    ]


def _upload(action: Action, stream, filename, category, content_type, *, actor_id=None) -> dict:
    store = get_object_store()
    prefix = prefix_for_action(action)
    name = stored_filename(category, filename)
    taken = {obj["key"][len(prefix):] for obj in store.list_objects(prefix)}
    name = _unique_name(name, taken)
    key = prefix + name

    store.put(key, stream, content_type=content_type)
    write_audit(
        entity_type="action", entity_id=action.id, action="action.upload",
        tenant_id=action.tenant_id, actor_user_id=actor_id, diff={"file": name},
    )
    db.session.commit()
    logger.info("Uploaded %s for action %s tenant_id=%s", name, action.id, action.tenant_id)
    return {"name": name, "key": key, "category": classify(name), "url": store.presign(key)}


def list_files(tenant_id: int, action_id: int) -> dict[str, list[dict]]:
    """Files under the action's prefix grouped by category.

    Every known category is present (possibly empty); ``Other`` appears
    only when something unclassified is stored.
    """
    action = get_scoped(Action, action_id, tenant_id=tenant_id)
    store = get_object_store()
    prefix = prefix_for_action(action)

    grouped: dict[str, list[dict]] = {name: [] for name in CATEGORY_TOKENS.values()}
    for obj in store.list_objects(prefix):
        name = obj["key"][len(prefix):]
        # nested keys are not part of this action's flat folder
        if not name or "/" in name:
            continue
        modified = obj["last_modified"]
        grouped.setdefault(classify(name), []).append({
            "name": name,
            "key": obj["key"],
            "size": obj["size"],
            "last_modified": modified.isoformat() if hasattr(modified, "isoformat") else modified,
            "url": store.presign(obj["key"]),
        })
    if not grouped.get(OTHER_CATEGORY):
        grouped.pop(OTHER_CATEGORY, None)
    return grouped


def delete_file(tenant_id: int, action_id: int, filename, *, actor_id: int | None = None) -> str:
    """Delete one Filing-channel file by exact name. Returns the deleted key."""
    if not is_bare_filename(filename):
        raise ValidationError("Invalid file name", details={"filename": filename})
    if not is_deletable(filename):
        raise ValidationError(
            "Only filing files (ACAO_) can be removed", details={"filename": filename},
        )

    action = get_scoped(Action, action_id, tenant_id=tenant_id)
    store = get_object_store()
    key = prefix_for_action(action) + filename
    if not store.exists(key):
        raise NotFoundError(resource="File", resource_id=filename)

    store.delete(key)
    write_audit(
        entity_type="action", entity_id=action.id, action="action.delete_file",
        tenant_id=tenant_id, actor_user_id=actor_id, diff={"file": filename},
    )
    db.session.commit()
    logger.info("Deleted %s from action %s tenant_id=%s", filename, action.id, tenant_id)
    return key
