"""
Action Store Service

Creation and reads of tenant-scoped actions plus the reviewer comment.

Rules:
  - tenant_id is always an explicit parameter coming from the request
    context, never from the payload.
  - Lists are newest first (created_at DESC, id DESC).
  - The client must belong to the tenant; the assignee is resolved the
    same way reassignment resolves it.
  - Status changes do not happen here; see action_lifecycle.
"""

import logging

from sqlalchemy import select, update

from casetrack.core.exceptions import NotFoundError, ValidationError
from casetrack.core.statuses import NO_ASSIGNEE_LABEL, NOT_STARTED
from casetrack.models import db
from casetrack.models.action import Action
from casetrack.models.audit import AuditLog, write_audit
from casetrack.models.tenant import Client
from casetrack.services.action_lifecycle import parse_complexity, parse_status, resolve_assignee
from casetrack.services.helpers.scoped_queries import get_scoped

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 60
COMMENT_MAX_LENGTH = 500
REFERENCE_MAX_LENGTH = 40


# ═════════════════════════════════════════════════════════════════════════════
# Create
# ═════════════════════════════════════════════════════════════════════════════


def create_action(tenant_id: int, data: dict, *, creator_id: int | None = None) -> Action:
    """Create an action in ``Não iniciado`` with no approval and no filing.

    Body keys: title, complexity, client_id, assignee?, reference_code?
    """
    title = " ".join(str(data.get("title") or "").split())
    errors = {}
    if not title:
        errors["title"] = "title is required"
    elif len(title) > TITLE_MAX_LENGTH:
        errors["title"] = f"title must be ≤ {TITLE_MAX_LENGTH} characters"
    if not data.get("complexity"):
        errors["complexity"] = "complexity is required"
    if not data.get("client_id"):
        errors["client_id"] = "client_id is required"
    if errors:
        raise ValidationError("Invalid action", details=errors)

    complexity = parse_complexity(data["complexity"])
    try:
        client_id = int(data["client_id"])
    except (TypeError, ValueError):
        raise ValidationError("client_id must be an integer", details={"client_id": data["client_id"]})
    client = get_scoped(Client, client_id, tenant_id=tenant_id)
    assignee_id = resolve_assignee(tenant_id, data.get("assignee"))

    reference_code = (str(data.get("reference_code") or "").strip() or None)
    if reference_code and len(reference_code) > REFERENCE_MAX_LENGTH:
        raise ValidationError(
            f"reference_code must be ≤ {REFERENCE_MAX_LENGTH} characters",
            details={"reference_code": reference_code},
        )

    action = Action(
        tenant_id=tenant_id,
        client_id=client.id,
        assignee_id=assignee_id,
        creator_id=creator_id,
        title=title,
        complexity=complexity,
        status=NOT_STARTED,
        reference_code=reference_code,
        approved_at=None,
        filed=False,
    )
    db.session.add(action)
    db.session.flush()
    write_audit(
        entity_type="action", entity_id=action.id, action="action.create",
        tenant_id=tenant_id, actor_user_id=creator_id,
        diff={"title": title, "client_id": client.id, "assignee_id": assignee_id},
    )
    db.session.commit()
    logger.info("Created action id=%s client_id=%s tenant_id=%s", action.id, client.id, tenant_id)
    return action


# ═════════════════════════════════════════════════════════════════════════════
# Reads
# ═════════════════════════════════════════════════════════════════════════════


def get_action(tenant_id: int, action_id: int) -> Action:
    return get_scoped(Action, action_id, tenant_id=tenant_id)


def list_actions(tenant_id: int, *, status: str | None = None,
                 assignee_id: int | None = None) -> list[Action]:
    """Tenant's actions, newest first, optionally filtered by status or assignee."""
    stmt = select(Action).where(Action.tenant_id == tenant_id)
    if status:
        stmt = stmt.where(Action.status == parse_status(status))
    if assignee_id is not None:
        stmt = stmt.where(Action.assignee_id == assignee_id)
    stmt = stmt.order_by(Action.created_at.desc(), Action.id.desc())
    return list(db.session.execute(stmt).unique().scalars())


def group_by_assignee(actions: list[Action]) -> dict[str, list[dict]]:
    """Summaries keyed by assignee name (``Nenhum`` for unassigned)."""
    grouped: dict[str, list[dict]] = {}
    for action in actions:
        grouped.setdefault(action.assignee_name or NO_ASSIGNEE_LABEL, []).append(action.to_summary())
    return grouped


def get_status_info(tenant_id: int, action_id: int) -> dict:
    action = get_action(tenant_id, action_id)
    return {
        "id": action.id,
        "status": action.status,
        "complexity": action.complexity,
        "assignee": action.assignee_name,
        "assignee_id": action.assignee_id,
    }


def list_approved(tenant_id: int) -> list[dict]:
    """Filing queue: approved actions with their filed flag, latest approval first."""
    stmt = (
        select(Action)
        .where(Action.tenant_id == tenant_id, Action.approved_at.is_not(None))
        .order_by(Action.approved_at.desc(), Action.id.desc())
    )
    return [a.to_summary() for a in db.session.execute(stmt).unique().scalars()]


def get_history(tenant_id: int, action_id: int) -> list[dict]:
    """Audit events of one action, oldest first."""
    get_action(tenant_id, action_id)
    stmt = (
        select(AuditLog)
        .where(
            AuditLog.tenant_id == tenant_id,
            AuditLog.entity_type == "action",
            AuditLog.entity_id == str(action_id),
        )
        .order_by(AuditLog.timestamp.asc(), AuditLog.id.asc())
    )
    return [row.to_dict() for row in db.session.execute(stmt).scalars()]


# ═════════════════════════════════════════════════════════════════════════════
# Reviewer comment
# ═════════════════════════════════════════════════════════════════════════════


def get_comment(tenant_id: int, action_id: int) -> str | None:
    return get_action(tenant_id, action_id).comment


def save_comment(tenant_id: int, action_id: int, comment, *, actor_id: int | None = None) -> str | None:
    """Replace the reviewer comment. Blank text clears it."""
    text = str(comment or "").strip() or None
    if text and len(text) > COMMENT_MAX_LENGTH:
        raise ValidationError(
            f"comment must be ≤ {COMMENT_MAX_LENGTH} characters", details={"comment": len(text)},
        )

    stmt = (
        update(Action)
        .where(Action.tenant_id == tenant_id, Action.id == action_id)
        .values(comment=text)
        .execution_options(synchronize_session=False)
    )
    if db.session.execute(stmt).rowcount == 0:
        db.session.rollback()
        raise NotFoundError(resource="Action", resource_id=action_id)

    write_audit(
        entity_type="action", entity_id=action_id, action="action.comment",
        tenant_id=tenant_id, actor_user_id=actor_id, diff={"comment": text},
    )
    db.session.commit()
    logger.info("Saved comment on action %s tenant_id=%s", action_id, tenant_id)
    return text
