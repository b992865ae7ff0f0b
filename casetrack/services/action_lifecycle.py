"""
Action Lifecycle Service

Manages status edits, approval, return, filing and reassignment of actions.

Rules:
  - Every write is a single UPDATE scoped by (tenant_id, id); a zero
    rowcount means "not found" (cross-tenant included). Last write wins.
  - Any status may move to any other status. Completed statuses stamp
    completed_at the first time only; active statuses clear it.
  - Approval is the approved_at timestamp, not a status. approve() always
    refreshes it; return_action() clears it together with ``filed`` and
    leaves the status alone.
  - ``filed`` requires approval (ActionState guards it, the DB CHECK backs it).
  - Reassignment accepts a user id or a full name from the same tenant.
    An unknown user is rejected and the previous assignee is kept.
  - Each transition appends one audit row; the service owns the commit.

Usage:
    from casetrack.services import action_lifecycle as lifecycle

    lifecycle.set_status(tenant_id, action_id, "Finalizado")
    lifecycle.approve(tenant_id, action_id, actor_id=user_id)
    lifecycle.return_action(tenant_id, action_id, comment="falta documento")
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone

from sqlalchemy import func, select, update

from casetrack.core.exceptions import NotFoundError, ValidationError
from casetrack.core.statuses import (
    ACTIVE_STATUSES,
    COMPLETED_STATUSES,
    COMPLEXITIES,
    STATUSES,
    normalize_complexity,
    normalize_status,
)
from casetrack.models import db
from casetrack.models.action import Action
from casetrack.models.audit import write_audit
from casetrack.models.tenant import User
from casetrack.services.helpers.scoped_queries import get_scoped, get_scoped_or_none

logger = logging.getLogger(__name__)

# Assignee values that mean "nobody"
_CLEAR_ASSIGNEE = {"", "nenhum", "none"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════════════
# State value object
# ═════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ActionState:
    """(status, approved_at, filed) with the workflow's legality rules."""

    status: str
    approved_at: datetime | None = None
    filed: bool = False

    def __post_init__(self):
        if self.status not in STATUSES:
            raise ValidationError(f"Status inválido: {self.status}", details={"status": list(STATUSES)})
        if self.filed and self.approved_at is None:
            raise ValidationError("A ação precisa estar aprovada para ser protocolada")

    @classmethod
    def of(cls, action: Action) -> "ActionState":
        return cls(
            status=normalize_status(action.status) or action.status,
            approved_at=action.approved_at,
            filed=bool(action.filed),
        )

    @property
    def is_approved(self) -> bool:
        return self.approved_at is not None

    @property
    def needs_return_comment(self) -> bool:
        """Sending this action back requires an explanation from the reviewer."""
        return self.is_approved or self.status in COMPLETED_STATUSES


# ═════════════════════════════════════════════════════════════════════════════
# Input resolution
# ═════════════════════════════════════════════════════════════════════════════


def parse_status(value) -> str:
    status = normalize_status(value)
    if status is None:
        raise ValidationError(f"Status inválido: {value}", details={"status": list(STATUSES)})
    return status


def parse_complexity(value) -> str:
    complexity = normalize_complexity(value)
    if complexity is None:
        raise ValidationError(
            f"Complexidade inválida: {value}", details={"complexity": list(COMPLEXITIES)},
        )
    return complexity


def resolve_assignee(tenant_id: int, value) -> int | None:
    """Map an assignee id or full name to a user id in *tenant_id*.

    Returns None for the "no assignee" spellings.

    Raises:
        ValidationError: the id or name does not match a user of this tenant.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError("Designado não encontrado", details={"assignee": value})

    if isinstance(value, int):
        user = get_scoped_or_none(User, value, tenant_id=tenant_id)
    else:
        text = str(value).strip()
        if text.casefold() in _CLEAR_ASSIGNEE:
            return None
        if text.isdigit():
            user = get_scoped_or_none(User, int(text), tenant_id=tenant_id)
        else:
            wanted = " ".join(text.split()).casefold()
            user = next(
                (u for u in User.query_for_tenant(tenant_id).order_by(User.id)
                 if " ".join((u.full_name or "").split()).casefold() == wanted),
                None,
            )

    if user is None:
        logger.info("Assignee %r not found tenant_id=%s", value, tenant_id)
        raise ValidationError("Designado não encontrado", details={"assignee": value})
    return user.id


def _status_values(status: str, now: datetime) -> dict:
    if status in COMPLETED_STATUSES:
        return {"status": status, "completed_at": func.coalesce(Action.completed_at, now)}
    if status in ACTIVE_STATUSES:
        return {"status": status, "completed_at": None}
    return {"status": status}


def _snapshot(tenant_id: int, action_id: int, *extra_where):
    """Current row values inside the caller's transaction, or None."""
    stmt = (
        select(Action.status, Action.assignee_id, Action.complexity,
               Action.approved_at, Action.filed, Action.comment)
        .where(Action.tenant_id == tenant_id, Action.id == action_id, *extra_where)
    )
    return db.session.execute(stmt).first()


def _apply(tenant_id: int, action_id: int, values: dict, *extra_where) -> None:
    stmt = (
        update(Action)
        .where(Action.tenant_id == tenant_id, Action.id == action_id, *extra_where)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount == 0:
        db.session.rollback()
        raise NotFoundError(resource="Action", resource_id=action_id)


def _finish(tenant_id: int, action_id: int) -> dict:
    db.session.commit()
    return get_scoped(Action, action_id, tenant_id=tenant_id).to_dict()


# ═════════════════════════════════════════════════════════════════════════════
# Transitions
# ═════════════════════════════════════════════════════════════════════════════


def set_status(tenant_id: int, action_id: int, status, *, actor_id: int | None = None) -> dict:
    """Set the status of any action in the tenant. Approval/filing are untouched."""
    target = parse_status(status)
    before = _snapshot(tenant_id, action_id)
    if before is None:
        raise NotFoundError(resource="Action", resource_id=action_id)

    _apply(tenant_id, action_id, _status_values(target, _utcnow()))
    write_audit(
        entity_type="action", entity_id=action_id, action="action.set_status",
        tenant_id=tenant_id, actor_user_id=actor_id,
        diff={"status": {"old": before.status, "new": target}},
    )
    logger.info("Action %s status %s → %s tenant_id=%s", action_id, before.status, target, tenant_id)
    return _finish(tenant_id, action_id)


def set_status_mine(tenant_id: int, action_id: int, user_id: int, status) -> dict:
    """Personal status change: only the current assignee may do it.

    An action assigned to someone else is reported as not found.
    """
    target = parse_status(status)
    if user_id is None:
        raise NotFoundError(resource="Action", resource_id=action_id)
    mine = Action.assignee_id == user_id
    before = _snapshot(tenant_id, action_id, mine)
    if before is None:
        logger.info("Action %s is not assigned to user %s tenant_id=%s", action_id, user_id, tenant_id)
        raise NotFoundError(resource="Action", resource_id=action_id)

    _apply(tenant_id, action_id, _status_values(target, _utcnow()), mine)
    write_audit(
        entity_type="action", entity_id=action_id, action="action.set_status",
        tenant_id=tenant_id, actor_user_id=user_id,
        diff={"status": {"old": before.status, "new": target}, "scope": "mine"},
    )
    logger.info("Action %s status %s → %s by assignee %s tenant_id=%s",
                action_id, before.status, target, user_id, tenant_id)
    return _finish(tenant_id, action_id)


def approve(tenant_id: int, action_id: int, *, actor_id: int | None = None) -> dict:
    """Stamp approved_at with the current time. Repeating it only refreshes the stamp."""
    before = _snapshot(tenant_id, action_id)
    if before is None:
        raise NotFoundError(resource="Action", resource_id=action_id)

    now = _utcnow()
    _apply(tenant_id, action_id, {"approved_at": now})
    write_audit(
        entity_type="action", entity_id=action_id, action="action.approve",
        tenant_id=tenant_id, actor_user_id=actor_id,
        diff={"approved_at": {"old": before.approved_at, "new": now}},
    )
    logger.info("Action %s approved tenant_id=%s", action_id, tenant_id)
    return _finish(tenant_id, action_id)


def return_action(tenant_id: int, action_id: int, comment: str | None = None,
                  *, actor_id: int | None = None) -> dict:
    """Send an action back: clear approval (and filing), keep the status.

    The reviewer comment is stored when given.
    """
    before = _snapshot(tenant_id, action_id)
    if before is None:
        raise NotFoundError(resource="Action", resource_id=action_id)

    values = {"approved_at": None, "filed": False}
    diff = {"approved_at": {"old": before.approved_at, "new": None}}
    if before.filed:
        diff["filed"] = {"old": True, "new": False}
    if comment is not None and comment.strip():
        values["comment"] = comment.strip()[:500]
        diff["comment"] = {"old": before.comment, "new": values["comment"]}

    _apply(tenant_id, action_id, values)
    write_audit(
        entity_type="action", entity_id=action_id, action="action.return",
        tenant_id=tenant_id, actor_user_id=actor_id, diff=diff,
    )
    logger.info("Action %s returned tenant_id=%s", action_id, tenant_id)
    return _finish(tenant_id, action_id)


def reassign(tenant_id: int, action_id: int, assignee, *, actor_id: int | None = None) -> dict:
    """Change the assignee (id or name). Unknown users leave the row untouched."""
    before = _snapshot(tenant_id, action_id)
    if before is None:
        raise NotFoundError(resource="Action", resource_id=action_id)
    new_id = resolve_assignee(tenant_id, assignee)

    _apply(tenant_id, action_id, {"assignee_id": new_id})
    write_audit(
        entity_type="action", entity_id=action_id, action="action.reassign",
        tenant_id=tenant_id, actor_user_id=actor_id,
        diff={"assignee_id": {"old": before.assignee_id, "new": new_id}},
    )
    logger.info("Action %s reassigned %s → %s tenant_id=%s", action_id, before.assignee_id, new_id, tenant_id)
    return _finish(tenant_id, action_id)


def mark_filed(tenant_id: int, action_id: int, *, actor_id: int | None = None) -> dict:
    """Record that an approved action was filed with the court."""
    action = get_scoped(Action, action_id, tenant_id=tenant_id)
    replace(ActionState.of(action), filed=True)

    _apply(tenant_id, action_id, {"filed": True}, Action.approved_at.is_not(None))
    write_audit(
        entity_type="action", entity_id=action_id, action="action.file",
        tenant_id=tenant_id, actor_user_id=actor_id,
        diff={"filed": {"old": bool(action.filed), "new": True}},
    )
    logger.info("Action %s filed tenant_id=%s", action_id, tenant_id)
    return _finish(tenant_id, action_id)


def unfile(tenant_id: int, action_id: int, *, actor_id: int | None = None) -> dict:
    """Undo filing. The action also leaves the approved set."""
    before = _snapshot(tenant_id, action_id)
    if before is None:
        raise NotFoundError(resource="Action", resource_id=action_id)

    _apply(tenant_id, action_id, {"filed": False, "approved_at": None})
    write_audit(
        entity_type="action", entity_id=action_id, action="action.unfile",
        tenant_id=tenant_id, actor_user_id=actor_id,
        diff={"filed": {"old": bool(before.filed), "new": False},
              "approved_at": {"old": before.approved_at, "new": None}},
    )
    logger.info("Action %s unfiled tenant_id=%s", action_id, tenant_id)
    return _finish(tenant_id, action_id)


def update_action(tenant_id: int, action_id: int, data: dict, *, actor_id: int | None = None) -> dict:
    """Apply any of ``status``, ``assignee``, ``complexity`` from *data* in one UPDATE.

    Everything is validated before the write, so a rejected assignee
    leaves status and complexity untouched too.
    """
    before = _snapshot(tenant_id, action_id)
    if before is None:
        raise NotFoundError(resource="Action", resource_id=action_id)

    values: dict = {}
    diff: dict = {}
    if "status" in data:
        target = parse_status(data["status"])
        values.update(_status_values(target, _utcnow()))
        diff["status"] = {"old": before.status, "new": target}
    if "complexity" in data:
        complexity = parse_complexity(data["complexity"])
        values["complexity"] = complexity
        diff["complexity"] = {"old": before.complexity, "new": complexity}
    if "assignee" in data:
        new_id = resolve_assignee(tenant_id, data["assignee"])
        values["assignee_id"] = new_id
        diff["assignee_id"] = {"old": before.assignee_id, "new": new_id}

    if not values:
        raise ValidationError("Nothing to update", details={"fields": ["status", "assignee", "complexity"]})

    _apply(tenant_id, action_id, values)
    write_audit(
        entity_type="action", entity_id=action_id, action="action.update",
        tenant_id=tenant_id, actor_user_id=actor_id, diff=diff,
    )
    logger.info("Action %s updated fields=%s tenant_id=%s", action_id, sorted(diff), tenant_id)
    return _finish(tenant_id, action_id)
