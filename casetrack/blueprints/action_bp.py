"""
Action workflow blueprint.

Routes:
  GET    /actions                       – list (status=, scope=mine|all, group_by=assignee)
  POST   /actions                       – create (JSON or multipart with initial files)
  GET    /actions/approved              – filing queue (approved actions + filed flag)
  GET    /actions/<id>                  – detail
  PUT    /actions/<id>                  – edit {status?, assignee?, complexity?}
  GET    /actions/<id>/status           – {status, complexity, assignee}
  PATCH  /actions/<id>/status           – personal status change (assignee only)
  POST   /actions/<id>/approve          – approve
  POST   /actions/<id>/return           – send back to the assignee
  POST   /actions/<id>/file             – mark as filed (requires approval)
  POST   /actions/<id>/unfile           – undo filing
  GET    /actions/<id>/comment          – reviewer comment
  POST   /actions/<id>/comment          – replace reviewer comment
  GET    /actions/<id>/history          – audit events

The tenant always comes from the tenant-context middleware (g.tenant_id).
Service layer owns all business logic and commits.
"""

import logging

from flask import Blueprint, jsonify, request

from casetrack.blueprints import current_tenant_id, current_user_id, register_error_handlers
from casetrack.core.exceptions import StorageError, ValidationError
from casetrack.services import action_files, action_lifecycle, action_service
from casetrack.services.action_lifecycle import ActionState
from casetrack.services.storage_addressing import CATEGORY_TOKENS
from casetrack.utils.errors import E, api_error

logger = logging.getLogger(__name__)

action_bp = register_error_handlers(Blueprint("actions", __name__, url_prefix="/api/v1"))

_EDITABLE_FIELDS = ("status", "assignee", "complexity")


def _payload() -> dict:
    if request.mimetype == "multipart/form-data":
        return request.form.to_dict()
    return request.get_json(silent=True) or {}


def _initial_files() -> list[tuple]:
    """``(token, stream, filename, content_type)`` for each multipart file keyed by category."""
    files = []
    for token, name in CATEGORY_TOKENS.items():
        for field in (token, name):
            for storage in request.files.getlist(field):
                if storage and storage.filename:
                    files.append((token, storage.stream, storage.filename, storage.mimetype))
    return files


# ═════════════════════════════════════════════════════════════════════════════
# Reads
# ═════════════════════════════════════════════════════════════════════════════


@action_bp.route("/actions", methods=["GET"])
def list_actions():
    """List the tenant's actions, newest first.

    Query params:
        status    — filter by status (any accepted spelling)
        scope     — "all" (default) or "mine" (assigned to the caller)
        group_by  — "assignee" returns {assignee_name: [actions]}
    """
    tenant_id = current_tenant_id()
    scope = (request.args.get("scope") or "all").lower()
    if scope not in ("all", "mine"):
        return api_error(E.VALIDATION_INVALID, "scope must be 'all' or 'mine'")

    assignee_id = None
    if scope == "mine":
        assignee_id = current_user_id()
        if assignee_id is None:
            return api_error(E.VALIDATION_REQUIRED, "X-User-ID is required for scope=mine")

    actions = action_service.list_actions(
        tenant_id, status=request.args.get("status"), assignee_id=assignee_id,
    )
    if request.args.get("group_by") == "assignee":
        return jsonify(action_service.group_by_assignee(actions)), 200
    return jsonify([a.to_summary() for a in actions]), 200


@action_bp.route("/actions/approved", methods=["GET"])
def list_approved():
    return jsonify(action_service.list_approved(current_tenant_id())), 200


@action_bp.route("/actions/<int:action_id>", methods=["GET"])
def get_action(action_id):
    action = action_service.get_action(current_tenant_id(), action_id)
    return jsonify(action.to_dict()), 200


@action_bp.route("/actions/<int:action_id>/status", methods=["GET"])
def get_status(action_id):
    return jsonify(action_service.get_status_info(current_tenant_id(), action_id)), 200


@action_bp.route("/actions/<int:action_id>/history", methods=["GET"])
def get_history(action_id):
    return jsonify(action_service.get_history(current_tenant_id(), action_id)), 200


# ═════════════════════════════════════════════════════════════════════════════
# Create / edit
# ═════════════════════════════════════════════════════════════════════════════


@action_bp.route("/actions", methods=["POST"])
def create_action():
    """Create an action.

    Body (JSON or multipart form): { title, complexity, client_id, assignee?, reference_code? }
    Multipart may carry initial files under category fields (CON, PRO, DEC, FIC, DOC, PROV).
    Returns: created action (201) with "files" and, if some upload failed, "failed_files".
    """
    tenant_id = current_tenant_id()
    data = _payload()
    for field in ("title", "complexity", "client_id"):
        if not str(data.get(field) or "").strip():
            return api_error(E.VALIDATION_REQUIRED, f"{field} is required")

    action = action_service.create_action(tenant_id, data, creator_id=current_user_id())

    uploaded, failed = [], []
    for category, stream, filename, content_type in _initial_files():
        try:
            uploaded.extend(action_files.upload_files(
                action, [(category, stream, filename, content_type)], actor_id=current_user_id(),
            ))
        except (StorageError, ValidationError) as exc:
            logger.warning("Initial upload %s failed for action %s: %s", filename, action.id, exc)
            failed.append({"name": filename, "error": str(exc)})

    body = action.to_dict()
    body["files"] = uploaded
    if failed:
        body["failed_files"] = failed
    return jsonify(body), 201


@action_bp.route("/actions/<int:action_id>", methods=["PUT", "PATCH"])
def update_action(action_id):
    """Edit status, assignee and/or complexity in one write.

    Body: { status?, assignee?, complexity? }  — assignee is an id, a name or "Nenhum".
    """
    data = request.get_json(silent=True) or {}
    changes = {k: data[k] for k in _EDITABLE_FIELDS if k in data}
    if not changes:
        return api_error(E.VALIDATION_REQUIRED, "status, assignee or complexity is required")
    result = action_lifecycle.update_action(
        current_tenant_id(), action_id, changes, actor_id=current_user_id(),
    )
    return jsonify(result), 200


@action_bp.route("/actions/<int:action_id>/status", methods=["PATCH"])
def update_my_status(action_id):
    """Body: { status } — only the current assignee may change it."""
    data = request.get_json(silent=True) or {}
    if not str(data.get("status") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "status is required")
    result = action_lifecycle.set_status_mine(
        current_tenant_id(), action_id, current_user_id(), data["status"],
    )
    return jsonify(result), 200


# ═════════════════════════════════════════════════════════════════════════════
# Review
# ═════════════════════════════════════════════════════════════════════════════


@action_bp.route("/actions/<int:action_id>/approve", methods=["POST"])
def approve(action_id):
    result = action_lifecycle.approve(current_tenant_id(), action_id, actor_id=current_user_id())
    return jsonify(result), 200


@action_bp.route("/actions/<int:action_id>/return", methods=["POST"])
def return_action(action_id):
    """Body: { comment } — required when the action is finished or approved."""
    tenant_id = current_tenant_id()
    data = request.get_json(silent=True) or {}
    comment = str(data.get("comment") or "").strip()

    state = ActionState.of(action_service.get_action(tenant_id, action_id))
    if state.needs_return_comment and not comment:
        raise ValidationError(
            "Informe um comentário para devolver a ação", details={"comment": "required"},
        )
    result = action_lifecycle.return_action(
        tenant_id, action_id, comment or None, actor_id=current_user_id(),
    )
    return jsonify(result), 200


@action_bp.route("/actions/<int:action_id>/file", methods=["POST"])
def mark_filed(action_id):
    result = action_lifecycle.mark_filed(current_tenant_id(), action_id, actor_id=current_user_id())
    return jsonify(result), 200


@action_bp.route("/actions/<int:action_id>/unfile", methods=["POST"])
def unfile(action_id):
    result = action_lifecycle.unfile(current_tenant_id(), action_id, actor_id=current_user_id())
    return jsonify(result), 200


@action_bp.route("/actions/<int:action_id>/comment", methods=["GET"])
def get_comment(action_id):
    comment = action_service.get_comment(current_tenant_id(), action_id)
    return jsonify({"id": action_id, "comment": comment}), 200


@action_bp.route("/actions/<int:action_id>/comment", methods=["POST"])
def save_comment(action_id):
    """Body: { comment } — blank clears the comment."""
    data = request.get_json(silent=True) or {}
    if "comment" not in data:
        return api_error(E.VALIDATION_REQUIRED, "comment is required")
    comment = action_service.save_comment(
        current_tenant_id(), action_id, data["comment"], actor_id=current_user_id(),
    )
    return jsonify({"id": action_id, "comment": comment}), 200
