"""
Action files blueprint.

Routes:
  GET    /actions/<id>/files   – files by category with signed URLs
  POST   /actions/<id>/files   – multipart upload (file, category)
  POST   /files/remove         – delete a filing file { action_id, filename }

Storage keys are always derived server-side from the action; clients only
ever send a bare file name.
"""

import logging

from flask import Blueprint, jsonify, request

from casetrack.blueprints import current_tenant_id, current_user_id, register_error_handlers
from casetrack.services import action_files
from casetrack.utils.errors import E, api_error

logger = logging.getLogger(__name__)

files_bp = register_error_handlers(Blueprint("files", __name__, url_prefix="/api/v1"))


@files_bp.route("/actions/<int:action_id>/files", methods=["GET"])
def list_files(action_id):
    return jsonify(action_files.list_files(current_tenant_id(), action_id)), 200


@files_bp.route("/actions/<int:action_id>/files", methods=["POST"])
def upload_file(action_id):
    """Multipart form: file (required), category (token or name, default ACAO)."""
    storage = request.files.get("file")
    if storage is None or not storage.filename:
        return api_error(E.VALIDATION_REQUIRED, "file is required")
    category = request.form.get("category") or "ACAO"

    result = action_files.upload_file(
        current_tenant_id(), action_id, storage.stream, storage.filename, category,
        content_type=storage.mimetype, actor_id=current_user_id(),
    )
    return jsonify(result), 201


@files_bp.route("/files/remove", methods=["POST"])
def remove_file():
    """Body: { action_id, filename } — filename is a bare ACAO_ file name."""
    data = request.get_json(silent=True) or {}
    action_id = data.get("action_id")
    filename = data.get("filename")
    if not action_id or not filename:
        return api_error(E.VALIDATION_REQUIRED, "action_id and filename are required")
    try:
        action_id = int(action_id)
    except (TypeError, ValueError):
        return api_error(E.VALIDATION_INVALID, "action_id must be an integer")

    action_files.delete_file(current_tenant_id(), action_id, filename, actor_id=current_user_id())
    return jsonify({"removed": filename}), 200
