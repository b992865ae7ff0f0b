"""
Board interactions — what happens when a user drags a card, saves the
edit form, approves, returns, files or uploads.

Rules:
  - Local validation first: returning an action that is finished (or
    approved) needs a non-empty comment, also when it is dragged to
    another column; only ACAO_ files can be removed; a finished action
    takes no uploads.
  - Card moves are optimistic. A rejected move is not rolled back by hand;
    the next reconciliation pass restores the server's truth.
  - Server failures reach the user through ``notify`` with the server's
    reason text.
  - Uploads report bytes sent per chunk through ``on_progress``.
  - After each interaction the file panel is refreshed; approve and return
    also trigger an immediate reconciliation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from casetrack.board.api_client import BoardApiClient, BoardApiError
from casetrack.board.mirror import BoardMirror
from casetrack.board.poller import BoardPoller
from casetrack.core.statuses import is_completed, normalize_status

logger = logging.getLogger(__name__)

RETURN_COMMENT_REQUIRED = "Informe um comentário para devolver a ação"
ONLY_FILING_REMOVABLE = "Apenas arquivos da ação (ACAO_) podem ser removidos"
UPLOADS_BLOCKED = "Esta ação está {status}. Uploads estão bloqueados."


def _log_notify(message: str) -> None:
    logger.warning("Board notice: %s", message)


@dataclass
class UploadItem:
    """One file of a multi-file upload, retried individually."""

    fileobj: object
    filename: str
    category: str = "ACAO"
    state: str = "pending"           # pending | uploading | done | failed
    error: str | None = None
    result: dict | None = None
    bytes_sent: int = 0
    total: int | None = None         # encoded request size, known once sending starts


class InteractionController:
    def __init__(
        self,
        client: BoardApiClient,
        mirror: BoardMirror,
        poller: BoardPoller | None = None,
        notify: Callable[[str], None] | None = None,
        on_files: Callable[[int, dict], None] | None = None,
        on_progress: Callable[[UploadItem], None] | None = None,
    ) -> None:
        self.client = client
        self.mirror = mirror
        self.poller = poller
        self.notify = notify or _log_notify
        self.on_files = on_files
        self.on_progress = on_progress

    # ── Helpers ──────────────────────────────────────────────────────────────

    def _call(self, fn, *args, **kwargs):
        """Run one API call; on failure tell the user and return None."""
        try:
            return fn(*args, **kwargs)
        except BoardApiError as exc:
            self.notify(exc.message)
            return None

    def _sync(self) -> None:
        if self.poller is not None:
            self.poller.sync_now()

    def _needs_return_comment(self, action_id: int, approved: bool) -> bool:
        card = self.mirror.get(action_id)
        return approved or (card is not None and is_completed(card.status))

    def _leaves_completed(self, card, status) -> bool:
        return (card is not None and is_completed(card.status)
                and normalize_status(status) != normalize_status(card.status))

    def refresh_files(self, action_id: int) -> dict | None:
        files = self._call(self.client.list_files, action_id)
        if files is not None and self.on_files is not None:
            self.on_files(action_id, files)
        return files

    # ── Card moves and edits ─────────────────────────────────────────────────

    def move_card(self, action_id: int, status: str, comment: str | None = None) -> bool:
        """Drag and drop: move locally at once, then tell the server.

        Dragging a finished card to another column sends it back, so it
        needs *comment*; without one the card stays where it is.
        """
        target = normalize_status(status) or status
        card = self.mirror.get(action_id)
        if card is None:
            return False
        text = (comment or "").strip()
        if self._leaves_completed(card, target) and not text:
            self.notify(RETURN_COMMENT_REQUIRED)
            return False
        if text and self._call(self.client.save_comment, action_id, text) is None:
            return False

        with self.mirror.lock:
            if self.mirror.move(action_id, target) is None:
                return False
        if self.client.board_session.scope == "mine":
            ok = self._call(self.client.set_my_status, action_id, target) is not None
        else:
            ok = self._call(self.client.update_action, action_id, status=target) is not None
        self.refresh_files(action_id)
        return ok

    def save_edits(self, action_id: int, *, status: str | None = None, assignee=None,
                   complexity: str | None = None, comment: str | None = None) -> bool:
        """Edit-form save. A finished action moved elsewhere needs a reviewer comment.

        The comment is stored before the field changes.
        """
        card = self.mirror.get(action_id)
        comment = (comment or "").strip()
        if status is not None and self._leaves_completed(card, status) and not comment:
            self.notify(RETURN_COMMENT_REQUIRED)
            return False

        if comment and self._call(self.client.save_comment, action_id, comment) is None:
            return False

        fields = {}
        if status is not None:
            fields["status"] = status
        if assignee is not None:
            fields["assignee"] = assignee
        if complexity is not None:
            fields["complexity"] = complexity
        ok = True
        if fields:
            ok = self._call(self.client.update_action, action_id, **fields) is not None
        self.refresh_files(action_id)
        self._sync()
        return ok

    # ── Review ───────────────────────────────────────────────────────────────

    def approve(self, action_id: int) -> bool:
        ok = self._call(self.client.approve, action_id) is not None
        self.refresh_files(action_id)
        self._sync()
        return ok

    def return_action(self, action_id: int, comment: str | None = None, *, approved: bool = False) -> bool:
        """Send back to the assignee. *approved* marks an action known to be approved."""
        text = (comment or "").strip()
        if not text and self._needs_return_comment(action_id, approved):
            self.notify(RETURN_COMMENT_REQUIRED)
            return False
        ok = self._call(self.client.return_action, action_id, text or None) is not None
        self.refresh_files(action_id)
        self._sync()
        return ok

    def mark_filed(self, action_id: int) -> bool:
        ok = self._call(self.client.mark_filed, action_id) is not None
        self.refresh_files(action_id)
        return ok

    # ── Files ────────────────────────────────────────────────────────────────

    def _uploads_blocked(self, action_id: int) -> str | None:
        card = self.mirror.get(action_id)
        if card is not None and is_completed(card.status):
            return UPLOADS_BLOCKED.format(status=card.status)
        return None

    def upload(self, action_id: int, items: list[UploadItem]) -> list[UploadItem]:
        """Upload each item independently; failures stay retryable.

        A finished action is read-only: nothing is sent and every item fails.
        """
        blocked = self._uploads_blocked(action_id)
        if blocked:
            self.notify(blocked)
            for item in items:
                item.state, item.error = "failed", blocked
                self._progress(item)
            return items
        for item in items:
            self._upload_one(action_id, item)
        self.refresh_files(action_id)
        return items

    def retry(self, action_id: int, item: UploadItem) -> UploadItem:
        if item.state != "done":
            if hasattr(item.fileobj, "seek"):
                item.fileobj.seek(0)
            self.upload(action_id, [item])
        return item

    def _upload_one(self, action_id: int, item: UploadItem) -> None:
        item.state, item.error, item.bytes_sent = "uploading", None, 0
        self._progress(item)

        def on_bytes(sent: int, total: int) -> None:
            item.bytes_sent, item.total = sent, total
            self._progress(item)

        try:
            item.result = self.client.upload_file(
                action_id, item.fileobj, item.filename, item.category, progress=on_bytes,
            )
            item.state = "done"
        except BoardApiError as exc:
            item.state, item.error = "failed", exc.message
            self.notify(f"{item.filename}: {exc.message}")
        self._progress(item)

    def _progress(self, item: UploadItem) -> None:
        if self.on_progress is not None:
            self.on_progress(item)

    def delete_file(self, action_id: int, filename: str) -> bool:
        if not filename.startswith("ACAO_"):
            self.notify(ONLY_FILING_REMOVABLE)
            return False
        ok = self._call(self.client.remove_file, action_id, filename) is not None
        self.refresh_files(action_id)
        return ok
