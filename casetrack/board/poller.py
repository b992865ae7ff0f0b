"""
Board poller — keeps a BoardMirror converged with the server.

A background thread fetches the filtered action set every ``interval``
seconds and reconciles it into the mirror. ``refocus()`` wakes the thread
early (the window regained focus). Interactions call ``sync_now()`` to
reconcile immediately after a write.

A failed fetch is logged and retried on the next tick; the loop keeps
running until ``stop()``.
"""

from __future__ import annotations

import logging
import threading

from casetrack.board.api_client import BoardApiClient, BoardApiError
from casetrack.board.mirror import BoardMirror
from casetrack.board.reconciler import ReconcileResult, reconcile

logger = logging.getLogger(__name__)

_DEFAULT_INTERVAL = 5.0


class BoardPoller:
    def __init__(self, client: BoardApiClient, mirror: BoardMirror,
                 interval: float = _DEFAULT_INTERVAL) -> None:
        self.client = client
        self.mirror = mirror
        self.interval = interval
        self.last_error: BoardApiError | None = None
        self._stop = threading.Event()
        self._wake = threading.Event()
        self._thread: threading.Thread | None = None

    # ── One pass ─────────────────────────────────────────────────────────────

    def sync_now(self) -> ReconcileResult | None:
        """Fetch and reconcile once. Returns None when the fetch failed."""
        try:
            snapshot = self.client.list_actions()
        except BoardApiError as exc:
            self.last_error = exc
            logger.warning("Board sync failed (tenant=%s): %s",
                           self.client.board_session.tenant_id, exc.message)
            return None
        self.last_error = None
        return reconcile(self.mirror, snapshot)

    # ── Background loop ──────────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="board-poller", daemon=True)
        self._thread.start()
        logger.info("Board poller started interval=%ss tenant=%s",
                    self.interval, self.client.board_session.tenant_id)

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        self._wake.set()
        if self._thread is not None:
            self._thread.join(timeout)
        self._thread = None
        logger.info("Board poller stopped")

    def refocus(self) -> None:
        """Trigger an immediate pass (e.g. the board window regained focus)."""
        self._wake.set()

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.sync_now()
            except Exception:
                logger.exception("Unexpected error during board sync")
            self._wake.wait(self.interval)
            self._wake.clear()
