"""
Board client — a local mirror of the tenant's action board kept in sync
with the server by periodic reconciliation.

Usage:
    from casetrack.board import BoardApiClient, BoardMirror, BoardPoller, BoardSession

    session = BoardSession(base_url="http://localhost:5000", tenant_id=3, user_id=12)
    client = BoardApiClient(session)
    mirror = BoardMirror(session.columns)
    poller = BoardPoller(client, mirror, interval=5)
    poller.start()
"""

from casetrack.board.api_client import BoardApiClient, BoardApiError
from casetrack.board.interaction import InteractionController, UploadItem
from casetrack.board.mirror import BoardCard, BoardMirror
from casetrack.board.poller import BoardPoller
from casetrack.board.reconciler import ReconcileResult, reconcile
from casetrack.board.session import BoardSession

__all__ = [
    "BoardApiClient",
    "BoardApiError",
    "BoardCard",
    "BoardMirror",
    "BoardPoller",
    "BoardSession",
    "InteractionController",
    "ReconcileResult",
    "UploadItem",
    "reconcile",
]
