"""
Reconciliation — converge the board mirror onto a fresh server snapshot.

One pass, under the mirror lock:
  1. remove mirrored cards whose id is gone from the snapshot or that are
     now approved (approved actions leave the board);
  2. insert unseen, unapproved ids into the column of their status;
  3. for ids on both sides, re-render only the fields that changed, moving
     the card when its status changed.

Running a pass twice against the same snapshot changes nothing the second
time. A stale snapshot simply yields a mirror consistent with that snapshot.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from casetrack.board.mirror import BoardCard, BoardMirror

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    inserted: list[int] = field(default_factory=list)
    updated: dict[int, tuple[str, ...]] = field(default_factory=dict)
    moved: list[int] = field(default_factory=list)
    removed: list[int] = field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return not (self.inserted or self.updated or self.moved or self.removed)


def reconcile(mirror: BoardMirror, snapshot: list[dict]) -> ReconcileResult:
    """Apply one reconciliation pass of *snapshot* (action summaries) to *mirror*."""
    result = ReconcileResult()
    visible: dict[int, BoardCard] = {}
    for summary in snapshot:
        if summary.get("approved_at"):
            continue
        card = BoardCard.from_summary(summary, mirror.columns)
        visible[card.id] = card

    with mirror.lock:
        for action_id in sorted(mirror.ids() - set(visible)):
            mirror.remove(action_id)
            result.removed.append(action_id)

        for action_id, card in visible.items():
            current = mirror.get(action_id)
            if current is None:
                mirror.insert(card)
                result.inserted.append(action_id)
                continue
            old_column = current.column
            changed = mirror.update(card)
            if changed:
                result.updated[action_id] = changed
                if mirror.get(action_id).column != old_column:
                    result.moved.append(action_id)

    if not result.is_noop:
        logger.debug(
            "Reconciled board: +%d ~%d >%d -%d",
            len(result.inserted), len(result.updated), len(result.moved), len(result.removed),
        )
    return result
