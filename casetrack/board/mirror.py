"""
Board mirror — the client-local set of cards grouped into status columns.

The mirror is owned by one board session. Every mutation takes the
mirror's re-entrant lock, so a reconciliation pass and a user interaction
never interleave half-way. A renderer (optional) is told about each
insert / update / move / remove so a UI can patch only what changed.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, fields, replace

from casetrack.core.statuses import STATUSES, column_for

logger = logging.getLogger(__name__)

# Card fields compared during reconciliation (column is derived from status)
CARD_FIELDS = ("status", "title", "client", "reference_code", "creator", "created_at", "comment")


@dataclass(frozen=True)
class BoardCard:
    id: int
    status: str
    title: str = ""
    client: str | None = None
    reference_code: str | None = None
    creator: str | None = None
    created_at: str | None = None
    comment: str | None = None
    column: str = STATUSES[0]

    @classmethod
    def from_summary(cls, summary: dict, columns=STATUSES) -> BoardCard:
        """Build a card from one action summary returned by the server."""
        known = {f.name for f in fields(cls)} - {"column"}
        values = {k: summary.get(k) for k in known}
        values["id"] = int(summary["id"])
        values["status"] = summary.get("status") or ""
        values["title"] = summary.get("title") or ""
        return cls(**values, column=column_for(values["status"], columns))

    def diff(self, other: BoardCard) -> tuple[str, ...]:
        """Names of CARD_FIELDS whose values differ between the two cards."""
        return tuple(name for name in CARD_FIELDS if getattr(self, name) != getattr(other, name))


class BoardRenderer:
    """No-op renderer; subclass and override what the UI needs."""

    def on_insert(self, card: BoardCard) -> None:
        pass

    def on_update(self, card: BoardCard, changed: tuple[str, ...]) -> None:
        pass

    def on_move(self, card: BoardCard, old_column: str) -> None:
        pass

    def on_remove(self, card: BoardCard) -> None:
        pass


class BoardMirror:
    """Cards keyed by action id, each placed in exactly one column."""

    def __init__(self, columns=STATUSES, renderer: BoardRenderer | None = None) -> None:
        self.columns = tuple(columns)
        self.renderer = renderer or BoardRenderer()
        self.lock = threading.RLock()
        self._cards: dict[int, BoardCard] = {}

    # ── Reads ────────────────────────────────────────────────────────────────

    def __contains__(self, action_id) -> bool:
        return action_id in self._cards

    def __len__(self) -> int:
        return len(self._cards)

    def get(self, action_id: int) -> BoardCard | None:
        return self._cards.get(action_id)

    def ids(self) -> set[int]:
        with self.lock:
            return set(self._cards)

    def column_cards(self, column: str) -> list[BoardCard]:
        """Cards of *column*, newest first."""
        with self.lock:
            cards = [c for c in self._cards.values() if c.column == column]
        return sorted(cards, key=lambda c: (c.created_at or "", c.id), reverse=True)

    def as_columns(self) -> dict[str, list[BoardCard]]:
        with self.lock:
            return {column: self.column_cards(column) for column in self.columns}

    # ── Mutations ────────────────────────────────────────────────────────────

    def insert(self, card: BoardCard) -> BoardCard:
        with self.lock:
            card = replace(card, column=column_for(card.status, self.columns))
            self._cards[card.id] = card
            self.renderer.on_insert(card)
            return card

    def update(self, fresh: BoardCard) -> tuple[str, ...]:
        """Re-render only the fields that changed. Returns their names.

        A status change relocates the card to its new column.
        """
        with self.lock:
            current = self._cards.get(fresh.id)
            if current is None:
                self.insert(fresh)
                return CARD_FIELDS
            changed = current.diff(fresh)
            if not changed:
                return ()
            updated = replace(current, **{name: getattr(fresh, name) for name in changed})
            if "status" in changed:
                updated = replace(updated, column=column_for(updated.status, self.columns))
            self._cards[fresh.id] = updated
            self.renderer.on_update(updated, changed)
            if updated.column != current.column:
                self.renderer.on_move(updated, current.column)
            return changed

    def move(self, action_id: int, status: str) -> BoardCard | None:
        """Optimistic local status change (drag and drop). Returns the previous card."""
        with self.lock:
            current = self._cards.get(action_id)
            if current is None:
                return None
            moved = replace(current, status=status, column=column_for(status, self.columns))
            self._cards[action_id] = moved
            if moved.column != current.column:
                self.renderer.on_move(moved, current.column)
            else:
                self.renderer.on_update(moved, ("status",))
            return current

    def remove(self, action_id: int) -> BoardCard | None:
        with self.lock:
            card = self._cards.pop(action_id, None)
            if card is not None:
                self.renderer.on_remove(card)
            return card
