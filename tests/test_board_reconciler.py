"""
Board mirror and reconciliation tests (no HTTP).

Tests cover:
  - Bootstrap from an empty mirror
  - Convergence after server-side changes
  - Idempotence of a repeated pass
  - Approved and deleted actions leaving the board
  - Unknown statuses landing in the first column
  - Renderer notifications
"""
import pytest

from casetrack.board.mirror import BoardCard, BoardMirror, BoardRenderer
from casetrack.board.reconciler import reconcile
from casetrack.board.session import BoardSession
from casetrack.core.statuses import FINISHED, IN_PROGRESS, NOT_STARTED, RETURNED, STATUSES


def _summary(action_id, status=NOT_STARTED, **extra):
    data = {
        "id": action_id,
        "status": status,
        "title": f"Ação {action_id}",
        "client": "José da Silva",
        "reference_code": None,
        "creator": "Sistema",
        "created_at": f"2024-05-0{action_id}T10:00:00+00:00",
        "comment": None,
        "approved_at": None,
    }
    data.update(extra)
    return data


def _columns(mirror):
    return {col: [c.id for c in cards] for col, cards in mirror.as_columns().items()}


class RecordingRenderer(BoardRenderer):
    def __init__(self):
        self.events = []

    def on_insert(self, card):
        self.events.append(("insert", card.id))

    def on_update(self, card, changed):
        self.events.append(("update", card.id, changed))

    def on_move(self, card, old_column):
        self.events.append(("move", card.id, old_column, card.column))

    def on_remove(self, card):
        self.events.append(("remove", card.id))


# ═════════════════════════════════════════════════════════════════════════
# RECONCILE
# ═════════════════════════════════════════════════════════════════════════

class TestReconcile:
    def test_bootstrap(self):
        mirror = BoardMirror()
        result = reconcile(mirror, [_summary(1), _summary(2, IN_PROGRESS), _summary(3)])
        assert sorted(result.inserted) == [1, 2, 3]
        assert _columns(mirror) == {
            NOT_STARTED: [3, 1], IN_PROGRESS: [2], FINISHED: [], RETURNED: [],
        }

    def test_second_pass_is_noop(self):
        mirror = BoardMirror()
        snapshot = [_summary(1), _summary(2, FINISHED)]
        reconcile(mirror, snapshot)
        assert reconcile(mirror, snapshot).is_noop

    def test_converges_to_snapshot(self):
        mirror = BoardMirror()
        reconcile(mirror, [_summary(1), _summary(2), _summary(3)])

        result = reconcile(mirror, [
            _summary(1, FINISHED),
            _summary(2, comment="revisar"),
            _summary(4, RETURNED),
        ])
        assert result.removed == [3]
        assert result.inserted == [4]
        assert result.moved == [1]
        assert result.updated == {1: ("status",), 2: ("comment",)}
        assert _columns(mirror) == {
            NOT_STARTED: [2], IN_PROGRESS: [], FINISHED: [1], RETURNED: [4],
        }
        assert mirror.get(2).comment == "revisar"

    def test_approved_actions_leave_the_board(self):
        mirror = BoardMirror()
        reconcile(mirror, [_summary(1, FINISHED), _summary(2)])
        result = reconcile(mirror, [
            _summary(1, FINISHED, approved_at="2024-05-03T09:00:00+00:00"),
            _summary(2),
        ])
        assert result.removed == [1]
        assert 1 not in mirror
        assert len(mirror) == 1

    def test_approved_never_inserted(self):
        mirror = BoardMirror()
        reconcile(mirror, [_summary(1, approved_at="2024-05-03T09:00:00+00:00")])
        assert len(mirror) == 0

    def test_empty_snapshot_clears_board(self):
        mirror = BoardMirror()
        reconcile(mirror, [_summary(1), _summary(2)])
        result = reconcile(mirror, [])
        assert result.removed == [1, 2]
        assert len(mirror) == 0

    def test_unknown_status_goes_to_first_column(self):
        mirror = BoardMirror()
        reconcile(mirror, [_summary(1, "Arquivado")])
        assert mirror.get(1).column == NOT_STARTED
        assert mirror.get(1).status == "Arquivado"

    def test_legacy_status_maps_to_finished_column(self):
        mirror = BoardMirror()
        reconcile(mirror, [_summary(1, "Concluído")])
        assert mirror.get(1).column == FINISHED

    def test_custom_columns(self):
        session = BoardSession("http://x", tenant_id=1, columns=(IN_PROGRESS, FINISHED))
        mirror = BoardMirror(session.columns)
        reconcile(mirror, [_summary(1), _summary(2, FINISHED)])
        assert _columns(mirror) == {IN_PROGRESS: [1], FINISHED: [2]}

    def test_every_card_in_exactly_one_column(self):
        mirror = BoardMirror()
        reconcile(mirror, [_summary(i, STATUSES[i % 4]) for i in range(1, 8)])
        placed = [cid for ids in _columns(mirror).values() for cid in ids]
        assert sorted(placed) == sorted(mirror.ids())


# ═════════════════════════════════════════════════════════════════════════
# MIRROR
# ═════════════════════════════════════════════════════════════════════════

class TestMirror:
    def test_renderer_sees_only_changes(self):
        renderer = RecordingRenderer()
        mirror = BoardMirror(renderer=renderer)
        reconcile(mirror, [_summary(1)])
        reconcile(mirror, [_summary(1, IN_PROGRESS, title="Novo título")])
        reconcile(mirror, [])
        assert renderer.events == [
            ("insert", 1),
            ("update", 1, ("status", "title")),
            ("move", 1, NOT_STARTED, IN_PROGRESS),
            ("remove", 1),
        ]

    def test_optimistic_move(self):
        renderer = RecordingRenderer()
        mirror = BoardMirror(renderer=renderer)
        mirror.insert(BoardCard.from_summary(_summary(1)))
        previous = mirror.move(1, FINISHED)
        assert previous.column == NOT_STARTED
        assert mirror.get(1).column == FINISHED
        assert renderer.events[-1] == ("move", 1, NOT_STARTED, FINISHED)

    def test_move_unknown_card(self):
        assert BoardMirror().move(99, FINISHED) is None

    def test_server_truth_restores_rejected_move(self):
        mirror = BoardMirror()
        reconcile(mirror, [_summary(1)])
        mirror.move(1, FINISHED)
        result = reconcile(mirror, [_summary(1)])
        assert result.moved == [1]
        assert mirror.get(1).column == NOT_STARTED

    def test_card_diff(self):
        a = BoardCard.from_summary(_summary(1))
        b = BoardCard.from_summary(_summary(1, reference_code="0001234-56"))
        assert a.diff(b) == ("reference_code",)
        assert a.diff(a) == ()

    def test_from_summary_requires_id(self):
        with pytest.raises(KeyError):
            BoardCard.from_summary({"status": NOT_STARTED})


class TestBoardSession:
    def test_headers_and_params(self):
        session = BoardSession("http://host/", tenant_id=3, user_id=7, scope="mine", status="Finalizado")
        assert session.api_root == "http://host/api/v1"
        assert session.headers() == {"X-Tenant-ID": "3", "X-User-ID": "7"}
        assert session.list_params() == {"scope": "mine", "status": "Finalizado"}

    @pytest.mark.parametrize("kwargs", [
        {"tenant_id": 0},
        {"tenant_id": None},
        {"tenant_id": True},
        {"tenant_id": 1, "scope": "mine"},
        {"tenant_id": 1, "scope": "everything"},
        {"tenant_id": 1, "columns": ()},
    ])
    def test_invalid_sessions(self, kwargs):
        with pytest.raises(ValueError):
            BoardSession("http://host", **kwargs)
