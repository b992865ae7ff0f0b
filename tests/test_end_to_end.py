"""
End-to-end board tests: BoardApiClient → Flask app → database / fake store.

The requests session is replaced by an adapter over the Flask test client,
so the board talks to the real routes.
"""
import io

import pytest
import requests

from casetrack.board import (
    BoardApiClient,
    BoardApiError,
    BoardMirror,
    BoardPoller,
    BoardSession,
    InteractionController,
    UploadItem,
)
from casetrack.core.statuses import FINISHED, IN_PROGRESS, NOT_STARTED


@pytest.fixture()
def client_record(default_tenant, make_client):
    return make_client(default_tenant)


@pytest.fixture()
def board(default_tenant, http_adapter):
    session = BoardSession("http://localhost", tenant_id=default_tenant.id)
    api = BoardApiClient(session, http=http_adapter)
    mirror = BoardMirror(session.columns)
    poller = BoardPoller(api, mirror)
    notices = []
    controller = InteractionController(api, mirror, poller=poller, notify=notices.append)
    return api, mirror, poller, controller, notices


def _create(api, client_record, title):
    return api.create_action(title=title, complexity="Média", client_id=client_record.id)


# ═════════════════════════════════════════════════════════════════════════
# CONVERGENCE
# ═════════════════════════════════════════════════════════════════════════

class TestBoardConvergence:
    def test_board_follows_server(self, board, client_record):
        api, mirror, poller, controller, notices = board
        first = _create(api, client_record, "Primeira")
        second = _create(api, client_record, "Segunda")

        result = poller.sync_now()
        assert sorted(result.inserted) == [first["id"], second["id"]]
        assert mirror.get(first["id"]).column == NOT_STARTED

        assert controller.move_card(first["id"], IN_PROGRESS) is True
        assert api.get_action(first["id"])["status"] == IN_PROGRESS
        assert poller.sync_now().is_noop

        api.update_action(second["id"], status="Concluído")
        result = poller.sync_now()
        assert result.moved == [second["id"]]
        assert mirror.get(second["id"]).column == FINISHED
        assert notices == []

    def test_approved_action_leaves_board_and_enters_queue(self, board, client_record, client, default_tenant):
        api, mirror, poller, controller, notices = board
        action = _create(api, client_record, "Aprovar")
        poller.sync_now()

        assert controller.approve(action["id"]) is True
        assert action["id"] not in mirror
        queue = client.get("/api/v1/actions/approved",
                           headers={"X-Tenant-ID": str(default_tenant.id)}).get_json()
        assert [a["id"] for a in queue] == [action["id"]]

    def test_approve_then_return_scenario(self, board, client_record):
        api, mirror, poller, controller, notices = board
        action = api.create_action(title="Cobrança", complexity="Baixa", client_id=client_record.id)
        assert action["status"] == NOT_STARTED
        assert action["approved_at"] is None

        api.update_action(action["id"], status="Finalizado")
        poller.sync_now()
        assert controller.approve(action["id"]) is True
        assert action["id"] not in mirror

        assert controller.return_action(action["id"], "", approved=True) is False
        assert controller.return_action(action["id"], "falta documento", approved=True) is True
        fresh = api.get_action(action["id"])
        assert fresh["approved_at"] is None
        assert fresh["status"] == FINISHED
        assert api.get_comment(action["id"]) == "falta documento"

        card = mirror.get(action["id"])
        assert card.column == FINISHED
        assert card.comment == "falta documento"

    def test_server_rejection_is_reported(self, board, client_record):
        api, mirror, poller, controller, notices = board
        action = _create(api, client_record, "Protocolar")
        poller.sync_now()
        assert controller.mark_filed(action["id"]) is False
        assert notices == ["A ação precisa estar aprovada para ser protocolada"]

    def test_mine_scope(self, default_tenant, http_adapter, client_record, make_user):
        owner = make_user(default_tenant, "Ana Souza")
        session = BoardSession("http://localhost", tenant_id=default_tenant.id,
                               user_id=owner.id, scope="mine")
        api = BoardApiClient(session, http=http_adapter)
        mirror = BoardMirror()
        poller = BoardPoller(api, mirror)
        controller = InteractionController(api, mirror, poller=poller)

        mine = api.create_action(title="Minha", complexity="Alta",
                                 client_id=client_record.id, assignee=owner.id)
        api.create_action(title="Outra", complexity="Alta", client_id=client_record.id)
        poller.sync_now()
        assert mirror.ids() == {mine["id"]}

        assert controller.move_card(mine["id"], FINISHED) is True
        assert ("PATCH", f"/api/v1/actions/{mine['id']}/status") in http_adapter.requests


class TestBoardFiles:
    def test_upload_list_delete(self, board, client_record):
        api, mirror, poller, controller, notices = board
        action = _create(api, client_record, "Arquivos")
        panels = []
        controller.on_files = lambda aid, files: panels.append(files)

        items = [UploadItem(io.BytesIO(b"%PDF"), "peca.pdf"),
                 UploadItem(io.BytesIO(b"%PDF"), "contrato.pdf", "CON")]
        controller.upload(action["id"], items)
        assert [i.state for i in items] == ["done", "done"]
        assert [f["name"] for f in panels[-1]["Filing"]] == ["ACAO_peca.pdf"]
        assert [f["name"] for f in panels[-1]["Contract"]] == ["CON_contrato.pdf"]

        assert controller.delete_file(action["id"], "ACAO_peca.pdf") is True
        assert panels[-1]["Filing"] == []

    def test_upload_progress_reaches_total(self, board, client_record, fake_s3):
        api, mirror, poller, controller, notices = board
        action = _create(api, client_record, "Anexo grande")
        sent = []
        controller.on_progress = lambda item: sent.append(item.bytes_sent)
        body = b"%PDF" + b"0" * 20_000
        item = UploadItem(io.BytesIO(body), "grande.pdf")

        controller.upload(action["id"], [item])
        assert item.state == "done"
        assert item.total > len(body)
        assert item.bytes_sent == item.total
        assert all(a <= b for a, b in zip(sent, sent[1:]))
        assert len(sent) > 5
        assert fake_s3.objects[item.result["key"]]["body"] == body

    def test_finished_action_blocks_uploads(self, board, client_record, fake_s3):
        api, mirror, poller, controller, notices = board
        action = _create(api, client_record, "Encerrada")
        api.update_action(action["id"], status=FINISHED)
        poller.sync_now()

        item = UploadItem(io.BytesIO(b"%PDF"), "peca.pdf")
        controller.upload(action["id"], [item])
        assert item.state == "failed"
        assert notices == ["Esta ação está Finalizado. Uploads estão bloqueados."]
        assert fake_s3.objects == {}

    def test_upload_failure_is_retryable(self, board, client_record, fake_s3):
        api, mirror, poller, controller, notices = board
        action = _create(api, client_record, "Falha")
        item = UploadItem(io.BytesIO(b"%PDF"), "peca.pdf")

        fake_s3.fail_with = "SlowDown"
        controller.upload(action["id"], [item])
        assert item.state == "failed"
        assert item.error == "File storage is unavailable, please try again"

        fake_s3.fail_with = None
        controller.retry(action["id"], item)
        assert item.state == "done"
        assert item.result["name"] == "ACAO_peca.pdf"


# ═════════════════════════════════════════════════════════════════════════
# API CLIENT ERRORS
# ═════════════════════════════════════════════════════════════════════════

class _FailingHttp:
    def request(self, *args, **kwargs):
        raise requests.ConnectionError("refused")


class _PlainTextResponse:
    status_code = 503

    def json(self):
        raise ValueError("not json")


class _PlainTextHttp:
    def request(self, *args, **kwargs):
        return _PlainTextResponse()


class TestApiClientErrors:
    def test_not_found(self, board):
        api = board[0]
        with pytest.raises(BoardApiError) as exc_info:
            api.get_action(4242)
        assert exc_info.value.status_code == 404
        assert exc_info.value.code == "ERR_NOT_FOUND"
        assert exc_info.value.message == "Action not found"

    def test_unknown_tenant(self, http_adapter):
        api = BoardApiClient(BoardSession("http://localhost", tenant_id=999), http=http_adapter)
        with pytest.raises(BoardApiError) as exc_info:
            api.list_actions()
        assert exc_info.value.status_code == 401

    def test_network_failure(self):
        api = BoardApiClient(BoardSession("http://localhost", tenant_id=1), http=_FailingHttp())
        with pytest.raises(BoardApiError) as exc_info:
            api.list_actions()
        assert exc_info.value.status_code is None
        assert exc_info.value.message == "Não foi possível contactar o servidor"

    def test_non_json_error(self):
        api = BoardApiClient(BoardSession("http://localhost", tenant_id=1), http=_PlainTextHttp())
        with pytest.raises(BoardApiError) as exc_info:
            api.get_comment(1)
        assert exc_info.value.message == "Erro 503"
