"""
Action lifecycle service tests.

Tests cover:
  - Creation defaults and validation
  - Status edits and completed_at stamping
  - Approval idempotence, return, filing
  - Reassignment by id / name / unknown user
  - Personal ("mine") status change
  - Tenant isolation of every write
  - Audit trail
"""
import pytest
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from casetrack.core.exceptions import NotFoundError, ValidationError
from casetrack.core.statuses import FINISHED, IN_PROGRESS, NOT_STARTED, RETURNED
from casetrack.models import db
from casetrack.models.action import Action
from casetrack.services import action_lifecycle as lifecycle
from casetrack.services import action_service
from casetrack.services.action_lifecycle import ActionState


@pytest.fixture()
def client_record(default_tenant, make_client):
    return make_client(default_tenant)


@pytest.fixture()
def action(default_tenant, client_record, make_action):
    return make_action(default_tenant, client_record)


def _reload(tenant, action_id):
    db.session.expire_all()
    return action_service.get_action(tenant.id, action_id)


# ═════════════════════════════════════════════════════════════════════════
# CREATE
# ═════════════════════════════════════════════════════════════════════════

class TestCreate:
    def test_defaults(self, default_tenant, action):
        row = _reload(default_tenant, action.id)
        assert row.status == NOT_STARTED
        assert row.approved_at is None
        assert row.filed is False
        assert row.completed_at is None
        assert row.creator_name == "Sistema"
        assert row.assignee_name == "Nenhum"

    def test_complexity_is_normalised(self, default_tenant, client_record, make_action):
        created = make_action(default_tenant, client_record, complexity="medio")
        assert created.complexity == "Média"

    def test_invalid_complexity(self, default_tenant, client_record, make_action):
        with pytest.raises(ValidationError):
            make_action(default_tenant, client_record, complexity="enorme")

    def test_missing_title(self, default_tenant, client_record):
        with pytest.raises(ValidationError) as exc:
            action_service.create_action(
                default_tenant.id, {"title": "  ", "complexity": "Alta", "client_id": client_record.id},
            )
        assert "title" in exc.value.details

    def test_client_from_other_tenant(self, default_tenant, other_tenant, make_client):
        foreign = make_client(other_tenant)
        with pytest.raises(NotFoundError):
            action_service.create_action(
                default_tenant.id, {"title": "X", "complexity": "Alta", "client_id": foreign.id},
            )

    def test_assignee_by_name(self, default_tenant, client_record, make_action, make_user):
        user = make_user(default_tenant, "Bruno Lima")
        created = make_action(default_tenant, client_record, assignee="bruno lima")
        assert created.assignee_id == user.id


# ═════════════════════════════════════════════════════════════════════════
# STATUS
# ═════════════════════════════════════════════════════════════════════════

class TestSetStatus:
    def test_accepts_any_spelling(self, default_tenant, action):
        result = lifecycle.set_status(default_tenant.id, action.id, "em ANDAMENTO")
        assert result["status"] == IN_PROGRESS

    def test_invalid_status(self, default_tenant, action):
        with pytest.raises(ValidationError):
            lifecycle.set_status(default_tenant.id, action.id, "Arquivado")

    def test_completed_at_stamped_once(self, default_tenant, action):
        lifecycle.set_status(default_tenant.id, action.id, FINISHED)
        first = _reload(default_tenant, action.id).completed_at
        assert first is not None

        lifecycle.set_status(default_tenant.id, action.id, FINISHED)
        assert _reload(default_tenant, action.id).completed_at == first

    def test_active_status_clears_completed_at(self, default_tenant, action):
        lifecycle.set_status(default_tenant.id, action.id, FINISHED)
        lifecycle.set_status(default_tenant.id, action.id, RETURNED)
        assert _reload(default_tenant, action.id).completed_at is None

    def test_legacy_value_maps_to_finished_without_approval(self, default_tenant, action):
        result = lifecycle.set_status(default_tenant.id, action.id, "Aprovado")
        assert result["status"] == FINISHED
        assert result["approved_at"] is None
        assert result["filed"] is False

    def test_status_change_keeps_approval(self, default_tenant, action):
        lifecycle.approve(default_tenant.id, action.id)
        result = lifecycle.set_status(default_tenant.id, action.id, IN_PROGRESS)
        assert result["approved_at"] is not None

    def test_cross_tenant_is_not_found(self, other_tenant, action):
        with pytest.raises(NotFoundError):
            lifecycle.set_status(other_tenant.id, action.id, FINISHED)


class TestStatusMine:
    def test_assignee_can_change(self, default_tenant, client_record, make_action, make_user):
        user = make_user(default_tenant)
        mine = make_action(default_tenant, client_record, assignee=user.id)
        result = lifecycle.set_status_mine(default_tenant.id, mine.id, user.id, IN_PROGRESS)
        assert result["status"] == IN_PROGRESS

    def test_other_user_gets_not_found(self, default_tenant, client_record, make_action, make_user):
        owner = make_user(default_tenant, "Ana Souza")
        intruder = make_user(default_tenant, "Bruno Lima")
        mine = make_action(default_tenant, client_record, assignee=owner.id)
        with pytest.raises(NotFoundError):
            lifecycle.set_status_mine(default_tenant.id, mine.id, intruder.id, FINISHED)
        assert _reload(default_tenant, mine.id).status == NOT_STARTED


# ═════════════════════════════════════════════════════════════════════════
# APPROVAL / RETURN / FILING
# ═════════════════════════════════════════════════════════════════════════

class TestApproval:
    def test_approve_is_idempotent(self, default_tenant, action):
        lifecycle.set_status(default_tenant.id, action.id, FINISHED)
        first = lifecycle.approve(default_tenant.id, action.id)
        second = lifecycle.approve(default_tenant.id, action.id)
        assert first["approved_at"] is not None
        assert second["approved_at"] is not None
        assert second["approved_at"] >= first["approved_at"]
        assert second["status"] == FINISHED

    def test_return_clears_approval_keeps_status(self, default_tenant, action):
        lifecycle.set_status(default_tenant.id, action.id, FINISHED)
        lifecycle.approve(default_tenant.id, action.id)
        result = lifecycle.return_action(default_tenant.id, action.id, "falta documento")
        assert result["approved_at"] is None
        assert result["status"] == FINISHED
        assert result["comment"] == "falta documento"

    def test_return_without_comment_keeps_previous(self, default_tenant, action):
        action_service.save_comment(default_tenant.id, action.id, "revisar datas")
        result = lifecycle.return_action(default_tenant.id, action.id)
        assert result["comment"] == "revisar datas"

    def test_filing_requires_approval(self, default_tenant, action):
        with pytest.raises(ValidationError):
            lifecycle.mark_filed(default_tenant.id, action.id)
        assert _reload(default_tenant, action.id).filed is False

    def test_file_then_return_clears_both(self, default_tenant, action):
        lifecycle.approve(default_tenant.id, action.id)
        assert lifecycle.mark_filed(default_tenant.id, action.id)["filed"] is True
        result = lifecycle.return_action(default_tenant.id, action.id, "protocolo errado")
        assert result["filed"] is False
        assert result["approved_at"] is None

    def test_unfile(self, default_tenant, action):
        lifecycle.approve(default_tenant.id, action.id)
        lifecycle.mark_filed(default_tenant.id, action.id)
        result = lifecycle.unfile(default_tenant.id, action.id)
        assert result["filed"] is False
        assert result["approved_at"] is None

    def test_database_rejects_filed_without_approval(self, default_tenant, action):
        with pytest.raises(IntegrityError):
            db.session.execute(update(Action).where(Action.id == action.id).values(filed=True))
            db.session.flush()
        db.session.rollback()

    def test_approved_list(self, default_tenant, client_record, make_action, action):
        other = make_action(default_tenant, client_record, title="Outra")
        lifecycle.approve(default_tenant.id, action.id)
        listed = action_service.list_approved(default_tenant.id)
        assert [a["id"] for a in listed] == [action.id]
        assert listed[0]["filed"] is False
        assert other.id not in [a["id"] for a in listed]


# ═════════════════════════════════════════════════════════════════════════
# REASSIGNMENT
# ═════════════════════════════════════════════════════════════════════════

class TestReassign:
    def test_by_id(self, default_tenant, action, make_user):
        user = make_user(default_tenant)
        assert lifecycle.reassign(default_tenant.id, action.id, user.id)["assignee_id"] == user.id

    def test_by_numeric_string(self, default_tenant, action, make_user):
        user = make_user(default_tenant)
        assert lifecycle.reassign(default_tenant.id, action.id, str(user.id))["assignee_id"] == user.id

    def test_by_name_case_insensitive(self, default_tenant, action, make_user):
        user = make_user(default_tenant, "Ana Souza")
        result = lifecycle.reassign(default_tenant.id, action.id, "  ANA   souza ")
        assert result["assignee_id"] == user.id
        assert result["assignee"] == "Ana Souza"

    def test_unknown_user_keeps_previous(self, default_tenant, action, make_user):
        user = make_user(default_tenant)
        lifecycle.reassign(default_tenant.id, action.id, user.id)
        with pytest.raises(ValidationError):
            lifecycle.reassign(default_tenant.id, action.id, "Fulano de Tal")
        assert _reload(default_tenant, action.id).assignee_id == user.id

    def test_user_from_other_tenant_is_unknown(self, default_tenant, other_tenant, action, make_user):
        foreign = make_user(other_tenant, "Carla Dias")
        with pytest.raises(ValidationError):
            lifecycle.reassign(default_tenant.id, action.id, foreign.id)
        with pytest.raises(ValidationError):
            lifecycle.reassign(default_tenant.id, action.id, "Carla Dias")

    @pytest.mark.parametrize("cleared", [None, "", "Nenhum", "none"])
    def test_clear(self, default_tenant, action, make_user, cleared):
        user = make_user(default_tenant)
        lifecycle.reassign(default_tenant.id, action.id, user.id)
        result = lifecycle.reassign(default_tenant.id, action.id, cleared)
        assert result["assignee_id"] is None
        assert result["assignee"] == "Nenhum"


class TestUpdateAction:
    def test_multiple_fields_in_one_write(self, default_tenant, action, make_user):
        user = make_user(default_tenant)
        result = lifecycle.update_action(
            default_tenant.id, action.id,
            {"status": FINISHED, "assignee": user.id, "complexity": "alta"},
        )
        assert result["status"] == FINISHED
        assert result["assignee_id"] == user.id
        assert result["complexity"] == "Alta"
        assert result["completed_at"] is not None

    def test_rejected_assignee_changes_nothing(self, default_tenant, action):
        with pytest.raises(ValidationError):
            lifecycle.update_action(
                default_tenant.id, action.id, {"status": FINISHED, "assignee": "Ninguém Conhecido"},
            )
        assert _reload(default_tenant, action.id).status == NOT_STARTED

    def test_empty_update(self, default_tenant, action):
        with pytest.raises(ValidationError):
            lifecycle.update_action(default_tenant.id, action.id, {})


# ═════════════════════════════════════════════════════════════════════════
# STATE OBJECT & AUDIT
# ═════════════════════════════════════════════════════════════════════════

class TestActionState:
    def test_filed_requires_approval(self):
        with pytest.raises(ValidationError):
            ActionState(status=FINISHED, approved_at=None, filed=True)

    def test_unknown_status(self):
        with pytest.raises(ValidationError):
            ActionState(status="Arquivado")

    def test_return_comment_rule(self, default_tenant, action):
        assert not ActionState.of(_reload(default_tenant, action.id)).needs_return_comment
        lifecycle.set_status(default_tenant.id, action.id, FINISHED)
        assert ActionState.of(_reload(default_tenant, action.id)).needs_return_comment


class TestAuditTrail:
    def test_history_records_transitions(self, default_tenant, action):
        lifecycle.set_status(default_tenant.id, action.id, FINISHED)
        lifecycle.approve(default_tenant.id, action.id)
        lifecycle.return_action(default_tenant.id, action.id, "falta documento")
        history = action_service.get_history(default_tenant.id, action.id)
        assert [h["action"] for h in history] == [
            "action.create", "action.set_status", "action.approve", "action.return",
        ]
        assert history[1]["diff"]["status"] == {"old": NOT_STARTED, "new": FINISHED}

    def test_history_is_tenant_scoped(self, other_tenant, action):
        with pytest.raises(NotFoundError):
            action_service.get_history(other_tenant.id, action.id)
