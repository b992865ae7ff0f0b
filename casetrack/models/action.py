"""
Action domain model.

Models:
    - Action: one legal-case work item moving through the review workflow.

Approval and filing are columns, not statuses:
    approved_at  — presence means "approved"; cleared only by return / unfile
    filed        — may only be true while approved_at is set (CHECK constraint)

Actions are never physically deleted.
"""

from datetime import datetime, timezone

from casetrack.core.statuses import NO_ASSIGNEE_LABEL, NO_CREATOR_LABEL, NOT_STARTED
from casetrack.models import db
from casetrack.models.base import TenantModel


def _iso(value):
    return value.isoformat() if value else None


class Action(TenantModel):
    """Tenant-scoped legal action with its reviewer comment and flags."""

    __tablename__ = "actions"
    __table_args__ = (
        db.CheckConstraint("NOT filed OR approved_at IS NOT NULL", name="ck_actions_filed_requires_approval"),
        db.Index("ix_actions_tenant_status", "tenant_id", "status"),
        db.Index("ix_actions_tenant_assignee", "tenant_id", "assignee_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(
        db.Integer,
        db.ForeignKey("clients.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    assignee_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    creator_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        comment="NULL = created by the system",
    )

    title = db.Column(db.String(60), nullable=False)
    complexity = db.Column(db.String(10), nullable=False, default="Média")
    status = db.Column(db.String(20), nullable=False, default=NOT_STARTED)
    reference_code = db.Column(db.String(40), nullable=True, comment="Court protocol number")
    comment = db.Column(db.String(500), nullable=True, comment="Reviewer comment")

    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    filed = db.Column(db.Boolean, nullable=False, default=False)

    client = db.relationship("Client", lazy="joined")
    assignee = db.relationship("User", foreign_keys=[assignee_id], lazy="joined")
    creator = db.relationship("User", foreign_keys=[creator_id], lazy="joined")

    # ── Helpers ──────────────────────────────────────────────────────────

    @property
    def is_approved(self) -> bool:
        return self.approved_at is not None

    @property
    def assignee_name(self) -> str:
        return self.assignee.full_name if self.assignee else NO_ASSIGNEE_LABEL

    @property
    def creator_name(self) -> str:
        return self.creator.full_name if self.creator else NO_CREATOR_LABEL

    def to_summary(self) -> dict:
        """Card-sized view used by list endpoints and the board."""
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status,
            "complexity": self.complexity,
            "client": self.client.name if self.client else None,
            "client_document": self.client.document_id if self.client else None,
            "reference_code": self.reference_code,
            "assignee_id": self.assignee_id,
            "assignee": self.assignee_name,
            "creator": self.creator_name,
            "comment": self.comment,
            "created_at": _iso(self.created_at),
            "completed_at": _iso(self.completed_at),
            "approved_at": _iso(self.approved_at),
            "filed": bool(self.filed),
        }

    def to_dict(self) -> dict:
        data = self.to_summary()
        data.update({
            "tenant_id": self.tenant_id,
            "client_id": self.client_id,
            "creator_id": self.creator_id,
        })
        return data

    def __repr__(self):
        return f"<Action {self.id}: {self.title!r} [{self.status}]>"
