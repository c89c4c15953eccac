"""
Gate approval models.

Approval holds the CURRENT decision of one approver for one role on one
step; a later decision by the same approver for the same role overwrites
the row. ApprovalEvent is the append-only trail of every decision written,
superseded ones included.
"""

from datetime import datetime, timezone

from segflow.models import db


def _utcnow():
    return datetime.now(timezone.utc)


class Approval(db.Model):
    """Current decision keyed by (step, role, approver)."""

    __tablename__ = "approvals"

    id = db.Column(db.Integer, primary_key=True)
    step_id = db.Column(
        db.Integer,
        db.ForeignKey("steps.id", ondelete="CASCADE"),
        nullable=False,
    )
    role_key = db.Column(db.String(40), nullable=False)
    approver_id = db.Column(
        db.Integer,
        db.ForeignKey("persons.id"),
        nullable=False,
    )
    decision = db.Column(
        db.String(20),
        nullable=False,
        comment="approved | rejected",
    )
    comment = db.Column(db.Text, nullable=True)
    basis = db.Column(
        db.String(20),
        nullable=False,
        comment="person_seat | pool_seat | override",
    )
    decided_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    approver = db.relationship("Person", lazy="joined")

    __table_args__ = (
        db.UniqueConstraint("step_id", "role_key", "approver_id", name="uq_approval_step_role_approver"),
        db.Index("ix_approval_step_decided", "step_id", "decided_at"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "step_id": self.step_id,
            "role_key": self.role_key,
            "approver_id": self.approver_id,
            "approver_name": self.approver.name if self.approver else None,
            "decision": self.decision,
            "comment": self.comment,
            "basis": self.basis,
            "decided_at": self.decided_at.isoformat() if self.decided_at else None,
        }

    def __repr__(self) -> str:
        return f"<Approval step={self.step_id} {self.role_key} by={self.approver_id} {self.decision}>"


class ApprovalEvent(db.Model):
    """Append-only record of a decision write. Never updated."""

    __tablename__ = "approval_events"

    id = db.Column(db.Integer, primary_key=True)
    step_id = db.Column(
        db.Integer,
        db.ForeignKey("steps.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role_key = db.Column(db.String(40), nullable=False)
    approver_id = db.Column(db.Integer, db.ForeignKey("persons.id"), nullable=False)
    approver_name_snapshot = db.Column(db.String(200), nullable=True)
    decision = db.Column(db.String(20), nullable=False)
    comment = db.Column(db.Text, nullable=True)
    basis = db.Column(db.String(20), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "step_id": self.step_id,
            "role_key": self.role_key,
            "approver_id": self.approver_id,
            "approver_name": self.approver_name_snapshot,
            "decision": self.decision,
            "comment": self.comment,
            "basis": self.basis,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
