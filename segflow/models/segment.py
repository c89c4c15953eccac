"""Segment, Step and RoleSeat models.

A Segment owns an ordered list of Steps and one RoleSeat per role key.
Deleting a segment cascades to its steps and seats, and through the steps
to their approvals and approval events.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from segflow.models import db
from segflow.models.vocabulary import PHASE_LABELS, ROLE_LABELS


def _utcnow():
    return datetime.now(timezone.utc)


class Segment(db.Model):
    """A piece of content moving through the production pipeline."""

    __tablename__ = "segments"

    id = Column(Integer, primary_key=True)
    title = Column(String(300), nullable=False)
    description = Column(Text, nullable=True, default="")
    owner_id = Column(Integer, ForeignKey("persons.id"), nullable=False, index=True)
    anchor_date = Column(Date, nullable=False)  # production date
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    owner = db.relationship("Person", lazy="joined")
    steps = db.relationship(
        "Step",
        backref="segment",
        order_by="Step.sort_order",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    seats = db.relationship(
        "RoleSeat",
        backref="segment",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "owner_id": self.owner_id,
            "owner_name": self.owner.name if self.owner else None,
            "anchor_date": self.anchor_date.isoformat() if self.anchor_date else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class Step(db.Model):
    """One stage of a segment. Gate steps carry the roles that must approve."""

    __tablename__ = "steps"

    id = Column(Integer, primary_key=True)
    segment_id = Column(Integer, ForeignKey("segments.id", ondelete="CASCADE"), nullable=False, index=True)
    key = Column(String(60), nullable=False)  # template key, unique within the segment
    name = Column(String(200), nullable=False)
    phase = Column(String(20), nullable=False)  # pre | production | post | publish
    sort_order = Column(Integer, nullable=False, default=0)
    due_date = Column(Date, nullable=True)
    duration_days = Column(Integer, nullable=False, default=1)
    anchor_date = Column(Date, nullable=True)  # strict pin, overrides computed due date
    status = Column(String(30), nullable=True)  # explicit status; null = derive
    assignee_id = Column(Integer, ForeignKey("persons.id", ondelete="SET NULL"), nullable=True, index=True)
    is_gate = Column(Boolean, nullable=False, default=False)
    gate_roles = Column(JSON, nullable=False, default=list)  # ordered role keys
    gate_opened_at = Column(DateTime(timezone=True), nullable=True)  # start of current approval round
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    assignee = db.relationship("Person", lazy="joined")
    approvals = db.relationship(
        "Approval",
        backref="step",
        lazy="dynamic",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    events = db.relationship(
        "ApprovalEvent",
        backref="step",
        lazy="dynamic",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        UniqueConstraint("segment_id", "key", name="uq_step_segment_key"),
    )

    @property
    def required_roles(self) -> list[str]:
        return list(self.gate_roles or []) if self.is_gate else []

    def to_dict(self):
        return {
            "id": self.id,
            "segment_id": self.segment_id,
            "key": self.key,
            "name": self.name,
            "phase": self.phase,
            "phase_label": PHASE_LABELS.get(self.phase, self.phase),
            "sort_order": self.sort_order,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "duration_days": self.duration_days,
            "anchor_date": self.anchor_date.isoformat() if self.anchor_date else None,
            "explicit_status": self.status,
            "assignee_id": self.assignee_id,
            "assignee_name": self.assignee.name if self.assignee else None,
            "is_gate": self.is_gate,
            "gate_roles": self.required_roles,
        }


class RoleSeat(db.Model):
    """Binding of a role key, within one segment, to a person or a pool.

    person_id and pool_id are never both set: the person binding wins.
    """

    __tablename__ = "segment_seats"

    id = Column(Integer, primary_key=True)
    segment_id = Column(Integer, ForeignKey("segments.id", ondelete="CASCADE"), nullable=False, index=True)
    role_key = Column(String(40), nullable=False)
    person_id = Column(Integer, ForeignKey("persons.id", ondelete="SET NULL"), nullable=True)
    pool_id = Column(Integer, ForeignKey("role_pools.id", ondelete="SET NULL"), nullable=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    person = db.relationship("Person", lazy="joined")
    pool = db.relationship("Pool", lazy="joined")

    __table_args__ = (
        UniqueConstraint("segment_id", "role_key", name="uq_seat_segment_role"),
    )

    @property
    def is_assigned(self) -> bool:
        return self.person_id is not None or self.pool_id is not None

    def to_dict(self):
        return {
            "segment_id": self.segment_id,
            "role_key": self.role_key,
            "role_label": ROLE_LABELS.get(self.role_key, self.role_key),
            "person_id": self.person_id,
            "person_name": self.person.name if self.person else None,
            "pool_id": self.pool_id,
            "pool_name": self.pool.name if self.pool else None,
        }
