"""
Person / Pool directory models.

A Pool is a named set of interchangeable people that services exactly one
role key; any current member may satisfy a seat bound to the pool.
Persons are never hard-deleted by the pipeline; deactivate them instead.
"""

from datetime import datetime, timezone

from segflow.models import db
from segflow.models.vocabulary import OrgRole


def _utcnow():
    return datetime.now(timezone.utc)


class Person(db.Model):
    """Someone who can hold seats, own segments and record decisions."""

    __tablename__ = "persons"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(255), nullable=True, unique=True)
    org_role = db.Column(
        db.String(20),
        nullable=False,
        default=OrgRole.MEMBER.value,
        comment="executive | associate | member",
    )
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "org_role": self.org_role,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<Person #{self.id} {self.name} ({self.org_role})>"


class Pool(db.Model):
    """Named group of people servicing a single role key."""

    __tablename__ = "role_pools"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    role_key = db.Column(
        db.String(40),
        nullable=False,
        index=True,
        comment="script_editor | content_strategist | director | post_supervisor | producer | publisher",
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    memberships = db.relationship(
        "PoolMembership",
        backref="pool",
        lazy="select",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def member_ids(self) -> list[int]:
        return [m.person_id for m in self.memberships]

    def to_dict(self, include_members: bool = False) -> dict:
        d = {
            "id": self.id,
            "name": self.name,
            "role_key": self.role_key,
            "member_count": len(self.memberships),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_members:
            d["members"] = [m.to_dict() for m in self.memberships]
        return d

    def __repr__(self) -> str:
        return f"<Pool #{self.id} {self.name} [{self.role_key}]>"


class PoolMembership(db.Model):
    """Link between a pool and a person. Removing it never touches the person."""

    __tablename__ = "role_pool_members"

    id = db.Column(db.Integer, primary_key=True)
    pool_id = db.Column(
        db.Integer,
        db.ForeignKey("role_pools.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    person_id = db.Column(
        db.Integer,
        db.ForeignKey("persons.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    person = db.relationship("Person", lazy="joined")

    __table_args__ = (
        db.UniqueConstraint("pool_id", "person_id", name="uq_pool_member"),
    )

    def to_dict(self) -> dict:
        return {
            "pool_id": self.pool_id,
            "person_id": self.person_id,
            "name": self.person.name if self.person else None,
            "org_role": self.person.org_role if self.person else None,
        }
