"""
Person / Pool directory service.

Thin persistence layer the seat resolver reads from. Persons are created and
re-roled here but never deleted; pools can be deleted, which detaches their
memberships and clears every seat still bound to them.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from segflow.core.exceptions import ConflictError, NotFoundError, ValidationError
from segflow.models import db
from segflow.models.directory import Person, Pool, PoolMembership
from segflow.models.segment import RoleSeat
from segflow.models.vocabulary import VALID_ORG_ROLES, normalize_role_key
from segflow.utils.helpers import get_or_raise

logger = logging.getLogger(__name__)


# ── People ───────────────────────────────────────────────────────────────────


def get_person(person_id: int) -> Person:
    return get_or_raise(Person, person_id, "Person")


def list_people(include_inactive: bool = False) -> list[Person]:
    stmt = select(Person).order_by(Person.name, Person.id)
    if not include_inactive:
        stmt = stmt.where(Person.is_active.is_(True))
    return list(db.session.execute(stmt).scalars())


def create_person(name: str, org_role: str = "member", email: str | None = None) -> Person:
    """Create a person.

    Raises:
        ValidationError: empty name or unknown org role.
        ConflictError: email already registered.
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    org_role = (org_role or "member").strip().lower()
    if org_role not in VALID_ORG_ROLES:
        raise ValidationError(
            f"Invalid org_role '{org_role}'. Must be one of: {', '.join(sorted(VALID_ORG_ROLES))}",
            details={"org_role": org_role},
        )
    email = (email or "").strip().lower() or None
    if email and db.session.execute(select(Person.id).where(Person.email == email)).scalar_one_or_none():
        raise ConflictError("Person", "email", email)

    person = Person(name=name, org_role=org_role, email=email)
    db.session.add(person)
    db.session.commit()
    logger.info("Person created", extra={"person_id": person.id})
    return person


def update_person(person_id: int, org_role: str | None = None, is_active: bool | None = None,
                  name: str | None = None) -> Person:
    person = get_person(person_id)
    if org_role is not None:
        org_role = org_role.strip().lower()
        if org_role not in VALID_ORG_ROLES:
            raise ValidationError(f"Invalid org_role '{org_role}'", details={"org_role": org_role})
        person.org_role = org_role
    if is_active is not None:
        person.is_active = bool(is_active)
    if name is not None:
        if not name.strip():
            raise ValidationError("name cannot be empty", details={"name": "required"})
        person.name = name.strip()
    db.session.commit()
    logger.info("Person updated", extra={"person_id": person.id})
    return person


# ── Pools ────────────────────────────────────────────────────────────────────


def get_pool(pool_id: int) -> Pool:
    return get_or_raise(Pool, pool_id, "Pool")


def list_pools(role_key: str | None = None) -> list[Pool]:
    stmt = select(Pool).order_by(Pool.role_key, Pool.name, Pool.id)
    if role_key is not None:
        normalized = normalize_role_key(role_key)
        if normalized is None:
            raise ValidationError(f"Unknown role '{role_key}'", details={"role_key": role_key})
        stmt = stmt.where(Pool.role_key == normalized)
    return list(db.session.execute(stmt).scalars())


def create_pool(name: str, role_key: str) -> Pool:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    normalized = normalize_role_key(role_key)
    if normalized is None:
        raise ValidationError(f"Unknown role '{role_key}'", details={"role_key": role_key})

    pool = Pool(name=name, role_key=normalized)
    db.session.add(pool)
    db.session.commit()
    logger.info("Pool created", extra={"pool_id": pool.id, "role_key": normalized})
    return pool


def delete_pool(pool_id: int) -> None:
    """Delete a pool, its memberships, and unbind every seat pointing at it."""
    pool = get_pool(pool_id)
    seats = db.session.execute(select(RoleSeat).where(RoleSeat.pool_id == pool.id)).scalars().all()
    for seat in seats:
        seat.pool = None
    db.session.delete(pool)
    db.session.commit()
    logger.info("Pool deleted", extra={"pool_id": pool_id})


def list_pool_members(pool_id: int) -> list[Person]:
    get_pool(pool_id)
    stmt = (
        select(Person)
        .join(PoolMembership, PoolMembership.person_id == Person.id)
        .where(PoolMembership.pool_id == pool_id)
        .order_by(Person.name, Person.id)
    )
    return list(db.session.execute(stmt).scalars())


def pool_ids_for_person(person_id: int) -> set[int]:
    stmt = select(PoolMembership.pool_id).where(PoolMembership.person_id == person_id)
    return set(db.session.execute(stmt).scalars())


def add_pool_member(pool_id: int, person_id: int) -> PoolMembership:
    """Add a person to a pool. Adding an existing member is a no-op."""
    get_pool(pool_id)
    get_person(person_id)
    existing = db.session.execute(
        select(PoolMembership).where(
            PoolMembership.pool_id == pool_id,
            PoolMembership.person_id == person_id,
        )
    ).scalar_one_or_none()
    if existing:
        return existing

    membership = PoolMembership(pool_id=pool_id, person_id=person_id)
    try:
        with db.session.begin_nested():
            db.session.add(membership)
    except IntegrityError:
        # Concurrent add won the race
        membership = db.session.execute(
            select(PoolMembership).where(
                PoolMembership.pool_id == pool_id,
                PoolMembership.person_id == person_id,
            )
        ).scalar_one()
    db.session.commit()
    logger.info("Pool member added", extra={"pool_id": pool_id, "person_id": person_id})
    return membership


def remove_pool_member(pool_id: int, person_id: int) -> None:
    get_pool(pool_id)
    membership = db.session.execute(
        select(PoolMembership).where(
            PoolMembership.pool_id == pool_id,
            PoolMembership.person_id == person_id,
        )
    ).scalar_one_or_none()
    if membership is None:
        raise NotFoundError("PoolMembership", f"{pool_id}/{person_id}")
    db.session.delete(membership)
    db.session.commit()
    logger.info("Pool member removed", extra={"pool_id": pool_id, "person_id": person_id})
