"""
Role seat directory: who may act for a role within a segment.

A seat binds one role key, within one segment, to a person, a pool, or
nothing. Precedence is absolute: when both are supplied the person binding
is stored and the pool binding cleared.

Eligibility is a pure function of the seat snapshot (``seat_basis``); the
service functions only load that snapshot. The organizational override
(executives and associates) is a separate check, never folded into
``is_eligible``.
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from segflow.core.exceptions import ConflictError, NotFoundError, ValidationError
from segflow.models import db
from segflow.models.directory import Person, Pool
from segflow.models.segment import RoleSeat, Segment
from segflow.models.vocabulary import LEADER_ORG_ROLES, EligibilityBasis, normalize_role_key
from segflow.services import directory_service
from segflow.utils.helpers import get_or_raise

logger = logging.getLogger(__name__)


# ── Pure eligibility rules ───────────────────────────────────────────────────


def seat_basis(
    person_id: int | None,
    pool_id: int | None,
    actor_id: int | None,
    actor_pool_ids: set[int] | frozenset[int],
) -> str | None:
    """Return which binding admits ``actor_id`` to a seat, or None.

    Person binding wins; an unassigned seat never admits anyone.
    """
    if actor_id is None:
        return None
    if person_id is not None:
        return EligibilityBasis.PERSON_SEAT.value if person_id == actor_id else None
    if pool_id is not None and pool_id in actor_pool_ids:
        return EligibilityBasis.POOL_SEAT.value
    return None


def seat_admits(person_id, pool_id, actor_id, actor_pool_ids) -> bool:
    return seat_basis(person_id, pool_id, actor_id, actor_pool_ids) is not None


def has_org_override(person: Person | None) -> bool:
    """Executives and associates may act for any gate."""
    return bool(person and person.is_active and person.org_role in LEADER_ORG_ROLES)


# ── Lookups ──────────────────────────────────────────────────────────────────


def _require_role(role_key: str) -> str:
    normalized = normalize_role_key(role_key)
    if normalized is None:
        raise ValidationError(f"Unknown role '{role_key}'", details={"role_key": role_key})
    return normalized


def get_seat(segment_id: int, role_key: str) -> RoleSeat | None:
    role_key = _require_role(role_key)
    return db.session.execute(
        select(RoleSeat).where(RoleSeat.segment_id == segment_id, RoleSeat.role_key == role_key)
    ).scalar_one_or_none()


def list_seats(segment_id: int) -> dict[str, RoleSeat]:
    get_or_raise(Segment, segment_id, "Segment")
    seats = db.session.execute(
        select(RoleSeat).where(RoleSeat.segment_id == segment_id).order_by(RoleSeat.role_key)
    ).scalars()
    return {s.role_key: s for s in seats}


def resolve_binding(role_key: str, person_id: int | None, pool_id: int | None) -> tuple[int | None, int | None]:
    """Validate a requested binding and apply person-over-pool precedence.

    Raises:
        NotFoundError: person or pool does not exist.
        ConflictError: pool services a different role.
    """
    if person_id is not None:
        get_or_raise(Person, person_id, "Person")
        if pool_id is not None:
            logger.debug("Seat %s given both person and pool; person wins", role_key)
        return person_id, None
    if pool_id is not None:
        pool = get_or_raise(Pool, pool_id, "Pool")
        if pool.role_key != role_key:
            raise ConflictError(
                "Pool",
                "role_key",
                pool.role_key,
                message=f"Pool '{pool.name}' services '{pool.role_key}', not '{role_key}'",
            )
        return None, pool_id
    return None, None


def set_seat(
    segment_id: int,
    role_key: str,
    person_id: int | None = None,
    pool_id: int | None = None,
    *,
    commit: bool = True,
) -> RoleSeat:
    """Bind a seat to a person or a pool. Person takes precedence.

    Re-setting an identical binding performs no write.
    """
    get_or_raise(Segment, segment_id, "Segment")
    role_key = _require_role(role_key)
    person_id, pool_id = resolve_binding(role_key, person_id, pool_id)

    seat = get_seat(segment_id, role_key)
    if seat is not None and seat.person_id == person_id and seat.pool_id == pool_id:
        logger.debug("Seat unchanged segment=%s role=%s", segment_id, role_key)
        return seat

    if seat is None:
        seat = RoleSeat(segment_id=segment_id, role_key=role_key)
        db.session.add(seat)
    seat.person_id = person_id
    seat.pool_id = pool_id
    if commit:
        db.session.commit()
    logger.info(
        "Seat set",
        extra={
            "segment_id": segment_id,
            "role_key": role_key,
            "person_id": person_id,
            "pool_id": pool_id,
        },
    )
    return seat


def eligibility_basis(segment_id: int, role_key: str, actor_id: int) -> str | None:
    """Return the seat basis admitting ``actor_id``, or None."""
    seat = get_seat(segment_id, role_key)
    if seat is None or not seat.is_assigned:
        return None
    actor_pools = directory_service.pool_ids_for_person(actor_id) if seat.pool_id is not None else set()
    return seat_basis(seat.person_id, seat.pool_id, actor_id, actor_pools)


def is_eligible(segment_id: int, role_key: str, actor_id: int) -> bool:
    return eligibility_basis(segment_id, role_key, actor_id) is not None


def describe_eligibility(segment_id: int, role_key: str, actor_id: int) -> dict:
    """Eligibility facts for one actor, including the separate override flag."""
    get_or_raise(Segment, segment_id, "Segment")
    actor = db.session.get(Person, actor_id)
    if actor is None:
        raise NotFoundError("Person", actor_id)
    basis = eligibility_basis(segment_id, role_key, actor_id)
    return {
        "segment_id": segment_id,
        "role_key": _require_role(role_key),
        "actor_id": actor_id,
        "eligible": basis is not None,
        "basis": basis,
        "org_override": has_org_override(actor),
    }
