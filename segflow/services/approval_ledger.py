"""
Approval ledger: idempotent decision store plus append-only history.

Design decisions:
    - One Approval row per (step, role, approver); a repeat decision
      overwrites it.  Different approvers may each hold a row for the same
      role (pool members racing).
    - Every write also appends an ApprovalEvent, so superseded decisions
      remain visible in history.
    - "Latest per role" picks the most recent decided_at across ALL
      approvers for that role; equal timestamps fall back to the higher id.
    - The insert runs inside a SAVEPOINT so that a concurrent writer hitting
      the unique constraint first turns this call into an update.

Callers own the transaction: nothing here commits.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from segflow.models import db
from segflow.models.approval import Approval, ApprovalEvent
from segflow.models.directory import Person
from segflow.models.vocabulary import EligibilityBasis

logger = logging.getLogger(__name__)


def _find(step_id: int, role_key: str, approver_id: int) -> Approval | None:
    return db.session.execute(
        select(Approval).where(
            Approval.step_id == step_id,
            Approval.role_key == role_key,
            Approval.approver_id == approver_id,
        )
    ).scalar_one_or_none()


def record(
    step_id: int,
    role_key: str,
    approver_id: int,
    decision: str,
    comment: str | None = None,
    basis: str = EligibilityBasis.PERSON_SEAT.value,
    decided_at: datetime | None = None,
) -> Approval:
    """Upsert the decision for (step, role, approver) and append an event."""
    decided_at = decided_at or datetime.now(timezone.utc)
    comment = (comment or "").strip() or None

    inserted = False
    approval = _find(step_id, role_key, approver_id)
    if approval is None:
        candidate = Approval(
            step_id=step_id,
            role_key=role_key,
            approver_id=approver_id,
            decision=decision,
            comment=comment,
            basis=basis,
            decided_at=decided_at,
        )
        try:
            with db.session.begin_nested():
                db.session.add(candidate)
            approval = candidate
            inserted = True
        except IntegrityError:
            logger.debug("Approval insert raced step=%s role=%s; updating", step_id, role_key)
            approval = _find(step_id, role_key, approver_id)

    if not inserted:
        approval.decision = decision
        approval.comment = comment
        approval.basis = basis
        approval.decided_at = decided_at

    approver = db.session.get(Person, approver_id)
    db.session.add(ApprovalEvent(
        step_id=step_id,
        role_key=role_key,
        approver_id=approver_id,
        approver_name_snapshot=approver.name if approver else None,
        decision=decision,
        comment=comment,
        basis=basis,
        created_at=decided_at,
    ))
    db.session.flush()
    return approval


def current_decisions(step_id: int, since: datetime | None = None) -> list[Approval]:
    """Current (per-approver) rows for a step, newest first."""
    stmt = select(Approval).where(Approval.step_id == step_id)
    if since is not None:
        stmt = stmt.where(Approval.decided_at >= since)
    stmt = stmt.order_by(Approval.decided_at.desc(), Approval.id.desc())
    return list(db.session.execute(stmt).scalars())


def latest_per_role(step_id: int, since: datetime | None = None) -> dict[str, Approval]:
    """Most recent decision per role across all approvers.

    Roles without any decision (at or after ``since``) are absent.
    """
    latest: dict[str, Approval] = {}
    for approval in current_decisions(step_id, since=since):
        latest.setdefault(approval.role_key, approval)
    return latest


def history(step_id: int) -> list[ApprovalEvent]:
    """Every decision written for the step, newest first."""
    stmt = (
        select(ApprovalEvent)
        .where(ApprovalEvent.step_id == step_id)
        .order_by(ApprovalEvent.created_at.desc(), ApprovalEvent.id.desc())
    )
    return list(db.session.execute(stmt).scalars())
