"""
Gate engine: eligibility, decisions, derived step status, lifecycle actions.

Derivation (gate steps, over decisions of the current approval round):
    1. any required role's latest decision is ``rejected``  → rejected
    2. every required role's latest decision is ``approved`` → complete
    3. any decision recorded, or an open explicit marker     → in_progress
    4. otherwise                                             → not_started

An explicit status wins over the derived one, except that the open markers
``in_progress`` / ``awaiting_approvals`` on a gate step yield to a terminal
derived status, so a gate sent for approvals closes itself once resolved.
Non-gate steps only ever use their explicit status.

``reopen`` and ``reset`` start a new approval round (``gate_opened_at``):
earlier decisions stay in the ledger but stop counting.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select

from segflow.core.exceptions import IneligibleError, NotFoundError, ValidationError
from segflow.models import db
from segflow.models.approval import Approval
from segflow.models.directory import Person
from segflow.models.segment import Segment, Step
from segflow.models.vocabulary import (
    OPEN_STATUSES,
    TERMINAL_STATUSES,
    VALID_DECISIONS,
    Decision,
    EligibilityBasis,
    StepStatus,
    normalize_role_key,
    role_label,
    status_label,
)
from segflow.services import approval_ledger, seat_service
from segflow.utils.helpers import get_or_raise

logger = logging.getLogger(__name__)


# ── Lifecycle actions ────────────────────────────────────────────────────────

_NS = StepStatus.NOT_STARTED.value
_IP = StepStatus.IN_PROGRESS.value
_AA = StepStatus.AWAITING_APPROVALS.value
_CR = StepStatus.CHANGES_REQUESTED.value
_OK = StepStatus.COMPLETE.value
_RJ = StepStatus.REJECTED.value

# action -> (allowed current statuses, resulting explicit status)
ACTION_TRANSITIONS = {
    "start":              ([_NS], _IP),
    "send_for_approvals": ([_IP, _CR], _AA),
    "request_changes":    ([_AA], _CR),
    "mark_complete":      ([_IP, _AA], _OK),
    "reopen":             ([_CR, _RJ, _OK], _IP),
    "reset":              ([_NS, _IP, _AA, _CR, _OK, _RJ], None),
}

PRIVILEGED_ACTIONS = frozenset({"reopen", "reset"})
GATE_ONLY_ACTIONS = frozenset({"send_for_approvals", "request_changes"})
NON_GATE_ACTIONS = frozenset({"mark_complete"})
NEW_ROUND_ACTIONS = frozenset({"reopen", "reset"})


def validate_action(current_status: str, action: str) -> bool:
    """Return True if ``action`` may be applied to a step in ``current_status``."""
    allowed, _ = ACTION_TRANSITIONS.get(action, ([], None))
    return current_status in allowed


# ── Pure derivation ──────────────────────────────────────────────────────────


def derive_status(required_roles: list[str], latest: dict[str, str], explicit: str | None = None) -> str:
    """Derive a gate step's status from the latest decision per role.

    Args:
        required_roles: ordered role keys the gate requires.
        latest: role key -> latest decision value in the current round.
        explicit: the step's explicit status, if any.
    """
    decisions = [latest.get(role) for role in required_roles]
    if any(d == Decision.REJECTED.value for d in decisions):
        return _RJ
    if required_roles and all(d == Decision.APPROVED.value for d in decisions):
        return _OK
    if any(d is not None for d in decisions) or explicit in OPEN_STATUSES:
        return _IP
    return _NS


def resolve_effective(is_gate: bool, explicit: str | None, derived: str) -> str:
    if not is_gate:
        return explicit or _NS
    if explicit is None:
        return derived
    if explicit in OPEN_STATUSES and derived in TERMINAL_STATUSES:
        return derived
    return explicit


def progress_pct(approved: int, total: int) -> int:
    """Percentage rounded half-up."""
    if total <= 0:
        return 0
    return (approved * 200 + total) // (2 * total)


# ── Step state ───────────────────────────────────────────────────────────────


@dataclass
class StepState:
    step: Step
    status: str
    latest: dict[str, Approval]
    approved_count: int
    required_count: int

    @property
    def progress(self) -> int:
        return progress_pct(self.approved_count, self.required_count)

    def to_dict(self) -> dict:
        d = self.step.to_dict()
        d.update({
            "status": self.status,
            "status_label": status_label(self.status),
            "approved_count": self.approved_count,
            "required_count": self.required_count,
            "progress_pct": self.progress,
            "roles": [
                {
                    "role_key": role,
                    "role_label": role_label(role),
                    "decision": self.latest[role].decision if role in self.latest else None,
                    "approver_id": self.latest[role].approver_id if role in self.latest else None,
                }
                for role in self.step.required_roles
            ],
        })
        return d


def step_state(step: Step) -> StepState:
    """Compute the effective status and approval progress of ``step``."""
    required = step.required_roles
    latest = approval_ledger.latest_per_role(step.id, since=step.gate_opened_at) if required else {}
    latest = {role: a for role, a in latest.items() if role in required}
    decisions = {role: a.decision for role, a in latest.items()}
    derived = derive_status(required, decisions, step.status)
    approved = sum(1 for role in required if decisions.get(role) == Decision.APPROVED.value)
    return StepState(
        step=step,
        status=resolve_effective(step.is_gate, step.status, derived),
        latest=latest,
        approved_count=approved,
        required_count=len(required),
    )


def effective_status(step: Step) -> str:
    return step_state(step).status


def gate_progress(step: Step) -> tuple[int, int, int]:
    """Return (approved roles, required roles, percentage) for ``step``."""
    state = step_state(step)
    return state.approved_count, state.required_count, state.progress


# ── Role selection ───────────────────────────────────────────────────────────


def select_role(step: Step, approver: Person, role_hint: str | None, latest: dict[str, Approval]) -> tuple[str, str]:
    """Pick the role ``approver`` acts for on ``step`` and the basis used.

    A hint is used when the approver holds its seat or has override.
    Otherwise: a person seat, a pool seat, then with override the first
    required role lacking an approval.

    Raises:
        NotFoundError: hint names a role the step does not require.
        IneligibleError: approver may not act for any required role.
    """
    required = step.required_roles
    override = seat_service.has_org_override(approver)

    if role_hint:
        role = normalize_role_key(role_hint)
        if role is None or role not in required:
            raise NotFoundError("Role", role_hint)
        basis = seat_service.eligibility_basis(step.segment_id, role, approver.id)
        if basis:
            return role, basis
        if override:
            return role, EligibilityBasis.OVERRIDE.value
        logger.debug("Role hint %s not held by approver=%s; selecting by seat", role, approver.id)

    bases = {role: seat_service.eligibility_basis(step.segment_id, role, approver.id) for role in required}
    for wanted in (EligibilityBasis.PERSON_SEAT.value, EligibilityBasis.POOL_SEAT.value):
        for role in required:
            if bases[role] == wanted:
                return role, wanted

    if override:
        for role in required:
            current = latest.get(role)
            if current is None or current.decision != Decision.APPROVED.value:
                return role, EligibilityBasis.OVERRIDE.value
        return required[0], EligibilityBasis.OVERRIDE.value

    raise IneligibleError(f"{approver.name} holds no seat for this gate", actor_id=approver.id)


# ── Decisions ────────────────────────────────────────────────────────────────


@dataclass
class DecisionOutcome:
    approval: Approval
    role_key: str
    basis: str
    state: StepState


def decide(
    step_id: int,
    approver_id: int,
    decision: str,
    role_key: str | None = None,
    comment: str | None = None,
    require_awaiting: bool = False,
) -> DecisionOutcome:
    """Record an approve/reject decision on a gate step.

    Raises:
        NotFoundError: unknown approver, step, or hinted role.
        ValidationError: bad decision value, non-gate step, or gate locked.
        IneligibleError: approver cannot act for any required role.
    """
    approver = db.session.get(Person, approver_id) if approver_id is not None else None
    if approver is None:
        raise NotFoundError("Person", approver_id)
    decision = (decision or "").strip().lower()
    if decision not in VALID_DECISIONS:
        raise ValidationError(
            f"Invalid decision '{decision}'. Must be one of: {', '.join(sorted(VALID_DECISIONS))}",
            details={"decision": decision},
        )
    step = get_or_raise(Step, step_id, "Step")
    if not step.is_gate:
        raise ValidationError(f"Step '{step.name}' is not a gate", details={"step_id": step_id})
    if not approver.is_active:
        raise IneligibleError(f"{approver.name} is inactive", actor_id=approver.id)

    state = step_state(step)
    if require_awaiting and state.status != _AA:
        raise ValidationError(
            f"Decisions are only accepted while the step is {status_label(_AA)} "
            f"(currently {status_label(state.status)})",
            details={"status": state.status},
        )

    role, basis = select_role(step, approver, role_key, state.latest)
    approval = approval_ledger.record(
        step_id=step.id,
        role_key=role,
        approver_id=approver.id,
        decision=decision,
        comment=comment,
        basis=basis,
    )
    db.session.commit()

    logger.info(
        "Gate decision recorded",
        extra={
            "segment_id": step.segment_id,
            "step_id": step.id,
            "role_key": role,
            "actor_id": approver.id,
            "decision": decision,
            "basis": basis,
        },
    )
    return DecisionOutcome(approval=approval, role_key=role, basis=basis, state=step_state(step))


# ── Lifecycle transitions ────────────────────────────────────────────────────


def _can_act(step: Step, actor: Person, action: str) -> bool:
    if seat_service.has_org_override(actor):
        return True
    if action in PRIVILEGED_ACTIONS or not actor.is_active:
        return False
    if actor.id in (step.assignee_id, step.segment.owner_id):
        return True
    return any(seat_service.is_eligible(step.segment_id, role, actor.id) for role in step.required_roles)


def transition_step(step_id: int, action: str, actor_id: int) -> StepState:
    """Apply an explicit lifecycle action.

    Raises:
        NotFoundError: unknown step or actor.
        ValidationError: unknown action or not allowed from the current status.
        IneligibleError: actor may not take this action.
    """
    step = get_or_raise(Step, step_id, "Step")
    actor = db.session.get(Person, actor_id) if actor_id is not None else None
    if actor is None:
        raise NotFoundError("Person", actor_id)
    action = (action or "").strip().lower()
    if action not in ACTION_TRANSITIONS:
        raise ValidationError(
            f"Unknown action '{action}'. Must be one of: {', '.join(sorted(ACTION_TRANSITIONS))}",
            details={"action": action},
        )
    if not _can_act(step, actor, action):
        raise IneligibleError(f"{actor.name} may not {action.replace('_', ' ')} this step", actor_id=actor.id)
    if action in GATE_ONLY_ACTIONS and not step.is_gate:
        raise ValidationError(f"'{action}' only applies to gate steps", details={"action": action})
    if action in NON_GATE_ACTIONS and step.is_gate:
        raise ValidationError(
            "Gate steps complete through approvals",
            details={"action": action, "required_roles": step.required_roles},
        )

    current = effective_status(step)
    if not validate_action(current, action):
        raise ValidationError(
            f"Cannot {action.replace('_', ' ')} a step that is {status_label(current)}",
            details={"action": action, "status": current},
        )

    _, new_status = ACTION_TRANSITIONS[action]
    step.status = new_status
    if action in NEW_ROUND_ACTIONS:
        step.gate_opened_at = datetime.now(timezone.utc)
    db.session.commit()

    logger.info(
        "Step transitioned",
        extra={
            "segment_id": step.segment_id,
            "step_id": step.id,
            "actor_id": actor.id,
            "action": action,
        },
    )
    return step_state(step)


# ── Queues ───────────────────────────────────────────────────────────────────


def pending_gates_for(actor_id: int) -> list[dict]:
    """Open gate steps where ``actor_id`` can still act for an unapproved role."""
    actor = db.session.get(Person, actor_id) if actor_id is not None else None
    if actor is None:
        raise NotFoundError("Person", actor_id)
    override = seat_service.has_org_override(actor)

    steps = db.session.execute(
        select(Step)
        .join(Segment, Segment.id == Step.segment_id)
        .where(Step.is_gate.is_(True))
        .order_by(Step.due_date.is_(None), Step.due_date, Step.id)
    ).scalars()

    pending = []
    for step in steps:
        state = step_state(step)
        if state.status in TERMINAL_STATUSES:
            continue
        open_roles = [
            role for role in step.required_roles
            if role not in state.latest or state.latest[role].decision != Decision.APPROVED.value
        ]
        mine = [role for role in open_roles if seat_service.is_eligible(step.segment_id, role, actor.id)]
        if not mine and override:
            mine = open_roles
        if mine:
            item = state.to_dict()
            item["segment_title"] = step.segment.title
            item["actionable_roles"] = mine
            pending.append(item)
    return pending
