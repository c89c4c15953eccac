"""
Segment workflow facade.

Composes the seat directory, gate engine, approval ledger and timeline
scheduler behind the operations callers need: create a segment with its
steps and seats in one transaction, record gate decisions, reschedule,
edit, delete, and read segments back with derived status.

The acting person is always an explicit argument; nothing here reads
request state.
"""

from __future__ import annotations

import logging
from datetime import date

from flask import current_app
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from segflow.core.exceptions import IneligibleError, NotFoundError, PartialFailureError, ValidationError
from segflow.models import db
from segflow.models.directory import Person
from segflow.models.segment import RoleSeat, Segment, Step
from segflow.models.vocabulary import (
    ROLE_LABELS,
    VALID_ROLE_KEYS,
    Decision,
    Phase,
    StepStatus,
    normalize_role_key,
    status_label,
)
from segflow.services import approval_ledger, gate_service, seat_service
from segflow.services.timeline_scheduler import (
    StepOverride,
    StepTemplate,
    clamp_duration,
    schedule,
    template_from_dicts,
)
from segflow.utils.helpers import commit_or_partial_failure, get_or_raise

logger = logging.getLogger(__name__)

_UNSET = object()

DEFAULT_STEP_TEMPLATE = (
    StepTemplate("idea_drafting", "Idea Drafting", Phase.PRE.value, 2),
    StepTemplate("script_approval", "Script Approval", Phase.PRE.value, 2, ("script_editor",)),
    StepTemplate("content_strategy", "Content Strategy Review", Phase.PRE.value, 1, ("content_strategist",)),
    StepTemplate("production_recording", "Production: Recording", Phase.PRODUCTION.value, 1),
    StepTemplate("production_complete", "Production Complete", Phase.POST.value, 1, ("director",)),
    StepTemplate("post_editing", "Post-Production Editing", Phase.POST.value, 3),
    StepTemplate("post_final", "Post Final Approval", Phase.POST.value, 1, ("post_supervisor",)),
    StepTemplate("publish", "Publish (optional)", Phase.PUBLISH.value, 1, ("publisher",)),
)


def default_template(include_publish: bool = False) -> list[StepTemplate]:
    return [
        s for s in DEFAULT_STEP_TEMPLATE
        if include_publish or s.phase != Phase.PUBLISH.value
    ]


# ── Private helpers ────────────────────────────────────────────────────────────


def _actor(actor_id: int | None) -> Person:
    actor = db.session.get(Person, actor_id) if actor_id is not None else None
    if actor is None:
        raise NotFoundError("Person", actor_id)
    return actor


def _require_leader(actor: Person, what: str) -> None:
    if not seat_service.has_org_override(actor):
        raise IneligibleError(f"Only executives and associates may {what}", actor_id=actor.id)


def _require_leader_or_owner(actor: Person, segment: Segment, what: str) -> None:
    if actor.id != segment.owner_id and not seat_service.has_org_override(actor):
        raise IneligibleError(f"Only the owner, executives and associates may {what}", actor_id=actor.id)


def _required_gate_roles(template: list[StepTemplate]) -> list[str]:
    roles: list[str] = []
    for step in template:
        for role in step.gate_roles:
            if role not in roles:
                roles.append(role)
    return roles


def _normalize_seats(seats: dict | None) -> dict[str, tuple[int | None, int | None]]:
    """Validate ``{role_key: {"person_id": .., "pool_id": ..}}`` into bindings."""
    bindings: dict[str, tuple[int | None, int | None]] = {}
    for raw_key, value in (seats or {}).items():
        role = normalize_role_key(raw_key)
        if role is None:
            raise ValidationError(
                f"Unknown role '{raw_key}'. Must be one of: {', '.join(sorted(VALID_ROLE_KEYS))}",
                details={"role_key": raw_key},
            )
        if isinstance(value, int) and not isinstance(value, bool):
            value = {"person_id": value}
        value = value or {}
        if not isinstance(value, dict):
            raise ValidationError(
                f"Seat '{raw_key}' must be a person id or an object with person_id / pool_id",
                details={"role_key": raw_key},
            )
        for field in ("person_id", "pool_id"):
            ref = value.get(field)
            if ref is not None and (isinstance(ref, bool) or not isinstance(ref, int)):
                raise ValidationError(f"Seat '{raw_key}' {field} must be an integer", details={field: ref})
        person_id, pool_id = seat_service.resolve_binding(role, value.get("person_id"), value.get("pool_id"))
        bindings[role] = (person_id, pool_id)
    return bindings


def _coerce_template(steps) -> list[StepTemplate]:
    if steps and all(isinstance(s, StepTemplate) for s in steps):
        return list(steps)
    return template_from_dicts(steps)


def segment_status(states: list[gate_service.StepState]) -> str:
    """Roll step states up to a segment status."""
    if not states:
        return StepStatus.NOT_STARTED.value
    statuses = [s.status for s in states]
    if any(s.step.is_gate and s.status == StepStatus.REJECTED.value for s in states):
        return StepStatus.REJECTED.value
    if all(st == StepStatus.COMPLETE.value for st in statuses):
        return StepStatus.COMPLETE.value
    if all(st == StepStatus.NOT_STARTED.value for st in statuses):
        return StepStatus.NOT_STARTED.value
    return StepStatus.IN_PROGRESS.value


def _summary(segment: Segment, states: list[gate_service.StepState]) -> dict:
    done = sum(1 for s in states if s.status == StepStatus.COMPLETE.value)
    status = segment_status(states)
    d = segment.to_dict()
    d.update({
        "status": status,
        "status_label": status_label(status),
        "steps_complete": done,
        "steps_total": len(states),
        "progress_pct": gate_service.progress_pct(done, len(states)),
    })
    return d


# ── Public API ─────────────────────────────────────────────────────────────────


def create_segment(
    title: str,
    owner_id: int,
    anchor_date: date,
    seats: dict | None,
    steps=None,
    overrides: dict[str, StepOverride] | None = None,
    description: str = "",
    include_publish: bool = False,
    actor_id: int | None = None,
    today: date | None = None,
) -> dict:
    """Create a segment with scheduled steps and role seats in one transaction.

    Every role some gate step requires must be bound to a person or a pool.

    Returns:
        {"segment": <detail>, "warnings": [...]}

    Raises:
        ValidationError: missing title/anchor, unknown role, malformed seat, unbound gate role.
        NotFoundError: owner, actor, seated person or pool missing.
        ConflictError: pool bound to a role it does not service.
        IneligibleError: actor given but not an executive/associate.
        InvalidTemplateError: malformed step template.
        PartialFailureError: persistence failed midway; nothing was kept.
    """
    title = (title or "").strip()
    if not title:
        raise ValidationError("title is required", details={"title": "required"})
    if not isinstance(anchor_date, date):
        raise ValidationError("anchor_date is required", details={"anchor_date": "required"})
    owner = get_or_raise(Person, owner_id, "Person")
    if actor_id is not None:
        _require_leader(_actor(actor_id), "create segments")

    template = _coerce_template(steps) if steps else default_template(include_publish)
    bindings = _normalize_seats(seats)
    missing = [
        role for role in _required_gate_roles(template)
        if bindings.get(role, (None, None)) == (None, None)
    ]
    if missing:
        raise ValidationError(
            "Every gate role needs a person or pool: " + ", ".join(ROLE_LABELS.get(r, r) for r in missing),
            details={"missing_roles": missing},
        )

    overrides = overrides or {}
    result = schedule(anchor_date, template, overrides, today=today)

    try:
        segment = Segment(
            title=title,
            description=(description or "").strip(),
            owner_id=owner.id,
            anchor_date=anchor_date,
        )
        db.session.add(segment)
        db.session.flush()

        for idx, tpl in enumerate(template):
            ov = overrides.get(tpl.key)
            db.session.add(Step(
                segment_id=segment.id,
                key=tpl.key,
                name=tpl.name,
                phase=tpl.phase,
                sort_order=idx,
                due_date=result.due_dates[tpl.key],
                duration_days=result.durations[tpl.key],
                anchor_date=ov.anchor_date if ov is not None and tpl.phase != Phase.PRODUCTION.value else None,
                is_gate=tpl.is_gate,
                gate_roles=list(tpl.gate_roles),
            ))
        for role, (person_id, pool_id) in bindings.items():
            db.session.add(RoleSeat(
                segment_id=segment.id,
                role_key=role,
                person_id=person_id,
                pool_id=pool_id,
            ))
        db.session.flush()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Segment creation failed before commit")
        raise PartialFailureError("create_segment", cause=exc) from exc
    commit_or_partial_failure("create_segment")

    logger.info(
        "Segment created",
        extra={"segment_id": segment.id, "actor_id": actor_id, "warnings": len(result.warnings)},
    )
    return {"segment": get_segment(segment.id), "warnings": result.warnings}


def record_decision(
    step_id: int,
    approver_id: int,
    decision: str,
    comment: str | None = None,
    role_key: str | None = None,
) -> dict:
    """Record a gate decision and return the step's resulting approval state."""
    outcome = gate_service.decide(
        step_id,
        approver_id,
        decision,
        role_key=role_key,
        comment=comment,
        require_awaiting=bool(current_app.config.get("GATE_DECISIONS_LOCKED", False)),
    )
    state = outcome.state
    return {
        "step_id": step_id,
        "role_key": outcome.role_key,
        "basis": outcome.basis,
        "approval": outcome.approval.to_dict(),
        "status": state.status,
        "status_label": status_label(state.status),
        "approved_count": state.approved_count,
        "required_count": state.required_count,
        "progress_pct": state.progress,
    }


def reschedule_segment(
    segment_id: int,
    actor_id: int,
    overrides: dict[str, StepOverride] | None = None,
    anchor_date: date | None = None,
    clear_pins: list[str] | None = None,
    today: date | None = None,
) -> dict:
    """Re-run the scheduler over stored steps with merged overrides.

    Stored durations and pins are the baseline; ``overrides`` replace them
    per key and ``clear_pins`` removes pins.
    """
    segment = get_or_raise(Segment, segment_id, "Segment")
    _require_leader_or_owner(_actor(actor_id), segment, "reschedule this segment")
    anchor = anchor_date or segment.anchor_date
    overrides = overrides or {}
    clear = set(clear_pins or [])

    steps_by_key = {s.key: s for s in segment.steps}
    template = [
        StepTemplate(s.key, s.name, s.phase, clamp_duration(s.duration_days), tuple(s.required_roles))
        for s in segment.steps
    ]
    merged: dict[str, StepOverride] = {}
    for key, step in steps_by_key.items():
        ov = overrides.get(key)
        pin = step.anchor_date if key not in clear else None
        duration = None
        if ov is not None:
            if ov.anchor_date is not None:
                pin = ov.anchor_date
            duration = ov.duration_days
        merged[key] = StepOverride(duration_days=duration, anchor_date=pin)
    for key, ov in overrides.items():
        if key not in steps_by_key:
            merged[key] = ov

    result = schedule(anchor, template, merged, today=today)

    try:
        segment.anchor_date = anchor
        for key, step in steps_by_key.items():
            step.due_date = result.due_dates[key]
            step.duration_days = result.durations[key]
            step.anchor_date = merged[key].anchor_date
        db.session.flush()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Reschedule failed before commit")
        raise PartialFailureError("reschedule_segment", cause=exc) from exc
    commit_or_partial_failure("reschedule_segment")

    logger.info("Segment rescheduled", extra={"segment_id": segment.id, "actor_id": actor_id})
    return {"segment": get_segment(segment.id), "warnings": result.warnings}


def update_segment(segment_id: int, actor_id: int, title=_UNSET, description=_UNSET, owner_id=_UNSET) -> dict:
    segment = get_or_raise(Segment, segment_id, "Segment")
    _require_leader_or_owner(_actor(actor_id), segment, "edit this segment")
    if title is not _UNSET:
        title = (title or "").strip()
        if not title:
            raise ValidationError("title cannot be empty", details={"title": "required"})
        segment.title = title
    if description is not _UNSET:
        segment.description = (description or "").strip()
    if owner_id is not _UNSET:
        segment.owner_id = get_or_raise(Person, owner_id, "Person").id
    db.session.commit()
    logger.info("Segment updated", extra={"segment_id": segment.id, "actor_id": actor_id})
    return get_segment(segment.id)


def delete_segment(segment_id: int, actor_id: int) -> None:
    """Delete a segment with its steps, seats, approvals and history."""
    segment = get_or_raise(Segment, segment_id, "Segment")
    _require_leader(_actor(actor_id), "delete segments")
    db.session.delete(segment)
    db.session.commit()
    logger.info("Segment deleted", extra={"segment_id": segment_id, "actor_id": actor_id})


def update_step(step_id: int, actor_id: int, due_date=_UNSET, assignee_id=_UNSET) -> dict:
    """Manual due-date / assignee edits by executives and associates."""
    step = get_or_raise(Step, step_id, "Step")
    _require_leader(_actor(actor_id), "edit steps")
    if due_date is not _UNSET:
        step.due_date = due_date
    if assignee_id is not _UNSET:
        step.assignee_id = get_or_raise(Person, assignee_id, "Person").id if assignee_id is not None else None
    db.session.commit()
    logger.info("Step updated", extra={"segment_id": step.segment_id, "step_id": step.id, "actor_id": actor_id})
    return gate_service.step_state(step).to_dict()


def get_step(step_id: int) -> dict:
    step = get_or_raise(Step, step_id, "Step")
    d = gate_service.step_state(step).to_dict()
    d["segment_title"] = step.segment.title
    return d


def get_segment(segment_id: int) -> dict:
    """Segment detail: seats, steps with effective status, derived progress."""
    segment = get_or_raise(Segment, segment_id, "Segment")
    states = [gate_service.step_state(s) for s in segment.steps]
    d = _summary(segment, states)
    d["seats"] = [seat.to_dict() for seat in sorted(segment.seats, key=lambda s: s.role_key)]
    d["steps"] = [s.to_dict() for s in states]
    return d


def list_segments(limit: int = 200, offset: int = 0, status: str | None = None) -> tuple[list[dict], int]:
    """Segments newest first, with derived status. Returns (items, total).

    ``status`` filters on the derived segment status, so the whole set is
    summarised before paging.
    """
    stmt = select(Segment).order_by(Segment.created_at.desc(), Segment.id.desc())
    if status is None:
        total = db.session.execute(select(func.count(Segment.id))).scalar_one()
        segments = db.session.execute(stmt.limit(limit).offset(offset)).scalars()
        items = [_summary(seg, [gate_service.step_state(s) for s in seg.steps]) for seg in segments]
        return items, total

    items = [
        summary for summary in (
            _summary(seg, [gate_service.step_state(s) for s in seg.steps])
            for seg in db.session.execute(stmt).scalars()
        )
        if summary["status"] == status
    ]
    return items[offset:offset + limit], len(items)


def list_assigned_steps(actor_id: int, include_complete: bool = False) -> list[dict]:
    """Steps assigned to ``actor_id`` ("my tasks"), soonest due first."""
    _actor(actor_id)
    steps = db.session.execute(
        select(Step)
        .where(Step.assignee_id == actor_id)
        .order_by(Step.due_date.is_(None), Step.due_date, Step.id)
    ).scalars()
    tasks = []
    for step in steps:
        state = gate_service.step_state(step)
        if state.status == StepStatus.COMPLETE.value and not include_complete:
            continue
        item = state.to_dict()
        item["segment_title"] = step.segment.title
        tasks.append(item)
    return tasks


def approval_overview(step_id: int) -> dict:
    """Latest decision per role plus full history for a step."""
    step = get_or_raise(Step, step_id, "Step")
    state = gate_service.step_state(step)
    return {
        "step": state.to_dict(),
        "latest": {role: a.to_dict() for role, a in state.latest.items()},
        "history": [e.to_dict() for e in approval_ledger.history(step.id)],
        "approved": state.approved_count,
        "rejected": sum(1 for a in state.latest.values() if a.decision == Decision.REJECTED.value),
    }


def assign_seat(segment_id: int, role_key: str, actor_id: int, person_id: int | None = None,
                pool_id: int | None = None) -> dict:
    """Rebind a seat on an existing segment (owner, executives, associates)."""
    segment = get_or_raise(Segment, segment_id, "Segment")
    _require_leader_or_owner(_actor(actor_id), segment, "change seats")
    seat = seat_service.set_seat(segment.id, role_key, person_id=person_id, pool_id=pool_id)
    return seat.to_dict()
