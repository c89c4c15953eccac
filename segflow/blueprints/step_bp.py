"""Step blueprint: gate decisions, lifecycle actions and actor queues.

Endpoint groups:
  Steps         GET/PATCH /api/v1/steps/<id>
  Decisions     POST /api/v1/steps/<id>/decisions
  Approvals     GET  /api/v1/steps/<id>/approvals
  Transitions   POST /api/v1/steps/<id>/transitions
  Queues        GET  /api/v1/me/approvals, GET /api/v1/me/tasks

Decisions are taken by the person named in X-Actor-Id; the engine works out
which role they act for unless role_key is given.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

import segflow.services.segment_service as svc
from segflow.blueprints import actor_required
from segflow.services import gate_service
from segflow.utils.errors import E, api_error, register_error_handlers
from segflow.utils.helpers import parse_date_input

logger = logging.getLogger(__name__)

step_bp = Blueprint("step", __name__, url_prefix="/api/v1")
register_error_handlers(step_bp)


def _string_fields(data: dict, *fields: str):
    """Return a 400 for the first present field that isn't a string."""
    for field in fields:
        value = data.get(field)
        if value is not None and not isinstance(value, str):
            return api_error(E.VALIDATION_FORMAT, f"{field} must be a string")
    return None


@step_bp.route("/steps/<int:step_id>", methods=["GET"])
def get_step(step_id):
    return jsonify(svc.get_step(step_id)), 200


@step_bp.route("/steps/<int:step_id>", methods=["PATCH"])
def update_step(step_id):
    """Manual edits. Body: {due_date?, assignee_id?} (null clears)."""
    data = request.get_json(silent=True) or {}
    actor_id, err = actor_required(data)
    if err:
        return err
    changes = {}
    if "due_date" in data:
        try:
            changes["due_date"] = parse_date_input(data["due_date"])
        except ValueError as exc:
            return api_error(E.VALIDATION_FORMAT, str(exc))
    if "assignee_id" in data:
        assignee_id = data["assignee_id"]
        if assignee_id is not None and (isinstance(assignee_id, bool) or not isinstance(assignee_id, int)):
            return api_error(E.VALIDATION_FORMAT, "assignee_id must be an integer or null")
        changes["assignee_id"] = assignee_id
    if not changes:
        return api_error(E.VALIDATION_REQUIRED, "Nothing to update")
    return jsonify(svc.update_step(step_id, actor_id, **changes)), 200


@step_bp.route("/steps/<int:step_id>/decisions", methods=["POST"])
def record_decision(step_id):
    """Record an approve/reject decision.

    Body: {decision: "approved"|"rejected", role_key?, comment?}
    Returns: resulting status, progress and the basis used (201).
    """
    data = request.get_json(silent=True) or {}
    actor_id, err = actor_required(data)
    if err:
        return err
    err = _string_fields(data, "decision", "comment", "role_key")
    if err:
        return err
    decision = (data.get("decision") or "").strip()
    if not decision:
        return api_error(E.VALIDATION_REQUIRED, "decision is required")
    result = svc.record_decision(
        step_id,
        actor_id,
        decision,
        comment=data.get("comment"),
        role_key=data.get("role_key") or None,
    )
    return jsonify(result), 201


@step_bp.route("/steps/<int:step_id>/approvals", methods=["GET"])
def approvals(step_id):
    return jsonify(svc.approval_overview(step_id)), 200


@step_bp.route("/steps/<int:step_id>/transitions", methods=["POST"])
def transition(step_id):
    """Body: {action: start|send_for_approvals|request_changes|mark_complete|reopen|reset}"""
    data = request.get_json(silent=True) or {}
    actor_id, err = actor_required(data)
    if err:
        return err
    err = _string_fields(data, "action")
    if err:
        return err
    action = (data.get("action") or "").strip()
    if not action:
        return api_error(E.VALIDATION_REQUIRED, "action is required")
    state = gate_service.transition_step(step_id, action, actor_id)
    return jsonify(state.to_dict()), 200


# ── Actor queues ─────────────────────────────────────────────────────────────


@step_bp.route("/me/approvals", methods=["GET"])
def my_approvals():
    actor_id, err = actor_required()
    if err:
        return err
    items = gate_service.pending_gates_for(actor_id)
    return jsonify({"items": items, "total": len(items)}), 200


@step_bp.route("/me/tasks", methods=["GET"])
def my_tasks():
    actor_id, err = actor_required()
    if err:
        return err
    include_complete = request.args.get("include_complete", "false").lower() == "true"
    items = svc.list_assigned_steps(actor_id, include_complete=include_complete)
    return jsonify({"items": items, "total": len(items)}), 200
