"""Segment blueprint: creation, detail, edits, rescheduling and seats.

Endpoint groups:
  Segments      GET/POST /api/v1/segments
                GET/PATCH/DELETE /api/v1/segments/<id>
  Reschedule    POST /api/v1/segments/<id>/reschedule
  Seats         GET  /api/v1/segments/<id>/seats
                PUT  /api/v1/segments/<id>/seats/<role_key>
                GET  /api/v1/segments/<id>/seats/<role_key>/eligibility?actor_id=

The acting person comes from the X-Actor-Id header (or actor_id in the
body). Service layer owns all business logic and commits.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

import segflow.services.segment_service as svc
from segflow.blueprints import actor_required, page_args
from segflow.models.vocabulary import parse_status
from segflow.services import seat_service
from segflow.services.timeline_scheduler import overrides_from_dict
from segflow.utils.errors import E, api_error, register_error_handlers
from segflow.utils.helpers import actor_id_from_request, parse_date_input

logger = logging.getLogger(__name__)

segment_bp = Blueprint("segment", __name__, url_prefix="/api/v1")
register_error_handlers(segment_bp)


def _optional_int(data: dict, field: str):
    """Return (value, err) for an optional integer body field."""
    value = data.get(field)
    if value is None:
        return None, None
    if isinstance(value, bool) or not isinstance(value, int):
        return None, api_error(E.VALIDATION_FORMAT, f"{field} must be an integer")
    return value, None


def _seat_entry_error(seats: dict):
    """Return a 400 for the first seat entry that isn't an id or an id object."""
    for role_key, value in seats.items():
        if isinstance(value, int) and not isinstance(value, bool):
            continue
        if value is not None and not isinstance(value, dict):
            return api_error(E.VALIDATION_FORMAT, f"Seat '{role_key}' must be a person id or an object")
        for field in ("person_id", "pool_id"):
            _, err = _optional_int(value or {}, field)
            if err:
                return err
    return None


# ═════════════════════════════════════════════════════════════════════════
# Segments
# ═════════════════════════════════════════════════════════════════════════


@segment_bp.route("/segments", methods=["GET"])
def list_segments():
    """Query params: limit, offset, status (value, label or legacy label)"""
    limit, offset = page_args()
    status = None
    if request.args.get("status"):
        status = parse_status(request.args["status"])
        if status is None:
            return api_error(E.VALIDATION_FORMAT, f"Unknown status '{request.args['status']}'")
    items, total = svc.list_segments(limit=limit, offset=offset, status=status)
    return jsonify({"items": items, "total": total, "limit": limit, "offset": offset}), 200


@segment_bp.route("/segments", methods=["POST"])
def create_segment():
    """Create a segment with its scheduled steps and seats.

    Body: {
        title, owner_id, anchor_date,
        seats: {role_key: {person_id?, pool_id?}},
        steps?: [{key, name, phase, duration_days, gate_roles?}],
        overrides?: {step_key: {duration_days?, anchor_date?}},
        description?, include_publish?
    }
    Returns: {"segment": {...}, "warnings": [...]} (201).
    """
    data = request.get_json(silent=True) or {}

    title = (data.get("title") or "").strip()
    if not title:
        return api_error(E.VALIDATION_REQUIRED, "title is required")
    owner_id, err = _optional_int(data, "owner_id")
    if err:
        return err
    if owner_id is None:
        return api_error(E.VALIDATION_REQUIRED, "owner_id is required")
    if not data.get("anchor_date"):
        return api_error(E.VALIDATION_REQUIRED, "anchor_date is required")
    seats = data.get("seats") or {}
    if not isinstance(seats, dict):
        return api_error(E.VALIDATION_FORMAT, "seats must be an object keyed by role")
    err = _seat_entry_error(seats)
    if err:
        return err
    if data.get("overrides") is not None and not isinstance(data["overrides"], dict):
        return api_error(E.VALIDATION_FORMAT, "overrides must be an object keyed by step")
    try:
        anchor_date = parse_date_input(data["anchor_date"])
        overrides = overrides_from_dict(data.get("overrides"))
        actor_id = actor_id_from_request(data)
    except ValueError as exc:
        return api_error(E.VALIDATION_FORMAT, str(exc))

    result = svc.create_segment(
        title=title,
        owner_id=owner_id,
        anchor_date=anchor_date,
        seats=seats,
        steps=data.get("steps") or None,
        overrides=overrides,
        description=data.get("description") or "",
        include_publish=bool(data.get("include_publish", False)),
        actor_id=actor_id,
    )
    return jsonify(result), 201


@segment_bp.route("/segments/<int:segment_id>", methods=["GET"])
def get_segment(segment_id):
    return jsonify(svc.get_segment(segment_id)), 200


@segment_bp.route("/segments/<int:segment_id>", methods=["PATCH"])
def update_segment(segment_id):
    """Body: {title?, description?, owner_id?}"""
    data = request.get_json(silent=True) or {}
    actor_id, err = actor_required(data)
    if err:
        return err
    changes = {k: data[k] for k in ("title", "description") if k in data}
    if "owner_id" in data:
        owner_id, err = _optional_int(data, "owner_id")
        if err:
            return err
        if owner_id is None:
            return api_error(E.VALIDATION_REQUIRED, "owner_id cannot be cleared")
        changes["owner_id"] = owner_id
    if not changes:
        return api_error(E.VALIDATION_REQUIRED, "Nothing to update")
    return jsonify(svc.update_segment(segment_id, actor_id, **changes)), 200


@segment_bp.route("/segments/<int:segment_id>", methods=["DELETE"])
def delete_segment(segment_id):
    actor_id, err = actor_required()
    if err:
        return err
    svc.delete_segment(segment_id, actor_id)
    return jsonify({"deleted": True, "id": segment_id}), 200


@segment_bp.route("/segments/<int:segment_id>/reschedule", methods=["POST"])
def reschedule_segment(segment_id):
    """Body: {anchor_date?, overrides?: {step_key: {...}}, clear_pins?: [step_key]}"""
    data = request.get_json(silent=True) or {}
    actor_id, err = actor_required(data)
    if err:
        return err
    if data.get("overrides") is not None and not isinstance(data["overrides"], dict):
        return api_error(E.VALIDATION_FORMAT, "overrides must be an object keyed by step")
    clear_pins = data.get("clear_pins") or []
    if not isinstance(clear_pins, list):
        return api_error(E.VALIDATION_FORMAT, "clear_pins must be a list of step keys")
    try:
        anchor_date = parse_date_input(data.get("anchor_date"))
        overrides = overrides_from_dict(data.get("overrides"))
    except ValueError as exc:
        return api_error(E.VALIDATION_FORMAT, str(exc))

    result = svc.reschedule_segment(
        segment_id,
        actor_id,
        overrides=overrides,
        anchor_date=anchor_date,
        clear_pins=[str(k) for k in clear_pins],
    )
    return jsonify(result), 200


# ═════════════════════════════════════════════════════════════════════════
# Seats
# ═════════════════════════════════════════════════════════════════════════


@segment_bp.route("/segments/<int:segment_id>/seats", methods=["GET"])
def list_seats(segment_id):
    seats = seat_service.list_seats(segment_id)
    return jsonify({"items": [s.to_dict() for s in seats.values()]}), 200


@segment_bp.route("/segments/<int:segment_id>/seats/<role_key>", methods=["PUT"])
def set_seat(segment_id, role_key):
    """Body: {person_id?, pool_id?}. Person wins when both are given."""
    data = request.get_json(silent=True) or {}
    actor_id, err = actor_required(data)
    if err:
        return err
    person_id, err = _optional_int(data, "person_id")
    if err:
        return err
    pool_id, err = _optional_int(data, "pool_id")
    if err:
        return err
    seat = svc.assign_seat(segment_id, role_key, actor_id, person_id=person_id, pool_id=pool_id)
    return jsonify(seat), 200


@segment_bp.route("/segments/<int:segment_id>/seats/<role_key>/eligibility", methods=["GET"])
def seat_eligibility(segment_id, role_key):
    actor_id = request.args.get("actor_id", type=int)
    if actor_id is None:
        return api_error(E.VALIDATION_REQUIRED, "actor_id query parameter is required")
    return jsonify(seat_service.describe_eligibility(segment_id, role_key, actor_id)), 200
