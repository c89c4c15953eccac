"""Timeline preview blueprint.

POST /api/v1/timeline/preview runs the scheduler without persisting
anything, so a client can show due dates and warnings before creating a
segment.
"""

from flask import Blueprint, jsonify, request

from segflow.services.segment_service import default_template
from segflow.services.timeline_scheduler import overrides_from_dict, schedule, template_from_dicts
from segflow.utils.errors import E, api_error, register_error_handlers
from segflow.utils.helpers import parse_date_input

timeline_bp = Blueprint("timeline", __name__, url_prefix="/api/v1/timeline")
register_error_handlers(timeline_bp)


@timeline_bp.route("/preview", methods=["POST"])
def preview():
    """Body: {anchor_date, steps?, overrides?, include_publish?, today?}"""
    data = request.get_json(silent=True) or {}
    if not data.get("anchor_date"):
        return api_error(E.VALIDATION_REQUIRED, "anchor_date is required")
    if data.get("overrides") is not None and not isinstance(data["overrides"], dict):
        return api_error(E.VALIDATION_FORMAT, "overrides must be an object keyed by step")
    try:
        anchor_date = parse_date_input(data["anchor_date"])
        today = parse_date_input(data.get("today"))
        overrides = overrides_from_dict(data.get("overrides"))
    except ValueError as exc:
        return api_error(E.VALIDATION_FORMAT, str(exc))

    if data.get("steps"):
        template = template_from_dicts(data["steps"])
    else:
        template = default_template(bool(data.get("include_publish", False)))

    result = schedule(anchor_date, template, overrides, today=today)
    body = result.to_dict()
    body["steps"] = [
        {
            "key": s.key,
            "name": s.name,
            "phase": s.phase,
            "duration_days": result.durations[s.key],
            "due_date": result.due_dates[s.key].isoformat(),
            "gate_roles": list(s.gate_roles),
        }
        for s in template
    ]
    return jsonify(body), 200
