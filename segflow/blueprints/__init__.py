"""
Segment Production Pipeline
Blueprint registry.
"""

from flask import request

from segflow.utils.errors import E, api_error
from segflow.utils.helpers import actor_id_from_request


def page_args(default_limit=200, max_limit=1000):
    """Read limit/offset pagination from the query string.

    Query params:
        limit:  max items (default 200, capped at max_limit)
        offset: starting position (default 0)

    Returns:
        (limit, offset)
    """
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return max(limit, 1), offset


def actor_required(data=None):
    """Resolve the acting person or build a 400 response.

    Returns:
        (actor_id, None) or (None, (response, 400))
    """
    try:
        actor_id = actor_id_from_request(data)
    except ValueError as exc:
        return None, api_error(E.VALIDATION_FORMAT, str(exc))
    if actor_id is None:
        return None, api_error(E.VALIDATION_REQUIRED, "X-Actor-Id header or actor_id is required")
    return actor_id, None
