"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in segflow/__init__.py with no default
limits; this module applies granular limits per route category.

Usage:
    from segflow.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import request as flask_request

logger = logging.getLogger(__name__)

READ_LIMIT = "200/minute"
WRITE_LIMIT = "60/minute"


def actor_rate_limit_key():
    """Rate limit per acting person when known, else per remote IP."""
    actor = flask_request.headers.get("X-Actor-Id")
    if actor:
        return f"actor:{actor}"
    return flask_request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits:
        - Step decisions / transitions: DECISION_RATE_LIMIT per actor
        - Segment + directory writes:   60/minute
        - Timeline preview:             200/minute

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("step")
    if bp:
        limiter.limit(app.config.get("DECISION_RATE_LIMIT", WRITE_LIMIT), key_func=actor_rate_limit_key)(bp)

    for bp_name in ("segment", "directory"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT)(bp)

    bp = app.blueprints.get("timeline")
    if bp:
        limiter.limit(READ_LIMIT)(bp)

    app.logger.info("Rate limiter configured: decisions=%s, write=%s, preview=%s",
                    app.config.get("DECISION_RATE_LIMIT", WRITE_LIMIT), WRITE_LIMIT, READ_LIMIT)
