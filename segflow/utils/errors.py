"""Standardised API error responses.

Usage
-----
    from segflow.utils.errors import api_error, E, register_error_handlers

    return api_error(E.VALIDATION_REQUIRED, "title is required")
    register_error_handlers(segment_bp)
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request
from werkzeug.exceptions import HTTPException

from segflow.core.exceptions import (
    ConflictError,
    IneligibleError,
    InvalidTemplateError,
    NotFoundError,
    PartialFailureError,
    ValidationError,
)

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants."""

    # Malformed input – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_FORMAT = "ERR_VALIDATION_FORMAT"

    # Business-rule violation – HTTP 422
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    INVALID_TEMPLATE = "ERR_INVALID_TEMPLATE"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict – HTTP 409
    CONFLICT = "ERR_CONFLICT"

    # Permissions – HTTP 403
    INELIGIBLE = "ERR_INELIGIBLE"

    # Server – HTTP 5xx
    PARTIAL_FAILURE = "ERR_PARTIAL_FAILURE"
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_FORMAT: 400,
    E.VALIDATION_INVALID: 422,
    E.INVALID_TEMPLATE: 422,
    E.NOT_FOUND: 404,
    E.CONFLICT: 409,
    E.INELIGIBLE: 403,
    E.PARTIAL_FAILURE: 503,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (missing seats, offending keys, etc.).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def register_error_handlers(bp: Blueprint) -> None:
    """Map the pipeline exception hierarchy onto JSON responses for ``bp``."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(IneligibleError)
    def _handle_ineligible(error: IneligibleError):
        return api_error(E.INELIGIBLE, str(error))

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(E.CONFLICT, str(error), details={"field": error.field})

    @bp.errorhandler(InvalidTemplateError)
    def _handle_invalid_template(error: InvalidTemplateError):
        return api_error(E.INVALID_TEMPLATE, str(error), details=error.details)

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_INVALID, str(error), details=error.details)

    @bp.errorhandler(PartialFailureError)
    def _handle_partial_failure(error: PartialFailureError):
        logger.error("Partial failure in %s: %s", bp.name, error.cause)
        return api_error(E.PARTIAL_FAILURE, str(error))

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        # Let Flask render its own HTTP errors (404 routing, 405, 413, 429)
        if isinstance(error, HTTPException):
            return error
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return jsonify({"error": "Internal server error", "code": E.INTERNAL}), 500
