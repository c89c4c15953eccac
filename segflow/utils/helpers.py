"""Shared utility functions for services and blueprints.

get_or_raise:             primary-key lookup raising NotFoundError
parse_date:               returns None on bad input
parse_date_input:         raises ValueError on bad input
commit_or_partial_failure: commit, or roll back and raise PartialFailureError
actor_id_from_request:    explicit acting person from header / body / query
"""
import logging
from datetime import date, datetime

from flask import request
from sqlalchemy.exc import SQLAlchemyError

from segflow.core.exceptions import NotFoundError, PartialFailureError
from segflow.models import db

logger = logging.getLogger(__name__)


def get_or_raise(model, pk, label=None):
    """Fetch a model instance by primary key or raise NotFoundError."""
    label = label or model.__name__
    obj = db.session.get(model, pk) if pk is not None else None
    if obj is None:
        raise NotFoundError(resource=label, resource_id=pk)
    return obj


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD.MM.YYYY (European format)
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d.%m.%Y").date()
    except (ValueError, TypeError):
        return None


def parse_date_input(value):
    """Parse a date string, raising ValueError on bad input.

    Same as parse_date() but raises ValueError instead of returning None,
    so blueprints can turn it into a 400.

    Supports: YYYY-MM-DD, DD.MM.YYYY, date objects.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        try:
            return datetime.strptime(str(value), "%d.%m.%Y").date()
        except ValueError as exc:
            raise ValueError(
                "Invalid date format. Use YYYY-MM-DD or DD.MM.YYYY."
            ) from exc


# ── Database commit helper ───────────────────────────────────────────────────

def commit_or_partial_failure(operation: str):
    """Commit the current session; on failure roll back and raise.

    Used by multi-row writes (segment creation, rescheduling) where a
    failure midway must leave nothing behind.

    Raises:
        PartialFailureError: wrapping the SQLAlchemy error.
    """
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Commit failed during %s", operation)
        raise PartialFailureError(operation, cause=exc) from exc


# ── Request helpers ──────────────────────────────────────────────────────────

def actor_id_from_request(data: dict | None = None) -> int | None:
    """Return the acting person's id.

    Read from the ``X-Actor-Id`` header, then ``actor_id`` in the JSON body,
    then the ``actor_id`` query parameter. Returns None when absent; raises
    ValueError when present but not an integer.
    """
    raw = request.headers.get("X-Actor-Id")
    if raw is None and data:
        raw = data.get("actor_id")
    if raw is None:
        raw = request.args.get("actor_id")
    if raw is None or raw == "":
        return None
    if isinstance(raw, bool):
        raise ValueError("actor_id must be an integer")
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError("actor_id must be an integer") from exc
