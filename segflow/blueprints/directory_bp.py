"""Person and pool directory blueprint.

Endpoint groups:
  People        GET/POST /api/v1/people, PATCH /api/v1/people/<id>
  Pools         GET/POST /api/v1/pools, GET/DELETE /api/v1/pools/<id>
  Memberships   GET/POST /api/v1/pools/<id>/members
                DELETE   /api/v1/pools/<id>/members/<person_id>

Service layer owns all business logic and commits.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

import segflow.services.directory_service as ds
from segflow.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)

directory_bp = Blueprint("directory", __name__, url_prefix="/api/v1")
register_error_handlers(directory_bp)


# ── People ───────────────────────────────────────────────────────────────────


@directory_bp.route("/people", methods=["GET"])
def list_people():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    people = ds.list_people(include_inactive=include_inactive)
    return jsonify({"items": [p.to_dict() for p in people], "total": len(people)}), 200


@directory_bp.route("/people", methods=["POST"])
def create_person():
    """Body: {name, org_role?, email?}"""
    data = request.get_json(silent=True) or {}
    name = (data.get("name") or "").strip()
    if not name:
        return api_error(E.VALIDATION_REQUIRED, "name is required")
    person = ds.create_person(name, org_role=data.get("org_role") or "member", email=data.get("email"))
    return jsonify(person.to_dict()), 201


@directory_bp.route("/people/<int:person_id>", methods=["GET"])
def get_person(person_id):
    return jsonify(ds.get_person(person_id).to_dict()), 200


@directory_bp.route("/people/<int:person_id>", methods=["PATCH"])
def update_person(person_id):
    """Body: {org_role?, is_active?, name?}"""
    data = request.get_json(silent=True) or {}
    if "is_active" in data and not isinstance(data["is_active"], bool):
        return api_error(E.VALIDATION_FORMAT, "is_active must be a boolean")
    person = ds.update_person(
        person_id,
        org_role=data.get("org_role"),
        is_active=data.get("is_active"),
        name=data.get("name"),
    )
    return jsonify(person.to_dict()), 200


# ── Pools ────────────────────────────────────────────────────────────────────


@directory_bp.route("/pools", methods=["GET"])
def list_pools():
    """Query params: role_key (optional filter)"""
    pools = ds.list_pools(role_key=request.args.get("role_key") or None)
    return jsonify({"items": [p.to_dict() for p in pools], "total": len(pools)}), 200


@directory_bp.route("/pools", methods=["POST"])
def create_pool():
    """Body: {name, role_key}"""
    data = request.get_json(silent=True) or {}
    name = (data.get("name") or "").strip()
    if not name:
        return api_error(E.VALIDATION_REQUIRED, "name is required")
    if not data.get("role_key"):
        return api_error(E.VALIDATION_REQUIRED, "role_key is required")
    pool = ds.create_pool(name, data["role_key"])
    return jsonify(pool.to_dict(include_members=True)), 201


@directory_bp.route("/pools/<int:pool_id>", methods=["GET"])
def get_pool(pool_id):
    return jsonify(ds.get_pool(pool_id).to_dict(include_members=True)), 200


@directory_bp.route("/pools/<int:pool_id>", methods=["DELETE"])
def delete_pool(pool_id):
    ds.delete_pool(pool_id)
    return jsonify({"deleted": True, "id": pool_id}), 200


@directory_bp.route("/pools/<int:pool_id>/members", methods=["GET"])
def list_members(pool_id):
    members = ds.list_pool_members(pool_id)
    return jsonify({"items": [p.to_dict() for p in members], "total": len(members)}), 200


@directory_bp.route("/pools/<int:pool_id>/members", methods=["POST"])
def add_member(pool_id):
    """Body: {person_id}"""
    data = request.get_json(silent=True) or {}
    person_id = data.get("person_id")
    if person_id is None:
        return api_error(E.VALIDATION_REQUIRED, "person_id is required")
    if isinstance(person_id, bool) or not isinstance(person_id, int):
        return api_error(E.VALIDATION_FORMAT, "person_id must be an integer")
    membership = ds.add_pool_member(pool_id, person_id)
    return jsonify(membership.to_dict()), 201


@directory_bp.route("/pools/<int:pool_id>/members/<int:person_id>", methods=["DELETE"])
def remove_member(pool_id, person_id):
    ds.remove_pool_member(pool_id, person_id)
    return jsonify({"deleted": True, "pool_id": pool_id, "person_id": person_id}), 200
