"""
Tests: Role seat directory and person/pool directory.

Covers:
  1. person-over-pool precedence when both are supplied
  2. person / pool / unassigned eligibility, stable across repeated calls
  3. binding errors: missing person or pool, role mismatch, unknown role
  4. organizational override is separate from seat eligibility
  5. membership changes and pool deletion flow through to eligibility
"""

import pytest

from segflow.core.exceptions import ConflictError, NotFoundError, ValidationError
from segflow.models import db as _db
from segflow.models.segment import RoleSeat
from segflow.services import directory_service, seat_service


# ── Pure rules ───────────────────────────────────────────────────────────────


class TestSeatBasis:
    def test_person_binding_admits_only_that_person(self):
        assert seat_service.seat_basis(1, None, 1, set()) == "person_seat"
        assert seat_service.seat_basis(1, None, 2, set()) is None

    def test_person_binding_ignores_pool_membership(self):
        assert seat_service.seat_basis(1, 9, 2, {9}) is None

    def test_pool_binding_admits_members(self):
        assert seat_service.seat_basis(None, 9, 2, {9}) == "pool_seat"
        assert seat_service.seat_basis(None, 9, 3, {4}) is None

    def test_unassigned_seat_admits_nobody(self):
        assert seat_service.seat_admits(None, None, 1, {1, 2, 3}) is False

    def test_missing_actor_never_admitted(self):
        assert seat_service.seat_basis(None, None, None, set()) is None


def test_org_override_roles(make_person):
    assert seat_service.has_org_override(make_person("Exec", "executive"))
    assert seat_service.has_org_override(make_person("Assoc", "associate"))
    assert not seat_service.has_org_override(make_person("Member", "member"))
    inactive = make_person("Gone", "executive")
    inactive.is_active = False
    assert not seat_service.has_org_override(inactive)
    assert not seat_service.has_org_override(None)


# ── set_seat ─────────────────────────────────────────────────────────────────


def test_person_wins_when_both_supplied(make_segment, make_person, make_pool):
    seg = make_segment()
    p = make_person("Priya")
    q = make_pool("Script Desk", "script_editor")

    seat = seat_service.set_seat(seg["id"], "script_editor", person_id=p.id, pool_id=q.id)

    assert seat.person_id == p.id
    assert seat.pool_id is None


def test_resetting_identical_binding_is_noop(make_segment, crew):
    seg = make_segment()
    before = seat_service.get_seat(seg["id"], "director")
    stamp = before.updated_at

    again = seat_service.set_seat(seg["id"], "director", person_id=crew["director"].id)

    assert again.id == before.id
    assert again.updated_at == stamp
    count = RoleSeat.query.filter_by(segment_id=seg["id"], role_key="director").count()
    assert count == 1


def test_role_alias_is_normalized(make_segment, make_person):
    seg = make_segment()
    p = make_person("Alias Person")
    seat = seat_service.set_seat(seg["id"], "pitch_editor", person_id=p.id)
    assert seat.role_key == "script_editor"


def test_set_seat_with_neither_leaves_unassigned(make_segment):
    seg = make_segment()
    seat = seat_service.set_seat(seg["id"], "producer")
    assert not seat.is_assigned


def test_missing_person_is_not_found(make_segment):
    seg = make_segment()
    with pytest.raises(NotFoundError):
        seat_service.set_seat(seg["id"], "director", person_id=99999)


def test_missing_pool_is_not_found(make_segment):
    seg = make_segment()
    with pytest.raises(NotFoundError):
        seat_service.set_seat(seg["id"], "director", pool_id=99999)


def test_pool_for_other_role_conflicts(make_segment, make_pool):
    seg = make_segment()
    editors = make_pool("Editors", "post_supervisor")
    with pytest.raises(ConflictError):
        seat_service.set_seat(seg["id"], "director", pool_id=editors.id)


def test_unknown_role_is_validation_error(make_segment, crew):
    seg = make_segment()
    with pytest.raises(ValidationError):
        seat_service.set_seat(seg["id"], "janitor", person_id=crew["owner"].id)


# ── Eligibility ──────────────────────────────────────────────────────────────


def test_person_seat_eligibility_is_stable(make_segment, crew):
    seg = make_segment()
    for _ in range(3):
        assert seat_service.is_eligible(seg["id"], "script_editor", crew["script_editor"].id)
        assert not seat_service.is_eligible(seg["id"], "script_editor", crew["outsider"].id)


def test_pool_seat_admits_members_only(make_segment, make_person, make_pool):
    seg = make_segment()
    a, b, c = make_person("Ana"), make_person("Ben"), make_person("Cal")
    pool = make_pool("Script Pool", "script_editor", members=[a, b])
    seat_service.set_seat(seg["id"], "script_editor", pool_id=pool.id)

    assert seat_service.eligibility_basis(seg["id"], "script_editor", a.id) == "pool_seat"
    assert seat_service.is_eligible(seg["id"], "script_editor", b.id)
    assert not seat_service.is_eligible(seg["id"], "script_editor", c.id)


def test_unassigned_seat_never_eligible(make_segment, crew):
    seg = make_segment()
    assert not seat_service.is_eligible(seg["id"], "publisher", crew["executive"].id)


def test_override_is_not_seat_eligibility(make_segment, crew):
    seg = make_segment()
    facts = seat_service.describe_eligibility(seg["id"], "director", crew["executive"].id)
    assert facts["eligible"] is False
    assert facts["org_override"] is True


def test_removed_member_loses_eligibility(make_segment, make_person, make_pool):
    seg = make_segment()
    a = make_person("Ana")
    pool = make_pool("Script Pool", "script_editor", members=[a])
    seat_service.set_seat(seg["id"], "script_editor", pool_id=pool.id)
    assert seat_service.is_eligible(seg["id"], "script_editor", a.id)

    directory_service.remove_pool_member(pool.id, a.id)

    assert not seat_service.is_eligible(seg["id"], "script_editor", a.id)


def test_deleting_pool_clears_bound_seats(make_segment, make_person, make_pool):
    seg = make_segment()
    a = make_person("Ana")
    pool = make_pool("Script Pool", "script_editor", members=[a])
    seat_service.set_seat(seg["id"], "script_editor", pool_id=pool.id)

    directory_service.delete_pool(pool.id)
    _db.session.expire_all()

    seat = seat_service.get_seat(seg["id"], "script_editor")
    assert seat.pool_id is None
    assert not seat_service.is_eligible(seg["id"], "script_editor", a.id)
    # the person survives the pool
    assert directory_service.get_person(a.id).name == "Ana"


# ── Directory ────────────────────────────────────────────────────────────────


def test_add_member_twice_is_idempotent(make_person, make_pool):
    a = make_person("Ana")
    pool = make_pool("Desk", "director")
    first = directory_service.add_pool_member(pool.id, a.id)
    second = directory_service.add_pool_member(pool.id, a.id)
    assert first.id == second.id
    assert [p.id for p in directory_service.list_pool_members(pool.id)] == [a.id]


def test_create_pool_rejects_unknown_role():
    with pytest.raises(ValidationError):
        directory_service.create_pool("Night Desk", "janitor")


def test_create_person_rejects_duplicate_email():
    directory_service.create_person("Ana", email="ana@studio.test")
    with pytest.raises(ConflictError):
        directory_service.create_person("Ana Again", email="ANA@studio.test")


def test_list_pools_filters_by_role(make_pool):
    make_pool("Scripts", "script_editor")
    make_pool("Directors", "director")
    names = [p.name for p in directory_service.list_pools(role_key="pitch_editor")]
    assert names == ["Scripts"]


# ── Directory API ────────────────────────────────────────────────────────────


def test_people_and_pool_endpoints(client):
    res = client.post("/api/v1/people", json={"name": "Ana", "email": "ana@studio.test"})
    assert res.status_code == 201
    ana = res.get_json()
    assert ana["org_role"] == "member"

    assert client.post("/api/v1/people", json={"name": "Dup", "email": "ana@studio.test"}).status_code == 409
    assert client.post("/api/v1/people", json={}).status_code == 400
    assert client.post("/api/v1/people", json={"name": "X", "org_role": "king"}).status_code == 422

    res = client.post("/api/v1/pools", json={"name": "Script Desk", "role_key": "script_editor"})
    assert res.status_code == 201
    pool = res.get_json()

    res = client.post(f"/api/v1/pools/{pool['id']}/members", json={"person_id": ana["id"]})
    assert res.status_code == 201
    members = client.get(f"/api/v1/pools/{pool['id']}/members").get_json()
    assert [m["id"] for m in members["items"]] == [ana["id"]]

    res = client.delete(f"/api/v1/pools/{pool['id']}/members/{ana['id']}")
    assert res.status_code == 200
    assert client.delete(f"/api/v1/pools/{pool['id']}/members/{ana['id']}").status_code == 404

    assert client.delete(f"/api/v1/pools/{pool['id']}").status_code == 200
    assert client.get(f"/api/v1/pools/{pool['id']}").status_code == 404


def test_deactivating_person_via_api(client, make_person):
    p = make_person("Temp")
    _db.session.commit()
    res = client.patch(f"/api/v1/people/{p.id}", json={"is_active": False})
    assert res.status_code == 200
    assert res.get_json()["is_active"] is False
    listed = client.get("/api/v1/people").get_json()
    assert p.id not in [x["id"] for x in listed["items"]]
    assert client.patch(f"/api/v1/people/{p.id}", json={"is_active": "no"}).status_code == 400


def test_non_json_post_is_rejected(client):
    res = client.post("/api/v1/people", data="name=Ana", content_type="text/plain")
    assert res.status_code == 415
