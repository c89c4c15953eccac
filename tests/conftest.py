"""
Shared pytest fixtures for the segment pipeline test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_person / make_pool / make_segment: ORM factories
"""

from datetime import date, timedelta

import pytest

from segflow import create_app
from segflow.models import db as _db
from segflow.models.directory import Person, Pool, PoolMembership


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Factories ────────────────────────────────────────────────────────────


def _make_person(name: str, org_role: str = "member") -> Person:
    p = Person(name=name, org_role=org_role, email=f"{name.lower().replace(' ', '.')}@studio.test")
    _db.session.add(p)
    _db.session.flush()
    return p


def _make_pool(name: str, role_key: str, members=()) -> Pool:
    pool = Pool(name=name, role_key=role_key)
    _db.session.add(pool)
    _db.session.flush()
    for person in members:
        _db.session.add(PoolMembership(pool_id=pool.id, person_id=person.id))
    _db.session.flush()
    return pool


@pytest.fixture()
def make_person():
    return _make_person


@pytest.fixture()
def make_pool():
    return _make_pool


@pytest.fixture()
def crew():
    """A person for every required default-template seat, plus a leader."""
    people = {
        "owner": _make_person("Olive Owner"),
        "script_editor": _make_person("Sam Script"),
        "content_strategist": _make_person("Cora Strategy"),
        "director": _make_person("Dee Director"),
        "post_supervisor": _make_person("Pat Post"),
        "executive": _make_person("Eve Exec", org_role="executive"),
        "outsider": _make_person("Otto Outsider"),
    }
    _db.session.commit()
    return people


@pytest.fixture()
def make_segment(crew):
    """Create a default-template segment through the facade."""
    from segflow.services import segment_service

    def _factory(anchor_date=None, seats=None, **kwargs):
        anchor_date = anchor_date or date.today() + timedelta(days=10)
        if seats is None:
            seats = {
                role: {"person_id": crew[role].id}
                for role in ("script_editor", "content_strategist", "director", "post_supervisor")
            }
        result = segment_service.create_segment(
            title=kwargs.pop("title", "Morning Show Pilot"),
            owner_id=kwargs.pop("owner_id", crew["owner"].id),
            anchor_date=anchor_date,
            seats=seats,
            **kwargs,
        )
        return result["segment"]

    return _factory
