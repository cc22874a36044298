"""
Shared pytest fixtures for the document workflow test suite.

Provides:
    - app: Flask application (session-scoped, in-memory SQLite)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - staff / other_staff / reviewer / admin / super_admin: Principals
    - auth_headers: builds a Bearer header for a Principal
    - make_document: creates a draft through the repository
"""

import pytest

from docflow import create_app
from docflow.auth import Principal
from docflow.models import db as _db
from docflow.services.document_repository import repository_for
from docflow.services.jwt_service import generate_access_token

# Minimal valid payloads per kind.
PAYLOADS = {
    "concept_note": {"staff_name": "Ada Obi", "activity_title": "Field training"},
    "purchase_request": {"department": "Logistics", "requested_by": "Ada Obi"},
    "staff_strategy": {"staff_name": "Ada Obi", "job_title": "Officer", "period": "2026"},
    "payment_request": {"request_by": "Ada Obi", "amount_in_figure": 1500},
}


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app(tmp_path_factory):
    """Create the Flask application once per test session."""
    storage_dir = tmp_path_factory.mktemp("objects")
    application = create_app("testing", OBJECT_STORAGE_DIR=str(storage_dir))
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


# ── Principals ───────────────────────────────────────────────────────────


@pytest.fixture()
def staff():
    return Principal.of("u1", "STAFF")


@pytest.fixture()
def other_staff():
    return Principal.of("u9", "STAFF")


@pytest.fixture()
def reviewer():
    return Principal.of("r1", "REVIEWER")


@pytest.fixture()
def admin():
    return Principal.of("u2", "ADMIN")


@pytest.fixture()
def super_admin():
    return Principal.of("sa1", "SUPER-ADMIN")


@pytest.fixture()
def auth_headers():
    """Return a function building an Authorization header for a Principal."""

    def _headers(principal):
        token = generate_access_token(principal.id, principal.role)
        return {"Authorization": f"Bearer {token}"}

    return _headers


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def make_document():
    """Create a draft of `kind` owned by `principal` via the repository."""

    def _make(kind, principal, submit=False, **overrides):
        payload = {**PAYLOADS[kind], **overrides}
        return repository_for(kind).create(payload, principal, submit=submit)

    return _make
