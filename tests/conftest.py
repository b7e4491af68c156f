"""
Shared pytest fixtures for the NETA Ops report lifecycle test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - author / other_user / reviewer / admin: ActorContext fixtures
    - *_headers: matching X-User-Id / X-User-Role request headers
    - draft_report: a draft created through the lifecycle engine
"""

import pytest

from neta_ops import create_app
from neta_ops.models import db as _db
from neta_ops.services import report_lifecycle
from neta_ops.services.permission import ActorContext, Role

JOB_ID = "job-1001"


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


# ── Actors ───────────────────────────────────────────────────────────────


@pytest.fixture()
def author():
    return ActorContext(user_id="tech-1", role=Role.USER, name="Field Tech")


@pytest.fixture()
def other_user():
    return ActorContext(user_id="tech-2", role=Role.USER, name="Other Tech")


@pytest.fixture()
def reviewer():
    return ActorContext(user_id="mgr-1", role=Role.REVIEWER, name="Manager")


@pytest.fixture()
def admin():
    return ActorContext(user_id="admin-1", role=Role.ADMIN, name="Admin")


def _headers(user_id, role):
    return {"X-User-Id": user_id, "X-User-Role": role}


@pytest.fixture()
def author_headers():
    return _headers("tech-1", "Technician")


@pytest.fixture()
def other_headers():
    return _headers("tech-2", "Technician")


@pytest.fixture()
def reviewer_headers():
    return _headers("mgr-1", "Manager")


@pytest.fixture()
def admin_headers():
    return _headers("admin-1", "Admin")


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def job_id():
    return JOB_ID


@pytest.fixture()
def draft_report(author):
    """A draft report (with its report asset linked to JOB_ID)."""
    return report_lifecycle.create_report(
        author,
        JOB_ID,
        "3-Low Voltage Cable Test ATS",
        "low-voltage-cable-test",
        {"cables": [{"id": "C1", "insulation_mohm": 2200}]},
    )
