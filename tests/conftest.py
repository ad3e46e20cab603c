"""
Shared pytest fixtures for the Fabtrack test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - admin, requester, approver: approved users
    - project: project with a valid 14-stage plan
    - storage: attachment storage rooted in a tmp dir
"""

import pytest

from fabtrack import create_app
from fabtrack.models import db as _db


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


# ── Helpers ──────────────────────────────────────────────────────────────


def _make_user(email, name=None, role="member", approved=True):
    from fabtrack.models.auth import User

    user = User(email=email, name=name or email.split("@")[0], role=role, is_approved=approved)
    _db.session.add(user)
    _db.session.commit()
    return user


def _project_payload(sales_manager_id, site_manager_id, **overrides):
    payload = {
        "site_name": "Harbor Tower",
        "product_name": "Steel Canopy",
        "product_quantity": 2,
        "outsourcing_company": "Kim Metalworks",
        "sales_manager_id": sales_manager_id,
        "site_manager_id": site_manager_id,
        "order_date": "2026-01-05",
        "expected_completion_date": "2026-06-30",
        "installation_request_date": "2026-06-01",
    }
    payload.update(overrides)
    return payload


def _dated_stages(**extra):
    """Stage overrides with the mandatory contract/completion dates."""
    stages = {
        "contract": {"status": "in_progress", "start_date": "2026-01-05", "end_date": "2026-01-20"},
        "completion": {"status": "waiting", "start_date": "2026-06-20", "end_date": "2026-06-30"},
    }
    for name, fields in extra.items():
        stages.setdefault(name, {}).update(fields)
    return stages


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def admin():
    return _make_user("admin@fabworks.com", "Admin", role="admin")


@pytest.fixture()
def requester():
    return _make_user("req@fabworks.com", "Requester")


@pytest.fixture()
def approver():
    return _make_user("appr@fabworks.com", "Approver", role="manager")


@pytest.fixture()
def project(requester, approver):
    from fabtrack.services.project_service import create_project

    return create_project(
        _project_payload(approver.id, requester.id),
        stages=_dated_stages(),
        creator_id=requester.id,
    )


@pytest.fixture()
def storage(tmp_path):
    from fabtrack.services.attachment_storage import LocalAttachmentStorage

    return LocalAttachmentStorage(str(tmp_path / "blobs"))


@pytest.fixture()
def make_user():
    return _make_user


@pytest.fixture()
def project_payload():
    return _project_payload


@pytest.fixture()
def dated_stages():
    return _dated_stages
