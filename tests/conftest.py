"""Shared test fixtures for the activity tracker test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, no queue workers)
- client: Flask test client
- db_session: clean database per test (tables created/dropped)
- seed_data: two companies with users, plus a platform admin
- make_activity: write an activity at a chosen time, bypassing the tracker
- auth_headers: bearer token headers for a user

Requests made by the test client reuse the app context db_session pushed,
so fixtures and requests share one SQLAlchemy session. Keep to one
identity per test when calling authenticated endpoints: Flask-Login caches
the resolved user on ``g`` for the life of that context.
"""

from datetime import datetime, timezone

import pytest

from activity_app import create_app
from activity_app.extensions import db as _db
from activity_app.blueprints.sessions import generate_token_for
from activity_app.middleware.tenant import with_tenant
from activity_app.models.activity import Activity
from activity_app.services.provisioning_service import (
    create_company,
    create_user,
    discard_user,
)


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after.

    Also empties the deferred queue so payloads never leak between tests.
    """
    with app.app_context():
        _db.create_all()
        yield _db.session
        app.extensions["activity_queue"].clear()
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def activity_queue(app):
    return app.extensions["activity_queue"]


@pytest.fixture
def seed_data(db_session):
    """Seed two companies, their users, and a platform admin.

    Returns a dict with all created objects for easy access in tests.
    """
    # --- Companies ---
    acme = create_company("Acme")
    globex = create_company("Globex")
    quiet = create_company("QuietCo", tracking_enabled=False)
    picky = create_company("PickyCo", enabled_activity_types=["login", "logout"])

    # --- Users ---
    alice = create_user(acme, "alice@acme.test", "Alice", role="company_admin")
    bob = create_user(acme, "bob@acme.test", "Bob")
    carol = create_user(acme, "carol@acme.test", "Carol")
    gina = create_user(globex, "gina@globex.test", "Gina", role="company_admin")
    hank = create_user(globex, "hank@globex.test", "Hank")
    quinn = create_user(quiet, "quinn@quiet.test", "Quinn")
    pat = create_user(picky, "pat@picky.test", "Pat")
    root = create_user(acme, "root@platform.test", "Root", role="admin")

    # --- Discarded user ---
    dora = create_user(acme, "dora@acme.test", "Dora")
    discard_user(dora)

    _db.session.commit()

    return {
        "acme": acme,
        "globex": globex,
        "quiet": quiet,
        "picky": picky,
        "alice": alice,  # company_admin @ Acme
        "bob": bob,
        "carol": carol,
        "gina": gina,  # company_admin @ Globex
        "hank": hank,
        "quinn": quinn,  # tracking disabled
        "pat": pat,  # login/logout only
        "root": root,  # platform admin
        "dora": dora,  # discarded
    }


@pytest.fixture
def make_activity(db_session):
    """Persist an activity directly, with an explicit occurred_at."""

    def _make(user, activity_type="login", occurred_at=None, metadata=None):
        with with_tenant(user.company_id):
            activity = Activity.create_from_payload({
                "user_id": user.id,
                "company_id": user.company_id,
                "activity_type": activity_type,
                "metadata": metadata or {},
                "occurred_at": occurred_at or datetime.now(timezone.utc),
            })
            _db.session.commit()
        return activity

    return _make


@pytest.fixture
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {generate_token_for(user)}"}

    return _headers
