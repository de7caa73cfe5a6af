"""Shared test fixtures for the chat access API test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, rate limits off)
- client: Flask test client
- db_session: clean database per test (tables created/dropped)
- seed_data: a regular user, a paid user, an admin and a second user to chat with
- login: helper that logs a client in through /auth/login
- signed_post: helper that posts a webhook body with a valid Paystack signature
- paystack_response: builds a fake requests.Response for the Paystack API
"""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from werkzeug.security import generate_password_hash

from app import create_app
from app.extensions import db as _db
from app.models.user import User
from app.services.paystack_service import SIGNATURE_HEADER, compute_signature

PASSWORD = "password123"


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


def _make_user(email, full_name, **kwargs):
    user = User(
        email=email,
        password_hash=generate_password_hash(PASSWORD),
        full_name=full_name,
        **kwargs,
    )
    _db.session.add(user)
    return user


@pytest.fixture
def seed_data(app, db_session):
    """Seed the database with the users most tests need.

    Returns a dict with the created objects and their plain ids.
    """
    now = datetime.now(timezone.utc)

    user = _make_user("ada@example.com", "Ada Lovelace")
    paid = _make_user(
        "grace@example.com",
        "Grace Hopper",
        has_chat_access=True,
        payment_date=now - timedelta(days=1),
        access_expiry_date=now + timedelta(days=29),
        payment_reference="chat_seeded",
    )
    friend = _make_user("alan@example.com", "Alan Turing")
    admin = _make_user("admin@example.com", "Admin User", is_admin=True)
    _db.session.commit()

    return {
        "user": user,
        "user_id": user.id,
        "paid": paid,
        "paid_id": paid.id,
        "friend": friend,
        "friend_id": friend.id,
        "admin": admin,
        "admin_id": admin.id,
    }


@pytest.fixture
def login(client):
    """Return a function that logs the test client in as `email`."""

    def _login(email, password=PASSWORD):
        resp = client.post("/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.get_json()
        return resp

    return _login


@pytest.fixture
def signed_post(client, app):
    """Return a function that posts a Paystack webhook with a valid signature."""

    def _post(event, secret=None):
        body = json.dumps(event).encode("utf-8")
        signature = compute_signature(
            body, secret or app.config["PAYSTACK_WEBHOOK_SECRET"]
        )
        return client.post(
            "/payments/subscription/webhook",
            data=body,
            content_type="application/json",
            headers={SIGNATURE_HEADER: signature},
        )

    return _post


@pytest.fixture
def paystack_response():
    """Return a factory for stand-ins of the requests.Response Paystack sends back."""

    def _response(data=None, status=True, message="ok", http_status=200):
        resp = MagicMock()
        resp.status_code = http_status
        resp.json.return_value = {"status": status, "message": message, "data": data}
        return resp

    return _response
