"""Tests for the auth blueprint.

Covers:
- Registration (validation, duplicates, auto login)
- Login / logout
- /auth/me
"""

from app.extensions import db
from app.models.audit import AuditEvent
from app.models.user import User


class TestRegister:

    def test_register_creates_and_logs_in(self, client, db_session):
        resp = client.post("/auth/register", json={
            "email": "New@Example.com", "password": "longenough", "full_name": "New User",
        })

        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["email"] == "new@example.com"
        assert data["has_chat_access"] is False

        assert client.get("/auth/me").status_code == 200
        assert AuditEvent.query.filter_by(action="user.registered").count() == 1

    def test_duplicate_email(self, client, seed_data):
        resp = client.post("/auth/register", json={
            "email": "ada@example.com", "password": "longenough", "full_name": "Ada Again",
        })
        assert resp.status_code == 400
        assert "already exists" in resp.get_json()["error"]

    def test_short_password(self, client, db_session):
        resp = client.post("/auth/register", json={
            "email": "x@example.com", "password": "short", "full_name": "X",
        })
        assert resp.status_code == 400
        assert User.query.count() == 0

    def test_collects_all_errors(self, client, db_session):
        resp = client.post("/auth/register", json={})
        body = resp.get_json()
        assert resp.status_code == 400
        assert len(body["details"]["errors"]) == 3


class TestLogin:

    def test_valid_login(self, client, seed_data, login):
        resp = login("ada@example.com")
        assert resp.get_json()["data"]["id"] == seed_data["user_id"]

    def test_wrong_password(self, client, seed_data):
        resp = client.post("/auth/login", json={
            "email": "ada@example.com", "password": "wrong-password",
        })
        assert resp.status_code == 401
        assert resp.get_json()["code"] == "INVALID_CREDENTIALS"

    def test_unknown_email(self, client, seed_data):
        resp = client.post("/auth/login", json={
            "email": "nobody@example.com", "password": "password123",
        })
        assert resp.status_code == 401

    def test_disabled_account(self, client, seed_data):
        seed_data["user"].is_active = False
        db.session.commit()

        resp = client.post("/auth/login", json={
            "email": "ada@example.com", "password": "password123",
        })

        assert resp.status_code == 401
        assert resp.get_json()["code"] == "ACCOUNT_DISABLED"

    def test_missing_fields(self, client, db_session):
        resp = client.post("/auth/login", json={"email": "ada@example.com"})
        assert resp.status_code == 400


class TestSession:

    def test_me_requires_login(self, client, db_session):
        resp = client.get("/auth/me")
        assert resp.status_code == 401
        assert resp.get_json()["code"] == "AUTH_REQUIRED"

    def test_logout(self, client, seed_data, login):
        login("ada@example.com")
        assert client.post("/auth/logout").status_code == 200
        assert client.get("/auth/me").status_code == 401
