"""
tests/integration/test_auth.py — Integration tests for authentication endpoints.

Endpoints covered:
  POST /auth/register  → 201
  POST /auth/login     → 200
  GET  /users/me       → 200

Error cases:
  DUPLICATE_EMAIL       409 — email already registered
  INVALID_CREDENTIALS   401 — wrong password, unknown email, disabled account
  TOKEN_MISSING         401 — no Authorization header
  TOKEN_EXPIRED         401 — expired token
  TOKEN_INVALID         401 — malformed token
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
from sqlalchemy import select

from foodhunt.app.extensions import db
from foodhunt.app.models.user import User

from .conftest import auth_headers, register


# ═══════════════════════════════════════════════════════════════════════════
# POST /auth/register
# ═══════════════════════════════════════════════════════════════════════════

class TestRegister:

    def test_register_success_returns_201_with_token(self, client):
        resp = client.post("/api/v1/auth/register", json={
            "name": "Alice",
            "email": "alice@test.com",
            "password": "Password1",
        })
        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert "access_token" in data
        assert data["user"]["name"] == "Alice"
        assert data["user"]["email"] == "alice@test.com"
        assert data["user"]["role"] == "student"
        assert data["user"]["active_split_id"] is None
        # password_hash must NEVER appear in the response
        assert "password" not in data["user"]
        assert "password_hash" not in data["user"]

    def test_email_is_stored_lowercase(self, client):
        data = register(client, "Bob", email="Bob@Test.com")
        assert data["user"]["email"] == "bob@test.com"

    def test_duplicate_email_returns_409_duplicate_email(self, client):
        register(client, "alice", email="shared@test.com")
        resp = client.post("/api/v1/auth/register", json={
            "name": "alice2", "email": "shared@test.com", "password": "Password1",
        })
        assert resp.status_code == 409
        error = resp.get_json()["error"]
        assert error["code"] == "DUPLICATE_EMAIL"
        assert error["field"] == "email"

    def test_weak_password_no_digit_returns_400(self, client):
        resp = client.post("/api/v1/auth/register", json={
            "name": "alice", "email": "a@b.com", "password": "password",
        })
        assert resp.status_code == 400
        assert resp.get_json()["error"]["field"] == "password"

    def test_missing_fields_return_400(self, client):
        resp = client.post("/api/v1/auth/register", json={})
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "MISSING_FIELD"


# ═══════════════════════════════════════════════════════════════════════════
# POST /auth/login
# ═══════════════════════════════════════════════════════════════════════════

class TestLogin:

    def test_login_success_returns_200_with_token(self, client):
        register(client, "alice")
        resp = client.post("/api/v1/auth/login", json={
            "email": "alice@test.com", "password": "Password1",
        })
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert "access_token" in data
        assert data["user"]["name"] == "alice"

    def test_wrong_password_returns_401_invalid_credentials(self, client):
        register(client, "alice")
        resp = client.post("/api/v1/auth/login", json={
            "email": "alice@test.com", "password": "WrongPass1",
        })
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "INVALID_CREDENTIALS"

    def test_unknown_email_returns_401_invalid_credentials(self, client):
        """Same error code for unknown user and wrong password — avoids enumeration."""
        resp = client.post("/api/v1/auth/login", json={
            "email": "ghost@test.com", "password": "Password1",
        })
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "INVALID_CREDENTIALS"

    def test_disabled_account_cannot_log_in(self, client, app):
        register(client, "alice")
        with app.app_context():
            user = db.session.execute(
                select(User).where(User.email == "alice@test.com")
            ).scalar_one()
            user.is_disabled = True
            db.session.commit()

        resp = client.post("/api/v1/auth/login", json={
            "email": "alice@test.com", "password": "Password1",
        })
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "INVALID_CREDENTIALS"


# ═══════════════════════════════════════════════════════════════════════════
# GET /users/me and token handling
# ═══════════════════════════════════════════════════════════════════════════

class TestMe:

    def test_me_returns_profile(self, client):
        data = register(client, "alice")
        resp = client.get("/api/v1/users/me", headers=auth_headers(data["access_token"]))
        assert resp.status_code == 200
        profile = resp.get_json()["data"]
        assert profile["id"] == data["user"]["id"]
        assert profile["active_split_id"] is None

    def test_missing_token_returns_401(self, client):
        resp = client.get("/api/v1/users/me")
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_MISSING"

    def test_malformed_header_returns_401(self, client):
        resp = client.get("/api/v1/users/me", headers={"Authorization": "Token abc"})
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_INVALID"

    def test_tampered_token_returns_401(self, client):
        data = register(client, "alice")
        resp = client.get(
            "/api/v1/users/me",
            headers=auth_headers(data["access_token"] + "x"),
        )
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_INVALID"

    def test_expired_token_returns_401(self, client, app):
        past = datetime.now(timezone.utc) - timedelta(hours=2)
        token = jwt.encode(
            {"sub": "1", "iat": past, "exp": past + timedelta(minutes=5)},
            app.config["JWT_SECRET_KEY"],
            algorithm="HS256",
        )
        resp = client.get("/api/v1/users/me", headers=auth_headers(token))
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_EXPIRED"

    def test_unknown_route_is_404_not_500(self, client):
        resp = client.get("/api/v1/nothing-here")
        assert resp.status_code == 404
