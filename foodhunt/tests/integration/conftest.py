"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - Tests run against a real database: in-memory SQLite by default,
    PostgreSQL when TEST_DATABASE_URL is set.
  - The app is created once per session using create_app("testing").
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order so tests are isolated.

Helper functions (not fixtures) are provided for common operations:
  - register(client, ...)       → dict with user + access_token
  - auth_headers(token)         → {"Authorization": "Bearer <token>"}
  - make_split(client, ...)     → HTTP response
  - request_join(client, ...)   → HTTP response
  - respond(client, ...)        → HTTP response

These are plain functions (not pytest fixtures) so they can be called with
arbitrary arguments in any test.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import text

from foodhunt.app import create_app
from foodhunt.app.extensions import db as _db


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """
    Creates the Flask application in 'testing' mode once for the entire test
    session, creates all tables, and drops them at teardown.
    """
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """
    Deletes all rows after every test, children before parents:
    messages → conversations → join requests → members → splits → users.
    """
    yield

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test

        with _db.engine.connect() as conn:
            conn.execute(text("DELETE FROM messages"))
            conn.execute(text("DELETE FROM conversations"))
            conn.execute(text("DELETE FROM split_join_requests"))
            conn.execute(text("DELETE FROM split_members"))
            conn.execute(text("DELETE FROM meal_splits"))
            conn.execute(text("DELETE FROM users"))
            conn.commit()


# ═══════════════════════════════════════════════════════════════════════════
# Client fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def register(
    client,
    name: str = "alice",
    email: str | None = None,
    password: str = "Password1",
) -> dict:
    """
    Registers a new user and returns the full response data dict.
    Returns: {"user": {...}, "access_token": "..."}
    """
    if email is None:
        email = f"{name.lower()}@test.com"
    resp = client.post(
        "/api/v1/auth/register",
        json={"name": name, "email": email, "password": password},
    )
    assert resp.status_code == 201, f"register failed: {resp.get_json()}"
    return resp.get_json()["data"]


def auth_headers(token: str) -> dict:
    """Returns the Authorization header dict for use in test requests."""
    return {"Authorization": f"Bearer {token}"}


def future(hours: float = 24) -> str:
    """ISO-8601 instant `hours` from now, for split_time."""
    return (datetime.now(timezone.utc) + timedelta(hours=hours)).isoformat()


def make_split(client, token: str, **overrides):
    """Creates a split and returns the HTTP response."""
    payload = {
        "vendor_id": "v-1",
        "vendor_name": "Campus Cafe",
        "dish_name": "Biryani",
        "total_price": "300.00",
        "people_needed": 2,
        "time_note": "near the library",
        "split_time": future(),
    }
    payload.update(overrides)
    return client.post("/api/v1/splits", json=payload, headers=auth_headers(token))


def request_join(client, token: str, split_id: int):
    return client.post(f"/api/v1/splits/{split_id}/requests", headers=auth_headers(token))


def respond(client, token: str, request_id: int, status: str = "accepted"):
    return client.post(
        f"/api/v1/split-requests/{request_id}/respond",
        json={"status": status},
        headers=auth_headers(token),
    )
