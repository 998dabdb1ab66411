"""
Unit tests for auth_service branches not naturally hit in integration flow.
"""

from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from foodhunt.app.errors import AppError, ErrorCode
from foodhunt.app.services import auth_service


def test_get_current_user_includes_active_split():
    session = MagicMock()
    created_at = datetime(2026, 1, 1, tzinfo=timezone.utc)
    session.get.return_value = SimpleNamespace(
        id=7,
        name="Alice",
        email="alice@example.com",
        role="student",
        pfp_url=None,
        active_split_id=12,
        created_at=created_at,
    )

    result = auth_service.get_current_user(user_id=7, session=session)

    assert result == {
        "id": 7,
        "name": "Alice",
        "email": "alice@example.com",
        "role": "student",
        "pfp_url": None,
        "active_split_id": 12,
        "created_at": created_at.isoformat(),
    }


def test_get_current_user_raises_user_not_found():
    session = MagicMock()
    session.get.return_value = None

    with pytest.raises(AppError) as exc_info:
        auth_service.get_current_user(user_id=99999, session=session)

    err = exc_info.value
    assert err.code == ErrorCode.USER_NOT_FOUND
    assert err.http_status == 404


def test_grant_admin_unknown_email():
    session = MagicMock()
    session.execute.return_value.scalar_one_or_none.return_value = None

    with pytest.raises(AppError) as exc_info:
        auth_service.grant_admin("nobody@test.com", session)

    assert exc_info.value.code == ErrorCode.USER_NOT_FOUND


def test_grant_admin_sets_role():
    user = SimpleNamespace(id=3, role="student")
    session = MagicMock()
    session.execute.return_value.scalar_one_or_none.return_value = user

    auth_service.grant_admin("  Bob@Test.com ", session)

    assert user.role == "admin"
    session.flush.assert_called_once()
