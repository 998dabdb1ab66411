"""
tests/integration/test_splits.py — Creating, listing, completing and deleting splits.

Endpoints covered:
  POST   /splits
  GET    /splits
  GET    /splits/:id
  POST   /splits/:id/complete
  DELETE /splits/:id

Error cases:
  SPLIT_TIME_IN_PAST       422
  SCHEDULE_CONFLICT        409 — another open split less than 4 hours away
  INVALID_PRICE_PRECISION  400
  SPLIT_NOT_FOUND          404
  FORBIDDEN                403 — non-creator completes / deletes
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from foodhunt.app.extensions import db
from foodhunt.app.models.meal_split import MealSplit

from .conftest import auth_headers, make_split, register


class TestCreateSplit:

    def test_create_returns_201_with_creator_as_member(self, client):
        alice = register(client, "alice")
        resp = make_split(client, alice["access_token"], people_needed=3)

        assert resp.status_code == 201
        split = resp.get_json()["data"]
        assert split["creator_id"] == alice["user"]["id"]
        assert split["creator_name"] == "alice"
        assert split["people_joined_ids"] == [alice["user"]["id"]]
        assert split["people_needed"] == 3
        assert split["is_closed"] is False
        assert split["total_price"] == "300.00"

    def test_creator_active_split_pointer_is_set(self, client):
        alice = register(client, "alice")
        split_id = make_split(client, alice["access_token"]).get_json()["data"]["id"]

        me = client.get("/api/v1/users/me", headers=auth_headers(alice["access_token"]))
        assert me.get_json()["data"]["active_split_id"] == split_id

    def test_split_time_in_past_returns_422(self, client):
        alice = register(client, "alice")
        past = (datetime.now(timezone.utc) - timedelta(minutes=5)).isoformat()

        resp = make_split(client, alice["access_token"], split_time=past)

        assert resp.status_code == 422
        assert resp.get_json()["error"]["code"] == "SPLIT_TIME_IN_PAST"

    def test_price_precision_returns_400_with_code(self, client):
        alice = register(client, "alice")

        resp = make_split(client, alice["access_token"], total_price="10.999")

        assert resp.status_code == 400
        error = resp.get_json()["error"]
        assert error["code"] == "INVALID_PRICE_PRECISION"
        assert error["field"] == "total_price"
        assert error["message"] == "Total price must have at most 2 decimal places."

    def test_people_needed_below_two_returns_400(self, client):
        alice = register(client, "alice")

        resp = make_split(client, alice["access_token"], people_needed=1)

        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_FIELD"

    def test_create_requires_auth(self, client):
        resp = client.post("/api/v1/splits", json={})
        assert resp.status_code == 401


class TestScheduleConflict:

    def _base(self):
        return datetime.now(timezone.utc).replace(microsecond=0) + timedelta(days=2)

    def test_second_split_within_four_hours_conflicts(self, client):
        alice = register(client, "alice")
        base = self._base()
        make_split(client, alice["access_token"], split_time=base.isoformat())

        resp = make_split(
            client,
            alice["access_token"],
            split_time=(base + timedelta(hours=3, minutes=59)).isoformat(),
        )

        assert resp.status_code == 409
        assert resp.get_json()["error"]["code"] == "SCHEDULE_CONFLICT"

    def test_second_split_just_past_four_hours_is_allowed(self, client):
        alice = register(client, "alice")
        base = self._base()
        make_split(client, alice["access_token"], split_time=base.isoformat())

        resp = make_split(
            client,
            alice["access_token"],
            split_time=(base + timedelta(hours=4, minutes=1)).isoformat(),
        )

        assert resp.status_code == 201

    def test_closed_splits_do_not_conflict(self, client):
        alice = register(client, "alice")
        base = self._base()
        first = make_split(client, alice["access_token"], split_time=base.isoformat())
        client.post(
            f"/api/v1/splits/{first.get_json()['data']['id']}/complete",
            headers=auth_headers(alice["access_token"]),
        )

        resp = make_split(
            client,
            alice["access_token"],
            split_time=(base + timedelta(hours=1)).isoformat(),
        )

        assert resp.status_code == 201

    def test_other_users_splits_do_not_conflict(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")
        base = self._base()
        make_split(client, alice["access_token"], split_time=base.isoformat())

        resp = make_split(client, bob["access_token"], split_time=base.isoformat())

        assert resp.status_code == 201


class TestListAndGet:

    def test_anonymous_listing_shows_open_splits_newest_first(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")
        first = make_split(client, alice["access_token"]).get_json()["data"]
        second = make_split(client, bob["access_token"]).get_json()["data"]

        resp = client.get("/api/v1/splits")

        assert resp.status_code == 200
        ids = [s["id"] for s in resp.get_json()["data"]]
        assert ids == [second["id"], first["id"]]

    def test_own_closed_splits_are_listed_for_member_only(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")
        split_id = make_split(client, alice["access_token"]).get_json()["data"]["id"]
        client.post(
            f"/api/v1/splits/{split_id}/complete",
            headers=auth_headers(alice["access_token"]),
        )

        anonymous = client.get("/api/v1/splits").get_json()["data"]
        as_bob = client.get("/api/v1/splits", headers=auth_headers(bob["access_token"])).get_json()["data"]
        as_alice = client.get("/api/v1/splits", headers=auth_headers(alice["access_token"])).get_json()["data"]

        assert anonymous == []
        assert as_bob == []
        assert [s["id"] for s in as_alice] == [split_id]
        assert as_alice[0]["closed_reason"] == "completed"

    def test_expired_open_split_is_hidden_but_not_closed(self, client, app):
        alice = register(client, "alice")
        split_id = make_split(client, alice["access_token"]).get_json()["data"]["id"]
        with app.app_context():
            split = db.session.get(MealSplit, split_id)
            split.split_time = datetime.now(timezone.utc) - timedelta(minutes=1)
            db.session.commit()

        listing = client.get("/api/v1/splits").get_json()["data"]
        detail = client.get(
            f"/api/v1/splits/{split_id}",
            headers=auth_headers(alice["access_token"]),
        ).get_json()["data"]

        assert listing == []
        assert detail["is_closed"] is False

    def test_get_unknown_split_returns_404(self, client):
        alice = register(client, "alice")
        resp = client.get("/api/v1/splits/999999", headers=auth_headers(alice["access_token"]))
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "SPLIT_NOT_FOUND"


class TestCompleteAndDelete:

    def test_only_creator_can_complete(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")
        split_id = make_split(client, alice["access_token"]).get_json()["data"]["id"]

        resp = client.post(
            f"/api/v1/splits/{split_id}/complete",
            headers=auth_headers(bob["access_token"]),
        )

        assert resp.status_code == 403
        assert resp.get_json()["error"]["code"] == "FORBIDDEN"

    def test_complete_closes_and_keeps_members(self, client):
        alice = register(client, "alice")
        split_id = make_split(client, alice["access_token"]).get_json()["data"]["id"]

        resp = client.post(
            f"/api/v1/splits/{split_id}/complete",
            headers=auth_headers(alice["access_token"]),
        )

        data = resp.get_json()["data"]
        assert resp.status_code == 200
        assert data["is_closed"] is True
        assert data["closed_reason"] == "completed"
        assert data["people_joined_ids"] == [alice["user"]["id"]]

    def test_delete_is_soft(self, client):
        alice = register(client, "alice")
        split_id = make_split(client, alice["access_token"]).get_json()["data"]["id"]

        resp = client.delete(f"/api/v1/splits/{split_id}", headers=auth_headers(alice["access_token"]))
        detail = client.get(
            f"/api/v1/splits/{split_id}",
            headers=auth_headers(alice["access_token"]),
        ).get_json()["data"]

        assert resp.status_code == 200
        assert detail["is_closed"] is True
        assert detail["closed_reason"] == "deleted"
        assert detail["people_joined_ids"] == [alice["user"]["id"]]

    def test_admin_can_delete_via_cli_grant(self, client, app):
        alice = register(client, "alice")
        mod = register(client, "mod")
        split_id = make_split(client, alice["access_token"]).get_json()["data"]["id"]

        result = app.test_cli_runner().invoke(args=["grant-admin", "mod@test.com"])
        resp = client.delete(f"/api/v1/splits/{split_id}", headers=auth_headers(mod["access_token"]))

        assert result.exit_code == 0
        assert resp.status_code == 200

    def test_grant_admin_unknown_email_fails(self, app):
        result = app.test_cli_runner().invoke(args=["grant-admin", "ghost@test.com"])
        assert result.exit_code != 0

    def test_stranger_cannot_delete(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")
        split_id = make_split(client, alice["access_token"]).get_json()["data"]["id"]

        resp = client.delete(f"/api/v1/splits/{split_id}", headers=auth_headers(bob["access_token"]))

        assert resp.status_code == 403
