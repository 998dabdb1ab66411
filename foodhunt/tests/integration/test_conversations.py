"""
tests/integration/test_conversations.py — Inbox and direct messages.

Endpoints covered:
  POST   /conversations/messages
  GET    /conversations
  GET    /conversations/:cid/messages
  POST   /conversations/:cid/read
  DELETE /conversations/:cid
  DELETE /conversations

Error cases:
  SELF_MESSAGE             422
  USER_NOT_FOUND           404 — unknown receiver
  CONVERSATION_NOT_FOUND   404
  FORBIDDEN                403 — caller is not a participant
"""

from __future__ import annotations

from .conftest import auth_headers, register


def _send(client, sender, receiver_id, content="hello"):
    return client.post(
        "/api/v1/conversations/messages",
        json={"receiver_id": receiver_id, "content": content},
        headers=auth_headers(sender["access_token"]),
    )


def _cid(a, b):
    low, high = sorted((a["user"]["id"], b["user"]["id"]))
    return f"{low}_{high}"


def _inbox(client, user):
    return client.get("/api/v1/conversations", headers=auth_headers(user["access_token"])).get_json()["data"]


class TestSendMessage:

    def test_send_returns_201(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")

        resp = _send(client, alice, bob["user"]["id"], "lunch at 1?")

        assert resp.status_code == 201
        message = resp.get_json()["data"]
        assert message["conversation_id"] == _cid(alice, bob)
        assert message["sender_id"] == alice["user"]["id"]
        assert message["is_read"] is False
        assert message["request_id"] is None

    def test_send_to_self_returns_422(self, client):
        alice = register(client, "alice")

        resp = _send(client, alice, alice["user"]["id"])

        assert resp.status_code == 422
        assert resp.get_json()["error"]["code"] == "SELF_MESSAGE"

    def test_unknown_receiver_returns_404(self, client):
        alice = register(client, "alice")

        resp = _send(client, alice, 999999)

        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "USER_NOT_FOUND"

    def test_blank_content_returns_400(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")

        resp = _send(client, alice, bob["user"]["id"], "   ")

        assert resp.status_code == 400


class TestInbox:

    def test_both_directions_share_one_conversation(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")
        _send(client, alice, bob["user"]["id"], "hi")
        _send(client, bob, alice["user"]["id"], "hey")

        conversations = _inbox(client, alice)

        assert len(conversations) == 1
        conv = conversations[0]
        assert sorted(conv["participants"]) == sorted([alice["user"]["id"], bob["user"]["id"]])
        assert conv["last_message"]["content"] == "hey"
        assert conv["last_message"]["sender_id"] == bob["user"]["id"]
        assert conv["unread_counts"][str(alice["user"]["id"])] == 1
        assert conv["unread_counts"][str(bob["user"]["id"])] == 1

    def test_inbox_is_newest_first(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")
        carol = register(client, "carol")
        _send(client, bob, alice["user"]["id"])
        _send(client, carol, alice["user"]["id"])

        ids = [c["id"] for c in _inbox(client, alice)]

        assert ids == [_cid(alice, carol), _cid(alice, bob)]

    def test_inbox_only_shows_own_conversations(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")
        carol = register(client, "carol")
        _send(client, alice, bob["user"]["id"])

        assert _inbox(client, carol) == []


class TestChat:

    def test_chat_is_chronological(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")
        _send(client, alice, bob["user"]["id"], "one")
        _send(client, bob, alice["user"]["id"], "two")
        _send(client, alice, bob["user"]["id"], "three")

        resp = client.get(
            f"/api/v1/conversations/{_cid(alice, bob)}/messages",
            headers=auth_headers(bob["access_token"]),
        )

        assert resp.status_code == 200
        assert [m["content"] for m in resp.get_json()["data"]] == ["one", "two", "three"]

    def test_non_participant_gets_403(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")
        carol = register(client, "carol")
        _send(client, alice, bob["user"]["id"])

        resp = client.get(
            f"/api/v1/conversations/{_cid(alice, bob)}/messages",
            headers=auth_headers(carol["access_token"]),
        )

        assert resp.status_code == 403
        assert resp.get_json()["error"]["code"] == "FORBIDDEN"

    def test_unknown_conversation_returns_404(self, client):
        alice = register(client, "alice")

        resp = client.get(
            "/api/v1/conversations/998_999/messages",
            headers=auth_headers(alice["access_token"]),
        )

        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "CONVERSATION_NOT_FOUND"


class TestMarkAsRead:

    def test_read_resets_only_callers_counter(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")
        _send(client, alice, bob["user"]["id"], "one")
        _send(client, alice, bob["user"]["id"], "two")
        _send(client, bob, alice["user"]["id"], "back")

        resp = client.post(
            f"/api/v1/conversations/{_cid(alice, bob)}/read",
            headers=auth_headers(bob["access_token"]),
        )

        assert resp.status_code == 200
        conv = _inbox(client, bob)[0]
        assert conv["unread_counts"][str(bob["user"]["id"])] == 0
        assert conv["unread_counts"][str(alice["user"]["id"])] == 1

        chat = client.get(
            f"/api/v1/conversations/{_cid(alice, bob)}/messages",
            headers=auth_headers(bob["access_token"]),
        ).get_json()["data"]
        assert [m["is_read"] for m in chat] == [True, True, False]


class TestDelete:

    def test_delete_one_conversation(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")
        _send(client, alice, bob["user"]["id"])

        resp = client.delete(
            f"/api/v1/conversations/{_cid(alice, bob)}",
            headers=auth_headers(alice["access_token"]),
        )

        assert resp.status_code == 200
        assert _inbox(client, alice) == []
        assert _inbox(client, bob) == []

    def test_stranger_cannot_delete(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")
        carol = register(client, "carol")
        _send(client, alice, bob["user"]["id"])

        resp = client.delete(
            f"/api/v1/conversations/{_cid(alice, bob)}",
            headers=auth_headers(carol["access_token"]),
        )

        assert resp.status_code == 403

    def test_clear_inbox_reports_count(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")
        carol = register(client, "carol")
        _send(client, alice, bob["user"]["id"])
        _send(client, carol, alice["user"]["id"])
        _send(client, bob, carol["user"]["id"])

        resp = client.delete("/api/v1/conversations", headers=auth_headers(alice["access_token"]))

        assert resp.status_code == 200
        assert resp.get_json()["data"] == {"deleted": 2}
        assert _inbox(client, alice) == []
        assert len(_inbox(client, bob)) == 1
