"""
Tests for unread counts and mark-as-read.

Tests cover:
- Per-conversation unread count (messages from the other participant only)
- Marking a conversation read, returning the affected row count
- Global unread count equal to the sum over conversations
- Unsent messages excluded from counting
- Non-participants rejected (403)
"""

import pytest

from app import messaging
from app.users import create_user as create_user_row


def signup(client, username: str) -> int:
    response = client.post("/users", json={
        "username": username,
        "email": f"{username}@cgu.edu",
        "password": "secret-password",
    })
    assert response.status_code == 200
    return response.json()["id"]


def open_conversation(client, a: int, b: int) -> int:
    return client.post("/conversations", json={"participant1_id": a, "participant2_id": b}).json()["id"]


def send(client, conversation_id: int, sender_id: int, content: str) -> dict:
    response = client.post("/messages", json={
        "conversation_id": conversation_id,
        "sender_id": sender_id,
        "content": content,
        "message_type": "text",
    })
    assert response.status_code == 200
    return response.json()


def unread(client, user_id: int, conversation_id: int) -> int:
    response = client.get(f"/messages/{conversation_id}/unread/{user_id}")
    assert response.status_code == 200
    return response.json()["count"]


def global_unread(client, user_id: int) -> int:
    response = client.get(f"/messages/unread/{user_id}")
    assert response.status_code == 200
    return response.json()["count"]


@pytest.fixture
def users(client):
    return signup(client, "alice"), signup(client, "bob"), signup(client, "carol")


class TestReadStateScenario:
    """Two users, one conversation, one message, then read."""

    def test_send_then_read(self, client, users):
        alice, bob, _ = users
        conversation = client.post("/conversations", json={"participant1_id": alice, "participant2_id": bob}).json()
        assert (conversation["participant1_id"], conversation["participant2_id"]) == (alice, bob)

        send(client, conversation["id"], alice, "hello")
        assert unread(client, bob, conversation["id"]) == 1

        response = client.put(f"/messages/{conversation['id']}/read/{bob}")
        assert response.status_code == 200
        assert response.json() == {"updated": 1}

        assert unread(client, bob, conversation["id"]) == 0


class TestUnreadCount:
    """Test GET /messages/{conversation_id}/unread/{user_id}."""

    def test_own_messages_not_counted(self, client, users):
        alice, bob, _ = users
        conversation_id = open_conversation(client, alice, bob)
        send(client, conversation_id, alice, "one")
        send(client, conversation_id, alice, "two")
        send(client, conversation_id, bob, "three")

        assert unread(client, alice, conversation_id) == 1
        assert unread(client, bob, conversation_id) == 2

    def test_unsent_messages_not_counted(self, client, users):
        alice, bob, _ = users
        conversation_id = open_conversation(client, alice, bob)
        send(client, conversation_id, alice, "stays")
        gone = send(client, conversation_id, alice, "goes")
        client.post(f"/messages/{gone['id']}/unsend", json={"user_id": alice})

        assert unread(client, bob, conversation_id) == 1
        assert global_unread(client, bob) == 1

    def test_non_participant_rejected(self, client, users):
        alice, bob, carol = users
        conversation_id = open_conversation(client, alice, bob)

        response = client.get(f"/messages/{conversation_id}/unread/{carol}")

        assert response.status_code == 403

    def test_unknown_conversation_404(self, client, users):
        alice, _, _ = users

        assert client.get(f"/messages/999/unread/{alice}").status_code == 404


class TestMarkConversationRead:
    """Test PUT /messages/{conversation_id}/read/{user_id}."""

    def test_already_caught_up_returns_zero(self, client, users):
        alice, bob, _ = users
        conversation_id = open_conversation(client, alice, bob)
        send(client, conversation_id, alice, "hi")
        client.put(f"/messages/{conversation_id}/read/{bob}")

        response = client.put(f"/messages/{conversation_id}/read/{bob}")

        assert response.status_code == 200
        assert response.json() == {"updated": 0}

    def test_only_other_participants_messages_marked(self, client, users):
        alice, bob, _ = users
        conversation_id = open_conversation(client, alice, bob)
        send(client, conversation_id, alice, "from alice")
        send(client, conversation_id, bob, "from bob")

        client.put(f"/messages/{conversation_id}/read/{bob}")

        messages = {m["content"]: m for m in client.get(f"/messages/{conversation_id}").json()}
        assert messages["from alice"]["is_read"] is True
        assert messages["from bob"]["is_read"] is False
        assert unread(client, alice, conversation_id) == 1

    def test_messages_after_read_are_unread(self, client, users):
        alice, bob, _ = users
        conversation_id = open_conversation(client, alice, bob)
        send(client, conversation_id, alice, "first")
        client.put(f"/messages/{conversation_id}/read/{bob}")

        send(client, conversation_id, alice, "second")

        assert unread(client, bob, conversation_id) == 1

    def test_non_participant_rejected(self, client, users):
        alice, bob, carol = users
        conversation_id = open_conversation(client, alice, bob)
        send(client, conversation_id, alice, "private")

        response = client.put(f"/messages/{conversation_id}/read/{carol}")

        assert response.status_code == 403
        assert unread(client, bob, conversation_id) == 1

    def test_read_reflected_in_conversation_list(self, client, users):
        alice, bob, _ = users
        conversation_id = open_conversation(client, alice, bob)
        send(client, conversation_id, alice, "hi")

        client.put(f"/messages/{conversation_id}/read/{bob}")

        assert client.get(f"/conversations/{bob}").json()[0]["unread_count"] == 0


class TestGlobalUnreadCount:
    """Test GET /messages/unread/{user_id}."""

    def test_no_conversations(self, client, users):
        alice, _, _ = users

        assert global_unread(client, alice) == 0

    def test_sum_across_conversations(self, client, users):
        alice, bob, carol = users
        with_bob = open_conversation(client, alice, bob)
        with_carol = open_conversation(client, alice, carol)
        send(client, with_bob, bob, "b1")
        send(client, with_bob, bob, "b2")
        send(client, with_carol, carol, "c1")
        send(client, with_carol, alice, "reply")

        total = global_unread(client, alice)

        assert total == 3
        assert total == unread(client, alice, with_bob) + unread(client, alice, with_carol)
        assert total == sum(c["unread_count"] for c in client.get(f"/conversations/{alice}").json())

    def test_other_users_conversations_ignored(self, client, users):
        alice, bob, carol = users
        between_bob_and_carol = open_conversation(client, bob, carol)
        send(client, between_bob_and_carol, bob, "not for alice")

        assert global_unread(client, alice) == 0
        assert global_unread(client, carol) == 1


class TestReadStateDirect:
    """Read-state functions called against a session."""

    def test_mark_read_returns_rows_affected(self, db):
        a = create_user_row(db, "alice", "alice@cgu.edu", "pw")
        b = create_user_row(db, "bob", "bob@cgu.edu", "pw")
        conversation, _ = messaging.get_or_create_conversation(db, a.id, b.id)
        for text in ("one", "two", "three"):
            messaging.send_message(db, conversation.id, a.id, text)

        assert messaging.get_unread_count(db, b.id, conversation.id) == 3
        assert messaging.mark_conversation_read(db, conversation.id, b.id) == 3
        assert messaging.get_unread_count(db, b.id, conversation.id) == 0
        assert messaging.get_global_unread_count(db, b.id) == 0
