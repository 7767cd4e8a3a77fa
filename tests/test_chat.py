"""Tests for friend-to-friend chat."""

import pytest

pytestmark = pytest.mark.asyncio


def message_body(sender, receiver, text):
    return {"sender_email": sender["email"], "receiver_email": receiver["email"], "text": text}


async def test_send_message(test_client, services, friends, alice, bob):
    """Test a message is stored on both sides, then emitted to the edge room."""
    response = await test_client.post(f"/api/chat/{friends}", json=message_body(bob, alice, "hey"))

    assert response.status_code == 200
    message = response.json()["data"]
    assert message["text"] == "hey"

    for email in (alice["email"], bob["email"]):
        edge = await services.db.get_friend(email, friends)
        assert [m["_id"] for m in edge["chats"]] == [message["_id"]]

    emitted = services.fanout.events("receiveMessage")
    assert [(room, data["_id"]) for room, _, data in emitted] == [(friends, message["_id"])]


async def test_message_not_idempotent(test_client, services, friends, alice, bob):
    for _ in range(2):
        await test_client.post(f"/api/chat/{friends}", json=message_body(bob, alice, "again"))

    edge = await services.db.get_friend(alice["email"], friends)
    assert len(edge["chats"]) == 2


async def test_message_length(test_client, friends, alice, bob):
    empty = await test_client.post(f"/api/chat/{friends}", json=message_body(bob, alice, "  "))
    too_long = await test_client.post(f"/api/chat/{friends}", json=message_body(bob, alice, "x" * 2001))

    assert empty.status_code == 400
    assert too_long.status_code == 400


async def test_message_to_non_friend(test_client, services, alice, bob):
    from shared.schemas import new_id

    response = await test_client.post(f"/api/chat/{new_id()}", json=message_body(bob, alice, "hi"))

    assert response.status_code == 404
    assert services.fanout.events("receiveMessage") == []


async def test_get_messages(test_client, friends, alice, bob):
    for text in ("one", "two", "three"):
        await test_client.post(f"/api/chat/{friends}", json=message_body(bob, alice, text))

    response = await test_client.post(
        "/api/getChatMessages",
        json={"user_email": alice["email"], "friend_id": friends, "limit": 2},
    )

    assert response.status_code == 200
    assert [m["text"] for m in response.json()["data"]] == ["two", "three"]
    assert response.json()["friend"]["email"] == bob["email"]


async def test_chat_user(test_client, alice, bob):
    response = await test_client.post(
        "/api/chatUser", json={"user_email": alice["email"], "chat_email": bob["email"]}
    )

    assert response.status_code == 200
    assert response.json()["data"]["first_name"] == "Bob"
    assert "password_hash" not in response.json()["data"]
