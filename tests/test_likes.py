"""Tests for like functionality."""

import pytest

pytestmark = pytest.mark.asyncio


def like_body(poster, liker, post_id):
    return {"poster_email": poster["email"], "liker_email": liker["email"], "post_id": post_id}


async def test_like_post(test_client, services, alice, bob, alice_post):
    """Test a like lands on both copies and notifies the owner."""
    response = await test_client.post("/api/likedPost", json=like_body(alice, bob, alice_post))

    assert response.status_code == 200
    assert [l["liked_by_email"] for l in response.json()["post"]["liked"]] == [bob["email"]]

    flat = await services.db.get_post(alice_post)
    owner = await services.db.get_user(alice["email"])
    assert len(flat["liked"]) == 1
    assert len(owner["posts"][0]["liked"]) == 1
    assert owner["notifications"][0]["email"] == bob["email"]
    assert owner["notifications"][0]["subject_id"] == alice_post

    assert len(services.fanout.events("postLiked")) == 1


async def test_like_twice_conflicts(test_client, services, alice, bob, alice_post):
    """Test a liker can like a post at most once."""
    first = await test_client.post("/api/likedPost", json=like_body(alice, bob, alice_post))
    second = await test_client.post("/api/likedPost", json=like_body(alice, bob, alice_post))

    assert first.status_code == 200
    assert second.status_code == 409

    flat = await services.db.get_post(alice_post)
    assert len(flat["liked"]) == 1


async def test_like_own_post(test_client, alice, alice_post):
    response = await test_client.post("/api/likedPost", json=like_body(alice, alice, alice_post))

    assert response.status_code == 409
    assert response.json()["message"] == "You cannot like your own post"


async def test_like_unknown_post(test_client, alice, bob):
    from shared.schemas import new_id

    response = await test_client.post("/api/likedPost", json=like_body(alice, bob, new_id()))
    assert response.status_code == 404


async def test_like_updates_cached_post(test_client, services, alice, bob, alice_post):
    """Test the cached post reflects the like after reconciliation."""
    await test_client.post("/api/postDisplay", json={"email": alice["email"], "post_id": alice_post})

    await test_client.post("/api/likedPost", json=like_body(alice, bob, alice_post))

    shown = await test_client.post(
        "/api/postDisplay", json={"email": alice["email"], "post_id": alice_post}
    )
    assert shown.json()["source"] == "cache"
    assert len(shown.json()["post"]["liked"]) == 1


async def test_like_updates_cached_owner(test_client, services, alice, bob, alice_post):
    await test_client.get(f"/api/getUserProfile/{alice['email']}")

    await test_client.post("/api/likedPost", json=like_body(alice, bob, alice_post))

    cached = await services.cache.get_json(f"user:{alice['email']}")
    assert len(cached["posts"][0]["liked"]) == 1


async def test_unlike_post(test_client, services, alice, bob, alice_post):
    await test_client.post("/api/likedPost", json=like_body(alice, bob, alice_post))

    response = await test_client.post("/api/UnlikePost", json=like_body(alice, bob, alice_post))
    assert response.status_code == 200
    assert response.json()["post"]["liked"] == []

    flat = await services.db.get_post(alice_post)
    owner = await services.db.get_user(alice["email"])
    assert flat["liked"] == []
    assert owner["posts"][0]["liked"] == []
    assert len(services.fanout.events("postUnliked")) == 1


async def test_unlike_without_like(test_client, alice, bob, alice_post):
    response = await test_client.post("/api/UnlikePost", json=like_body(alice, bob, alice_post))
    assert response.status_code == 409


async def test_like_fails_without_embedded_copy(test_client, services, alice, bob):
    """Test a post missing from its owner is a server error, not a silent success."""
    from shared.schemas import Identity, Post

    owner = await services.db.get_user(alice["email"])
    post = Post(**Identity.of(owner).model_dump(), title="Orphan").to_doc()
    await services.db.insert_post(post)

    response = await test_client.post("/api/likedPost", json=like_body(alice, bob, post["_id"]))

    assert response.status_code == 500
    assert response.json()["message"] == "Failed to like post. Try again."
    assert "embedded matched no document" in response.json()["error"]
    assert services.fanout.events("postLiked") == []

    # The flat write that landed is not rolled back
    flat = await services.db.get_post(post["_id"])
    assert [l["liked_by_email"] for l in flat["liked"]] == [bob["email"]]
