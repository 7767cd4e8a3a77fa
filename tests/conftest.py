"""Pytest fixtures for the ChitChat test suite."""

import pytest
import sys
from pathlib import Path

import fakeredis
from fastapi.encoders import jsonable_encoder
from mongomock_motor import AsyncMongoMockClient

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from chitchat_server.cache import Cache  # noqa: E402
from chitchat_server.config import Settings  # noqa: E402
from chitchat_server.db.database import Database  # noqa: E402
from chitchat_server.fanout import ConnectionManager  # noqa: E402
from chitchat_server.mailer import Mailer  # noqa: E402
from chitchat_server.security import Security  # noqa: E402
from chitchat_server.services import Services  # noqa: E402
from shared.schemas import User  # noqa: E402


class RecordingFanout(ConnectionManager):
    """Fan-out that also remembers every emission."""

    def __init__(self):
        super().__init__()
        self.emitted: list[tuple] = []

    def emit_to_room(self, room_id, event, payload):
        self.emitted.append((room_id, event, jsonable_encoder(payload)))
        super().emit_to_room(room_id, event, payload)

    def emit_broadcast(self, event, payload):
        self.emitted.append((None, event, jsonable_encoder(payload)))
        super().emit_broadcast(event, payload)

    def events(self, name: str) -> list[tuple]:
        return [e for e in self.emitted if e[1] == name]


class FakeMediaStore:
    """Media store that keeps uploads in memory."""

    def __init__(self):
        self.uploads: list[tuple] = []

    async def upload(self, data, mime, folder, name):
        self.uploads.append((folder, name, mime, data))
        return f"https://media.test/{folder}/{name}"


@pytest.fixture
def settings():
    return Settings(bcrypt_rounds=4, jwt_secret="test-secret")


@pytest.fixture
def services(settings):
    """Services wired to in-memory store, cache, media and fan-out doubles."""
    return Services(
        settings=settings,
        db=Database(AsyncMongoMockClient()["ChitChat"]),
        cache=Cache(fakeredis.FakeAsyncRedis()),
        fanout=RecordingFanout(),
        media=FakeMediaStore(),
        mailer=Mailer(None, settings.email_from),
        security=Security(settings),
    )


@pytest.fixture
async def test_client(services):
    """Create an httpx client bound to a fresh app."""
    from httpx import ASGITransport, AsyncClient
    from chitchat_server.main import create_app

    app = create_app(services=services)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


async def _make_user(services, first_name, last_name, email):
    user = User(
        email=email,
        first_name=first_name,
        last_name=last_name,
        password_hash=services.security.hash_secret("password123"),
        profile_image="https://media.test/default.png",
    ).to_doc()
    await services.db.create_user(user)
    return user


@pytest.fixture
async def alice(services):
    return await _make_user(services, "Alice", "Smith", "alice@example.com")


@pytest.fixture
async def bob(services):
    return await _make_user(services, "Bob", "Jones", "bob@example.com")


@pytest.fixture
async def alice_post(test_client, alice):
    """A post owned by Alice, created through the API."""
    response = await test_client.post(
        "/api/createImagePost",
        json={"email": alice["email"], "title": "Hello", "post_text": "First post"},
    )
    assert response.status_code == 200
    return response.json()["post_id"]


@pytest.fixture
async def friends(test_client, alice, bob):
    """Alice and Bob as friends. Returns the friend edge id."""
    sent = await test_client.post(
        "/api/addFriends",
        json={"adder_email": bob["email"], "receiver_email": alice["email"]},
    )
    accepted = await test_client.post(
        f"/api/acceptFriendRequest/{sent.json()['request_id']}",
        json={"user_email": alice["email"], "friend_email": bob["email"]},
    )
    assert accepted.status_code == 200
    return accepted.json()["friend_id"]
