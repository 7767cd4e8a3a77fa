"""Tests for signup, login and OTP verification."""

from datetime import datetime, timedelta

import pytest
from jose import jwt

from chitchat_server.routes import auth as auth_routes

pytestmark = pytest.mark.asyncio

SIGNUP = {
    "first_name": "Carol",
    "last_name": "King",
    "email": "carol@example.com",
    "password": "password123",
}


@pytest.fixture
def fixed_otp(monkeypatch):
    monkeypatch.setattr(auth_routes, "generate_otp", lambda: "123456")
    return "123456"


async def test_signup(test_client, services, fixed_otp):
    response = await test_client.post("/api/signup", json=SIGNUP)

    assert response.status_code == 201
    data = response.json()
    assert data["user"]["email"] == SIGNUP["email"]
    assert data["access_token"]
    assert "refreshToken=" in response.headers["set-cookie"]

    stored = await services.db.get_user(SIGNUP["email"])
    assert stored["password_hash"] != SIGNUP["password"]
    assert stored["is_verified"] is False
    assert services.security.verify_secret(fixed_otp, stored["otp_hash"])


async def test_signup_existing_email(test_client, fixed_otp):
    await test_client.post("/api/signup", json=SIGNUP)
    response = await test_client.post("/api/signup", json=SIGNUP)

    assert response.status_code == 409


@pytest.mark.parametrize("field,value", [
    ("first_name", "C"),
    ("last_name", "K1ng"),
    ("email", "not-an-email"),
    ("password", "short"),
])
async def test_signup_validation(test_client, field, value):
    response = await test_client.post("/api/signup", json={**SIGNUP, field: value})
    assert response.status_code == 400


async def test_signup_invalidates_directory(test_client, services, alice, fixed_otp):
    await test_client.get("/api/users")
    await test_client.post("/api/signup", json=SIGNUP)

    response = await test_client.get("/api/users")
    assert response.json()["source"] == "db"
    assert response.json()["total_count"] == 2


async def test_login(test_client, alice):
    response = await test_client.post(
        "/api/login", json={"email": alice["email"], "password": "password123"}
    )

    assert response.status_code == 200
    assert response.json()["user"]["email"] == alice["email"]
    assert "refreshToken=" in response.headers["set-cookie"]


async def test_mixed_case_email_reaches_same_account(test_client, alice):
    login = await test_client.post(
        "/api/login", json={"email": " Alice@Example.com", "password": "password123"}
    )
    profile = await test_client.get("/api/getUserProfile/ALICE@EXAMPLE.COM")

    assert login.status_code == 200
    assert login.json()["user"]["email"] == alice["email"]
    assert profile.status_code == 200
    assert profile.json()["user"]["email"] == alice["email"]


async def test_login_wrong_password(test_client, alice):
    response = await test_client.post(
        "/api/login", json={"email": alice["email"], "password": "wrong-password"}
    )
    assert response.status_code == 400


async def test_login_unknown_user(test_client):
    response = await test_client.post(
        "/api/login", json={"email": "nobody@example.com", "password": "password123"}
    )
    assert response.status_code == 404


async def test_verify_otp(test_client, services, fixed_otp):
    await test_client.post("/api/signup", json=SIGNUP)

    wrong = await test_client.post("/api/verifyOtp", json={"email": SIGNUP["email"], "otp": "000000"})
    assert wrong.status_code == 400

    right = await test_client.post("/api/verifyOtp", json={"email": SIGNUP["email"], "otp": fixed_otp})
    assert right.status_code == 200

    stored = await services.db.get_user(SIGNUP["email"])
    assert stored["is_verified"] is True
    assert "otp_hash" not in stored


async def test_verify_expired_otp(test_client, services, fixed_otp):
    await test_client.post("/api/signup", json=SIGNUP)
    await services.db.set_user_fields(
        SIGNUP["email"], {"otp_expire": datetime.utcnow() - timedelta(minutes=1)}
    )

    response = await test_client.post(
        "/api/verifyOtp", json={"email": SIGNUP["email"], "otp": fixed_otp}
    )
    assert response.status_code == 400
    assert response.json()["message"] == "OTP has expired. Please request a new one."


async def test_resend_otp(test_client, services, monkeypatch, fixed_otp):
    await test_client.post("/api/signup", json=SIGNUP)
    monkeypatch.setattr(auth_routes, "generate_otp", lambda: "654321")

    response = await test_client.post("/api/resetOtp", json={"email": SIGNUP["email"]})
    assert response.status_code == 200

    stored = await services.db.get_user(SIGNUP["email"])
    assert services.security.verify_secret("654321", stored["otp_hash"])


async def test_resend_otp_unknown(test_client):
    response = await test_client.post("/api/resetOtp", json={"email": "nobody@example.com"})
    assert response.status_code == 404


async def test_logout(test_client):
    response = await test_client.get("/api/logout")
    assert response.status_code == 200
    assert "refreshToken=" in response.headers["set-cookie"]


async def test_access_token_claims(test_client, services, fixed_otp):
    response = await test_client.post("/api/signup", json=SIGNUP)

    settings = services.settings
    claims = jwt.decode(
        response.json()["access_token"], settings.jwt_secret, algorithms=[settings.jwt_algorithm]
    )
    assert claims["email"] == SIGNUP["email"]
    assert claims["sub"] == response.json()["user"]["_id"]
