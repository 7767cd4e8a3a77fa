"""Accounts: signup, login, logout and e-mail OTP verification."""

import logging
import re
from datetime import datetime, timedelta

from fastapi import APIRouter, BackgroundTasks, Depends, Response
from starlette.concurrency import run_in_threadpool

from shared.schemas import EmailRequest, LoginRequest, OtpVerifyRequest, SignupRequest, User
from ..cache import USERS_LIST_KEY, user_key
from ..errors import ConflictError, NotFoundError, ValidationError, server_errors
from ..mailer import otp_email
from ..security import generate_otp
from ..services import Services, clean, clean_email, get_services

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])

NAME_RE = re.compile(r"^[A-Za-z]{2,}$")
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 8
DEFAULT_AVATAR = "https://cdn-icons-png.flaticon.com/512/149/149071.png"
REFRESH_COOKIE = "refreshToken"


def _public(user: dict) -> dict:
    return {
        "_id": user["_id"],
        "email": user["email"],
        "first_name": user.get("first_name"),
        "last_name": user.get("last_name"),
        "profile_image": user.get("profile_image"),
        "is_verified": user.get("is_verified", False),
    }


def _check_credentials(email: str, password: str):
    if not email or not password:
        raise ValidationError("E-mail and password are required")
    if not EMAIL_RE.match(email):
        raise ValidationError("Invalid e-mail format")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")


def _issue_tokens(services: Services, response: Response, user: dict) -> str:
    access, refresh = services.security.create_tokens(user["_id"], user["email"])
    response.set_cookie(
        REFRESH_COOKIE,
        refresh,
        httponly=True,
        secure=True,
        samesite="strict",
        max_age=services.settings.refresh_token_days * 24 * 3600,
    )
    return access


@router.post("/signup", status_code=201)
async def signup(
    body: SignupRequest,
    response: Response,
    background: BackgroundTasks,
    services: Services = Depends(get_services),
):
    first_name = clean(body.first_name)
    last_name = clean(body.last_name)
    email = clean_email(body.email)
    password = body.password or ""
    if not NAME_RE.match(first_name) or not NAME_RE.match(last_name):
        raise ValidationError("Names must be at least two letters")
    _check_credentials(email, password)

    with server_errors("Failed to create user"):
        if await services.db.get_user(email):
            raise ConflictError("User already exists")

        otp = generate_otp()
        password_hash = await run_in_threadpool(services.security.hash_secret, password)
        otp_hash = await run_in_threadpool(services.security.hash_secret, otp)
        user = User(
            email=email,
            first_name=first_name,
            last_name=last_name,
            password_hash=password_hash,
            otp_hash=otp_hash,
            otp_expire=datetime.utcnow() + timedelta(minutes=services.settings.otp_ttl_minutes),
            profile_image=DEFAULT_AVATAR,
        ).to_doc()
        await services.db.create_user(user)

    await services.cache.delete(USERS_LIST_KEY)
    access = _issue_tokens(services, response, user)
    background.add_task(services.mailer.send, email, *otp_email(first_name, last_name, otp))

    logger.info(f"User {email} signed up")
    return {"success": True, "message": "User created successfully", "user": _public(user), "access_token": access}


@router.post("/login")
async def login(body: LoginRequest, response: Response, services: Services = Depends(get_services)):
    email = clean_email(body.email)
    password = body.password or ""
    _check_credentials(email, password)

    with server_errors("Login failed"):
        user = await services.db.get_user(email)
        if not user:
            raise NotFoundError("User not found")
        valid = await run_in_threadpool(services.security.verify_secret, password, user.get("password_hash"))
    if not valid:
        raise ValidationError("Password is not correct, try again")

    access = _issue_tokens(services, response, user)
    logger.info(f"User {email} logged in")
    return {"success": True, "message": "Logged in successfully", "user": _public(user), "access_token": access}


@router.get("/logout")
async def logout(response: Response):
    response.delete_cookie(REFRESH_COOKIE)
    return {"message": "Logged out successfully"}


@router.post("/verifyOtp")
async def verify_otp(body: OtpVerifyRequest, services: Services = Depends(get_services)):
    email = clean_email(body.email)
    otp = clean(body.otp)
    if not email or not otp:
        raise ValidationError("E-mail and OTP are required")
    if not EMAIL_RE.match(email):
        raise ValidationError("Invalid e-mail format")

    with server_errors("Failed to verify OTP"):
        user = await services.db.get_user(email)
        if not user:
            raise NotFoundError("User not found")
        matches = await run_in_threadpool(services.security.verify_secret, otp, user.get("otp_hash"))
        if not matches:
            raise ValidationError("OTP does not match. Please try again.")
        expires = user.get("otp_expire")
        if expires is None or expires < datetime.utcnow():
            raise ValidationError("OTP has expired. Please request a new one.")

        await services.db.set_user_fields(email, {"is_verified": True}, unset=("otp_hash", "otp_expire"))

    await services.cache.delete(user_key(email))
    logger.info(f"User {email} verified")
    return {"success": True, "message": "OTP verified successfully"}


@router.post("/resetOtp")
async def resend_otp(
    body: EmailRequest,
    background: BackgroundTasks,
    services: Services = Depends(get_services),
):
    email = clean_email(body.email)
    if not email:
        raise ValidationError("E-mail is required")

    with server_errors("Failed to resend OTP"):
        user = await services.db.get_user(email)
        if not user:
            raise NotFoundError("User not found")
        otp = generate_otp()
        otp_hash = await run_in_threadpool(services.security.hash_secret, otp)
        await services.db.set_user_fields(email, {
            "otp_hash": otp_hash,
            "otp_expire": datetime.utcnow() + timedelta(minutes=services.settings.otp_ttl_minutes),
        })

    await services.cache.delete(user_key(email))
    background.add_task(
        services.mailer.send, email, *otp_email(user["first_name"], user["last_name"], otp)
    )
    return {"success": True, "message": "OTP resent successfully"}
