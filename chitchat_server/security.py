"""Password/OTP hashing and token signing."""

import secrets
from datetime import datetime, timedelta, timezone

from jose import jwt
from passlib.context import CryptContext

from .config import Settings


class Security:
    """Hashing and token primitives configured from settings."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.pwd_context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=settings.bcrypt_rounds,
        )

    def hash_secret(self, secret: str) -> str:
        return self.pwd_context.hash(secret)

    def verify_secret(self, secret: str, hashed: str | None) -> bool:
        if not hashed:
            return False
        return self.pwd_context.verify(secret, hashed)

    def _token(self, subject: dict, expires_delta: timedelta) -> str:
        to_encode = subject.copy()
        to_encode["exp"] = datetime.now(timezone.utc) + expires_delta
        return jwt.encode(to_encode, self.settings.jwt_secret, algorithm=self.settings.jwt_algorithm)

    def create_tokens(self, user_id: str, email: str) -> tuple[str, str]:
        """Return (access_token, refresh_token) for a user."""
        subject = {"sub": user_id, "email": email}
        access = self._token(subject, timedelta(minutes=self.settings.access_token_minutes))
        refresh = self._token(subject, timedelta(days=self.settings.refresh_token_days))
        return access, refresh


def generate_otp(digits: int = 6) -> str:
    """Numeric one-time code, zero padded."""
    return f"{secrets.randbelow(10 ** digits):0{digits}d}"
