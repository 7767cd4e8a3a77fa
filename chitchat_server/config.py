"""
Configuration for the ChitChat server.

Uses pydantic-settings for environment variable loading. Every setting has a
default suitable for local development; production deployments override them
with CHITCHAT_* variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Server configuration loaded from environment."""

    # Record store
    mongodb_uri: str = Field(default="mongodb://localhost:27017", description="MongoDB connection URI")
    mongodb_db: str = Field(default="ChitChat", description="Database name")

    # Fast-path cache
    redis_url: str = Field(default="redis://localhost:6379/0", description="Redis connection URL")

    # Cache TTLs (seconds)
    user_ttl: int = Field(default=3600, description="TTL for user snapshots populated on read")
    user_update_ttl: int = Field(default=600, description="TTL for user snapshots updated in place")
    post_ttl: int = Field(default=3600, description="TTL for single post snapshots")
    posts_page_ttl: int = Field(default=300, description="TTL for paginated post listings")
    friend_requests_ttl: int = Field(default=600, description="TTL for friend request listings")
    users_list_ttl: int = Field(default=300, description="TTL for the registered users directory")

    # Tokens and hashing
    jwt_secret: str = Field(default="dev-secret-key-change", description="Token signing secret")
    jwt_algorithm: str = Field(default="HS256")
    access_token_minutes: int = Field(default=15)
    refresh_token_days: int = Field(default=7)
    bcrypt_rounds: int = Field(default=12)
    otp_ttl_minutes: int = Field(default=10)

    # Media store
    media_bucket: str | None = Field(default=None, description="S3 bucket for uploaded media")
    media_region: str = Field(default="us-east-1")
    media_public_base_url: str | None = Field(
        default=None, description="Public URL prefix for uploaded objects (defaults to the bucket URL)"
    )
    media_folder: str = Field(default="profile_media")

    # Outbound e-mail
    resend_api_key: str | None = Field(default=None, description="Resend API key (mail disabled when unset)")
    email_from: str = Field(default="chitChat <no-reply@chitchat.local>")

    # Social rules
    comment_cooldown_seconds: int = Field(default=10)
    max_comment_length: int = Field(default=500)
    max_message_length: int = Field(default=2000)

    # HTTP
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://127.0.0.1:3000"],
        description="Allowed CORS origins",
    )
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="text", description="'text' or 'json'")

    model_config = {"env_prefix": "CHITCHAT_"}
