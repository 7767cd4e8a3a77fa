"""
Process-wide collaborators shared by all request handlers.

The store, cache and fan-out connections are long-lived: built once at
startup, reused by every request task, closed at shutdown.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Any, Optional

import redis.asyncio as redis
from fastapi import Request

from .cache import Cache, user_key
from .config import Settings
from .db.database import Database, connect
from .errors import NotFoundError
from .fanout import ConnectionManager
from .mailer import Mailer
from .media import MediaStore
from .security import Security

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything a handler needs besides its request body."""

    settings: Settings
    db: Database
    cache: Cache
    fanout: ConnectionManager
    media: Any
    mailer: Mailer
    security: Security

    @classmethod
    def from_settings(cls, settings: Settings) -> Services:
        """Build live clients from configuration."""
        return cls(
            settings=settings,
            db=Database(connect(settings.mongodb_uri, settings.mongodb_db)),
            cache=Cache(redis.from_url(settings.redis_url)),
            fanout=ConnectionManager(),
            media=MediaStore(
                bucket=settings.media_bucket,
                region=settings.media_region,
                public_base_url=settings.media_public_base_url,
            ),
            mailer=Mailer(settings.resend_api_key, settings.email_from),
            security=Security(settings),
        )

    async def close(self):
        await self.fanout.drain()
        await self.cache.client.aclose()
        self.db.db.client.close()
        logger.info("Services closed")

    async def user(self, email: str, missing: str = "User not found") -> dict:
        """Public user snapshot through the cache; NotFoundError if absent."""
        user, _ = await self.cache.read_through(
            user_key(email),
            lambda: self.db.get_user_public(email),
            self.settings.user_ttl,
        )
        if not user:
            raise NotFoundError(missing)
        return user


def get_services(request: Request) -> Services:
    """FastAPI dependency returning the app's services."""
    return request.app.state.services


def clean(value: Optional[str]) -> str:
    """Trimmed string, empty when missing."""
    return (value or "").strip()


def clean_email(value: Optional[str]) -> str:
    """Canonical form of an e-mail: trimmed and lower-cased."""
    return clean(value).lower()


async def concurrent_writes(operation: str, **writes: Awaitable) -> dict[str, Any]:
    """Issue independent store writes concurrently and return their results by name.

    A write fails by raising or by returning False (it matched no document).
    There is no rollback: when any write fails the others still land, the
    split is logged, and the first exception (or a RuntimeError naming the
    unmatched writes) is raised.
    """
    names = list(writes)
    results = await asyncio.gather(*writes.values(), return_exceptions=True)
    failed = [
        name for name, result in zip(names, results)
        if isinstance(result, BaseException) or result is False
    ]
    if failed:
        landed = [name for name in names if name not in failed]
        logger.error(f"Partial write in {operation}: failed={failed} landed={landed}")
        for result in results:
            if isinstance(result, BaseException):
                raise result
        raise RuntimeError(f"{', '.join(failed)} matched no document")
    return dict(zip(names, results))
