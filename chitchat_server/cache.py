"""
Fast-path cache over Redis.

Entries are JSON snapshots with explicit expirations. The cache is advisory:
a missing entry is always valid and falls back to the record store, and a
failing cache call never fails the request that issued it.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

USERS_LIST_KEY = "users:list"
POSTS_PAGE_PATTERN = "posts:page:*"


def user_key(email: str) -> str:
    return f"user:{email}"


def post_key(post_id: str) -> str:
    return f"post:{post_id}"


def posts_page_key(page: int, limit: int) -> str:
    return f"posts:page:{page}:limit:{limit}"


def friend_requests_key(email: str) -> str:
    return f"friendRequests:{email}"


def snapshot(value: Any) -> Any:
    """Return the JSON form of a document, exactly as the cache stores it."""
    return json.loads(json.dumps(jsonable_encoder(value)))


class Cache:
    """Best-effort JSON cache.

    Args:
        client: redis.asyncio client (decode_responses is not required)
    """

    def __init__(self, client: Any) -> None:
        self.client = client

    async def get_json(self, key: str) -> Optional[Any]:
        try:
            raw = await self.client.get(key)
        except RedisError as e:
            logger.warning(f"Cache get failed for {key}: {e}")
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"Corrupt cache entry for {key}, dropping it")
            await self.delete(key)
            return None

    async def set_json(self, key: str, value: Any, ttl: int) -> None:
        try:
            await self.client.set(key, json.dumps(jsonable_encoder(value)), ex=ttl)
        except RedisError as e:
            logger.warning(f"Cache set failed for {key}: {e}")

    async def delete(self, *keys: str) -> None:
        if not keys:
            return
        try:
            await self.client.delete(*keys)
        except RedisError as e:
            logger.warning(f"Cache delete failed for {keys}: {e}")

    async def delete_matching(self, pattern: str) -> None:
        """Delete every key matching a glob pattern (e.g. all listing pages)."""
        try:
            keys = [key async for key in self.client.scan_iter(match=pattern)]
            if keys:
                await self.client.delete(*keys)
        except RedisError as e:
            logger.warning(f"Cache delete failed for pattern {pattern}: {e}")

    async def update_json(
        self,
        key: str,
        mutate: Callable[[Any], Any],
        ttl: int,
    ) -> None:
        """Apply a mutation to a cached snapshot, only if one is present.

        If the mutation itself fails the key is dropped so the next read
        repopulates from the store.
        """
        current = await self.get_json(key)
        if current is None:
            return
        try:
            updated = mutate(current)
        except Exception:
            logger.warning(f"Cache in-place update failed for {key}, invalidating", exc_info=True)
            await self.delete(key)
            return
        await self.set_json(key, current if updated is None else updated, ttl)

    async def read_through(
        self,
        key: str,
        loader: Callable[[], Awaitable[Optional[Any]]],
        ttl: int,
    ) -> tuple[Optional[Any], str]:
        """Return (value, source) where source is "cache" or "db".

        On a miss the loader is awaited; a non-None result is cached with the
        given TTL and returned in its snapshot form so that a later hit is
        identical to this response.
        """
        cached = await self.get_json(key)
        if cached is not None:
            return cached, "cache"

        value = await loader()
        if value is None:
            return None, "db"

        data = snapshot(value)
        await self.set_json(key, data, ttl)
        return data, "db"
