"""
Key-value cache in front of the relational store.

Handles:
- JSON get/set with TTL, single and batch delete, atomic counters.
- Short per-call timeout on every Redis round-trip.
- Degradation policy: the cache is never authoritative, so
    * reads that fail or time out report "absent" (caller hits the DB),
    * writes that fail are logged and dropped,
    * invalidations that fail raise StorageError; the caller must know
      a stale entry may outlive the write it just committed.

All key strings are built by `CacheKeys`; write paths and invalidation
paths share the same builder so they cannot drift apart.
"""

import asyncio
import json
import logging
import uuid
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError

from licensehub.core.config import settings
from licensehub.core.exceptions import StorageError

logger = logging.getLogger(__name__)


# ── Key builder ──────────────────────────────────────────────────────


class CacheKeys:
    """Every cache key the kernel reads or writes."""

    @staticmethod
    def session(session_id: uuid.UUID | str) -> str:
        return f"session:{session_id}"

    @staticmethod
    def user_sessions(user_id: uuid.UUID | str) -> str:
        return f"user_sessions:{user_id}"

    @staticmethod
    def user(user_id: uuid.UUID | str) -> str:
        return f"user:{user_id}"

    @staticmethod
    def license(subscriber_id: uuid.UUID | str) -> str:
        return f"user:license:{subscriber_id}"

    @staticmethod
    def membership(user_id: uuid.UUID | str) -> str:
        return f"user:member:{user_id}"

    @staticmethod
    def members(subscriber_id: uuid.UUID | str) -> str:
        return f"members:{subscriber_id}"

    @staticmethod
    def member_permissions(subscriber_id: uuid.UUID | str, member_id: uuid.UUID | str) -> str:
        return f"member:permissions:{subscriber_id}:{member_id}"

    @staticmethod
    def all_member_permissions(subscriber_id: uuid.UUID | str) -> str:
        return f"all_members_permissions:{subscriber_id}"

    @staticmethod
    def license_requests(user_id: uuid.UUID | str) -> str:
        return f"user:license:requests:{user_id}"

    @staticmethod
    def reset_cooldown(email: str) -> str:
        return f"reset_password_cooldown:{email.lower()}"

    # Grouped key sets: one place decides what a mutation invalidates.

    @classmethod
    def session_keys(cls, user_id, *session_ids) -> list[str]:
        return [*(cls.session(s) for s in session_ids), cls.user_sessions(user_id)]

    @classmethod
    def roster_keys(cls, subscriber_id, *member_user_ids) -> list[str]:
        keys = [cls.members(subscriber_id), cls.all_member_permissions(subscriber_id)]
        for member_id in member_user_ids:
            if member_id is None:
                continue
            keys.append(cls.membership(member_id))
            keys.append(cls.member_permissions(subscriber_id, member_id))
        return keys


# ── Store ────────────────────────────────────────────────────────────


class CacheStore:
    def __init__(self, client: Redis, op_timeout: float | None = None) -> None:
        self._client = client
        self._timeout = op_timeout if op_timeout is not None else settings.CACHE_OP_TIMEOUT_SECONDS

    @classmethod
    def from_url(cls, url: str | None = None, op_timeout: float | None = None) -> "CacheStore":
        client = Redis.from_url(url or settings.REDIS_URL, decode_responses=True)
        return cls(client, op_timeout)

    async def close(self) -> None:
        await self._client.aclose()

    async def _call(self, coro):
        return await asyncio.wait_for(coro, timeout=self._timeout)

    async def get_json(self, key: str) -> Any | None:
        try:
            raw = await self._call(self._client.get(key))
        except (RedisError, asyncio.TimeoutError) as exc:
            logger.warning("Cache read degraded for %s: %s", key, exc.__class__.__name__)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding undecodable cache entry %s", key)
            return None

    async def set_json(self, key: str, value: Any, ttl: int) -> None:
        payload = json.dumps(value, default=str)
        try:
            await self._call(self._client.set(key, payload, ex=ttl))
        except (RedisError, asyncio.TimeoutError) as exc:
            logger.warning("Cache write dropped for %s: %s", key, exc.__class__.__name__)

    async def delete(self, *keys: str) -> None:
        if not keys:
            return
        try:
            await self._call(self._client.delete(*keys))
        except (RedisError, asyncio.TimeoutError) as exc:
            logger.error("Cache invalidation failed for %s", ", ".join(keys))
            raise StorageError("Cache invalidation failed") from exc

    async def incr(self, key: str, window: int) -> int:
        """
        Atomically increment a counter; the expiry is set only when the
        counter is created so the window is fixed, not sliding.
        """
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.set(key, 0, ex=window, nx=True)
                pipe.incr(key)
                _, count = await self._call(pipe.execute())
        except (RedisError, asyncio.TimeoutError) as exc:
            raise StorageError("Cache counter unavailable") from exc
        return int(count)
