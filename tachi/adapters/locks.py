"""Per-key exclusive locks, used to serialize score imports per user."""

from __future__ import annotations

import time
import uuid
from typing import Protocol

from redis import asyncio as aioredis

RELEASE_SCRIPT = """\
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class KeyLock(Protocol):
    async def acquire(self, key: str, ttl: int) -> str | None:
        """Try once to take `key`. Returns a release token, or None if held."""
        ...

    async def release(self, key: str, token: str) -> bool:
        ...


class RedisLock:
    def __init__(self, redis: aioredis.Redis, prefix: str = "tachi:lock") -> None:
        self.redis = redis
        self.prefix = prefix

    async def acquire(self, key: str, ttl: int) -> str | None:
        token = uuid.uuid4().hex
        acquired = await self.redis.set(
            f"{self.prefix}:{key}",
            token,
            nx=True,
            px=ttl * 1000,
        )
        return token if acquired else None

    async def release(self, key: str, token: str) -> bool:
        released = await self.redis.eval(RELEASE_SCRIPT, 1, f"{self.prefix}:{key}", token)
        return bool(released)


class MemoryLock:
    def __init__(self) -> None:
        # key -> (token, expiry on the monotonic clock)
        self.held: dict[str, tuple[str, float]] = {}

    async def acquire(self, key: str, ttl: int) -> str | None:
        now = time.monotonic()

        current = self.held.get(key)
        if current is not None and current[1] > now:
            return None

        token = uuid.uuid4().hex
        self.held[key] = (token, now + ttl)
        return token

    async def release(self, key: str, token: str) -> bool:
        current = self.held.get(key)
        if current is None or current[0] != token:
            return False

        del self.held[key]
        return True
