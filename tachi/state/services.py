from __future__ import annotations

import databases
import httpx
from redis import asyncio as aioredis

import tachi.settings
from tachi.adapters.document_store import DocumentStore
from tachi.adapters.document_store import MemoryDocumentStore
from tachi.adapters.locks import KeyLock
from tachi.adapters.locks import MemoryLock
from tachi.adapters.locks import RedisLock
from tachi.adapters.sql_store import SQLDocumentStore
from tachi.logging import Ansi
from tachi.logging import log

store: DocumentStore = MemoryDocumentStore()
lock: KeyLock = MemoryLock()
redis: aioredis.Redis | None = None

http_client = httpx.AsyncClient(timeout=httpx.Timeout(30.0))


async def connect() -> None:
    """Swap the in-process defaults for the configured backends."""
    global store, lock, redis, http_client

    if http_client.is_closed:
        http_client = httpx.AsyncClient(timeout=httpx.Timeout(30.0))

    if tachi.settings.DB_DSN:
        store = SQLDocumentStore(databases.Database(tachi.settings.DB_DSN))
        await store.connect()
        log("Connected to the document database.", Ansi.LGREEN)
    else:
        log("DB_DSN is not set, using an in-memory document store.", Ansi.LYELLOW)

    if tachi.settings.REDIS_DSN:
        redis = aioredis.from_url(tachi.settings.REDIS_DSN)
        await redis.ping()
        lock = RedisLock(redis)
        log("Connected to redis.", Ansi.LGREEN)
    else:
        log("REDIS_DSN is not set, import locks are process-local.", Ansi.LYELLOW)


async def disconnect() -> None:
    await store.disconnect()

    if redis is not None:
        await redis.aclose()

    await http_client.aclose()
