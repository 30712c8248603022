"""
Fork-safe asyncio Redis connection holder.

Uvicorn/Gunicorn workers may fork after import, and a connection pool inherited from the parent
breaks pub/sub in the child, so each process builds its own pool on first use.
"""

from __future__ import annotations

import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import ClassVar

from redis.asyncio import ConnectionPool, Redis

from chatbridge.core.logging.logger import get_logger

log = get_logger(__name__)


class RedisClient:
    """Per-process Redis pool shared by the cache and the notification publisher."""

    _pool: ClassVar[ConnectionPool | None] = None
    _client: ClassVar[Redis | None] = None
    _pid: ClassVar[int | None] = None

    @classmethod
    def setup(cls, url: str, *, max_connections: int = 64) -> None:
        pid = os.getpid()
        if cls._pid is not None and cls._pid != pid:
            # process forked, discard the inherited pool
            cls._pool = None
            cls._client = None
        cls._pid = pid

        if cls._pool is not None:
            log.debug(f"Redis pool already exists in PID {pid}")
            return

        log.info(f"Initialising Redis pool in PID {pid}")
        cls._pool = ConnectionPool.from_url(
            url,
            decode_responses=True,
            encoding="utf-8",
            max_connections=max_connections,
        )
        cls._client = Redis(connection_pool=cls._pool)

    @classmethod
    def is_configured(cls) -> bool:
        return cls._client is not None and cls._pid == os.getpid()

    @classmethod
    def get(cls) -> Redis:
        if not cls.is_configured():
            raise RuntimeError("RedisClient.setup() must be called in this process first")
        return cls._client

    @classmethod
    @asynccontextmanager
    async def connection(cls) -> AsyncIterator[Redis]:
        """
        Usage::

            async with RedisClient.connection() as r:
                await r.set("key", "value")
        """
        yield cls.get()

    @classmethod
    async def ping(cls) -> bool:
        try:
            return bool(await cls.get().ping())
        except Exception as exc:
            log.error(f"Redis ping failed: {exc}")
            return False

    @classmethod
    async def close(cls) -> None:
        if cls._pid != os.getpid() or cls._pool is None:
            return
        log.info(f"Closing Redis pool in PID {cls._pid}")
        await cls._pool.disconnect()
        cls._pool = None
        cls._client = None
        cls._pid = None
