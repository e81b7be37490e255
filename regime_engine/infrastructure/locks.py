"""
Single-writer locks for the daily pipeline.

One writer per model version: in-process asyncio locks,
or a Redis lock when several processes share the same storage.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Protocol, Tuple

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class WriterLock(Protocol):
    def hold(self, key: str) -> "AsyncIterator[None]":
        ...

    async def close(self) -> None:
        ...


class InProcessWriterLock:
    """asyncio locks per key; an entry lives only while some task holds or waits on it"""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @property
    def active_keys(self) -> Tuple[str, ...]:
        return tuple(self._locks)

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    async def close(self) -> None:
        self._locks.clear()
        self._users.clear()


class RedisWriterLock:
    """
    SET NX PX lock per key (redis-py Lock), with a bounded wait.
    """

    def __init__(self, url: str, ttl_seconds: int = 120, prefix: str = "regime:writer:"):
        self._client = redis.Redis.from_url(url, decode_responses=True)
        self._ttl_seconds = ttl_seconds
        self._prefix = prefix

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._client.lock(
            f"{self._prefix}{key}",
            timeout=self._ttl_seconds,
            blocking_timeout=self._ttl_seconds,
        )
        acquired = await lock.acquire()
        if not acquired:
            raise TimeoutError(f"Could not acquire writer lock {key}")
        try:
            yield
        finally:
            try:
                await lock.release()
            except redis.RedisError as exc:
                logger.warning(f"Writer lock {key} release failed: {exc}")

    async def close(self) -> None:
        await self._client.aclose()


def get_writer_lock(enabled: bool, url: str, ttl_seconds: int) -> WriterLock:
    if enabled:
        logger.info("Using Redis writer lock")
        return RedisWriterLock(url, ttl_seconds=ttl_seconds)
    return InProcessWriterLock()
