"""Memoization of retrieval-backend calls per query fragment."""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, NamedTuple

from redis.asyncio import Redis
from redis.exceptions import RedisError

from .errors import RetrievalError

logger = logging.getLogger(__name__)

Compute = Callable[[], Awaitable[list[str]]]


class CacheKey(NamedTuple):
    fragment: str
    scope: str


class RetrievalCache(ABC):
    """
    Idempotent memoization: for a fixed key the stored result equals a
    fresh computation, so entries never expire.
    """

    @abstractmethod
    async def get_or_compute(self, key: CacheKey, compute: Compute) -> list[str]:
        """Return the cached result for ``key``, computing and storing it if absent."""

    async def close(self) -> None:
        return None


class MemoryRetrievalCache(RetrievalCache):
    """Private to one session and discarded with it."""

    def __init__(self) -> None:
        self._entries: dict[CacheKey, tuple[str, ...]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    async def get_or_compute(self, key: CacheKey, compute: Compute) -> list[str]:
        cached = self._entries.get(key)
        if cached is None:
            cached = tuple(await compute())
            self._entries[key] = cached
        return list(cached)


class RedisRetrievalCache(RetrievalCache):
    """Process-wide durable cache shared by every session."""

    def __init__(self, redis: Redis) -> None:
        self.redis = redis
        self._locks: dict[str, asyncio.Lock] = {}

    # ---- Key helpers -----------------------------------------------------
    @staticmethod
    def entry_key(key: CacheKey) -> str:
        return f"q:{key.scope}:{key.fragment}"

    async def _load(self, redis_key: str) -> list[str] | None:
        raw = await self.redis.get(redis_key)
        if raw is None:
            return None
        value = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        return [str(doc_id) for doc_id in json.loads(value)]

    async def get_or_compute(self, key: CacheKey, compute: Compute) -> list[str]:
        redis_key = self.entry_key(key)
        try:
            cached = await self._load(redis_key)
            if cached is not None:
                return cached
            lock = self._locks.setdefault(redis_key, asyncio.Lock())
            try:
                async with lock:
                    cached = await self._load(redis_key)
                    if cached is not None:
                        return cached
                    docs = await compute()
                    # Another process may have stored the same fragment first;
                    # both results are equivalent so the first write wins.
                    stored = await self.redis.set(redis_key, json.dumps(docs), nx=True)
                    if not stored:
                        logger.debug("cache entry %s written concurrently", redis_key)
                    return list(docs)
            finally:
                if not lock.locked() and self._locks.get(redis_key) is lock:
                    self._locks.pop(redis_key, None)
        except RedisError as exc:
            raise RetrievalError(f"retrieval cache unavailable: {exc}") from exc


__all__ = [
    "CacheKey",
    "Compute",
    "RetrievalCache",
    "MemoryRetrievalCache",
    "RedisRetrievalCache",
]
