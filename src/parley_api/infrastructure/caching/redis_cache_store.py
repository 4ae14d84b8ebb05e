# src/parley_api/infrastructure/caching/redis_cache_store.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""Redis cache store.

Synopsis:
    Implements the application `CacheStore` Protocol over an injected
    ``redis.asyncio`` client (``decode_responses=True``). Values are opaque
    text; the store knows nothing about entities.

Design:
    * Optional namespace prefix applied to every key (``{ns}:{key}``).
    * Multi-set runs in one non-transactional pipeline; per-key atomicity only.
    * Transport errors are raised as `CacheStoreError`; there is no retry.
    * Every round trip is counted and timed in Prometheus.

Layer:
    infrastructure/caching
"""

from __future__ import annotations

import time
from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import asynccontextmanager, suppress

from redis.exceptions import RedisError

from parley_api.application.interfaces.cache_port import CacheStore
from parley_api.domain.exceptions.write_behind import CacheStoreError
from parley_api.infrastructure.caching.redis_client import RedisClient
from parley_api.infrastructure.observability.metrics import (
    get_cache_operation_duration_seconds,
    get_cache_operations_total,
)

__all__ = ["RedisCacheStore"]


class RedisCacheStore(CacheStore):
    """Redis-backed implementation of the CacheStore Protocol."""

    def __init__(self, client: RedisClient, *, namespace: str | None = None) -> None:
        """Initialize the store.

        Args:
            client: Async Redis client returning ``str`` values.
            namespace: Optional prefix applied to all keys to avoid collisions.
        """
        self._redis = client
        self._ns = (namespace or "").strip(":")

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #
    def _k(self, key: str) -> str:
        """Build a namespaced key."""
        if not self._ns:
            return key
        return f"{self._ns}:{key}"

    @asynccontextmanager
    async def _op(self, operation: str) -> AsyncIterator[dict[str, str]]:
        """Time one round trip, count it, and translate Redis errors.

        The yielded dict lets the caller set the ``result`` label (defaults
        to ``ok``).
        """
        labels = {"result": "ok"}
        start = time.perf_counter()
        try:
            yield labels
        except (RedisError, OSError) as exc:
            labels["result"] = "error"
            raise CacheStoreError(
                f"Cache {operation} failed: {exc}",
                details={"operation": operation},
            ) from exc
        finally:
            with suppress(Exception):
                get_cache_operation_duration_seconds().labels(
                    operation=operation, namespace=self._ns
                ).observe(time.perf_counter() - start)
                get_cache_operations_total().labels(
                    operation=operation, namespace=self._ns, result=labels["result"]
                ).inc()

    # ------------------------------------------------------------------ #
    # CacheStore implementation
    # ------------------------------------------------------------------ #
    async def get(self, key: str) -> str | None:
        """Return the value under ``key`` or None."""
        async with self._op("get") as labels:
            value = await self._redis.get(self._k(key))
            labels["result"] = "miss" if value is None else "hit"
            return value

    async def set_with_expiry(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store ``value`` with a TTL in seconds (must be > 0)."""
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        async with self._op("set"):
            await self._redis.set(self._k(key), value, ex=ttl_seconds)

    async def delete(self, *keys: str) -> int:
        """Delete ``keys`` and return how many existed."""
        if not keys:
            return 0
        async with self._op("delete"):
            return int(await self._redis.delete(*(self._k(k) for k in keys)))

    async def multi_get(self, keys: Sequence[str]) -> list[str | None]:
        """Return values for ``keys`` in order."""
        if not keys:
            return []
        async with self._op("multi_get"):
            return list(await self._redis.mget([self._k(k) for k in keys]))

    async def multi_set(self, entries: Mapping[str, str], ttl_seconds: int | None = None) -> None:
        """Store all ``entries`` in one pipeline, each with ``ttl_seconds`` if given."""
        if not entries:
            return
        if ttl_seconds is not None and ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        async with self._op("multi_set"):
            pipe = self._redis.pipeline(transaction=False)
            for key, value in entries.items():
                pipe.set(self._k(key), value, ex=ttl_seconds)
            await pipe.execute()

    async def exists(self, key: str) -> bool:
        """Return True if ``key`` is present."""
        async with self._op("exists"):
            return bool(await self._redis.exists(self._k(key)))

    async def flush_all(self) -> None:
        """Drop all keys in the namespace, or the whole database when unset."""
        async with self._op("flush_all"):
            if not self._ns:
                await self._redis.flushdb()
                return
            keys = [k async for k in self._redis.scan_iter(match=f"{self._ns}:*")]
            if keys:
                await self._redis.delete(*keys)
