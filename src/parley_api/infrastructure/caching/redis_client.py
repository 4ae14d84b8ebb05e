# src/parley_api/infrastructure/caching/redis_client.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""Async Redis client factory.

Design notes:
    * Provides a small Protocol (`RedisClient`) used by adapters.
    * Uses redis.asyncio under the hood for the concrete implementation.
    * The process-wide client is owned by the app bootstrap. Components never
      call `get_redis_client()` themselves; they receive a client through
      their constructor (see `RedisCacheStore`).
    * Is **loop-aware**: if called from a different event loop than the one
      that created the client, it transparently creates a new client bound to
      the current loop. This avoids cross-loop reuse issues in tests.
    * Test suites may inject a fakeredis client by assigning to the module-level
      `_client`; when that happens we do not overwrite or close it.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Any, Protocol, cast, runtime_checkable

import redis.asyncio as aioredis

from parley_api.config.settings import Settings, get_settings

__all__ = [
    "RedisClient",
    "init_redis",
    "close_redis",
    "get_redis_client",
]

logger = logging.getLogger(__name__)


@runtime_checkable
class RedisClient(Protocol):
    """Protocol for the subset of Redis methods used by the application."""

    async def get(self, key: str) -> Any: ...
    async def set(
        self,
        key: str,
        value: Any,
        *,
        ex: int | None = None,
        px: int | None = None,
        nx: bool | None = None,
        xx: bool | None = None,
    ) -> Any: ...
    async def delete(self, *keys: str) -> Any: ...
    async def mget(self, keys: Any, *args: Any) -> Any: ...
    async def exists(self, *keys: str) -> Any: ...
    async def flushdb(self) -> Any: ...
    async def ping(self) -> Any: ...
    async def aclose(self) -> Any: ...
    def pipeline(self, transaction: bool = True) -> Any: ...
    def scan_iter(self, match: str | None = None, count: int | None = None) -> Any: ...


# Global client + loop identifier. We track the loop that created the client
# so that a connection is never reused across event loops.
_client: RedisClient | Any | None = None
_client_loop_id: int | None = None

_DEFAULT_REDIS_URL = "redis://localhost:6379/0"


def _current_loop_id() -> int | None:
    """Return the id() of the current running event loop, or None if absent."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return None
    return id(loop)


def _create_aioredis_client(url: str, settings: Settings) -> RedisClient:
    """Build the concrete asyncio Redis client from URL and settings.

    Args:
        url: Redis URL.
        settings: Canonical application settings.

    Returns:
        RedisClient: Configured Redis client.
    """
    client = aioredis.from_url(
        url,
        encoding="utf-8",
        decode_responses=True,
        health_check_interval=settings.redis_health_check_interval_s,
        socket_timeout=settings.redis_socket_timeout_s,
        socket_connect_timeout=settings.redis_socket_connect_timeout_s,
    )
    return cast(RedisClient, client)


def _is_fake_client(client: Any | None) -> bool:
    """Return True if the given client looks like a fakeredis instance."""
    if client is None:
        return False
    # fakeredis classes live under modules like "fakeredis.aioredis"
    return type(client).__module__.startswith("fakeredis")


def init_redis(settings: Settings) -> None:
    """Initialize the global async Redis client for the **current** event loop.

    Idempotent per loop. If tests have injected a fakeredis client into
    `_client`, this function is a no-op and leaves the fake in place.
    """
    global _client, _client_loop_id

    if _is_fake_client(_client):
        return

    loop_id = _current_loop_id()
    if _client is not None and _client_loop_id == loop_id:
        return

    url = str(settings.redis_url or _DEFAULT_REDIS_URL)

    # Never close a client created on a different event loop; that is what
    # leads to "Event loop is closed" errors in tests.
    _client = _create_aioredis_client(url, settings)
    _client_loop_id = loop_id
    logger.info("redis.client.initialized", extra={"loop_id": loop_id})


async def close_redis() -> None:
    """Close the global Redis client at shutdown (best-effort)."""
    global _client, _client_loop_id

    if _client is not None and not _is_fake_client(_client):
        loop_id = _current_loop_id()
        if _client_loop_id is None or loop_id == _client_loop_id:
            with suppress(RuntimeError, ConnectionError):
                await _client.aclose()

    _client = None
    _client_loop_id = None


def get_redis_client() -> RedisClient:
    """Return the initialized Redis client (loop-aware, lazy-init).

    Returns:
        RedisClient: Shared Redis client instance.

    Raises:
        RuntimeError: If client could not be initialized.
    """
    if _is_fake_client(_client):
        return cast(RedisClient, _client)

    loop_id = _current_loop_id()
    if _client is None or (
        _client_loop_id is not None and loop_id is not None and loop_id != _client_loop_id
    ):
        init_redis(get_settings())

    if _client is None:
        raise RuntimeError("Redis client not initialized (init_redis failed)")

    return cast(RedisClient, _client)

