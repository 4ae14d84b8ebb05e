# src/parley_api/application/interfaces/cache_port.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""Application Interface: Cache Store Port.

Synopsis:
    Key/value primitive consumed by the entity cache layer. Values are opaque
    serialized text blobs; the port knows nothing about entities. Enables
    swapping Redis, in-memory, or other cache implementations.

Layer:
    application/interfaces
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Protocol


class CacheStore(Protocol):
    """Key/value cache with per-key TTL.

    Single-key operations are atomic at the key level; no cross-key
    atomicity is assumed by callers. Implementations raise ``CacheStoreError``
    on transport failure.
    """

    async def get(self, key: str) -> str | None:
        """Return the value stored under ``key``, or None on miss."""
        ...

    async def set_with_expiry(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store ``value`` under ``key`` expiring after ``ttl_seconds``."""
        ...

    async def delete(self, *keys: str) -> int:
        """Delete ``keys``; return the number of keys that existed."""
        ...

    async def multi_get(self, keys: Sequence[str]) -> list[str | None]:
        """Return values for ``keys`` in order (None for misses)."""
        ...

    async def multi_set(self, entries: Mapping[str, str], ttl_seconds: int | None = None) -> None:
        """Store several entries; apply ``ttl_seconds`` to each when given."""
        ...

    async def exists(self, key: str) -> bool:
        """Return True if ``key`` is present."""
        ...

    async def flush_all(self) -> None:
        """Drop every entry (administrative use only)."""
        ...
