# src/parley_api/application/services/entity_cache.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""Entity cache layer (Application Layer).

Synopsis:
    Write-through cache for one entity kind. Every user-facing mutation is
    written to the cache synchronously and then dispatched as a write job; the
    durable store catches up when the job is delivered.

Key policy:
    * Primary entry: ``{prefix}:{id}`` holds the serialized record.
    * Secondary index: ``{prefix}:{segment}:{value}`` holds the id only, e.g.
      ``account:email:a@x.com`` -> ``u1``.

    An index entry is valid only while the primary entry exists and carries
    the same field value. Index entries are rewritten only when the indexed
    value changes, and stale ones found during lookup are retired.

Consistency:
    Cache write and dispatch are two independent steps. If dispatch fails the
    cache write is not undone; the error propagates and the entry converges
    on TTL expiry, the next write, or :meth:`EntityCache.invalidate`.

Layer:
    application/services
"""

from __future__ import annotations

import dataclasses
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError
from pydantic.alias_generators import to_camel

from parley_api.application.interfaces.cache_port import CacheStore
from parley_api.application.schemas.dto.records import EntityPatch, KindSchema, schema_for
from parley_api.application.schemas.dto.write_job import (
    build_create_job,
    build_delete_job,
    build_update_job,
)
from parley_api.application.services.job_dispatcher import JobDispatcher
from parley_api.domain.entities.base import BaseEntity, next_updated_at
from parley_api.domain.enums.entity_kind import EntityKind
from parley_api.domain.exceptions.write_behind import CacheStoreError

__all__ = [
    "EntityCacheSpec",
    "EntityCache",
    "DEFAULT_TTLS",
    "default_cache_specs",
]

logger = logging.getLogger(__name__)

#: Default per-kind TTLs in seconds.
DEFAULT_TTLS: dict[EntityKind, int] = {
    EntityKind.ACCOUNT: 3600,
    EntityKind.PERSONA: 1800,
    EntityKind.CONVERSATION: 900,
    EntityKind.MESSAGE: 600,
}

#: Secondary indexes per kind: entity field name -> key segment.
_DEFAULT_INDEXES: dict[EntityKind, dict[str, str]] = {
    EntityKind.ACCOUNT: {
        "email": "email",
        "username": "username",
        "external_id": "external-id",
    },
}


@dataclass(frozen=True)
class EntityCacheSpec:
    """Static cache policy for one entity kind.

    Attributes:
        kind: Entity kind cached under this policy.
        ttl_seconds: Expiry applied to primary and index entries.
        indexes: Secondary indexes, entity field name -> key segment.
    """

    kind: EntityKind
    ttl_seconds: int
    indexes: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")


def default_cache_specs(ttls: Mapping[EntityKind, int] | None = None) -> dict[EntityKind, EntityCacheSpec]:
    """Build the cache policy for every kind, overriding TTLs from ``ttls``."""
    resolved = {**DEFAULT_TTLS, **(ttls or {})}
    return {
        kind: EntityCacheSpec(
            kind=kind,
            ttl_seconds=resolved[kind],
            indexes=dict(_DEFAULT_INDEXES.get(kind, {})),
        )
        for kind in EntityKind
    }


class EntityCache:
    """Cache-first reads and write-behind mutations for one entity kind."""

    def __init__(self, store: CacheStore, dispatcher: JobDispatcher, spec: EntityCacheSpec) -> None:
        """Initialize the layer.

        Args:
            store: Key/value cache primitive.
            dispatcher: Publishes write jobs after each mutation.
            spec: Kind, TTL and secondary indexes.
        """
        self._store = store
        self._dispatcher = dispatcher
        self._spec = spec
        self._schema: KindSchema = schema_for(spec.kind)

    @property
    def kind(self) -> EntityKind:
        """Entity kind served by this cache."""
        return self._spec.kind

    @property
    def spec(self) -> EntityCacheSpec:
        """Cache policy in effect."""
        return self._spec

    # ------------------------------------------------------------------ #
    # Keys
    # ------------------------------------------------------------------ #
    def primary_key(self, entity_id: str) -> str:
        """Return ``{prefix}:{id}``."""
        return f"{self._spec.kind.cache_prefix}:{entity_id}"

    def index_key(self, field_name: str, value: Any) -> str:
        """Return ``{prefix}:{segment}:{value}`` for an indexed field.

        Raises:
            ValueError: ``field_name`` is not indexed for this kind.
        """
        try:
            segment = self._spec.indexes[field_name]
        except KeyError:
            raise ValueError(
                f"{self._spec.kind.cache_prefix} has no index on {field_name!r}"
            ) from None
        return f"{self._spec.kind.cache_prefix}:{segment}:{value}"

    def _index_entries(self, entity: BaseEntity) -> dict[str, str]:
        entries: dict[str, str] = {}
        for name in self._spec.indexes:
            value = getattr(entity, name)
            if value is not None:
                entries[self.index_key(name, value)] = entity.id
        return entries

    # ------------------------------------------------------------------ #
    # Codec
    # ------------------------------------------------------------------ #
    def _encode(self, entity: BaseEntity) -> str:
        return self._schema.record_type.from_entity(entity).model_dump_json(by_alias=True)

    def _decode(self, key: str, raw: str) -> BaseEntity | None:
        try:
            return self._schema.record_type.model_validate_json(raw).to_entity()
        except (ValidationError, ValueError):
            logger.warning(
                "entity_cache.decode.failed",
                extra={"table": self.kind.value, "key": key},
            )
            return None

    async def _owned_index_keys(self, entity_id: str, raw: str) -> list[str]:
        """Index keys named by a partly valid entry that still point at ``entity_id``."""
        try:
            fields = json.loads(raw)
        except ValueError:
            return []
        if not isinstance(fields, dict):
            return []

        candidates = []
        for name in self._spec.indexes:
            value = fields.get(to_camel(name), fields.get(name))
            if isinstance(value, str):
                candidates.append(self.index_key(name, value))
        if not candidates:
            return []
        owners = await self._store.multi_get(candidates)
        return [k for k, owner in zip(candidates, owners, strict=True) if owner == entity_id]

    def _check_kind(self, entity: BaseEntity) -> None:
        if entity.KIND is not self._spec.kind:
            raise TypeError(
                f"{type(entity).__name__} cannot be cached as {self._spec.kind.value}"
            )

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #
    async def get(self, entity_id: str) -> BaseEntity | None:
        """Return the cached entity, or None on miss."""
        key = self.primary_key(entity_id)
        raw = await self._store.get(key)
        if raw is None:
            return None
        return self._decode(key, raw)

    async def get_by(self, field_name: str, value: Any) -> BaseEntity | None:
        """Resolve a secondary index to its entity, or None on miss.

        A stale index entry (primary missing, or primary no longer carrying
        ``value``) is deleted and reported as a miss.
        """
        index_key = self.index_key(field_name, value)
        entity_id = await self._store.get(index_key)
        if entity_id is None:
            return None

        entity = await self.get(entity_id)
        if entity is None or getattr(entity, field_name) != value:
            logger.info(
                "entity_cache.index.stale",
                extra={"table": self.kind.value, "key": index_key, "entity_id": entity_id},
            )
            await self._store.delete(index_key)
            return None
        return entity

    async def is_cached(self, entity_id: str) -> bool:
        """Return True if the primary entry for ``entity_id`` exists."""
        return await self._store.exists(self.primary_key(entity_id))

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #
    async def _write(self, entity: BaseEntity) -> None:
        entries = {self.primary_key(entity.id): self._encode(entity)}
        entries.update(self._index_entries(entity))
        try:
            await self._store.multi_set(entries, ttl_seconds=self._spec.ttl_seconds)
        except CacheStoreError:
            logger.warning(
                "entity_cache.write.failed",
                extra={"table": self.kind.value, "entity_id": entity.id},
            )
            raise

    async def populate(self, entity: BaseEntity) -> None:
        """Write ``entity`` and its index entries without dispatching a job."""
        self._check_kind(entity)
        await self._write(entity)

    async def create(self, entity: BaseEntity) -> BaseEntity:
        """Cache a new entity and dispatch a ``create`` job.

        Callers are responsible for uniqueness pre-checks.

        Raises:
            CacheStoreError: The cache write failed; nothing was dispatched.
            JobDispatchError: The cache write succeeded but dispatch failed.
        """
        self._check_kind(entity)
        await self._write(entity)
        await self._dispatcher.dispatch(build_create_job(entity))
        return entity

    async def update(
        self,
        entity_id: str,
        changes: EntityPatch | Mapping[str, Any],
    ) -> BaseEntity | None:
        """Merge ``changes`` into the cached entity and dispatch an ``update`` job.

        Args:
            entity_id: Target id.
            changes: Patch model, or a ``{field: value}`` mapping validated
                against the kind's patch model.

        Returns:
            The merged entity, or None if the entity is not cached.

        Raises:
            pydantic.ValidationError: ``changes`` is not a valid patch.
            CacheStoreError: A cache round trip failed.
            JobDispatchError: The cache write succeeded but dispatch failed.
        """
        patch = (
            changes
            if isinstance(changes, EntityPatch)
            else self._schema.patch_type.from_changes(changes)
        )
        current = await self.get(entity_id)
        if current is None:
            return None

        merged = dataclasses.replace(
            current,
            **patch.changes(),
            updated_at=next_updated_at(current.updated_at),
        )

        stale_keys = [
            self.index_key(name, getattr(current, name))
            for name in self._spec.indexes
            if getattr(current, name) is not None
            and getattr(current, name) != getattr(merged, name)
        ]
        await self._write(merged)
        if stale_keys:
            await self._store.delete(*stale_keys)

        await self._dispatcher.dispatch(build_update_job(self.kind, entity_id, patch))
        return merged

    async def delete(self, entity_id: str) -> bool:
        """Remove the entity and its indexes and dispatch a ``delete`` job.

        Returns:
            False if the entity is not cached (nothing dispatched), else True.
        """
        current = await self.get(entity_id)
        if current is None:
            return False
        await self._store.delete(self.primary_key(entity_id), *self._index_entries(current))
        await self._dispatcher.dispatch(build_delete_job(self.kind, entity_id))
        return True

    async def invalidate(self, entity_id: str) -> bool:
        """Drop the entity and its indexes from the cache without dispatching.

        Used to force cache/durable-store convergence after drift. When the
        primary entry no longer validates, index keys are recovered from
        whatever fields its JSON still carries and removed if they point at
        ``entity_id``. An entry that is not JSON at all leaves its index keys
        behind; they are retired by the next ``get_by`` that resolves them.

        Returns:
            True if any key was removed.
        """
        key = self.primary_key(entity_id)
        keys = [key]
        raw = await self._store.get(key)
        if raw is not None:
            current = self._decode(key, raw)
            if current is not None:
                keys.extend(self._index_entries(current))
            else:
                keys.extend(await self._owned_index_keys(entity_id, raw))
        removed = await self._store.delete(*keys)
        logger.info(
            "entity_cache.invalidate",
            extra={"table": self.kind.value, "entity_id": entity_id, "removed": removed},
        )
        return removed > 0
