# src/parley_api/application/use_cases/entities/get_entity.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""Use case: Read an entity through the cache.

Purpose:
    Serve an entity by id or by a unique field. The cache is consulted first;
    on a miss the durable store is queried (soft-deleted rows are treated as
    absent) and the cache is repopulated without dispatching any job.

Layer:
    application
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from parley_api.application.services.entity_cache import EntityCache
from parley_api.application.uow import UnitOfWorkFactory
from parley_api.domain.entities.base import BaseEntity
from parley_api.domain.exceptions.base import EntityNotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GetEntityRequest:
    """Lookup by id, or by a unique field.

    Attributes:
        entity_id: Primary id. Takes precedence when set.
        field: Unique field name (e.g. ``email``) used when ``entity_id`` is None.
        value: Value of ``field``.
    """

    entity_id: str | None = None
    field: str | None = None
    value: Any = None

    def __post_init__(self) -> None:
        if self.entity_id is None and (self.field is None or self.value is None):
            raise ValueError("GetEntityRequest needs entity_id or field/value")


class GetEntityUseCase:
    """Read-through lookup for one entity kind."""

    def __init__(self, cache: EntityCache, uow_factory: UnitOfWorkFactory) -> None:
        """Initialize the use case.

        Args:
            cache: Entity cache for the kind being read.
            uow_factory: Source of read transactions against the durable store.
        """
        self._cache = cache
        self._uow_factory = uow_factory

    async def execute(self, req: GetEntityRequest) -> BaseEntity:
        """Return the live entity.

        Raises:
            EntityNotFoundError: Absent from both the cache and the durable
                store, or soft-deleted.
            ValueError: ``req.field`` is not a unique field of the kind.
        """
        cached = await self._from_cache(req)
        if cached is not None:
            return cached

        entity = await self._from_store(req)
        if entity is None or entity.is_deleted:
            raise EntityNotFoundError(
                f"{self._cache.kind.cache_prefix} not found",
                details={"table": self._cache.kind.value, **self._describe(req)},
            )

        await self._cache.populate(entity)
        logger.info(
            "entity.read_through.populated",
            extra={"table": self._cache.kind.value, "entity_id": entity.id},
        )
        return entity

    async def _from_cache(self, req: GetEntityRequest) -> BaseEntity | None:
        if req.entity_id is not None:
            return await self._cache.get(req.entity_id)
        if req.field in self._cache.spec.indexes:
            return await self._cache.get_by(req.field, req.value)
        return None

    async def _from_store(self, req: GetEntityRequest) -> BaseEntity | None:
        async with self._uow_factory() as uow:
            repo = uow.get_repository(self._cache.kind)
            if req.entity_id is not None:
                return await repo.get_by_id(req.entity_id)
            return await repo.get_by_field(str(req.field), req.value)

    @staticmethod
    def _describe(req: GetEntityRequest) -> dict[str, Any]:
        if req.entity_id is not None:
            return {"entity_id": req.entity_id}
        return {"field": req.field, "value": req.value}
