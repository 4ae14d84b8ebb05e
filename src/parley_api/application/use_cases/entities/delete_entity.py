# src/parley_api/application/use_cases/entities/delete_entity.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""Use case: Delete an entity (write-behind soft delete)."""

from __future__ import annotations

from parley_api.application.services.entity_cache import EntityCache
from parley_api.application.uow import UnitOfWorkFactory
from parley_api.application.use_cases.entities.get_entity import (
    GetEntityRequest,
    GetEntityUseCase,
)
from parley_api.domain.exceptions.base import EntityNotFoundError


class DeleteEntityUseCase:
    """Load the entity through the cache, then delete it from the cache.

    The cache entry and its indexes disappear immediately; the durable row is
    soft-deleted when the dispatched ``delete`` job is applied.
    """

    def __init__(self, cache: EntityCache, uow_factory: UnitOfWorkFactory) -> None:
        self._cache = cache
        self._reader = GetEntityUseCase(cache, uow_factory)

    async def execute(self, entity_id: str) -> None:
        """Delete ``entity_id``.

        Raises:
            EntityNotFoundError: No live entity with this id.
            CacheStoreError: A cache round trip failed.
            JobDispatchError: The cache entry is gone but dispatch failed.
        """
        await self._reader.execute(GetEntityRequest(entity_id=entity_id))
        if not await self._cache.delete(entity_id):
            # Expired between the read and the delete.
            raise EntityNotFoundError(
                f"{self._cache.kind.cache_prefix} not found",
                details={"table": self._cache.kind.value, "entity_id": entity_id},
            )
