# src/parley_api/domain/interfaces/repositories/entity_repository.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""Entity Repository Interfaces.

Purpose:
    Define the durable-store contract consumed by the sync engine and the
    read-through use cases. One repository instance is scoped to a single
    entity kind and a single transactional session.

Layer:
    domain

Notes:
    Implementations live in adapters/ and must satisfy this Protocol via
    structural typing. Repositories never commit; the Unit of Work owns
    transactions.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from enum import Enum
from typing import Any, Protocol

from parley_api.domain.entities.base import BaseEntity


class SoftDeleteResult(str, Enum):
    """Result of a soft-delete against the durable store."""

    DELETED = "deleted"
    ALREADY_DELETED = "already_deleted"
    NOT_FOUND = "not_found"


class EntityRepository(Protocol):
    """Durable-store primitive for one entity kind."""

    async def get_by_id(self, entity_id: str, *, include_deleted: bool = False) -> BaseEntity | None:
        """Return the entity with the given id, or None.

        Args:
            entity_id: Primary identifier.
            include_deleted: When True, soft-deleted rows are returned as well.
        """
        raise NotImplementedError

    async def get_by_field(self, field: str, value: Any) -> BaseEntity | None:
        """Return the live entity whose unique ``field`` equals ``value``, or None."""
        raise NotImplementedError

    async def insert(self, values: Mapping[str, Any]) -> None:
        """Insert a full row.

        Raises:
            DuplicateEntityError: If a uniqueness constraint is violated.
        """
        raise NotImplementedError

    async def update_fields(
        self,
        entity_id: str,
        values: Mapping[str, Any],
        *,
        updated_at: datetime,
    ) -> bool:
        """Apply a partial update to a live row.

        Fields absent from ``values`` are left untouched.

        Returns:
            True if a live row matched ``entity_id``, False otherwise.
        """
        raise NotImplementedError

    async def soft_delete(self, entity_id: str, *, deleted_at: datetime) -> SoftDeleteResult:
        """Set ``deleted_at`` on the row if it is live."""
        raise NotImplementedError
