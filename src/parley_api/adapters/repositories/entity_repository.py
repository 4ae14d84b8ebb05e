# src/parley_api/adapters/repositories/entity_repository.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""SQLAlchemy entity repository.

Purpose:
    Implements the domain ``EntityRepository`` Protocol for one entity kind
    over its ORM model. Rows map to frozen domain entities field by field.

Semantics:
    * Reads exclude soft-deleted rows unless ``include_deleted`` is set.
    * ``insert`` writes the full row; integrity violations surface as
      ``DuplicateEntityError`` and the caller decides whether that is a
      duplicate delivery or a real conflict.
    * ``update_fields`` touches only the given columns plus ``updated_at``
      and only on live rows.
    * ``soft_delete`` distinguishes live, already-deleted and missing rows.

Layer:
    adapters/repositories
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from sqlalchemy import insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from parley_api.adapters.repositories.base_repository import BaseRepository
from parley_api.domain.entities.account import Account
from parley_api.domain.entities.base import BaseEntity
from parley_api.domain.entities.conversation import Conversation
from parley_api.domain.entities.message import Message
from parley_api.domain.entities.persona import Persona
from parley_api.domain.enums.entity_kind import EntityKind
from parley_api.domain.interfaces.repositories.entity_repository import SoftDeleteResult
from parley_api.infrastructure.database.models.base import Base, row_to_fields
from parley_api.infrastructure.database.models.entities import (
    AccountRow,
    ConversationRow,
    MessageRow,
    PersonaRow,
)

__all__ = ["SqlAlchemyEntityRepository", "MODELS_BY_KIND"]

#: ORM model and domain entity type per kind.
MODELS_BY_KIND: dict[EntityKind, tuple[type[Base], type[BaseEntity]]] = {
    EntityKind.ACCOUNT: (AccountRow, Account),
    EntityKind.PERSONA: (PersonaRow, Persona),
    EntityKind.CONVERSATION: (ConversationRow, Conversation),
    EntityKind.MESSAGE: (MessageRow, Message),
}


class SqlAlchemyEntityRepository(BaseRepository[Any]):
    """Durable-store primitive for one entity kind."""

    def __init__(self, session: AsyncSession, kind: EntityKind) -> None:
        """Initialize the repository.

        Args:
            session: Session owned by the enclosing Unit of Work.
            kind: Entity kind this repository serves.
        """
        super().__init__(session)
        self._kind = kind
        self._model, self._entity_type = MODELS_BY_KIND[kind]
        self._table = self._model.__table__  # type: ignore[attr-defined]

    @property
    def kind(self) -> EntityKind:
        """Entity kind served by this repository."""
        return self._kind

    def _to_entity(self, row: Any) -> BaseEntity:
        return self._entity_type(**row_to_fields(row, self._entity_type.field_names()))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_by_id(self, entity_id: str, *, include_deleted: bool = False) -> BaseEntity | None:
        """Return the entity with ``entity_id``, or None."""
        stmt = (
            select(self._model)
            .where(self._table.c.id == entity_id)
            .execution_options(populate_existing=True)
        )
        if not include_deleted:
            stmt = stmt.where(self._table.c.deleted_at.is_(None))
        async with self.translate_errors(f"{self._kind.value}.get_by_id"):
            row = await self.fetch_optional(stmt)
        return None if row is None else self._to_entity(row)

    async def get_by_field(self, field: str, value: Any) -> BaseEntity | None:
        """Return the live entity whose unique ``field`` equals ``value``.

        Raises:
            ValueError: ``field`` is not a unique field of the kind.
        """
        if field not in self._entity_type.UNIQUE_FIELDS:
            raise ValueError(f"{self._kind.value} has no unique field {field!r}")
        stmt = select(self._model).where(
            self._table.c[field] == value,
            self._table.c.deleted_at.is_(None),
        ).execution_options(populate_existing=True)
        async with self.translate_errors(f"{self._kind.value}.get_by_field"):
            row = await self.fetch_optional(stmt)
        return None if row is None else self._to_entity(row)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert(self, values: Mapping[str, Any]) -> None:
        """Insert a full row.

        Raises:
            DuplicateEntityError: A uniqueness (or FK) constraint rejected the row.
            DurableStoreError: Any other database failure.
        """
        async with self.translate_errors(f"{self._kind.value}.insert"):
            await self._session.execute(insert(self._table).values(**dict(values)))

    async def update_fields(
        self,
        entity_id: str,
        values: Mapping[str, Any],
        *,
        updated_at: datetime,
    ) -> bool:
        """Apply a partial update to a live row.

        Returns:
            True if a live row matched ``entity_id``.

        Raises:
            ValueError: ``values`` names a field the kind does not allow to change.
        """
        unknown = set(values) - set(self._entity_type.mutable_field_names())
        if unknown:
            raise ValueError(f"{self._kind.value} cannot update {sorted(unknown)}")

        stmt = (
            update(self._table)
            .where(self._table.c.id == entity_id, self._table.c.deleted_at.is_(None))
            .values(**dict(values), updated_at=updated_at)
        )
        async with self.translate_errors(f"{self._kind.value}.update_fields"):
            result = await self._session.execute(stmt)
        return bool(result.rowcount)

    async def soft_delete(self, entity_id: str, *, deleted_at: datetime) -> SoftDeleteResult:
        """Set ``deleted_at`` on the row if it is live."""
        stmt = (
            update(self._table)
            .where(self._table.c.id == entity_id, self._table.c.deleted_at.is_(None))
            .values(deleted_at=deleted_at, updated_at=deleted_at)
        )
        async with self.translate_errors(f"{self._kind.value}.soft_delete"):
            result = await self._session.execute(stmt)
            if result.rowcount:
                return SoftDeleteResult.DELETED
            exists = await self._session.execute(
                select(self._table.c.id).where(self._table.c.id == entity_id)
            )
        if exists.first() is not None:
            return SoftDeleteResult.ALREADY_DELETED
        return SoftDeleteResult.NOT_FOUND
