# src/parley_api/infrastructure/database/models/base.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""Declarative Base and persistence mixins for Parley.

This module defines:
    - A project-wide SQLAlchemy Declarative Base with deterministic naming
      conventions (for stable Alembic diffs).
    - Persistence mixins for identity (UUIDv7 strings), audit timestamps (UTC)
      and soft-delete.

Timestamps are always written by the application (they originate in the
cache layer), so the mixins carry no client-side defaults.
"""

from __future__ import annotations

import os
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import DateTime, String

__all__ = [
    "metadata",
    "Base",
    "DEFAULT_DB_SCHEMA",
    "IdentityMixin",
    "TimestampMixin",
    "SoftDeleteMixin",
    "qualified",
    "as_utc",
    "row_to_fields",
]

#: Optional database schema for all tables (``DB_SCHEMA``).
DEFAULT_DB_SCHEMA: str | None = os.getenv("DB_SCHEMA") or None

#: Deterministic naming conventions for Alembic-friendly diffs.
#: Ref: https://alembic.sqlalchemy.org/en/latest/naming.html
NAMING_CONVENTIONS: dict[str, str] = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=NAMING_CONVENTIONS, schema=DEFAULT_DB_SCHEMA)


def qualified(target: str) -> str:
    """Return ``target`` (``table.column``) prefixed with the default schema, if any."""
    return f"{DEFAULT_DB_SCHEMA}.{target}" if DEFAULT_DB_SCHEMA else target


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops the offset)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


class Base(DeclarativeBase):
    """Declarative Base for all ORM models."""

    metadata = metadata


class IdentityMixin:
    """Mixin providing a UUIDv7 string primary key ``id`` column."""

    id: Mapped[str] = mapped_column(String(36), primary_key=True)


class TimestampMixin:
    """Mixin providing ``created_at`` and ``updated_at`` timestamps."""

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class SoftDeleteMixin:
    """Mixin providing a nullable, indexed ``deleted_at`` timestamp for soft deletes."""

    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None, index=True
    )

    @property
    def is_deleted(self) -> bool:
        """Return True if the row is soft-deleted."""
        return self.deleted_at is not None


def row_to_fields(row: Any, names: tuple[str, ...]) -> dict[str, Any]:
    """Return ``{name: value}`` for ``names`` with datetimes normalized to UTC."""
    out: dict[str, Any] = {}
    for name in names:
        value = getattr(row, name)
        out[name] = as_utc(value) if isinstance(value, datetime) else value
    return out
