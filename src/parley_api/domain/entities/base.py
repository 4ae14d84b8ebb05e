# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""Base Entity (Domain Layer).

Purpose:
    Immutable base for the persisted entity kinds. Provides the identity and
    lifecycle fields every kind carries (``id``, ``created_at``,
    ``updated_at``, ``deleted_at``) plus helpers for identifiers and clocks.

Layer:
    domain/entities

Notes:
    * Identifiers are UUIDv7 strings: opaque, globally unique, time-sortable.
    * ``deleted_at`` marks a soft delete. A soft-deleted entity is absent from
      all read paths, but its row is retained by the durable store.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import UTC, datetime, timedelta
from typing import Any, ClassVar

from uuid_extensions import uuid7

from parley_api.domain.enums.entity_kind import EntityKind

_BASE_FIELDS = frozenset({"id", "created_at", "updated_at", "deleted_at"})


def new_entity_id() -> str:
    """Return a new UUIDv7 identifier as a string."""
    return str(uuid7())


def utc_now() -> datetime:
    """Return the current UTC time with timezone info."""
    return datetime.now(UTC)


def next_updated_at(previous: datetime | None) -> datetime:
    """Return a timestamp strictly later than ``previous``.

    Clocks with coarse resolution can return the same instant twice; the
    result is bumped by one microsecond in that case.
    """
    now = utc_now()
    if previous is None:
        return now
    if previous.tzinfo is None:
        previous = previous.replace(tzinfo=UTC)
    if now <= previous:
        return previous + timedelta(microseconds=1)
    return now


@dataclass(frozen=True, slots=True, kw_only=True)
class BaseEntity:
    """Base for all persisted entity kinds.

    Attributes:
        id: UUIDv7 identifier.
        created_at: Creation time (UTC).
        updated_at: Time of the last mutation (UTC).
        deleted_at: Soft-delete marker; ``None`` while the entity is live.
    """

    KIND: ClassVar[EntityKind]
    UNIQUE_FIELDS: ClassVar[tuple[str, ...]] = ()

    id: str
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None

    def __post_init__(self) -> None:
        """Validate identity invariants."""
        if not self.id:
            raise ValueError(f"{type(self).__name__}.id must be non-empty")

    @property
    def is_deleted(self) -> bool:
        """Return True if the entity has been soft-deleted."""
        return self.deleted_at is not None

    @classmethod
    def field_names(cls) -> tuple[str, ...]:
        """Return all dataclass field names, base fields first."""
        return tuple(f.name for f in fields(cls))

    @classmethod
    def mutable_field_names(cls) -> tuple[str, ...]:
        """Return the kind-specific field names that updates may change."""
        return tuple(name for name in cls.field_names() if name not in _BASE_FIELDS)

    def to_fields(self) -> dict[str, Any]:
        """Return a shallow ``{field_name: value}`` mapping."""
        return {name: getattr(self, name) for name in self.field_names()}
