# src/parley_api/application/schemas/dto/records.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""Entity records and patches (Application Layer).

Purpose:
    Serialized shapes of the four entity kinds as they appear in the cache
    and inside write jobs:

        * ``*Record``: the full entity (cache value, ``create`` job data).
        * ``*Patch``: a partial field set (``update`` job data). Only fields
          that were explicitly set are serialized, so an explicit ``null``
          survives the round trip while untouched fields are omitted.

    ``KIND_SCHEMAS`` ties each :class:`EntityKind` to its entity, record and
    patch types.

Layer:
    application/schemas/dto
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, ClassVar, Self

from pydantic import Field, model_validator

from parley_api.application.schemas.dto.base import BaseDTO
from parley_api.domain.entities.account import Account
from parley_api.domain.entities.base import BaseEntity
from parley_api.domain.entities.conversation import Conversation
from parley_api.domain.entities.message import Message
from parley_api.domain.entities.persona import Persona
from parley_api.domain.enums.entity_kind import EntityKind, MessageRole

__all__ = [
    "EntityRecord",
    "EntityPatch",
    "AccountRecord",
    "AccountPatch",
    "PersonaRecord",
    "PersonaPatch",
    "ConversationRecord",
    "ConversationPatch",
    "MessageRecord",
    "MessagePatch",
    "KindSchema",
    "KIND_SCHEMAS",
    "schema_for",
]


# --------------------------------------------------------------------------- #
# Bases
# --------------------------------------------------------------------------- #
class EntityRecord(BaseDTO):
    """Full serialized entity."""

    ENTITY_TYPE: ClassVar[type[BaseEntity]]

    id: str = Field(min_length=1)
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None

    @classmethod
    def from_entity(cls, entity: BaseEntity) -> Self:
        """Build a record from a domain entity."""
        return cls.model_validate(entity.to_fields())

    def to_entity(self) -> BaseEntity:
        """Rebuild the domain entity this record describes."""
        return self.ENTITY_TYPE(**self.model_dump())


class EntityPatch(BaseDTO):
    """Partial field set for an update.

    Every field defaults to ``None`` so that any subset may be supplied.
    Fields listed in ``NON_NULLABLE`` may be omitted but never set to null.
    """

    NON_NULLABLE: ClassVar[frozenset[str]] = frozenset()

    @model_validator(mode="after")
    def _reject_null_for_required(self) -> Self:
        nulls = sorted(
            name
            for name in self.model_fields_set & self.NON_NULLABLE
            if getattr(self, name) is None
        )
        if nulls:
            raise ValueError(f"fields may not be null: {', '.join(nulls)}")
        return self

    def changes(self) -> dict[str, Any]:
        """Return only the explicitly set fields, keyed by Python field name."""
        return self.model_dump(exclude_unset=True)

    @classmethod
    def from_changes(cls, changes: Mapping[str, Any]) -> Self:
        """Validate a ``{field: value}`` mapping (snake_case or camelCase keys)."""
        return cls.model_validate(dict(changes))


# --------------------------------------------------------------------------- #
# Account
# --------------------------------------------------------------------------- #
class AccountRecord(EntityRecord):
    """Serialized account."""

    ENTITY_TYPE: ClassVar[type[BaseEntity]] = Account

    external_id: str
    email: str
    username: str
    display_name: str | None = None
    avatar_url: str | None = None
    bio: str | None = None


class AccountPatch(EntityPatch):
    """Partial account update."""

    NON_NULLABLE: ClassVar[frozenset[str]] = frozenset({"external_id", "email", "username"})

    external_id: str | None = None
    email: str | None = None
    username: str | None = None
    display_name: str | None = None
    avatar_url: str | None = None
    bio: str | None = None


# --------------------------------------------------------------------------- #
# Persona
# --------------------------------------------------------------------------- #
class PersonaRecord(EntityRecord):
    """Serialized persona."""

    ENTITY_TYPE: ClassVar[type[BaseEntity]] = Persona

    account_id: str
    name: str
    system_prompt: str
    avatar_url: str | None = None
    description: str | None = None
    is_public: bool = False


class PersonaPatch(EntityPatch):
    """Partial persona update."""

    NON_NULLABLE: ClassVar[frozenset[str]] = frozenset(
        {"account_id", "name", "system_prompt", "is_public"}
    )

    account_id: str | None = None
    name: str | None = None
    system_prompt: str | None = None
    avatar_url: str | None = None
    description: str | None = None
    is_public: bool | None = None


# --------------------------------------------------------------------------- #
# Conversation
# --------------------------------------------------------------------------- #
class ConversationRecord(EntityRecord):
    """Serialized conversation."""

    ENTITY_TYPE: ClassVar[type[BaseEntity]] = Conversation

    account_id: str
    persona_id: str
    last_message_at: datetime
    title: str | None = None
    message_count: int = Field(default=0, ge=0)


class ConversationPatch(EntityPatch):
    """Partial conversation update."""

    NON_NULLABLE: ClassVar[frozenset[str]] = frozenset(
        {"account_id", "persona_id", "last_message_at", "message_count"}
    )

    account_id: str | None = None
    persona_id: str | None = None
    last_message_at: datetime | None = None
    title: str | None = None
    message_count: int | None = Field(default=None, ge=0)


# --------------------------------------------------------------------------- #
# Message
# --------------------------------------------------------------------------- #
class MessageRecord(EntityRecord):
    """Serialized message."""

    ENTITY_TYPE: ClassVar[type[BaseEntity]] = Message

    conversation_id: str
    role: MessageRole
    content: str
    token_count: int | None = None


class MessagePatch(EntityPatch):
    """Partial message update."""

    NON_NULLABLE: ClassVar[frozenset[str]] = frozenset({"conversation_id", "role", "content"})

    conversation_id: str | None = None
    role: MessageRole | None = None
    content: str | None = None
    token_count: int | None = None


# --------------------------------------------------------------------------- #
# Registry
# --------------------------------------------------------------------------- #
@dataclass(frozen=True)
class KindSchema:
    """Types describing one entity kind end to end."""

    kind: EntityKind
    entity_type: type[BaseEntity]
    record_type: type[EntityRecord]
    patch_type: type[EntityPatch]


KIND_SCHEMAS: dict[EntityKind, KindSchema] = {
    EntityKind.ACCOUNT: KindSchema(EntityKind.ACCOUNT, Account, AccountRecord, AccountPatch),
    EntityKind.PERSONA: KindSchema(EntityKind.PERSONA, Persona, PersonaRecord, PersonaPatch),
    EntityKind.CONVERSATION: KindSchema(
        EntityKind.CONVERSATION, Conversation, ConversationRecord, ConversationPatch
    ),
    EntityKind.MESSAGE: KindSchema(EntityKind.MESSAGE, Message, MessageRecord, MessagePatch),
}


def schema_for(kind: EntityKind) -> KindSchema:
    """Return the schema bundle for ``kind``."""
    return KIND_SCHEMAS[kind]
