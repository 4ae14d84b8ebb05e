# src/parley_api/domain/enums/entity_kind.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""Entity kinds and write operations.

Purpose:
    Stable identifiers shared by the cache layer, the job envelope and the
    durable store. The enum values are the wire identifiers carried in the
    ``table`` and ``operation`` fields of a write job and must not change.

Layer:
    domain/enums
"""

from __future__ import annotations

from enum import Enum


class EntityKind(str, Enum):
    """Entity kinds that can be written behind the cache."""

    ACCOUNT = "accounts"
    PERSONA = "personas"
    CONVERSATION = "conversations"
    MESSAGE = "messages"

    @property
    def cache_prefix(self) -> str:
        """Return the singular key prefix used for cache entries (e.g. ``account``)."""
        return _CACHE_PREFIXES[self]

    @classmethod
    def from_wire(cls, value: str) -> EntityKind | None:
        """Return the kind for a wire ``table`` value, or None if unknown."""
        try:
            return cls(value)
        except ValueError:
            return None


_CACHE_PREFIXES: dict[EntityKind, str] = {
    EntityKind.ACCOUNT: "account",
    EntityKind.PERSONA: "persona",
    EntityKind.CONVERSATION: "conversation",
    EntityKind.MESSAGE: "message",
}


class WriteOperation(str, Enum):
    """Mutation described by a write job."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class MessageRole(str, Enum):
    """Author of a conversation message."""

    USER = "user"
    ASSISTANT = "assistant"
