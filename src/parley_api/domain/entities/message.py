# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""Domain Entity: Message."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

from parley_api.domain.entities.base import BaseEntity
from parley_api.domain.enums.entity_kind import EntityKind, MessageRole


@dataclass(frozen=True, slots=True, kw_only=True)
class Message(BaseEntity):
    """Single message within a conversation."""

    KIND: ClassVar[EntityKind] = EntityKind.MESSAGE

    conversation_id: str
    role: MessageRole
    content: str
    token_count: int | None = None
