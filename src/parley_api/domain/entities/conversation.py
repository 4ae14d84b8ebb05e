# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""Domain Entity: Conversation.

Purpose:
    A chat thread between an account and one of its personas.

Layer:
    domain/entities
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import ClassVar

from parley_api.domain.entities.base import BaseEntity
from parley_api.domain.enums.entity_kind import EntityKind


@dataclass(frozen=True, slots=True, kw_only=True)
class Conversation(BaseEntity):
    """Conversation between an account and a persona."""

    KIND: ClassVar[EntityKind] = EntityKind.CONVERSATION

    account_id: str
    persona_id: str
    last_message_at: datetime
    title: str | None = None
    message_count: int = 0

    def __post_init__(self) -> None:
        """Validate conversation invariants."""
        super(Conversation, self).__post_init__()
        if self.message_count < 0:
            raise ValueError("Conversation.message_count must be >= 0")
