# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""Domain Entity: Persona.

Purpose:
    A chat character owned by an account, defined by its system prompt.

Layer:
    domain/entities
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

from parley_api.domain.entities.base import BaseEntity
from parley_api.domain.enums.entity_kind import EntityKind


@dataclass(frozen=True, slots=True, kw_only=True)
class Persona(BaseEntity):
    """Chat persona owned by an account."""

    KIND: ClassVar[EntityKind] = EntityKind.PERSONA

    account_id: str
    name: str
    system_prompt: str
    avatar_url: str | None = None
    description: str | None = None
    is_public: bool = False
