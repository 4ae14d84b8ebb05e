# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""Domain Entity: Account.

Purpose:
    A registered user. ``external_id`` is the identity-provider uid; it, the
    e-mail address and the username are each unique across accounts.

Layer:
    domain/entities
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

from parley_api.domain.entities.base import BaseEntity, new_entity_id, utc_now
from parley_api.domain.enums.entity_kind import EntityKind


@dataclass(frozen=True, slots=True, kw_only=True)
class Account(BaseEntity):
    """Registered user account."""

    KIND: ClassVar[EntityKind] = EntityKind.ACCOUNT
    UNIQUE_FIELDS: ClassVar[tuple[str, ...]] = ("external_id", "email", "username")

    external_id: str
    email: str
    username: str
    display_name: str | None = None
    avatar_url: str | None = None
    bio: str | None = None

    def __post_init__(self) -> None:
        """Validate account invariants."""
        super(Account, self).__post_init__()
        if "@" not in self.email:
            raise ValueError("Account.email must be an e-mail address")
        if not self.username:
            raise ValueError("Account.username must be non-empty")

    @classmethod
    def new(
        cls,
        *,
        external_id: str,
        email: str,
        username: str,
        display_name: str | None = None,
        avatar_url: str | None = None,
        bio: str | None = None,
    ) -> Account:
        """Build a brand-new account with a fresh id and timestamps."""
        now = utc_now()
        return cls(
            id=new_entity_id(),
            created_at=now,
            updated_at=now,
            external_id=external_id,
            email=email,
            username=username,
            display_name=display_name if display_name is not None else username,
            avatar_url=avatar_url,
            bio=bio,
        )
