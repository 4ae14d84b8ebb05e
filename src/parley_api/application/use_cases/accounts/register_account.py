# src/parley_api/application/use_cases/accounts/register_account.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""Use case: Register a new account.

Purpose:
    Create an account for an identity-provider user. Email, username and
    external id must be unused; uniqueness is checked in the cache first and
    then in the durable store. The account is written through the cache and
    reaches the durable store via a ``create`` job.

Layer:
    application

Notes:
    The uniqueness check and the write are not atomic. Two concurrent
    registrations with the same email can both pass the check; the durable
    store's unique constraint rejects the second ``create`` job.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from parley_api.application.services.entity_cache import EntityCache
from parley_api.application.uow import UnitOfWorkFactory
from parley_api.domain.entities.account import Account
from parley_api.domain.exceptions.base import ConflictError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegisterAccountRequest:
    """New account fields.

    Attributes:
        external_id: Identity-provider user id.
        email: Contact email (unique).
        username: Handle (unique).
        display_name: Defaults to ``username`` when omitted.
        avatar_url: Optional avatar URL.
        bio: Optional profile text.
    """

    external_id: str
    email: str
    username: str
    display_name: str | None = None
    avatar_url: str | None = None
    bio: str | None = None


class RegisterAccountUseCase:
    """Create an account through the write-behind cache."""

    def __init__(self, cache: EntityCache, uow_factory: UnitOfWorkFactory) -> None:
        """Initialize the use case.

        Args:
            cache: Account cache.
            uow_factory: Source of read transactions for uniqueness checks.
        """
        self._cache = cache
        self._uow_factory = uow_factory

    async def execute(self, req: RegisterAccountRequest) -> Account:
        """Register the account.

        Raises:
            ConflictError: A unique field is already taken.
            ValueError: A field fails account validation.
            CacheStoreError: A cache round trip failed.
            JobDispatchError: The account is cached but dispatch failed.
        """
        account = Account.new(
            external_id=req.external_id,
            email=req.email,
            username=req.username,
            display_name=req.display_name,
            avatar_url=req.avatar_url,
            bio=req.bio,
        )
        await self._ensure_unique(account)
        await self._cache.create(account)
        logger.info(
            "account.registered",
            extra={"entity_id": account.id, "external_id": account.external_id},
        )
        return account

    async def _ensure_unique(self, account: Account) -> None:
        for field_name in Account.UNIQUE_FIELDS:
            value = getattr(account, field_name)
            if await self._cache.get_by(field_name, value) is not None:
                raise ConflictError(
                    f"{field_name} already in use",
                    details={"field": field_name},
                )

        async with self._uow_factory() as uow:
            repo = uow.get_repository(self._cache.kind)
            for field_name in Account.UNIQUE_FIELDS:
                value = getattr(account, field_name)
                if await repo.get_by_field(field_name, value) is not None:
                    raise ConflictError(
                        f"{field_name} already in use",
                        details={"field": field_name},
                    )
