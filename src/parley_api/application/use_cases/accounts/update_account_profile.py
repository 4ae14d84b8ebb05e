# src/parley_api/application/use_cases/accounts/update_account_profile.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""Use case: Update an account profile.

Purpose:
    Apply a partial profile update through the write-behind cache, then mirror
    display name / avatar changes onto the identity provider.

    The identity-provider write is best effort. Its failure does not fail the
    update; it is reported as a warning on the returned
    :class:`PartialSuccess`.

Layer:
    application
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, cast

from parley_api.application.schemas.dto.partial_success import PartialSuccess
from parley_api.application.schemas.dto.records import AccountPatch
from parley_api.application.services.entity_cache import EntityCache
from parley_api.application.uow import UnitOfWorkFactory
from parley_api.application.use_cases.entities.get_entity import (
    GetEntityRequest,
    GetEntityUseCase,
)
from parley_api.domain.entities.account import Account
from parley_api.domain.exceptions.base import ConflictError, EntityNotFoundError
from parley_api.domain.interfaces.gateways.identity_provider import IdentityProviderGateway

logger = logging.getLogger(__name__)

_MIRRORED_FIELDS = ("display_name", "avatar_url")


@dataclass(frozen=True)
class UpdateAccountProfileRequest:
    """Profile update.

    Attributes:
        account_id: Target account id.
        changes: ``{field: value}`` for the fields being changed (snake_case
            or camelCase keys).
    """

    account_id: str
    changes: Mapping[str, Any] = field(default_factory=dict)


class UpdateAccountProfileUseCase:
    """Update an account and best-effort sync the identity provider."""

    def __init__(
        self,
        cache: EntityCache,
        uow_factory: UnitOfWorkFactory,
        identity_provider: IdentityProviderGateway | None = None,
    ) -> None:
        """Initialize the use case.

        Args:
            cache: Account cache.
            uow_factory: Source of read transactions.
            identity_provider: Optional gateway mirrored after the update.
        """
        self._cache = cache
        self._uow_factory = uow_factory
        self._identity_provider = identity_provider
        self._reader = GetEntityUseCase(cache, uow_factory)

    async def execute(self, req: UpdateAccountProfileRequest) -> PartialSuccess[Account]:
        """Apply the update.

        Raises:
            pydantic.ValidationError: ``req.changes`` is not a valid patch.
            EntityNotFoundError: No live account with this id.
            ConflictError: A changed unique field is taken by another account.
            CacheStoreError: A cache round trip failed.
            JobDispatchError: The update is cached but dispatch failed.
        """
        patch = AccountPatch.from_changes(req.changes)
        current = cast(Account, await self._reader.execute(GetEntityRequest(entity_id=req.account_id)))

        changes = patch.changes()
        await self._ensure_unique(current, changes)

        updated = await self._cache.update(req.account_id, patch)
        if updated is None:
            raise EntityNotFoundError(
                "account not found",
                details={"table": self._cache.kind.value, "entity_id": req.account_id},
            )
        account = cast(Account, updated)

        warnings = await self._mirror_to_identity_provider(account, changes)
        return PartialSuccess(result=account, warnings=warnings)

    async def _ensure_unique(self, current: Account, changes: Mapping[str, Any]) -> None:
        candidates = {
            name: value
            for name, value in changes.items()
            if name in Account.UNIQUE_FIELDS and value != getattr(current, name)
        }
        if not candidates:
            return

        for name, value in candidates.items():
            owner = await self._cache.get_by(name, value)
            if owner is not None and owner.id != current.id:
                raise ConflictError(f"{name} already in use", details={"field": name})

        async with self._uow_factory() as uow:
            repo = uow.get_repository(self._cache.kind)
            for name, value in candidates.items():
                owner = await repo.get_by_field(name, value)
                if owner is not None and owner.id != current.id:
                    raise ConflictError(f"{name} already in use", details={"field": name})

    async def _mirror_to_identity_provider(
        self, account: Account, changes: Mapping[str, Any]
    ) -> tuple[str, ...]:
        if self._identity_provider is None:
            return ()
        if not any(name in changes for name in _MIRRORED_FIELDS):
            return ()

        try:
            await self._identity_provider.update_profile(
                account.external_id,
                display_name=account.display_name,
                avatar_url=account.avatar_url,
            )
        except Exception as exc:  # best effort; surfaced as a warning
            logger.warning(
                "account.identity_sync.failed",
                extra={
                    "entity_id": account.id,
                    "external_id": account.external_id,
                    "error": str(exc),
                },
            )
            return (f"identity provider sync failed: {exc}",)
        return ()
