# src/parley_api/adapters/dependencies/write_behind.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""Write-behind dependency wiring.

Purpose:
    Expose the process-wide write-behind components (wired once by the
    bootstrap and stored on ``app.state``) to FastAPI routes, and build the
    per-request use cases on top of them. Tests swap any of these through
    ``app.dependency_overrides``.

Layer:
    adapters/dependencies
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Annotated

from fastapi import Depends, Request

from parley_api.application.services.sync_engine import SyncEngine
from parley_api.application.use_cases.accounts.register_account import RegisterAccountUseCase
from parley_api.application.use_cases.accounts.update_account_profile import (
    UpdateAccountProfileUseCase,
)
from parley_api.application.use_cases.entities.delete_entity import DeleteEntityUseCase
from parley_api.application.use_cases.entities.get_entity import GetEntityUseCase
from parley_api.dependencies.core.bootstrap import WriteBehindServices
from parley_api.domain.enums.entity_kind import EntityKind
from parley_api.infrastructure.security.delivery_verifier import DeliveryVerifier


def get_write_behind_services(request: Request) -> WriteBehindServices:
    """Return the services wired by the bootstrap.

    Raises:
        RuntimeError: If the application lifespan has not run.
    """
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise RuntimeError("Write-behind services not initialized (lifespan did not run)")
    return services


ServicesDep = Annotated[WriteBehindServices, Depends(get_write_behind_services)]


def get_delivery_verifier(services: ServicesDep) -> DeliveryVerifier:
    return services.verifier


def get_sync_engine(services: ServicesDep) -> SyncEngine:
    return services.sync_engine


# -----------------------------------------------------------------------------
# Use cases
# -----------------------------------------------------------------------------


def entity_reader(kind: EntityKind) -> Callable[[WriteBehindServices], GetEntityUseCase]:
    """Return a dependency building the cache-aside reader for ``kind``.

    Example:
        ``persona: Annotated[GetEntityUseCase, Depends(entity_reader(EntityKind.PERSONA))]``
    """

    def _provide(services: ServicesDep) -> GetEntityUseCase:
        return GetEntityUseCase(services.cache_for(kind), services.uow_factory)

    return _provide


def entity_deleter(kind: EntityKind) -> Callable[[WriteBehindServices], DeleteEntityUseCase]:
    """Return a dependency building the delete use case for ``kind``."""

    def _provide(services: ServicesDep) -> DeleteEntityUseCase:
        return DeleteEntityUseCase(services.cache_for(kind), services.uow_factory)

    return _provide


get_account_reader = entity_reader(EntityKind.ACCOUNT)
get_delete_account_use_case = entity_deleter(EntityKind.ACCOUNT)


def get_register_account_use_case(services: ServicesDep) -> RegisterAccountUseCase:
    return RegisterAccountUseCase(services.cache_for(EntityKind.ACCOUNT), services.uow_factory)


def get_update_account_profile_use_case(services: ServicesDep) -> UpdateAccountProfileUseCase:
    """Build the profile update use case, mirroring to the identity provider when one is wired."""
    return UpdateAccountProfileUseCase(
        services.cache_for(EntityKind.ACCOUNT),
        services.uow_factory,
        identity_provider=services.identity_provider,
    )
