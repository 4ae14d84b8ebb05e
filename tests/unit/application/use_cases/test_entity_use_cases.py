# tests/unit/application/use_cases/test_entity_use_cases.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from typing import Any

import pytest
from pydantic import ValidationError

from parley_api.application.services.entity_cache import EntityCache
from parley_api.application.use_cases.accounts.register_account import (
    RegisterAccountRequest,
    RegisterAccountUseCase,
)
from parley_api.application.use_cases.accounts.update_account_profile import (
    UpdateAccountProfileRequest,
    UpdateAccountProfileUseCase,
)
from parley_api.application.use_cases.entities.delete_entity import DeleteEntityUseCase
from parley_api.application.use_cases.entities.get_entity import (
    GetEntityRequest,
    GetEntityUseCase,
)
from parley_api.domain.entities.account import Account
from parley_api.domain.entities.base import utc_now
from parley_api.domain.exceptions.base import ConflictError, EntityNotFoundError

# -----------------------------------------------------------------------------
# GetEntity
# -----------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_get_serves_from_cache_without_touching_store(
    account_cache: EntityCache, memory_db: Any, make_account: Callable[..., Account]
) -> None:
    account = make_account()
    await account_cache.populate(account)

    found = await GetEntityUseCase(account_cache, memory_db.uow_factory).execute(
        GetEntityRequest(entity_id="u1")
    )

    assert found == account
    assert memory_db.opened == 0


@pytest.mark.asyncio
async def test_get_reads_through_and_repopulates_cache(
    account_cache: EntityCache,
    memory_db: Any,
    publisher: Any,
    make_account: Callable[..., Account],
) -> None:
    memory_db.seed(make_account())
    use_case = GetEntityUseCase(account_cache, memory_db.uow_factory)

    found = await use_case.execute(GetEntityRequest(field="username", value="alice"))

    assert found.id == "u1"
    assert await account_cache.is_cached("u1")
    assert (await account_cache.get_by("email", "a@x.com")) is not None
    assert publisher.calls == []


@pytest.mark.asyncio
async def test_get_treats_soft_deleted_rows_as_absent(
    account_cache: EntityCache, memory_db: Any, make_account: Callable[..., Account]
) -> None:
    memory_db.seed(make_account(deleted_at=utc_now()))

    with pytest.raises(EntityNotFoundError):
        await GetEntityUseCase(account_cache, memory_db.uow_factory).execute(
            GetEntityRequest(entity_id="u1")
        )
    assert not await account_cache.is_cached("u1")


def test_get_request_needs_an_id_or_a_field() -> None:
    with pytest.raises(ValueError):
        GetEntityRequest(field="email")


# -----------------------------------------------------------------------------
# RegisterAccount
# -----------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_register_caches_account_and_dispatches_create(
    account_cache: EntityCache, memory_db: Any, publisher: Any
) -> None:
    use_case = RegisterAccountUseCase(account_cache, memory_db.uow_factory)

    account = await use_case.execute(
        RegisterAccountRequest(external_id="ext-9", email="z@x.com", username="zed")
    )

    assert await account_cache.get(account.id) == account
    (job,) = publisher.jobs()
    assert (job["operation"], job["table"], job["id"]) == ("create", "accounts", account.id)
    assert job["data"]["displayName"] == "zed"


@pytest.mark.asyncio
async def test_register_rejects_email_taken_in_cache(
    account_cache: EntityCache, memory_db: Any, make_account: Callable[..., Account]
) -> None:
    await account_cache.populate(make_account())
    use_case = RegisterAccountUseCase(account_cache, memory_db.uow_factory)

    with pytest.raises(ConflictError) as exc_info:
        await use_case.execute(
            RegisterAccountRequest(external_id="ext-2", email="a@x.com", username="other")
        )
    assert exc_info.value.details == {"field": "email"}


@pytest.mark.asyncio
async def test_register_rejects_username_taken_in_store(
    account_cache: EntityCache,
    memory_db: Any,
    publisher: Any,
    make_account: Callable[..., Account],
) -> None:
    memory_db.seed(make_account())
    use_case = RegisterAccountUseCase(account_cache, memory_db.uow_factory)

    with pytest.raises(ConflictError):
        await use_case.execute(
            RegisterAccountRequest(external_id="ext-2", email="b@x.com", username="alice")
        )
    assert publisher.calls == []


# -----------------------------------------------------------------------------
# UpdateAccountProfile
# -----------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_update_profile_mirrors_identity_provider(
    account_cache: EntityCache,
    memory_db: Any,
    identity_provider: Any,
    publisher: Any,
    make_account: Callable[..., Account],
) -> None:
    memory_db.seed(make_account())
    use_case = UpdateAccountProfileUseCase(account_cache, memory_db.uow_factory, identity_provider)

    outcome = await use_case.execute(
        UpdateAccountProfileRequest(account_id="u1", changes={"displayName": "Alice B"})
    )

    assert outcome.result.display_name == "Alice B"
    assert not outcome.degraded
    assert identity_provider.calls == [
        {"external_id": "ext-u1", "display_name": "Alice B", "avatar_url": None}
    ]
    assert publisher.jobs()[-1]["data"] == {"displayName": "Alice B"}


@pytest.mark.asyncio
async def test_update_profile_reports_identity_failure_as_warning(
    account_cache: EntityCache,
    memory_db: Any,
    identity_provider: Any,
    make_account: Callable[..., Account],
) -> None:
    memory_db.seed(make_account())
    identity_provider.fail = True
    use_case = UpdateAccountProfileUseCase(account_cache, memory_db.uow_factory, identity_provider)

    outcome = await use_case.execute(
        UpdateAccountProfileRequest(account_id="u1", changes={"avatar_url": "https://img.test/a.png"})
    )

    assert outcome.degraded
    assert outcome.warnings[0].startswith("identity provider sync failed")
    cached = await account_cache.get("u1")
    assert cached is not None and cached.avatar_url == "https://img.test/a.png"


@pytest.mark.asyncio
async def test_update_profile_skips_identity_provider_for_other_fields(
    account_cache: EntityCache,
    memory_db: Any,
    identity_provider: Any,
    make_account: Callable[..., Account],
) -> None:
    memory_db.seed(make_account())
    use_case = UpdateAccountProfileUseCase(account_cache, memory_db.uow_factory, identity_provider)

    await use_case.execute(UpdateAccountProfileRequest(account_id="u1", changes={"bio": "hi"}))

    assert identity_provider.calls == []


@pytest.mark.asyncio
async def test_update_profile_rejects_username_owned_by_another_account(
    account_cache: EntityCache, memory_db: Any, make_account: Callable[..., Account]
) -> None:
    memory_db.seed(make_account())
    memory_db.seed(make_account("u2", email="b@x.com", username="bob", external_id="ext-u2"))
    use_case = UpdateAccountProfileUseCase(account_cache, memory_db.uow_factory)

    with pytest.raises(ConflictError):
        await use_case.execute(UpdateAccountProfileRequest(account_id="u1", changes={"username": "bob"}))


@pytest.mark.asyncio
async def test_update_profile_allows_resubmitting_own_unique_value(
    account_cache: EntityCache, memory_db: Any, make_account: Callable[..., Account]
) -> None:
    memory_db.seed(make_account())
    use_case = UpdateAccountProfileUseCase(account_cache, memory_db.uow_factory)

    outcome = await use_case.execute(
        UpdateAccountProfileRequest(account_id="u1", changes={"email": "a@x.com", "bio": "b"})
    )
    assert outcome.result.bio == "b"


@pytest.mark.asyncio
async def test_update_profile_validates_changes(
    account_cache: EntityCache, memory_db: Any
) -> None:
    use_case = UpdateAccountProfileUseCase(account_cache, memory_db.uow_factory)
    with pytest.raises(ValidationError):
        await use_case.execute(UpdateAccountProfileRequest(account_id="u1", changes={"email": None}))


@pytest.mark.asyncio
async def test_update_profile_of_unknown_account_is_not_found(
    account_cache: EntityCache, memory_db: Any
) -> None:
    use_case = UpdateAccountProfileUseCase(account_cache, memory_db.uow_factory)
    with pytest.raises(EntityNotFoundError):
        await use_case.execute(UpdateAccountProfileRequest(account_id="nobody", changes={"bio": "x"}))


# -----------------------------------------------------------------------------
# DeleteEntity
# -----------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_delete_reads_through_then_dispatches_delete(
    account_cache: EntityCache,
    memory_db: Any,
    publisher: Any,
    make_account: Callable[..., Account],
) -> None:
    memory_db.seed(replace(make_account(), display_name="Stored"))

    await DeleteEntityUseCase(account_cache, memory_db.uow_factory).execute("u1")

    assert not await account_cache.is_cached("u1")
    assert publisher.jobs()[-1]["operation"] == "delete"


@pytest.mark.asyncio
async def test_delete_of_unknown_entity_is_not_found(
    account_cache: EntityCache, memory_db: Any, publisher: Any
) -> None:
    with pytest.raises(EntityNotFoundError):
        await DeleteEntityUseCase(account_cache, memory_db.uow_factory).execute("nobody")
    assert publisher.calls == []
