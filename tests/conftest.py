# tests/conftest.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
from __future__ import annotations

import json
from collections.abc import AsyncGenerator, Callable, Generator, Mapping
from datetime import datetime
from types import TracebackType
from typing import Any

import fakeredis.aioredis
import pytest
import pytest_asyncio

from parley_api.application.schemas.dto.records import schema_for
from parley_api.application.services.entity_cache import EntityCache, default_cache_specs
from parley_api.application.services.job_dispatcher import JobDispatcher
from parley_api.config.settings import get_settings
from parley_api.domain.entities.account import Account
from parley_api.domain.entities.base import BaseEntity, utc_now
from parley_api.domain.enums.entity_kind import EntityKind
from parley_api.domain.exceptions.write_behind import DuplicateEntityError, JobDispatchError
from parley_api.domain.interfaces.repositories.entity_repository import SoftDeleteResult
from parley_api.infrastructure.caching.redis_cache_store import RedisCacheStore

CALLBACK_URL = "https://api.parley.test/v1/internal/sync-to-db"
CURRENT_KEY = "sig_current_0123456789abcdef"
NEXT_KEY = "sig_next_fedcba9876543210"

_TEST_ENV = {
    "ENVIRONMENT": "test",
    "DATABASE_URL": "sqlite+aiosqlite:///:memory:",
    "REDIS_URL": "redis://localhost:6379/15",
    "QSTASH_TOKEN": "qstash-test-token",
    "QSTASH_CURRENT_SIGNING_KEY": CURRENT_KEY,
    "QSTASH_NEXT_SIGNING_KEY": NEXT_KEY,
    "API_BASE_URL": "https://api.parley.test",
}


# -----------------------------------------------------------------------------
# Settings
# -----------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _test_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Provide a complete, valid environment and a fresh settings cache."""
    for key, value in _TEST_ENV.items():
        monkeypatch.setenv(key, value)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# -----------------------------------------------------------------------------
# Fakes
# -----------------------------------------------------------------------------
class RecordingPublisher:
    """JobPublisher fake that records every publish call."""

    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[dict[str, Any]] = []

    async def publish(
        self,
        target_url: str,
        body: str,
        *,
        headers: Mapping[str, str] | None = None,
        delay_seconds: int = 0,
    ) -> str:
        if self.fail:
            raise JobDispatchError("channel down")
        self.calls.append(
            {
                "target_url": target_url,
                "body": body,
                "headers": dict(headers or {}),
                "delay_seconds": delay_seconds,
            }
        )
        return f"msg-{len(self.calls)}"

    def jobs(self) -> list[dict[str, Any]]:
        return [json.loads(c["body"]) for c in self.calls]


class InMemoryRepository:
    """EntityRepository over a dict of rows (field name -> value)."""

    def __init__(self, kind: EntityKind, rows: dict[str, dict[str, Any]]) -> None:
        self._kind = kind
        self._rows = rows
        self._entity_type = schema_for(kind).entity_type

    def _entity(self, row: dict[str, Any]) -> BaseEntity:
        return self._entity_type(**row)

    async def get_by_id(self, entity_id: str, *, include_deleted: bool = False) -> BaseEntity | None:
        row = self._rows.get(entity_id)
        if row is None or (row["deleted_at"] is not None and not include_deleted):
            return None
        return self._entity(row)

    async def get_by_field(self, field: str, value: Any) -> BaseEntity | None:
        if field not in self._entity_type.UNIQUE_FIELDS:
            raise ValueError(field)
        for row in self._rows.values():
            if row[field] == value and row["deleted_at"] is None:
                return self._entity(row)
        return None

    async def insert(self, values: Mapping[str, Any]) -> None:
        if values["id"] in self._rows:
            raise DuplicateEntityError("id taken")
        for name in self._entity_type.UNIQUE_FIELDS:
            if any(row[name] == values[name] for row in self._rows.values()):
                raise DuplicateEntityError(f"{name} taken")
        self._rows[values["id"]] = dict(values)

    async def update_fields(
        self, entity_id: str, values: Mapping[str, Any], *, updated_at: datetime
    ) -> bool:
        row = self._rows.get(entity_id)
        if row is None or row["deleted_at"] is not None:
            return False
        row.update(values, updated_at=updated_at)
        return True

    async def soft_delete(self, entity_id: str, *, deleted_at: datetime) -> SoftDeleteResult:
        row = self._rows.get(entity_id)
        if row is None:
            return SoftDeleteResult.NOT_FOUND
        if row["deleted_at"] is not None:
            return SoftDeleteResult.ALREADY_DELETED
        row.update(deleted_at=deleted_at, updated_at=deleted_at)
        return SoftDeleteResult.DELETED


class InMemoryUnitOfWork:
    """UnitOfWork fake sharing one InMemoryDatabase; writes apply immediately."""

    def __init__(self, db: InMemoryDatabase) -> None:
        self._db = db
        self.committed = False
        self.rolled_back = False

    async def __aenter__(self) -> InMemoryUnitOfWork:
        self._db.opened += 1
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        return None

    async def commit(self) -> None:
        self.committed = True

    async def rollback(self) -> None:
        self.rolled_back = True

    def get_repository(self, kind: EntityKind) -> InMemoryRepository:
        return InMemoryRepository(kind, self._db.tables[kind])


class InMemoryDatabase:
    """Durable-store fake: one dict of rows per entity kind."""

    def __init__(self) -> None:
        self.tables: dict[EntityKind, dict[str, dict[str, Any]]] = {k: {} for k in EntityKind}
        self.opened = 0

    def uow_factory(self) -> InMemoryUnitOfWork:
        return InMemoryUnitOfWork(self)

    def seed(self, entity: BaseEntity) -> None:
        self.tables[entity.KIND][entity.id] = entity.to_fields()

    def row(self, kind: EntityKind, entity_id: str) -> dict[str, Any] | None:
        return self.tables[kind].get(entity_id)


class FakeIdentityProvider:
    """IdentityProviderGateway fake."""

    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[dict[str, Any]] = []

    async def update_profile(
        self,
        external_id: str,
        *,
        display_name: str | None = None,
        avatar_url: str | None = None,
    ) -> None:
        if self.fail:
            raise RuntimeError("identity provider unavailable")
        self.calls.append(
            {"external_id": external_id, "display_name": display_name, "avatar_url": avatar_url}
        )


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------
@pytest_asyncio.fixture
async def fake_redis() -> AsyncGenerator[fakeredis.aioredis.FakeRedis, None]:
    client = fakeredis.aioredis.FakeRedis(decode_responses=True)
    try:
        yield client
    finally:
        await client.flushall()
        await client.aclose()


@pytest.fixture
def cache_store(fake_redis: fakeredis.aioredis.FakeRedis) -> RedisCacheStore:
    return RedisCacheStore(fake_redis)


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def dispatcher(publisher: RecordingPublisher) -> JobDispatcher:
    return JobDispatcher(publisher, CALLBACK_URL, default_delay_seconds=2)


@pytest.fixture
def caches(cache_store: RedisCacheStore, dispatcher: JobDispatcher) -> dict[EntityKind, EntityCache]:
    return {
        kind: EntityCache(cache_store, dispatcher, spec)
        for kind, spec in default_cache_specs().items()
    }


@pytest.fixture
def account_cache(caches: dict[EntityKind, EntityCache]) -> EntityCache:
    return caches[EntityKind.ACCOUNT]


@pytest.fixture
def memory_db() -> InMemoryDatabase:
    return InMemoryDatabase()


@pytest.fixture
def identity_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def make_account() -> Callable[..., Account]:
    """Return a builder for accounts with deterministic defaults."""

    def _make(
        account_id: str = "u1",
        *,
        email: str = "a@x.com",
        username: str = "alice",
        external_id: str = "ext-u1",
        **overrides: Any,
    ) -> Account:
        now = utc_now()
        fields: dict[str, Any] = {
            "id": account_id,
            "created_at": now,
            "updated_at": now,
            "external_id": external_id,
            "email": email,
            "username": username,
            "display_name": "Alice",
        }
        fields.update(overrides)
        return Account(**fields)

    return _make
