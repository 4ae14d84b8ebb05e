# src/parley_api/dependencies/core/bootstrap.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""Core bootstrap for infrastructure (DB, Redis, HTTP, write-behind services).

This module owns the lifecycle of shared infrastructure used by the FastAPI app.
It is intentionally thin: configuration is read from Settings, and all heavy
lifting is delegated to the infrastructure modules.

Process-wide clients are created exactly once here and then handed to each
component through its constructor. Nothing below the bootstrap reaches for a
global client.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import httpx
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from parley_api.adapters.uow import sqlalchemy_uow_factory
from parley_api.application.interfaces.cache_port import CacheStore
from parley_api.application.services.entity_cache import EntityCache, default_cache_specs
from parley_api.application.services.job_dispatcher import JobDispatcher
from parley_api.application.services.sync_engine import SyncEngine
from parley_api.application.uow import UnitOfWorkFactory
from parley_api.config.settings import Settings, get_settings
from parley_api.domain.enums.entity_kind import EntityKind
from parley_api.domain.interfaces.gateways.identity_provider import IdentityProviderGateway
from parley_api.domain.interfaces.gateways.job_publisher import JobPublisher
from parley_api.infrastructure.caching.redis_cache_store import RedisCacheStore
from parley_api.infrastructure.logging.logger import get_json_logger
from parley_api.infrastructure.messaging.qstash_publisher import QStashPublisher
from parley_api.infrastructure.security.delivery_verifier import DeliveryVerifier

logger = get_json_logger(__name__)


@dataclass
class WriteBehindServices:
    """Components of the write-behind pipeline, wired once per process."""

    caches: dict[EntityKind, EntityCache]
    dispatcher: JobDispatcher
    sync_engine: SyncEngine
    verifier: DeliveryVerifier
    uow_factory: UnitOfWorkFactory
    identity_provider: IdentityProviderGateway | None = None

    def cache_for(self, kind: EntityKind) -> EntityCache:
        """Return the cache layer serving ``kind``."""
        return self.caches[kind]


@dataclass
class BootstrapState:
    """State yielded by the bootstrap context manager."""

    settings: Settings
    http_client: httpx.AsyncClient
    services: WriteBehindServices


def build_services(
    settings: Settings,
    *,
    store: CacheStore,
    publisher: JobPublisher,
    session_factory: async_sessionmaker[AsyncSession],
    identity_provider: IdentityProviderGateway | None = None,
) -> WriteBehindServices:
    """Wire the write-behind components from their primitives.

    Args:
        settings: Application settings (TTLs, delay, signing keys, callback URL).
        store: Cache store primitive.
        publisher: Delayed-delivery primitive.
        session_factory: Session factory backing each Unit of Work.
        identity_provider: Optional identity-provider gateway for profile mirroring.

    Returns:
        WriteBehindServices: Fully wired components.
    """
    dispatcher = JobDispatcher(
        publisher,
        settings.sync_callback_url,
        default_delay_seconds=settings.write_behind_delay_s,
    )
    caches = {
        kind: EntityCache(store, dispatcher, spec)
        for kind, spec in default_cache_specs(settings.cache_ttls()).items()
    }
    uow_factory = sqlalchemy_uow_factory(session_factory)
    verifier = DeliveryVerifier(
        settings.qstash_current_signing_key.get_secret_value(),
        settings.qstash_next_signing_key.get_secret_value(),
        clock_tolerance_s=settings.qstash_clock_tolerance_s,
    )
    return WriteBehindServices(
        caches=caches,
        dispatcher=dispatcher,
        sync_engine=SyncEngine(uow_factory),
        verifier=verifier,
        uow_factory=uow_factory,
        identity_provider=identity_provider,
    )


@asynccontextmanager
async def bootstrap(app: FastAPI) -> AsyncGenerator[BootstrapState, None]:
    """Initialize and teardown shared infrastructure.

    Responsibilities:
        * Load application settings.
        * Initialize DB engine/sessionmaker.
        * Initialize Redis client.
        * Create a shared HTTPX AsyncClient.
        * Wire the write-behind services on top of those clients.
        * Ensure all of the above are shut down on exit, even on error.

    Args:
        app: FastAPI application instance (unused today, reserved for future hooks).

    Yields:
        BootstrapState: Resolved settings, shared HTTP client and services.
    """
    settings: Settings = get_settings()
    logger.info("bootstrap.start")

    # Import infrastructure modules here so tests can monkeypatch their functions.
    import parley_api.infrastructure.caching.redis_client as redis_client
    import parley_api.infrastructure.database.session as db_session

    db_session.init_engine_and_sessionmaker(settings)
    redis_client.init_redis(settings)

    http_client = httpx.AsyncClient(timeout=settings.qstash_timeout_s)
    publisher = QStashPublisher(
        base_url=str(settings.qstash_url),
        token=settings.qstash_token.get_secret_value(),
        http=http_client,
        timeout_s=settings.qstash_timeout_s,
    )
    services = build_services(
        settings,
        store=RedisCacheStore(redis_client.get_redis_client(), namespace=settings.cache_namespace),
        publisher=publisher,
        session_factory=db_session.get_sessionmaker(),
    )

    state = BootstrapState(settings=settings, http_client=http_client, services=services)

    try:
        yield state
    finally:
        try:
            await http_client.aclose()
        except Exception:
            logger.exception("bootstrap.http_client_close_failed")

        try:
            await redis_client.close_redis()
        except Exception:
            logger.exception("bootstrap.redis_close_failed")

        try:
            await db_session.dispose_engine()
        except Exception:
            logger.exception("bootstrap.db_dispose_failed")

        logger.info("bootstrap.stop")
