# src/parley_api/adapters/uow/sqlalchemy_uow.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""SQLAlchemy-backed Unit of Work implementation.

Purpose:
    Provide a concrete implementation of the application-layer UnitOfWork
    protocol using SQLAlchemy's AsyncSession. This UoW coordinates the
    per-kind entity repositories within a single transactional scope.

Layer:
    adapters/uow
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from types import TracebackType

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from parley_api.adapters.repositories.entity_repository import SqlAlchemyEntityRepository
from parley_api.application.uow import UnitOfWork, UnitOfWorkFactory
from parley_api.domain.enums.entity_kind import EntityKind
from parley_api.domain.interfaces.repositories.entity_repository import EntityRepository

RepositoryFactory = Callable[[AsyncSession], EntityRepository]


class SqlAlchemyUnitOfWork(UnitOfWork):
    """SQLAlchemy-based UnitOfWork implementation.

    Coordinates a single AsyncSession and the entity repositories within a
    transactional context. Intended to be used via:

        async with SqlAlchemyUnitOfWork(session_factory=...) as uow:
            repo = uow.get_repository(EntityKind.ACCOUNT)
            ...
            await uow.commit()
    """

    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        repo_factories: Mapping[EntityKind, RepositoryFactory] | None = None,
    ) -> None:
        """Initialize the UnitOfWork.

        Args:
            session_factory:
                Factory for creating new AsyncSession instances.
            repo_factories:
                Optional per-kind overrides of the default repository wiring.
        """
        self._session_factory = session_factory
        self._session: AsyncSession | None = None

        default_factories: dict[EntityKind, RepositoryFactory] = {
            kind: (lambda s, k=kind: SqlAlchemyEntityRepository(s, k)) for kind in EntityKind
        }
        self._repo_factories: dict[EntityKind, RepositoryFactory] = {
            **default_factories,
            **(dict(repo_factories) if repo_factories is not None else {}),
        }

        self._repos: dict[EntityKind, EntityRepository] = {}
        self._committed = False
        self._rolled_back = False

    # ------------------------------------------------------------------
    # Async context manager
    # ------------------------------------------------------------------

    async def __aenter__(self) -> SqlAlchemyUnitOfWork:
        """Enter the UnitOfWork context and open a new AsyncSession.

        Raises:
            RuntimeError: If a session is already active (nested usage).
        """
        if self._session is not None:
            raise RuntimeError("UnitOfWork is already active; nested usage is not supported.")

        self._session = self._session_factory()
        self._committed = False
        self._rolled_back = False
        self._repos.clear()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool | None:
        """Exit the UnitOfWork context.

        Rolls back if an exception escaped the block and no rollback has been
        performed yet, then closes the session. Uncommitted work is discarded
        when the session closes.
        """
        try:
            if exc_type is not None and not self._rolled_back:
                await self.rollback()
        finally:
            if self._session is not None:
                await self._session.close()
                self._session = None
            self._repos.clear()
        return None

    # ------------------------------------------------------------------
    # Transaction control
    # ------------------------------------------------------------------

    async def commit(self) -> None:
        """Commit the current transaction.

        No-op if the UnitOfWork was already committed or rolled back.

        Raises:
            RuntimeError: If called without an active session.
        """
        if self._session is None:
            raise RuntimeError("Cannot commit: UnitOfWork has no active session.")

        if self._committed or self._rolled_back:
            return

        await self._session.commit()
        self._committed = True

    async def rollback(self) -> None:
        """Roll back the current transaction.

        No-op if already rolled back or committed, or if no session exists.
        """
        if self._session is None:
            return

        if self._rolled_back or self._committed:
            return

        await self._session.rollback()
        self._rolled_back = True

    # ------------------------------------------------------------------
    # Repository resolution
    # ------------------------------------------------------------------

    def get_repository(self, kind: EntityKind) -> EntityRepository:
        """Return the repository for ``kind`` bound to the active session.

        Raises:
            RuntimeError: If called outside of an active UnitOfWork context.
            KeyError: If no factory is registered for ``kind``.
        """
        if self._session is None:
            raise RuntimeError(
                "get_repository() called outside of an active UnitOfWork scope. "
                "Use 'async with uow:' before requesting repositories.",
            )

        if kind in self._repos:
            return self._repos[kind]

        try:
            factory = self._repo_factories[kind]
        except KeyError as exc:
            raise KeyError(f"No repository factory registered for {kind!r}.") from exc

        repo = factory(self._session)
        self._repos[kind] = repo
        return repo


def sqlalchemy_uow_factory(session_factory: async_sessionmaker[AsyncSession]) -> UnitOfWorkFactory:
    """Return a zero-argument factory producing fresh Units of Work."""

    def _factory() -> UnitOfWork:
        return SqlAlchemyUnitOfWork(session_factory=session_factory)

    return _factory
