# src/parley_api/adapters/repositories/base_repository.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""
BaseRepository: Rule-enforcing repository foundation for Parley.

Purpose:
    Shared mechanics for all repositories:
      * Safe fetch helper.
      * Translation of driver errors into domain errors.
      * UTC timestamp helper for audit fields.

Layer: adapters / repositories

Notes:
    * No business logic, no domain decisions.
    * Repositories never commit; the Unit of Work owns transactions.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any, Generic, TypeVar

from sqlalchemy import Select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from parley_api.domain.exceptions.write_behind import DuplicateEntityError, DurableStoreError

TModel = TypeVar("TModel")


class BaseRepository(Generic[TModel]):  # noqa: UP046
    """Abstract base class for all repositories."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize the repository.

        Args:
            session: Async SQLAlchemy session bound to the target database.
        """
        self._session: AsyncSession = session

    # ------------------------------------------------------------------
    # Timestamp / audit utilities
    # ------------------------------------------------------------------

    @staticmethod
    def utc_now() -> datetime:
        """Return current UTC time with timezone info."""
        return datetime.now(UTC)

    # ------------------------------------------------------------------
    # Error translation
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def translate_errors(self, operation: str) -> AsyncIterator[None]:
        """Map SQLAlchemy errors raised inside the block to domain errors.

        Raises:
            DuplicateEntityError: On an integrity (uniqueness/FK) violation.
            DurableStoreError: On any other database failure.
        """
        try:
            yield
        except IntegrityError as exc:
            raise DuplicateEntityError(
                f"{operation}: integrity constraint violated",
                details={"operation": operation},
            ) from exc
        except SQLAlchemyError as exc:
            raise DurableStoreError(
                f"{operation}: database error ({type(exc).__name__})",
                details={"operation": operation},
            ) from exc

    # ------------------------------------------------------------------
    # Fetch helpers
    # ------------------------------------------------------------------

    async def fetch_optional(self, stmt: Select[Any]) -> TModel | None:
        """Execute a statement and return zero or one row."""
        res = await self._session.execute(stmt)
        return res.scalars().first()
