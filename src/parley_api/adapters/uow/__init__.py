# src/parley_api/adapters/uow/__init__.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""
Unit of Work implementations (Adapters Layer)

Purpose:
    Provide concrete UnitOfWork implementations backed by infrastructure
    concerns such as SQLAlchemy AsyncSession. Application-layer code must
    depend only on the `UnitOfWork` protocol from
    `parley_api.application.uow`.

Exports:
    - SqlAlchemyUnitOfWork: SQLAlchemy-backed UnitOfWork.
    - sqlalchemy_uow_factory: Zero-argument UoW factory for DI wiring.
"""

from __future__ import annotations

from .sqlalchemy_uow import SqlAlchemyUnitOfWork, sqlalchemy_uow_factory

__all__ = ["SqlAlchemyUnitOfWork", "sqlalchemy_uow_factory"]
