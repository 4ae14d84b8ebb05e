# src/parley_api/adapters/routers/__init__.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""Routers Package Export (Adapters Layer).

Purpose:
    Provide stable, explicit exports for the routers mounted by ``main.py``.

Layer:
    adapters/routers
"""

from __future__ import annotations

from .internal_router import router as internal_router  # noqa: F401

__all__ = ["internal_router"]
