# src/parley_api/application/schemas/dto/partial_success.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""Partial-success result (Application Layer).

Returned by operations whose primary write must not fail because a
best-effort secondary write did. Callers may surface ``warnings`` as a
degraded-success state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class PartialSuccess(Generic[T]):
    """Primary result plus warnings from secondary writes.

    Attributes:
        result: Outcome of the primary operation.
        warnings: One human-readable entry per failed secondary write.
    """

    result: T
    warnings: tuple[str, ...] = ()

    @property
    def degraded(self) -> bool:
        """True if any secondary write failed."""
        return bool(self.warnings)
