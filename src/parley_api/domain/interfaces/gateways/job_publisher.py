# src/parley_api/domain/interfaces/gateways/job_publisher.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""Asynchronous delivery gateway interface.

Purpose:
    Boundary for the external delivery channel that stands in for a message
    queue. Delivery is at-least-once, best-effort after ``delay_seconds`` and
    carries no ordering guarantee across calls.

Layer:
    domain/interfaces/gateways
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol, runtime_checkable


@runtime_checkable
class JobPublisher(Protocol):
    """Publish primitive of the delivery channel."""

    async def publish(
        self,
        target_url: str,
        body: str,
        *,
        headers: Mapping[str, str] | None = None,
        delay_seconds: int = 0,
    ) -> str:
        """Schedule ``body`` for delivery to ``target_url``.

        Args:
            target_url: Callback address the channel will POST to.
            body: Serialized request body, delivered byte-for-byte.
            headers: Extra headers forwarded with the delivery.
            delay_seconds: Minimum delay before the delivery fires.

        Returns:
            Delivery identifier assigned by the channel.

        Raises:
            JobDispatchError: If the channel refused or could not be reached.
        """
        ...
