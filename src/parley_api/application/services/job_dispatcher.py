# src/parley_api/application/services/job_dispatcher.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""Write job dispatcher (Application Layer).

Purpose:
    Serialize a write job and hand it to the asynchronous delivery channel,
    targeting the fixed sync callback URL. A short default delay lets bursts
    of writes to the same entity settle before delivery.

Layer:
    application/services
"""

from __future__ import annotations

import logging

from parley_api.application.schemas.dto.write_job import WriteJob, to_wire
from parley_api.domain.exceptions.write_behind import JobDispatchError
from parley_api.domain.interfaces.gateways.job_publisher import JobPublisher
from parley_api.infrastructure.observability.metrics import get_write_jobs_dispatched_total

logger = logging.getLogger(__name__)

DEFAULT_DELAY_SECONDS = 2


class JobDispatcher:
    """Publishes write jobs to the sync callback."""

    def __init__(
        self,
        publisher: JobPublisher,
        callback_url: str,
        *,
        default_delay_seconds: int = DEFAULT_DELAY_SECONDS,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            publisher: Delivery channel primitive.
            callback_url: Absolute URL the channel delivers jobs to.
            default_delay_seconds: Delay used when ``dispatch`` is not given one.
        """
        if default_delay_seconds < 0:
            raise ValueError("default_delay_seconds must be >= 0")
        self._publisher = publisher
        self._callback_url = callback_url
        self._default_delay = default_delay_seconds

    @property
    def callback_url(self) -> str:
        """Target URL for every dispatched job."""
        return self._callback_url

    async def dispatch(self, job: WriteJob, delay_seconds: int | None = None) -> str:
        """Publish ``job`` and return the channel's delivery id.

        Raises:
            JobDispatchError: The channel refused or could not be reached.
        """
        delay = self._default_delay if delay_seconds is None else max(0, delay_seconds)
        body = to_wire(job)
        try:
            message_id = await self._publisher.publish(
                self._callback_url,
                body,
                headers={"Content-Type": "application/json"},
                delay_seconds=delay,
            )
        except JobDispatchError:
            get_write_jobs_dispatched_total().labels(
                table=job.table.value, operation=job.operation, result="error"
            ).inc()
            logger.warning("write_behind.dispatch.failed", extra=job.log_context())
            raise
        get_write_jobs_dispatched_total().labels(
            table=job.table.value, operation=job.operation, result="ok"
        ).inc()
        logger.info(
            "write_behind.dispatch.ok",
            extra={**job.log_context(), "message_id": message_id, "delay_s": delay},
        )
        return message_id
