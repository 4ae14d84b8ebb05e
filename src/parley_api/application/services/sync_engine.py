# src/parley_api/application/services/sync_engine.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""Sync/apply engine (Application Layer).

Synopsis:
    Applies verified write jobs to the durable store. Delivery is
    at-least-once, so every operation is idempotent:

        * create  -> insert the full row; an existing row with the same id
                     is a ``duplicate`` and counts as success.
        * update  -> partial update of a live row; a missing or soft-deleted
                     row is ``not_found`` (logged, dropped, counted as failed).
        * delete  -> soft delete; an already-deleted row is a ``noop`` success.

    Each job runs in its own Unit of Work. Batches fan out concurrently and
    one job's failure never affects another. There is no retry here; retries
    belong to the delivery channel.

Layer:
    application/services
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from parley_api.application.schemas.dto.write_job import (
    CreateJob,
    DeleteJob,
    UpdateJob,
    WriteJob,
    parse_write_job,
)
from parley_api.application.uow import UnitOfWork, UnitOfWorkFactory, run_in_uow
from parley_api.domain.entities.base import utc_now
from parley_api.domain.exceptions.write_behind import (
    DuplicateEntityError,
    MalformedBatchError,
    MalformedJobError,
    UnknownEntityKindError,
)
from parley_api.domain.interfaces.repositories.entity_repository import SoftDeleteResult
from parley_api.infrastructure.observability.metrics import (
    get_write_job_apply_duration_seconds,
    get_write_jobs_applied_total,
)

__all__ = ["JobOutcome", "JobResult", "BatchResult", "SyncEngine"]

logger = logging.getLogger(__name__)

_JOB_TYPES = (CreateJob, UpdateJob, DeleteJob)


class JobOutcome(str, Enum):
    """Terminal state of one job."""

    APPLIED = "applied"
    DUPLICATE = "duplicate"
    NOOP = "noop"
    NOT_FOUND = "not_found"
    REJECTED = "rejected"
    FAILED = "failed"

    @property
    def succeeded(self) -> bool:
        """True for outcomes that leave the durable store in the intended state."""
        return self in _SUCCESS_OUTCOMES


_SUCCESS_OUTCOMES = frozenset({JobOutcome.APPLIED, JobOutcome.DUPLICATE, JobOutcome.NOOP})


@dataclass(frozen=True)
class JobResult:
    """Outcome of one job, with enough context for manual replay."""

    outcome: JobOutcome
    table: str | None = None
    operation: str | None = None
    entity_id: str | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        """Shortcut for ``outcome.succeeded``."""
        return self.outcome.succeeded


@dataclass(frozen=True)
class BatchResult:
    """Aggregate outcome of a batch."""

    succeeded: int
    failed: int
    results: tuple[JobResult, ...] = ()


def _raw_context(payload: Any) -> dict[str, Any]:
    if isinstance(payload, _JOB_TYPES):
        return payload.log_context()
    if isinstance(payload, Mapping):
        return {
            "table": payload.get("table"),
            "operation": payload.get("operation"),
            "entity_id": payload.get("id"),
        }
    return {"table": None, "operation": None, "entity_id": None}


def _label(value: Any) -> str:
    return value if isinstance(value, str) and value else "unknown"


class SyncEngine:
    """Applies write jobs to the durable store."""

    def __init__(self, uow_factory: UnitOfWorkFactory) -> None:
        """Initialize the engine.

        Args:
            uow_factory: Returns a fresh Unit of Work per job.
        """
        self._uow_factory = uow_factory

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    async def process_job(self, payload: WriteJob | Mapping[str, Any] | str | bytes) -> JobResult:
        """Apply a single job.

        Args:
            payload: Parsed job, or its wire form.

        Returns:
            JobResult with outcome ``applied``, ``duplicate``, ``noop`` or
            ``not_found``.

        Raises:
            UnknownEntityKindError: ``table`` names no known kind.
            MalformedJobError: The payload matches no job variant.
            DuplicateEntityError: A create/update collides with a different
                row on a unique field.
            DurableStoreError: The durable store failed.
        """
        ctx = _raw_context(payload)
        start = time.perf_counter()
        try:
            job = payload if isinstance(payload, _JOB_TYPES) else parse_write_job(payload)
            ctx = job.log_context()
            outcome = await run_in_uow(self._uow_factory(), lambda uow: self._apply(uow, job))
        except (UnknownEntityKindError, MalformedJobError) as exc:
            self._record(ctx, JobOutcome.REJECTED)
            logger.warning(
                "sync.job.rejected",
                extra={**ctx, "error_code": exc.code, "error": str(exc)},
            )
            raise
        except Exception as exc:
            self._record(ctx, JobOutcome.FAILED)
            logger.warning(
                "sync.job.failed",
                extra={**ctx, "error_type": type(exc).__name__, "error": str(exc)},
                exc_info=exc,
            )
            raise

        get_write_job_apply_duration_seconds().labels(
            table=_label(ctx["table"]), operation=_label(ctx["operation"])
        ).observe(time.perf_counter() - start)
        self._record(ctx, outcome)

        log = logger.warning if outcome is JobOutcome.NOT_FOUND else logger.info
        log("sync.job.%s", outcome.value, extra=ctx)
        return JobResult(
            outcome=outcome,
            table=ctx["table"],
            operation=ctx["operation"],
            entity_id=ctx["entity_id"],
        )

    async def batch_process(
        self,
        payloads: Sequence[WriteJob | Mapping[str, Any]],
    ) -> BatchResult:
        """Apply every job independently and concurrently.

        Raises:
            MalformedBatchError: ``payloads`` is not a list of jobs.
        """
        if not isinstance(payloads, list | tuple):
            raise MalformedBatchError("Batch payload must be a list of jobs")

        results = await asyncio.gather(*(self._process_isolated(p) for p in payloads))
        succeeded = sum(1 for r in results if r.succeeded)
        batch = BatchResult(
            succeeded=succeeded,
            failed=len(results) - succeeded,
            results=tuple(results),
        )
        logger.info(
            "sync.batch.done",
            extra={"jobs": len(results), "succeeded": batch.succeeded, "failed": batch.failed},
        )
        return batch

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    async def _process_isolated(self, payload: Any) -> JobResult:
        ctx = _raw_context(payload)
        try:
            return await self.process_job(payload)
        except (UnknownEntityKindError, MalformedJobError) as exc:
            outcome, error = JobOutcome.REJECTED, str(exc)
        except Exception as exc:  # one job must never fail its siblings
            outcome, error = JobOutcome.FAILED, f"{type(exc).__name__}: {exc}"
        return JobResult(
            outcome=outcome,
            table=ctx["table"],
            operation=ctx["operation"],
            entity_id=ctx["entity_id"],
            error=error,
        )

    async def _apply(self, uow: UnitOfWork, job: WriteJob) -> JobOutcome:
        if isinstance(job, CreateJob):
            return await self._apply_create(uow, job)
        if isinstance(job, UpdateJob):
            repo = uow.get_repository(job.kind)
            found = await repo.update_fields(job.id, job.data.changes(), updated_at=utc_now())
            return JobOutcome.APPLIED if found else JobOutcome.NOT_FOUND
        repo = uow.get_repository(job.kind)
        result = await repo.soft_delete(job.id, deleted_at=utc_now())
        return {
            SoftDeleteResult.DELETED: JobOutcome.APPLIED,
            SoftDeleteResult.ALREADY_DELETED: JobOutcome.NOOP,
            SoftDeleteResult.NOT_FOUND: JobOutcome.NOT_FOUND,
        }[result]

    async def _apply_create(self, uow: UnitOfWork, job: CreateJob[Any]) -> JobOutcome:
        repo = uow.get_repository(job.kind)
        if await repo.get_by_id(job.id, include_deleted=True) is not None:
            return JobOutcome.DUPLICATE

        try:
            entity = job.data.to_entity()
        except ValueError as exc:
            raise MalformedJobError(str(exc), details=job.log_context()) from exc

        try:
            await repo.insert(entity.to_fields())
        except DuplicateEntityError:
            # Lost a race with a concurrent delivery of the same job, or a
            # different row owns one of the unique fields.
            await uow.rollback()
            if await repo.get_by_id(job.id, include_deleted=True) is not None:
                return JobOutcome.DUPLICATE
            raise
        return JobOutcome.APPLIED

    @staticmethod
    def _record(ctx: Mapping[str, Any], outcome: JobOutcome) -> None:
        get_write_jobs_applied_total().labels(
            table=_label(ctx.get("table")),
            operation=_label(ctx.get("operation")),
            outcome=outcome.value,
        ).inc()
