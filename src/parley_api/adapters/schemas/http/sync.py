# src/parley_api/adapters/schemas/http/sync.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""Response schemas for the internal sync endpoints."""

from __future__ import annotations

import typing as t
from datetime import datetime

from pydantic import Field

from parley_api.adapters.schemas.http.base import BaseHTTPSchema
from parley_api.application.services.sync_engine import BatchResult, JobResult


class SyncJobResponse(BaseHTTPSchema):
    """Outcome of one delivered job."""

    job_id: str | None = Field(default=None, description="Entity id carried by the job.")
    table: str | None = None
    operation: str | None = None
    outcome: str = Field(..., examples=["applied", "duplicate", "noop", "not_found"])
    error: str | None = None

    @classmethod
    def from_result(cls, result: JobResult) -> SyncJobResponse:
        return cls(
            job_id=result.entity_id,
            table=result.table,
            operation=result.operation,
            outcome=result.outcome.value,
            error=result.error,
        )


class BatchSyncResponse(BaseHTTPSchema):
    """Aggregate outcome of a delivered batch."""

    count: int = Field(..., ge=0)
    succeeded: int = Field(..., ge=0)
    failed: int = Field(..., ge=0)
    failures: list[SyncJobResponse] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: BatchResult) -> BatchSyncResponse:
        return cls(
            count=len(result.results),
            succeeded=result.succeeded,
            failed=result.failed,
            failures=[SyncJobResponse.from_result(r) for r in result.results if not r.succeeded],
        )


class InternalHealthResponse(BaseHTTPSchema):
    """Liveness of the internal sync surface."""

    status: t.Literal["ok"] = "ok"
    timestamp: datetime
