# src/parley_api/adapters/routers/internal_router.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
"""Internal delivery endpoints (Adapters Layer).

Purpose:
    Receive write jobs delivered by QStash and hand them to the sync engine.

Design:
    * Authentication first: the raw body and ``Upstash-Signature`` header are
      verified before anything is parsed. Failures return 401 and the engine
      is never called.
    * Malformed or unknown-kind jobs are acknowledged with 200 and outcome
      ``rejected``; redelivery would be rejected the same way. Durable-store
      failures map through the domain error handlers to 500 so the delivery
      channel retries.
    * ``not_found`` outcomes are dropped with 200; retrying them cannot help.

Layer:
    adapters/routers
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from parley_api.adapters.dependencies.write_behind import get_delivery_verifier, get_sync_engine
from parley_api.adapters.schemas.http.sync import (
    BatchSyncResponse,
    InternalHealthResponse,
    SyncJobResponse,
)
from parley_api.application.services.sync_engine import SyncEngine
from parley_api.domain.exceptions.write_behind import (
    MalformedBatchError,
    MalformedJobError,
    UnknownEntityKindError,
)
from parley_api.infrastructure.logging.logger import get_json_logger
from parley_api.infrastructure.security.delivery_verifier import DeliveryVerifier

logger = get_json_logger(__name__)
router = APIRouter(prefix="/v1/internal", tags=["Internal"])

SIGNATURE_HEADER = "Upstash-Signature"


async def _authenticated_body(
    request: Request,
    signature: str | None,
    verifier: DeliveryVerifier,
) -> bytes:
    if not signature:
        logger.warning("internal.delivery.signature_missing", extra={"path": request.url.path})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing QStash signature")

    body = await request.body()
    if not verifier.verify(signature, body):
        logger.warning("internal.delivery.signature_invalid", extra={"path": request.url.path})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid QStash signature")
    return body


def _rejected(exc: UnknownEntityKindError | MalformedJobError) -> SyncJobResponse:
    def _text(name: str) -> str | None:
        value = exc.details.get(name)
        return value if isinstance(value, str) else None

    return SyncJobResponse(
        job_id=_text("id"),
        table=_text("table"),
        operation=_text("operation"),
        outcome="rejected",
        error=str(exc) or exc.code,
    )


@router.post(
    "/sync-to-db",
    response_model=SyncJobResponse,
    response_model_exclude_none=True,
    summary="Apply one delivered write job",
)
async def sync_to_db(
    request: Request,
    verifier: Annotated[DeliveryVerifier, Depends(get_delivery_verifier)],
    engine: Annotated[SyncEngine, Depends(get_sync_engine)],
    upstash_signature: Annotated[str | None, Header(alias=SIGNATURE_HEADER)] = None,
) -> SyncJobResponse:
    body = await _authenticated_body(request, upstash_signature, verifier)
    try:
        result = await engine.process_job(body)
    except (UnknownEntityKindError, MalformedJobError) as exc:
        return _rejected(exc)
    return SyncJobResponse.from_result(result)


@router.post(
    "/batch-sync",
    response_model=BatchSyncResponse,
    summary="Apply a delivered batch of write jobs",
)
async def batch_sync(
    request: Request,
    verifier: Annotated[DeliveryVerifier, Depends(get_delivery_verifier)],
    engine: Annotated[SyncEngine, Depends(get_sync_engine)],
    upstash_signature: Annotated[str | None, Header(alias=SIGNATURE_HEADER)] = None,
) -> BatchSyncResponse:
    body = await _authenticated_body(request, upstash_signature, verifier)
    try:
        payloads = json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MalformedBatchError("Batch body is not valid JSON") from exc

    result = await engine.batch_process(payloads)
    return BatchSyncResponse.from_result(result)


@router.get("/health", response_model=InternalHealthResponse, summary="Internal liveness")
async def internal_health() -> InternalHealthResponse:
    return InternalHealthResponse(timestamp=datetime.now(UTC))
