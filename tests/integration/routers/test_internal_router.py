# tests/integration/routers/test_internal_router.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
from __future__ import annotations

import json
import time
from collections.abc import AsyncGenerator, Callable
from typing import Any

import httpx
import jwt
import pytest
import pytest_asyncio
from fastapi import FastAPI

from parley_api.adapters.dependencies.write_behind import get_delivery_verifier, get_sync_engine
from parley_api.application.schemas.dto.write_job import (
    build_create_job,
    build_delete_job,
    to_wire,
)
from parley_api.application.services.sync_engine import SyncEngine
from parley_api.config.settings import Settings, get_settings
from parley_api.domain.entities.account import Account
from parley_api.domain.enums.entity_kind import EntityKind
from parley_api.domain.exceptions.write_behind import DurableStoreError
from parley_api.infrastructure.security.delivery_verifier import DeliveryVerifier, body_digest
from parley_api.main import create_app

SYNC = "/v1/internal/sync-to-db"
BATCH = "/v1/internal/batch-sync"


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest.fixture
def engine(memory_db: Any) -> SyncEngine:
    return SyncEngine(memory_db.uow_factory)


@pytest.fixture
def app(settings: Settings, engine: SyncEngine) -> FastAPI:
    application = create_app(settings)
    verifier = DeliveryVerifier(
        settings.qstash_current_signing_key.get_secret_value(),
        settings.qstash_next_signing_key.get_secret_value(),
    )
    application.dependency_overrides[get_delivery_verifier] = lambda: verifier
    application.dependency_overrides[get_sync_engine] = lambda: engine
    return application


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[httpx.AsyncClient, None]:
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def signed(settings: Settings) -> Callable[..., dict[str, str]]:
    """Return headers carrying a valid delivery signature for a body."""

    def _headers(body: bytes, *, key: str | None = None) -> dict[str, str]:
        now = int(time.time())
        claims = {
            "iss": "Upstash",
            "sub": settings.sync_callback_url,
            "iat": now,
            "nbf": now,
            "exp": now + 300,
            "body": body_digest(body),
        }
        secret = key or settings.qstash_next_signing_key.get_secret_value()
        return {
            "Upstash-Signature": jwt.encode(claims, secret, algorithm="HS256"),
            "Content-Type": "application/json",
        }

    return _headers


def _body(job: Any) -> bytes:
    return to_wire(job).encode("utf-8")


# -----------------------------------------------------------------------------
# Authentication
# -----------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_missing_signature_is_unauthorized(client: httpx.AsyncClient, memory_db: Any) -> None:
    resp = await client.post(SYNC, content=_body(build_delete_job(EntityKind.ACCOUNT, "u1")))

    assert resp.status_code == 401
    assert resp.json()["error"]["message"] == "Missing QStash signature"
    assert memory_db.opened == 0


@pytest.mark.asyncio
async def test_invalid_signature_is_unauthorized(
    client: httpx.AsyncClient, memory_db: Any, signed: Callable[..., dict[str, str]]
) -> None:
    body = _body(build_delete_job(EntityKind.ACCOUNT, "u1"))

    resp = await client.post(SYNC, content=body, headers=signed(body, key="not-the-key"))

    assert resp.status_code == 401
    assert resp.json()["error"]["message"] == "Invalid QStash signature"
    assert memory_db.opened == 0


@pytest.mark.asyncio
async def test_signature_bound_to_body(
    client: httpx.AsyncClient, signed: Callable[..., dict[str, str]]
) -> None:
    headers = signed(_body(build_delete_job(EntityKind.ACCOUNT, "u1")))
    resp = await client.post(
        SYNC, content=_body(build_delete_job(EntityKind.ACCOUNT, "u2")), headers=headers
    )
    assert resp.status_code == 401


# -----------------------------------------------------------------------------
# Single job
# -----------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_job_is_applied(
    client: httpx.AsyncClient,
    memory_db: Any,
    signed: Callable[..., dict[str, str]],
    make_account: Callable[..., Account],
) -> None:
    body = _body(build_create_job(make_account()))

    resp = await client.post(SYNC, content=body, headers=signed(body))

    assert resp.status_code == 200
    assert resp.json() == {
        "jobId": "u1",
        "table": "accounts",
        "operation": "create",
        "outcome": "applied",
    }
    assert memory_db.row(EntityKind.ACCOUNT, "u1") is not None


@pytest.mark.asyncio
async def test_not_found_job_is_acknowledged(
    client: httpx.AsyncClient, signed: Callable[..., dict[str, str]]
) -> None:
    body = _body(build_delete_job(EntityKind.PERSONA, "ghost"))

    resp = await client.post(SYNC, content=body, headers=signed(body))

    assert resp.status_code == 200
    assert resp.json()["outcome"] == "not_found"


@pytest.mark.asyncio
async def test_unknown_table_is_acknowledged_as_rejected(
    client: httpx.AsyncClient, memory_db: Any, signed: Callable[..., dict[str, str]]
) -> None:
    body = json.dumps({"operation": "delete", "table": "widgets", "id": "w1", "timestamp": 1}).encode()

    resp = await client.post(SYNC, content=body, headers=signed(body))

    assert resp.status_code == 200
    payload = resp.json()
    assert payload["outcome"] == "rejected"
    assert payload["table"] == "widgets"
    assert payload["jobId"] == "w1"
    assert "widgets" in payload["error"]
    assert memory_db.opened == 0


@pytest.mark.asyncio
async def test_malformed_job_is_acknowledged_and_dropped(
    client: httpx.AsyncClient,
    memory_db: Any,
    signed: Callable[..., dict[str, str]],
    make_account: Callable[..., Account],
) -> None:
    memory_db.seed(make_account())
    body = json.dumps({"operation": "explode", "table": "accounts", "id": "u1"}).encode()

    resp = await client.post(SYNC, content=body, headers=signed(body))

    assert resp.status_code == 200
    assert resp.json() == {
        "jobId": "u1",
        "table": "accounts",
        "outcome": "rejected",
        "error": "Unknown operation: 'explode'",
    }
    assert memory_db.row(EntityKind.ACCOUNT, "u1") is not None


@pytest.mark.asyncio
async def test_non_json_job_is_acknowledged_as_rejected(
    client: httpx.AsyncClient, signed: Callable[..., dict[str, str]]
) -> None:
    body = b"{not json"

    resp = await client.post(SYNC, content=body, headers=signed(body))

    assert resp.status_code == 200
    assert resp.json() == {"outcome": "rejected", "error": "Write job is not valid JSON"}


@pytest.mark.asyncio
async def test_durable_store_failure_asks_for_retry(
    app: FastAPI, client: httpx.AsyncClient, signed: Callable[..., dict[str, str]]
) -> None:
    class BrokenEngine:
        async def process_job(self, payload: Any) -> Any:
            raise DurableStoreError("database unavailable")

    app.dependency_overrides[get_sync_engine] = BrokenEngine
    body = _body(build_delete_job(EntityKind.ACCOUNT, "u1"))

    resp = await client.post(SYNC, content=body, headers=signed(body))

    assert resp.status_code == 500


# -----------------------------------------------------------------------------
# Batch
# -----------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_batch_reports_per_job_outcomes(
    client: httpx.AsyncClient,
    memory_db: Any,
    signed: Callable[..., dict[str, str]],
    make_account: Callable[..., Account],
) -> None:
    memory_db.seed(make_account("u9", email="n@x.com", username="nine", external_id="ext-9"))
    jobs = [
        json.loads(to_wire(build_create_job(make_account()))),
        json.loads(to_wire(build_delete_job(EntityKind.ACCOUNT, "u9"))),
        {"operation": "explode", "table": "accounts", "id": "u1"},
    ]
    body = json.dumps(jobs).encode()

    resp = await client.post(BATCH, content=body, headers=signed(body))

    assert resp.status_code == 200
    payload = resp.json()
    assert (payload["count"], payload["succeeded"], payload["failed"]) == (3, 2, 1)
    assert payload["failures"][0]["outcome"] == "rejected"


@pytest.mark.asyncio
async def test_batch_must_be_a_list(
    client: httpx.AsyncClient, signed: Callable[..., dict[str, str]]
) -> None:
    body = b'{"operation": "delete"}'

    resp = await client.post(BATCH, content=body, headers=signed(body))

    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_batch_with_invalid_json_is_unprocessable(
    client: httpx.AsyncClient, signed: Callable[..., dict[str, str]]
) -> None:
    body = b"[not json"

    resp = await client.post(BATCH, content=body, headers=signed(body))

    assert resp.status_code == 422


# -----------------------------------------------------------------------------
# Health
# -----------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_health_endpoints(client: httpx.AsyncClient) -> None:
    internal = await client.get("/v1/internal/health")
    root = await client.get("/healthz")

    assert internal.status_code == 200
    assert internal.json()["status"] == "ok"
    assert "timestamp" in internal.json()
    assert root.json() == {"status": "ok"}
