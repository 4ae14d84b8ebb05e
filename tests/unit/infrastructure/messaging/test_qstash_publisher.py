# tests/unit/infrastructure/messaging/test_qstash_publisher.py
# Copyright (c) Parley.
# SPDX-License-Identifier: MIT
from __future__ import annotations

import httpx
import pytest
import respx

from parley_api.domain.exceptions.write_behind import JobDispatchError
from parley_api.infrastructure.messaging.qstash_publisher import QStashPublisher

BASE = "https://qstash.test"
TARGET = "https://api.parley.test/v1/internal/sync-to-db"
PUBLISH_PREFIX = f"{BASE}/v2/publish/"


@pytest.mark.asyncio
@respx.mock
async def test_publish_posts_body_with_auth_and_delay() -> None:
    route = respx.post(url__startswith=PUBLISH_PREFIX).mock(
        return_value=httpx.Response(201, json={"messageId": "msg_123"})
    )
    publisher = QStashPublisher(base_url=BASE, token="tok")
    try:
        message_id = await publisher.publish(
            TARGET,
            '{"id":"u1"}',
            headers={"Content-Type": "application/json", "X-Trace": "t1"},
            delay_seconds=2,
        )
    finally:
        await publisher.aclose()

    assert message_id == "msg_123"
    request = route.calls.last.request
    assert str(request.url).endswith("/v2/publish/" + TARGET)
    assert request.headers["Authorization"] == "Bearer tok"
    assert request.headers["Content-Type"] == "application/json"
    assert request.headers["Upstash-Delay"] == "2s"
    assert request.headers["Upstash-Forward-X-Trace"] == "t1"
    assert request.content == b'{"id":"u1"}'


@pytest.mark.asyncio
@respx.mock
async def test_publish_without_delay_omits_delay_header() -> None:
    route = respx.post(url__startswith=PUBLISH_PREFIX).mock(
        return_value=httpx.Response(200, json={"messageId": "m"})
    )
    async with httpx.AsyncClient() as http:
        publisher = QStashPublisher(base_url=BASE + "/", token="tok", http=http)
        await publisher.publish(TARGET, "{}")
    assert "Upstash-Delay" not in route.calls.last.request.headers


@pytest.mark.asyncio
@respx.mock
async def test_publish_non_2xx_raises_dispatch_error() -> None:
    respx.post(url__startswith=PUBLISH_PREFIX).mock(return_value=httpx.Response(401, text="unauthorized"))
    publisher = QStashPublisher(base_url=BASE, token="bad")
    with pytest.raises(JobDispatchError) as exc_info:
        await publisher.publish(TARGET, "{}")
    await publisher.aclose()
    assert exc_info.value.details["status"] == 401


@pytest.mark.asyncio
@respx.mock
async def test_publish_transport_error_raises_dispatch_error() -> None:
    respx.post(url__startswith=PUBLISH_PREFIX).mock(side_effect=httpx.ConnectError("refused"))
    publisher = QStashPublisher(base_url=BASE, token="tok")
    with pytest.raises(JobDispatchError):
        await publisher.publish(TARGET, "{}")
    await publisher.aclose()


@pytest.mark.asyncio
@respx.mock
async def test_publish_response_without_message_id_raises() -> None:
    respx.post(url__startswith=PUBLISH_PREFIX).mock(return_value=httpx.Response(200, json={"ok": True}))
    publisher = QStashPublisher(base_url=BASE, token="tok")
    with pytest.raises(JobDispatchError):
        await publisher.publish(TARGET, "{}")
    await publisher.aclose()


def test_publisher_requires_token() -> None:
    with pytest.raises(ValueError):
        QStashPublisher(base_url=BASE, token="")
